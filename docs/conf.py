# Configuration file for the Sphinx documentation builder.

project = "jobstream"
copyright = "2026, jobstream Contributors"
author = "jobstream Contributors"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.viewcode",
    "sphinx.ext.napoleon",
]

# Napoleon settings for Google/NumPy style docstrings
napoleon_google_docstring = True
napoleon_numpy_docstring = False

autodoc_member_order = "bysource"
autodoc_typehints = "description"

html_theme = "alabaster"
html_theme_options = {
    "description": "Long-running jobs over server-sent event streams",
}

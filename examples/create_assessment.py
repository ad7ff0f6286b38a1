"""Assessment creation example.

Opens an assessment-creation job and waits for the created assessment.

Prerequisites:
    The example server running at http://localhost:8080 (see serve.py).
"""

import asyncio
import logging

import jobstream

logging.basicConfig(level=logging.INFO)


async def main():
    def on_created(data):
        print(f"Created assessment {data['assessmentId']} ({data.get('name')})")

    def on_error(message):
        print(f"Assessment creation failed: {message}")

    async with jobstream.StreamClient(
        "http://localhost:8080",
        callbacks=jobstream.StreamCallbacks(on_event=on_created, on_error=on_error),
        vocabulary=jobstream.ASSESSMENT_VOCABULARY,
        timeout=300,
    ) as client:
        await client.send_message(
            {"name": "Backend take-home", "role": "Senior Engineer"},
            "/api/assessments/new",
        )
        print("Final state:", client.state, "job:", client.connection.job_id)


if __name__ == "__main__":
    asyncio.run(main())

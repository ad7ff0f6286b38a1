"""jobstream transport layer."""

from jobstream.transport.base import EVENT_STREAM_MEDIA_TYPE, StreamTransport
from jobstream.transport.http import HTTPStreamTransport, is_event_stream

__all__ = ["EVENT_STREAM_MEDIA_TYPE", "HTTPStreamTransport", "StreamTransport", "is_event_stream"]

# idmerge/utils/__init__.py
# ============================================================
# Shared Utilities Package
# ============================================================
# Provides reusable helpers used across the pipeline:
#   - logger: Structured logging with Rich formatting
#   - events: Structured event sinks (logging / in-memory)
#   - image: Image decoding, encoding, resizing, metadata
# ============================================================

from idmerge.utils.events import EventSink, LoggingEventSink, RecordingEventSink
from idmerge.utils.image import decode_image, encode_image_base64, get_image_info, resize_to_fit
from idmerge.utils.logger import get_logger

__all__ = [
    "get_logger",
    "EventSink",
    "LoggingEventSink",
    "RecordingEventSink",
    "decode_image",
    "encode_image_base64",
    "resize_to_fit",
    "get_image_info",
]

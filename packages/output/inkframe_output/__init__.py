"""Output sinks for encoded frames."""

from .errors import SinkError
from .models import SinkResult
from .sinks import SINK_KINDS, FileSink, OpenEPaperLinkSink, OutputSink, build_multipart

__all__ = [
    "FileSink",
    "OpenEPaperLinkSink",
    "OutputSink",
    "SINK_KINDS",
    "SinkError",
    "SinkResult",
    "build_multipart",
]

"""Output sinks: atomic file writes and Open ePaper Link uploads."""

from __future__ import annotations

import http.client
import logging
import os
import tempfile
import time
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from pathlib import Path

from urllib3 import encode_multipart_formdata

from inkframe_renderer.models import EncodedFrame

from .errors import SinkError
from .models import SinkResult

logger = logging.getLogger("inkframe.output")

SINK_KINDS = ("file", "oepl")


class OutputSink(ABC):
    kind = "abstract"

    @abstractmethod
    def write(self, frame: EncodedFrame) -> SinkResult:
        ...

    @abstractmethod
    def describe(self) -> str:
        ...


class FileSink(OutputSink):
    """Writes to a temp file beside the target, then renames over it."""

    kind = "file"

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def describe(self) -> str:
        return str(self.path)

    def write(self, frame: EncodedFrame) -> SinkResult:
        start = time.perf_counter()
        target = self.path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent))
        except OSError as exc:
            raise SinkError(f"Can't prepare output directory for {target}: {exc}", target=str(target)) from exc

        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(frame.data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, target)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise SinkError(f"Can't write image to {target}: {exc}", target=str(target)) from exc

        logger.info("saved image to %s", target, extra={"event": "sink_file_ok"})
        return SinkResult(
            sink=self.kind,
            target=str(target),
            bytes_written=len(frame.data),
            duration_s=time.perf_counter() - start,
        )


def build_multipart(fields: dict[str, str], file_field: str, filename: str, content: bytes, content_type: str) -> tuple[bytes, str]:
    """Form body and Content-Type header; quotes and line breaks in header params are percent-escaped."""
    parts: list[tuple[str, object]] = list(fields.items())
    parts.append((file_field, (filename, content, content_type)))
    return encode_multipart_formdata(parts)


class OpenEPaperLinkSink(OutputSink):
    """Uploads a JPEG to an Open ePaper Link access point for one price tag."""

    kind = "oepl"

    def __init__(
        self,
        host: str,
        mac: str,
        dither: bool = False,
        ttl_minutes: int | None = None,
        timeout_s: float = 30.0,
    ) -> None:
        if not host:
            raise SinkError("No Open ePaper Link host configured")
        if not mac:
            raise SinkError("No tag MAC given", target=host)
        self.host = host
        self.mac = mac
        self.dither = dither
        self.ttl_minutes = ttl_minutes
        self.timeout_s = timeout_s

    @property
    def url(self) -> str:
        if self.host.startswith(("http://", "https://")):
            return f"{self.host.rstrip('/')}/imgupload"
        return f"http://{self.host}/imgupload"

    def describe(self) -> str:
        return f"{self.url} (tag {self.mac})"

    def write(self, frame: EncodedFrame) -> SinkResult:
        if frame.format != "jpeg":
            raise SinkError(f"Open ePaper Link expects JPEG frames, got {frame.format}", target=self.url)

        fields = {"mac": self.mac, "dither": "1" if self.dither else "0"}
        if self.ttl_minutes is not None:
            fields["ttl"] = str(self.ttl_minutes)
        body, content_type = build_multipart(fields, "file", f"{self.mac}.jpg", frame.data, "image/jpeg")

        start = time.perf_counter()
        logger.info("sending request to open epaper link at %s", self.host, extra={"event": "sink_oepl_start"})
        try:
            req = urllib.request.Request(self.url, data=body, method="POST", headers={"Content-Type": content_type})
            with urllib.request.urlopen(req, timeout=self.timeout_s) as resp:
                status = int(getattr(resp, "status", 200))
                resp.read()
        except urllib.error.HTTPError as exc:
            raise SinkError(
                f"Open ePaper Link AP responded with error: {exc.code}", target=self.url, status=exc.code
            ) from exc
        except (urllib.error.URLError, OSError, http.client.HTTPException, ValueError) as exc:
            raise SinkError(f"Could not reach Open ePaper Link AP at {self.host}: {exc}", target=self.url) from exc

        if not 200 <= status < 300:
            raise SinkError(f"Open ePaper Link AP responded with error: {status}", target=self.url, status=status)

        return SinkResult(
            sink=self.kind,
            target=self.describe(),
            bytes_written=len(body),
            duration_s=time.perf_counter() - start,
            status=status,
        )

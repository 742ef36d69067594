"""Exceptions raised by the stream split pipeline."""
from __future__ import annotations

from typing import List, Optional


class StreamSplitError(Exception):
    """Base class for failures that abort a title."""


class ProbeError(StreamSplitError):
    """The container could not be opened or its stream table parsed."""


class ExtractionError(StreamSplitError):
    """An ffmpeg extraction for a single stream failed."""

    def __init__(
        self,
        message: str,
        stream_index: Optional[int] = None,
        command: Optional[List[str]] = None,
    ) -> None:
        super().__init__(message)
        self.stream_index = stream_index
        self.command = list(command or [])

"""Per-stream codec decisions: copy, transcode to a baseline codec, or skip."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Union

from .probe import MediaType, StreamInfo

AAC = "aac"
WEBVTT = "webvtt"

# Subtitle codecs that are not converted to WebVTT (bitmap PGS, SubRip).
UNSUPPORTED_SUBTITLE_CODECS = frozenset({"hdmv_pgs_subtitle", "subrip"})


@dataclass(frozen=True)
class CopyRemux:
    """Bitstream copy without re-encoding."""


@dataclass(frozen=True)
class TranscodeTo:
    codec: str


@dataclass(frozen=True)
class Skip:
    reason: str


Action = Union[CopyRemux, TranscodeTo, Skip]

# Per-codec overrides for video streams. Empty: every video codec is copied.
VIDEO_ACTIONS: Dict[str, Action] = {}


def classify(stream: StreamInfo) -> Action:
    """Return the action for one stream, independent of its siblings."""
    codec = stream.codec.lower()
    if stream.media_type is MediaType.video:
        return VIDEO_ACTIONS.get(codec, CopyRemux())
    if stream.media_type is MediaType.audio:
        return CopyRemux() if codec == AAC else TranscodeTo(AAC)
    if stream.media_type is MediaType.subtitle:
        if codec in UNSUPPORTED_SUBTITLE_CODECS:
            return Skip("unsupported")
        return TranscodeTo(WEBVTT)
    return Skip("ignored")

"""Utilities for building single-stream ffmpeg extraction commands."""
from __future__ import annotations

from pathlib import Path
from typing import List

from .policy import WEBVTT, Action, CopyRemux, Skip, TranscodeTo
from .probe import MediaType, StreamInfo

_CODEC_FLAGS = {
    MediaType.video: "-c:v",
    MediaType.audio: "-c:a",
    MediaType.subtitle: "-c:s",
}


def build_ffmpeg_command(
    source: Path,
    destination: Path,
    stream: StreamInfo,
    action: Action,
    ffmpeg: str = "ffmpeg",
) -> List[str]:
    """Construct an ffmpeg command writing exactly one stream of ``source``.

    The stream is selected by its absolute index so that the artifact is bound
    to the probed stream even when several share a type or language. Copy
    actions keep the bitstream untouched; transcode actions re-encode to the
    requested codec.
    """
    if isinstance(action, Skip):
        raise ValueError(f"Stream {stream.index} is skipped ({action.reason}); nothing to extract")
    flag = _CODEC_FLAGS.get(stream.media_type)
    if flag is None:
        raise ValueError(f"Stream {stream.index} of type {stream.media_type.value} cannot be extracted")

    args: List[str] = [
        ffmpeg,
        "-hide_banner",
        "-y",
        "-i",
        str(source),
        "-map",
        f"0:{stream.index}",
    ]

    if isinstance(action, CopyRemux):
        args.extend([flag, "copy"])
    elif isinstance(action, TranscodeTo):
        args.extend([flag, action.codec])
        # WebVTT has no default muxer guess for every extension.
        if action.codec == WEBVTT:
            args.extend(["-f", WEBVTT])

    args.append(str(destination))
    return args

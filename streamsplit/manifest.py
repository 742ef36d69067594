"""Filename convention for title output directories and helpers that read it.

Layout under ``output_root``::

    <title_id>/master.<ext>        primary video stream (title is playable)
    <title_id>/video_<index>.<ext> any further video stream
    <title_id>/audio_<lang>.aac    one per extracted audio stream
    <title_id>/sub_<lang>.vtt      one per converted subtitle stream
    .staging/<title_id>/           in-progress or failed titles, never listed

A second stream of the same kind and language in one title is written as
``audio_<lang>_<index>.aac`` (or ``sub_<lang>_<index>.vtt``).
"""
from __future__ import annotations

from pathlib import Path
from typing import List, Set

from .models import MediaListResponse, TitleEntry
from .pipeline.probe import MediaType, StreamInfo

STREAMS_PREFIX = "/streams"
MASTER_STEM = "master"
EXTRA_VIDEO_PREFIX = "video_"
AUDIO_PREFIX = "audio_"
SUBTITLE_PREFIX = "sub_"
AUDIO_EXTENSION = "aac"
SUBTITLE_EXTENSION = "vtt"
STAGING_DIRNAME = ".staging"


def master_filename(video_extension: str) -> str:
    return f"{MASTER_STEM}.{video_extension}"


def playback_reference(title_id: str, video_extension: str) -> str:
    """Location of the combined video output relative to the streams mount."""
    return f"{title_id}/{master_filename(video_extension)}"


class ArtifactNamer:
    """Hands out artifact filenames for one title, never the same name twice."""

    def __init__(self, video_extension: str = "mp4") -> None:
        self.video_extension = video_extension
        self._taken: Set[str] = set()

    def name_for(self, stream: StreamInfo) -> str:
        if stream.media_type is MediaType.video:
            name = master_filename(self.video_extension)
            if name in self._taken:
                name = f"{EXTRA_VIDEO_PREFIX}{stream.index}.{self.video_extension}"
        elif stream.media_type is MediaType.audio:
            name = self._tagged(AUDIO_PREFIX, stream, AUDIO_EXTENSION)
        elif stream.media_type is MediaType.subtitle:
            name = self._tagged(SUBTITLE_PREFIX, stream, SUBTITLE_EXTENSION)
        else:
            raise ValueError(f"Stream {stream.index} has no artifact kind")
        self._taken.add(name)
        return name

    def _tagged(self, prefix: str, stream: StreamInfo, extension: str) -> str:
        name = f"{prefix}{stream.language}.{extension}"
        if name in self._taken:
            name = f"{prefix}{stream.language}_{stream.index}.{extension}"
        return name


def list_titles(output_root: Path, video_extension: str = "mp4") -> List[TitleEntry]:
    """Return every published title that has its combined video output."""
    if not output_root.is_dir():
        return []
    master = master_filename(video_extension)
    titles: List[TitleEntry] = []
    for entry in sorted(output_root.iterdir(), key=lambda path: path.name):
        if not entry.is_dir() or entry.name.startswith("."):
            continue
        if (entry / master).is_file():
            titles.append(
                TitleEntry(
                    name=entry.name,
                    url=f"{STREAMS_PREFIX}/{playback_reference(entry.name, video_extension)}",
                )
            )
    return titles


def resolve_title_dir(output_root: Path, dir_ref: str) -> Path:
    """Map a ``/streams/<title_id>`` reference onto a directory in ``output_root``.

    Raises FileNotFoundError when the reference points outside the root, into
    a hidden folder such as the staging area, or at a missing folder.
    """
    relative = dir_ref.strip()
    if relative.startswith(STREAMS_PREFIX + "/"):
        relative = relative[len(STREAMS_PREFIX) + 1:]
    relative = relative.strip("/")
    root = output_root.resolve()
    try:
        target = (root / relative).resolve()
    except (ValueError, OSError) as exc:
        raise FileNotFoundError(f"Folder not found: {dir_ref}") from exc
    if target == root or root not in target.parents or not target.is_dir():
        raise FileNotFoundError(f"Folder not found: {dir_ref}")
    if any(part.startswith(".") for part in target.relative_to(root).parts):
        raise FileNotFoundError(f"Folder not found: {dir_ref}")
    return target


def media_list(output_root: Path, dir_ref: str) -> MediaListResponse:
    """Partition a title's sibling tracks into subtitle and audio references."""
    title_dir = resolve_title_dir(output_root, dir_ref)
    base = dir_ref.rstrip("/")
    names = sorted(path.name for path in title_dir.iterdir() if path.is_file())
    return MediaListResponse(
        subtitles=[f"{base}/{name}" for name in names if name.lower().startswith(SUBTITLE_PREFIX)],
        audios=[f"{base}/{name}" for name in names if name.lower().startswith(AUDIO_PREFIX)],
    )

"""ffprobe wrapper producing a single stream table snapshot per container."""
from __future__ import annotations

import json
import logging
import re
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..errors import ProbeError

log = logging.getLogger(__name__)

UNDETERMINED_LANGUAGE = "und"

_UNSAFE_LANGUAGE_CHARS = re.compile(r"[^a-z0-9-]")


class MediaType(str, Enum):
    video = "video"
    audio = "audio"
    subtitle = "subtitle"
    other = "other"


@dataclass(frozen=True)
class StreamInfo:
    index: int
    media_type: MediaType
    codec: str
    language: str = UNDETERMINED_LANGUAGE


@dataclass(frozen=True)
class StreamTable:
    """Immutable view of a container's streams as reported by one ffprobe run."""

    source: Path
    streams: Tuple[StreamInfo, ...]

    def indices(self, media_type: MediaType) -> List[int]:
        return sorted(s.index for s in self.streams if s.media_type is media_type)

    @property
    def video(self) -> List[int]:
        return self.indices(MediaType.video)

    @property
    def audio(self) -> List[int]:
        return self.indices(MediaType.audio)

    @property
    def subtitle(self) -> List[int]:
        return self.indices(MediaType.subtitle)

    @property
    def ignored(self) -> List[int]:
        return self.indices(MediaType.other)

    def partition(self) -> Dict[str, List[int]]:
        return {"video": self.video, "audio": self.audio, "subtitle": self.subtitle}

    def describe(self, index: int) -> StreamInfo:
        for stream in self.streams:
            if stream.index == index:
                return stream
        raise KeyError(f"No stream with index {index} in {self.source}")


def normalize_language(value: Optional[str]) -> str:
    """Return a filename-safe lowercase language tag, ``und`` when unknown."""
    if not value:
        return UNDETERMINED_LANGUAGE
    code = _UNSAFE_LANGUAGE_CHARS.sub("", value.strip().lower())
    return code or UNDETERMINED_LANGUAGE


def probe(source: Path, ffprobe: str = "ffprobe", timeout: float = 30.0) -> StreamTable:
    """Run ffprobe once against ``source`` and return its stream table.

    Raises ProbeError if the file is missing, ffprobe cannot run or its
    output is not a usable stream listing.
    """
    if not source.exists():
        raise ProbeError(f"Container not found: {source}")

    command = [
        ffprobe,
        "-v",
        "error",
        "-print_format",
        "json",
        "-show_streams",
        str(source),
    ]
    try:
        result = subprocess.run(
            command,
            check=False,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise ProbeError(f"ffprobe timed out for {source} after {exc.timeout}s") from exc
    except OSError as exc:
        raise ProbeError(f"ffprobe failed to start: {exc}") from exc

    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        raise ProbeError(f"ffprobe failed for {source}: {stderr or result.returncode}")

    try:
        payload = json.loads(result.stdout)
    except (TypeError, json.JSONDecodeError) as exc:
        raise ProbeError(f"Invalid ffprobe output for {source}: {exc}") from exc

    table = parse_streams(source, payload)
    for stream in table.streams:
        log.info(
            "Stream %d: %s - %s (%s)",
            stream.index,
            stream.media_type.value,
            stream.codec,
            stream.language,
        )
    return table


def parse_streams(source: Path, payload: Any) -> StreamTable:
    """Build a StreamTable from decoded ffprobe JSON."""
    if not isinstance(payload, dict) or not isinstance(payload.get("streams"), list):
        raise ProbeError(f"ffprobe output for {source} has no stream list")

    streams: List[StreamInfo] = []
    seen = set()
    for position, entry in enumerate(payload["streams"]):
        if not isinstance(entry, dict):
            raise ProbeError(f"Malformed stream entry at position {position} in {source}")
        index = entry.get("index", position)
        if not isinstance(index, int) or index in seen:
            raise ProbeError(f"Invalid or duplicate stream index {index!r} in {source}")
        seen.add(index)
        streams.append(
            StreamInfo(
                index=index,
                media_type=_media_type(entry.get("codec_type")),
                codec=str(entry.get("codec_name") or "").lower(),
                language=normalize_language(_language_tag(entry.get("tags"))),
            )
        )
    return StreamTable(source=source, streams=tuple(streams))


def _media_type(codec_type: Any) -> MediaType:
    try:
        return MediaType(str(codec_type).lower())
    except ValueError:
        return MediaType.other


def _language_tag(tags: Any) -> Optional[str]:
    if not isinstance(tags, dict):
        return None
    for key, value in tags.items():
        if key.lower() == "language" and isinstance(value, str):
            return value
    return None

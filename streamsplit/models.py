"""Pydantic models for service settings and HTTP payloads."""
from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, validator


def _tool_default(name: str, env_var: str) -> str:
    return os.getenv(env_var) or shutil.which(name) or name


class PathConfig(BaseModel):
    output_root: Path = Path("output")
    upload_dir: Path = Path("uploads")


class ToolConfig(BaseModel):
    ffmpeg: str = Field(default_factory=lambda: _tool_default("ffmpeg", "FFMPEG_BINARY"))
    ffprobe: str = Field(default_factory=lambda: _tool_default("ffprobe", "FFPROBE_BINARY"))


class AppSettings(BaseModel):
    version: int = 1
    paths: PathConfig = Field(default_factory=PathConfig)
    tools: ToolConfig = Field(default_factory=ToolConfig)
    probe_timeout: float = Field(default=30.0, gt=0)
    video_extension: str = "mp4"
    keep_uploads: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @validator("video_extension")
    def strip_extension_dot(cls, value: str) -> str:
        value = value.strip().lstrip(".").lower()
        if not value or not value.isalnum():
            raise ValueError("video_extension must be a bare alphanumeric extension")
        return value

    def resolved(self, root: Path) -> "AppSettings":
        """Return a copy with relative paths anchored at ``root``."""
        paths = PathConfig(
            output_root=_anchor(root, self.paths.output_root),
            upload_dir=_anchor(root, self.paths.upload_dir),
        )
        return self.model_copy(update={"paths": paths})


def _anchor(root: Path, path: Path) -> Path:
    return path if path.is_absolute() else root / path


class UploadResponse(BaseModel):
    message: str
    stream_url: str
    title_id: str


class TitleEntry(BaseModel):
    name: str
    url: str


class MediaListResponse(BaseModel):
    subtitles: List[str] = Field(default_factory=list)
    audios: List[str] = Field(default_factory=list)


class StageEvent(BaseModel):
    stage: str
    status: Literal["started", "ok", "failed"]
    detail: Optional[str] = None


class RunRecord(BaseModel):
    run_id: str
    ok: Optional[bool] = None
    events: List[StageEvent] = Field(default_factory=list)
    summary: Optional[str] = None

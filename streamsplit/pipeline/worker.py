"""Derives ordered extraction plans for probed titles."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from ..manifest import STAGING_DIRNAME, ArtifactNamer
from ..models import AppSettings
from .policy import Action, Skip, classify
from .probe import MediaType, StreamInfo, StreamTable
from .remux import build_ffmpeg_command

log = logging.getLogger(__name__)

# Video first, then audio, then subtitles.
PROCESSING_ORDER = (MediaType.video, MediaType.audio, MediaType.subtitle)


@dataclass(frozen=True)
class OutputArtifact:
    kind: MediaType
    language: str
    path: Path
    stream_index: int


@dataclass
class ExtractionStep:
    """One blocking ffmpeg run bound to a single source stream."""

    stream: StreamInfo
    action: Action
    filename: str
    command: List[str]


@dataclass(frozen=True)
class SkippedStream:
    stream: StreamInfo
    reason: str


@dataclass
class PipelinePlan:
    """Computed plan for processing a title."""

    title_id: str
    source: Path
    staging_dir: Path
    final_dir: Path
    steps: List[ExtractionStep] = field(default_factory=list)
    skipped: List[SkippedStream] = field(default_factory=list)

    def artifact_for(self, step: ExtractionStep) -> OutputArtifact:
        return OutputArtifact(
            kind=step.stream.media_type,
            language=step.stream.language,
            path=self.final_dir / step.filename,
            stream_index=step.stream.index,
        )


class PipelineWorker:
    """Turns a stream table into an ordered list of extraction steps."""

    def __init__(self, settings: AppSettings) -> None:
        self.settings = settings
        self.output_root = Path(settings.paths.output_root)
        self.staging_root = self.output_root / STAGING_DIRNAME

    def build_plan(self, title_id: str, table: StreamTable) -> PipelinePlan:
        """Classify every stream once and lay out the extraction steps."""
        staging_dir = self.staging_root / title_id
        plan = PipelinePlan(
            title_id=title_id,
            source=table.source,
            staging_dir=staging_dir,
            final_dir=self.output_root / title_id,
        )
        namer = ArtifactNamer(self.settings.video_extension)

        for media_type in PROCESSING_ORDER:
            for index in table.indices(media_type):
                stream = table.describe(index)
                action = classify(stream)
                if isinstance(action, Skip):
                    log.info(
                        "Skipping %s stream %d (%s): %s",
                        stream.media_type.value,
                        stream.index,
                        stream.codec,
                        action.reason,
                    )
                    plan.skipped.append(SkippedStream(stream=stream, reason=action.reason))
                    continue
                filename = namer.name_for(stream)
                command = build_ffmpeg_command(
                    table.source,
                    staging_dir / filename,
                    stream,
                    action,
                    ffmpeg=self.settings.tools.ffmpeg,
                )
                plan.steps.append(
                    ExtractionStep(stream=stream, action=action, filename=filename, command=command)
                )
        return plan

"""Runs extraction plans: probe once, extract serially, publish on success."""
from __future__ import annotations

import argparse
import logging
import os
import shutil
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from ..errors import ExtractionError, ProbeError, StreamSplitError
from ..manifest import playback_reference
from ..models import AppSettings, StageEvent
from ..storage import SettingsRepository
from ..titles import allocate_title_id
from .probe import probe
from .worker import (
    ExtractionStep,
    OutputArtifact,
    PipelinePlan,
    PipelineWorker,
    SkippedStream,
)

log = logging.getLogger(__name__)

STDERR_TAIL_LINES = 20


@dataclass
class TitleResult:
    title_id: str
    output_dir: Path
    playback_reference: str
    artifacts: List[OutputArtifact] = field(default_factory=list)
    skipped: List[SkippedStream] = field(default_factory=list)


class PipelineRunner:
    """Processes one title at a time; separate instances may run in parallel."""

    def __init__(
        self,
        settings: AppSettings,
        repo: Optional[SettingsRepository] = None,
    ) -> None:
        self.settings = settings
        self.repo = repo
        self.worker = PipelineWorker(settings)

    def process_title(self, source: Path, title_id: str) -> TitleResult:
        """Probe ``source`` and write its artifacts to ``output_root/<title_id>``.

        Raises ProbeError before anything is written under the output root,
        and ExtractionError on the first failed step, leaving earlier
        artifacts in the title's staging directory. A staging directory left
        by an earlier run of the same title id is discarded first.
        """
        if self.repo is not None:
            self.repo.start_run(title_id)
        try:
            result = self._process(source, title_id)
        except Exception as exc:
            self._finalize(title_id, ok=False, summary=str(exc) or type(exc).__name__)
            raise
        summary = f"{len(result.artifacts)} artifacts, {len(result.skipped)} skipped"
        self._finalize(title_id, ok=True, summary=summary)
        log.info("Processing completed for %s (%s)", title_id, summary)
        return result

    def _process(self, source: Path, title_id: str) -> TitleResult:
        self._record(title_id, "probe", "started", str(source))
        try:
            table = probe(
                source,
                ffprobe=self.settings.tools.ffprobe,
                timeout=self.settings.probe_timeout,
            )
        except ProbeError as exc:
            self._record(title_id, "probe", "failed", str(exc))
            raise
        self._record(title_id, "probe", "ok", f"{len(table.streams)} streams")

        plan = self.worker.build_plan(title_id, table)
        if plan.final_dir.exists():
            raise StreamSplitError(f"Output directory already exists: {plan.final_dir}")
        if plan.staging_dir.exists():
            # Leftovers of an earlier failed run under the same title id.
            log.warning("Discarding stale staging directory %s", plan.staging_dir)
            shutil.rmtree(plan.staging_dir)
        plan.staging_dir.mkdir(parents=True)

        for entry in plan.skipped:
            self._record(title_id, f"extract.{entry.stream.index}", "ok", f"skipped: {entry.reason}")

        for step in plan.steps:
            stage = f"extract.{step.stream.index}"
            self._record(title_id, stage, "started", step.filename)
            try:
                self._run_ffmpeg(plan, step)
            except ExtractionError as exc:
                self._record(title_id, stage, "failed", str(exc))
                raise
            self._record(title_id, stage, "ok", step.filename)

        self._publish(plan)
        return TitleResult(
            title_id=title_id,
            output_dir=plan.final_dir,
            playback_reference=playback_reference(title_id, self.settings.video_extension),
            artifacts=[plan.artifact_for(step) for step in plan.steps],
            skipped=list(plan.skipped),
        )

    def _run_ffmpeg(self, plan: PipelinePlan, step: ExtractionStep) -> None:
        log.info("Extracting stream %d: %s", step.stream.index, " ".join(step.command))
        try:
            result = subprocess.run(step.command, check=False, capture_output=True, text=True)
        except OSError as exc:
            raise ExtractionError(
                f"ffmpeg failed to start: {exc}",
                stream_index=step.stream.index,
                command=step.command,
            ) from exc
        if result.returncode != 0:
            stderr = "\n".join((result.stderr or "").strip().splitlines()[-STDERR_TAIL_LINES:])
            log.error("ffmpeg error for stream %d: %s", step.stream.index, stderr)
            raise ExtractionError(
                f"ffmpeg exited with {result.returncode} for stream {step.stream.index}",
                stream_index=step.stream.index,
                command=step.command,
            )
        if not (plan.staging_dir / step.filename).is_file():
            raise ExtractionError(
                f"ffmpeg produced no output for stream {step.stream.index}",
                stream_index=step.stream.index,
                command=step.command,
            )

    def _publish(self, plan: PipelinePlan) -> None:
        self._record(plan.title_id, "publish", "started", str(plan.final_dir))
        try:
            plan.staging_dir.rename(plan.final_dir)
        except OSError as exc:
            self._record(plan.title_id, "publish", "failed", str(exc))
            raise StreamSplitError(f"Could not publish {plan.title_id}: {exc}") from exc
        self._record(plan.title_id, "publish", "ok", str(plan.final_dir))

    def _record(self, title_id: str, stage: str, status: str, detail: str | None = None) -> None:
        if self.repo is None:
            return
        self.repo.append_run_event(title_id, StageEvent(stage=stage, status=status, detail=detail))

    def _finalize(self, title_id: str, ok: bool, summary: str) -> None:
        if self.repo is not None:
            self.repo.finalize_run(title_id, ok=ok, summary=summary)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Split a media container into per-track artifacts.")
    parser.add_argument("container", type=Path, help="media file to process")
    parser.add_argument("--title-id", help="output directory name (allocated when omitted)")
    args = parser.parse_args(argv)

    root = Path(os.getenv("STREAMSPLIT_ROOT", Path(__file__).resolve().parents[2]))
    repo = SettingsRepository(root)
    settings = repo.load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    title_id = args.title_id or allocate_title_id(args.container.name)
    runner = PipelineRunner(settings, repo)
    try:
        result = runner.process_title(args.container, title_id)
    except StreamSplitError as exc:
        log.error("Processing failed for %s: %s", title_id, exc)
        return 1
    print(result.playback_reference)
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""FastAPI entrypoint: upload, title listing, track manifest and static output."""
from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles
from sse_starlette.sse import EventSourceResponse

from .errors import StreamSplitError
from .manifest import STREAMS_PREFIX, list_titles, media_list
from .models import MediaListResponse, TitleEntry, UploadResponse
from .pipeline.runner import PipelineRunner
from .storage import SettingsRepository
from .titles import allocate_title_id

ROOT_DIR = Path(__file__).resolve().parents[1]

log = logging.getLogger(__name__)

UPLOAD_FORM = """
<h2>Upload MKV File</h2>
<form method="POST" enctype="multipart/form-data" action="/upload">
  <input type="file" name="video" />
  <button type="submit">Upload</button>
</form>
"""


def create_app(root: Path) -> FastAPI:
    """Build the service around the settings stored under ``root``."""
    repo = SettingsRepository(root)
    settings = repo.load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    output_root = Path(settings.paths.output_root)
    upload_dir = Path(settings.paths.upload_dir)
    output_root.mkdir(parents=True, exist_ok=True)
    upload_dir.mkdir(parents=True, exist_ok=True)

    app = FastAPI(title="Stream Split", version="0.1.0")
    app.state.repo = repo
    app.state.settings = settings

    @app.get("/", include_in_schema=False, response_class=HTMLResponse)
    def upload_form() -> str:
        """Return the minimal upload form."""
        return UPLOAD_FORM

    @app.post("/upload", response_model=UploadResponse)
    def upload(video: UploadFile = File(...)) -> UploadResponse:
        """Store the uploaded container and split it into per-track artifacts."""
        original_name = Path(video.filename or "upload").name
        title_id = allocate_title_id(original_name)
        stored = upload_dir / f"{title_id}{Path(original_name).suffix}"
        with stored.open("wb") as handle:
            shutil.copyfileobj(video.file, handle)

        runner = PipelineRunner(settings, repo)
        try:
            result = runner.process_title(stored, title_id)
        except StreamSplitError as exc:
            log.exception("Processing failed for %s", title_id)
            raise HTTPException(status_code=500, detail="Error processing video.") from exc
        finally:
            if not settings.keep_uploads:
                stored.unlink(missing_ok=True)

        return UploadResponse(
            message="Video processed with all streams.",
            stream_url=f"{STREAMS_PREFIX}/{result.playback_reference}",
            title_id=title_id,
        )

    @app.get("/videos", response_model=List[TitleEntry])
    def videos() -> List[TitleEntry]:
        """Return every title whose combined video output is ready."""
        return list_titles(output_root, settings.video_extension)

    @app.get("/media-list", response_model=MediaListResponse)
    def get_media_list(dir_ref: Optional[str] = Query(default=None, alias="dir")) -> MediaListResponse:
        """Return the subtitle and audio tracks stored next to a title's video."""
        if not dir_ref:
            raise HTTPException(status_code=400, detail="Missing dir param")
        try:
            return media_list(output_root, dir_ref)
        except FileNotFoundError as exc:
            raise HTTPException(status_code=404, detail="Folder not found") from exc

    @app.get("/api/titles/{title_id}/events")
    async def stream_title_events(title_id: str) -> EventSourceResponse:
        """Stream recorded pipeline stages for a title."""

        async def event_generator():
            sent = 0
            while True:
                record = repo.get_run(title_id)
                if record is None:
                    yield {
                        "event": "error",
                        "data": json.dumps({"message": "run_not_found"}),
                    }
                    return

                for event in record.events[sent:]:
                    yield {"event": "stage", "data": event.model_dump_json()}
                sent = len(record.events)

                if record.ok is not None:
                    yield {
                        "event": "status",
                        "data": json.dumps({"ok": record.ok, "summary": record.summary or ""}),
                    }
                    return

                await asyncio.sleep(0.5)

        return EventSourceResponse(event_generator())

    app.mount(STREAMS_PREFIX, StaticFiles(directory=output_root), name="streams")
    return app


app = create_app(Path(os.getenv("STREAMSPLIT_ROOT", ROOT_DIR)))

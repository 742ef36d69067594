"""Helpers for reading service settings and persisting pipeline run state."""
from __future__ import annotations

import json
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import yaml

from .models import AppSettings, RunRecord, StageEvent


class SettingsRepository:
    """File-backed persistence for service settings and per-title run events."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.settings_path = root / "settings.yaml"
        self.state_path = root / "state.json"
        self._lock = threading.Lock()

    def load_settings(self) -> AppSettings:
        if not self.settings_path.exists():
            return AppSettings().resolved(self.root)
        data = yaml.safe_load(self.settings_path.read_text()) or {}
        return AppSettings.model_validate(data).resolved(self.root)

    def save_settings(self, settings: AppSettings) -> None:
        payload = settings.model_dump(mode="json")
        with self.settings_path.open("w") as handle:
            yaml.safe_dump(payload, handle, sort_keys=False)

    def load_state(self) -> dict[str, Any]:
        if not self.state_path.exists():
            return {}
        return json.loads(self.state_path.read_text())

    def save_state(self, state: dict[str, Any]) -> None:
        self.state_path.write_text(json.dumps(state, indent=2))

    # Run history helpers -------------------------------------------------

    @contextmanager
    def _runs(self) -> Iterator[dict[str, Any]]:
        # Titles run in parallel request threads and share one state file.
        with self._lock:
            state = self.load_state()
            yield state.setdefault("runs", {})
            self.save_state(state)

    def start_run(self, run_id: str) -> None:
        with self._runs() as runs:
            runs[run_id] = {"ok": None, "events": []}

    def append_run_event(self, run_id: str, event: StageEvent) -> None:
        with self._runs() as runs:
            record = runs.setdefault(run_id, {"ok": None, "events": []})
            record["events"].append(event.model_dump(mode="json"))

    def finalize_run(self, run_id: str, ok: bool, summary: str | None = None) -> None:
        with self._runs() as runs:
            record = runs.setdefault(run_id, {"ok": None, "events": []})
            record["ok"] = ok
            if summary:
                record["summary"] = summary

    def get_run(self, run_id: str) -> RunRecord | None:
        with self._lock:
            record = self.load_state().get("runs", {}).get(run_id)
        if record is None:
            return None
        return RunRecord(
            run_id=run_id,
            ok=record.get("ok"),
            events=[StageEvent.model_validate(event) for event in record.get("events", [])],
            summary=record.get("summary"),
        )

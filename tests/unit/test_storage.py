"""Tests for settings loading and run-event persistence."""
from __future__ import annotations

import threading
import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from pydantic import ValidationError

from streamsplit.models import AppSettings, StageEvent
from streamsplit.storage import SettingsRepository


class TestSettings:
    def test_defaults_when_file_missing(self, temp_dir: Path):
        settings = SettingsRepository(temp_dir).load_settings()
        assert settings.paths.output_root == temp_dir / "output"
        assert settings.paths.upload_dir == temp_dir / "uploads"
        assert settings.video_extension == "mp4"
        assert settings.keep_uploads is False

    def test_yaml_overrides(self, temp_dir: Path):
        (temp_dir / "settings.yaml").write_text(
            "paths:\n"
            "  output_root: /srv/titles\n"
            "video_extension: .MKV\n"
            "probe_timeout: 5\n"
            "tools:\n"
            "  ffprobe: /opt/bin/ffprobe\n"
        )
        settings = SettingsRepository(temp_dir).load_settings()
        assert settings.paths.output_root == Path("/srv/titles")
        assert settings.paths.upload_dir == temp_dir / "uploads"
        assert settings.video_extension == "mkv"
        assert settings.probe_timeout == 5
        assert settings.tools.ffprobe == "/opt/bin/ffprobe"

    def test_save_and_reload(self, temp_dir: Path):
        repo = SettingsRepository(temp_dir)
        settings = AppSettings(keep_uploads=True, log_level="DEBUG")
        repo.save_settings(settings)
        loaded = repo.load_settings()
        assert loaded.keep_uploads is True
        assert loaded.log_level == "DEBUG"

    @pytest.mark.parametrize("payload", [{"video_extension": "m/p4"}, {"probe_timeout": 0}, {"log_level": "LOUD"}])
    def test_invalid_settings_rejected(self, payload):
        with pytest.raises(ValidationError):
            AppSettings.model_validate(payload)

    def test_tool_env_override(self, monkeypatch):
        monkeypatch.setenv("FFMPEG_BINARY", "/custom/ffmpeg")
        assert AppSettings().tools.ffmpeg == "/custom/ffmpeg"


class TestRunHistory:
    def test_run_lifecycle(self, settings_repo: SettingsRepository):
        settings_repo.start_run("t1")
        settings_repo.append_run_event("t1", StageEvent(stage="probe", status="ok", detail="3 streams"))
        settings_repo.finalize_run("t1", ok=True, summary="done")

        record = settings_repo.get_run("t1")
        assert record.ok is True
        assert record.summary == "done"
        assert [e.stage for e in record.events] == ["probe"]

    def test_unknown_run(self, settings_repo: SettingsRepository):
        assert settings_repo.get_run("nope") is None

    def test_concurrent_titles_do_not_lose_events(self, settings_repo: SettingsRepository):
        def record(title: str) -> None:
            settings_repo.start_run(title)
            for i in range(10):
                settings_repo.append_run_event(title, StageEvent(stage=f"extract.{i}", status="ok"))

        threads = [threading.Thread(target=record, args=(f"t{n}",)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for n in range(4):
            assert len(settings_repo.get_run(f"t{n}").events) == 10

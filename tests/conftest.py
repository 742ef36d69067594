"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional
from unittest.mock import MagicMock, patch

import pytest
import yaml
from fastapi.testclient import TestClient

# Add project root to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

# The module-level app in streamsplit.app creates its folders on import.
os.environ.setdefault("STREAMSPLIT_ROOT", tempfile.mkdtemp(prefix="streamsplit-"))

from streamsplit.app import create_app
from streamsplit.models import AppSettings, PathConfig, ToolConfig
from streamsplit.storage import SettingsRepository


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings(temp_dir: Path) -> AppSettings:
    """Settings pointing at temp folders and bare tool names."""
    output_root = temp_dir / "output"
    upload_dir = temp_dir / "uploads"
    output_root.mkdir()
    upload_dir.mkdir()
    return AppSettings(
        paths=PathConfig(output_root=output_root, upload_dir=upload_dir),
        tools=ToolConfig(ffmpeg="ffmpeg", ffprobe="ffprobe"),
    )


@pytest.fixture
def settings_repo(temp_dir: Path) -> SettingsRepository:
    return SettingsRepository(temp_dir)


@pytest.fixture
def container(temp_dir: Path) -> Path:
    """A placeholder source file; probing is mocked so its bytes do not matter."""
    path = temp_dir / "movie.mkv"
    path.write_bytes(b"\x1a\x45\xdf\xa3")
    return path


# Sample media files for pipeline tests
@pytest.fixture
def sample_media_info() -> Dict[str, Any]:
    """Return sample ffprobe output for a multi-language file."""
    return {
        "streams": [
            {"index": 0, "codec_type": "video", "codec_name": "h264", "tags": {"language": "eng"}},
            {"index": 1, "codec_type": "audio", "codec_name": "aac", "tags": {"language": "en"}},
            {"index": 2, "codec_type": "audio", "codec_name": "ac3", "tags": {"language": "ja"}},
            {"index": 3, "codec_type": "subtitle", "codec_name": "ass", "tags": {"language": "ja"}},
            {"index": 4, "codec_type": "attachment", "codec_name": "ttf"},
        ]
    }


class FakeMediaTools:
    """Stands in for ffprobe/ffmpeg behind ``subprocess.run``.

    ffprobe calls return ``media_info`` as JSON. ffmpeg calls write the
    destination file with a marker naming the mapped stream, unless that
    stream index is listed in ``failing``, or exit 0 without writing anything
    for indices listed in ``silent``.
    """

    def __init__(self, media_info: Optional[Dict[str, Any]]) -> None:
        self.media_info = media_info
        self.probe_returncode = 0
        self.failing: set[int] = set()
        self.silent: set[int] = set()
        self.ffmpeg_calls: List[List[str]] = []
        self.probe_calls: List[List[str]] = []

    def __call__(self, command: List[str], **kwargs: Any) -> MagicMock:
        if Path(command[0]).name.startswith("ffprobe"):
            self.probe_calls.append(command)
            stdout = json.dumps(self.media_info) if self.media_info is not None else "not json"
            return MagicMock(returncode=self.probe_returncode, stdout=stdout, stderr="probe failed")

        self.ffmpeg_calls.append(command)
        index = int(command[command.index("-map") + 1].split(":")[1])
        if index in self.failing:
            return MagicMock(returncode=1, stdout="", stderr="Conversion failed!")
        if index in self.silent:
            return MagicMock(returncode=0, stdout="", stderr="")
        Path(command[-1]).write_text(f"stream {index}")
        return MagicMock(returncode=0, stdout="", stderr="")

    def mapped_indices(self) -> List[int]:
        return [int(call[call.index("-map") + 1].split(":")[1]) for call in self.ffmpeg_calls]


@pytest.fixture
def fake_tools(sample_media_info: Dict[str, Any]) -> Generator[FakeMediaTools, None, None]:
    """Patch subprocess.run with fake ffprobe/ffmpeg executables."""
    tools = FakeMediaTools(sample_media_info)
    with patch("subprocess.run", side_effect=tools):
        yield tools


@pytest.fixture
def make_fake_tools() -> Generator[Callable[[Optional[Dict[str, Any]]], FakeMediaTools], None, None]:
    """Factory variant of ``fake_tools`` for tests that need custom stream tables."""
    patchers = []

    def factory(media_info: Optional[Dict[str, Any]]) -> FakeMediaTools:
        tools = FakeMediaTools(media_info)
        patcher = patch("subprocess.run", side_effect=tools)
        patcher.start()
        patchers.append(patcher)
        return tools

    yield factory
    for patcher in patchers:
        patcher.stop()


@pytest.fixture(autouse=True)
def reset_sse_app_status() -> Generator[None, None, None]:
    """sse-starlette keeps a module-level exit event bound to the first loop."""
    from sse_starlette import sse

    app_status = getattr(sse, "AppStatus", None)
    if app_status is not None and hasattr(app_status, "should_exit_event"):
        app_status.should_exit_event = None
    yield


@pytest.fixture
def api_client(temp_dir: Path) -> Generator[TestClient, None, None]:
    """Create a test client for an app rooted at temp_dir."""
    (temp_dir / "settings.yaml").write_text(
        yaml.safe_dump({"tools": {"ffmpeg": "ffmpeg", "ffprobe": "ffprobe"}})
    )
    app = create_app(temp_dir)
    with TestClient(app) as client:
        yield client

import os
import sys
import tempfile
from pathlib import Path

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# core.config validates on import, so the environment has to be complete first
_base = tempfile.mkdtemp(prefix="infinite-plex-tests-")
TEST_ENV = {
    "LOG_FILE": "",
    "LOG_LEVEL": "DEBUG",
    "RADARR_URL": "http://radarr.test/api/v3",
    "RADARR_API_KEY": "radarr-key",
    "RADARR_MONITOR_TAG_NAME": "infinite",
    "SONARR_URL": "http://sonarr.test/api/v3",
    "SONARR_API_KEY": "sonarr-key",
    "SONARR_MONITOR_TAG_NAME": "infinite",
    "TAUTULLI_URL": "http://tautulli.test/api/v2",
    "TAUTULLI_API_KEY": "tautulli-key",
    "PLEX_URL": "http://plex.test:32400",
    "PLEX_TOKEN": "plex-token",
    "PLEX_MOVIE_LIBRARY_ID": "1",
    "PLEX_SERIES_LIBRARY_ID": "2",
    "DUMMY_FILE_LOCATION": os.path.join(_base, "dummy.mp4"),
    "MOVIE_FOLDER_DUMMY": os.path.join(_base, "dummy", "movies"),
    "SERIES_FOLDER_DUMMY": os.path.join(_base, "dummy", "series"),
    "PLEX_MOVIE_FOLDER": os.path.join(_base, "media", "movies"),
    "PLEX_SERIES_FOLDER": os.path.join(_base, "media", "series"),
}
os.environ.update(TEST_ENV)
for key in ("RADARR_4K_URL", "RADARR_4K_API_KEY", "RADARR_4K_MOVIE_FOLDER", "RADARR_4K_QUALITY_PROFILE_ID"):
    os.environ.pop(key, None)

from core.config import settings  # noqa: E402
from core.registry import RequestRegistry  # noqa: E402


@pytest.fixture
def registry():
    return RequestRegistry()


@pytest.fixture
def media_dirs(tmp_path, monkeypatch):
    """Point every placeholder and media folder at a fresh temporary tree"""
    dummy_source = tmp_path / "source" / "dummy.mp4"
    dummy_source.parent.mkdir()
    dummy_source.write_bytes(b"DUMMY CONTENT")

    dirs = {
        "DUMMY_FILE_LOCATION": str(dummy_source),
        "MOVIE_FOLDER_DUMMY": str(tmp_path / "dummy" / "movies"),
        "SERIES_FOLDER_DUMMY": str(tmp_path / "dummy" / "series"),
        "PLEX_MOVIE_FOLDER": str(tmp_path / "media" / "movies"),
        "PLEX_SERIES_FOLDER": str(tmp_path / "media" / "series"),
    }
    for key, value in dirs.items():
        monkeypatch.setattr(settings, key, value)
    return dirs

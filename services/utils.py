import os
import re
from dataclasses import dataclass
from datetime import datetime
from core.config import settings

# Marker that every placeholder file name ends with
DUMMY_MARKER = "dummy.mp4"

# Tag added to movies mirrored into the 4K Radarr instance
MIRROR_TAG = "infiniteplexlibrary"


@dataclass
class LibraryConfig:
    """Per media kind settings shared by the lifecycle handlers"""
    kind: str  # 'movie' or 'series'
    library_id: int
    tag_name: str
    dummy_root: str
    plex_root: str


def sanitize_filename(name: str) -> str:
    return re.sub(r'[<>:"/\\|?*]', '', name).strip()


def get_arr_config(service: str, is_4k: bool = False) -> dict:
    """Get the *arr connection details for a service and quality"""
    if service == "radarr":
        return {
            "url": settings.RADARR_4K_URL if is_4k else settings.RADARR_URL,
            "api_key": settings.RADARR_4K_API_KEY if is_4k else settings.RADARR_API_KEY,
            "name": "Radarr 4K" if is_4k else "Radarr",
        }
    return {
        "url": settings.SONARR_URL,
        "api_key": settings.SONARR_API_KEY,
        "name": "Sonarr",
    }


def movie_library() -> LibraryConfig:
    return LibraryConfig(
        kind="movie",
        library_id=settings.PLEX_MOVIE_LIBRARY_ID,
        tag_name=settings.RADARR_MONITOR_TAG_NAME,
        dummy_root=settings.MOVIE_FOLDER_DUMMY,
        plex_root=settings.PLEX_MOVIE_FOLDER,
    )


def series_library() -> LibraryConfig:
    return LibraryConfig(
        kind="series",
        library_id=settings.PLEX_SERIES_LIBRARY_ID,
        tag_name=settings.SONARR_MONITOR_TAG_NAME,
        dummy_root=settings.SERIES_FOLDER_DUMMY,
        plex_root=settings.PLEX_SERIES_FOLDER,
    )


def is_dummy_path(file_path: str) -> bool:
    """True when the path points at a placeholder file"""
    if not file_path:
        return False
    return os.path.basename(file_path.rstrip('/\\')).lower().endswith(DUMMY_MARKER)


def season_folder_name(season_number: int) -> str:
    return f"Season {int(season_number):02d}"


def season_dummy_name(series_title: str, season_number: int, episode_count: int) -> str:
    # Multi-episode range so Plex maps the single file onto every episode of the season
    title = sanitize_filename(series_title)
    last = max(int(episode_count), 1)
    return f"{title} - s{int(season_number):02d}e01-e{last:02d} - {DUMMY_MARKER}"


def parse_season_number(file_path: str):
    """Pull the season number out of an sXXeYY file name"""
    m = re.search(r'[sS](\d{1,2})[eE]\d{1,3}', os.path.basename(file_path or ''))
    return int(m.group(1)) if m else None


def timestamp() -> str:
    return datetime.now().strftime("%d-%m-%Y %H:%M")


def tags_contain(tags, tag_name: str, tag_id=None) -> bool:
    """
    Webhook payloads carry tag labels, API objects carry tag ids; accept both.
    """
    for tag in tags or []:
        if isinstance(tag, str) and not tag.isdigit():
            if tag.lower() == tag_name.lower():
                return True
        elif tag_id is not None and int(tag) == int(tag_id):
            return True
    return False

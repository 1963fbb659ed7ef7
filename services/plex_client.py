import threading
import requests
from urllib.parse import quote
from plexapi.server import PlexServer
from core.config import settings
from core.logger import logger
from services.utils import timestamp

_plex = None
_plex_lock = threading.Lock()


def get_plex():
    """Connect to Plex on first use and reuse the connection afterwards"""
    global _plex
    with _plex_lock:
        if _plex is None:
            try:
                _plex = PlexServer(settings.PLEX_URL, settings.PLEX_TOKEN)
                logger.info("Connected to Plex via PlexAPI.", extra={'emoji_type': 'info'})
            except Exception as e:
                logger.error(f"Failed to connect to Plex: {e}", extra={'emoji_type': 'error'})
                return None
        return _plex


def build_plex_url(path: str) -> str:
    """Build a complete Plex URL with proper path handling."""
    base = settings.PLEX_URL.rstrip('/')
    clean_path = path.strip('/')
    url = f"{base}/{clean_path}"
    logger.debug(f"Built Plex URL: {url}", extra={'emoji_type': 'debug'})
    return url


def compose_description(description: str, status: str) -> str:
    """Prepend a timestamped status line to the original description"""
    return f"[{timestamp()}]: {status}\n{description or ''}"


def update_description(rating_key, description: str, status: str) -> bool:
    """
    Show a status line on top of an item's summary in Plex.

    Args:
        rating_key: Plex rating key of the item being played
        description: the item's original summary, kept below the status line
        status: the status text to show
    """
    plex = get_plex()
    if plex is None:
        return False
    try:
        item = plex.fetchItem(int(rating_key))
        item.editSummary(compose_description(description, status))
        logger.info(f"Description updated for Plex ID {rating_key}: {status}", extra={'emoji_type': 'update'})
        return True
    except Exception as e:
        logger.error(f"Error updating the description for Plex ID {rating_key}: {e}", extra={'emoji_type': 'error'})
        return False


def refresh_folder(folder_path: str, library_id: int) -> bool:
    """Ask Plex to scan a single folder of a library section"""
    try:
        url = build_plex_url(f"library/sections/{library_id}/refresh?path={quote(folder_path)}")
        logger.debug(f"Refreshing Plex by path: {folder_path}", extra={'emoji_type': 'debug'})
        response = requests.get(url, headers={'X-Plex-Token': settings.PLEX_TOKEN},
                                timeout=settings.REQUEST_TIMEOUT)
        response.raise_for_status()
        logger.info(f"Plex folder scan started for: {folder_path}", extra={'emoji_type': 'refresh'})
        return True
    except Exception as e:
        logger.error(f"Failed to refresh Plex folder {folder_path}: {e}", extra={'emoji_type': 'error'})
        return False

import requests
from core.config import settings
from core.logger import logger


def _call(cmd: str, **params):
    response = requests.get(settings.TAUTULLI_URL,
                            params={'cmd': cmd, 'apikey': settings.TAUTULLI_API_KEY, **params},
                            timeout=settings.REQUEST_TIMEOUT)
    response.raise_for_status()
    return response.json()


def get_active_sessions():
    """Active Plex sessions as reported by Tautulli; empty list on failure"""
    try:
        data = _call('get_activity')
        return ((data.get('response') or {}).get('data') or {}).get('sessions') or []
    except Exception as e:
        logger.error(f"Error fetching Tautulli activity: {e}", extra={'emoji_type': 'error'})
        return []


def terminate_stream_by_file(file_path: str, message: str = None) -> bool:
    """
    Stop the playback session that has file_path open.
    Returns False when no session matches; that is not an error.
    """
    sessions = get_active_sessions()
    session = next((s for s in sessions if s.get('file') == file_path), None)
    if session is None:
        logger.info(f"No active stream found for file: {file_path}", extra={'emoji_type': 'info'})
        return False

    session_id = session.get('session_id')
    logger.info(f"Active stream found: Session ID {session_id}, File: {file_path}", extra={'emoji_type': 'playback'})
    try:
        _call('terminate_session', session_id=session_id,
              message=message or settings.TAUTULLI_STREAM_TERMINATED_MESSAGE)
        logger.info(f"Stream terminated for file: {file_path}", extra={'emoji_type': 'terminate'})
        return True
    except Exception as e:
        logger.error(f"Error while terminating stream {session_id}: {e}", extra={'emoji_type': 'error'})
        return False

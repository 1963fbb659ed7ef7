import requests
from core.config import settings
from core.logger import logger
from services.utils import get_arr_config, is_dummy_path


def _headers(config):
    return {'X-Api-Key': config['api_key']}


def episode_has_real_file(episode: dict) -> bool:
    if not episode or not episode.get('hasFile'):
        return False
    relative_path = (episode.get('episodeFile') or {}).get('relativePath', '')
    return not is_dummy_path(relative_path)


def get_series(series_id, config=None):
    config = config or get_arr_config('sonarr')
    try:
        response = requests.get(f"{config['url']}/series/{series_id}", headers=_headers(config),
                                timeout=settings.REQUEST_TIMEOUT)
        response.raise_for_status()
        return response.json()
    except Exception as e:
        logger.error(f"Error fetching series {series_id} from Sonarr: {e}", extra={'emoji_type': 'error'})
        return None


def find_series(tvdb_id, config=None):
    """Look a series up by its TVDB id"""
    config = config or get_arr_config('sonarr')
    if not tvdb_id:
        logger.warning("No TVDB id to look up", extra={'emoji_type': 'warning'})
        return None
    try:
        response = requests.get(f"{config['url']}/series", params={'tvdbId': tvdb_id}, headers=_headers(config),
                                timeout=settings.REQUEST_TIMEOUT)
        response.raise_for_status()
        matches = [s for s in response.json() if str(s.get('tvdbId')) == str(tvdb_id)]
        if matches:
            logger.info(f"Series found in Sonarr: {matches[0].get('title')}", extra={'emoji_type': 'success'})
            return matches[0]
        logger.info(f"Series not found in Sonarr for TVDB ID: {tvdb_id}", extra={'emoji_type': 'info'})
        return None
    except Exception as e:
        logger.error(f"Error finding series in Sonarr: {e}", extra={'emoji_type': 'error'})
        return None


def get_episodes(series_id, season_number=None, config=None):
    """
    Episodes of a series, optionally limited to one season.
    Returns None (not an empty list) when Sonarr can't be reached.
    """
    config = config or get_arr_config('sonarr')
    try:
        response = requests.get(f"{config['url']}/episode",
                                params={'seriesId': series_id, 'includeEpisodeFile': 'true'},
                                headers=_headers(config), timeout=settings.REQUEST_TIMEOUT)
        response.raise_for_status()
        episodes = response.json()
        if season_number is not None:
            episodes = [ep for ep in episodes if ep.get('seasonNumber') == int(season_number)]
        logger.debug(f"Retrieved {len(episodes)} episodes for series ID {series_id}", extra={'emoji_type': 'debug'})
        return episodes
    except Exception as e:
        logger.error(f"Error fetching episodes for series ID {series_id}: {e}", extra={'emoji_type': 'error'})
        return None


def group_episodes_by_season(episodes):
    seasons = {}
    for ep in episodes:
        seasons.setdefault(ep.get('seasonNumber', 0), []).append(ep)
    return seasons


def monitor_series(series_id, include_specials=False, config=None) -> bool:
    """Mark the series and all of its seasons monitored; specials only on request"""
    config = config or get_arr_config('sonarr')
    series = get_series(series_id, config)
    if series is None:
        return False
    try:
        series['monitored'] = True
        for season in series.get('seasons', []):
            season_number = season.get('seasonNumber', -1)
            if season_number > 0 or (season_number == 0 and include_specials):
                season['monitored'] = True

        response = requests.put(f"{config['url']}/series/{series_id}", json=series, headers=_headers(config),
                                timeout=settings.REQUEST_TIMEOUT)
        response.raise_for_status()

        log_message = f"Marked series '{series.get('title')}' as monitored with all seasons"
        if not include_specials:
            log_message += " (except specials)"
        logger.info(log_message, extra={'emoji_type': 'monitored'})
        return True
    except Exception as e:
        logger.error(f"Failed to mark series as monitored: {e}", extra={'emoji_type': 'error'})
        return False


def trigger_search(series_id, season_number=None, series_title="Unknown Series", config=None) -> bool:
    """Season search when a season is given, otherwise a search for the whole series"""
    config = config or get_arr_config('sonarr')
    if season_number is not None:
        data = {'name': 'SeasonSearch', 'seriesId': int(series_id), 'seasonNumber': int(season_number)}
        log_message = f"Triggered season search for {series_title} S{int(season_number):02d}"
    else:
        data = {'name': 'SeriesSearch', 'seriesId': int(series_id)}
        log_message = f"Triggered series search for {series_title}"
    try:
        response = requests.post(f"{config['url']}/command", json=data, headers=_headers(config),
                                 timeout=settings.REQUEST_TIMEOUT)
        response.raise_for_status()
        logger.info(log_message, extra={'emoji_type': 'search'})
        return True
    except Exception as e:
        logger.error(f"Sonarr search failed: {e}", extra={'emoji_type': 'error'})
        return False


def get_queued_episode_ids(series_id, config=None):
    """Episode ids of a series currently in Sonarr's download queue"""
    config = config or get_arr_config('sonarr')
    try:
        response = requests.get(f"{config['url']}/queue", params={'pageSize': 200}, headers=_headers(config),
                                timeout=settings.REQUEST_TIMEOUT)
        response.raise_for_status()
        records = response.json().get('records', [])
        return {r.get('episodeId') for r in records if r.get('seriesId') == int(series_id)}
    except Exception as e:
        logger.error(f"Error fetching Sonarr queue: {e}", extra={'emoji_type': 'error'})
        return set()


def get_tag_id(tag_name, config=None):
    config = config or get_arr_config('sonarr')
    try:
        response = requests.get(f"{config['url']}/tag", headers=_headers(config), timeout=settings.REQUEST_TIMEOUT)
        response.raise_for_status()
        tag = next((t for t in response.json() if t.get('label', '').lower() == tag_name.lower()), None)
        return tag['id'] if tag else None
    except Exception as e:
        logger.error(f"Error fetching tags from Sonarr: {e}", extra={'emoji_type': 'error'})
        return None


def get_series_ids_by_tag(tag_id, config=None):
    config = config or get_arr_config('sonarr')
    try:
        response = requests.get(f"{config['url']}/tag/detail/{tag_id}", headers=_headers(config),
                                timeout=settings.REQUEST_TIMEOUT)
        response.raise_for_status()
        return response.json().get('seriesIds', [])
    except Exception as e:
        logger.error(f"Error fetching series by tag ID {tag_id}: {e}", extra={'emoji_type': 'error'})
        return []

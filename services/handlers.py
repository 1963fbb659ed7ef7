import os
import threading
from fastapi.responses import JSONResponse
from core.config import settings
from core.logger import logger
from core.registry import RequestRegistry, active_requests
from services import plex_client, radarr, sonarr
from services.monitor import MonitorRequest, MovieMonitor, SeasonMonitor, start_monitor
from services.placeholders import (
    cleanup_movie_placeholder, cleanup_season_placeholder,
    provision_movie_placeholder, provision_season_placeholder,
)
from services.utils import (
    MIRROR_TAG, LibraryConfig, get_arr_config, is_dummy_path, movie_library,
    parse_season_number, series_library, tags_contain,
)

MOVIE_REQUESTED_STATUS = "The movie is being requested. Please wait a few moments while it becomes available."

PLAYBACK_MEDIA_TYPES = ('movie', 'show', 'season', 'episode')


def _response(status: str, message: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse({"status": status, "message": message}, status_code=status_code)


def is_tagged(item: dict, library: LibraryConfig, get_tag_id) -> bool:
    """
    Check the item against the library's monitor tag. Labels are compared
    directly; numeric tag ids need one lookup of the tag's id.
    """
    tags = item.get('tags') or []
    if tags_contain(tags, library.tag_name):
        return True
    if any(isinstance(t, int) or (isinstance(t, str) and t.isdigit()) for t in tags):
        tag_id = get_tag_id(library.tag_name)
        return tag_id is not None and tags_contain(tags, library.tag_name, tag_id)
    return False


def _season_from_payload(data: dict):
    season_num = data.get('season_num')
    try:
        if season_num not in (None, ''):
            return int(season_num)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring unparsable season number: {season_num}", extra={'emoji_type': 'debug'})
    return parse_season_number(data.get('file', ''))


def handle_playback_webhook(data: dict, registry: RequestRegistry = active_requests):
    """Entry point for Tautulli notifications"""
    event = (data.get('event') or '').lower()
    media_type = (data.get('media_type') or '').lower()
    logger.info(f"Received webhook event: {event or 'unknown'} ({media_type or 'no media type'})",
                extra={'emoji_type': 'webhook'})
    logger.debug(f"Tautulli payload: {data}", extra={'emoji_type': 'debug'})

    if event != 'playback.start':
        return _response("ignored", f"Event {event or 'unknown'} ignored")
    if media_type not in PLAYBACK_MEDIA_TYPES:
        return _response("ignored", f"Unsupported media type: {media_type or 'unknown'}")
    if not data.get('rating_key'):
        logger.warning("Playback event without rating_key, nothing to track", extra={'emoji_type': 'warning'})
        return _response("ignored", "Missing rating_key")

    try:
        if media_type == 'movie':
            return handle_movie_playback(data, registry)
        return handle_episode_playback(data, registry)
    except Exception as e:
        logger.error(f"Error handling playback for rating key {data.get('rating_key')}: {e}",
                     extra={'emoji_type': 'error'})
        return _response("error", str(e), status_code=500)


def handle_movie_playback(data: dict, registry: RequestRegistry = active_requests):
    rating_key = str(data['rating_key'])
    movie = radarr.find_movie(data.get('imdb_id'), data.get('tmdb_id'))
    if movie is None:
        return _response("ignored", "Movie not found in Radarr")
    if radarr.movie_has_real_file(movie):
        logger.info(f"\"{movie.get('title')}\" is already available", extra={'emoji_type': 'skip'})
        return _response("ignored", "Movie is already available")

    if not registry.try_acquire(rating_key):
        return _response("ignored", "Request already in progress.")

    started = False
    try:
        request = MonitorRequest(
            entity_key=rating_key,
            target_id=movie['id'],
            original_file_path=data.get('file', ''),
            description_text=movie.get('overview', ''),
            title=movie.get('title', f"movie {movie['id']}"),
            max_attempts=settings.MAX_MONITOR_ATTEMPTS,
        )
        plex_client.update_description(rating_key, request.description_text, MOVIE_REQUESTED_STATUS)
        radarr.search_movie(movie['id'])
        start_monitor(MovieMonitor(request), registry)
        started = True
    finally:
        if not started:
            registry.release(rating_key)
    return _response("success", f"Search triggered for {request.title}")


def handle_episode_playback(data: dict, registry: RequestRegistry = active_requests):
    rating_key = str(data['rating_key'])
    file_path = data.get('file', '')
    if not is_dummy_path(file_path):
        logger.debug(f"Not a placeholder, nothing to request: {file_path}", extra={'emoji_type': 'skip'})
        return _response("ignored", "Not a placeholder file")

    season_number = _season_from_payload(data)
    if season_number is None:
        logger.warning(f"Could not determine the season of {file_path}", extra={'emoji_type': 'warning'})
        return _response("ignored", "Could not determine season")

    series = sonarr.find_series(data.get('thetvdb_id'))
    if series is None:
        return _response("ignored", "Series not found in Sonarr")

    if not registry.try_acquire(rating_key):
        return _response("ignored", "Request already in progress.")

    series_id = series['id']
    series_title = series.get('title', f"series {series_id}")
    started = False
    try:
        sonarr.monitor_series(series_id)
        sonarr.trigger_search(series_id, season_number, series_title)
        request = MonitorRequest(
            entity_key=rating_key,
            target_id=(series_id, season_number),
            original_file_path=file_path,
            description_text=series.get('overview', ''),
            title=f"{series_title} S{season_number:02d}",
            max_attempts=settings.MAX_MONITOR_ATTEMPTS,
        )
        plex_client.update_description(
            rating_key, request.description_text,
            f"Season {season_number} is being requested. Please wait a few moments while it becomes available.",
        )
        start_monitor(SeasonMonitor(request), registry)
        started = True
    finally:
        if not started:
            registry.release(rating_key)

    # The rest of the series is fetched in the background
    sonarr.trigger_search(series_id, series_title=series_title)
    return _response("success", f"Search triggered for {request.title}")


def handle_radarr_webhook(data: dict):
    event_type = data.get('eventType', '')
    movie = data.get('movie') or {}
    folder_path = movie.get('folderPath')
    logger.info(f"Received Radarr event: {event_type or 'unknown'} for {movie.get('title', 'unknown movie')}",
                extra={'emoji_type': 'webhook'})

    if event_type in ('MovieAdded', 'MovieAdd') and folder_path:
        return handle_movie_added(movie)
    if event_type == 'Download' and folder_path:
        return handle_movie_download(movie)
    return _response("ignored", "Invalid event")


def handle_movie_added(movie: dict):
    library = movie_library()
    if not is_tagged(movie, library, radarr.get_tag_id):
        logger.info(f"\"{movie.get('title')}\" is not tagged with {library.tag_name}, skipping",
                    extra={'emoji_type': 'skip'})
        return _response("ignored", f"Movie is not tagged with {library.tag_name}")
    try:
        plex_folder = provision_movie_placeholder(movie['folderPath'], library)
    except OSError as e:
        return _response("error", f"Failed to create placeholder: {e}", status_code=500)
    plex_client.refresh_folder(plex_folder, library.library_id)
    return _response("success", "Placeholder created and Plex folder scan requested.")


def handle_movie_download(movie: dict):
    library = movie_library()
    folder_path = movie['folderPath']
    landed = cleanup_movie_placeholder(folder_path, library)
    if settings.has_4k_support:
        spawn_4k_mirror(movie)

    name = os.path.basename(folder_path.rstrip('/\\'))
    plex_client.refresh_folder(os.path.join(library.plex_root, name), library.library_id)
    message = "Placeholder removed" if landed else "Placeholder kept, no real file found"
    return _response("success", f"{message}. Plex folder scan requested.")


def mirror_movie_to_4k(movie: dict):
    """Make sure the movie also exists in the 4K Radarr instance"""
    config = get_arr_config('radarr', is_4k=True)
    tmdb_id = movie.get('tmdbId')
    title = movie.get('title', f"TMDb {tmdb_id}")
    try:
        exists, existing = radarr.check_movie_in_radarr(tmdb_id, config)
        if exists:
            logger.info(f"\"{title}\" already exists in {config['name']}", extra={'emoji_type': 'skip'})
            if not radarr.movie_has_real_file(existing):
                radarr.search_movie(existing['id'], config)
            return existing
        added = radarr.add_movie(
            tmdb_id,
            root_folder_path=settings.RADARR_4K_MOVIE_FOLDER,
            quality_profile_id=settings.RADARR_4K_QUALITY_PROFILE_ID,
            monitored=True,
            search_for_movie=True,
            tags=[MIRROR_TAG],
            config=config,
        )
        logger.info(f"\"{title}\" added to {config['name']}", extra={'emoji_type': 'downloading'})
        return added
    except Exception as e:
        logger.error(f"Failed to mirror \"{title}\" to {config['name']}: {e}", extra={'emoji_type': 'error'})
        return None


def spawn_4k_mirror(movie: dict) -> threading.Thread:
    thread = threading.Thread(target=mirror_movie_to_4k, args=(movie,),
                              name=f"mirror-4k-{movie.get('tmdbId')}", daemon=True)
    thread.start()
    return thread


def handle_sonarr_webhook(data: dict):
    event_type = data.get('eventType', '')
    series = data.get('series') or {}
    logger.info(f"Received Sonarr event: {event_type or 'unknown'} for {series.get('title', 'unknown series')}",
                extra={'emoji_type': 'webhook'})

    if event_type == 'SeriesAdd' and series.get('path'):
        return handle_series_added(series)
    if event_type == 'Download' and series.get('path'):
        return handle_episode_download(series, data.get('episodes') or [], data.get('episodeFile') or {})
    return _response("ignored", "Invalid event")


def handle_series_added(series: dict):
    library = series_library()
    if not is_tagged(series, library, sonarr.get_tag_id):
        logger.info(f"\"{series.get('title')}\" is not tagged with {library.tag_name}, skipping",
                    extra={'emoji_type': 'skip'})
        return _response("ignored", f"Series is not tagged with {library.tag_name}")

    episodes = sonarr.get_episodes(series['id'])
    if episodes is None:
        return _response("error", "Could not fetch episodes from Sonarr")

    seasons = sonarr.group_episodes_by_season(episodes)
    created = 0
    try:
        for season_number, season_episodes in sorted(seasons.items()):
            if season_number == 0:
                continue
            provision_season_placeholder(series['path'], series.get('title', ''), season_number,
                                         len(season_episodes), library)
            created += 1
    except OSError as e:
        return _response("error", f"Failed to create placeholder: {e}", status_code=500)

    name = os.path.basename(series['path'].rstrip('/\\'))
    plex_client.refresh_folder(os.path.join(library.plex_root, name), library.library_id)
    logger.info(f"Created {created} season placeholder(s) for {series.get('title')}", extra={'emoji_type': 'tv'})
    return _response("success", f"Created {created} season placeholder(s). Plex folder scan requested.")


def handle_episode_download(series: dict, episodes: list, episode_file: dict):
    library = series_library()
    series_path = series['path']
    import_folder = None
    if episode_file.get('relativePath'):
        import_folder = os.path.dirname(os.path.join(series_path, episode_file['relativePath']))

    season_numbers = {ep.get('seasonNumber') for ep in episodes if ep.get('seasonNumber') is not None}
    if not season_numbers and episode_file.get('seasonNumber') is not None:
        season_numbers = {episode_file['seasonNumber']}
    if not season_numbers:
        return _response("ignored", "No season information in payload")

    name = os.path.basename(series_path.rstrip('/\\'))
    landed = False
    for season_number in sorted(season_numbers):
        landed = cleanup_season_placeholder(series_path, season_number, library, import_folder) or landed
    # Scan the whole series folder; the import may not sit in the placeholder's season folder
    plex_client.refresh_folder(os.path.join(library.plex_root, name), library.library_id)
    message = "Placeholder removed" if landed else "Placeholder kept, no real file found"
    return _response("success", f"{message}. Plex folder scan requested.")

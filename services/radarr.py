import requests
from core.config import settings
from core.logger import logger
from services.utils import get_arr_config, is_dummy_path


def _headers(config):
    return {'X-Api-Key': config['api_key']}


def movie_has_real_file(movie: dict) -> bool:
    """A movie is available once Radarr reports a file that is not our placeholder"""
    if not movie or not movie.get('hasFile'):
        return False
    relative_path = (movie.get('movieFile') or {}).get('relativePath', '')
    return not is_dummy_path(relative_path)


def movie_has_dummy_file(movie: dict) -> bool:
    relative_path = ((movie or {}).get('movieFile') or {}).get('relativePath', '')
    return is_dummy_path(relative_path)


def get_movie(movie_id, config=None):
    """Fetch a movie by its Radarr id; None when Radarr can't be reached"""
    config = config or get_arr_config('radarr')
    try:
        response = requests.get(f"{config['url']}/movie/{movie_id}", headers=_headers(config),
                                timeout=settings.REQUEST_TIMEOUT)
        response.raise_for_status()
        return response.json()
    except Exception as e:
        logger.error(f"Error fetching movie {movie_id} from {config['name']}: {e}", extra={'emoji_type': 'error'})
        return None


def find_movie(imdb_id=None, tmdb_id=None, config=None):
    """Look a movie up by IMDb id, falling back to TMDb id"""
    config = config or get_arr_config('radarr')
    if not imdb_id and not tmdb_id:
        logger.warning("No IMDb or TMDb id to look up", extra={'emoji_type': 'warning'})
        return None
    try:
        params = {'tmdbId': tmdb_id} if tmdb_id and not imdb_id else None
        response = requests.get(f"{config['url']}/movie", params=params, headers=_headers(config),
                                timeout=settings.REQUEST_TIMEOUT)
        response.raise_for_status()
        movies = response.json()
        if not isinstance(movies, list):
            logger.error(f"Expected list from {config['name']} /movie endpoint but got {type(movies)}",
                         extra={'emoji_type': 'error'})
            return None

        movie = None
        if imdb_id:
            movie = next((m for m in movies if m.get('imdbId') == imdb_id), None)
        if movie is None and tmdb_id:
            movie = next((m for m in movies if str(m.get('tmdbId')) == str(tmdb_id)), None)

        if movie:
            logger.info(f"Movie found in {config['name']}: {movie.get('title')}", extra={'emoji_type': 'success'})
        else:
            logger.info(f"Movie not found in {config['name']} (IMDb: {imdb_id}, TMDb: {tmdb_id})",
                        extra={'emoji_type': 'info'})
        return movie
    except Exception as e:
        logger.error(f"Error looking up movie in {config['name']}: {e}", extra={'emoji_type': 'error'})
        return None


def check_movie_in_radarr(tmdb_id, config=None):
    """Returns (exists, movie) for a TMDb id"""
    config = config or get_arr_config('radarr')
    try:
        response = requests.get(f"{config['url']}/movie", params={'tmdbId': tmdb_id}, headers=_headers(config),
                                timeout=settings.REQUEST_TIMEOUT)
        response.raise_for_status()
        movies = response.json()
        if movies:
            logger.info(f"Movie found in {config['name']}: {movies[0].get('title')}", extra={'emoji_type': 'success'})
            return True, movies[0]
        logger.info(f"Movie not found in {config['name']} for TMDb ID: {tmdb_id}", extra={'emoji_type': 'info'})
        return False, None
    except Exception as e:
        logger.error(f"Error fetching movies from {config['name']}: {e}", extra={'emoji_type': 'error'})
        return False, None


def set_movie_monitored(movie: dict, config=None) -> bool:
    config = config or get_arr_config('radarr')
    if movie.get('monitored'):
        logger.debug(f"Movie \"{movie.get('title')}\" is already monitored", extra={'emoji_type': 'debug'})
        return True
    try:
        updated = {**movie, 'monitored': True}
        response = requests.put(f"{config['url']}/movie/{movie['id']}", json=updated, headers=_headers(config),
                                timeout=settings.REQUEST_TIMEOUT)
        response.raise_for_status()
        logger.info(f"Movie \"{movie.get('title')}\" is now monitored", extra={'emoji_type': 'monitored'})
        return True
    except Exception as e:
        logger.error(f"Failed to mark movie {movie.get('id')} as monitored: {e}", extra={'emoji_type': 'error'})
        return False


def search_movie(movie_id, config=None) -> bool:
    """Mark the movie monitored and send a single MoviesSearch command"""
    config = config or get_arr_config('radarr')
    movie = get_movie(movie_id, config)
    if movie is None:
        return False
    set_movie_monitored(movie, config)
    try:
        response = requests.post(f"{config['url']}/command",
                                 json={'name': 'MoviesSearch', 'movieIds': [int(movie_id)]},
                                 headers=_headers(config), timeout=settings.REQUEST_TIMEOUT)
        response.raise_for_status()
        logger.info(f"Triggered search for \"{movie.get('title')}\" (ID: {movie_id})", extra={'emoji_type': 'search'})
        return True
    except Exception as e:
        logger.error(f"Radarr search failed for movie {movie_id}: {e}", extra={'emoji_type': 'error'})
        return False


def is_movie_downloading(movie_id, config=None) -> bool:
    """True when the movie sits in Radarr's download queue"""
    config = config or get_arr_config('radarr')
    try:
        response = requests.get(f"{config['url']}/queue", params={'pageSize': 200}, headers=_headers(config),
                                timeout=settings.REQUEST_TIMEOUT)
        response.raise_for_status()
        records = response.json().get('records', [])
        item = next((r for r in records if r.get('movieId') == int(movie_id)), None)
        if item:
            logger.info(f"Movie \"{item.get('title')}\" is downloading, {item.get('sizeleft')} bytes left",
                        extra={'emoji_type': 'downloading'})
            return True
        return False
    except Exception as e:
        logger.error(f"Error checking {config['name']} download queue: {e}", extra={'emoji_type': 'error'})
        return False


def get_tag_id(tag_name, config=None):
    config = config or get_arr_config('radarr')
    try:
        response = requests.get(f"{config['url']}/tag", headers=_headers(config), timeout=settings.REQUEST_TIMEOUT)
        response.raise_for_status()
        tag = next((t for t in response.json() if t.get('label', '').lower() == tag_name.lower()), None)
        return tag['id'] if tag else None
    except Exception as e:
        logger.error(f"Error fetching tags from {config['name']}: {e}", extra={'emoji_type': 'error'})
        return None


def get_movie_ids_by_tag(tag_id, config=None):
    config = config or get_arr_config('radarr')
    try:
        response = requests.get(f"{config['url']}/tag/detail/{tag_id}", headers=_headers(config),
                                timeout=settings.REQUEST_TIMEOUT)
        response.raise_for_status()
        return response.json().get('movieIds', [])
    except Exception as e:
        logger.error(f"Error fetching movies by tag ID {tag_id}: {e}", extra={'emoji_type': 'error'})
        return []


def add_movie(tmdb_id, root_folder_path, quality_profile_id, monitored=False, search_for_movie=False,
              tags=None, config=None) -> dict:
    """
    Add a movie by TMDb id. Tag labels that don't exist in Radarr are skipped.
    Raises on failure so callers can decide how to report it.
    """
    config = config or get_arr_config('radarr')
    tag_ids = []
    for label in tags or []:
        tag_id = get_tag_id(label, config)
        if tag_id is None:
            logger.warning(f"Tag not found in {config['name']}: {label}", extra={'emoji_type': 'warning'})
        else:
            tag_ids.append(tag_id)

    lookup = requests.get(f"{config['url']}/movie/lookup/tmdb", params={'tmdbId': int(tmdb_id)},
                          headers=_headers(config), timeout=settings.REQUEST_TIMEOUT)
    lookup.raise_for_status()
    movie_data = lookup.json() or {}

    payload = {
        **movie_data,
        'tmdbId': int(tmdb_id),
        'rootFolderPath': root_folder_path,
        'qualityProfileId': int(quality_profile_id),
        'monitored': monitored,
        'tags': tag_ids,
        'addOptions': {'searchForMovie': search_for_movie},
    }
    response = requests.post(f"{config['url']}/movie", json=payload, headers=_headers(config),
                             timeout=settings.REQUEST_TIMEOUT)
    response.raise_for_status()
    added = response.json()
    logger.info(f"Added movie to {config['name']}: {added.get('title')}", extra={'emoji_type': 'success'})
    return added

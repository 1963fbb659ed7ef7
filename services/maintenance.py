"""
Periodic maintenance for tagged libraries.

Walks every Radarr movie and Sonarr series carrying the monitor tag: items
whose real files are present get their placeholders cleaned up, the others
get their placeholder recreated. Meant to be run from cron:

    python -m services.maintenance
"""
from core.logger import logger
from services import radarr, sonarr
from services.placeholders import (
    cleanup_movie_placeholder, cleanup_season_placeholder,
    provision_movie_placeholder, provision_season_placeholder,
)
from services.utils import movie_library, series_library


def movie_maintenance() -> dict:
    library = movie_library()
    summary = {'cleaned': 0, 'provisioned': 0, 'failed': 0}

    tag_id = radarr.get_tag_id(library.tag_name)
    if tag_id is None:
        logger.error(f"Tag \"{library.tag_name}\" not found in Radarr, skipping movies", extra={'emoji_type': 'error'})
        return summary

    movie_ids = radarr.get_movie_ids_by_tag(tag_id)
    logger.info(f"Found {len(movie_ids)} movies with the \"{library.tag_name}\" tag", extra={'emoji_type': 'maintenance'})

    for movie_id in movie_ids:
        movie = radarr.get_movie(movie_id)
        if movie is None or not movie.get('path'):
            logger.warning(f"Unable to retrieve movie ID {movie_id}", extra={'emoji_type': 'warning'})
            summary['failed'] += 1
            continue
        try:
            if radarr.movie_has_real_file(movie):
                logger.info(f"\"{movie.get('title')}\" is downloaded, cleaning up placeholder",
                            extra={'emoji_type': 'cleanup'})
                cleanup_movie_placeholder(movie['path'], library)
                summary['cleaned'] += 1
            else:
                logger.info(f"\"{movie.get('title')}\" is not downloaded, ensuring placeholder exists",
                            extra={'emoji_type': 'placeholder'})
                provision_movie_placeholder(movie['path'], library)
                summary['provisioned'] += 1
        except OSError as e:
            logger.error(f"Maintenance failed for \"{movie.get('title')}\": {e}", extra={'emoji_type': 'error'})
            summary['failed'] += 1

    logger.info(f"Movie maintenance completed: {summary}", extra={'emoji_type': 'success'})
    return summary


def series_maintenance() -> dict:
    library = series_library()
    summary = {'cleaned': 0, 'provisioned': 0, 'failed': 0}

    tag_id = sonarr.get_tag_id(library.tag_name)
    if tag_id is None:
        logger.error(f"Tag \"{library.tag_name}\" not found in Sonarr, skipping series", extra={'emoji_type': 'error'})
        return summary

    series_ids = sonarr.get_series_ids_by_tag(tag_id)
    logger.info(f"Found {len(series_ids)} series with the \"{library.tag_name}\" tag", extra={'emoji_type': 'maintenance'})

    for series_id in series_ids:
        series = sonarr.get_series(series_id)
        episodes = sonarr.get_episodes(series_id) if series else None
        if not series or not series.get('path') or episodes is None:
            logger.warning(f"Unable to retrieve series ID {series_id}", extra={'emoji_type': 'warning'})
            summary['failed'] += 1
            continue

        for season_number, season_episodes in sorted(sonarr.group_episodes_by_season(episodes).items()):
            if season_number == 0:
                continue
            try:
                if all(sonarr.episode_has_real_file(ep) for ep in season_episodes):
                    cleanup_season_placeholder(series['path'], season_number, library)
                    summary['cleaned'] += 1
                else:
                    provision_season_placeholder(series['path'], series.get('title', ''), season_number,
                                                 len(season_episodes), library)
                    summary['provisioned'] += 1
            except OSError as e:
                logger.error(f"Maintenance failed for {series.get('title')} season {season_number}: {e}",
                             extra={'emoji_type': 'error'})
                summary['failed'] += 1

    logger.info(f"Series maintenance completed: {summary}", extra={'emoji_type': 'success'})
    return summary


def run_maintenance():
    return {'movies': movie_maintenance(), 'series': series_maintenance()}


if __name__ == '__main__':
    run_maintenance()

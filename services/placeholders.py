import os
import shutil
from core.config import settings
from core.logger import logger
from services.utils import DUMMY_MARKER, LibraryConfig, is_dummy_path, season_dummy_name, season_folder_name


def ensure_directory_exists(directory: str):
    """Create the directory tree if needed. Raises on failure."""
    if os.path.isdir(directory):
        logger.debug(f"Directory already exists: {directory}", extra={'emoji_type': 'debug'})
        return
    try:
        os.makedirs(directory, mode=0o777, exist_ok=True)
        logger.info(f"Created directory: {directory}", extra={'emoji_type': 'dummy'})
    except OSError as e:
        logger.error(f"Error creating directory {directory}: {e}", extra={'emoji_type': 'error'})
        raise


def create_dummy_file(source: str, target: str):
    """
    Copy the dummy file into place. A full copy is required: Plex folds
    hard links and symlinks to the same inode into a single item.
    Raises on failure.
    """
    if os.path.exists(target):
        logger.debug(f"Dummy file already exists: {target}", extra={'emoji_type': 'debug'})
        return
    try:
        shutil.copyfile(source, target)
        logger.info(f"Created dummy file: {target}", extra={'emoji_type': 'dummy'})
    except OSError as e:
        logger.error(f"Error creating dummy file {target}: {e}", extra={'emoji_type': 'error'})
        raise


def create_symlink(source: str, target: str):
    """Expose a dummy copy inside the media tree. Raises on failure."""
    if os.path.lexists(target):
        logger.debug(f"Symlink already exists: {target}", extra={'emoji_type': 'debug'})
        return
    try:
        os.symlink(source, target)
        logger.info(f"Symlink created: {target} -> {source}", extra={'emoji_type': 'placeholder'})
    except OSError as e:
        logger.error(f"Error creating symlink {target}: {e}", extra={'emoji_type': 'error'})
        raise


def clean_up_dummy_file(directory: str) -> bool:
    """
    Remove placeholder files from a media folder once a real file sits next to them.

    Returns True when the folder holds at least one non-placeholder file,
    i.e. the real import has landed. Placeholders are left untouched otherwise.
    """
    try:
        entries = os.listdir(directory)
    except FileNotFoundError:
        logger.info(f"Folder does not exist, nothing to clean: {directory}", extra={'emoji_type': 'info'})
        return False
    except OSError as e:
        logger.error(f"Error reading folder {directory}: {e}", extra={'emoji_type': 'error'})
        return False

    dummies = [name for name in entries if is_dummy_path(name)]
    if len(dummies) == len(entries):
        logger.info(f"No other files found in {directory}, placeholder will remain", extra={'emoji_type': 'info'})
        return False

    if not dummies:
        logger.debug(f"No placeholder left in {directory}", extra={'emoji_type': 'debug'})
    for name in dummies:
        _remove_placeholder(os.path.join(directory, name))
    return True


def remove_dummy_folder(directory: str) -> bool:
    """Remove a placeholder storage folder; a missing folder is not an error"""
    if not os.path.exists(directory):
        logger.info(f"Dummy folder does not exist, no action needed: {directory}", extra={'emoji_type': 'info'})
        return False
    try:
        shutil.rmtree(directory)
        logger.info(f"Removed dummy folder: {directory}", extra={'emoji_type': 'cleanup'})
        return True
    except OSError as e:
        logger.error(f"Error removing dummy folder {directory}: {e}", extra={'emoji_type': 'error'})
        return False


def provision_movie_placeholder(folder_path: str, library: LibraryConfig) -> str:
    """
    Create the dummy copy for a movie and link it into the media tree.
    Returns the folder Plex should rescan. Raises on filesystem failure.
    """
    name = os.path.basename(folder_path.rstrip('/\\'))
    dummy_folder = os.path.join(library.dummy_root, name)
    plex_folder = os.path.join(library.plex_root, name)

    ensure_directory_exists(dummy_folder)
    ensure_directory_exists(folder_path)
    ensure_directory_exists(plex_folder)

    dummy_file = os.path.join(dummy_folder, DUMMY_MARKER)
    create_dummy_file(settings.DUMMY_FILE_LOCATION, dummy_file)
    create_symlink(dummy_file, os.path.join(plex_folder, DUMMY_MARKER))
    logger.info(f"Placeholder ready for {library.kind} {name}", extra={'emoji_type': 'placeholder'})
    return plex_folder


def provision_season_placeholder(series_path: str, series_title: str, season_number: int,
                                 episode_count: int, library: LibraryConfig) -> str:
    """
    Same as provision_movie_placeholder, for one season of a series.
    Returns the season folder inside the media tree.
    """
    name = os.path.basename(series_path.rstrip('/\\'))
    season_folder = season_folder_name(season_number)
    dummy_folder = os.path.join(library.dummy_root, name, season_folder)
    plex_folder = os.path.join(library.plex_root, name, season_folder)

    ensure_directory_exists(dummy_folder)
    ensure_directory_exists(plex_folder)

    file_name = season_dummy_name(series_title, season_number, episode_count)
    dummy_file = os.path.join(dummy_folder, file_name)
    create_dummy_file(settings.DUMMY_FILE_LOCATION, dummy_file)
    create_symlink(dummy_file, os.path.join(plex_folder, file_name))
    logger.info(f"Placeholder ready for {library.kind} {name} {season_folder}", extra={'emoji_type': 'tv'})
    return plex_folder


def cleanup_movie_placeholder(folder_path: str, library: LibraryConfig) -> bool:
    """Drop the movie's placeholder and its storage folder once the real file landed"""
    name = os.path.basename(folder_path.rstrip('/\\'))
    landed = clean_up_dummy_file(folder_path)
    if landed:
        remove_dummy_folder(os.path.join(library.dummy_root, name))
    return landed


def has_real_file(directory: str) -> bool:
    try:
        return any(not is_dummy_path(name) for name in os.listdir(directory))
    except OSError:
        return False


def cleanup_season_placeholder(series_path: str, season_number: int, library: LibraryConfig,
                               import_folder: str = None) -> bool:
    """
    Same as cleanup_movie_placeholder for one season of a series.

    The placeholder always lives in "Season NN"; Sonarr may import into a
    differently named season folder, given as import_folder.
    """
    name = os.path.basename(series_path.rstrip('/\\'))
    season_folder = season_folder_name(season_number)
    placeholder_folder = os.path.join(series_path, season_folder)
    import_folder = import_folder or placeholder_folder

    if os.path.normpath(import_folder) == os.path.normpath(placeholder_folder):
        landed = clean_up_dummy_file(placeholder_folder)
    else:
        landed = has_real_file(import_folder)
        if landed:
            for entry in _list_dummies(placeholder_folder):
                _remove_placeholder(os.path.join(placeholder_folder, entry))

    if landed:
        remove_dummy_folder(os.path.join(library.dummy_root, name, season_folder))
    return landed


def _list_dummies(directory: str):
    try:
        return [name for name in os.listdir(directory) if is_dummy_path(name)]
    except OSError:
        return []


def _remove_placeholder(path: str):
    try:
        os.unlink(path)
        logger.info(f"Removed placeholder: {path}", extra={'emoji_type': 'delete'})
    except FileNotFoundError:
        logger.debug(f"Placeholder already gone: {path}", extra={'emoji_type': 'debug'})
    except OSError as e:
        logger.error(f"Error removing placeholder {path}: {e}", extra={'emoji_type': 'error'})

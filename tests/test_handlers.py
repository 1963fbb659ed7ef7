import json
import os
from unittest.mock import MagicMock, patch

import pytest

from core.config import settings
from services.handlers import (
    handle_playback_webhook, handle_radarr_webhook, handle_sonarr_webhook, mirror_movie_to_4k,
)
from services.utils import MIRROR_TAG

PLAYBACK_MOVIE = {
    "event": "playback.start",
    "media_type": "movie",
    "rating_key": "1001",
    "imdb_id": "tt1234567",
    "tmdb_id": "1234",
    "file": "/media/movies/Test Movie (2023)/dummy.mp4",
}

PLAYBACK_EPISODE = {
    "event": "playback.start",
    "media_type": "episode",
    "rating_key": "2002",
    "thetvdb_id": "999",
    "season_num": "2",
    "file": "/media/series/Show (2020)/Season 02/Show - s02e01-e10 - dummy.mp4",
}

RADARR_MOVIE = {'id': 7, 'title': 'Test Movie', 'overview': 'A test movie.', 'hasFile': True,
                'movieFile': {'relativePath': 'dummy.mp4'}}
SONARR_SERIES = {'id': 3, 'title': 'Show', 'overview': 'A show.', 'path': '/tv/Show (2020)'}


def body(response):
    return json.loads(response.body)


@pytest.fixture
def movie_playback_mocks():
    with patch('services.radarr.find_movie', return_value=RADARR_MOVIE) as find_movie, \
            patch('services.radarr.search_movie', return_value=True) as search_movie, \
            patch('services.plex_client.update_description') as update, \
            patch('services.handlers.start_monitor') as start_monitor:
        yield MagicMock(find_movie=find_movie, search_movie=search_movie, update=update,
                        start_monitor=start_monitor)


@pytest.fixture
def episode_playback_mocks():
    with patch('services.sonarr.find_series', return_value=SONARR_SERIES) as find_series, \
            patch('services.sonarr.monitor_series', return_value=True) as monitor_series, \
            patch('services.sonarr.trigger_search', return_value=True) as trigger_search, \
            patch('services.plex_client.update_description') as update, \
            patch('services.handlers.start_monitor') as start_monitor:
        yield MagicMock(find_series=find_series, monitor_series=monitor_series, trigger_search=trigger_search,
                        update=update, start_monitor=start_monitor)


def test_non_playback_event_is_ignored(registry):
    response = handle_playback_webhook({"event": "playback.stop", "media_type": "movie"}, registry)
    assert response.status_code == 200
    assert body(response)["status"] == "ignored"


def test_missing_rating_key_is_ignored(registry, movie_playback_mocks):
    data = {k: v for k, v in PLAYBACK_MOVIE.items() if k != "rating_key"}
    response = handle_playback_webhook(data, registry)
    assert response.status_code == 200
    movie_playback_mocks.find_movie.assert_not_called()


def test_movie_playback_starts_one_monitor(registry, movie_playback_mocks):
    response = handle_playback_webhook(PLAYBACK_MOVIE, registry)

    assert response.status_code == 200
    assert body(response)["status"] == "success"
    movie_playback_mocks.find_movie.assert_called_once_with("tt1234567", "1234")
    movie_playback_mocks.search_movie.assert_called_once_with(7)
    movie_playback_mocks.update.assert_called_once_with(
        "1001", "A test movie.",
        "The movie is being requested. Please wait a few moments while it becomes available.",
    )
    movie_playback_mocks.start_monitor.assert_called_once()
    monitor, used_registry = movie_playback_mocks.start_monitor.call_args[0]
    assert used_registry is registry
    assert monitor.request.target_id == 7
    assert monitor.request.original_file_path == PLAYBACK_MOVIE["file"]
    assert monitor.request.max_attempts == settings.MAX_MONITOR_ATTEMPTS
    assert registry.is_active("1001")


def test_second_playback_for_same_item_is_deduplicated(registry, movie_playback_mocks):
    handle_playback_webhook(PLAYBACK_MOVIE, registry)
    response = handle_playback_webhook(PLAYBACK_MOVIE, registry)

    assert response.status_code == 200
    assert body(response)["message"] == "Request already in progress."
    movie_playback_mocks.search_movie.assert_called_once()
    movie_playback_mocks.start_monitor.assert_called_once()


def test_movie_already_available_is_not_requested(registry, movie_playback_mocks):
    movie_playback_mocks.find_movie.return_value = {**RADARR_MOVIE, 'movieFile': {'relativePath': 'Test.mkv'}}
    response = handle_playback_webhook(PLAYBACK_MOVIE, registry)

    assert body(response)["status"] == "ignored"
    movie_playback_mocks.start_monitor.assert_not_called()
    assert not registry.is_active("1001")


def test_movie_not_in_radarr_is_ignored(registry, movie_playback_mocks):
    movie_playback_mocks.find_movie.return_value = None
    response = handle_playback_webhook(PLAYBACK_MOVIE, registry)

    assert response.status_code == 200
    movie_playback_mocks.search_movie.assert_not_called()


def test_key_released_when_monitor_fails_to_start(registry, movie_playback_mocks):
    movie_playback_mocks.start_monitor.side_effect = RuntimeError("can't start thread")
    response = handle_playback_webhook(PLAYBACK_MOVIE, registry)

    assert response.status_code == 500
    assert not registry.is_active("1001")


def test_episode_playback_requests_season_then_series(registry, episode_playback_mocks):
    response = handle_playback_webhook(PLAYBACK_EPISODE, registry)

    assert response.status_code == 200
    episode_playback_mocks.find_series.assert_called_once_with("999")
    episode_playback_mocks.monitor_series.assert_called_once_with(3)
    assert episode_playback_mocks.trigger_search.call_args_list[0][0] == (3, 2, "Show")
    assert episode_playback_mocks.trigger_search.call_args_list[1][1] == {'series_title': "Show"}
    monitor = episode_playback_mocks.start_monitor.call_args[0][0]
    assert monitor.request.target_id == (3, 2)
    assert registry.is_active("2002")


def test_season_taken_from_file_name_when_missing(registry, episode_playback_mocks):
    data = {**PLAYBACK_EPISODE, "season_num": ""}
    handle_playback_webhook(data, registry)

    monitor = episode_playback_mocks.start_monitor.call_args[0][0]
    assert monitor.request.target_id == (3, 2)


def test_real_episode_playback_is_ignored(registry, episode_playback_mocks):
    data = {**PLAYBACK_EPISODE, "file": "/media/series/Show (2020)/Season 02/Show - s02e01.mkv"}
    response = handle_playback_webhook(data, registry)

    assert response.status_code == 200
    assert body(response)["status"] == "ignored"
    episode_playback_mocks.find_series.assert_not_called()
    episode_playback_mocks.start_monitor.assert_not_called()


def test_monitor_series_leaves_specials_alone():
    from services import sonarr

    series = {'id': 3, 'title': 'Show', 'monitored': False, 'seasons': [
        {'seasonNumber': 0, 'monitored': False},
        {'seasonNumber': 1, 'monitored': False},
        {'seasonNumber': 2, 'monitored': False},
    ]}
    with patch('services.sonarr.requests') as mock_requests:
        mock_requests.get.return_value.json.return_value = series
        assert sonarr.monitor_series(3)

    sent = mock_requests.put.call_args[1]['json']
    assert sent['monitored'] is True
    assert [s['monitored'] for s in sent['seasons']] == [False, True, True]


@patch('services.plex_client.refresh_folder')
def test_radarr_movie_added_with_tag_creates_placeholder(mock_refresh, media_dirs):
    folder_path = os.path.join(media_dirs["PLEX_MOVIE_FOLDER"], "Test Movie (2023)")
    data = {"eventType": "MovieAdded",
            "movie": {"id": 7, "title": "Test Movie", "folderPath": folder_path, "tags": ["infinite"]}}

    response = handle_radarr_webhook(data)

    assert response.status_code == 200
    assert os.path.islink(os.path.join(folder_path, "dummy.mp4"))
    mock_refresh.assert_called_once_with(folder_path, 1)


@patch('services.plex_client.refresh_folder')
@patch('services.radarr.get_tag_id', return_value=5)
def test_radarr_movie_added_with_tag_id(mock_tag_id, mock_refresh, media_dirs):
    folder_path = os.path.join(media_dirs["PLEX_MOVIE_FOLDER"], "Test Movie (2023)")
    data = {"eventType": "MovieAdded", "movie": {"id": 7, "folderPath": folder_path, "tags": [5]}}

    assert handle_radarr_webhook(data).status_code == 200
    mock_tag_id.assert_called_once_with("infinite")
    assert os.path.islink(os.path.join(folder_path, "dummy.mp4"))


@patch('services.plex_client.refresh_folder')
def test_radarr_movie_added_without_tag_is_skipped(mock_refresh, media_dirs):
    folder_path = os.path.join(media_dirs["PLEX_MOVIE_FOLDER"], "Test Movie (2023)")
    data = {"eventType": "MovieAdded", "movie": {"id": 7, "folderPath": folder_path, "tags": ["other"]}}

    response = handle_radarr_webhook(data)

    assert body(response)["status"] == "ignored"
    assert not os.path.exists(folder_path)
    mock_refresh.assert_not_called()


@patch('services.plex_client.refresh_folder')
def test_radarr_placeholder_failure_returns_500(mock_refresh, media_dirs, monkeypatch):
    monkeypatch.setattr(settings, "DUMMY_FILE_LOCATION", "/nonexistent/dummy.mp4")
    folder_path = os.path.join(media_dirs["PLEX_MOVIE_FOLDER"], "Test Movie (2023)")
    data = {"eventType": "MovieAdded", "movie": {"id": 7, "folderPath": folder_path, "tags": ["infinite"]}}

    assert handle_radarr_webhook(data).status_code == 500
    mock_refresh.assert_not_called()


def test_unknown_radarr_event_is_ignored():
    response = handle_radarr_webhook({"eventType": "Test", "movie": {}})
    assert response.status_code == 200
    assert body(response)["message"] == "Invalid event"


@patch('services.plex_client.refresh_folder')
@patch('services.handlers.spawn_4k_mirror')
def test_radarr_download_mirrors_to_4k_when_configured(mock_mirror, mock_refresh, media_dirs, monkeypatch):
    monkeypatch.setattr(settings, "RADARR_4K_URL", "http://radarr4k.test/api/v3")
    folder_path = os.path.join(media_dirs["PLEX_MOVIE_FOLDER"], "Test Movie (2023)")
    movie = {"id": 7, "title": "Test Movie", "tmdbId": 1234, "folderPath": folder_path}

    handle_radarr_webhook({"eventType": "Download", "movie": movie})

    mock_mirror.assert_called_once_with(movie)
    mock_refresh.assert_called_once()


@patch('services.plex_client.refresh_folder')
@patch('services.handlers.spawn_4k_mirror')
def test_radarr_download_without_4k_does_not_mirror(mock_mirror, mock_refresh, media_dirs):
    folder_path = os.path.join(media_dirs["PLEX_MOVIE_FOLDER"], "Test Movie (2023)")
    handle_radarr_webhook({"eventType": "Download", "movie": {"id": 7, "folderPath": folder_path}})
    mock_mirror.assert_not_called()


@pytest.fixture
def four_k_settings(monkeypatch):
    monkeypatch.setattr(settings, "RADARR_4K_URL", "http://radarr4k.test/api/v3")
    monkeypatch.setattr(settings, "RADARR_4K_API_KEY", "4k-key")
    monkeypatch.setattr(settings, "RADARR_4K_MOVIE_FOLDER", "/movies-4k")
    monkeypatch.setattr(settings, "RADARR_4K_QUALITY_PROFILE_ID", 6)


def test_mirror_adds_missing_movie(four_k_settings):
    with patch('services.radarr.check_movie_in_radarr', return_value=(False, None)), \
            patch('services.radarr.add_movie', return_value={'id': 70}) as add_movie:
        assert mirror_movie_to_4k({"tmdbId": 1234, "title": "Test Movie"}) == {'id': 70}

    args, kwargs = add_movie.call_args
    assert args == (1234,)
    assert kwargs['root_folder_path'] == "/movies-4k"
    assert kwargs['quality_profile_id'] == 6
    assert kwargs['monitored'] is True
    assert kwargs['search_for_movie'] is True
    assert kwargs['tags'] == [MIRROR_TAG]
    assert kwargs['config']['url'] == "http://radarr4k.test/api/v3"


def test_mirror_existing_available_movie_is_left_alone(four_k_settings):
    existing = {'id': 70, 'hasFile': True, 'movieFile': {'relativePath': 'Test Movie (2023).mkv'}}
    with patch('services.radarr.check_movie_in_radarr', return_value=(True, existing)), \
            patch('services.radarr.search_movie') as search_movie, \
            patch('services.radarr.add_movie') as add_movie:
        assert mirror_movie_to_4k({"tmdbId": 1234}) == existing
    add_movie.assert_not_called()
    search_movie.assert_not_called()


@pytest.mark.parametrize("existing", [
    {'id': 70, 'hasFile': False},
    {'id': 70, 'hasFile': True, 'movieFile': {'relativePath': 'dummy.mp4'}},
])
def test_mirror_existing_missing_movie_is_searched_once(four_k_settings, existing):
    with patch('services.radarr.check_movie_in_radarr', return_value=(True, existing)), \
            patch('services.radarr.search_movie') as search_movie, \
            patch('services.radarr.add_movie') as add_movie:
        mirror_movie_to_4k({"tmdbId": 1234})
    add_movie.assert_not_called()
    search_movie.assert_called_once()
    movie_id, config = search_movie.call_args[0]
    assert movie_id == 70
    assert config['url'] == "http://radarr4k.test/api/v3"


def test_mirror_failure_is_contained(four_k_settings):
    with patch('services.radarr.check_movie_in_radarr', return_value=(False, None)), \
            patch('services.radarr.add_movie', side_effect=RuntimeError("rejected")):
        assert mirror_movie_to_4k({"tmdbId": 1234}) is None


@patch('services.plex_client.refresh_folder')
def test_sonarr_series_add_skips_specials(mock_refresh, media_dirs):
    series_path = os.path.join(media_dirs["PLEX_SERIES_FOLDER"], "Show (2020)")
    episodes = [{'id': i, 'seasonNumber': s} for i, s in enumerate([0, 1, 1, 1, 2, 2], start=1)]
    data = {"eventType": "SeriesAdd",
            "series": {"id": 3, "title": "Show", "path": series_path, "tags": ["infinite"]}}

    with patch('services.sonarr.get_episodes', return_value=episodes):
        response = handle_sonarr_webhook(data)

    assert response.status_code == 200
    assert sorted(os.listdir(series_path)) == ["Season 01", "Season 02"]
    assert os.listdir(os.path.join(series_path, "Season 01")) == ["Show - s01e01-e03 - dummy.mp4"]
    assert os.listdir(os.path.join(series_path, "Season 02")) == ["Show - s02e01-e02 - dummy.mp4"]
    mock_refresh.assert_called_once_with(series_path, 2)


@patch('services.plex_client.refresh_folder')
def test_sonarr_download_cleans_season(mock_refresh, media_dirs):
    series_path = os.path.join(media_dirs["PLEX_SERIES_FOLDER"], "Show (2020)")
    episodes = [{'id': 1, 'seasonNumber': 1}]
    with patch('services.sonarr.get_episodes', return_value=episodes):
        handle_sonarr_webhook({"eventType": "SeriesAdd",
                               "series": {"id": 3, "title": "Show", "path": series_path, "tags": ["infinite"]}})

    season_folder = os.path.join(series_path, "Season 01")
    with open(os.path.join(season_folder, "Show - s01e01.mkv"), "wb") as f:
        f.write(b"REAL")
    mock_refresh.reset_mock()

    response = handle_sonarr_webhook({
        "eventType": "Download",
        "series": {"id": 3, "title": "Show", "path": series_path},
        "episodes": [{"id": 1, "seasonNumber": 1, "episodeNumber": 1}],
        "episodeFile": {"relativePath": "Season 01/Show - s01e01.mkv"},
    })

    assert response.status_code == 200
    assert os.listdir(season_folder) == ["Show - s01e01.mkv"]
    mock_refresh.assert_called_once_with(series_path, 2)


def test_unknown_sonarr_event_is_ignored():
    response = handle_sonarr_webhook({"eventType": "Grab", "series": {"path": "/tv/Show"}})
    assert body(response)["message"] == "Invalid event"

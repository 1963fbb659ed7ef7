"""
Availability monitors.

A monitor follows one playback request from "placeholder playing" to "real
file present". The state machine itself never sleeps or talks to Plex or
Tautulli: every call to ``on_tick`` polls the acquisition manager once and
returns an action. ``run_monitor`` is the scheduler that waits between ticks,
applies the actions and always releases the request key at the end.
"""
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from core.config import settings
from core.logger import logger
from core.registry import RequestRegistry, active_requests
from services import plex_client, radarr, sonarr, tautulli


class MonitorState(str, Enum):
    PENDING = "Pending"
    DOWNLOADING = "Downloading"
    RESOLVED = "Resolved"
    TIMED_OUT = "TimedOut"


@dataclass
class ContinueWithStatus:
    """Keep polling; show text in Plex unless it is None"""
    text: Optional[str] = None


@dataclass
class ResolveAndTerminate:
    """The real file is there; stop the session playing file_path"""
    file_path: str


@dataclass
class GiveUp:
    """Attempt budget spent; show message in Plex unless it is None"""
    message: Optional[str] = None


@dataclass
class MonitorRequest:
    entity_key: str
    target_id: Any
    original_file_path: str
    description_text: str = ""
    title: str = ""
    max_attempts: int = 60
    attempt_count: int = 0
    state: MonitorState = MonitorState.PENDING


class AvailabilityMonitor:
    def __init__(self, request: MonitorRequest):
        self.request = request

    @property
    def finished(self) -> bool:
        return self.request.state in (MonitorState.RESOLVED, MonitorState.TIMED_OUT)

    def on_tick(self):
        request = self.request
        if self.finished:
            raise RuntimeError(f"Monitor for {request.title} already finished ({request.state.value})")

        request.attempt_count += 1
        logger.info(f"Checking availability of {request.title} (attempt {request.attempt_count}/{request.max_attempts})",
                    extra={'emoji_type': 'processing'})
        try:
            action = self.evaluate()
        except Exception as e:
            logger.error(f"Availability check for {request.title} failed: {e}", extra={'emoji_type': 'error'})
            action = ContinueWithStatus()

        if isinstance(action, ResolveAndTerminate):
            request.state = MonitorState.RESOLVED
            logger.info(f"{request.title} is now available!", extra={'emoji_type': 'success'})
            return action

        if request.attempt_count >= request.max_attempts:
            request.state = MonitorState.TIMED_OUT
            logger.warning(f"Time limit exceeded, {request.title} is not available yet", extra={'emoji_type': 'timeout'})
            return self.give_up()

        return action

    def evaluate(self):
        raise NotImplementedError

    def give_up(self) -> GiveUp:
        return GiveUp()


class MovieMonitor(AvailabilityMonitor):
    """Watches a single Radarr movie; target_id is the Radarr movie id"""

    def evaluate(self):
        request = self.request
        movie = radarr.get_movie(request.target_id)
        if movie is None:
            # Radarr unreachable; try again next tick
            return ContinueWithStatus()

        if radarr.movie_has_real_file(movie):
            return ResolveAndTerminate(request.original_file_path)

        if radarr.is_movie_downloading(request.target_id):
            request.state = MonitorState.DOWNLOADING
            return ContinueWithStatus("Movie is currently downloading. Waiting for completion...")

        request.state = MonitorState.PENDING
        if radarr.movie_has_dummy_file(movie):
            logger.debug(f"Placeholder still in place for {request.title}, continuing search",
                         extra={'emoji_type': 'debug'})
            return ContinueWithStatus()

        return ContinueWithStatus(
            f"Checking availability for movie (attempt {request.attempt_count}/{request.max_attempts})..."
        )


class SeasonMonitor(AvailabilityMonitor):
    """Watches every episode of one season; target_id is (series_id, season_number)"""

    def evaluate(self):
        request = self.request
        series_id, season_number = request.target_id
        episodes = sonarr.get_episodes(series_id, season_number)
        if episodes is None:
            return ContinueWithStatus()

        remaining = [ep for ep in episodes if not sonarr.episode_has_real_file(ep)]
        if episodes and not remaining:
            return ResolveAndTerminate(request.original_file_path)

        count = len(remaining)
        remaining_text = f"{count} episode{'s' if count != 1 else ''} remaining"
        queued = sonarr.get_queued_episode_ids(series_id)
        if any(ep.get('id') in queued for ep in remaining):
            request.state = MonitorState.DOWNLOADING
            return ContinueWithStatus(f"Season {season_number} is currently downloading. {remaining_text}...")

        request.state = MonitorState.PENDING
        return ContinueWithStatus(
            f"Checking availability for season {season_number}: {remaining_text} "
            f"(attempt {request.attempt_count}/{request.max_attempts})..."
        )

    def give_up(self) -> GiveUp:
        _, season_number = self.request.target_id
        return GiveUp(f"Season {season_number} could not be made available in time. "
                      f"Please try again later.")


def apply_action(monitor: AvailabilityMonitor, action):
    request = monitor.request
    if isinstance(action, ContinueWithStatus):
        if action.text:
            plex_client.update_description(request.entity_key, request.description_text, action.text)
    elif isinstance(action, ResolveAndTerminate):
        if action.file_path:
            tautulli.terminate_stream_by_file(action.file_path)
        else:
            logger.info(f"No file path known for {request.title}, no stream to stop", extra={'emoji_type': 'info'})
    elif isinstance(action, GiveUp):
        if action.message:
            plex_client.update_description(request.entity_key, request.description_text, action.message)


def run_monitor(monitor: AvailabilityMonitor, registry: RequestRegistry = active_requests,
                interval: float = None, sleep=time.sleep) -> MonitorState:
    """
    Tick the monitor every interval seconds until it resolves or times out.
    The request key is released however the loop ends.
    """
    request = monitor.request
    interval = settings.CHECK_INTERVAL if interval is None else interval
    logger.info(f"Monitoring availability of {request.title} for up to {request.max_attempts} checks "
                f"every {interval}s", extra={'emoji_type': 'monitored'})
    try:
        while not monitor.finished:
            sleep(interval)
            action = monitor.on_tick()
            try:
                apply_action(monitor, action)
            except Exception as e:
                logger.error(f"Failed to apply {type(action).__name__} for {request.title}: {e}",
                             extra={'emoji_type': 'error'})
    except Exception as e:
        logger.error(f"Monitor for {request.title} stopped unexpectedly: {e}", extra={'emoji_type': 'error'})
    finally:
        registry.release(request.entity_key)
        logger.info(f"Request for {request.title} finished ({request.state.value})", extra={'emoji_type': 'status'})
    return request.state


def start_monitor(monitor: AvailabilityMonitor, registry: RequestRegistry = active_requests) -> threading.Thread:
    """Run the monitor on its own daemon thread"""
    thread = threading.Thread(
        target=run_monitor,
        args=(monitor, registry),
        name=f"monitor-{monitor.request.entity_key}",
        daemon=True,
    )
    thread.start()
    return thread

"""
Media output resources for the player.

`MediaResource` is the seam between the PlaybackController and whatever
actually produces sound. `MpvMediaResource` drives libmpv through python-mpv.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from shared.constants import DEFAULT_NETWORK_TIMEOUT

logger = logging.getLogger(__name__)


class MediaError(Exception):
    """The media resource failed to load or play."""


class PlaybackAborted(MediaError):
    """A pending play() was interrupted by a pause or a new load."""


class MediaResource(ABC):
    """A single audio output. Event hooks are delivered to the attached controller."""

    def __init__(self):
        self.listener = None

    def attach(self, listener) -> None:
        """
        Register the object receiving media events.

        The listener must provide handle_time_update, handle_loaded_metadata,
        handle_can_play, handle_ended and handle_error.
        """
        self.listener = listener

    @abstractmethod
    def load(self, url: str) -> None:
        """Point the resource at a new source. Aborts any pending play()."""

    @abstractmethod
    async def play(self) -> None:
        """
        Start or resume output.

        Raises:
            PlaybackAborted: superseded by pause() or load() before starting
            MediaError: the source could not be played
        """

    @abstractmethod
    def pause(self) -> None:
        pass

    @abstractmethod
    def seek(self, position: float) -> None:
        pass

    @abstractmethod
    def set_volume(self, volume: float) -> None:
        """Volume in [0, 1]."""

    @property
    @abstractmethod
    def current_time(self) -> float:
        pass

    @property
    @abstractmethod
    def duration(self) -> float:
        pass


class MpvMediaResource(MediaResource):
    """Wrapper around MPV for audio-only playback of stream URLs."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None,
                 load_timeout: float = DEFAULT_NETWORK_TIMEOUT):
        super().__init__()
        import mpv

        self._loop = loop or asyncio.get_running_loop()
        self._load_timeout = load_timeout
        self._loaded = False
        self._waiter: Optional[asyncio.Future] = None

        # Audio-only; keep_open so eof-reached fires at the end of each file
        self.player = mpv.MPV(vo='null', ytdl=False, keep_open='yes')
        self.player.pause = True

        # MPV observers run on its own event thread
        self.player.observe_property('duration', self._on_duration)
        self.player.observe_property('time-pos', self._on_time_pos)
        self.player.observe_property('eof-reached', self._on_eof)

    def _dispatch(self, callback, *args):
        self._loop.call_soon_threadsafe(callback, *args)

    def _on_duration(self, name, value):
        if value is None:
            return
        self._dispatch(self._mark_ready)
        if self.listener:
            self._dispatch(self.listener.handle_loaded_metadata, float(value))
            self._dispatch(self.listener.handle_can_play)

    def _on_time_pos(self, name, value):
        if value is not None and self.listener:
            self._dispatch(self.listener.handle_time_update, float(value), self.duration)

    def _on_eof(self, name, value):
        if value and self.listener:
            self._dispatch(self.listener.handle_ended)

    def _mark_ready(self):
        self._loaded = True
        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_result(True)

    def _abort_pending(self):
        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_exception(PlaybackAborted("Play request interrupted"))

    def load(self, url: str) -> None:
        self._abort_pending()
        self._loaded = False
        logger.debug(f"[mpv] loading {url}")
        self.player.pause = True
        self.player.play(url)

    async def play(self) -> None:
        if not self._loaded:
            self._waiter = self._loop.create_future()
            try:
                await asyncio.wait_for(self._waiter, timeout=self._load_timeout)
            except asyncio.TimeoutError:
                raise MediaError(f"Source did not load within {self._load_timeout}s")
            finally:
                self._waiter = None
        self.player.pause = False

    def pause(self) -> None:
        self._abort_pending()
        self.player.pause = True

    def seek(self, position: float) -> None:
        try:
            self.player.seek(position, reference='absolute')
        except SystemError as e:
            # mpv rejects seeks while nothing is loaded
            logger.warning(f"Error seeking: {e}")

    def set_volume(self, volume: float) -> None:
        self.player.volume = max(0.0, min(1.0, volume)) * 100

    @property
    def current_time(self) -> float:
        return self.player.time_pos or 0.0

    @property
    def duration(self) -> float:
        return self.player.duration or 0.0

    def terminate(self) -> None:
        self._abort_pending()
        self.player.terminate()

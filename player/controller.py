"""
Playback controller for the Cadenza client.

Owns the PlaybackState (current song, queue, shuffle/repeat, progress) and a
single MediaResource. Runs on one asyncio event loop: every public method is
synchronous, only the resource's play() is awaited inside a task the
controller owns.
"""

import asyncio
import logging
import random
from typing import Callable, List, Optional

from shared.errors import ValidationError
from shared.models import PlaybackState, RepeatMode, Song
from player.engine import MediaError, MediaResource, PlaybackAborted

logger = logging.getLogger(__name__)


class PlaybackController:
    """
    Queue navigation and play/pause coordination for one output.

    `stream_url` maps a Song to the URL handed to the resource;
    `on_change` is called with the state after every mutation.
    """

    def __init__(self, resource: MediaResource,
                 stream_url: Optional[Callable[[Song], str]] = None,
                 on_change: Optional[Callable[[PlaybackState], None]] = None):
        self.resource = resource
        self.state = PlaybackState()
        self._stream_url = stream_url or (lambda song: song.audio_file)
        self._on_change_callbacks: List[Callable[[PlaybackState], None]] = []
        self._play_task: Optional[asyncio.Task] = None

        if on_change:
            self.add_change_callback(on_change)
        resource.attach(self)
        resource.set_volume(self.state.volume)

    # --- Change notification ---

    def add_change_callback(self, callback: Callable[[PlaybackState], None]) -> None:
        if callback not in self._on_change_callbacks:
            self._on_change_callbacks.append(callback)

    def remove_change_callback(self, callback: Callable[[PlaybackState], None]) -> None:
        if callback in self._on_change_callbacks:
            self._on_change_callbacks.remove(callback)

    def _notify_change(self) -> None:
        for callback in self._on_change_callbacks:
            try:
                callback(self.state)
            except Exception:
                logger.exception("Error in playback change callback")

    # --- Play task management ---

    def _cancel_pending_play(self) -> None:
        if self._play_task is not None and not self._play_task.done():
            self._play_task.cancel()

    def _request_play(self) -> None:
        self._cancel_pending_play()
        self.state.is_playing = True
        self._play_task = asyncio.get_running_loop().create_task(self._run_play())

    async def _run_play(self) -> None:
        try:
            await self.resource.play()
        except (asyncio.CancelledError, PlaybackAborted):
            logger.debug("Play request superseded")
        except MediaError as e:
            logger.error(f"Error playing audio: {e}")
            self.state.is_playing = False
            self.state.is_loading = False
            self._notify_change()

    async def settle(self) -> None:
        """Wait for the in-flight play request, if any, to finish."""
        task = self._play_task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    def _start_song(self, index: int) -> None:
        song = self.state.queue[index]
        self._cancel_pending_play()

        self.state.index = index
        self.state.current_song = song
        self.state.is_loading = True
        self.state.current_time = 0.0
        self.state.progress = 0.0
        self.state.duration = song.duration or 0.0

        self.resource.load(self._stream_url(song))
        self._request_play()
        self._notify_change()

    def _stop(self) -> None:
        self._cancel_pending_play()
        self.resource.pause()
        self.state.current_song = None
        self.state.index = -1
        self.state.is_playing = False
        self.state.is_loading = False
        self.state.current_time = 0.0
        self.state.progress = 0.0
        self._notify_change()

    # --- Queue navigation ---

    def _next_index(self) -> int:
        size = len(self.state.queue)
        if size == 1:
            return 0
        current = self.state.index
        if self.state.shuffle:
            while True:
                candidate = random.randrange(size)
                if candidate != current:
                    return candidate
        return (current + 1) % size

    def _previous_index(self) -> int:
        size = len(self.state.queue)
        if size == 1:
            return 0
        current = self.state.index
        if self.state.shuffle:
            while True:
                candidate = random.randrange(size)
                if candidate != current:
                    return candidate
        if current < 0:
            return size - 1
        return (current - 1) % size

    def play_song(self, song: Song) -> None:
        """
        Play a song, keeping it in the queue.

        A song already queued becomes current in place; otherwise it is
        inserted right after the current song.
        """
        queue = self.state.queue
        existing = next((i for i, s in enumerate(queue) if s.id == song.id), None)
        if existing is not None:
            index = existing
        elif not queue:
            self.state.queue = [song]
            index = 0
        else:
            index = self.state.index + 1 if self.state.index >= 0 else len(queue)
            queue.insert(index, song)
        logger.info(f"Playing {song.title} by {song.artist}")
        self._start_song(index)

    def play_queue(self, songs: List[Song], start_index: int = 0) -> None:
        """Replace the queue and start at `start_index`."""
        if not songs:
            raise ValidationError("Cannot play an empty queue")
        if not 0 <= start_index < len(songs):
            raise ValidationError(f"Start index {start_index} out of range")
        self.state.queue = list(songs)
        self._start_song(start_index)

    def play_next(self) -> None:
        if not self.state.queue:
            self._stop()
            return
        self._start_song(self._next_index())

    def play_previous(self) -> None:
        if not self.state.queue:
            return
        self._start_song(self._previous_index())

    def add_to_queue(self, song: Song) -> None:
        self.state.queue.append(song)
        self._notify_change()

    def remove_from_queue(self, index: int) -> bool:
        """
        Drop one queue entry. The current song keeps playing even when its
        own entry is removed; the next song is then the one that followed it.
        """
        if not 0 <= index < len(self.state.queue):
            return False
        del self.state.queue[index]
        if index <= self.state.index:
            self.state.index -= 1
        self._notify_change()
        return True

    def clear_queue(self) -> None:
        self.state.queue = []
        self._stop()

    # --- Transport ---

    def pause(self) -> None:
        self._cancel_pending_play()
        self.resource.pause()
        self.state.is_playing = False
        self._notify_change()

    def resume(self) -> None:
        if self.state.current_song is None:
            return
        self._request_play()
        self._notify_change()

    def toggle_play(self) -> None:
        if self.state.is_playing:
            self.pause()
        elif self.state.current_song is not None:
            self.resume()
        elif self.state.queue:
            self._start_song(0)

    def toggle_shuffle(self) -> None:
        self.state.shuffle = not self.state.shuffle
        self._notify_change()

    def toggle_repeat(self) -> RepeatMode:
        self.state.repeat = self.state.repeat.next()
        self._notify_change()
        return self.state.repeat

    def seek_to(self, position: float) -> None:
        self.resource.seek(position)
        self.state.current_time = position
        if self.state.duration:
            self.state.progress = position / self.state.duration * 100
        self._notify_change()

    def set_volume(self, volume: float) -> None:
        self.state.volume = max(0.0, min(1.0, volume))
        self.resource.set_volume(self.state.volume)
        self._notify_change()

    def set_progress(self, progress: float) -> None:
        self.state.progress = max(0.0, min(100.0, progress))
        self._notify_change()

    # --- Media events ---

    def handle_time_update(self, current_time: float, duration: float) -> None:
        self.state.current_time = current_time
        if duration:
            self.state.duration = duration
            self.state.progress = max(0.0, min(100.0, current_time / duration * 100))
        else:
            self.state.progress = 0.0
        self._notify_change()

    def handle_loaded_metadata(self, duration: float) -> None:
        self.state.duration = duration
        self._notify_change()

    def handle_can_play(self) -> None:
        self.state.is_loading = False
        in_flight = self._play_task is not None and not self._play_task.done()
        if self.state.is_playing and not in_flight:
            self._request_play()
        self._notify_change()

    def handle_ended(self) -> None:
        if self.state.repeat == RepeatMode.ONE:
            self.resource.seek(0)
            self.state.current_time = 0.0
            self.state.progress = 0.0
            self._request_play()
            self._notify_change()
        elif self.state.queue:
            self.play_next()
        else:
            self._stop()

    def handle_error(self, error: Exception) -> None:
        logger.error(f"Media error: {error}")
        self._cancel_pending_play()
        self.state.is_playing = False
        self.state.is_loading = False
        self._notify_change()

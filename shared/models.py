"""
Data models for songs, playlists, users and client playback state.

These records are the serialization boundary shared by the HTTP service and
the player client.
"""

from dataclasses import dataclass, asdict, field
from typing import List, Dict, Optional, Any
from enum import Enum
import dataclasses
import uuid
from datetime import datetime, timezone

from shared.constants import DEFAULT_BITRATE, DEFAULT_COVER_ART, DEFAULT_VOLUME


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _filter_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    field_names = {f.name for f in dataclasses.fields(cls)}
    return {k: v for k, v in data.items() if k in field_names}


class RepeatMode(Enum):
    """End-of-track behavior of the player."""
    NONE = "none"
    ONE = "one"
    ALL = "all"

    def next(self) -> 'RepeatMode':
        """Cycle none -> one -> all -> none."""
        order = [RepeatMode.NONE, RepeatMode.ONE, RepeatMode.ALL]
        return order[(order.index(self) + 1) % len(order)]


@dataclass
class Song:
    """
    Represents a single uploaded song.

    Attributes:
        id: Unique identifier (UUID)
        title: Song title
        artist: Artist name
        album: Album name
        duration: Duration in seconds
        audio_file: Stored file name under the songs directory
        added_by: Id of the user who uploaded the song
        cover_art: Stored cover file name, or the default cover
        format: Format tag (FLAC, WAV, MP3)
        bitrate: Bitrate in kbps
        has_dolby_atmos: Whether the file carries 6+ channels in a lossless container
        play_count: Number of completed stream requests
        genre: Music genre (optional)
        release_date: Release date as found in the tags (optional)
        created_at: ISO timestamp of the upload
    """
    id: str
    title: str
    artist: str
    album: str
    duration: float
    audio_file: str
    added_by: str
    cover_art: str = DEFAULT_COVER_ART
    format: str = "FLAC"
    bitrate: int = DEFAULT_BITRATE
    has_dolby_atmos: bool = False
    play_count: int = 0
    genre: Optional[str] = None
    release_date: Optional[str] = None
    created_at: str = field(default_factory=_now)

    @staticmethod
    def generate_id() -> str:
        """Generate a unique song ID."""
        return str(uuid.uuid4())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Song':
        """Create Song from dictionary, filtering unknown keys."""
        return cls(**_filter_fields(cls, data))


@dataclass
class Playlist:
    """
    An ordered list of song ids owned by one user.

    The same song may appear more than once; no dedup is enforced.
    """
    id: str
    name: str
    owner: str
    description: str = ""
    is_public: bool = False
    songs: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    @staticmethod
    def generate_id() -> str:
        return str(uuid.uuid4())

    def is_owned_by(self, user_id: Optional[str]) -> bool:
        return user_id is not None and self.owner == user_id

    def touch(self) -> None:
        self.updated_at = _now()

    def add_song(self, song_id: str) -> None:
        self.songs.append(song_id)
        self.updated_at = _now()

    def remove_song(self, song_id: str) -> int:
        """
        Remove every occurrence of a song.

        Returns:
            Number of entries removed
        """
        before = len(self.songs)
        self.songs = [s for s in self.songs if s != song_id]
        removed = before - len(self.songs)
        if removed:
            self.updated_at = _now()
        return removed

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Playlist':
        filtered = _filter_fields(cls, data)
        filtered['songs'] = list(filtered.get('songs') or [])
        return cls(**filtered)


@dataclass
class User:
    """A registered listener with a cumulative listening-time counter."""
    id: str
    username: str
    email: str
    password_hash: str
    listening_time: int = 0
    created_at: str = field(default_factory=_now)

    @staticmethod
    def generate_id() -> str:
        return str(uuid.uuid4())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_public_dict(self) -> Dict[str, Any]:
        """Serialize without credentials."""
        data = asdict(self)
        data.pop('password_hash', None)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        return cls(**_filter_fields(cls, data))


def format_listening_time(seconds: int) -> str:
    """Render a listening-time counter as '3h 12m' or '12m'."""
    seconds = int(seconds or 0)
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


@dataclass
class PlaybackState:
    """
    Client-resident playback state. Never persisted.

    Owned by exactly one PlaybackController.
    """
    current_song: Optional[Song] = None
    queue: List[Song] = field(default_factory=list)
    is_playing: bool = False
    is_loading: bool = False
    volume: float = DEFAULT_VOLUME
    shuffle: bool = False
    repeat: RepeatMode = RepeatMode.NONE
    progress: float = 0.0
    current_time: float = 0.0
    duration: float = 0.0
    # Position of current_song in the queue; the queue may hold repeats
    index: int = -1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_song": self.current_song.to_dict() if self.current_song else None,
            "queue": [s.to_dict() for s in self.queue],
            "index": self.index,
            "is_playing": self.is_playing,
            "is_loading": self.is_loading,
            "volume": self.volume,
            "shuffle": self.shuffle,
            "repeat": self.repeat.value,
            "progress": self.progress,
            "current_time": self.current_time,
            "duration": self.duration,
        }

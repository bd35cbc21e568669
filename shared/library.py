"""
Core library management for the server.
Owns the database, file storage and token issuing, and enforces ownership
rules for songs and playlists.
"""

import logging
import math
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from shared.config import ServerConfig
from shared.constants import MAX_LISTENING_TIME_INCREMENT
from shared.crypto import TokenManager, hash_password, verify_password
from shared.database import DatabaseManager
from shared.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    StreamingIOError,
    UnauthorizedError,
    ValidationError,
)
from shared.models import Playlist, Song, User
from ingest.storage import LocalStorageProvider
from ingest.uploader import UploadEngine

logger = logging.getLogger(__name__)

EDITABLE_SONG_FIELDS = ("title", "artist", "album", "genre", "release_date")


def _parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "0", "no"):
        return False
    raise ValidationError("isPublic must be a boolean")


class LibraryManager:
    """Manages users, the song catalog and playlists."""

    def __init__(self, config: ServerConfig):
        self.config = config
        self.db = DatabaseManager(str(config.database_path))
        self.storage = LocalStorageProvider(config.songs_dir, config.covers_dir)
        self.uploader = UploadEngine(self.db, self.storage, max_size=config.max_upload_size)
        self.tokens = TokenManager(config.secret_key, config.token_ttl_seconds)

    # --- Users ---

    def register_user(self, username: str, email: str, password: str) -> User:
        username = (username or "").strip()
        email = (email or "").strip().lower()
        if not username or not email or not password:
            raise ValidationError("username, email and password are required")
        if self.db.find_user(username) or self.db.find_user(email):
            raise ConflictError("Username or email already registered")

        user = User(
            id=User.generate_id(),
            username=username,
            email=email,
            password_hash=hash_password(password),
        )
        try:
            self.db.add_user(user)
        except sqlite3.IntegrityError:
            raise ConflictError("Username or email already registered")
        logger.info(f"Registered user {username}")
        return user

    def login(self, login: str, password: str) -> Tuple[User, str]:
        """
        Check credentials.

        Returns:
            (user, bearer token)
        """
        user = self.db.find_user((login or "").strip())
        if not user or not verify_password(password or "", user.password_hash):
            raise UnauthorizedError("Invalid credentials")
        return user, self.tokens.issue(user.id)

    def issue_token(self, user: User) -> str:
        return self.tokens.issue(user.id)

    def user_from_token(self, token: Optional[str]) -> User:
        user_id = self.tokens.verify(token) if token else None
        user = self.db.get_user(user_id) if user_id else None
        if not user:
            raise UnauthorizedError()
        return user

    def get_user(self, user_id: str) -> User:
        user = self.db.get_user(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def update_profile(self, user: User, data: Dict[str, Any]) -> User:
        username = (data.get('username') or "").strip()
        email = (data.get('email') or "").strip().lower()
        new_password = data.get('newPassword') or data.get('new_password')

        if username and username != user.username:
            existing = self.db.find_user(username)
            if existing and existing.id != user.id:
                raise ConflictError("Username already taken")
            user.username = username
        if email and email != user.email:
            existing = self.db.find_user(email)
            if existing and existing.id != user.id:
                raise ConflictError("Email already registered")
            user.email = email
        if new_password:
            current = data.get('currentPassword') or data.get('current_password') or ""
            if not verify_password(current, user.password_hash):
                raise ValidationError("Current password is incorrect")
            user.password_hash = hash_password(new_password)

        self.db.update_user(user)
        return user

    def add_listening_time(self, user_id: str, seconds: Any) -> int:
        # bool is an int subclass; reject it explicitly
        if isinstance(seconds, bool) or not isinstance(seconds, (int, float)) or seconds < 0:
            raise ValidationError("Invalid time value")
        if not math.isfinite(seconds) or seconds > MAX_LISTENING_TIME_INCREMENT:
            raise ValidationError("Invalid time value")
        total = self.db.add_listening_time(user_id, int(round(seconds)))
        if total is None:
            raise NotFoundError("User not found")
        return total

    # --- Songs ---

    def list_songs(self) -> List[Song]:
        return self.db.get_all_songs()

    def search_songs(self, query: str) -> List[Song]:
        return self.db.search_songs(query)

    def get_song(self, song_id: str) -> Song:
        song = self.db.get_song(song_id)
        if not song:
            raise NotFoundError("Song not found")
        return song

    def update_song(self, song_id: str, user: User, data: Dict[str, Any]) -> Song:
        song = self.get_song(song_id)
        if song.added_by != user.id:
            raise ForbiddenError()
        for key in EDITABLE_SONG_FIELDS:
            if key in data and data[key] is not None:
                setattr(song, key, str(data[key]).strip())
        if not song.title or not song.artist:
            raise ValidationError("title and artist cannot be empty")
        self.db.update_song(song)
        return song

    def delete_song(self, song_id: str, user: User) -> None:
        """Delete the record and its backing file. Owner only."""
        song = self.get_song(song_id)
        if song.added_by != user.id:
            raise ForbiddenError()
        if not self.storage.delete_song(song.audio_file):
            logger.warning(f"Audio file for song {song_id} was already missing: {song.audio_file}")
        self.storage.delete_cover(song.cover_art)
        self.db.delete_song(song_id)
        logger.info(f"Deleted song {song.title} ({song_id})")

    def resolve_stream(self, song_id: str) -> Tuple[Song, Path]:
        """
        Resolve a song to its backing file.

        Raises:
            NotFoundError: no such song record
            StreamingIOError: record present, file absent from storage
        """
        song = self.get_song(song_id)
        path = self.storage.song_path(song.audio_file)
        if path is None or not path.is_file():
            logger.error(f"Audio file missing for song {song_id}: {song.audio_file}")
            raise StreamingIOError()
        return song, path

    def record_play(self, song_id: str) -> None:
        self.db.increment_play_count(song_id)

    def cover_file(self, filename: str) -> Path:
        """Stored cover by name, or the default cover when absent."""
        path = self.storage.cover_path(filename)
        if path is not None and path.is_file():
            return path
        return self.storage.default_cover_path()

    # --- Playlists ---

    def create_playlist(self, user: User, data: Dict[str, Any]) -> Playlist:
        name = (data.get('name') or "").strip()
        if not name:
            raise ValidationError("name is required")
        is_public = data.get('isPublic', data.get('is_public'))
        playlist = Playlist(
            id=Playlist.generate_id(),
            name=name,
            owner=user.id,
            description=(data.get('description') or "").strip(),
            is_public=_parse_flag(is_public) if is_public is not None else False,
        )
        self.db.save_playlist(playlist)
        return playlist

    def get_playlist(self, playlist_id: str) -> Playlist:
        playlist = self.db.get_playlist(playlist_id)
        if not playlist:
            raise NotFoundError("Playlist not found")
        return playlist

    def view_playlist(self, playlist_id: str, user: Optional[User]) -> Playlist:
        """Public playlists are readable by anyone, private ones by the owner."""
        playlist = self.get_playlist(playlist_id)
        if not playlist.is_public and not playlist.is_owned_by(user.id if user else None):
            raise ForbiddenError()
        return playlist

    def _owned_playlist(self, playlist_id: str, user: User) -> Playlist:
        playlist = self.get_playlist(playlist_id)
        if not playlist.is_owned_by(user.id):
            raise ForbiddenError()
        return playlist

    def playlists_for(self, user: User) -> List[Playlist]:
        return self.db.get_playlists_by_owner(user.id)

    def public_playlists(self, query: Optional[str] = None) -> List[Playlist]:
        return self.db.get_public_playlists((query or "").strip() or None)

    def update_playlist(self, playlist_id: str, user: User, data: Dict[str, Any]) -> Playlist:
        playlist = self._owned_playlist(playlist_id, user)
        if data.get('name'):
            playlist.name = str(data['name']).strip() or playlist.name
        if data.get('description'):
            playlist.description = str(data['description']).strip()
        for key in ('isPublic', 'is_public'):
            if key in data and data[key] is not None:
                playlist.is_public = _parse_flag(data[key])
                break
        playlist.touch()
        self.db.save_playlist(playlist)
        return playlist

    def delete_playlist(self, playlist_id: str, user: User) -> None:
        self._owned_playlist(playlist_id, user)
        self.db.delete_playlist(playlist_id)

    def add_song_to_playlist(self, playlist_id: str, user: User, song_id: Optional[str]) -> Playlist:
        playlist = self._owned_playlist(playlist_id, user)
        if not song_id:
            raise ValidationError("songId is required")
        self.get_song(song_id)
        playlist.add_song(song_id)
        self.db.save_playlist(playlist)
        return playlist

    def remove_song_from_playlist(self, playlist_id: str, user: User, song_id: str) -> Playlist:
        playlist = self._owned_playlist(playlist_id, user)
        playlist.remove_song(song_id)
        self.db.save_playlist(playlist)
        return playlist

    def expand_playlist(self, playlist: Playlist) -> Dict[str, Any]:
        """Serialize a playlist with its songs resolved to full records."""
        data = playlist.to_dict()
        data['songs'] = [s.to_dict() for s in self.db.get_songs(playlist.songs)]
        owner = self.db.get_user(playlist.owner)
        data['owner_name'] = owner.username if owner else None
        return data

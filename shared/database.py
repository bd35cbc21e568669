"""
SQLite Database Manager for Cadenza.
Stores songs, playlists and users, and provides catalog search.
"""

import sqlite3
import json
import logging
from pathlib import Path
from typing import List, Optional
from shared.models import Song, Playlist, User

logger = logging.getLogger(__name__)

SONG_COLUMNS = [
    "id", "title", "artist", "album", "duration", "audio_file", "added_by",
    "cover_art", "format", "bitrate", "has_dolby_atmos", "play_count",
    "genre", "release_date", "created_at",
]


class DatabaseManager:
    def __init__(self, db_path: str):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    def _init_db(self):
        """Initialize the database schema."""
        with self._get_connection() as conn:
            try:
                conn.execute("BEGIN TRANSACTION")

                # 1. Base Tables
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS songs (
                        id TEXT PRIMARY KEY,
                        title TEXT NOT NULL,
                        artist TEXT NOT NULL,
                        album TEXT,
                        duration REAL NOT NULL,
                        audio_file TEXT NOT NULL,
                        added_by TEXT NOT NULL,
                        cover_art TEXT,
                        format TEXT,
                        bitrate INTEGER,
                        has_dolby_atmos BOOLEAN,
                        play_count INTEGER DEFAULT 0,
                        genre TEXT,
                        release_date TEXT,
                        created_at TEXT
                    )
                """)
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS users (
                        id TEXT PRIMARY KEY,
                        username TEXT UNIQUE NOT NULL,
                        email TEXT UNIQUE NOT NULL,
                        password_hash TEXT NOT NULL,
                        listening_time INTEGER DEFAULT 0,
                        created_at TEXT
                    )
                """)
                # Playlists keep their ordered song ids as a JSON document
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS playlists (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        owner TEXT NOT NULL,
                        description TEXT,
                        is_public BOOLEAN,
                        songs TEXT,
                        created_at TEXT,
                        updated_at TEXT
                    )
                """)

                # 2. Search Index (FTS5)
                try:
                    conn.execute("""
                        CREATE VIRTUAL TABLE IF NOT EXISTS songs_fts USING fts5(
                            id UNINDEXED,
                            title,
                            artist,
                            album,
                            genre,
                            content='songs',
                            content_rowid='rowid'
                        )
                    """)
                    conn.execute("DROP TRIGGER IF EXISTS songs_ai")
                    conn.execute("""
                        CREATE TRIGGER songs_ai AFTER INSERT ON songs BEGIN
                            INSERT INTO songs_fts(rowid, id, title, artist, album, genre)
                            VALUES (new.rowid, new.id, new.title, new.artist, new.album, new.genre);
                        END
                    """)
                    conn.execute("DROP TRIGGER IF EXISTS songs_ad")
                    conn.execute("""
                        CREATE TRIGGER songs_ad AFTER DELETE ON songs BEGIN
                            INSERT INTO songs_fts(songs_fts, rowid, id, title, artist, album, genre)
                            VALUES('delete', old.rowid, old.id, old.title, old.artist, old.album, old.genre);
                        END
                    """)
                    conn.execute("DROP TRIGGER IF EXISTS songs_au")
                    conn.execute("""
                        CREATE TRIGGER songs_au AFTER UPDATE OF title, artist, album, genre ON songs BEGIN
                            INSERT INTO songs_fts(songs_fts, rowid, id, title, artist, album, genre)
                            VALUES('delete', old.rowid, old.id, old.title, old.artist, old.album, old.genre);
                            INSERT INTO songs_fts(rowid, id, title, artist, album, genre)
                            VALUES (new.rowid, new.id, new.title, new.artist, new.album, new.genre);
                        END
                    """)
                except sqlite3.OperationalError:
                    logger.warning("FTS5 not available, search falls back to LIKE")

                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

    # --- Songs ---

    def add_song(self, song: Song) -> None:
        data = song.to_dict()
        placeholders = ", ".join(["?"] * len(SONG_COLUMNS))
        with self._get_connection() as conn:
            conn.execute(
                f"INSERT INTO songs ({', '.join(SONG_COLUMNS)}) VALUES ({placeholders})",
                [data[c] for c in SONG_COLUMNS],
            )

    def get_song(self, song_id: str) -> Optional[Song]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM songs WHERE id = ?", (song_id,)).fetchone()
            return self._row_to_song(row) if row else None

    def get_all_songs(self) -> List[Song]:
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT * FROM songs ORDER BY created_at DESC")
            return [self._row_to_song(row) for row in cursor.fetchall()]

    def get_songs(self, song_ids: List[str]) -> List[Song]:
        """Fetch songs by id, preserving the given order and repeats."""
        if not song_ids:
            return []
        unique = list(dict.fromkeys(song_ids))
        placeholders = ",".join(["?"] * len(unique))
        with self._get_connection() as conn:
            cursor = conn.execute(f"SELECT * FROM songs WHERE id IN ({placeholders})", unique)
            by_id = {row["id"]: self._row_to_song(row) for row in cursor.fetchall()}
        return [by_id[s] for s in song_ids if s in by_id]

    def search_songs(self, query: str) -> List[Song]:
        """Fast search songs using FTS5 or LIKE."""
        query = (query or "").strip()
        if not query:
            return self.get_all_songs()

        with self._get_connection() as conn:
            try:
                # Quote each term so user input cannot inject FTS syntax
                terms = " ".join('"{}"*'.format(t.replace('"', '""')) for t in query.split())
                cursor = conn.execute("""
                    SELECT s.* FROM songs s
                    JOIN songs_fts f ON s.id = f.id
                    WHERE songs_fts MATCH ?
                    ORDER BY rank
                """, (terms,))
                return [self._row_to_song(row) for row in cursor.fetchall()]
            except sqlite3.OperationalError:
                like = f"%{query}%"
                cursor = conn.execute("""
                    SELECT * FROM songs
                    WHERE title LIKE ? OR artist LIKE ? OR album LIKE ? OR genre LIKE ?
                    ORDER BY artist, title
                """, (like, like, like, like))
                return [self._row_to_song(row) for row in cursor.fetchall()]

    def update_song(self, song: Song) -> None:
        with self._get_connection() as conn:
            conn.execute("""
                UPDATE songs SET title = ?, artist = ?, album = ?, genre = ?, release_date = ?
                WHERE id = ?
            """, (song.title, song.artist, song.album, song.genre, song.release_date, song.id))

    def increment_play_count(self, song_id: str) -> None:
        with self._get_connection() as conn:
            conn.execute("UPDATE songs SET play_count = play_count + 1 WHERE id = ?", (song_id,))

    def delete_song(self, song_id: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM songs WHERE id = ?", (song_id,))
            return cursor.rowcount > 0

    def count_songs(self) -> int:
        with self._get_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM songs").fetchone()[0]

    def _row_to_song(self, row: sqlite3.Row) -> Song:
        data = dict(row)
        data["has_dolby_atmos"] = bool(data.get("has_dolby_atmos"))
        return Song.from_dict(data)

    # --- Users ---

    def add_user(self, user: User) -> None:
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO users (id, username, email, password_hash, listening_time, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (user.id, user.username, user.email, user.password_hash,
                  user.listening_time, user.created_at))

    def get_user(self, user_id: str) -> Optional[User]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return User.from_dict(dict(row)) if row else None

    def find_user(self, login: str) -> Optional[User]:
        """Look up a user by username or email."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE username = ? OR email = ?", (login, login)
            ).fetchone()
            return User.from_dict(dict(row)) if row else None

    def update_user(self, user: User) -> None:
        with self._get_connection() as conn:
            conn.execute("""
                UPDATE users SET username = ?, email = ?, password_hash = ? WHERE id = ?
            """, (user.username, user.email, user.password_hash, user.id))

    def add_listening_time(self, user_id: str, seconds: int) -> Optional[int]:
        """
        Add seconds to a user's listening-time counter.

        Returns:
            The new running total, or None if the user does not exist
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE users SET listening_time = listening_time + ? WHERE id = ?",
                (seconds, user_id),
            )
            if cursor.rowcount == 0:
                return None
            row = conn.execute("SELECT listening_time FROM users WHERE id = ?", (user_id,)).fetchone()
            return row[0]

    # --- Playlists ---

    def save_playlist(self, playlist: Playlist) -> None:
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO playlists (id, name, owner, description, is_public, songs, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name=excluded.name,
                    description=excluded.description,
                    is_public=excluded.is_public,
                    songs=excluded.songs,
                    updated_at=excluded.updated_at
            """, (playlist.id, playlist.name, playlist.owner, playlist.description,
                  playlist.is_public, json.dumps(playlist.songs),
                  playlist.created_at, playlist.updated_at))

    def get_playlist(self, playlist_id: str) -> Optional[Playlist]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM playlists WHERE id = ?", (playlist_id,)).fetchone()
            return self._row_to_playlist(row) if row else None

    def get_playlists_by_owner(self, owner_id: str) -> List[Playlist]:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM playlists WHERE owner = ? ORDER BY updated_at DESC", (owner_id,)
            )
            return [self._row_to_playlist(row) for row in cursor.fetchall()]

    def get_public_playlists(self, query: Optional[str] = None) -> List[Playlist]:
        with self._get_connection() as conn:
            if query:
                like = f"%{query}%"
                cursor = conn.execute("""
                    SELECT * FROM playlists
                    WHERE is_public = 1 AND (name LIKE ? OR description LIKE ?)
                    ORDER BY updated_at DESC
                """, (like, like))
            else:
                cursor = conn.execute(
                    "SELECT * FROM playlists WHERE is_public = 1 ORDER BY updated_at DESC"
                )
            return [self._row_to_playlist(row) for row in cursor.fetchall()]

    def delete_playlist(self, playlist_id: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM playlists WHERE id = ?", (playlist_id,))
            return cursor.rowcount > 0

    def _row_to_playlist(self, row: sqlite3.Row) -> Playlist:
        data = dict(row)
        data["is_public"] = bool(data.get("is_public"))
        data["songs"] = json.loads(data.get("songs") or "[]")
        return Playlist.from_dict(data)

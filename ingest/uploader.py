"""
Upload pipeline: validate, store, read tags, persist the song record.
"""

import logging
import os
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional

from shared.constants import SUPPORTED_AUDIO_MIME_TYPES, MAX_UPLOAD_SIZE, DEFAULT_COVER_ART
from shared.database import DatabaseManager
from shared.errors import UploadRejectedError
from shared.models import Song
from ingest.audio import AudioProcessor
from ingest.storage import LocalStorageProvider

logger = logging.getLogger(__name__)

# Browsers and test clients send these when they cannot guess a type
GENERIC_MIME_TYPES = {"", "application/octet-stream"}

OVERRIDE_FIELDS = ("title", "artist", "album", "genre", "release_date")


class UploadEngine:
    """Handles verification and ingestion of uploaded audio files."""

    def __init__(self, db: DatabaseManager, storage: LocalStorageProvider,
                 max_size: int = MAX_UPLOAD_SIZE):
        self.db = db
        self.storage = storage
        self.max_size = max_size

    def validate(self, filename: str, mimetype: Optional[str], size: Optional[int]) -> str:
        """
        Check an upload against the type whitelist and size limit.

        Returns:
            The lower-cased file extension

        Raises:
            UploadRejectedError: unsupported type or oversized file
        """
        if not filename:
            raise UploadRejectedError("No file uploaded")
        ext = Path(filename).suffix.lower()
        if not AudioProcessor.is_supported_format(filename):
            raise UploadRejectedError("Invalid file type. Only FLAC, WAV, and MP3 files are allowed.")
        mime = (mimetype or "").split(";")[0].strip().lower()
        if mime not in GENERIC_MIME_TYPES and mime not in SUPPORTED_AUDIO_MIME_TYPES:
            raise UploadRejectedError("Invalid file type. Only FLAC, WAV, and MP3 files are allowed.")
        if size is not None and size > self.max_size:
            raise UploadRejectedError(
                f"File too large. Maximum size is {self.max_size // (1024 * 1024)}MB.",
                status_code=413,
            )
        return ext

    @staticmethod
    def _stream_size(stream: BinaryIO) -> Optional[int]:
        try:
            pos = stream.tell()
            stream.seek(0, os.SEEK_END)
            size = stream.tell()
            stream.seek(pos)
            return size
        except (AttributeError, OSError):
            return None

    def ingest_stream(self, stream: BinaryIO, filename: str, mimetype: Optional[str],
                      owner_id: str, overrides: Optional[Dict[str, str]] = None) -> Song:
        """
        Validate and store an uploaded file, then create its song record.

        Nothing is written to storage or the database if validation fails.
        """
        ext = self.validate(filename, mimetype, self._stream_size(stream))
        audio_file = self.storage.save_song(stream, ext)
        return self._register(audio_file, filename, owner_id, overrides)

    def import_file(self, path: Path, owner_id: str,
                    overrides: Optional[Dict[str, str]] = None) -> Song:
        """Ingest a file already on disk (bulk import)."""
        path = Path(path)
        self.validate(path.name, None, path.stat().st_size)
        audio_file = self.storage.import_song(path)
        return self._register(audio_file, path.name, owner_id, overrides)

    def _register(self, audio_file: str, original_name: str, owner_id: str,
                  overrides: Optional[Dict[str, str]]) -> Song:
        stored_path = str(self.storage.song_path(audio_file))
        cover_file = None
        try:
            meta = AudioProcessor.extract_metadata(stored_path)
            cover = AudioProcessor.extract_cover_art(stored_path)
            if cover:
                cover_file = self.storage.save_cover(cover.data, cover.extension)

            values = {k: meta.get(k) for k in OVERRIDE_FIELDS}
            for key, value in (overrides or {}).items():
                if key in OVERRIDE_FIELDS and value:
                    values[key] = value.strip()

            song = Song(
                id=Song.generate_id(),
                title=values['title'] or Path(original_name).stem,
                artist=values['artist'] or "Unknown Artist",
                album=values['album'] or "",
                genre=values['genre'] or "Unknown Genre",
                release_date=values['release_date'],
                duration=meta['duration'],
                audio_file=audio_file,
                cover_art=cover_file or DEFAULT_COVER_ART,
                added_by=owner_id,
                bitrate=meta['bitrate'],
                format=AudioProcessor.format_tag(audio_file),
                has_dolby_atmos=AudioProcessor.has_dolby_atmos(meta),
            )
            self.db.add_song(song)
        except Exception:
            # Leave no orphaned files behind a failed record
            self.storage.delete_song(audio_file)
            if cover_file:
                self.storage.delete_cover(cover_file)
            raise

        logger.info(f"Uploaded '{song.title}' by {song.artist} ({song.format}, {song.bitrate}kbps)")
        return song

    def scan_directory(self, path: str) -> List[Path]:
        """
        Recursively scan directory for supported audio files.
        """
        files = []
        path_obj = Path(path).expanduser().resolve()

        if not path_obj.exists():
            return []

        if path_obj.is_file():
            if AudioProcessor.is_supported_format(str(path_obj)):
                return [path_obj]
            return []

        for root, _, filenames in os.walk(str(path_obj)):
            for filename in sorted(filenames):
                file_path = Path(root) / filename
                if AudioProcessor.is_supported_format(str(file_path)):
                    files.append(file_path)
        return files

"""
Local filesystem storage for uploaded songs and extracted cover art.
"""

import logging
import os
import shutil
import time
import uuid
from pathlib import Path
from typing import BinaryIO, Optional

from shared.constants import DEFAULT_COVER_ART

logger = logging.getLogger(__name__)

DEFAULT_COVER_SIZE = 300
DEFAULT_COVER_COLOR = (88, 28, 135, 255)


class LocalStorageProvider:
    """
    Stores audio files under `songs_dir` and covers under `covers_dir`.
    Files are referenced by name only; names never contain path separators.
    """

    def __init__(self, songs_dir: Path, covers_dir: Path):
        self.songs_dir = Path(songs_dir).expanduser().absolute()
        self.covers_dir = Path(covers_dir).expanduser().absolute()
        self.songs_dir.mkdir(parents=True, exist_ok=True)
        self.covers_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def generate_filename(extension: str, suffix: str = "") -> str:
        """Timestamped unique file name, e.g. '1718000000000-3f2a9c1e.flac'."""
        stamp = int(time.time() * 1000)
        return f"{stamp}-{uuid.uuid4().hex[:8]}{suffix}{extension.lower()}"

    def _resolve(self, root: Path, name: str) -> Optional[Path]:
        """Join a stored name onto a root, refusing anything that escapes it."""
        if not name or os.path.basename(name) != name or name in (".", ".."):
            return None
        return root / name

    def song_path(self, audio_file: str) -> Optional[Path]:
        return self._resolve(self.songs_dir, audio_file)

    def cover_path(self, cover_file: str) -> Optional[Path]:
        return self._resolve(self.covers_dir, cover_file)

    def save_song(self, stream: BinaryIO, extension: str) -> str:
        """
        Copy an uploaded stream into the songs directory.

        Returns:
            The stored file name
        """
        name = self.generate_filename(extension)
        dest = self.songs_dir / name
        with open(dest, 'wb') as f:
            shutil.copyfileobj(stream, f)
        return name

    def import_song(self, source: Path) -> str:
        """Copy a local file into the songs directory (bulk import)."""
        name = self.generate_filename(Path(source).suffix)
        shutil.copy2(source, self.songs_dir / name)
        return name

    def save_cover(self, data: bytes, extension: str) -> str:
        name = self.generate_filename(extension, suffix="-cover")
        (self.covers_dir / name).write_bytes(data)
        return name

    def song_exists(self, audio_file: str) -> bool:
        path = self.song_path(audio_file)
        return path is not None and path.is_file()

    def delete_song(self, audio_file: str) -> bool:
        path = self.song_path(audio_file)
        if path is None or not path.exists():
            return False
        os.remove(path)
        return True

    def delete_cover(self, cover_file: str) -> bool:
        if not cover_file or cover_file == DEFAULT_COVER_ART:
            return False
        path = self.cover_path(cover_file)
        if path is None or not path.exists():
            return False
        os.remove(path)
        return True

    def default_cover_path(self) -> Path:
        """Path of the fallback cover, created on first use."""
        path = self.covers_dir / DEFAULT_COVER_ART
        if not path.exists():
            from PIL import Image
            image = Image.new('RGBA', (DEFAULT_COVER_SIZE, DEFAULT_COVER_SIZE), DEFAULT_COVER_COLOR)
            image.save(path, 'PNG')
            logger.info(f"Generated default cover at {path}")
        return path

"""
Audio file processing utilities.

This module handles tag and stream-info extraction and embedded cover art.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any
from mutagen import File as MutagenFile, MutagenError
from mutagen.id3 import ID3, ID3NoHeaderError
from mutagen.mp3 import MP3
from mutagen.flac import FLAC
from mutagen.wave import WAVE
from pathlib import Path

from shared.constants import (
    SUPPORTED_AUDIO_FORMATS,
    DEFAULT_BITRATE,
    DOLBY_ATMOS_MIN_CHANNELS,
)

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}


@dataclass
class CoverArt:
    """Embedded picture data and its MIME type."""
    data: bytes
    mime: str = "image/jpeg"

    @property
    def extension(self) -> str:
        return IMAGE_EXTENSIONS.get((self.mime or "").lower(), ".jpg")


class AudioProcessor:
    """Handler for audio file operations."""

    @staticmethod
    def is_supported_format(file_path: str) -> bool:
        """
        Check if file format is supported.

        Args:
            file_path: Path or file name of an audio file

        Returns:
            True if format is supported
        """
        ext = Path(file_path).suffix.lower()
        return ext in SUPPORTED_AUDIO_FORMATS

    @staticmethod
    def format_tag(file_path: str) -> str:
        """Upper-case format tag from the extension, e.g. 'FLAC'."""
        return Path(file_path).suffix.upper().lstrip('.') or "UNKNOWN"

    @staticmethod
    def extract_metadata(file_path: str) -> Dict[str, Any]:
        """
        Extract tags and stream info from an audio file using mutagen.

        Args:
            file_path: Path to audio file

        Returns:
            Dictionary with metadata:
                - title, artist, album, genre, release_date: tag values or None
                - duration: Duration in seconds
                - bitrate: Bitrate in kbps
                - channels: Channel count
                - container: 'FLAC', 'WAV', 'MP3' or None
        """
        metadata = {
            'title': None,
            'artist': None,
            'album': None,
            'genre': None,
            'release_date': None,
            'duration': 0.0,
            'bitrate': DEFAULT_BITRATE,
            'channels': 2,
            'container': None,
        }
        try:
            audio = MutagenFile(file_path, easy=False)
        except MutagenError as e:
            logger.warning(f"Failed to read audio file {file_path}: {e}")
            return metadata
        if audio is None:
            logger.warning(f"Unrecognized audio file: {file_path}")
            return metadata

        info = audio.info
        metadata['duration'] = float(getattr(info, 'length', 0) or 0)
        bitrate = getattr(info, 'bitrate', 0) or 0
        if bitrate:
            metadata['bitrate'] = int(round(bitrate / 1000))
        metadata['channels'] = int(getattr(info, 'channels', 2) or 2)

        # MP3 and WAV both carry ID3 frames
        if isinstance(audio, (MP3, WAVE)):
            metadata['container'] = 'MP3' if isinstance(audio, MP3) else 'WAV'
            tags = audio.tags
            if tags:
                metadata['title'] = AudioProcessor._id3_text(tags, 'TIT2')
                metadata['artist'] = AudioProcessor._id3_text(tags, 'TPE1')
                metadata['album'] = AudioProcessor._id3_text(tags, 'TALB')
                metadata['genre'] = AudioProcessor._id3_text(tags, 'TCON')
                metadata['release_date'] = AudioProcessor._id3_text(tags, 'TDRC')

        elif isinstance(audio, FLAC):
            metadata['container'] = 'FLAC'
            if audio.tags:
                metadata['title'] = AudioProcessor._vorbis_text(audio.tags, 'title')
                metadata['artist'] = AudioProcessor._vorbis_text(audio.tags, 'artist')
                metadata['album'] = AudioProcessor._vorbis_text(audio.tags, 'album')
                metadata['genre'] = AudioProcessor._vorbis_text(audio.tags, 'genre')
                metadata['release_date'] = AudioProcessor._vorbis_text(audio.tags, 'date')

        return metadata

    @staticmethod
    def _id3_text(tags, frame: str) -> Optional[str]:
        value = tags.get(frame)
        text = str(value).strip() if value is not None else ""
        return text or None

    @staticmethod
    def _vorbis_text(tags, key: str) -> Optional[str]:
        values = tags.get(key)
        if not values:
            return None
        return str(values[0]).strip() or None

    @staticmethod
    def has_dolby_atmos(metadata: Dict[str, Any]) -> bool:
        """Six or more channels in a lossless (FLAC or WAV) container."""
        return (metadata.get('channels', 0) >= DOLBY_ATMOS_MIN_CHANNELS
                and metadata.get('container') in ('FLAC', 'WAV'))

    @staticmethod
    def extract_cover_art(file_path: str) -> Optional[CoverArt]:
        """
        Extract embedded album art from audio file.

        Args:
            file_path: Path to audio file

        Returns:
            CoverArt, or None if no cover art found
        """
        ext = Path(file_path).suffix.lower()
        try:
            if ext == '.mp3':
                try:
                    tags = ID3(file_path)
                except ID3NoHeaderError:
                    return None
                return AudioProcessor._first_apic(tags)

            elif ext == '.wav':
                audio = WAVE(file_path)
                if audio.tags:
                    return AudioProcessor._first_apic(audio.tags)

            elif ext == '.flac':
                audio = FLAC(file_path)
                if audio.pictures:
                    picture = audio.pictures[0]
                    return CoverArt(data=picture.data, mime=picture.mime or "image/jpeg")

            return None

        except MutagenError as e:
            logger.warning(f"Error extracting cover art from {file_path}: {e}")
            return None

    @staticmethod
    def _first_apic(tags) -> Optional[CoverArt]:
        # Look for APIC frames (album pictures)
        for key in tags.keys():
            if key.startswith('APIC'):
                frame = tags[key]
                return CoverArt(data=frame.data, mime=frame.mime or "image/jpeg")
        return None

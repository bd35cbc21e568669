"""Shared builders for the test suite."""

import io
import wave
from pathlib import Path

from shared.models import Song


def register(client, username, password="hunter22"):
    """Register a user and return (user dict, auth headers)."""
    response = client.post('/api/users/register', json={
        "username": username,
        "email": f"{username}@example.com",
        "password": password,
    })
    assert response.status_code == 201
    data = response.get_json()
    return data['user'], {"Authorization": f"Bearer {data['token']}"}


def make_wav(path: Path, channels: int = 2, frames: int = 4800, rate: int = 48000) -> Path:
    with wave.open(str(path), 'wb') as w:
        w.setnchannels(channels)
        w.setsampwidth(2)
        w.setframerate(rate)
        w.writeframes(b"\x00\x00" * channels * frames)
    return path


def wav_bytes(channels: int = 2) -> bytes:
    buffer = io.BytesIO()
    with wave.open(buffer, 'wb') as w:
        w.setnchannels(channels)
        w.setsampwidth(2)
        w.setframerate(48000)
        w.writeframes(b"\x00\x00" * channels * 4800)
    return buffer.getvalue()


def store_song(library, owner_id, payload: bytes, ext=".flac", **fields) -> Song:
    """Put raw bytes in the songs directory and register a record for them."""
    name = library.storage.generate_filename(ext)
    (library.storage.songs_dir / name).write_bytes(payload)
    values = dict(
        id=Song.generate_id(),
        title="Song",
        artist="Artist",
        album="Album",
        duration=180.0,
        audio_file=name,
        added_by=owner_id,
    )
    values.update(fields)
    song = Song(**values)
    library.db.add_song(song)
    return song

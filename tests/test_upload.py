import io

import pytest

from shared import api
from shared.errors import UploadRejectedError
from ingest.audio import AudioProcessor
from tests.helpers import make_wav, register, wav_bytes


def _upload(client, headers, data, filename, mimetype, **fields):
    payload = {"audioFile": (io.BytesIO(data), filename, mimetype)}
    payload.update(fields)
    return client.post('/api/songs/upload', data=payload, headers=headers,
                       content_type='multipart/form-data')


def test_unsupported_type_rejected_before_any_record(client, library):
    _, headers = register(client, "alice")

    response = _upload(client, headers, b"not audio", "notes.txt", "text/plain")
    assert response.status_code == 400
    assert "Invalid file type" in response.get_json()['message']
    assert library.list_songs() == []
    assert list(library.storage.songs_dir.iterdir()) == []


def test_mismatched_mime_rejected(client, library):
    _, headers = register(client, "alice")
    response = _upload(client, headers, b"\x00" * 32, "song.flac", "video/mp4")
    assert response.status_code == 400
    assert library.list_songs() == []


def test_upload_requires_auth(client):
    response = client.post('/api/songs/upload', data={
        "audioFile": (io.BytesIO(b"abc"), "a.flac", "audio/flac"),
    }, content_type='multipart/form-data')
    assert response.status_code == 401


def test_upload_without_file(client):
    _, headers = register(client, "alice")
    response = client.post('/api/songs/upload', data={}, headers=headers,
                           content_type='multipart/form-data')
    assert response.status_code == 400
    assert response.get_json() == {"message": "No file uploaded"}


def test_upload_wav_reads_stream_info(client, library):
    user, headers = register(client, "alice")

    response = _upload(client, headers, wav_bytes(channels=2), "Take Five.wav", "audio/wav",
                       artist="Dave Brubeck")
    assert response.status_code == 201
    song = response.get_json()
    assert song['title'] == "Take Five"
    assert song['artist'] == "Dave Brubeck"
    assert song['format'] == "WAV"
    assert song['added_by'] == user['id']
    assert song['duration'] == pytest.approx(0.1, abs=0.01)
    assert song['has_dolby_atmos'] is False
    assert song['cover_art'] == "default-cover.png"
    assert library.storage.song_exists(song['audio_file'])


def test_unreadable_audio_falls_back_to_defaults(client):
    _, headers = register(client, "alice")
    response = _upload(client, headers, b"\x01" * 256, "mystery.flac", "audio/flac")
    assert response.status_code == 201
    song = response.get_json()
    assert song['title'] == "mystery"
    assert song['artist'] == "Unknown Artist"
    assert song['bitrate'] == 1411


def test_upload_too_large(client, config):
    config.max_upload_size = 1024
    api.configure(config)
    _, headers = register(client, "alice")

    response = _upload(client, headers, b"\x00" * 4096, "big.flac", "audio/flac")
    assert response.status_code == 413
    assert "File too large" in response.get_json()['message']


def test_multichannel_lossless_is_flagged_atmos(tmp_path, library):
    path = make_wav(tmp_path / "surround.wav", channels=6)

    meta = AudioProcessor.extract_metadata(str(path))
    assert meta['channels'] == 6
    assert meta['container'] == "WAV"
    assert AudioProcessor.has_dolby_atmos(meta)

    song = library.uploader.import_file(path, owner_id="u1")
    assert song.has_dolby_atmos
    assert song.bitrate == 6 * 16 * 48000 // 1000


def test_validate_enforces_size_limit(library):
    library.uploader.max_size = 10
    with pytest.raises(UploadRejectedError) as excinfo:
        library.uploader.validate("a.mp3", "audio/mpeg", 11)
    assert excinfo.value.status_code == 413


def test_scan_directory_finds_supported_files(tmp_path, library):
    (tmp_path / "album").mkdir()
    make_wav(tmp_path / "album" / "01.wav")
    (tmp_path / "album" / "cover.jpg").write_bytes(b"jpg")
    (tmp_path / "album" / "02.mp3").write_bytes(b"mp3")

    found = library.uploader.scan_directory(str(tmp_path / "album"))
    assert sorted(p.name for p in found) == ["01.wav", "02.mp3"]


def test_owner_deletes_song_and_file(client, library):
    _, alice = register(client, "alice")
    _, bob = register(client, "bob")
    song = _upload(client, alice, wav_bytes(), "a.wav", "audio/wav").get_json()

    assert client.delete(f"/api/songs/{song['id']}", headers=bob).status_code == 403
    assert library.storage.song_exists(song['audio_file'])

    assert client.delete(f"/api/songs/{song['id']}", headers=alice).status_code == 200
    assert not library.storage.song_exists(song['audio_file'])
    assert client.get(f"/api/songs/{song['id']}").status_code == 404


def test_edit_and_search_songs(client):
    _, alice = register(client, "alice")
    song = _upload(client, alice, wav_bytes(), "a.wav", "audio/wav").get_json()

    response = client.put(f"/api/songs/{song['id']}", json={"title": "So What", "artist": "Miles Davis"},
                          headers=alice)
    assert response.get_json()['title'] == "So What"

    found = client.get('/api/songs/search?q=mile').get_json()
    assert [s['id'] for s in found] == [song['id']]
    assert client.get('/api/songs/search?q=coltrane').get_json() == []
    assert len(client.get('/api/songs').get_json()) == 1

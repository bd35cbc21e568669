import pytest

from shared.streaming import RangeNotSatisfiable, iter_file_range, parse_range_header
from tests.helpers import register, store_song

PAYLOAD = bytes(range(256)) * 4  # 1024 bytes
TOTAL = 1000


def test_parse_range_bounded():
    r = parse_range_header("bytes=0-99", TOTAL)
    assert (r.start, r.end, r.length) == (0, 99, 100)
    assert r.content_range() == "bytes 0-99/1000"


def test_parse_range_open_end_runs_to_last_byte():
    r = parse_range_header("bytes=900-", TOTAL)
    assert (r.start, r.end) == (900, 999)


def test_parse_range_missing_start_means_zero():
    r = parse_range_header("bytes=-500", TOTAL)
    assert (r.start, r.end) == (0, 500)


def test_parse_range_clamps_end_past_file():
    r = parse_range_header("bytes=10-5000", TOTAL)
    assert r.end == 999


def test_parse_range_accepts_whitespace_and_case():
    r = parse_range_header("Bytes= 5 - 9", TOTAL)
    assert (r.start, r.end) == (5, 9)


def test_parse_range_absent_header():
    assert parse_range_header(None, TOTAL) is None
    assert parse_range_header("", TOTAL) is None


@pytest.mark.parametrize("header", [
    "bytes=1000-",
    "bytes=50-10",
    "bytes=0-1,5-6",
    "items=0-10",
    "bytes=abc",
    "bytes=-",
    "bytes=0-1, 0-1",
])
def test_parse_range_unsatisfiable(header):
    with pytest.raises(RangeNotSatisfiable):
        parse_range_header(header, TOTAL)


def test_iter_file_range_reports_completion_only_when_fully_read(tmp_path):
    path = tmp_path / "a.bin"
    path.write_bytes(PAYLOAD)
    calls = []

    chunks = list(iter_file_range(str(path), 10, 100, chunk_size=32, on_complete=lambda: calls.append(1)))
    assert b"".join(chunks) == PAYLOAD[10:110]
    assert calls == [1]

    partial = iter_file_range(str(path), 0, 100, chunk_size=32, on_complete=lambda: calls.append(2))
    next(partial)
    partial.close()
    assert calls == [1]


def test_stream_range_request(client, library):
    user, _ = register(client, "alice")
    song = store_song(library, user['id'], PAYLOAD[:TOTAL])

    response = client.get(f'/api/songs/{song.id}/stream', headers={"Range": "bytes=0-99"})
    assert response.status_code == 206
    assert response.headers['Content-Range'] == "bytes 0-99/1000"
    assert response.headers['Content-Length'] == "100"
    assert response.headers['Accept-Ranges'] == "bytes"
    assert response.headers['Content-Type'] == "audio/flac"
    assert response.headers['Access-Control-Allow-Origin'] == "*"
    assert response.data == PAYLOAD[:100]


def test_stream_full_file(client, library):
    user, _ = register(client, "alice")
    song = store_song(library, user['id'], PAYLOAD[:TOTAL], ext=".mp3")

    response = client.get(f'/api/songs/{song.id}/stream')
    assert response.status_code == 200
    assert response.headers['Content-Length'] == str(TOTAL)
    assert response.headers['Content-Type'] == "audio/mpeg"
    assert 'Content-Range' not in response.headers
    assert response.data == PAYLOAD[:TOTAL]


def test_stream_unsatisfiable_range(client, library):
    user, _ = register(client, "alice")
    song = store_song(library, user['id'], PAYLOAD[:TOTAL])

    response = client.get(f'/api/songs/{song.id}/stream', headers={"Range": "bytes=2000-"})
    assert response.status_code == 416
    assert response.headers['Content-Range'] == "bytes */1000"
    assert library.get_song(song.id).play_count == 0


def test_stream_missing_file(client, library):
    user, _ = register(client, "alice")
    song = store_song(library, user['id'], PAYLOAD[:TOTAL])
    library.storage.delete_song(song.audio_file)

    response = client.get(f'/api/songs/{song.id}/stream')
    assert response.status_code == 404
    assert response.get_json() == {"message": "Audio file not found"}


def test_stream_unknown_song(client):
    response = client.get('/api/songs/does-not-exist/stream')
    assert response.status_code == 404
    assert response.get_json() == {"message": "Song not found"}


def test_stream_counts_plays_per_request(client, library):
    user, _ = register(client, "alice")
    song = store_song(library, user['id'], PAYLOAD[:TOTAL])

    client.get(f'/api/songs/{song.id}/stream').data
    client.get(f'/api/songs/{song.id}/stream', headers={"Range": "bytes=500-"}).data
    assert library.get_song(song.id).play_count == 2


def test_stream_ignores_mid_file_ranges_when_configured(client, library):
    library.config.count_range_requests = False
    user, _ = register(client, "alice")
    song = store_song(library, user['id'], PAYLOAD[:TOTAL])

    client.get(f'/api/songs/{song.id}/stream', headers={"Range": "bytes=0-"}).data
    client.get(f'/api/songs/{song.id}/stream', headers={"Range": "bytes=500-"}).data
    assert library.get_song(song.id).play_count == 1


def test_cover_falls_back_to_default(client):
    response = client.get('/api/songs/cover/missing.jpg')
    assert response.status_code == 200
    assert response.headers['Content-Type'] == "image/png"

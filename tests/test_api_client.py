from unittest.mock import MagicMock

import pytest

from player.api_client import ApiError, CadenzaClient


def _response(status, payload):
    response = MagicMock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.reason = "Error"
    response.json.return_value = payload
    return response


@pytest.fixture
def client(monkeypatch):
    client = CadenzaClient("http://music.local:5002/")
    calls = []

    def fake_request(method, url, headers=None, **kwargs):
        calls.append((method, url, headers, kwargs))
        return client.responses.pop(0)

    monkeypatch.setattr(client._session, "request", fake_request)
    client.responses = []
    client.calls = calls
    return client


def test_login_stores_token_for_later_calls(client):
    client.responses = [
        _response(200, {"token": "tok", "user": {"id": "u1", "username": "alice"}}),
        _response(200, {"listeningTime": 30, "formattedTime": "0m"}),
    ]
    assert client.login("alice", "pw")["id"] == "u1"
    client.add_listening_time(30)

    method, url, headers, kwargs = client.calls[-1]
    assert (method, url) == ("POST", "http://music.local:5002/api/users/listening-time")
    assert headers == {"Authorization": "Bearer tok"}
    assert kwargs["json"] == {"timeInSeconds": 30}
    assert kwargs["timeout"] == client.timeout


def test_error_response_raises_api_error(client):
    client.responses = [_response(401, {"message": "Please authenticate."})]
    with pytest.raises(ApiError) as excinfo:
        client.me()
    assert excinfo.value.status == 401
    assert excinfo.value.message == "Please authenticate."


def test_songs_are_parsed_and_urls_built(client):
    client.responses = [_response(200, [{
        "id": "s1", "title": "Naima", "artist": "John Coltrane", "album": "Giant Steps",
        "duration": 261.0, "audio_file": "1-a.flac", "added_by": "u1", "cover_art": "1-a-cover.jpg",
    }])]
    songs = client.list_songs()
    assert songs[0].title == "Naima"
    assert client.stream_url(songs[0]) == "http://music.local:5002/api/songs/s1/stream"
    assert client.cover_url(songs[0]) == "http://music.local:5002/api/songs/cover/1-a-cover.jpg"

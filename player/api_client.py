"""
HTTP client for the Cadenza API.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from shared.constants import DEFAULT_NETWORK_TIMEOUT
from shared.models import Playlist, Song

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-2xx response from the server."""

    def __init__(self, status: int, message: str):
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message


class CadenzaClient:
    """Thin wrapper over the REST endpoints. Holds the bearer token after login."""

    def __init__(self, base_url: str, token: Optional[str] = None,
                 timeout: float = DEFAULT_NETWORK_TIMEOUT):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self._session = requests.Session()

    def _headers(self) -> Dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    def _request(self, method: str, path: str, **kwargs) -> Any:
        kwargs.setdefault('timeout', self.timeout)
        response = self._session.request(method, f"{self.base_url}{path}",
                                         headers=self._headers(), **kwargs)
        if not response.ok:
            try:
                message = response.json().get('message', response.reason)
            except ValueError:
                message = response.reason or response.text
            logger.debug(f"{method} {path} failed: {response.status_code} {message}")
            raise ApiError(response.status_code, message)
        return response.json()

    # --- Users ---

    def register(self, username: str, email: str, password: str) -> Dict[str, Any]:
        data = self._request('POST', '/api/users/register',
                             json={"username": username, "email": email, "password": password})
        self.token = data['token']
        return data['user']

    def login(self, login: str, password: str) -> Dict[str, Any]:
        data = self._request('POST', '/api/users/login',
                             json={"login": login, "password": password})
        self.token = data['token']
        return data['user']

    def me(self) -> Dict[str, Any]:
        return self._request('GET', '/api/users/me')

    def add_listening_time(self, seconds: int) -> Dict[str, Any]:
        """Returns {'listeningTime': total, 'formattedTime': '1h 2m'}."""
        return self._request('POST', '/api/users/listening-time', json={"timeInSeconds": seconds})

    def get_listening_time(self) -> Dict[str, Any]:
        return self._request('GET', '/api/users/listening-time')

    # --- Songs ---

    def list_songs(self) -> List[Song]:
        return [Song.from_dict(s) for s in self._request('GET', '/api/songs')]

    def search_songs(self, query: str) -> List[Song]:
        return [Song.from_dict(s) for s in self._request('GET', '/api/songs/search', params={"q": query})]

    def get_song(self, song_id: str) -> Song:
        return Song.from_dict(self._request('GET', f'/api/songs/{song_id}'))

    def upload_song(self, path: Path, **fields: str) -> Song:
        path = Path(path)
        with open(path, 'rb') as f:
            data = self._request('POST', '/api/songs/upload',
                                 files={"audioFile": (path.name, f)},
                                 data={k: v for k, v in fields.items() if v})
        return Song.from_dict(data)

    def delete_song(self, song_id: str) -> None:
        self._request('DELETE', f'/api/songs/{song_id}')

    def stream_url(self, song: Song) -> str:
        return f"{self.base_url}/api/songs/{song.id}/stream"

    def cover_url(self, song: Song) -> str:
        return f"{self.base_url}/api/songs/cover/{song.cover_art}"

    # --- Playlists ---

    def create_playlist(self, name: str, description: str = "", is_public: bool = False) -> Playlist:
        data = self._request('POST', '/api/playlists',
                             json={"name": name, "description": description, "isPublic": is_public})
        return Playlist.from_dict(data)

    def my_playlists(self) -> List[Dict[str, Any]]:
        return self._request('GET', '/api/playlists/my-playlists')

    def public_playlists(self) -> List[Dict[str, Any]]:
        return self._request('GET', '/api/playlists/public')

    def get_playlist(self, playlist_id: str) -> Dict[str, Any]:
        """Playlist with its songs expanded to full records."""
        return self._request('GET', f'/api/playlists/{playlist_id}')

    def update_playlist(self, playlist_id: str, **changes: Any) -> Playlist:
        return Playlist.from_dict(self._request('PUT', f'/api/playlists/{playlist_id}', json=changes))

    def delete_playlist(self, playlist_id: str) -> None:
        self._request('DELETE', f'/api/playlists/{playlist_id}')

    def add_to_playlist(self, playlist_id: str, song_id: str) -> Playlist:
        data = self._request('POST', f'/api/playlists/{playlist_id}/songs', json={"songId": song_id})
        return Playlist.from_dict(data)

    def remove_from_playlist(self, playlist_id: str, song_id: str) -> Playlist:
        return Playlist.from_dict(self._request('DELETE', f'/api/playlists/{playlist_id}/songs/{song_id}'))

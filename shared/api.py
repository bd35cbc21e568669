"""
HTTP API for Cadenza.
Serves auth, song and playlist CRUD, byte-range audio streaming and cover art
to the player clients.
"""

import os
import logging
from functools import wraps
from typing import Optional

from flask import Flask, request, jsonify, send_file, Response, stream_with_context, g
from flask_socketio import SocketIO
from flask_cors import CORS
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from shared.config import ServerConfig
from shared.errors import CadenzaError, UnauthorizedError, UploadRejectedError
from shared.library import LibraryManager
from shared.models import User, format_listening_time
from shared.streaming import RangeNotSatisfiable, content_type_for, iter_file_range, parse_range_header

logger = logging.getLogger(__name__)

STREAM_CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, OPTIONS',
    'Access-Control-Allow-Headers': 'Range',
    'Access-Control-Expose-Headers': 'Content-Range, Content-Length, Accept-Ranges',
}

_env_config = ServerConfig.from_env()

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = _env_config.max_upload_size
CORS(app, resources={r"/api/*": {"origins": _env_config.allowed_origins}},
     expose_headers=["Content-Range", "Content-Length", "Accept-Ranges"])
socketio = SocketIO(app, cors_allowed_origins="*", async_mode=os.getenv("SOCKETIO_ASYNC_MODE") or None)

# Core Services (Lazy Loaded)
server_config: Optional[ServerConfig] = None
library_manager: Optional[LibraryManager] = None


def configure(config: ServerConfig) -> None:
    """Point the API at a configuration; services are rebuilt on next use."""
    global server_config, library_manager
    server_config = config
    library_manager = None
    app.config['MAX_CONTENT_LENGTH'] = config.max_upload_size


def get_core() -> LibraryManager:
    global server_config, library_manager
    if library_manager is None:
        if server_config is None:
            server_config = _env_config
        library_manager = LibraryManager(server_config)
        logger.info(f"Library initialized at {server_config.data_path}")
    return library_manager


def notify_library_updated() -> None:
    socketio.emit('library_updated')


# --- Auth ---

def _bearer_token() -> Optional[str]:
    header = request.headers.get('Authorization', '')
    if header.lower().startswith('bearer '):
        return header[7:].strip() or None
    return None


def auth_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.user = get_core().user_from_token(_bearer_token())
        return f(*args, **kwargs)
    return decorated_function


def auth_optional(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.user = None
        token = _bearer_token()
        if token:
            try:
                g.user = get_core().user_from_token(token)
            except UnauthorizedError:
                g.user = None
        return f(*args, **kwargs)
    return decorated_function


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _listening_time_payload(total: int) -> dict:
    return {"listeningTime": total, "formattedTime": format_listening_time(total)}


def _session_payload(user: User, token: str) -> dict:
    return {"token": token, "user": user.to_public_dict()}


# --- Error Handling ---

@app.errorhandler(CadenzaError)
def handle_cadenza_error(error: CadenzaError):
    return jsonify(error.to_dict()), error.status_code


@app.errorhandler(RequestEntityTooLarge)
def handle_too_large(error):
    limit = (server_config or _env_config).max_upload_size
    return jsonify({"message": f"File too large. Maximum size is {limit // (1024 * 1024)}MB."}), 413


@app.errorhandler(Exception)
def handle_unexpected_error(error):
    if isinstance(error, HTTPException):
        return jsonify({"message": error.description}), error.code
    logger.exception(f"Unhandled error on {request.method} {request.path}")
    return jsonify({"message": "Internal server error"}), 500


@app.route('/api/health')
def health_check():
    return jsonify({"status": "healthy"})


@app.route('/')
def home():
    return jsonify({
        "status": "online",
        "service": "Cadenza API",
        "version": "1.0.0"
    })


# --- User Endpoints ---

@app.route('/api/users/register', methods=['POST'])
def register():
    lib = get_core()
    data = _json_body()
    user = lib.register_user(data.get('username'), data.get('email'), data.get('password'))
    return jsonify(_session_payload(user, lib.issue_token(user))), 201


@app.route('/api/users/login', methods=['POST'])
def login():
    data = _json_body()
    user, token = get_core().login(data.get('login') or data.get('username') or data.get('email'),
                                   data.get('password'))
    return jsonify(_session_payload(user, token))


@app.route('/api/users/me', methods=['GET'])
@auth_required
def get_profile():
    return jsonify(g.user.to_public_dict())


@app.route('/api/users/profile', methods=['PUT'])
@auth_required
def update_profile():
    user = get_core().update_profile(g.user, _json_body())
    return jsonify(user.to_public_dict())


@app.route('/api/users/listening-time', methods=['POST'])
@auth_required
def add_listening_time():
    total = get_core().add_listening_time(g.user.id, _json_body().get('timeInSeconds'))
    return jsonify(_listening_time_payload(total))


@app.route('/api/users/listening-time', methods=['GET'])
@auth_required
def get_listening_time():
    user = get_core().get_user(g.user.id)
    return jsonify(_listening_time_payload(user.listening_time))


# --- Song Endpoints ---

@app.route('/api/songs/upload', methods=['POST'])
@auth_required
def upload_song():
    lib = get_core()
    upload = request.files.get('audioFile') or request.files.get('file')
    if upload is None or not upload.filename:
        raise UploadRejectedError("No file uploaded")

    overrides = {
        'title': request.form.get('title'),
        'artist': request.form.get('artist'),
        'album': request.form.get('album'),
        'genre': request.form.get('genre'),
        'release_date': request.form.get('releaseDate') or request.form.get('release_date'),
    }
    song = lib.uploader.ingest_stream(upload.stream, upload.filename, upload.mimetype,
                                      g.user.id, overrides)
    notify_library_updated()
    return jsonify(song.to_dict()), 201


@app.route('/api/songs', methods=['GET'])
def list_songs():
    return jsonify([s.to_dict() for s in get_core().list_songs()])


@app.route('/api/songs/search', methods=['GET'])
def search_songs():
    query = request.args.get('q', '')
    return jsonify([s.to_dict() for s in get_core().search_songs(query)])


@app.route('/api/songs/<song_id>', methods=['GET'])
def get_song(song_id):
    return jsonify(get_core().get_song(song_id).to_dict())


@app.route('/api/songs/<song_id>', methods=['PUT'])
@auth_required
def update_song(song_id):
    data = _json_body()
    if 'releaseDate' in data:
        data['release_date'] = data.pop('releaseDate')
    song = get_core().update_song(song_id, g.user, data)
    notify_library_updated()
    return jsonify(song.to_dict())


@app.route('/api/songs/<song_id>', methods=['DELETE'])
@auth_required
def delete_song(song_id):
    get_core().delete_song(song_id, g.user)
    notify_library_updated()
    return jsonify({"message": "Song deleted successfully"})


@app.route('/api/songs/<song_id>/stream', methods=['GET'])
def stream_song(song_id):
    """Serve a stored audio file with single-range support."""
    lib = get_core()
    _, path = lib.resolve_stream(song_id)
    total = path.stat().st_size

    try:
        byte_range = parse_range_header(request.headers.get('Range'), total)
    except RangeNotSatisfiable:
        logger.debug(f"[Stream] Unsatisfiable range {request.headers.get('Range')!r} for {song_id}")
        response = Response(status=416)
        response.headers['Content-Range'] = f"bytes */{total}"
        response.headers.update(STREAM_CORS_HEADERS)
        return response

    counts_as_play = lib.config.count_range_requests or byte_range is None or byte_range.start == 0
    on_complete = (lambda: lib.record_play(song_id)) if counts_as_play else None

    if byte_range is None:
        start, length, status = 0, total, 200
    else:
        start, length, status = byte_range.start, byte_range.length, 206

    body = iter_file_range(str(path), start, length, on_complete=on_complete)
    response = Response(stream_with_context(body), status=status,
                        mimetype=content_type_for(str(path)), direct_passthrough=True)
    response.headers['Content-Length'] = str(length)
    response.headers['Accept-Ranges'] = 'bytes'
    if byte_range is not None:
        response.headers['Content-Range'] = byte_range.content_range()
    response.headers.update(STREAM_CORS_HEADERS)
    logger.debug(f"[Stream] {song_id} status={status} bytes={start}+{length}/{total}")
    return response


@app.route('/api/songs/cover/<filename>', methods=['GET'])
def get_cover(filename):
    """Serve extracted cover art, or the default cover when absent."""
    path = get_core().cover_file(filename)
    return send_file(path)


# --- Playlist Endpoints ---

@app.route('/api/playlists', methods=['POST'])
@auth_required
def create_playlist():
    playlist = get_core().create_playlist(g.user, _json_body())
    return jsonify(playlist.to_dict()), 201


@app.route('/api/playlists/my-playlists', methods=['GET'])
@auth_required
def my_playlists():
    lib = get_core()
    return jsonify([lib.expand_playlist(p) for p in lib.playlists_for(g.user)])


@app.route('/api/playlists/public', methods=['GET'])
def public_playlists():
    lib = get_core()
    return jsonify([lib.expand_playlist(p) for p in lib.public_playlists()])


@app.route('/api/playlists/search', methods=['GET'])
def search_playlists():
    lib = get_core()
    query = request.args.get('q', '')
    return jsonify([lib.expand_playlist(p) for p in lib.public_playlists(query)])


@app.route('/api/playlists/<playlist_id>', methods=['GET'])
@auth_optional
def get_playlist(playlist_id):
    lib = get_core()
    return jsonify(lib.expand_playlist(lib.view_playlist(playlist_id, g.user)))


@app.route('/api/playlists/<playlist_id>', methods=['PUT'])
@auth_required
def update_playlist(playlist_id):
    playlist = get_core().update_playlist(playlist_id, g.user, _json_body())
    return jsonify(playlist.to_dict())


@app.route('/api/playlists/<playlist_id>', methods=['DELETE'])
@auth_required
def delete_playlist(playlist_id):
    get_core().delete_playlist(playlist_id, g.user)
    return jsonify({"message": "Playlist deleted successfully"})


@app.route('/api/playlists/<playlist_id>/songs', methods=['POST'])
@auth_required
def add_song_to_playlist(playlist_id):
    data = _json_body()
    playlist = get_core().add_song_to_playlist(playlist_id, g.user,
                                               data.get('songId') or data.get('song_id'))
    return jsonify(playlist.to_dict())


@app.route('/api/playlists/<playlist_id>/songs/<song_id>', methods=['DELETE'])
@auth_required
def remove_song_from_playlist(playlist_id, song_id):
    playlist = get_core().remove_song_from_playlist(playlist_id, g.user, song_id)
    return jsonify(playlist.to_dict())


# --- Server Management ---

def start_api(host: str = '0.0.0.0', port: Optional[int] = None, debug: bool = False):
    config = server_config or _env_config
    port = port or config.port
    lib = get_core()
    logger.info(f"Serving {lib.db.count_songs()} songs from {config.data_path}")
    logger.info(f"Starting SocketIO server on {host}:{port}...")
    socketio.run(app, host=host, port=port, debug=debug)


if __name__ == '__main__':
    start_api()

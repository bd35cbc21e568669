#!/usr/bin/env python3
"""
Cadenza command line.
Runs the streaming server, the library maintenance tasks and the mpv player.
"""

import asyncio
import logging
import sys
from pathlib import Path

import click
import requests
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from shared.config import ServerConfig
from shared.constants import DEFAULT_PORT
from shared.errors import CadenzaError
from shared.library import LibraryManager
from shared.models import Song

console = Console()


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _format_duration(seconds: float) -> str:
    seconds = int(seconds or 0)
    return f"{seconds // 60}:{seconds % 60:02d}"


@click.group()
@click.version_option(version="1.0.0")
@click.pass_context
def cli(ctx):
    """
    🎵 Cadenza - self-hosted lossless music streaming

    Serve your library over HTTP and manage it from the terminal.
    """
    config = ServerConfig.from_env()
    _setup_logging(config.log_level)
    ctx.obj = config


@cli.command()
@click.option('--host', default='0.0.0.0', help='Interface to bind')
@click.option('--port', type=int, default=None, help='Port (default: CADENZA_PORT)')
@click.option('--debug', is_flag=True, help='Enable Flask debug mode')
@click.pass_obj
def serve(config, host, port, debug):
    """Start the API and streaming server."""
    # Gevent must patch before the server creates sockets so streams are served concurrently
    from gevent import monkey
    monkey.patch_all()

    from shared import api

    api.configure(config)
    console.print(f"[bold green]Cadenza[/bold green] serving [cyan]{config.data_path}[/cyan]")
    api.start_api(host=host, port=port or config.port, debug=debug)


@cli.command('create-user')
@click.argument('username')
@click.argument('email')
@click.password_option()
@click.pass_obj
def create_user(config, username, email, password):
    """Register a listener account."""
    library = LibraryManager(config)
    try:
        user = library.register_user(username, email, password)
    except CadenzaError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        sys.exit(1)
    console.print(f"[green]✓[/green] Created user [bold]{user.username}[/bold] ({user.id})")


@cli.command('bulk-upload')
@click.argument('directory', type=click.Path(exists=True))
@click.option('--user', 'username', required=True, help='Owner of the uploaded songs')
@click.pass_obj
def bulk_upload(config, directory, username):
    """
    Ingest every FLAC, WAV and MP3 file under a directory.

    Files that fail validation or tagging are reported and skipped.
    """
    library = LibraryManager(config)
    owner = library.db.find_user(username)
    if not owner:
        console.print(f"[red]Error: user '{username}' not found. Run 'create-user' first.[/red]")
        sys.exit(1)

    files = library.uploader.scan_directory(directory)
    if not files:
        console.print("\n[yellow]No supported audio files found.[/yellow]")
        return

    console.print(f"\n[bold green]Starting Upload[/bold green]")
    console.print(f"Source: [cyan]{directory}[/cyan] ({len(files)} files)\n")

    uploaded, failed = 0, 0
    with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
                  console=console) as progress:
        task = progress.add_task("Uploading...", total=len(files))
        for path in files:
            progress.update(task, description=f"Uploading {Path(path).name}")
            try:
                song = library.uploader.import_file(path, owner.id)
                uploaded += 1
                progress.console.print(f"[green]✓[/green] {song.title} - {song.artist}")
            except (CadenzaError, OSError) as e:
                failed += 1
                message = e.message if isinstance(e, CadenzaError) else str(e)
                progress.console.print(f"[red]✗[/red] {Path(path).name}: {message}")
            progress.advance(task)

    console.print(f"\n[green]✅ Upload Complete![/green] {uploaded} uploaded, {failed} failed")
    console.print(f"Total songs in library: [bold]{library.db.count_songs()}[/bold]")


@cli.command('list-songs')
@click.pass_obj
def list_songs(config):
    """Print the catalog, newest first."""
    library = LibraryManager(config)
    songs = library.list_songs()
    if not songs:
        console.print("[yellow]Library is empty.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Title", style="cyan")
    table.add_column("Artist", style="green")
    table.add_column("Album")
    table.add_column("Format", style="yellow")
    table.add_column("Length", justify="right")
    table.add_column("Plays", justify="right")
    for song in songs:
        format_label = f"{song.format} Atmos" if song.has_dolby_atmos else song.format
        table.add_row(song.title, song.artist, song.album, format_label,
                      _format_duration(song.duration), str(song.play_count))
    console.print(table)
    console.print(f"\n{len(songs)} songs")


async def _play_session(client, songs, shuffle):
    from player.controller import PlaybackController
    from player.engine import MpvMediaResource
    from player.listening import ListeningTimeTracker

    resource = MpvMediaResource(loop=asyncio.get_running_loop())
    stopped = asyncio.Event()
    last_song = [None]

    def on_change(state):
        song = state.current_song
        if song is None and not state.is_playing:
            stopped.set()
        elif song is not None and song.id != last_song[0]:
            last_song[0] = song.id
            console.print(f"[green]▶[/green] {song.title} - [cyan]{song.artist}[/cyan] ({song.format})")

    controller = PlaybackController(resource, stream_url=client.stream_url, on_change=on_change)
    tracker = ListeningTimeTracker(controller, client)
    try:
        await tracker.refresh()
        console.print(f"Listening time so far: [bold]{tracker.formatted}[/bold]")
        if shuffle:
            controller.toggle_shuffle()
        controller.play_queue(songs)
        tracker.start()
        await stopped.wait()
    finally:
        await tracker.stop()
        resource.terminate()


@cli.command()
@click.option('--server', default=f"http://localhost:{DEFAULT_PORT}", help='Cadenza server URL')
@click.option('--user', 'login', required=True, help='Username or email')
@click.password_option(confirmation_prompt=False)
@click.option('--playlist', 'playlist_id', default=None, help='Play a playlist instead of the catalog')
@click.option('--shuffle', is_flag=True, help='Shuffle playback order')
def play(server, login, password, playlist_id, shuffle):
    """Stream the catalog (or a playlist) through mpv."""
    from player.api_client import ApiError, CadenzaClient

    client = CadenzaClient(server)
    try:
        client.login(login, password)
        if playlist_id:
            songs = [Song.from_dict(s) for s in client.get_playlist(playlist_id)['songs']]
        else:
            songs = client.list_songs()
    except (ApiError, requests.RequestException) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if not songs:
        console.print("[yellow]Nothing to play.[/yellow]")
        return

    try:
        asyncio.run(_play_session(client, songs, shuffle))
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped.[/yellow]")


if __name__ == '__main__':
    cli()

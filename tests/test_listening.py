import asyncio
from unittest.mock import MagicMock

from player.api_client import ApiError
from player.listening import ListeningTimeTracker


def _tracker(times, playing=True, response=None):
    controller = MagicMock()
    controller.state.is_playing = playing
    client = MagicMock()
    client.add_listening_time.return_value = response or {"listeningTime": 61, "formattedTime": "1m"}
    ticks = iter(times)
    tracker = ListeningTimeTracker(controller, client, clock=lambda: next(ticks))
    return tracker, controller, client


def test_tick_sends_whole_seconds_and_carries_fraction():
    tracker, _, client = _tracker([0.0, 1.0, 2.5, 3.0])

    async def main():
        return [await tracker.tick() for _ in range(4)]

    assert asyncio.run(main()) == [0, 1, 1, 1]
    assert [c.args for c in client.add_listening_time.call_args_list] == [(1,), (1,), (1,)]
    assert tracker.total == 61
    assert tracker.formatted == "1m"


def test_paused_controller_sends_nothing():
    tracker, _, client = _tracker([0.0, 5.0], playing=False)

    async def main():
        await tracker.tick()
        return await tracker.tick()

    assert asyncio.run(main()) == 0
    client.add_listening_time.assert_not_called()


def test_failed_flush_is_dropped():
    tracker, _, client = _tracker([0.0, 2.0, 3.0])
    client.add_listening_time.side_effect = [ApiError(500, "boom"), {"listeningTime": 1}]

    async def main():
        return [await tracker.tick() for _ in range(3)]

    assert asyncio.run(main()) == [0, 0, 1]
    # The failed 2s are not resent
    assert client.add_listening_time.call_args_list[-1].args == (1,)
    assert tracker.total == 1


def test_refresh_reads_server_total():
    tracker, _, client = _tracker([])
    client.get_listening_time.return_value = {"listeningTime": 7200, "formattedTime": "2h 0m"}

    assert asyncio.run(tracker.refresh()) == 7200
    assert tracker.formatted == "2h 0m"


def test_start_and_stop_background_task():
    controller = MagicMock()
    controller.state.is_playing = True
    client = MagicMock()
    client.add_listening_time.return_value = {"listeningTime": 1}
    tracker = ListeningTimeTracker(controller, client, interval=0.01)

    async def main():
        tracker.start()
        await asyncio.sleep(0.05)
        await tracker.stop()

    asyncio.run(main())
    assert tracker._task is None

import threading

from liarcard.services.games import scheduler


def _ticker(stop_after, calls):
    def on_tick(game_id, window_seq):
        calls.append((game_id, window_seq))
        return len(calls) < stop_after
    return on_tick


def test_scheduler_is_off_in_tests_by_default(flask_app):
    assert scheduler.start_countdown(flask_app, 1, 1, _ticker(1, [])) is None
    assert scheduler.active_countdown(1) is None


def test_countdown_ticks_until_callback_stops_it(flask_app):
    flask_app.config['ENABLE_SCHEDULER_IN_TESTS'] = True
    calls = []
    countdown = scheduler.start_countdown(flask_app, 7, 3, _ticker(3, calls))
    assert countdown.finished.wait(5)
    assert calls == [(7, 3)] * 3
    assert scheduler.active_countdown(7) is None


def test_new_window_replaces_running_countdown(flask_app):
    flask_app.config['ENABLE_SCHEDULER_IN_TESTS'] = True
    release = threading.Event()

    def slow_tick(game_id, window_seq):
        release.wait(5)
        return True

    first = scheduler.start_countdown(flask_app, 9, 1, slow_tick)
    calls = []
    second = scheduler.start_countdown(flask_app, 9, 2, _ticker(2, calls))
    assert first.cancelled.is_set()
    assert scheduler.active_countdown(9) is second
    release.set()

    assert first.finished.wait(5)
    assert second.finished.wait(5)
    assert calls == [(9, 2), (9, 2)]
    assert scheduler.active_countdown(9) is None


def test_cancel_stops_countdown(flask_app):
    flask_app.config['ENABLE_SCHEDULER_IN_TESTS'] = True
    countdown = scheduler.start_countdown(flask_app, 11, 1, lambda gid, seq: True)
    scheduler.cancel_countdown(11)
    assert countdown.finished.wait(5)
    assert scheduler.active_countdown(11) is None

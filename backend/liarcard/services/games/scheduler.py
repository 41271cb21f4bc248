import threading
from typing import Callable, Dict, Optional

from liarcard import socketio


class Countdown:
    """One live countdown for a game's timed window."""

    def __init__(self, game_id: int, window_seq: int):
        self.game_id = game_id
        self.window_seq = window_seq
        self.cancelled = threading.Event()
        self.finished = threading.Event()
        self.ticks = 0

    def cancel(self) -> None:
        self.cancelled.set()

    @property
    def is_running(self) -> bool:
        return not self.finished.is_set()


_countdowns: Dict[int, Countdown] = {}
_countdowns_lock = threading.Lock()


def active_countdown(game_id: int) -> Optional[Countdown]:
    with _countdowns_lock:
        return _countdowns.get(game_id)


def cancel_countdown(game_id: int) -> None:
    with _countdowns_lock:
        countdown = _countdowns.pop(game_id, None)
    if countdown:
        countdown.cancel()


def start_countdown(app, game_id: int, window_seq: int, on_tick: Callable[[int, int], bool]) -> Optional[Countdown]:
    """Run ``on_tick(game_id, window_seq)`` once per tick until it returns False.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - Replaces (and cancels) any countdown already registered for the game
    - Each tick runs inside an app context so it can use the database
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return None

    countdown = Countdown(game_id, window_seq)
    with _countdowns_lock:
        previous = _countdowns.get(game_id)
        _countdowns[game_id] = countdown
    if previous:
        previous.cancel()
        app.logger.info(f"[timer-replace] game={game_id} old_window={previous.window_seq} new_window={window_seq}")

    interval = float(app.config.get('COUNTDOWN_TICK_SEC', 1.0))
    app.logger.info(f"[timer-set] game={game_id} window={window_seq} tick={interval}s")

    def _worker(cd: Countdown):
        try:
            while not cd.cancelled.is_set():
                socketio.sleep(interval)
                if cd.cancelled.is_set():
                    app.logger.info(f"[timer-abort] game={cd.game_id} window={cd.window_seq} cancelled")
                    break
                cd.ticks += 1
                with app.app_context():
                    keep_going = on_tick(cd.game_id, cd.window_seq)
                if not keep_going:
                    break
        except Exception:
            app.logger.exception(f"[timer-error] game={cd.game_id} window={cd.window_seq}")
        finally:
            with _countdowns_lock:
                if _countdowns.get(cd.game_id) is cd:
                    del _countdowns[cd.game_id]
            cd.finished.set()

    socketio.start_background_task(_worker, countdown)
    return countdown

import logging
import time

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Wall clock in epoch milliseconds, comparable with the browser's Date.now()."""
    return int(time.time() * 1000)


class TimerHandle:
    """Cancellable handle for one scheduled callback."""

    def __init__(self, label: str = ''):
        self.label = label
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class BackgroundScheduler:
    """Runs one-shot callbacks after a delay on Socket.IO background tasks.

    Uses ``socketio.sleep`` so it cooperates with whichever async mode the
    server runs under (threading, eventlet or gevent). Cancellation is a flag
    checked when the sleep ends.
    """

    def __init__(self, socketio, heartbeat_sec: int = 0):
        self.socketio = socketio
        self.heartbeat_sec = heartbeat_sec

    def call_later(self, delay_ms: int, callback, *args, label: str = '') -> TimerHandle:
        handle = TimerHandle(label)
        delay = max(0, delay_ms) / 1000.0
        logger.info(f"[timer-set] {label} delay={delay:.1f}s")
        self.socketio.start_background_task(self._worker, handle, delay, callback, args)
        return handle

    def _worker(self, handle, delay, callback, args):
        hb = self.heartbeat_sec
        if hb and hb > 0:
            slept = 0.0
            while slept < delay and not handle.cancelled:
                step = min(hb, delay - slept)
                self.socketio.sleep(step)
                slept += step
                logger.info(f"[timer-heartbeat] {handle.label} remaining={max(0.0, delay - slept):.1f}s")
        else:
            self.socketio.sleep(delay)
        if handle.cancelled:
            logger.debug(f"[timer-cancelled] {handle.label}")
            return
        logger.info(f"[timer-fire] {handle.label}")
        try:
            callback(*args)
        except Exception:
            logger.exception(f"[timer-error] {handle.label}")

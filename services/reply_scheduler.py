"""
Reply Scheduler - Delayed, cancellable reply sends
==================================================

Defers auto-reply sends by the matched rule's delay. Each job is keyed
by ``(account_id, message_id, rule_index)``; a key is refused while its
job is pending. Inbound messages are de-duplicated in storage.
"""

import threading
from typing import Callable, Dict, List, Optional, Tuple

from core.exceptions import SchedulerError
from core.logging import get_logger

logger = get_logger("services.scheduler")

JobKey = Tuple[int, str, int]
TimerFactory = Callable[[float, Callable[[], None]], "threading.Timer"]


def _thread_timer(delay: float, function: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, function)
    timer.daemon = True
    return timer


class ReplyScheduler:
    """
    Thread-based delayed job runner.

    The job table is guarded by a lock. A job leaves the table when it
    fires or is cancelled, so the table only holds pending work.

    Example:
        scheduler = ReplyScheduler()
        scheduler.schedule((1, "wamid.1", 0), 10, send_reply)
        scheduler.cancel_account(1)
    """

    def __init__(self, timer_factory: Optional[TimerFactory] = None):
        """
        Initialize scheduler.

        Args:
            timer_factory: Callable ``(delay, function) -> timer`` whose
                result has ``start()`` and ``cancel()``; defaults to
                daemon ``threading.Timer`` objects
        """
        self._timer_factory = timer_factory or _thread_timer
        self._lock = threading.Lock()
        self._jobs: Dict[JobKey, object] = {}
        self._closed = False

    def schedule(self, key: JobKey, delay_seconds: float, callback: Callable[[], None]) -> bool:
        """
        Schedule a callback to run after a delay.

        Args:
            key: ``(account_id, message_id, rule_index)``
            delay_seconds: Seconds to wait
            callback: Function to run

        Returns:
            False if a job with this key is already pending, True otherwise

        Raises:
            SchedulerError: If the scheduler was shut down
        """
        with self._lock:
            if self._closed:
                raise SchedulerError("Scheduler is shut down")

            if key in self._jobs:
                logger.debug(f"Ignoring duplicate job {key}")
                return False

            timer = self._timer_factory(delay_seconds, lambda: self._run(key, timer, callback))
            self._jobs[key] = timer

        timer.start()
        logger.debug(f"Scheduled job {key} in {delay_seconds}s")
        return True

    def _run(self, key: JobKey, timer: object, callback: Callable[[], None]) -> None:
        with self._lock:
            # A cancelled timer may fire after its key was scheduled again
            if self._jobs.get(key) is not timer:
                return
            del self._jobs[key]

        try:
            callback()
        except Exception as e:
            logger.error(f"Scheduled job {key} failed: {e}", exc_info=True)

    def cancel(self, key: JobKey) -> bool:
        """
        Cancel a pending job.

        Returns:
            True if a pending job was cancelled
        """
        with self._lock:
            timer = self._jobs.pop(key, None)

        if timer is None:
            return False

        timer.cancel()
        return True

    def cancel_account(self, account_id: int) -> int:
        """
        Cancel all pending jobs of one account.

        Returns:
            Number of cancelled jobs
        """
        with self._lock:
            keys = [key for key in self._jobs if key[0] == account_id]
            timers = [self._jobs.pop(key) for key in keys]

        for timer in timers:
            timer.cancel()

        if timers:
            logger.info(f"Cancelled {len(timers)} pending reply(ies)", extra={"account_id": account_id})
        return len(timers)

    def pending(self, account_id: Optional[int] = None) -> List[JobKey]:
        """List pending job keys, optionally for one account."""
        with self._lock:
            return [
                key for key in self._jobs
                if account_id is None or key[0] == account_id
            ]

    def shutdown(self) -> None:
        """Cancel every pending job and refuse new ones."""
        with self._lock:
            self._closed = True
            timers = list(self._jobs.values())
            self._jobs.clear()

        for timer in timers:
            timer.cancel()

"""Run the sync repeatedly: on a timer, on source changes, or both."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

POLL_SECONDS = 0.5

# access-only notifications; copying out of the source produces these
_READ_ONLY_EVENTS = {"opened", "closed_no_write"}


class ChangeTrigger(FileSystemEventHandler):
    """Marks the source tree dirty and remembers when it last changed."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.dirty = threading.Event()
        self._last_event = 0.0
        self._guard = threading.Lock()

    def on_any_event(self, event):
        if event.event_type in _READ_ONLY_EVENTS:
            return
        with self._guard:
            self._last_event = self.clock()
        self.dirty.set()

    def settled(self, settle: float) -> bool:
        if not self.dirty.is_set():
            return False
        with self._guard:
            return self.clock() - self._last_event >= settle

    def reset(self) -> None:
        self.dirty.clear()


def repeat_sync(
    run_once: Callable[[], int],
    logger: logging.Logger,
    interval: Optional[float] = None,
    watch_root: Optional[Path] = None,
    settle: float = 2.0,
    stop_event: Optional[threading.Event] = None,
    observer_factory=Observer,
    clock: Callable[[], float] = time.monotonic,
) -> int:
    """Run ``run_once`` now and again on every trigger until stopped.

    Returns the status of the last completed run.
    """
    stop_event = stop_event or threading.Event()
    trigger = None
    observer = None
    if watch_root is not None:
        trigger = ChangeTrigger(clock=clock)
        observer = observer_factory()
        observer.schedule(trigger, str(watch_root), recursive=True)
        observer.start()
        logger.info("WATCH: watching %s (settle=%.1fs)", watch_root, settle)
    if interval:
        logger.info("WATCH: repeating every %.1fs", interval)

    status = 0
    try:
        status = run_once()
        while not stop_event.is_set():
            next_run = clock() + interval if interval else None
            while not stop_event.is_set():
                if trigger is not None and trigger.settled(settle):
                    logger.info("WATCH: source changed")
                    break
                if next_run is not None and clock() >= next_run:
                    break
                stop_event.wait(POLL_SECONDS)
            if stop_event.is_set():
                break
            if trigger is not None:
                trigger.reset()
            status = run_once()
    except KeyboardInterrupt:
        logger.info("Stopping...")
    finally:
        if observer is not None:
            observer.stop()
            observer.join(timeout=10)
        logger.info("Stopped.")
    return status

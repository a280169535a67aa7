"""Re-run the import pipeline whenever a watched source changes."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from blockdrop.errors import (
    BlockdropError,
    NoBlocksFoundError,
    NoInputError,
    WatchSourceUnavailableError,
)
from blockdrop.materialize import PipelineOutcome
from blockdrop.sources import FileSource, Fingerprint, InputSource

LOGGER = logging.getLogger(__name__)

PipelineRunner = Callable[[str], PipelineOutcome]


class WatchState(str, Enum):
    """Lifecycle of a watch session."""

    IDLE = "idle"
    POLLING = "polling"
    TRIGGERED = "triggered"
    STOPPED = "stopped"


@dataclass(slots=True)
class WatchCycle:
    """Outcome metadata describing one triggered pipeline run.

    Attributes:
        number: 1-based count of triggered cycles in this session.
        source: Name of the watched source.
        fingerprint: Fingerprint that triggered the run.
        outcome: Pipeline outcome, or None when the run ended early.
        error: Early-exit or aggregate write error, if any.
        triggered_at: When the change was detected.
    """

    number: int
    source: str
    fingerprint: Fingerprint
    outcome: Optional[PipelineOutcome] = None
    error: Optional[BlockdropError] = None
    triggered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class WatchLoop:
    """Poll a source's fingerprint and run the pipeline when it changes.

    The stop event is checked at the top of every cycle; a run that is already
    in progress is allowed to finish. For file sources a watchdog observer
    wakes the loop early, but only a fingerprint change triggers a run, so
    duplicate or spurious events are harmless.
    """

    def __init__(
        self,
        source: InputSource,
        runner: PipelineRunner,
        *,
        interval: float = 5.0,
        use_events: bool = True,
        trigger_on_start: bool = True,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        """Initialize the loop.

        Args:
            source: Source to fingerprint and read.
            runner: Callable running the pipeline on the source text.
            interval: Seconds between polls.
            use_events: Wake early on filesystem events for file sources.
            trigger_on_start: Run on the content present when watching starts;
                otherwise only later changes trigger.
            stop_event: Shared cancellation signal.
        """
        self._source = source
        self._runner = runner
        self._interval = max(0.05, interval)
        self._use_events = use_events
        self._trigger_on_start = trigger_on_start
        self._stop = stop_event or threading.Event()
        self._wake = threading.Event()
        self._state = WatchState.IDLE
        self._last_fingerprint: Optional[Fingerprint] = None
        self._cycles = 0
        self._primed = False

    @property
    def state(self) -> WatchState:
        return self._state

    @property
    def last_fingerprint(self) -> Optional[Fingerprint]:
        return self._last_fingerprint

    @property
    def stop_event(self) -> threading.Event:
        return self._stop

    def poll_once(self) -> Optional[WatchCycle]:
        """Run one poll; return the triggered cycle, or None when nothing changed.

        Raises:
            WatchSourceUnavailableError: If the source can no longer be fingerprinted.
        """
        if self._state is WatchState.STOPPED:
            return None
        self._state = WatchState.POLLING

        try:
            fingerprint = self._source.fingerprint()
        except WatchSourceUnavailableError:
            self._state = WatchState.STOPPED
            raise

        if not self._primed:
            self._primed = True
            if not self._trigger_on_start:
                self._last_fingerprint = fingerprint
                return None
        if fingerprint == self._last_fingerprint:
            return None
        # Stored before running so a failing run is not retried on the same content.
        self._last_fingerprint = fingerprint

        try:
            text = self._source.read()
        except NoInputError as exc:
            LOGGER.debug("Source %s changed but has no content: %s", self._source.name, exc)
            return None
        if not text.strip():
            return None

        self._state = WatchState.TRIGGERED
        self._cycles += 1
        cycle = WatchCycle(number=self._cycles, source=self._source.name, fingerprint=fingerprint)
        LOGGER.info("Change detected in %s; running import.", self._source.name)
        try:
            cycle.outcome = self._runner(text)
        except (NoInputError, NoBlocksFoundError) as exc:
            LOGGER.warning("Nothing imported from %s: %s", self._source.name, exc)
            cycle.error = exc
        finally:
            if self._state is WatchState.TRIGGERED:
                self._state = WatchState.POLLING

        if cycle.outcome is not None:
            cycle.error = cycle.outcome.error()
            if cycle.error is not None:
                LOGGER.warning("Import from %s incomplete: %s", self._source.name, cycle.error)
        return cycle

    def run(self, callback: Optional[Callable[[WatchCycle], None]] = None) -> None:
        """Poll until `stop` is called.

        Args:
            callback: Invoked with every triggered cycle.

        Raises:
            RuntimeError: If the loop was already stopped.
            WatchSourceUnavailableError: If the source disappears; the session ends.
        """
        if self._state is WatchState.STOPPED:
            raise RuntimeError("A stopped WatchLoop cannot be restarted.")

        observer = self._start_observer()
        try:
            while not self._stop.is_set():
                self._wake.clear()
                cycle = self.poll_once()
                if cycle is not None and callback is not None:
                    callback(cycle)
                self._wake.wait(self._interval)
        finally:
            if observer is not None:
                observer.stop()
                observer.join(timeout=5)
            self._state = WatchState.STOPPED

    def stop(self) -> None:
        """Request the loop to stop after the current cycle."""
        self._stop.set()
        self._wake.set()

    def _start_observer(self) -> Optional[BaseObserver]:
        if not self._use_events or not isinstance(self._source, FileSource):
            return None
        target = self._source.path.resolve()
        if not target.parent.is_dir():
            return None
        observer = Observer()
        observer.schedule(_WakeOnChange(target, self._wake), str(target.parent), recursive=False)
        observer.start()
        LOGGER.debug("Watching %s for filesystem events.", target)
        return observer


class _WakeOnChange(FileSystemEventHandler):
    """Wake the poll loop when the watched file is touched."""

    def __init__(self, target: Path, wake: threading.Event) -> None:
        self._target = target
        self._wake = wake

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        paths = [event.src_path, getattr(event, "dest_path", "")]
        if any(path and Path(str(path)).resolve() == self._target for path in paths):
            self._wake.set()


__all__ = ["WatchCycle", "WatchLoop", "WatchState", "PipelineRunner"]

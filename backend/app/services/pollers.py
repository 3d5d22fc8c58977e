# backend/app/services/pollers.py
"""
Background pollers.

Each poller owns a daemon thread and a stop event. ``tick()`` is public so
tests (and foreground triggers) can run one pass synchronously; every tick
opens its own session and re-derives its work from the database.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from app import settings
from app.db import SessionLocal
from app.services.notifications import scan_pending_client_emails

logger = logging.getLogger(__name__)


class Poller:
    name = "poller"

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        interval: float = 30.0,
        run_immediately: bool = False,
    ):
        self._session_factory = session_factory
        self._interval = interval
        self._run_immediately = run_immediately
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def tick(self) -> Any:
        """One pass. Never raises: failures are logged and the next tick proceeds."""
        session = self._session_factory()
        try:
            return self.run_once(session)
        except Exception:
            session.rollback()
            logger.exception(f"[{self.name}] tick failed")
            return None
        finally:
            session.close()

    def run_once(self, session: Session) -> Any:
        raise NotImplementedError

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info(f"[{self.name}] started (every {self._interval:g}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=settings.POLLER_STOP_TIMEOUT_SECONDS if timeout is None else timeout)
            if self._thread.is_alive():
                logger.warning(f"[{self.name}] did not stop within the timeout")
        logger.info(f"[{self.name}] stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------
    def _run_loop(self) -> None:
        if self._run_immediately:
            self.tick()
        while not self._stop_event.wait(timeout=self._interval):
            self.tick()


class EmailEscalationScanner(Poller):
    """Re-scans missions whose client email is still unsent and escalates the admin notice."""

    name = "email-escalation"

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal, interval: Optional[float] = None):
        super().__init__(
            session_factory,
            settings.EMAIL_SCAN_POLL_SECONDS if interval is None else interval,
            run_immediately=True,
        )

    def run_once(self, session: Session) -> dict:
        return scan_pending_client_emails(session)


def build_pollers(session_factory: Callable[[], Session] = SessionLocal) -> list[Poller]:
    from app.services.assignment import AssignmentScheduler
    from app.services.validation_checker import ValidationChecker

    return [
        AssignmentScheduler(session_factory),
        EmailEscalationScanner(session_factory),
        ValidationChecker(session_factory),
    ]

from __future__ import annotations

import threading
import time

from fastapi.testclient import TestClient

import app.main as main_module
from app import settings
from app.db import SessionLocal
from app.main import build_app
from app.services.pollers import Poller, build_pollers


class CountingPoller(Poller):
    name = "counting"

    def __init__(self, interval: float = 0.01):
        super().__init__(SessionLocal, interval)
        self.calls = 0
        self.ticked = threading.Event()

    def run_once(self, session):
        self.calls += 1
        self.ticked.set()
        return self.calls


class FailsOncePoller(Poller):
    name = "fails-once"

    def __init__(self):
        super().__init__(SessionLocal, 60)
        self.calls = 0

    def run_once(self, session):
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("boom")
        return "ok"


def test_start_then_stop_halts_the_loop():
    poller = CountingPoller()
    poller.start()
    assert poller.is_running
    assert poller.ticked.wait(timeout=2)

    poller.stop(timeout=1)
    assert not poller.is_running
    assert poller.stopping

    seen = poller.calls
    time.sleep(0.05)
    assert poller.calls == seen


def test_start_is_idempotent():
    poller = CountingPoller(interval=60)
    poller.start()
    thread = poller._thread
    poller.start()
    assert poller._thread is thread
    poller.stop(timeout=1)


def test_failing_tick_does_not_stop_the_next_one():
    poller = FailsOncePoller()
    assert poller.tick() is None
    assert poller.tick() == "ok"
    assert poller.calls == 2


def test_default_pollers():
    assert [p.name for p in build_pollers()] == [
        "assignment-scheduler",
        "email-escalation",
        "validation-checker",
    ]


def test_lifespan_runs_pollers_only_while_app_is_up(monkeypatch):
    poller = CountingPoller(interval=60)
    monkeypatch.setattr(settings, "BACKGROUND_POLLERS_ENABLED", True)
    monkeypatch.setattr(main_module, "build_pollers", lambda: [poller])

    app = build_app()
    with TestClient(app):
        assert app.state.pollers == [poller]
        assert poller.is_running
    assert not poller.is_running


def test_lifespan_without_pollers(client):
    assert client.app.state.pollers == []

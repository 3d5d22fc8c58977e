from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from app import settings
from app.db import SessionLocal
from app.services import approvals, store
from app.workflow.errors import ConcurrentModificationError, ConnectivityError, MissionNotFound
from app.workflow.states import MissionStatus
from tests._harness import FINANCE, make_mission, status_of

S = MissionStatus


class UnreachableSession:
    """Stands in for a session whose database went away."""

    def get(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    def scalars(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    def rollback(self):
        pass


def test_mission_ids_are_unique_and_increasing():
    ids = [store.new_mission_id() for _ in range(50)]
    assert len(set(ids)) == 50
    stamps = [int(i.split("-")[1]) for i in ids]
    assert stamps == sorted(stamps)
    assert all(i.startswith("MO-") for i in ids)


def test_stale_writer_loses(db):
    m = make_mission(db)
    with SessionLocal() as other:
        stale = other.get(type(m), m.id)
        assert stale.version == m.version

        approvals.finance_approve(db, m.id, FINANCE, "client@example.com")

        with pytest.raises(ConcurrentModificationError):
            approvals.finance_reject(other, stale.id, FINANCE, "Too late")

    assert status_of(db, m.id) == S.FINANCE_APPROVED


def test_cas_bumps_version(db):
    m = make_mission(db)
    before = m.version
    m = approvals.finance_approve(db, m.id, FINANCE, "client@example.com")
    assert m.version == before + 1


def test_lifecycle_timestamps_are_write_once(db):
    m = make_mission(db)
    m = approvals.finance_approve(db, m.id, FINANCE, "client@example.com")
    first = m.finance_approved_at

    store.compare_and_set(db, m, S.FINANCE_APPROVED, {"finance_approved_at": datetime(2030, 1, 1)})
    store.commit(db, m)
    db.expire_all()
    assert db.get(type(m), m.id).finance_approved_at == first


def test_read_falls_back_to_last_known_copy(db):
    m = make_mission(db)
    db.commit()
    fresh = store.read_mission(db, m.id)

    served = store.read_mission(UnreachableSession(), m.id)
    assert served.id == fresh.id
    assert served.status == S.PENDING_FINANCE_REVIEW

    listed = store.read_missions(UnreachableSession(), status=S.PENDING_FINANCE_REVIEW.value)
    assert [x.id for x in listed] == [m.id]


def test_exhausted_chain_raises_connectivity_error():
    with pytest.raises(ConnectivityError):
        store.read_mission(UnreachableSession(), "MO-1")


def test_missing_mission_is_not_a_connectivity_problem(db):
    with pytest.raises(MissionNotFound):
        store.read_mission(db, "MO-404")


def test_retries_connectivity_errors_then_succeeds():
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise OperationalError("SELECT 1", {}, Exception("connection reset"))
        return "ok"

    assert store.with_retries(flaky, attempts=3, delay=0) == "ok"
    assert len(calls) == 3


def test_retries_give_up_with_the_original_error():
    calls = []

    def down():
        calls.append(1)
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    with pytest.raises(OperationalError):
        store.with_retries(down, attempts=2, delay=0)
    assert len(calls) == 2


def test_other_errors_are_not_retried():
    calls = []

    def bad():
        calls.append(1)
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        store.with_retries(bad, attempts=5, delay=0)
    assert len(calls) == 1


def test_last_known_cache_is_bounded(db, monkeypatch):
    monkeypatch.setattr(settings, "MISSION_CACHE_SIZE", 2)
    first, second, third = (make_mission(db) for _ in range(3))

    # the oldest copy was evicted
    with pytest.raises(ConnectivityError):
        store.read_mission(UnreachableSession(), first.id)
    assert store.read_mission(UnreachableSession(), second.id).id == second.id
    assert store.read_mission(UnreachableSession(), third.id).id == third.id

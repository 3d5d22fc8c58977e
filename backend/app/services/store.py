# backend/app/services/store.py
"""
Mission record store over SQLAlchemy.

Writes go through ``compare_and_set``: an UPDATE guarded by the expected
status and row version, so two actors racing on the same mission cannot both
apply a transition. Reads go through an ordered fallback chain
(primary -> secondary -> last-known cache); each failed hop is logged and only
an exhausted chain surfaces as ``ConnectivityError``.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from app import db as dbmod
from app import settings
from app.clock import utcnow
from app.models.date_modification import DateModification
from app.models.mission_order import WRITE_ONCE_TIMESTAMPS, MissionOrder
from app.schemas.mission_order import DateModificationOut, MissionCreate, MissionOut
from app.workflow.errors import (
    ConcurrentModificationError,
    ConnectivityError,
    MissionNotFound,
)
from app.workflow.states import INITIAL_STATUS, Actor, MissionStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors that mean "backend unreachable" rather than "bad request"
CONNECTIVITY_ERRORS = (OperationalError, InterfaceError)

# last-known copies, least recently used first; capped at MISSION_CACHE_SIZE
_cache: "OrderedDict[str, MissionOut]" = OrderedDict()
_cache_lock = threading.Lock()
_id_lock = threading.Lock()
_last_id_ms = 0


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------
def with_retries(
    fn: Callable[[], T],
    attempts: Optional[int] = None,
    delay: Optional[float] = None,
    what: str = "store call",
    retry_on: tuple = CONNECTIVITY_ERRORS,
) -> T:
    """Call ``fn`` up to ``attempts`` times, waiting ``delay`` seconds between tries."""
    attempts = max(1, attempts if attempts is not None else settings.STORE_RETRY_ATTEMPTS)
    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(settings.STORE_RETRY_DELAY_SECONDS if delay is None else delay),
        retry=retry_if_exception_type(retry_on),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    try:
        return retrying(fn)
    except retry_on:
        logger.error(f"[store] {what} failed after {attempts} attempt(s)")
        raise


def new_mission_id() -> str:
    """``MO-<epoch-ms>``, strictly increasing within this process."""
    global _last_id_ms
    with _id_lock:
        ms = int(time.time() * 1000)
        if ms <= _last_id_ms:
            ms = _last_id_ms + 1
        _last_id_ms = ms
    return f"MO-{ms}"


def remember(out: MissionOut) -> MissionOut:
    with _cache_lock:
        _cache[out.id] = out
        _cache.move_to_end(out.id)
        while len(_cache) > max(1, settings.MISSION_CACHE_SIZE):
            _cache.popitem(last=False)
    return out


def forget_all() -> None:
    with _cache_lock:
        _cache.clear()


def _cached(mission_id: str) -> Optional[MissionOut]:
    with _cache_lock:
        hit = _cache.get(mission_id)
        if hit is not None:
            _cache.move_to_end(mission_id)
        return hit


def _cached_all() -> list[MissionOut]:
    with _cache_lock:
        return list(_cache.values())


def latest_date_modification(db: Session, mission_id: str) -> Optional[DateModification]:
    return db.scalars(
        select(DateModification)
        .where(DateModification.mission_id == mission_id)
        .order_by(DateModification.requested_at.desc(), DateModification.id.desc())
        .limit(1)
    ).first()


def to_out(db: Session, row: MissionOrder) -> MissionOut:
    out = MissionOut.model_validate(row)
    dm = latest_date_modification(db, row.id)
    if dm is not None:
        out.date_modification = DateModificationOut.model_validate(dm)
    return out


# ----------------------------------------------------------------------
# Writes (primary only)
# ----------------------------------------------------------------------
def create_mission(db: Session, data: MissionCreate, actor: Actor) -> MissionOrder:
    mission = MissionOrder(
        id=new_mission_id(),
        type=data.type.value,
        workflow=data.workflow.value,
        status=INITIAL_STATUS[data.workflow].value,
        version=1,
        crew=data.crew.model_dump(mode="json"),
        crew_id=data.crew.id,
        aircraft=data.aircraft.model_dump(mode="json"),
        flights=[f.model_dump(mode="json") for f in data.flights],
        contract=data.contract.model_dump(mode="json"),
        created_by=actor.id,
        created_at=utcnow(),
    )
    db.add(mission)
    db.flush()
    return mission


def fetch_mission(db: Session, mission_id: str) -> MissionOrder:
    """Load the live row for a write. Never served from fallbacks."""
    mission = db.get(MissionOrder, mission_id)
    if mission is None:
        raise MissionNotFound(mission_id)
    return mission


def compare_and_set(
    db: Session,
    mission: MissionOrder,
    expected_status: MissionStatus | str,
    values: dict[str, Any],
) -> MissionOrder:
    """
    Apply ``values`` only if the row still has ``expected_status`` and the
    version we read. Lifecycle timestamps that are already set are kept as is.
    The caller owns the commit.
    """
    expected = getattr(expected_status, "value", expected_status)
    values = dict(values)
    for name in WRITE_ONCE_TIMESTAMPS:
        if name not in values:
            continue
        if getattr(mission, name) is not None or values[name] is None:
            values.pop(name)

    res = db.execute(
        update(MissionOrder)
        .where(
            MissionOrder.id == mission.id,
            MissionOrder.status == expected,
            MissionOrder.version == mission.version,
        )
        .values(**values, version=mission.version + 1)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        db.rollback()
        logger.warning(f"[store] CAS failed for {mission.id} (expected '{expected}', v{mission.version})")
        raise ConcurrentModificationError(mission.id, expected)

    # mirror the row without marking the instance dirty (no second UPDATE on flush)
    for k, v in values.items():
        set_committed_value(mission, k, v)
    set_committed_value(mission, "version", mission.version + 1)
    return mission


def commit(db: Session, mission: MissionOrder) -> MissionOrder:
    db.commit()
    db.refresh(mission)
    remember(to_out(db, mission))
    return mission


# ----------------------------------------------------------------------
# Reads (fallback chain)
# ----------------------------------------------------------------------
def _attempt(primary: Callable[[Session], T], s: Session) -> T:
    try:
        return primary(s)
    except CONNECTIVITY_ERRORS:
        s.rollback()
        raise


def _read_through(what: str, primary: Callable[[Session], T], cached: Callable[[], Optional[T]], db: Session) -> T:
    try:
        return with_retries(lambda: _attempt(primary, db), what=f"primary read of {what}")
    except CONNECTIVITY_ERRORS as e:
        logger.error(f"[store] primary unreachable reading {what}: {e}")

    if dbmod.SecondarySessionLocal is not None:
        try:
            with dbmod.SecondarySessionLocal() as s:
                return with_retries(lambda: _attempt(primary, s), what=f"secondary read of {what}")
        except CONNECTIVITY_ERRORS as e:
            logger.error(f"[store] secondary unreachable reading {what}: {e}")

    hit = cached()
    if hit is not None:
        logger.warning(f"[store] serving last-known {what} from cache")
        return hit
    raise ConnectivityError(f"Mission store unavailable while reading {what}")


def read_mission(db: Session, mission_id: str) -> MissionOut:
    def _load(s: Session) -> MissionOut:
        row = s.get(MissionOrder, mission_id)
        if row is None:
            raise MissionNotFound(mission_id)
        return remember(to_out(s, row))

    return _read_through(f"mission {mission_id}", _load, lambda: _cached(mission_id), db)


def _matches(m: MissionOut, status: Optional[str], type_: Optional[str], crew_id: Optional[str]) -> bool:
    if status and m.status.value != status:
        return False
    if type_ and m.type.value != type_:
        return False
    if crew_id and m.crew.id != crew_id:
        return False
    return True


def read_missions(
    db: Session,
    status: Optional[str] = None,
    type_: Optional[str] = None,
    crew_id: Optional[str] = None,
) -> list[MissionOut]:
    def _load(s: Session) -> list[MissionOut]:
        q = select(MissionOrder).order_by(MissionOrder.created_at.desc(), MissionOrder.id.desc())
        if status:
            q = q.where(MissionOrder.status == status)
        if type_:
            q = q.where(MissionOrder.type == type_)
        if crew_id:
            q = q.where(MissionOrder.crew_id == crew_id)
        return [remember(to_out(s, r)) for r in s.scalars(q).all()]

    def _from_cache() -> Optional[list[MissionOut]]:
        rows = _cached_all()
        if not rows:
            return None
        rows = [m for m in rows if _matches(m, status, type_, crew_id)]
        return sorted(rows, key=lambda m: (m.created_at, m.id), reverse=True)

    return _read_through("mission list", _load, _from_cache, db)

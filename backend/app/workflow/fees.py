# backend/app/workflow/fees.py
"""
Fee & margin derivation.

Everything here is derived data: callers rebuild the breakdown (and the
client email built from it) whenever a rate, a contract date or the margin
changes, instead of patching individual totals.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Mapping, Optional

from app.workflow.errors import MissionValidationError

MARGIN_TYPES = ("percentage", "fixed")
DAYS_PER_MONTH = 30  # monthly salaries are pro-rated to a daily rate


def _as_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise MissionValidationError(f"Invalid date '{value}', expected YYYY-MM-DD")


def _money(x: float) -> float:
    return round(float(x), 2)


def compute_duration(start_date: date | str, end_date: date | str) -> int:
    """Inclusive day count: a mission from the 1st to the 1st lasts one day."""
    start, end = _as_date(start_date), _as_date(end_date)
    if end < start:
        raise MissionValidationError("end_date must be on/after start_date")
    return (end - start).days + 1


@dataclass(frozen=True)
class MarginConfig:
    type: str = "percentage"
    value: float = 0.0

    def __post_init__(self):
        if self.type not in MARGIN_TYPES:
            raise MissionValidationError(f"margin type must be one of {MARGIN_TYPES}")
        if self.value < 0:
            raise MissionValidationError("margin must not be negative")

    def apply(self, total_fees: float) -> float:
        if self.type == "percentage":
            return _money(total_fees * self.value / 100)
        return _money(self.value)


@dataclass(frozen=True)
class FeeBreakdown:
    daily_rate: float
    per_diem: float
    duration: int
    total_salary: float
    total_per_diem: float
    total_fees: float
    margin: float
    total_with_margin: float
    currency: str = "EUR"

    def __post_init__(self):
        if self.duration < 1:
            raise MissionValidationError("duration must be at least 1 day")
        if _money(self.total_fees + self.margin) != _money(self.total_with_margin):
            raise MissionValidationError("total_with_margin must equal total_fees + margin")

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def compute_fees(
    daily_rate: float,
    per_diem: float,
    duration: int,
    margin: MarginConfig | None = None,
    currency: str = "EUR",
) -> FeeBreakdown:
    if daily_rate < 0 or per_diem < 0:
        raise MissionValidationError("rates must not be negative")
    if duration < 1:
        raise MissionValidationError("duration must be at least 1 day")
    margin = margin or MarginConfig()

    total_salary = _money(daily_rate * duration)
    total_per_diem = _money(per_diem * duration)
    total_fees = _money(total_salary + total_per_diem)
    margin_amount = margin.apply(total_fees)
    return FeeBreakdown(
        daily_rate=_money(daily_rate),
        per_diem=_money(per_diem),
        duration=duration,
        total_salary=total_salary,
        total_per_diem=total_per_diem,
        total_fees=total_fees,
        margin=margin_amount,
        total_with_margin=_money(total_fees + margin_amount),
        currency=currency,
    )


def daily_rate_for(contract: Mapping[str, Any]) -> float:
    amount = float(contract.get("salary_amount") or 0)
    if contract.get("salary_type") == "monthly":
        return amount / DAYS_PER_MONTH
    return amount


def per_diem_for(contract: Mapping[str, Any]) -> float:
    if not contract.get("has_per_diem"):
        return 0.0
    return float(contract.get("per_diem_amount") or 0)


def fees_for_contract(
    contract: Mapping[str, Any],
    margin: MarginConfig | None = None,
    currency: Optional[str] = None,
) -> FeeBreakdown:
    duration = compute_duration(contract["start_date"], contract["end_date"])
    return compute_fees(
        daily_rate_for(contract),
        per_diem_for(contract),
        duration,
        margin,
        currency or contract.get("salary_currency") or "EUR",
    )


# ----------------------------------------------------------------------
# Client-facing email
# ----------------------------------------------------------------------
def email_subject(mission_id: str) -> str:
    return f"Mission Order Approval Required - {mission_id}"


def email_body(
    mission_id: str,
    crew: Mapping[str, Any],
    aircraft: Mapping[str, Any],
    contract: Mapping[str, Any],
    mission_type: str,
    fees: FeeBreakdown,
) -> str:
    return (
        f"Mission Order Approval Required - {mission_id}\n"
        "\n"
        "Dear Client,\n"
        "\n"
        "Please find below the mission order details for your approval:\n"
        "\n"
        f"Mission ID: {mission_id}\n"
        f"Type: {mission_type}\n"
        f"Crew: {crew.get('name') or 'TBD'} ({crew.get('position') or 'TBD'})\n"
        f"Aircraft: {aircraft.get('immat') or 'TBD'} ({aircraft.get('type') or 'TBD'})\n"
        f"Period: {contract.get('start_date')} to {contract.get('end_date')}\n"
        f"Duration: {fees.duration} days\n"
        f"Total Amount: {fees.total_with_margin:.2f} {fees.currency}\n"
        "\n"
        "Please review and confirm your approval of this mission order.\n"
        "\n"
        "Best regards,\n"
        "Flight Operations Team\n"
    )


def build_email_data(
    mission_id: str,
    mission_type: str,
    crew: Mapping[str, Any],
    aircraft: Mapping[str, Any],
    contract: Mapping[str, Any],
    owner_email: str,
    margin: MarginConfig,
    currency: Optional[str] = None,
    billing_notes: Optional[str] = None,
    sent_at: Optional[str] = None,
) -> dict[str, Any]:
    """Fee breakdown + generated subject/body, as stored on the mission."""
    fees = fees_for_contract(contract, margin, currency)
    return {
        "owner_email": owner_email,
        "subject": email_subject(mission_id),
        "message": email_body(mission_id, crew, aircraft, contract, mission_type, fees),
        "fees": fees.as_dict(),
        "margin_type": margin.type,
        "margin_value": margin.value,
        "billing_notes": billing_notes,
        "sent_at": sent_at,
    }


def margin_from_email_data(email_data: Mapping[str, Any]) -> MarginConfig:
    return MarginConfig(
        type=email_data.get("margin_type") or "percentage",
        value=float(email_data.get("margin_value") or 0),
    )


def rebuild_email_data(
    email_data: Mapping[str, Any] | None,
    mission_id: str,
    mission_type: str,
    crew: Mapping[str, Any],
    aircraft: Mapping[str, Any],
    contract: Mapping[str, Any],
) -> dict[str, Any] | None:
    """Regenerate stored email data after an input changed; keeps recipient, margin and sent_at."""
    if not email_data:
        return None
    return build_email_data(
        mission_id,
        mission_type,
        crew,
        aircraft,
        contract,
        owner_email=email_data.get("owner_email") or "",
        margin=margin_from_email_data(email_data),
        currency=(email_data.get("fees") or {}).get("currency"),
        billing_notes=email_data.get("billing_notes"),
        sent_at=email_data.get("sent_at"),
    )

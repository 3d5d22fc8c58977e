# backend/app/schemas/mission_order.py
from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from app.workflow.states import MissionStatus, MissionType, Workflow


# ----------------------------------------------------------------------
# Snapshots (copied into the mission at creation, never live references)
# ----------------------------------------------------------------------
class CrewMember(BaseModel):
    id: str
    name: Optional[str] = None
    position: Optional[str] = None


class CrewSnapshot(BaseModel):
    id: str
    name: str
    position: str
    type: str = "employee"  # "freelancer" crew get a 0-hour contract on assignment
    ggid: str = ""
    email: str = ""
    phone: Optional[str] = None
    captain: Optional[CrewMember] = None
    first_officer: Optional[CrewMember] = None
    cabin_crew: List[CrewMember] = Field(default_factory=list)


class AircraftSnapshot(BaseModel):
    id: str
    immat: str
    type: str


class FlightSnapshot(BaseModel):
    id: str
    flight: str
    departure: str
    arrival: str
    date: str
    time: str = ""


class ContractTerms(BaseModel):
    start_date: date
    end_date: date
    salary_amount: float = Field(..., ge=0)
    salary_currency: str = "EUR"
    salary_type: Literal["daily", "monthly"] = "daily"
    has_per_diem: bool = False
    per_diem_amount: Optional[float] = Field(default=None, ge=0)
    per_diem_currency: Optional[str] = None
    additional_notes: Optional[str] = None
    # filled on assignment for freelancer crew
    contract_generated: bool = False
    contract_generated_at: Optional[datetime] = None
    contract_type: Optional[str] = None
    contract_number: Optional[str] = None

    @model_validator(mode="after")
    def _dates_ordered(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on/after start_date")
        return self


# ----------------------------------------------------------------------
# Derived / recorded sub-structures
# ----------------------------------------------------------------------
class FeesOut(BaseModel):
    daily_rate: float
    per_diem: float
    duration: int
    total_salary: float
    total_per_diem: float
    total_fees: float
    margin: float
    total_with_margin: float
    currency: str


class EmailDataOut(BaseModel):
    owner_email: str
    subject: str
    message: str
    fees: FeesOut
    margin_type: str
    margin_value: float
    billing_notes: Optional[str] = None
    sent_at: Optional[datetime] = None


class DecisionOut(BaseModel):
    decision: str
    actor_id: str
    actor_role: str
    decided_at: datetime
    comments: Optional[str] = None
    reason: Optional[str] = None


class ClientResponseOut(BaseModel):
    approved: bool
    responded_at: datetime
    recorded_by: str
    comments: Optional[str] = None
    rejection_reason: Optional[str] = None


class ValidationIn(BaseModel):
    rib_confirmed: bool
    crew_comments: Optional[str] = None
    issues_reported: List[str] = Field(default_factory=list)
    payment_issue: bool = False
    payment_issue_details: Optional[str] = None


class ValidationOut(BaseModel):
    rib_confirmed: bool = False
    crew_comments: Optional[str] = None
    issues_reported: List[str] = Field(default_factory=list)
    payment_issue: bool = False
    payment_issue_details: Optional[str] = None
    requested_at: Optional[datetime] = None
    validated_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None


class InvoiceLine(BaseModel):
    id: str
    description: str
    quantity: float = Field(..., ge=0)
    unit_price: float = Field(..., ge=0)
    total: float
    category: Literal["contract", "expense", "other"] = "expense"


class ServiceInvoice(BaseModel):
    lines: List[InvoiceLine] = Field(..., min_length=1)
    contract_subtotal: float
    expenses_subtotal: float
    subtotal: float
    tax_rate: float = Field(..., ge=0)
    tax_amount: float = Field(..., ge=0)
    total: float
    currency: str = Field(..., min_length=1)
    notes: Optional[str] = None
    invoice_number: str
    invoice_date: date
    company_name: Optional[str] = None
    vat_number: Optional[str] = None


class DateModificationOut(BaseModel):
    id: int
    status: str
    original_start_date: date
    original_end_date: date
    new_start_date: date
    new_end_date: date
    reason: str
    previous_status: str
    requested_by: str
    requested_at: datetime
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    approver_comment: Optional[str] = None
    rejection_reason: Optional[str] = None

    class Config:
        from_attributes = True


# ----------------------------------------------------------------------
# Mission order in / out
# ----------------------------------------------------------------------
class MissionCreate(BaseModel):
    type: MissionType
    workflow: Workflow = Workflow.GATED
    crew: CrewSnapshot
    aircraft: AircraftSnapshot
    flights: List[FlightSnapshot] = Field(default_factory=list)
    contract: ContractTerms


class MissionOut(BaseModel):
    id: str
    type: MissionType
    workflow: Workflow
    status: MissionStatus
    version: int
    crew: CrewSnapshot
    aircraft: AircraftSnapshot
    flights: List[FlightSnapshot]
    contract: ContractTerms
    email_data: Optional[EmailDataOut] = None
    finance_decision: Optional[DecisionOut] = None
    owner_decision: Optional[DecisionOut] = None
    client_response: Optional[ClientResponseOut] = None
    validation: Optional[ValidationOut] = None
    service_invoice: Optional[ServiceInvoice] = None
    date_modification: Optional[DateModificationOut] = None

    actual_end_date: Optional[date] = None
    was_extended: bool = False
    extension_reason: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None

    created_by: str
    created_at: datetime
    finance_approved_at: Optional[datetime] = None
    owner_approved_at: Optional[datetime] = None
    owner_rejected_at: Optional[datetime] = None
    client_email_sent_at: Optional[datetime] = None
    client_approved_at: Optional[datetime] = None
    client_rejected_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    assigned_to_crew_at: Optional[datetime] = None
    execution_started_at: Optional[datetime] = None
    execution_completed_at: Optional[datetime] = None
    validation_requested_at: Optional[datetime] = None
    validated_at: Optional[datetime] = None
    date_modification_requested_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AssignmentOut(BaseModel):
    mission: MissionOut
    contract_generated: bool


class CheckValidationOut(BaseModel):
    updated: int


# ----------------------------------------------------------------------
# Request bodies
# ----------------------------------------------------------------------
class ReasonIn(BaseModel):
    # emptiness/length is checked by the transition engine so every role gets the same error
    reason: str = ""


class CommentIn(BaseModel):
    comments: Optional[str] = None


class FinanceApproveIn(BaseModel):
    owner_email: str = Field(..., min_length=3)
    margin_type: Literal["percentage", "fixed"] = "percentage"
    margin_value: float = Field(0, ge=0)
    currency: Optional[str] = None
    billing_notes: Optional[str] = None


class MarginIn(BaseModel):
    margin_type: Literal["percentage", "fixed"]
    margin_value: float = Field(..., ge=0)


class ClientDecisionIn(BaseModel):
    approved: bool
    comments: Optional[str] = None
    rejection_reason: Optional[str] = None


class ApproveIn(BaseModel):
    """Generic approve: body fields are used by the gate the mission currently sits at."""
    comments: Optional[str] = None
    owner_email: Optional[str] = None
    margin_type: Literal["percentage", "fixed"] = "percentage"
    margin_value: float = Field(0, ge=0)
    currency: Optional[str] = None
    billing_notes: Optional[str] = None


class CompleteExecutionIn(BaseModel):
    actual_end_date: date
    extension_reason: Optional[str] = None


class DateModificationIn(BaseModel):
    new_start_date: date
    new_end_date: date
    reason: str = ""


class DateModificationApproveIn(BaseModel):
    comment: Optional[str] = None


class AssignIn(BaseModel):
    generate_contract: bool = True


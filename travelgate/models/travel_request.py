"""
Travel Request Models.

Pydantic models for stored travel requests, the creation payload, the
draft patch and the read-side filter / statistics shapes.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from travelgate.models.enums import RequestStatus
from travelgate.models.user import UserPublic

_CENT = Decimal("0.01")


def _quantize_budget(value: Optional[Decimal]) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return value.quantize(_CENT)
    except InvalidOperation as exc:
        raise ValueError("budget is out of range") from exc


class TravelRequest(BaseModel):
    """Represents a stored travel request."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    requester_id: str
    approver_id: str
    destination: str
    departure_date: date
    return_date: date
    purpose: str
    estimated_budget: Decimal
    transportation_mode: Optional[str] = None
    accommodation_details: Optional[str] = None
    additional_notes: Optional[str] = None
    status: RequestStatus = RequestStatus.DRAFT
    approval_comments: Optional[str] = None
    submitted_at: Optional[datetime] = None
    decided_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("estimated_budget")
    @classmethod
    def two_decimal_places(cls, value: Optional[Decimal]) -> Optional[Decimal]:
        return _quantize_budget(value)


class TravelRequestWithParties(TravelRequest):
    """A travel request joined with its requester and approver accounts."""

    requester: UserPublic
    approver: UserPublic


class TravelRequestCreate(BaseModel):
    """Typed creation payload.

    Field presence is checked by the lifecycle engine before this model is
    built, so parse failures here are always date or budget format errors.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    approver_id: str
    destination: str
    departure_date: date
    return_date: date
    purpose: str
    estimated_budget: Decimal
    transportation_mode: Optional[str] = None
    accommodation_details: Optional[str] = None
    additional_notes: Optional[str] = None

    @field_validator("estimated_budget")
    @classmethod
    def two_decimal_places(cls, value: Optional[Decimal]) -> Optional[Decimal]:
        return _quantize_budget(value)


class TravelRequestPatch(BaseModel):
    """Optional-field patch for a draft.

    Only recognised keys are modelled; anything else in the caller's
    mapping is dropped.  ``model_dump(exclude_unset=True)`` yields exactly
    the fields the caller supplied.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    approver_id: Optional[str] = None
    destination: Optional[str] = None
    departure_date: Optional[date] = None
    return_date: Optional[date] = None
    purpose: Optional[str] = None
    estimated_budget: Optional[Decimal] = None
    transportation_mode: Optional[str] = None
    accommodation_details: Optional[str] = None
    additional_notes: Optional[str] = None

    @field_validator("estimated_budget")
    @classmethod
    def two_decimal_places(cls, value: Optional[Decimal]) -> Optional[Decimal]:
        return _quantize_budget(value)


class RequestFilters(BaseModel):
    """Store-level filter for :meth:`TravelRequestRepository.list_by_filter`.

    ``start_date`` / ``end_date`` bound the trip: departure on or after
    ``start_date`` and return on or before ``end_date``.
    """

    status: Optional[RequestStatus] = None
    requester_id: Optional[str] = None
    approver_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class RequestStats(BaseModel):
    """Request counts by status, computed at query time."""

    total: int = 0
    draft: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    cancelled: int = 0


# Fields a draft patch may change; anything else is never written.
MUTABLE_REQUEST_FIELDS: frozenset[str] = frozenset(TravelRequestPatch.model_fields)

# Keys that must be present and non-blank on creation, in check order.
REQUIRED_CREATE_FIELDS: tuple[str, ...] = (
    "approver_id",
    "destination",
    "departure_date",
    "return_date",
    "purpose",
    "estimated_budget",
)

__all__ = [
    "MUTABLE_REQUEST_FIELDS",
    "REQUIRED_CREATE_FIELDS",
    "RequestFilters",
    "RequestStats",
    "TravelRequest",
    "TravelRequestCreate",
    "TravelRequestPatch",
    "TravelRequestWithParties",
]

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from shiftswap.models.swap_request import SwapStatus

SwapResponse = Literal["accept", "decline"]
SwapDecision = Literal["approve", "reject"]


class SwapCreate(BaseModel):
    offered_shift_id: UUID
    requested_shift_id: Optional[UUID] = None  # None = open offer
    notes: Optional[str] = Field(default=None, max_length=1000)


class SwapRespond(BaseModel):
    response: SwapResponse
    requested_shift_id: Optional[UUID] = None  # required when claiming an open offer


class SwapDecide(BaseModel):
    decision: SwapDecision
    admin_notes: Optional[str] = Field(default=None, max_length=1000)


class SwapHistoryOut(BaseModel):
    from_status: Optional[SwapStatus] = None
    to_status: SwapStatus
    actor_id: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime


class SwapRequestOut(BaseModel):
    swap_request_id: str
    requester_id: str
    recipient_id: Optional[str] = None
    offered_shift_id: str
    requested_shift_id: Optional[str] = None
    status: SwapStatus
    notes: Optional[str] = None
    admin_notes: Optional[str] = None
    decided_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    history: Optional[list[SwapHistoryOut]] = None


class MySwapsOut(BaseModel):
    sent: list[SwapRequestOut]
    received: list[SwapRequestOut]


class NotificationOut(BaseModel):
    notification_id: str
    type: str
    target_user_id: Optional[str] = None
    swap_request_id: str
    new_status: SwapStatus
    created_at: datetime
    dispatched_at: Optional[datetime] = None

# bookwise/api/routes/bookings.py

from __future__ import annotations
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query

from bookwise.api.deps import Container, get_container
from bookwise.db.models.booking import BookingStatus
from bookwise.schemas.booking import (
    BookingCancel,
    BookingCreate,
    BookingCreatedOut,
    BookingOut,
    BookingReschedule,
)

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingCreatedOut, status_code=201)
async def create_booking(payload: BookingCreate, container: Container = Depends(get_container)):
    return await container.ledger.create(payload)


@router.get("", response_model=List[BookingOut])
async def list_bookings(
    user_id: str = Query(..., description="Host user id"),
    status: Optional[BookingStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    container: Container = Depends(get_container),
):
    return await container.ledger.list_user_bookings(user_id, status=status, start=start, end=end)


@router.get("/token/{token}", response_model=BookingOut)
async def get_booking_by_token(
    token: str,
    kind: Literal["reschedule", "cancel"] = Query(..., alias="type"),
    container: Container = Depends(get_container),
):
    return await container.ledger.get_by_token(token, kind)


@router.post("/token/{token}/reschedule", response_model=BookingOut)
async def reschedule_by_token(
    token: str,
    payload: BookingReschedule,
    container: Container = Depends(get_container),
):
    return await container.ledger.reschedule_by_token(token, payload.start_time, payload.end_time)


@router.post("/token/{token}/cancel", response_model=BookingOut)
async def cancel_by_token(
    token: str,
    payload: BookingCancel,
    container: Container = Depends(get_container),
):
    return await container.ledger.cancel_by_token(token, payload.reason)


@router.get("/{booking_id}", response_model=BookingOut)
async def get_booking(booking_id: str, container: Container = Depends(get_container)):
    return await container.ledger.get(booking_id)


@router.post("/{booking_id}/reschedule", response_model=BookingOut)
async def reschedule_booking(
    booking_id: str,
    payload: BookingReschedule,
    container: Container = Depends(get_container),
):
    return await container.ledger.reschedule(booking_id, payload.start_time, payload.end_time)


@router.post("/{booking_id}/cancel", response_model=BookingOut)
async def cancel_booking(
    booking_id: str,
    payload: BookingCancel,
    container: Container = Depends(get_container),
):
    return await container.ledger.cancel(booking_id, payload.reason)


@router.post("/{booking_id}/status/{status}", response_model=BookingOut)
async def change_status(
    booking_id: str,
    status: BookingStatus,
    container: Container = Depends(get_container),
):
    return await container.ledger.transition(booking_id, status)

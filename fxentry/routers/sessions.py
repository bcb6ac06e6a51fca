from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from fxentry.models.constants import OperationKind
from fxentry.models.ledger import LedgerEffect
from fxentry.services.reconciler import AmountReconciler
from .deps import SessionRegistry, get_session_registry

"""Amount-entry sessions.

Endpoints:
    - POST /sessions                 -> open {operation, account_id}
    - GET /sessions/{id}             -> current view
    - PUT /sessions/{id}/input       -> full input string after a keystroke {raw, wait}
    - POST /sessions/{id}/swap       -> type on the other side
    - PUT /sessions/{id}/account     -> re-pair for another account {account_id}
    - POST /sessions/{id}/confirm    -> apply to the ledger {token?}; closes the session
    - DELETE /sessions/{id}          -> dismiss

Input endpoints answer immediately with the echoed value; pass wait=true to
answer after the conversion for that input has settled.
"""

router = APIRouter(prefix="/sessions", tags=["sessions"])


class SessionOpenIn(BaseModel):
    operation: OperationKind = Field(..., examples=["deposit", "withdrawal"])
    account_id: int = Field(..., gt=0)


class InputIn(BaseModel):
    raw: str = Field("", max_length=32, description="Whole input string, e.g. '12.5'")
    wait: bool = Field(False, description="Answer after the conversion settles")


class AccountChangeIn(BaseModel):
    account_id: int = Field(..., gt=0)
    wait: bool = False


class ConfirmIn(BaseModel):
    token: Optional[str] = Field(None, min_length=8, max_length=64)


async def _view(session: AmountReconciler, wait: bool = False) -> dict:
    if wait:
        await session.settled()
    return session.summary()


def _effect_out(effect: LedgerEffect) -> dict:
    record = effect.activity_record
    return {
        "token": record.token,
        "kind": record.kind.value,
        "counterparty": record.counterparty,
        "display_amount": record.display_amount,
        "balance_delta": str(effect.balance_delta.amount),
        "balance_after": str(effect.balance_after.amount),
        "currency": effect.balance_after.currency,
    }


@router.post("", status_code=status.HTTP_201_CREATED, summary="Open an amount-entry session")
async def open_session(
    payload: SessionOpenIn,
    registry: SessionRegistry = Depends(get_session_registry),
):
    return await _view(registry.open(payload.operation, payload.account_id))


@router.get("/{session_id}", summary="Current session view")
async def get_session(
    session_id: str,
    wait: bool = False,
    registry: SessionRegistry = Depends(get_session_registry),
):
    return await _view(registry.get(session_id), wait)


@router.put("/{session_id}/input", summary="Submit the input string")
async def submit_input(
    session_id: str,
    payload: InputIn,
    registry: SessionRegistry = Depends(get_session_registry),
):
    session = registry.get(session_id)
    session.input(payload.raw)
    return await _view(session, payload.wait)


@router.post("/{session_id}/swap", summary="Swap the active side")
async def swap_sides(
    session_id: str,
    wait: bool = False,
    registry: SessionRegistry = Depends(get_session_registry),
):
    session = registry.get(session_id)
    session.swap()
    return await _view(session, wait)


@router.put("/{session_id}/account", summary="Select a different linked account")
async def change_account(
    session_id: str,
    payload: AccountChangeIn,
    registry: SessionRegistry = Depends(get_session_registry),
):
    session = registry.change_account(session_id, payload.account_id)
    return await _view(session, payload.wait)


@router.post("/{session_id}/retry", summary="Retry a conversion that had no rate")
async def retry_conversion(
    session_id: str,
    wait: bool = False,
    registry: SessionRegistry = Depends(get_session_registry),
):
    session = registry.get(session_id)
    session.retry()
    return await _view(session, wait)


@router.post("/{session_id}/confirm", summary="Confirm and apply to the ledger")
async def confirm_session(
    session_id: str,
    payload: Optional[ConfirmIn] = None,
    registry: SessionRegistry = Depends(get_session_registry),
):
    if not registry.is_confirmed(session_id):
        await registry.get(session_id).settled()
    effect = registry.confirm(session_id, payload.token if payload else None)
    return _effect_out(effect)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Dismiss a session")
async def dismiss_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
):
    registry.dismiss(session_id)

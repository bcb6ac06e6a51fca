from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from fxentry.db.dal import Database
from fxentry.models.accounts import LinkedAccount
from fxentry.services import app_settings
from .deps import Settings, get_db, get_settings

"""Linked accounts and user-level display settings.

Endpoints:
    - GET /accounts                     -> linked payment accounts
    - GET /settings/display-currency    -> current reference currency
    - PUT /settings/display-currency    -> change it {currency}
"""

router = APIRouter(tags=["accounts"])


class AccountOut(LinkedAccount):
    subtitle_text: str = ""


class DisplayCurrencyIn(BaseModel):
    currency: str = Field(..., min_length=3, max_length=4, examples=["GBP", "USD"])


@router.get("/accounts", response_model=List[AccountOut], summary="List linked accounts")
async def list_accounts(db: Database = Depends(get_db)):
    out = []
    for row in db.list_accounts():
        account = LinkedAccount(**row)
        out.append(AccountOut(**account.model_dump(), subtitle_text=account.subtitle))
    return out


@router.get("/settings/display-currency", summary="Current display currency")
async def get_display_currency(
    db: Database = Depends(get_db), settings: Settings = Depends(get_settings)
):
    return {"currency": app_settings.get_display_currency(db, settings)}


@router.put("/settings/display-currency", summary="Change display currency")
async def set_display_currency(payload: DisplayCurrencyIn, db: Database = Depends(get_db)):
    return {"currency": app_settings.set_display_currency(db, payload.currency)}

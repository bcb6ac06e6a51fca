from fastapi import APIRouter, Depends, Query

from fxentry.db.dal import Database
from fxentry.models.money import Money
from fxentry.services.money import format_money
from .deps import Settings, get_db, get_settings

router = APIRouter(prefix="/ledger", tags=["ledger"])


@router.get("/balance", summary="Stored wallet balance")
async def balance(
    db: Database = Depends(get_db), settings: Settings = Depends(get_settings)
):
    amount = Money(db.get_balance(settings.storage_currency), settings.storage_currency)
    return {
        "currency": amount.currency,
        "amount": str(amount.amount),
        "display": format_money(amount),
    }


@router.get("/activities", summary="Recent activity feed")
async def activities(
    limit: int = Query(50, ge=1, le=500),
    db: Database = Depends(get_db),
):
    return db.list_activities(limit=limit)

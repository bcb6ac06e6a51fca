"""Application settings backed by the metadata table.

Metadata keys:
  - display_currency: reference currency the user sees amounts in
  - free_transfers_remaining: int, promotional fee-free transfers left

Readers fall back to the given Settings (the process-wide ones when omitted)
when a key is missing or invalid.
"""

from __future__ import annotations
from typing import Optional, Protocol

from fxentry.core.config import Settings, get_settings
from fxentry.core.errors import UnsupportedCurrency
from fxentry.models.constants import is_supported
from fxentry.models.fees import FeeWaivers

DISPLAY_CURRENCY_KEY = "display_currency"
FREE_TRANSFERS_KEY = "free_transfers_remaining"


class _MetadataStore(Protocol):
    def get_metadata(self, key: str) -> Optional[str]: ...

    def set_metadata(self, key: str, value: str) -> None: ...


def _get_int(db: _MetadataStore, key: str, default: int) -> int:
    val = db.get_metadata(key)
    if val is None:
        return default
    try:
        return max(0, int(val))
    except ValueError:
        return default


# ------------- Display currency ------------------


def get_display_currency(db: _MetadataStore, settings: Optional[Settings] = None) -> str:
    stored = db.get_metadata(DISPLAY_CURRENCY_KEY)
    if stored and is_supported(stored):
        return stored.upper()
    return (settings or get_settings()).default_display_currency.upper()


def set_display_currency(db: _MetadataStore, currency: str) -> str:
    code = currency.upper()
    if not is_supported(code):
        raise UnsupportedCurrency(currency)
    db.set_metadata(DISPLAY_CURRENCY_KEY, code)
    return code


# ------------- Fee waivers -----------------------


def get_fee_waivers(db: _MetadataStore, settings: Optional[Settings] = None) -> FeeWaivers:
    settings = settings or get_settings()
    return FeeWaivers(
        free_transfers_remaining=_get_int(db, FREE_TRANSFERS_KEY, settings.free_transfers),
        early_adopter=settings.early_adopter,
        early_adopter_expiry=settings.early_adopter_expiry,
    )


def consume_free_transfer(db: _MetadataStore, settings: Optional[Settings] = None) -> int:
    """Use up one free transfer after a waived confirmation. Returns what is left."""
    left = max(0, get_fee_waivers(db, settings).free_transfers_remaining - 1)
    db.set_metadata(FREE_TRANSFERS_KEY, str(left))
    return left


__all__ = [
    "get_display_currency",
    "set_display_currency",
    "get_fee_waivers",
    "consume_free_transfer",
]

from __future__ import annotations
from pydantic import BaseModel, field_validator

from .constants import is_supported


class LinkedAccount(BaseModel):
    """External account/card money moves in from or out to."""

    id: int
    name: str
    account_number: str = ""
    currency: str

    @field_validator("currency")
    @classmethod
    def valid_currency(cls, v: str) -> str:
        if not is_supported(v):
            raise ValueError("unsupported currency")
        return v.upper()

    @property
    def subtitle(self) -> str:
        if not self.account_number:
            return self.currency
        return f"{self.currency} · {self.account_number}"

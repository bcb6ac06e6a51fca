"""Currency registry and domain enumerations.

The registry is closed: every code handled by the engine must appear here.
Stable assets are synthetic codes pegged 1:1 to a fiat currency.
"""

from enum import Enum
from typing import Dict, NamedTuple


class CurrencyInfo(NamedTuple):
    code: str
    name: str
    symbol: str
    minor_units: int = 2


CURRENCIES: Dict[str, CurrencyInfo] = {
    c.code: c
    for c in (
        CurrencyInfo("USD", "US Dollar", "$"),
        CurrencyInfo("GBP", "British Pound", "£"),
        CurrencyInfo("EUR", "Euro", "€"),
        CurrencyInfo("AUD", "Australian Dollar", "A$"),
        CurrencyInfo("BRL", "Brazilian Real", "R$"),
        CurrencyInfo("CAD", "Canadian Dollar", "CA$"),
        CurrencyInfo("CHF", "Swiss Franc", "CHF"),
        CurrencyInfo("CNY", "Chinese Yuan", "CN¥"),
        CurrencyInfo("HKD", "Hong Kong Dollar", "HK$"),
        CurrencyInfo("INR", "Indian Rupee", "₹"),
        CurrencyInfo("JPY", "Japanese Yen", "¥", 0),
        CurrencyInfo("KES", "Kenyan Shilling", "KSh"),
        CurrencyInfo("MXN", "Mexican Peso", "MX$"),
        CurrencyInfo("NGN", "Nigerian Naira", "₦"),
        CurrencyInfo("NZD", "New Zealand Dollar", "NZ$"),
        CurrencyInfo("SGD", "Singapore Dollar", "S$"),
        CurrencyInfo("ZAR", "South African Rand", "R"),
    )
}

# Stable asset -> pegged fiat currency
STABLE_ASSETS: Dict[str, str] = {
    "USDC": "USD",
    "USDP": "USD",
    "EURC": "EUR",
}

STABLE_ASSET_INFO: Dict[str, CurrencyInfo] = {
    "USDC": CurrencyInfo("USDC", "USD Coin", "$"),
    "USDP": CurrencyInfo("USDP", "Pax Dollar", "$"),
    "EURC": CurrencyInfo("EURC", "Euro Coin", "€"),
}


def is_supported(code: str) -> bool:
    code = code.upper()
    return code in CURRENCIES or code in STABLE_ASSETS


def currency_info(code: str) -> CurrencyInfo:
    code = code.upper()
    if code in CURRENCIES:
        return CURRENCIES[code]
    return STABLE_ASSET_INFO[code]


def peg_of(code: str) -> str:
    """Fiat currency a code settles in (itself for fiat codes)."""
    code = code.upper()
    return STABLE_ASSETS.get(code, code)


class OperationKind(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    P2P_SEND = "p2p_send"
    P2P_REQUEST = "p2p_request"


class Side(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"

    @property
    def other(self) -> "Side":
        return Side.SECONDARY if self is Side.PRIMARY else Side.PRIMARY


class EntryPhase(str, Enum):
    IDLE = "idle"
    ENTERING = "entering"
    CONVERTING = "converting"
    SETTLED = "settled"
    OVER_LIMIT = "over_limit"


# Message keys surfaced to the UI next to the amount display.
MSG_DEPOSIT_LIMIT = "deposit_limit_reached"
MSG_WITHDRAWAL_LIMIT = "withdrawal_limit_reached"
MSG_INSUFFICIENT_BALANCE = "insufficient_balance"
MSG_RATE_UNAVAILABLE = "rate_unavailable"

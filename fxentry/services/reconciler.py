"""Amount reconciler: live state machine behind one amount-entry screen.

Phases: IDLE -> ENTERING -> CONVERTING -> SETTLED (or OVER_LIMIT).

Every UI event is handled synchronously: the side being typed on is updated
in the same call, so the echo is instant. Deriving the other side needs a
rate and runs as an asyncio task. Each task carries the sequence number that
was current when it started; on completion it only touches state if that
number is still current. Keystrokes supersede by sequence; swapping sides,
changing account and dismissing also cancel the task outright.

While OVER_LIMIT, inputs that would raise the typed amount are rejected and the
previous value kept; inputs that lower it are accepted.
"""

from __future__ import annotations
import asyncio
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Set, Tuple

from fxentry.core.errors import (
    ConfirmationNotAllowed,
    InvalidAmountInput,
    RateUnavailable,
)
from fxentry.core.logging import bind_session
from fxentry.models.constants import (
    MSG_INSUFFICIENT_BALANCE,
    MSG_RATE_UNAVAILABLE,
    EntryPhase,
    OperationKind,
    Side,
    peg_of,
)
from fxentry.models.fees import FeeResult, FeeWaivers
from fxentry.models.money import Money
from fxentry.models.rates import RateQuote
from fxentry.models.reconciliation import ConfirmationSnapshot, ReconciliationState
from fxentry.services.fee_policy import FeePolicy, fee_in_currency
from fxentry.services.limit_guard import LimitGuard
from fxentry.services.money import (
    describe_rate,
    empty_display,
    format_fee,
    format_for_input,
    format_money,
    parse_amount_input,
)
from fxentry.services.rates.cache_service import RateCache

logger = logging.getLogger("fxentry.reconciler")

# Operations whose primary side is the stored balance (money leaves the wallet)
OUTBOUND = frozenset({OperationKind.WITHDRAWAL, OperationKind.P2P_SEND})


def pairing_for(
    operation: OperationKind, account_currency: str, storage_currency: str
) -> Tuple[str, str, Side]:
    """Return (primary, secondary, instrument side) for an operation.

    Inbound: the account is paid from, so it is the primary side and the
    stored balance the secondary. Outbound: the balance is primary and the
    destination account secondary.
    """
    account_currency = account_currency.upper()
    storage_currency = storage_currency.upper()
    if operation in OUTBOUND:
        return storage_currency, account_currency, Side.SECONDARY
    return account_currency, storage_currency, Side.PRIMARY


class AmountReconciler:
    def __init__(
        self,
        rates: RateCache,
        fee_policy: FeePolicy,
        limit_guard: LimitGuard,
        *,
        operation: OperationKind,
        account_currency: str,
        storage_currency: str,
        reference_currency: str,
        counterparty: str = "",
        available_balance: Optional[Money] = None,
        waivers: Optional[FeeWaivers] = None,
        session_id: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._rates = rates
        self._fees = fee_policy
        self._limits = limit_guard
        self.operation = operation
        self.storage_currency = storage_currency.upper()
        self.reference_currency = reference_currency.upper()
        self.counterparty = counterparty
        self.available_balance = available_balance
        self.waivers = waivers
        self.session_id = session_id or uuid.uuid4().hex
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        primary, secondary, instrument_side = pairing_for(
            operation, account_currency, self.storage_currency
        )
        self._instrument_side = instrument_side
        self._state = ReconciliationState(operation, primary, secondary)
        self._seq = 0
        self._last_valid = Decimal("0")
        # Typed value last judged over the limit; inputs above it are refused
        self._over_limit_at: Optional[Decimal] = None
        self._task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()
        self._closed = False
        self.rejected_inputs = 0

    # Internal --------------------------------------------------
    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError(f"session {self.session_id} was dismissed")

    @property
    def instrument_currency(self) -> str:
        return self._state.currency_on(self._instrument_side)

    def _cancel_inflight(self) -> None:
        self._seq += 1
        for task in list(self._pending):
            task.cancel()
        self._task = None

    def _same_pair(self) -> bool:
        st = self._state
        return peg_of(st.primary_currency) == peg_of(st.secondary_currency)

    def _limit_is_trivial(self) -> bool:
        ceiling = self._limits.ceiling_for(self.operation)
        return ceiling is None or peg_of(ceiling.currency) == peg_of(
            self._state.primary_currency
        )

    def _start_conversion(self) -> None:
        st = self._state
        self._seq += 1
        st.sequence = self._seq
        st.message_key = None
        active = st.active_side
        if st.amount_on(active).is_zero:
            st.set_amount(active.other, Money.zero(st.currency_on(active.other)))
            st.applied_rate = None
            st.rate_is_approximate = False
            st.fee_result = None
            st.limit_exceeded = False
            st.insufficient_funds = False
            self._over_limit_at = None
            st.phase = EntryPhase.IDLE
            return
        st.phase = EntryPhase.ENTERING
        if self._same_pair() and self._limit_is_trivial():
            identity = self._rates.get_cached_rate(st.primary_currency, st.secondary_currency)
            self._settle(identity, self._limit_quote_sync())
            return
        st.phase = EntryPhase.CONVERTING
        task = asyncio.get_running_loop().create_task(self._convert(self._seq))
        self._task = task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _limit_quote_sync(self) -> Optional[RateQuote]:
        ceiling = self._limits.ceiling_for(self.operation)
        if ceiling is None:
            return None
        return self._rates.get_cached_rate(self._state.primary_currency, ceiling.currency)

    async def _limit_quote(self) -> Optional[RateQuote]:
        ceiling = self._limits.ceiling_for(self.operation)
        if ceiling is None:
            return None
        if peg_of(ceiling.currency) == peg_of(self._state.primary_currency):
            return self._limit_quote_sync()
        try:
            return await self._rates.resolve_rate(self._state.primary_currency, ceiling.currency)
        except RateUnavailable:
            logger.warning(
                "cannot express %s in %s; limit not evaluated",
                self._state.primary_currency,
                ceiling.currency,
            )
            return None

    async def _convert(self, seq: int) -> None:
        st = self._state
        try:
            quote = await self._rates.resolve_rate(st.primary_currency, st.secondary_currency)
            limit_quote = await self._limit_quote()
        except RateUnavailable as e:
            if seq != self._seq:
                return
            logger.warning("conversion unavailable: %s", e)
            other = st.active_side.other
            st.set_amount(other, Money.zero(st.currency_on(other)))
            st.applied_rate = None
            st.fee_result = None
            st.phase = EntryPhase.ENTERING
            st.message_key = MSG_RATE_UNAVAILABLE
            return
        if seq != self._seq:
            logger.debug("discarding superseded conversion #%d (current #%d)", seq, self._seq)
            return
        self._settle(quote, limit_quote)

    def _settle(self, quote: RateQuote, limit_quote: Optional[RateQuote]) -> None:
        st = self._state
        active = st.active_side
        amount = st.amount_on(active)
        if active is Side.PRIMARY:
            st.secondary_amount = amount.times(quote.rate, st.secondary_currency)
        else:
            st.primary_amount = amount.times(quote.inverse().rate, st.primary_currency)
        st.applied_rate = quote.rate
        st.rate_is_approximate = quote.is_fallback
        st.fee_result = self._fees.calculate_fee(
            self.operation, self.instrument_currency, self.reference_currency, self.waivers
        )

        was_over = st.limit_exceeded
        st.limit_exceeded = False
        ceiling = self._limits.ceiling_for(self.operation)
        if ceiling is not None and limit_quote is not None:
            in_limit_ccy = st.primary_amount.times(limit_quote.rate, ceiling.currency)
            st.limit_exceeded = self._limits.exceeds(self.operation, in_limit_ccy)
        if st.limit_exceeded and not was_over:
            logger.info("amount %s exceeds %s limit %s", st.primary_amount, self.operation.value, ceiling)
        elif was_over and not st.limit_exceeded:
            logger.info("amount back under %s limit", self.operation.value)

        st.insufficient_funds = False
        if self.operation in OUTBOUND and self.available_balance is not None:
            fee = fee_in_currency(
                st.fee_result,
                self.available_balance.currency,
                st.primary_currency,
                st.secondary_currency,
                st.applied_rate,
            )
            total = st.primary_amount.amount + fee.amount
            st.insufficient_funds = total > self.available_balance.amount

        self._over_limit_at = amount.amount if st.limit_exceeded else None
        if st.limit_exceeded:
            st.phase = EntryPhase.OVER_LIMIT
            st.message_key = self._limits.message_key(self.operation)
        else:
            st.phase = EntryPhase.SETTLED
            st.message_key = MSG_INSUFFICIENT_BALANCE if st.insufficient_funds else None

    # Public API -----------------------------------------------
    @property
    def state(self) -> ReconciliationState:
        return self._state

    @property
    def phase(self) -> EntryPhase:
        return self._state.phase

    def input(self, raw: str) -> ReconciliationState:
        """Handle the full input string after a keystroke."""
        self._check_open()
        with bind_session(self.session_id):
            st = self._state
            try:
                value = parse_amount_input(raw)
            except InvalidAmountInput:
                logger.debug("unparseable input %r; keeping %s", raw, self._last_valid)
                return st
            if self._over_limit_at is not None and value > self._over_limit_at:
                self.rejected_inputs += 1
                logger.info("rejected input %r while over limit", raw)
                return st
            st.raw_input = raw
            self._last_valid = value
            st.set_amount(st.active_side, Money(value, st.currency_on(st.active_side)))
            self._start_conversion()
            return st

    def swap(self) -> ReconciliationState:
        """Make the other side the one being typed on, keeping the value."""
        self._check_open()
        with bind_session(self.session_id):
            st = self._state
            if st.phase is EntryPhase.OVER_LIMIT:
                logger.info("swap ignored while over limit")
                return st
            new_active = st.active_side.other
            typed = st.amount_on(st.active_side).amount
            value = st.amount_on(new_active).amount
            if typed > 0 and (st.phase is EntryPhase.CONVERTING or st.applied_rate is None):
                # Derived side is behind the typed one; rebuild it from what the cache has
                quote = self._rates.get_cached_rate(
                    st.currency_on(st.active_side), st.currency_on(new_active)
                )
                if quote is None:
                    logger.info(
                        "swap ignored; no rate for %s->%s",
                        st.currency_on(st.active_side),
                        st.currency_on(new_active),
                    )
                    return st
                value = typed * quote.rate
            self._cancel_inflight()
            self._over_limit_at = None
            st.active_side = new_active
            st.raw_input = format_for_input(value) if value > 0 else ""
            self._last_valid = parse_amount_input(st.raw_input)
            st.set_amount(new_active, Money(self._last_valid, st.currency_on(new_active)))
            logger.debug("active side now %s (%r)", new_active.value, st.raw_input)
            self._start_conversion()
            return st

    def change_account(
        self, account_currency: str, counterparty: Optional[str] = None
    ) -> ReconciliationState:
        """Re-pair the session for a newly selected account.

        The typed value moves to the primary side, the derived side is zeroed
        and conversion starts again.
        """
        self._check_open()
        with bind_session(self.session_id):
            self._cancel_inflight()
            old = self._state
            primary, secondary, instrument_side = pairing_for(
                self.operation, account_currency, self.storage_currency
            )
            st = ReconciliationState(self.operation, primary, secondary)
            st.raw_input = old.raw_input
            st.primary_amount = Money(self._last_valid, primary)
            self._state = st
            self._over_limit_at = None
            self._instrument_side = instrument_side
            if counterparty is not None:
                self.counterparty = counterparty
            logger.info("account changed; pairing %s/%s", primary, secondary)
            self._start_conversion()
            return st

    def retry(self) -> ReconciliationState:
        """Re-run conversion for the current input (e.g. after rate_unavailable)."""
        self._check_open()
        with bind_session(self.session_id):
            self._cancel_inflight()
            self._start_conversion()
            return self._state

    def dismiss(self) -> None:
        with bind_session(self.session_id):
            self._cancel_inflight()
            self._closed = True
            logger.debug("session dismissed")

    @property
    def closed(self) -> bool:
        return self._closed

    async def settled(self) -> ReconciliationState:
        """Wait until the latest conversion (if any) has finished."""
        while True:
            task = self._task
            if task is None or task.done():
                return self._state
            await asyncio.wait({task})

    async def drain(self) -> None:
        """Wait for every conversion task, including superseded ones."""
        while self._pending:
            await asyncio.wait(set(self._pending))

    def confirm(self, token: Optional[str] = None) -> ConfirmationSnapshot:
        """Freeze the settled state for the ledger.

        Only allowed from SETTLED with sufficient balance. The snapshot is
        independent of later edits to this session.
        """
        self._check_open()
        with bind_session(self.session_id):
            st = self._state
            if st.phase is not EntryPhase.SETTLED:
                raise ConfirmationNotAllowed(st.phase.value)
            if st.insufficient_funds:
                raise ConfirmationNotAllowed(st.phase.value, "insufficient balance")
            if st.fee_result is None or st.applied_rate is None:
                raise ConfirmationNotAllowed(st.phase.value, "conversion incomplete")
            snapshot = ConfirmationSnapshot(
                token=token or uuid.uuid4().hex,
                operation=self.operation,
                primary_amount=st.primary_amount,
                secondary_amount=st.secondary_amount,
                fee_result=st.fee_result,
                applied_rate=st.applied_rate,
                rate_is_approximate=st.rate_is_approximate,
                counterparty=self.counterparty,
                created_at=self._clock(),
            )
            logger.info(
                "confirmation %s: %s -> %s", snapshot.token, st.primary_amount, st.secondary_amount
            )
            return snapshot

    def summary(self) -> Dict[str, Any]:
        """Formatted, currency-tagged outputs for the UI."""
        st = self._state
        empty = st.raw_input == "" or st.phase is EntryPhase.IDLE

        def _display(side: Side) -> str:
            if empty:
                return empty_display(st.currency_on(side))
            return format_money(st.amount_on(side), flexible=side is st.active_side)

        fee: FeeResult | None = st.fee_result
        return {
            "session_id": self.session_id,
            "operation": self.operation.value,
            "phase": st.phase.value,
            "active_side": st.active_side.value,
            "raw_input": st.raw_input,
            "primary_currency": st.primary_currency,
            "secondary_currency": st.secondary_currency,
            "primary_amount": str(st.primary_amount.amount),
            "secondary_amount": str(st.secondary_amount.amount),
            "primary_display": _display(Side.PRIMARY),
            "secondary_display": _display(Side.SECONDARY),
            "applied_rate": str(st.applied_rate) if st.applied_rate is not None else None,
            "rate_display": describe_rate(st.applied_rate, st.primary_currency, st.secondary_currency),
            "rate_is_approximate": st.rate_is_approximate,
            "fee": None
            if fee is None
            else {
                "is_free": fee.is_free,
                "amount": str(fee.amount),
                "currency": fee.currency,
                "display": "Free" if fee.is_free else format_fee(fee.amount, fee.currency, fee.is_approximate),
                "is_approximate": fee.is_approximate,
                "waiver_reason": fee.waiver_reason,
            },
            "limit_exceeded": st.limit_exceeded,
            "insufficient_funds": st.insufficient_funds,
            "message_key": st.message_key,
            "can_confirm": st.phase is EntryPhase.SETTLED and not st.insufficient_funds,
        }

"""In-memory registry of live amount-entry sessions.

Each session is an AmountReconciler built for one operation and one linked
account. The registry owns the wiring (rate cache, fee policy, limit guard,
ledger) so routers only pass identifiers around.

A session carries a single confirmation token, issued when it is opened. A
confirmed session is closed and evicted; its token is remembered (the most
recent CONFIRMED_HISTORY of them) so confirming it again fails with
DuplicateConfirmation instead of a missing-session error.
"""

from __future__ import annotations
import logging
import uuid
from functools import lru_cache
from collections import OrderedDict
from typing import Dict, Optional

from fxentry.core.config import Settings, get_settings
from fxentry.core.errors import AccountNotFound, DuplicateConfirmation, SessionNotFound
from fxentry.db.dal import Database
from fxentry.models.accounts import LinkedAccount
from fxentry.models.constants import OperationKind
from fxentry.models.ledger import LedgerEffect
from fxentry.models.money import Money
from fxentry.services import app_settings
from fxentry.services.fee_policy import FeePolicy
from fxentry.services.ledger import LedgerEffectApplier
from fxentry.services.limit_guard import LimitGuard
from fxentry.services.rates.cache_service import RateCache, get_rate_cache
from fxentry.services.reconciler import OUTBOUND, AmountReconciler

logger = logging.getLogger("fxentry.sessions")

CONFIRMED_HISTORY = 1024


class SessionRegistry:
    def __init__(
        self,
        db: Database,
        rates: RateCache,
        fee_policy: FeePolicy,
        limit_guard: LimitGuard,
        ledger: LedgerEffectApplier,
        storage_currency: str = "USD",
        settings: Optional[Settings] = None,
    ):
        self._db = db
        self._rates = rates
        self._fees = fee_policy
        self._limits = limit_guard
        self._ledger = ledger
        self.storage_currency = storage_currency.upper()
        self._sessions: Dict[str, AmountReconciler] = {}
        self._tokens: Dict[str, str] = {}
        self._confirmed: "OrderedDict[str, str]" = OrderedDict()
        self._settings = settings

    @classmethod
    def from_settings(cls, settings: Settings, rates: RateCache) -> "SessionRegistry":
        db = Database(settings.db_path)
        return cls(
            db,
            rates,
            FeePolicy.from_settings(settings, rates),
            LimitGuard.from_settings(settings),
            LedgerEffectApplier(db, settings.storage_currency),
            settings.storage_currency,
            settings,
        )

    def _account(self, account_id: int) -> LinkedAccount:
        row = self._db.get_account(account_id)
        if row is None:
            raise AccountNotFound(account_id)
        return LinkedAccount(**row)

    def open(self, operation: OperationKind, account_id: int) -> AmountReconciler:
        account = self._account(account_id)
        available: Optional[Money] = None
        if operation in OUTBOUND:
            available = Money(self._db.get_balance(self.storage_currency), self.storage_currency)
        session = AmountReconciler(
            self._rates,
            self._fees,
            self._limits,
            operation=operation,
            account_currency=account.currency,
            storage_currency=self.storage_currency,
            reference_currency=app_settings.get_display_currency(self._db, self._settings),
            counterparty=account.name,
            available_balance=available,
            waivers=app_settings.get_fee_waivers(self._db, self._settings),
        )
        self._sessions[session.session_id] = session
        self._tokens[session.session_id] = uuid.uuid4().hex
        logger.info(
            "opened %s session %s for account %s (%s)",
            operation.value,
            session.session_id,
            account.id,
            account.currency,
        )
        return session

    def get(self, session_id: str) -> AmountReconciler:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def change_account(self, session_id: str, account_id: int) -> AmountReconciler:
        session = self.get(session_id)
        account = self._account(account_id)
        session.change_account(account.currency, counterparty=account.name)
        return session

    def is_confirmed(self, session_id: str) -> bool:
        return session_id in self._confirmed

    def confirm(self, session_id: str, token: Optional[str] = None) -> LedgerEffect:
        if session_id in self._confirmed:
            applied = self._confirmed[session_id]
            logger.error("session %s already confirmed with token %s; rejected", session_id, applied)
            raise DuplicateConfirmation(applied)
        session = self.get(session_id)
        snapshot = session.confirm(token or self._tokens[session_id])
        effect = self._ledger.apply(snapshot)
        self._evict(session_id)
        self._confirmed[session_id] = snapshot.token
        while len(self._confirmed) > CONFIRMED_HISTORY:
            self._confirmed.popitem(last=False)
        waivers = session.waivers
        if snapshot.fee_result.is_waived and waivers and waivers.uses_free_transfer(snapshot.created_at):
            left = app_settings.consume_free_transfer(self._db, self._settings)
            logger.info("free transfer used; %d remaining", left)
        return effect

    def _evict(self, session_id: str) -> None:
        self._sessions.pop(session_id).dismiss()
        self._tokens.pop(session_id, None)

    def dismiss(self, session_id: str) -> None:
        self.get(session_id)
        self._evict(session_id)

    def __len__(self) -> int:
        return len(self._sessions)


# Singleton dependency helper used by FastAPI DI
@lru_cache
def get_session_registry() -> SessionRegistry:
    return SessionRegistry.from_settings(get_settings(), get_rate_cache())

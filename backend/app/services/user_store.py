"""Persisted user-state store.

The whole ``UserBenefitsDocument`` lives in a single ``user_documents`` row
and is replaced as a unit on every write (last write wins). Helpers below
follow read-modify-write: read a fresh copy, apply the delta, write it back.
"""
from collections.abc import Callable
from datetime import datetime
import logging

from pydantic import ValidationError
from sqlalchemy.orm import sessionmaker

from app.database import get_db_context
from app.models.user_document import UserDocument
from app.schemas.benefit import (
    BenefitDefinition,
    BenefitUserState,
    PeriodUserState,
    UserBenefitsDocument,
)
from app.schemas.transaction import CardTransactionStore, StoredTransaction
from app.services.benefit_matcher import AggregatedCredits
from app.services.benefit_usage import get_default_user_state

logger = logging.getLogger(__name__)

Listener = Callable[[UserBenefitsDocument], None]

__all__ = [
    "UserStateStore",
    "get_default_user_state",
    "get_import_note",
    "get_card_transactions",
    "record_matched_credits",
    "reset_all",
    "save_card_transactions",
    "save_import_note",
    "set_ignored",
    "toggle_activation",
    "toggle_enrollment",
]


class UserStateStore:
    """Whole-document JSON store keyed by ``key``."""

    def __init__(self, session_factory: sessionmaker, key: str):
        self.key = key
        self._session_factory = session_factory
        self._listeners: list[Listener] = []
        self._seen_version = 0

    def read(self) -> UserBenefitsDocument:
        """Current document; missing or unreadable data yields an empty one."""
        with get_db_context(self._session_factory) as db:
            row = db.get(UserDocument, self.key)
            if row is None:
                return UserBenefitsDocument()
            payload = row.payload

        try:
            return UserBenefitsDocument.model_validate_json(payload or "{}")
        except ValidationError as e:
            logger.warning(f"Stored user state for {self.key} is unreadable, using defaults: {e}")
            return UserBenefitsDocument()

    def write(self, document: UserBenefitsDocument) -> None:
        with get_db_context(self._session_factory) as db:
            row = db.get(UserDocument, self.key)
            if row is None:
                row = UserDocument(key=self.key, version=0)
                db.add(row)
            row.payload = document.model_dump_json()
            row.version = (row.version or 0) + 1
            version = row.version

        self._seen_version = version
        self._notify(document)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def check_for_external_changes(self) -> bool:
        """Notify listeners if another writer bumped the stored version."""
        with get_db_context(self._session_factory) as db:
            row = db.get(UserDocument, self.key)
            version = row.version if row is not None else 0

        if version == self._seen_version:
            return False

        logger.info(f"User state {self.key} changed externally (version {version})")
        self._seen_version = version
        self._notify(self.read())
        return True

    def _notify(self, document: UserBenefitsDocument) -> None:
        for listener in list(self._listeners):
            listener(document)


def _state_for(document: UserBenefitsDocument, definition: BenefitDefinition) -> BenefitUserState:
    state = document.benefits.get(definition.id)
    if state is None:
        state = get_default_user_state(definition)
        document.benefits[definition.id] = state
    return state


def toggle_enrollment(store: UserStateStore, definition: BenefitDefinition) -> BenefitUserState:
    document = store.read()
    state = _state_for(document, definition)
    state.enrolled = not state.enrolled
    store.write(document)
    return state


def set_ignored(store: UserStateStore, definition: BenefitDefinition, ignored: bool) -> BenefitUserState:
    document = store.read()
    state = _state_for(document, definition)
    state.ignored = ignored
    store.write(document)
    return state


def toggle_activation(
    store: UserStateStore,
    definition: BenefitDefinition,
    *,
    now: datetime,
) -> BenefitUserState:
    """Flip the activation acknowledgement, stamping when it was given."""
    document = store.read()
    state = _state_for(document, definition)
    state.activation_acknowledged = not state.activation_acknowledged
    state.activation_acknowledged_at = now if state.activation_acknowledged else None
    store.write(document)
    return state


def _append_unique(existing: list[StoredTransaction], incoming: list[StoredTransaction]) -> int:
    keys = {tx.key for tx in existing}
    added = 0
    for tx in incoming:
        if tx.key in keys:
            continue
        keys.add(tx.key)
        existing.append(tx)
        added += 1
    return added


def record_matched_credits(
    store: UserStateStore,
    aggregated: dict[str, AggregatedCredits],
    definitions: list[BenefitDefinition],
) -> tuple[list[str], int]:
    """Persist aggregated import credits into per-benefit state.

    Returns the ids of benefits that gained transactions and how many
    transactions were added. Credits already on record are not added again.
    """
    definition_map = {definition.id: definition for definition in definitions}
    document = store.read()
    updated: list[str] = []
    recorded = 0

    for benefit_id, credits in aggregated.items():
        definition = definition_map.get(benefit_id)
        if definition is None:
            state = document.benefits.setdefault(benefit_id, BenefitUserState())
        else:
            state = _state_for(document, definition)

        added = _append_unique(state.transactions, credits.transactions)
        for period_id, period_txs in (credits.period_transactions or {}).items():
            if state.periods is None:
                state.periods = {}
            period_state = state.periods.setdefault(period_id, PeriodUserState())
            added += _append_unique(period_state.transactions, period_txs)

        if added:
            updated.append(benefit_id)
            recorded += added

    if recorded:
        store.write(document)
    logger.info(f"Recorded {recorded} credit(s) across {len(updated)} benefit(s)")
    return updated, recorded


def get_card_transactions(store: UserStateStore, card_id: str) -> CardTransactionStore | None:
    return store.read().card_transactions.get(card_id)


def save_card_transactions(
    store: UserStateStore,
    card_id: str,
    transactions: list[StoredTransaction],
    *,
    now: datetime,
) -> CardTransactionStore:
    """Merge statement rows into the card's store and stamp the import time.

    The new ``imported_at`` invalidates any cached match results for the card.
    """
    document = store.read()
    card_store = document.card_transactions.get(card_id)
    if card_store is None:
        card_store = CardTransactionStore(imported_at=now)
        document.card_transactions[card_id] = card_store

    added = _append_unique(card_store.transactions, transactions)
    card_store.transactions.sort(key=lambda tx: tx.date)
    card_store.imported_at = now
    store.write(document)
    logger.info(f"Saved {added} new transaction(s) for {card_id}")
    return card_store


def get_import_note(store: UserStateStore, card_id: str) -> str:
    return store.read().import_notes.get(card_id, "")


def save_import_note(store: UserStateStore, card_id: str, note: str) -> str:
    document = store.read()
    note = note.strip()
    if note:
        document.import_notes[card_id] = note
    else:
        document.import_notes.pop(card_id, None)
    store.write(document)
    return note


def reset_all(store: UserStateStore) -> None:
    """Discard every benefit state, import note and card transaction."""
    store.write(UserBenefitsDocument())
    logger.info(f"Reset all user state for {store.key}")

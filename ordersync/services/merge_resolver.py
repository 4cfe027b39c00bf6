"""
services/merge_resolver.py — Read-side de-duplication of orders

Repeated imports and racing manual entries can leave several records with
the same contract reference in the store. This module collapses them for
display, ONE winner per normalized contract_ref.

Business Rules:
- Records with an empty normalized contract_ref are drafts and pass
  through unchanged
- Winner priority (first decisive rule wins, ties fall through):
    1. manually created beats imported
    2. a user-edited record (last_edited_at set) beats an unedited one
    3. a status-modified record beats an unmodified one
    4. the more recent processed_at wins
  A complete tie keeps the record seen first
- Output is a projection only. It is never written back to the store;
  reloading restores every duplicate
- resolve(resolve(x)) == resolve(x)

Called by: services/order_service.py (load), tests
Depends on: utils/normalization.py, schemas/orders.py
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, NamedTuple

from ..schemas.orders import ActivationState, OrderRecord, ValidationState
from ..utils.normalization import normalize_reference

log = logging.getLogger(__name__)

# Rule outcome: which side wins, or None when the rule cannot decide
LEFT = "left"
RIGHT = "right"

MergeRule = Callable[[OrderRecord, OrderRecord], str | None]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def business_key(record: OrderRecord) -> str:
    return normalize_reference(record.contract_ref)


def is_status_modified(record: OrderRecord) -> bool:
    return (
        record.manually_created
        or record.is_confirmed
        or record.validation_state != ValidationState.PENDING
        or record.activation_state != ActivationState.STUDY
    )


def _prefer(left: bool, right: bool) -> str | None:
    if left and not right:
        return LEFT
    if right and not left:
        return RIGHT
    return None


def prefer_manual(a: OrderRecord, b: OrderRecord) -> str | None:
    return _prefer(a.manually_created, b.manually_created)


def prefer_user_edited(a: OrderRecord, b: OrderRecord) -> str | None:
    return _prefer(a.last_edited_at is not None, b.last_edited_at is not None)


def prefer_status_modified(a: OrderRecord, b: OrderRecord) -> str | None:
    return _prefer(is_status_modified(a), is_status_modified(b))


def prefer_recently_processed(a: OrderRecord, b: OrderRecord) -> str | None:
    ta = a.processed_at or _EPOCH
    tb = b.processed_at or _EPOCH
    if ta > tb:
        return LEFT
    if tb > ta:
        return RIGHT
    return None


DEFAULT_RULES: tuple[MergeRule, ...] = (
    prefer_manual,
    prefer_user_edited,
    prefer_status_modified,
    prefer_recently_processed,
)


def pick_winner(
    current: OrderRecord,
    challenger: OrderRecord,
    rules: Iterable[MergeRule] = DEFAULT_RULES,
) -> OrderRecord:
    """Return the record to keep. `current` is the one seen first."""
    for rule in rules:
        outcome = rule(current, challenger)
        if outcome == LEFT:
            return current
        if outcome == RIGHT:
            return challenger
    return current


class ResolveResult(NamedTuple):
    records: list[OrderRecord]
    duplicates: int


def resolve_report(
    records: Iterable[OrderRecord],
    rules: Iterable[MergeRule] = DEFAULT_RULES,
) -> ResolveResult:
    rules = tuple(rules)
    records = list(records)
    keyless: list[OrderRecord] = []
    winners: dict[str, OrderRecord] = {}

    for record in records:
        key = business_key(record)
        if not key:
            keyless.append(record)
            continue
        existing = winners.get(key)
        winners[key] = record if existing is None else pick_winner(existing, record, rules)

    resolved = keyless + list(winners.values())
    duplicates = len(records) - len(resolved)
    if duplicates:
        log.info(
            "%d duplicate orders hidden from view (store left unchanged)", duplicates
        )
    return ResolveResult(resolved, duplicates)


def resolve(
    records: Iterable[OrderRecord],
    rules: Iterable[MergeRule] = DEFAULT_RULES,
) -> list[OrderRecord]:
    """Collapse duplicates by business key. Pure; see module docstring."""
    return resolve_report(records, rules).records

"""
services/projection.py — Pure filtering, sorting and aggregation for display

Consumes the resolver's output and never mutates it: every function takes a
sequence of OrderRecord and returns a new list or a plain dict.

Views:
  all         every live order (DELETED excluded)
  adv         waiting on back-office validation: PENDING or BLOCKED
  activation  VALIDATED and not yet BILLED / CANCELED on the activation side
  archives    CANCELED, or VALIDATED and BILLED / activation CANCELED
  deleted     the trash (DELETED only)

Called by: routers/orders.py
Depends on: offers.py, schemas/orders.py
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Sequence

from ..offers import category_for_offer
from ..schemas.orders import ActivationState, OrderRecord, ValidationState

V = ValidationState
A = ActivationState

VIEWS = ("all", "adv", "activation", "archives", "deleted")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class OrderFilter:
    """Every criterion is optional; empty collections match everything."""

    view: str = "adv"
    search: str = ""
    date_from: date | None = None
    date_to: date | None = None
    validation_states: set[str] = field(default_factory=set)
    activation_states: set[str] = field(default_factory=set)
    agents: set[str] = field(default_factory=set)
    providers: set[str] = field(default_factory=set)
    offers: set[str] = field(default_factory=set)
    block_reasons: set[str] = field(default_factory=set)
    activation_block_reasons: set[str] = field(default_factory=set)
    category: str | None = None


def in_view(order: OrderRecord, view: str) -> bool:
    v, a = order.validation_state, order.activation_state
    if view == "deleted":
        return v == V.DELETED
    if view == "all":
        return v != V.DELETED
    if view == "adv":
        return v in (V.PENDING, V.BLOCKED)
    if view == "activation":
        return v == V.VALIDATED and a not in (A.BILLED, A.CANCELED)
    if view == "archives":
        return v == V.CANCELED or (v == V.VALIDATED and a in (A.BILLED, A.CANCELED))
    raise ValueError(f"Unknown view: {view}")


def matches_search(order: OrderRecord, term: str) -> bool:
    term = (term or "").strip().lower()
    if not term:
        return True
    haystack = (
        order.contract_ref,
        order.company_name,
        order.phone,
        order.sales_agent,
        order.offer,
        order.external_ref or "",
    )
    return any(term in (value or "").lower() for value in haystack)


def _in_range(order: OrderRecord, start: date | None, end: date | None) -> bool:
    if start is None and end is None:
        return True
    when = order.submitted_at
    if when is None:
        return False
    if start is not None and when < datetime.combine(start, time.min, timezone.utc):
        return False
    if end is not None and when > datetime.combine(end, time.max, timezone.utc):
        return False
    return True


def _allowed(value: str, accepted: set[str]) -> bool:
    return not accepted or (value or "") in accepted


def matches(order: OrderRecord, f: OrderFilter) -> bool:
    return (
        in_view(order, f.view)
        and matches_search(order, f.search)
        and _in_range(order, f.date_from, f.date_to)
        and _allowed(order.validation_state.value, f.validation_states)
        and _allowed(order.activation_state.value, f.activation_states)
        and _allowed(order.sales_agent, f.agents)
        and _allowed(order.provider, f.providers)
        and _allowed(order.offer, f.offers)
        and _allowed(order.block_reason, f.block_reasons)
        and _allowed(order.activation_block_reason, f.activation_block_reasons)
        and (not f.category or category_for_offer(order.offer) == f.category)
    )


def project(orders: Iterable[OrderRecord], f: OrderFilter) -> list[OrderRecord]:
    """Filter, then sort by submission date, newest first."""
    selected = [o for o in orders if matches(o, f)]
    selected.sort(key=lambda o: o.submitted_at or _EPOCH, reverse=True)
    return selected


def view_counts(orders: Sequence[OrderRecord]) -> dict[str, int]:
    counts = {view: sum(1 for o in orders if in_view(o, view)) for view in VIEWS}
    counts["activation_waiting"] = sum(
        1
        for o in orders
        if o.validation_state == V.VALIDATED and o.activation_state == A.TO_PROCESS
    )
    return counts


def format_duration(start: datetime | None, end: datetime | None = None, now: datetime | None = None) -> str:
    """Elapsed time as '45m', '3h 12m' or '2j 5h'. '-' without a start."""
    if start is None:
        return "-"
    end = end or now or datetime.now(timezone.utc)
    minutes = int((end - start) / timedelta(minutes=1))
    if minutes < 0:
        return "0m"
    if minutes < 60:
        return f"{minutes}m"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h {minutes % 60}m"
    return f"{hours // 24}j {hours % 24}h"


def sla_by_offer(orders: Iterable[OrderRecord]) -> list[dict]:
    """Average validation delay (hours) and activation delay (days) per offer.

    Validation runs from submitted_at to validated_at, activation from
    validated_at to activation_completed_at. Non-positive spans are ignored
    and offers with no measurable span are left out.
    """
    stats: dict[str, dict] = {}
    for o in orders:
        s = stats.setdefault(o.offer or "Autre", {"adv": [], "act": []})
        if o.submitted_at and o.validated_at:
            span = (o.validated_at - o.submitted_at).total_seconds()
            if span > 0:
                s["adv"].append(span)
        if o.validated_at and o.activation_completed_at:
            span = (o.activation_completed_at - o.validated_at).total_seconds()
            if span > 0:
                s["act"].append(span)

    rows = []
    for name, s in stats.items():
        avg_adv = round(sum(s["adv"]) / len(s["adv"]) / 3600) if s["adv"] else 0
        avg_act = round(sum(s["act"]) / len(s["act"]) / 86400) if s["act"] else 0
        if avg_adv > 0 or avg_act > 0:
            rows.append(
                {
                    "offer": name,
                    "avg_validation_hours": avg_adv,
                    "avg_activation_days": avg_act,
                    "validated": len(s["adv"]),
                    "activated": len(s["act"]),
                }
            )
    rows.sort(key=lambda r: r["avg_validation_hours"], reverse=True)
    return rows

"""
services/order_service.py — Optimistic write coordinator for orders

Every interactive mutation (create, update, soft delete, restore) and the
manual import trigger goes through this class. One skeleton for all:

    validate form            (no I/O — ValidationFailure)
    acquire operation lock   (fail fast — Busy)
    re-read the store        (never the in-memory copy)
    compute the new record
    splice it in             (prepend on create, replace by id otherwise)
    write the whole list     (failure → StoreWriteFailure, display untouched)
    update display state     (exactly what was written)
    release the lock         (always)

Business Rules:
- last_edited_at is stamped by every interactive mutation and never by
  the importer
- Update merges only the submitted form fields into the FRESH stored
  record; id, entered_at and manually_created are preserved
- A save that newly sets verified_serial_number marks the stock unit
  deposited, best effort: a failure becomes a warning, the order write
  stands
- Loading normalizes reference fields and hides duplicates in memory only.
  It is skipped while an edit session is open or a mutation holds the lock,
  and a reload is discarded if any write replaced the display meanwhile
- Import is refused while an edit session is open

Called by: routers/orders.py, scheduler.py, main.py
Depends on: store/base.py, locking.py, services/merge_resolver.py,
            services/state_machine.py, services/import_service.py,
            services/stock_service.py
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable

from ..errors import Busy, OrderNotFound, OrderSyncError, ValidationFailure
from ..locking import OperationLock
from ..schemas.orders import (
    ActivationState,
    OrderForm,
    OrderRecord,
    ValidationState,
)
from ..store.base import RecordStore, Snapshot, parse_records, read_orders, write_orders
from ..utils import utcnow
from ..utils.normalization import FORM_TEXT_FIELDS, clean_order_fields, normalize_reference
from . import state_machine
from .merge_resolver import resolve_report

log = logging.getLogger(__name__)

DEFAULT_AGENT = "Inconnu"


@dataclass
class MutationResult:
    order: OrderRecord
    snapshot: Snapshot
    warnings: list[str] = field(default_factory=list)


@dataclass
class LoadResult:
    orders: list[OrderRecord]
    duplicates: int = 0
    suppressed: bool = False


def new_order_id() -> str:
    return f"ADV-{uuid.uuid4()}"


class OrderService:
    def __init__(
        self,
        store: RecordStore,
        lock: OperationLock | None = None,
        importer=None,
        stock=None,
        collection: str = "adv_orders",
        clock: Callable = utcnow,
        id_factory: Callable[[], str] = new_order_id,
    ):
        self.store = store
        self.lock = lock or OperationLock()
        self.importer = importer
        self.stock = stock
        self.collection = collection
        self._clock = clock
        self._new_id = id_factory
        self._display: Snapshot | None = None
        self._generation = 0
        self._edit_sessions = 0
        if importer is not None:
            importer.on_written = self._set_display

    # ── Display state ─────────────────────────────────────────────────

    @property
    def display(self) -> Snapshot | None:
        return self._display

    @property
    def edit_sessions(self) -> int:
        return self._edit_sessions

    def open_edit_session(self) -> int:
        self._edit_sessions += 1
        return self._edit_sessions

    def close_edit_session(self) -> int:
        self._edit_sessions = max(0, self._edit_sessions - 1)
        return self._edit_sessions

    @property
    def refresh_blocked(self) -> bool:
        return self._edit_sessions > 0 or self.lock.locked

    def _set_display(self, snapshot: Snapshot) -> None:
        self._display = snapshot
        self._generation += 1

    def current_view(self) -> LoadResult:
        if self._display is None:
            return LoadResult([], 0, suppressed=True)
        resolved = resolve_report(self._display.records)
        return LoadResult(resolved.records, resolved.duplicates)

    async def load(self) -> LoadResult:
        """Fetch, normalize and de-duplicate for display. Never writes."""
        if self.refresh_blocked:
            log.debug("Reload suppressed — edit open or operation in progress")
            view = self.current_view()
            view.suppressed = True
            return view

        generation = self._generation
        raw = await self.store.fetch(self.collection) or []
        records = parse_records(self.collection, (clean_order_fields(item) for item in raw))
        if generation != self._generation or self.refresh_blocked:
            # a write landed while we were reading: its snapshot is newer
            log.debug("Discarding stale reload of %s", self.collection)
            view = self.current_view()
            view.suppressed = True
            return view
        self._display = Snapshot(self.collection, records)
        return self.current_view()

    # ── Mutations ─────────────────────────────────────────────────────

    async def create(self, form: OrderForm, default_agent: str = "") -> MutationResult:
        fields = self._form_fields(form)
        agent = fields.get("sales_agent") or normalize_reference(default_agent)
        self._require(fields, agent)
        target_v = fields.get("validation_state", ValidationState.PENDING)
        target_a = fields.get("activation_state", ActivationState.STUDY)
        state_machine.check_validation_change(
            ValidationState.PENDING, target_v, fields.get("block_reason", "")
        )
        state_machine.check_activation_change(
            ActivationState.STUDY, target_a, fields.get("activation_block_reason", "")
        )

        async with self.lock.hold("create"):
            fresh = await read_orders(self.store, self.collection)
            now = self._clock()
            data = {
                **fields,
                "id": self._new_id(),
                "sales_agent": agent,
                "entered_at": now,
                "processed_at": now,
                "last_edited_at": now,
                "submitted_at": fields.get("submitted_at") or now,
                "manually_created": True,
            }
            if target_a != ActivationState.STUDY:
                data["activation_changed_at"] = now
            if fields.get("verified_serial_number") and not fields.get("serial_verified_at"):
                data["serial_verified_at"] = now
            record = state_machine.apply_validation_stamps(OrderRecord(**data), now)

            written = await write_orders(self.store, fresh.prepend(record))
            warnings = await self._after_serial_change("", record, now)
            self._set_display(written)
            log.info("Order %s created (%s)", record.id, record.contract_ref or "no contract")
            return MutationResult(record, written, warnings)

    async def update(self, order_id: str, form: OrderForm, default_agent: str = "") -> MutationResult:
        fields = self._form_fields(form)
        for name in ("company_name", "offer"):
            if name in fields and not fields[name]:
                raise ValidationFailure(f"{name} is required")

        async with self.lock.hold("update"):
            fresh = await read_orders(self.store, self.collection)
            current = fresh.find(order_id)
            if current is None:
                raise OrderNotFound(f"Order {order_id} not found")

            now = self._clock()
            merged = OrderRecord.model_validate({**current.model_dump(), **fields})
            if not merged.sales_agent:
                merged = merged.model_copy(
                    update={"sales_agent": normalize_reference(default_agent) or DEFAULT_AGENT}
                )
            self._require(merged.model_dump(), merged.sales_agent)
            state_machine.check_validation_change(
                current.validation_state, merged.validation_state, merged.block_reason
            )
            state_machine.check_activation_change(
                current.activation_state, merged.activation_state, merged.activation_block_reason
            )

            stamps = {"processed_at": now, "last_edited_at": now}
            if merged.activation_state != current.activation_state:
                stamps["activation_changed_at"] = now
                if merged.activation_state == ActivationState.INSTALLED and not merged.activation_completed_at:
                    stamps["activation_completed_at"] = now
            if (
                merged.verified_serial_number
                and merged.verified_serial_number != current.verified_serial_number
                and "serial_verified_at" not in fields
            ):
                stamps["serial_verified_at"] = now
            record = state_machine.apply_validation_stamps(
                state_machine.clear_released_reasons(merged.model_copy(update=stamps)), now
            )

            written = await write_orders(self.store, fresh.replace_record(record))
            warnings = await self._after_serial_change(
                current.verified_serial_number, record, now
            )
            self._set_display(written)
            log.info("Order %s updated", order_id)
            return MutationResult(record, written, warnings)

    async def soft_delete(self, order_id: str) -> MutationResult:
        return await self._flip(order_id, "delete", state_machine.soft_delete)

    async def restore(self, order_id: str) -> MutationResult:
        return await self._flip(order_id, "restore", state_machine.restore)

    async def _flip(self, order_id: str, operation: str, change) -> MutationResult:
        async with self.lock.hold(operation):
            fresh = await read_orders(self.store, self.collection)
            current = fresh.find(order_id)
            if current is None:
                raise OrderNotFound(f"Order {order_id} not found")
            record = change(current, self._clock())
            written = await write_orders(self.store, fresh.replace_record(record))
            self._set_display(written)
            log.info("Order %s %s → %s", order_id, operation, record.validation_state.value)
            return MutationResult(record, written)

    async def sync(self):
        """Manual import trigger. Returns the importer's ImportResult."""
        if self.importer is None:
            raise OrderSyncError("Import is not configured")
        if self._edit_sessions:
            raise Busy("Close the order form before synchronizing")
        return await self.importer.run()

    # ── Helpers ───────────────────────────────────────────────────────

    @staticmethod
    def _form_fields(form: OrderForm) -> dict:
        fields = form.model_dump(exclude_unset=True)
        for name in FORM_TEXT_FIELDS + ("sales_agent",):
            if name in fields:
                fields[name] = normalize_reference(fields[name])
        if "external_ref" in fields:
            fields["external_ref"] = normalize_reference(fields["external_ref"]) or None
        for name in ("block_reason", "activation_block_reason", "provider", "crm_link"):
            if name in fields and fields[name] is None:
                fields[name] = ""
        if fields.get("is_confirmed") is None:
            fields.pop("is_confirmed", None)
        for name in ("validation_state", "activation_state"):
            if name in fields and fields[name] is None:
                fields.pop(name)
        if fields.get("validation_state") == ValidationState.DELETED:
            raise ValidationFailure("Use delete to remove an order")
        return fields

    @staticmethod
    def _require(fields: dict, agent: str) -> None:
        if not fields.get("company_name"):
            raise ValidationFailure("Company name is required")
        if not fields.get("offer"):
            raise ValidationFailure("Offer is required")
        if not agent:
            raise ValidationFailure("An assigned sales agent is required")

    async def _after_serial_change(self, previous: str, record: OrderRecord, now) -> list[str]:
        serial = record.verified_serial_number
        if not serial or previous or self.stock is None:
            return []
        try:
            await self.stock.mark_deposited(serial, now)
        except OrderSyncError as e:
            log.error("Stock update for serial %s failed: %s", serial, e)
            return [f"Order saved, but the stock status of {serial} could not be updated"]
        return []

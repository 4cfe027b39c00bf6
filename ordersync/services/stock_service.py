"""
services/stock_service.py — Boundary to the stock/serial catalog

Only the two touch points orders need:
  - serial_status(): read-only lookup shown next to the verified serial
  - mark_deposited(): the secondary update fired when an order newly gets
    a verified serial number

Business Rules:
- The stock collection is its own document, written whole like orders
- mark_deposited only writes when a unit with that serial exists and is
  not already deposited
- Failures raise StoreReadFailure / StoreWriteFailure; the order
  coordinator reports them as warnings and never rolls back the order

Called by: services/order_service.py, routers/orders.py
Depends on: store/base.py
"""

import logging
from datetime import datetime

from ..errors import StoreWriteFailure
from ..store.base import RecordStore

log = logging.getLogger(__name__)

DEPOSITED = "deposited"


class StockService:
    def __init__(self, store: RecordStore, collection: str = "stock_units"):
        self.store = store
        self.collection = collection

    async def serial_status(self, serial: str) -> dict | None:
        """Return {exists, status, owner} or None for a too-short serial."""
        if not serial or len(serial) < 3:
            return None
        units = await self.store.fetch(self.collection) or []
        for unit in units:
            if unit.get("serial_number") == serial:
                return {
                    "exists": True,
                    "status": unit.get("status"),
                    "owner": unit.get("current_owner"),
                }
        return {"exists": False, "status": None, "owner": None}

    async def mark_deposited(self, serial: str, when: datetime) -> bool:
        """Flip the unit to deposited. Returns True if a unit was updated."""
        units = await self.store.fetch(self.collection) or []
        changed = False
        updated = []
        for unit in units:
            if unit.get("serial_number") == serial and unit.get("status") != DEPOSITED:
                unit = {
                    **unit,
                    "status": DEPOSITED,
                    "last_movement_date": when.date().isoformat(),
                }
                changed = True
            updated.append(unit)

        if not changed:
            log.info("Serial %s not in stock or already deposited", serial)
            return False
        if not await self.store.replace(self.collection, updated):
            raise StoreWriteFailure(f"Stock status update for {serial} failed")
        log.info("Stock unit %s marked deposited", serial)
        return True

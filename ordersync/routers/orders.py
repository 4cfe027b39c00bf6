"""
routers/orders.py — Order workflow API

List, create, edit, soft delete and restore orders, trigger a Dolibarr
import, and hold edit sessions open so background refresh leaves a user's
form alone.

Business Rules:
- Every mutation goes through OrderService; errors are OrderSyncError
  subclasses rendered by the handlers in main.py (Busy → 409, etc.)
- Listing never writes: it normalizes and de-duplicates in memory only
- While an edit session is open or an operation holds the lock, listing
  serves the last loaded view and flags it suppressed
- Delete and restore require the delete permission

Called by: main.py (router mount)
Depends on: services/order_service.py, services/projection.py,
            services/stock_service.py, dependencies.py
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from loguru import logger
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import (
    Actor,
    get_order_service,
    get_stock_service,
    require_actor,
    require_deleter,
    require_writer,
)
from ..errors import ValidationFailure
from ..models import SyncLog
from ..schemas.orders import (
    MutationResponse,
    OrderForm,
    OrderListResponse,
    SyncResponse,
)
from ..services import projection
from ..services.state_machine import ACTIVATION_REASONS, VALIDATION_REASONS

router = APIRouter(tags=["orders"])


def _mutation_response(result) -> MutationResponse:
    return MutationResponse(ok=True, order=result.order.to_document(), warnings=result.warnings)


# ── Listing ──────────────────────────────────────────────────────────


@router.get("/api/orders", response_model=OrderListResponse)
async def list_orders(
    view: str = Query("adv", pattern="^(all|adv|activation|archives|deleted)$"),
    search: str = "",
    date_from: date | None = None,
    date_to: date | None = None,
    validation: list[str] = Query(default=[]),
    activation: list[str] = Query(default=[]),
    agent: list[str] = Query(default=[]),
    provider: list[str] = Query(default=[]),
    offer: list[str] = Query(default=[]),
    reason: list[str] = Query(default=[]),
    activation_reason: list[str] = Query(default=[]),
    category: str | None = None,
    actor: Actor = Depends(require_actor),
    service=Depends(get_order_service),
):
    """Resolved, filtered orders, newest submission first."""
    loaded = await service.load()
    selected = projection.project(
        loaded.orders,
        projection.OrderFilter(
            view=view,
            search=search,
            date_from=date_from,
            date_to=date_to,
            validation_states={v.upper() for v in validation},
            activation_states={a.upper() for a in activation},
            agents=set(agent),
            providers=set(provider),
            offers=set(offer),
            block_reasons=set(reason),
            activation_block_reasons=set(activation_reason),
            category=category,
        ),
    )
    return OrderListResponse(
        total=len(selected),
        duplicates_hidden=loaded.duplicates,
        suppressed=loaded.suppressed,
        orders=[o.to_document() for o in selected],
    )


@router.get("/api/orders/counts")
async def order_counts(actor: Actor = Depends(require_actor), service=Depends(get_order_service)):
    return projection.view_counts((await service.load()).orders)


@router.get("/api/orders/sla")
async def order_sla(actor: Actor = Depends(require_actor), service=Depends(get_order_service)):
    return {"offers": projection.sla_by_offer((await service.load()).orders)}


@router.get("/api/orders/reasons")
async def order_reasons(actor: Actor = Depends(require_actor)):
    return {"validation": list(VALIDATION_REASONS), "activation": list(ACTIVATION_REASONS)}


# ── Edit sessions ────────────────────────────────────────────────────


@router.post("/api/orders/edit-session")
async def open_edit_session(actor: Actor = Depends(require_writer), service=Depends(get_order_service)):
    """Mark an order form as open: background refresh and sync pause."""
    return {"edit_sessions": service.open_edit_session()}


@router.delete("/api/orders/edit-session")
async def close_edit_session(actor: Actor = Depends(require_writer), service=Depends(get_order_service)):
    return {"edit_sessions": service.close_edit_session()}


# ── Import ───────────────────────────────────────────────────────────


@router.post("/api/orders/sync", response_model=SyncResponse)
async def sync_orders(actor: Actor = Depends(require_writer), service=Depends(get_order_service)):
    """Pull new draft orders from Dolibarr. Refused (409) while busy."""
    logger.info(f"Manual Dolibarr sync requested by {actor.name}")
    result = await service.sync()
    return SyncResponse(
        ok=True,
        added=result.added,
        total=result.total,
        orphaned=result.orphaned,
        skipped=result.skipped,
    )


@router.get("/api/sync-logs")
async def sync_logs(
    limit: int = Query(20, ge=1, le=200),
    actor: Actor = Depends(require_actor),
    db: Session = Depends(get_db),
):
    rows = db.query(SyncLog).order_by(SyncLog.started_at.desc()).limit(limit).all()
    return [
        {
            "id": r.id,
            "source": r.source,
            "status": r.status,
            "started_at": r.started_at.isoformat() if r.started_at else None,
            "finished_at": r.finished_at.isoformat() if r.finished_at else None,
            "duration_seconds": r.duration_seconds,
            "row_counts": r.row_counts or {},
            "errors": r.errors or [],
        }
        for r in rows
    ]


# ── Mutations ────────────────────────────────────────────────────────


@router.post("/api/orders", response_model=MutationResponse, status_code=201)
async def create_order(
    body: OrderForm,
    actor: Actor = Depends(require_writer),
    service=Depends(get_order_service),
):
    result = await service.create(body, default_agent=actor.name)
    return _mutation_response(result)


@router.put("/api/orders/{order_id}", response_model=MutationResponse)
async def update_order(
    order_id: str,
    body: OrderForm,
    actor: Actor = Depends(require_writer),
    service=Depends(get_order_service),
):
    result = await service.update(order_id, body, default_agent=actor.name)
    return _mutation_response(result)


@router.delete("/api/orders/{order_id}", response_model=MutationResponse)
async def delete_order(
    order_id: str,
    actor: Actor = Depends(require_deleter),
    service=Depends(get_order_service),
):
    """Soft delete: the order moves to the trash and can be restored."""
    result = await service.soft_delete(order_id)
    logger.info(f"Order {order_id} moved to trash by {actor.name}")
    return _mutation_response(result)


@router.post("/api/orders/{order_id}/restore", response_model=MutationResponse)
async def restore_order(
    order_id: str,
    actor: Actor = Depends(require_deleter),
    service=Depends(get_order_service),
):
    result = await service.restore(order_id)
    logger.info(f"Order {order_id} restored by {actor.name}")
    return _mutation_response(result)


# ── Stock ────────────────────────────────────────────────────────────


@router.get("/api/stock/serial/{serial}")
async def serial_status(
    serial: str,
    actor: Actor = Depends(require_actor),
    stock=Depends(get_stock_service),
):
    status = await stock.serial_status(serial.strip())
    if status is None:
        raise ValidationFailure("Serial number must be at least 3 characters")
    return status

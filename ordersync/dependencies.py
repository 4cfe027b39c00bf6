"""
dependencies.py — Shared FastAPI Dependencies

Actor identity, role checks and access to the long-lived services held on
app.state. Routers import from here instead of defining their own checks.

Business Rules:
- The actor comes from the X-User-Name / X-User-Role headers set by the
  upstream gateway; a missing name is 401
- require_writer raises 403 unless the role may create/edit orders
- require_deleter raises 403 unless the role is admin or adv_manager
  (soft delete and restore share the same permission)
- The actor's name is the default sales agent of a new order

Called by: routers/orders.py
Depends on: services/order_service.py, services/stock_service.py
"""

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request

WRITE_ROLES = frozenset({"admin", "adv_manager", "adv", "sales", "operations"})
DELETE_ROLES = frozenset({"admin", "adv_manager"})


@dataclass(frozen=True)
class Actor:
    name: str
    role: str = "viewer"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


# ── Authentication ────────────────────────────────────────────────────


def require_actor(request: Request) -> Actor:
    """Dependency: raises 401 if the gateway did not identify the caller."""
    name = (request.headers.get("x-user-name") or "").strip()
    if not name:
        raise HTTPException(401, "Not authenticated")
    role = (request.headers.get("x-user-role") or "viewer").strip().lower()
    return Actor(name=name, role=role)


def require_writer(actor: Actor = Depends(require_actor)) -> Actor:
    if actor.role not in WRITE_ROLES:
        raise HTTPException(403, "Write access required")
    return actor


def require_deleter(actor: Actor = Depends(require_actor)) -> Actor:
    """Dependency: raises 403 unless the actor may delete or restore orders."""
    if actor.role not in DELETE_ROLES:
        raise HTTPException(403, "Permission denied")
    return actor


# ── Services ──────────────────────────────────────────────────────────


def get_order_service(request: Request):
    return request.app.state.order_service


def get_stock_service(request: Request):
    return request.app.state.stock_service

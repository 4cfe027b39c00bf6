"""
services/state_machine.py — Validation and activation lifecycles

Business Rules:
- Validation: PENDING → VALIDATED | BLOCKED | CANCELED | DELETED.
  BLOCKED is a hold (incomplete file): it is released to PENDING or
  VALIDATED, or ends in CANCELED. A VALIDATED order can still be blocked
  or canceled. CANCELED is final.
  DELETED leaves only through restore, back to PENDING. Soft delete is a
  separate operation and may be applied to any live order; a form save
  can never set DELETED.
  BLOCKED and CANCELED require a reason from VALIDATION_REASONS.
  Entering VALIDATED stamps validated_at when it is absent.
- Activation (driven by operations staff, independent of validation):
  STUDY → TO_PROCESS → IN_PROGRESS → INSTALLED → BILLED, with BLOCKED and
  CANCELED reachable from any non-terminal state and requiring a reason
  from ACTIVATION_REASONS. A BLOCKED activation resumes at TO_PROCESS or
  IN_PROGRESS, or ends in CANCELED.
- Leaving BLOCKED/CANCELED clears the matching reason.
- Staying in the same state is always allowed (a save without a change).

Called by: services/order_service.py
"""

from datetime import datetime

from ..errors import ValidationFailure
from ..schemas.orders import ActivationState, OrderRecord, ValidationState

V = ValidationState
A = ActivationState

VALIDATION_REASONS = (
    "Injoignable",
    "Document non conforme",
    "Demande en double",
    "Client BtoC",
    "Client Indisponible",
    "Client Douteux",
    "Non elligible",
    "Probléme de passage",
    "Dossier Refusé",
)

ACTIVATION_REASONS = (
    "Injoignable pour RDV",
    "Refus Client",
    "Adresse Incorrecte / Incomplète",
    "Blocage Technique (Poteau/Façade)",
    "Non Eligible Fibre",
    "Instance (Attente Travaux)",
    "Client Absent RDV",
    "Annulation par Client",
    "Déjà Installé (Concurrent)",
    "Problème Syyndic/Autorisation",
    "Autre",
)

VALIDATION_TRANSITIONS: dict[ValidationState, frozenset[ValidationState]] = {
    V.PENDING: frozenset({V.VALIDATED, V.BLOCKED, V.CANCELED, V.DELETED}),
    V.VALIDATED: frozenset({V.BLOCKED, V.CANCELED}),
    V.BLOCKED: frozenset({V.PENDING, V.VALIDATED, V.CANCELED}),
    V.CANCELED: frozenset(),
    V.DELETED: frozenset({V.PENDING}),
}

_ACTIVATION_STOPS = frozenset({A.BLOCKED, A.CANCELED})

ACTIVATION_TRANSITIONS: dict[ActivationState, frozenset[ActivationState]] = {
    A.STUDY: frozenset({A.TO_PROCESS}) | _ACTIVATION_STOPS,
    A.TO_PROCESS: frozenset({A.IN_PROGRESS}) | _ACTIVATION_STOPS,
    A.IN_PROGRESS: frozenset({A.INSTALLED}) | _ACTIVATION_STOPS,
    A.INSTALLED: frozenset({A.BILLED}) | _ACTIVATION_STOPS,
    A.BILLED: frozenset(),
    A.BLOCKED: frozenset({A.TO_PROCESS, A.IN_PROGRESS, A.CANCELED}),
    A.CANCELED: frozenset(),
}


def can_validate(current: ValidationState, target: ValidationState) -> bool:
    return current == target or target in VALIDATION_TRANSITIONS[current]


def can_activate(current: ActivationState, target: ActivationState) -> bool:
    return current == target or target in ACTIVATION_TRANSITIONS[current]


def check_validation_change(current: ValidationState, target: ValidationState, reason: str) -> None:
    if not can_validate(current, target):
        raise ValidationFailure(
            f"Validation state cannot move from {current.value} to {target.value}"
        )
    if target in (V.BLOCKED, V.CANCELED) and current != target:
        if not reason:
            raise ValidationFailure(f"A reason is required to set {target.value}")
        if reason not in VALIDATION_REASONS:
            raise ValidationFailure(f"Unknown validation reason: {reason}")


def check_activation_change(current: ActivationState, target: ActivationState, reason: str) -> None:
    if not can_activate(current, target):
        raise ValidationFailure(
            f"Activation state cannot move from {current.value} to {target.value}"
        )
    if target in _ACTIVATION_STOPS and current != target:
        if not reason:
            raise ValidationFailure(f"A reason is required to set activation {target.value}")
        if reason not in ACTIVATION_REASONS:
            raise ValidationFailure(f"Unknown activation reason: {reason}")


def apply_validation_stamps(record: OrderRecord, now: datetime) -> OrderRecord:
    """Stamp validated_at the first time an order is VALIDATED."""
    if record.validation_state == V.VALIDATED and record.validated_at is None:
        return record.model_copy(update={"validated_at": now})
    return record


def clear_released_reasons(record: OrderRecord) -> OrderRecord:
    """Drop block reasons that no longer apply to the current states."""
    update = {}
    if record.block_reason and record.validation_state not in (V.BLOCKED, V.CANCELED):
        update["block_reason"] = ""
    if record.activation_block_reason and record.activation_state not in _ACTIVATION_STOPS:
        update["activation_block_reason"] = ""
    return record.model_copy(update=update) if update else record


def soft_delete(record: OrderRecord, now: datetime) -> OrderRecord:
    """Mark an order DELETED. Allowed from any live state; restore undoes it."""
    if record.validation_state == V.DELETED:
        raise ValidationFailure("Order is already deleted")
    return record.model_copy(
        update={"validation_state": V.DELETED, "last_edited_at": now}
    )


def restore(record: OrderRecord, now: datetime) -> OrderRecord:
    if record.validation_state != V.DELETED:
        raise ValidationFailure("Only deleted orders can be restored")
    return record.model_copy(
        update={"validation_state": V.PENDING, "last_edited_at": now}
    )

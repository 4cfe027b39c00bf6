"""Tests for services/state_machine.py — validation and activation lifecycles."""

from datetime import datetime, timezone

import pytest

from ordersync.errors import ValidationFailure
from ordersync.schemas.orders import ActivationState as A
from ordersync.schemas.orders import OrderRecord
from ordersync.schemas.orders import ValidationState as V
from ordersync.services import state_machine as sm

NOW = datetime(2024, 4, 1, 12, 0, tzinfo=timezone.utc)


class TestValidationTransitions:
    @pytest.mark.parametrize("target", [V.VALIDATED, V.BLOCKED, V.CANCELED, V.DELETED])
    def test_pending_moves_anywhere(self, target):
        assert sm.can_validate(V.PENDING, target)

    @pytest.mark.parametrize("target", [V.PENDING, V.VALIDATED, V.CANCELED])
    def test_blocked_is_released(self, target):
        assert sm.can_validate(V.BLOCKED, target)

    def test_validated_can_be_blocked_or_canceled(self):
        assert sm.can_validate(V.VALIDATED, V.BLOCKED)
        assert sm.can_validate(V.VALIDATED, V.CANCELED)
        assert not sm.can_validate(V.VALIDATED, V.PENDING)

    @pytest.mark.parametrize("target", [V.PENDING, V.VALIDATED, V.BLOCKED])
    def test_canceled_is_final(self, target):
        assert not sm.can_validate(V.CANCELED, target)

    @pytest.mark.parametrize("source", [V.PENDING, V.VALIDATED, V.BLOCKED, V.CANCELED])
    def test_only_pending_lists_deleted(self, source):
        assert sm.can_validate(source, V.DELETED) == (source == V.PENDING)

    def test_deleted_only_goes_back_to_pending(self):
        assert sm.can_validate(V.DELETED, V.PENDING)
        assert not sm.can_validate(V.DELETED, V.VALIDATED)

    def test_same_state_allowed(self):
        assert sm.can_validate(V.BLOCKED, V.BLOCKED)

    def test_blocked_requires_reason(self):
        with pytest.raises(ValidationFailure, match="reason is required"):
            sm.check_validation_change(V.PENDING, V.BLOCKED, "")

    def test_reason_must_be_known(self):
        with pytest.raises(ValidationFailure, match="Unknown validation reason"):
            sm.check_validation_change(V.PENDING, V.CANCELED, "Because")

    def test_known_reason_accepted(self):
        sm.check_validation_change(V.PENDING, V.BLOCKED, "Injoignable")

    def test_illegal_move_rejected(self):
        with pytest.raises(ValidationFailure, match="cannot move"):
            sm.check_validation_change(V.VALIDATED, V.PENDING, "")


class TestActivationTransitions:
    def test_linear_chain(self):
        chain = [A.STUDY, A.TO_PROCESS, A.IN_PROGRESS, A.INSTALLED, A.BILLED]
        for current, target in zip(chain, chain[1:]):
            sm.check_activation_change(current, target, "")

    def test_cannot_skip_steps(self):
        with pytest.raises(ValidationFailure):
            sm.check_activation_change(A.STUDY, A.INSTALLED, "")

    def test_billed_is_terminal(self):
        assert not sm.can_activate(A.BILLED, A.CANCELED)

    @pytest.mark.parametrize("target", [A.TO_PROCESS, A.IN_PROGRESS, A.CANCELED])
    def test_blocked_activation_resumes(self, target):
        sm.check_activation_change(A.BLOCKED, target, "Annulation par Client")

    def test_blocked_activation_cannot_jump_to_installed(self):
        assert not sm.can_activate(A.BLOCKED, A.INSTALLED)

    def test_block_needs_vocabulary_reason(self):
        with pytest.raises(ValidationFailure):
            sm.check_activation_change(A.IN_PROGRESS, A.BLOCKED, "Injoignable")
        sm.check_activation_change(A.IN_PROGRESS, A.BLOCKED, "Refus Client")


class TestStamps:
    def test_validated_at_stamped_once(self):
        rec = OrderRecord(validation_state=V.VALIDATED)
        stamped = sm.apply_validation_stamps(rec, NOW)
        assert stamped.validated_at == NOW
        later = datetime(2024, 5, 1, tzinfo=timezone.utc)
        assert sm.apply_validation_stamps(stamped, later).validated_at == NOW

    def test_pending_not_stamped(self):
        assert sm.apply_validation_stamps(OrderRecord(), NOW).validated_at is None


class TestReleasedReasons:
    def test_reason_cleared_after_release(self):
        rec = OrderRecord(validation_state=V.VALIDATED, block_reason="Injoignable")
        assert sm.clear_released_reasons(rec).block_reason == ""

    def test_reason_kept_while_held(self):
        rec = OrderRecord(
            validation_state=V.BLOCKED,
            block_reason="Injoignable",
            activation_state=A.CANCELED,
            activation_block_reason="Refus Client",
        )
        assert sm.clear_released_reasons(rec) == rec


class TestSoftDelete:
    def test_delete_then_restore_round_trip(self):
        rec = OrderRecord(id="X", contract_ref="CT-9", company_name="Atlas", validation_state=V.BLOCKED)
        deleted = sm.soft_delete(rec, NOW)
        assert deleted.validation_state == V.DELETED
        assert deleted.last_edited_at == NOW

        later = datetime(2024, 4, 2, tzinfo=timezone.utc)
        restored = sm.restore(deleted, later)
        assert restored.validation_state == V.PENDING
        assert restored.last_edited_at == later
        assert restored.model_dump(exclude={"validation_state", "last_edited_at"}) == rec.model_dump(
            exclude={"validation_state", "last_edited_at"}
        )

    def test_cannot_delete_twice(self):
        with pytest.raises(ValidationFailure):
            sm.soft_delete(OrderRecord(validation_state=V.DELETED), NOW)

    def test_restore_requires_deleted(self):
        with pytest.raises(ValidationFailure):
            sm.restore(OrderRecord(), NOW)

"""
test_merge_resolver.py — Tests for services/merge_resolver.py

Covers the winner priority (manual > edited > status-modified > recent),
idempotence, one-record-per-key, keyless pass-through and the fact that
resolution never touches the input.

Called by: pytest
Depends on: conftest.py (make_order)
"""

from datetime import datetime, timezone

from ordersync.schemas.orders import OrderRecord
from ordersync.services.merge_resolver import (
    DEFAULT_RULES,
    LEFT,
    RIGHT,
    business_key,
    is_status_modified,
    pick_winner,
    prefer_recently_processed,
    resolve,
    resolve_report,
)
from conftest import make_order


def rec(**fields) -> OrderRecord:
    return OrderRecord.model_validate(make_order(**fields))


# ── Priority rules ───────────────────────────────────────────────────


class TestPriority:
    def test_manual_beats_imported_in_either_order(self):
        manual = rec(id="M", manually_created=True)
        imported = rec(id="I", processed_at="2025-01-01T00:00:00+00:00")
        assert [r.id for r in resolve([manual, imported])] == ["M"]
        assert [r.id for r in resolve([imported, manual])] == ["M"]

    def test_edited_beats_unedited(self):
        edited = rec(id="E", last_edited_at="2024-03-02T10:00:00+00:00")
        plain = rec(id="P", processed_at="2025-01-01T00:00:00+00:00")
        assert resolve([plain, edited])[0].id == "E"
        assert resolve([edited, plain])[0].id == "E"

    def test_status_modified_beats_unmodified(self):
        validated = rec(id="V", validation_state="VALIDATED")
        pending = rec(id="P", processed_at="2025-01-01T00:00:00+00:00")
        assert resolve([pending, validated])[0].id == "V"

    def test_confirmed_flag_counts_as_modified(self):
        confirmed = rec(id="C", is_confirmed=True)
        plain = rec(id="P", processed_at="2025-01-01T00:00:00+00:00")
        assert resolve([plain, confirmed])[0].id == "C"

    def test_later_processing_breaks_tie(self):
        old = rec(id="OLD", processed_at="2024-01-01T00:00:00+00:00")
        new = rec(id="NEW", processed_at="2024-06-01T00:00:00+00:00")
        assert resolve([old, new])[0].id == "NEW"
        assert resolve([new, old])[0].id == "NEW"

    def test_missing_processed_at_loses(self):
        none = rec(id="N", processed_at=None)
        some = rec(id="S", processed_at="2020-01-01T00:00:00+00:00")
        assert resolve([none, some])[0].id == "S"

    def test_full_tie_keeps_first_seen(self):
        a = rec(id="A")
        b = rec(id="B")
        assert pick_winner(a, b).id == "A"

    def test_manual_wins_over_edited(self):
        manual = rec(id="M", manually_created=True)
        edited = rec(id="E", last_edited_at="2024-03-02T10:00:00+00:00")
        assert resolve([edited, manual])[0].id == "M"

    def test_rule_order_is_fixed(self):
        assert [r.__name__ for r in DEFAULT_RULES] == [
            "prefer_manual",
            "prefer_user_edited",
            "prefer_status_modified",
            "prefer_recently_processed",
        ]

    def test_rules_are_independently_testable(self):
        a = rec(processed_at="2024-01-02T00:00:00+00:00")
        b = rec(processed_at="2024-01-01T00:00:00+00:00")
        assert prefer_recently_processed(a, b) == LEFT
        assert prefer_recently_processed(b, a) == RIGHT
        assert prefer_recently_processed(a, a) is None


# ── Structural properties ────────────────────────────────────────────


class TestResolve:
    def _sample(self) -> list[OrderRecord]:
        return [
            rec(id="1", contract_ref="CT-1"),
            rec(id="2", contract_ref=" CT-1 ", manually_created=True),
            rec(id="3", contract_ref="CT-2"),
            rec(id="4", contract_ref=""),
            rec(id="5", contract_ref="   "),
            rec(id="6", contract_ref="CT  2", last_edited_at="2024-05-01T00:00:00+00:00"),
            rec(id="7", contract_ref="CT 2", validation_state="BLOCKED", block_reason="Injoignable"),
        ]

    def test_idempotent(self):
        once = resolve(self._sample())
        assert resolve(once) == once

    def test_one_record_per_key(self):
        out = resolve(self._sample())
        keys = [business_key(r) for r in out if business_key(r)]
        assert sorted(keys) == ["CT 2", "CT-1", "CT-2"]

    def test_keyless_records_pass_through(self):
        out = resolve(self._sample())
        assert {"4", "5"} <= {r.id for r in out}

    def test_duplicate_count_reported(self):
        result = resolve_report(self._sample())
        assert result.duplicates == 2
        assert len(result.records) == 5

    def test_input_not_modified(self):
        sample = self._sample()
        before = [r.model_dump() for r in sample]
        resolve(sample)
        assert [r.model_dump() for r in sample] == before

    def test_empty_input(self):
        assert resolve([]) == []


def test_is_status_modified():
    assert not is_status_modified(rec())
    assert is_status_modified(rec(activation_state="TO_PROCESS"))
    assert is_status_modified(rec(manually_created=True))


def test_timestamps_are_compared_timezone_aware():
    naive = OrderRecord(contract_ref="K", processed_at=datetime(2024, 1, 2))
    aware = OrderRecord(contract_ref="K", processed_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    assert resolve([aware, naive])[0].processed_at.day == 2

"""
Tests for vault-wide risk snapshots.
"""
import orjson

from volkpass.models import StrengthLabel
from volkpass.risk import (
    CredentialRiskEngine,
    compute_risk_snapshot,
    find_reused,
)

from conftest import make_record

STRONG = "Tr0ub4dor&3-Xq"


def ids(records):
    return [r.id for r in records]


class TestReuse:
    """Tests for duplicate secret grouping."""

    def test_reused_members_in_input_order(self):
        records = [make_record(i, v) for i, v in enumerate(["a", "b", "a", "c", "a"], start=1)]
        assert ids(find_reused(records)) == [1, 3, 5]

    def test_groups_concatenated_in_first_seen_order(self):
        records = [make_record(i, v) for i, v in enumerate(["x", "y", "x", "y", "z"], start=1)]
        assert ids(find_reused(records)) == [1, 3, 2, 4]

    def test_exact_match_only(self):
        records = [make_record(1, "Secret"), make_record(2, "secret"), make_record(3, "secret ")]
        assert find_reused(records) == []

    def test_empty_input(self):
        snapshot = compute_risk_snapshot([])
        assert snapshot.is_clean
        assert snapshot.issue_count == 0


class TestSnapshot:
    """Tests for the three independent buckets."""

    def test_compromised_keeps_input_order(self):
        records = [
            make_record(1, STRONG + "1", compromised=True),
            make_record(2, STRONG + "2"),
            make_record(3, STRONG + "3", compromised=True),
        ]
        snapshot = compute_risk_snapshot(records)
        assert ids(snapshot.compromised) == [1, 3]
        assert snapshot.reused == []
        assert snapshot.weak == []

    def test_weak_scored_live(self):
        records = [make_record(1, "password"), make_record(2, STRONG)]
        assert ids(compute_risk_snapshot(records).weak) == [1]

    def test_issue_count_double_counts(self):
        """A compromised, weak, reused record is counted once per bucket."""
        records = [
            make_record(1, "abc", compromised=True),
            make_record(2, "abc"),
        ]
        snapshot = compute_risk_snapshot(records)
        assert ids(snapshot.compromised) == [1]
        assert ids(snapshot.reused) == [1, 2]
        assert ids(snapshot.weak) == [1, 2]
        assert snapshot.issue_count == 5

    def test_compromised_and_weak_counts_two(self):
        snapshot = compute_risk_snapshot([make_record(1, "abc", compromised=True)])
        assert snapshot.issue_count == 2

    def test_persisted_strength_when_requested(self):
        """The stored label wins only when the caller asks for it."""
        stale = make_record(1, STRONG, strength=StrengthLabel.WEAK)
        unlabeled = make_record(2, "password")
        assert ids(compute_risk_snapshot([stale, unlabeled]).weak) == [2]
        persisted = compute_risk_snapshot([stale, unlabeled], use_persisted_strength=True)
        assert ids(persisted.weak) == [1, 2]

    def test_engine_uses_configured_mode(self):
        stale = make_record(1, STRONG, strength=StrengthLabel.WEAK)
        assert CredentialRiskEngine().snapshot([stale]).weak == []
        assert ids(CredentialRiskEngine(use_persisted_strength=True).snapshot([stale]).weak) == [1]

    def test_accepts_generator_input(self):
        snapshot = compute_risk_snapshot(make_record(i, "dup") for i in range(3))
        assert ids(snapshot.reused) == [0, 1, 2]
        assert ids(snapshot.weak) == [0, 1, 2]

    def test_json_masks_secrets(self):
        snapshot = compute_risk_snapshot([make_record(1, "hunter", compromised=True)])
        raw = snapshot.as_json()
        assert b"hunter" not in raw
        data = orjson.loads(raw)
        assert data["issue_count"] == 2
        assert data["compromised"][0]["id"] == 1

"""
Vault-wide credential risk analysis.

``compute_risk_snapshot`` splits a record set into three independent
buckets: compromised (external flag), reused (identical secret on two or
more records) and weak. Every pass is linear in the number of records.

Security Note:
    Secrets are only compared, never logged. Log counts, not values.
"""
import logging
from collections.abc import Iterable

from .models import CredentialRecord, RiskSnapshot, StrengthLabel
from .strength import classify, score_strength, strength_of

logger = logging.getLogger("volkpass.risk")


def find_compromised(records: Iterable[CredentialRecord]) -> list[CredentialRecord]:
    """Records flagged compromised by the store, in input order."""
    return [record for record in records if record.compromised]


def find_reused(records: Iterable[CredentialRecord]) -> list[CredentialRecord]:
    """Records that share their exact secret with at least one other record.

    Groups keep first-seen order, and groups are concatenated in the order
    their first member appeared.
    """
    groups: dict[str, list[CredentialRecord]] = {}
    for record in records:
        groups.setdefault(record.secret_value.get_secret_value(), []).append(record)
    reused: list[CredentialRecord] = []
    for group in groups.values():
        if len(group) > 1:
            reused.extend(group)
    return reused


def _effective_strength(record: CredentialRecord, use_persisted: bool) -> StrengthLabel:
    if use_persisted and record.strength is not None:
        return record.strength
    return classify(score_strength(record.secret_value))


def find_weak(
    records: Iterable[CredentialRecord],
    *,
    use_persisted_strength: bool = False,
) -> list[CredentialRecord]:
    """Records classified weak.

    By default strength is scored live from the secret. With
    ``use_persisted_strength`` the stored label is trusted when present.
    """
    return [
        record for record in records
        if _effective_strength(record, use_persisted_strength) is StrengthLabel.WEAK
    ]


def compute_risk_snapshot(
    records: Iterable[CredentialRecord],
    *,
    use_persisted_strength: bool = False,
) -> RiskSnapshot:
    """Classify a credential set into compromised, reused and weak lists."""
    records = list(records)
    snapshot = RiskSnapshot(
        compromised=find_compromised(records),
        reused=find_reused(records),
        weak=find_weak(records, use_persisted_strength=use_persisted_strength),
    )
    logger.debug(
        "Risk snapshot over %d record(s): compromised=%d reused=%d weak=%d",
        len(records), len(snapshot.compromised), len(snapshot.reused), len(snapshot.weak),
    )
    return snapshot


class CredentialRiskEngine:
    """Stateless facade over the scoring and risk functions.

    Callers that prefer an injectable object (instead of module functions)
    receive one of these; it carries no state and is safe to share.
    """

    use_persisted_strength: bool = False

    def __init__(self, use_persisted_strength: bool = False) -> None:
        self.use_persisted_strength = use_persisted_strength

    @staticmethod
    def score_strength(secret) -> int:
        return score_strength(secret)

    @staticmethod
    def classify(score: int) -> StrengthLabel:
        return classify(score)

    @staticmethod
    def strength_of(secret) -> tuple[int, StrengthLabel]:
        return strength_of(secret)

    def snapshot(self, records: Iterable[CredentialRecord]) -> RiskSnapshot:
        return compute_risk_snapshot(
            records, use_persisted_strength=self.use_persisted_strength,
        )

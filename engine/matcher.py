# 📦 engine/matcher.py
# ─────────────────────────────
# Ranking engine: scores a pool of verified therapists against one referral

from collections import Counter

import structlog

from engine import filters, scoring
from engine.rules import MatchingRules, get_rules
from schemas.schemas import MatchResult, ReferralCriteria, TherapistProfile

log = structlog.get_logger()

DEFAULT_LIMIT = 3

class Matcher:
    """Stateless ranker bound to one matching policy.

    Safe to share between concurrent requests: nothing is mutated after
    construction.
    """

    def __init__(self, rules: MatchingRules | None = None):
        self.rules = rules or get_rules()

    def score(self, criteria: ReferralCriteria, therapist: TherapistProfile) -> MatchResult:
        total, reasons = scoring.score_therapist(criteria, therapist, self.rules)
        return MatchResult(therapist=therapist, score=total, reasons=reasons)

    def explain(self, criteria: ReferralCriteria, therapist: TherapistProfile) -> dict:
        """Per-factor points for one therapist, for the explain endpoint."""
        breakdown, reasons = scoring.score_breakdown(criteria, therapist, self.rules)
        return {
            "therapist_id": therapist.id,
            "score": breakdown.total,
            "max_score": self.rules.max_score,
            "rules_version": self.rules.version,
            "factors": breakdown.model_dump(),
            "reasons": reasons,
        }

    def find_matches(self, criteria: ReferralCriteria, therapists, limit: int = DEFAULT_LIMIT) -> list[MatchResult]:
        ranked, _ = self.rank(criteria, therapists, limit=limit)
        return ranked

    def rank(self, criteria: ReferralCriteria, therapists, limit: int = DEFAULT_LIMIT) -> tuple[list[MatchResult], int]:
        """Like find_matches, also returning how many candidates were dropped for a non-positive score."""
        if limit < 1:
            raise ValueError("limit must be a positive integer")

        candidates = self._apply_filters(therapists)
        if not candidates:
            log.warning("No verified therapists in candidate pool", issue_type=criteria.issue_type)
            return [], 0

        scored = [self.score(criteria, th) for th in candidates]
        valid = [m for m in scored if filters.filter_by_positive_score(m)]
        dropped = len(scored) - len(valid)
        if dropped:
            log.warning("Dropped therapists without a positive score", dropped=dropped)

        # sorted() is stable: equal scores keep pool order
        ranked = sorted(valid, key=lambda m: m.score, reverse=True)[:limit]

        self._log_specialization_distribution(candidates)
        log.info(
            "Top matches generated",
            issue_type=criteria.issue_type,
            urgency=criteria.urgency.value,
            rules_version=self.rules.version,
            matches=[(m.therapist.id, m.score) for m in ranked],
        )
        return ranked, dropped

    def _apply_filters(self, therapists):
        therapists = list(therapists or [])
        candidates = filters.apply_candidate_filters(therapists)
        if len(candidates) < len(therapists):
            log.warning(
                "Unverified therapists removed from candidate pool",
                removed=len(therapists) - len(candidates),
            )
        return candidates

    def _log_specialization_distribution(self, therapists):
        counter = Counter()
        for th in therapists:
            counter.update(th.specializations or [])
        log.debug("Therapist specialization distribution", distribution=dict(counter))

def find_matches(criteria, therapists, limit=DEFAULT_LIMIT, rules=None):
    """
    Rank verified therapists for a referral.
    Returns at most `limit` MatchResults sorted by score (highest first).
    """
    return Matcher(rules).find_matches(criteria, therapists, limit=limit)

# 📦 engine/scoring.py
# ─────────────────────────────
# Additive scoring factors for referral → therapist matching
#
# Every factor returns (points, reason). A reason of None means the factor
# contributed nothing and adds no line to the explanation.

from typing import Iterable, Optional, Tuple

from engine.rules import MatchingRules
from schemas.schemas import ReferralCriteria, ScoreBreakdown, TherapistProfile, Urgency

Factor = Tuple[int, Optional[str]]

NO_SCORE: Factor = (0, None)

def _first_shared(tags: Iterable[str], specializations) -> Optional[str]:
    """First tag (in table order) the therapist declares."""
    declared = set(specializations or ())
    for tag in tags:
        if tag in declared:
            return tag
    return None

def verified_score(th: TherapistProfile, rules: MatchingRules) -> Factor:
    """Base points; the pool is pre-filtered to verified therapists."""
    return rules.points["verified"], "Verified therapist"

def specialization_score(cri: ReferralCriteria, th: TherapistProfile, rules: MatchingRules) -> Factor:
    """Direct specialization first, related experience only when there is no direct hit."""
    direct = _first_shared(rules.direct_tags(cri.issue_type), th.specializations)
    if direct:
        return rules.points["direct_specialization"], f"Specializes in {direct}"

    related = _first_shared(rules.related_tags(cri.issue_type), th.specializations)
    if related:
        return rules.points["related_specialization"], f"Has experience with {related}"

    return NO_SCORE

def language_score(cri: ReferralCriteria, th: TherapistProfile, rules: MatchingRules) -> Factor:
    """Exact language match, else fallback to the common language."""
    languages = th.languages or []
    if cri.preferred_language in languages:
        return rules.points["language_exact"], f"Speaks {cri.preferred_language}"
    fallback = rules.fallback_language
    if fallback in languages and cri.preferred_language != fallback:
        return rules.points["language_english_fallback"], f"Speaks {fallback} (fallback)"
    return NO_SCORE

def modality_score(cri: ReferralCriteria, th: TherapistProfile, rules: MatchingRules) -> Factor:
    """Flat bonus. The therapist's calendar is not checked against the requested modality."""
    return rules.points["modality_available"], "Available for sessions"

def age_score(cri: ReferralCriteria, th: TherapistProfile, rules: MatchingRules) -> Factor:
    if rules.child_specialization in (th.specializations or []):
        return rules.points["age_child_specialist"], "Specializes in child & adolescent therapy"
    if cri.client_age < rules.child_age_threshold:
        return rules.points["age_under_12_general"], "General practice (may need child specialist)"
    return rules.points["age_general"], "Appropriate for age group"

def urgency_score(cri: ReferralCriteria, th: TherapistProfile, rules: MatchingRules) -> Factor:
    urgency = Urgency(cri.urgency)
    if urgency is Urgency.CRISIS:
        if _first_shared(rules.urgency_tags(urgency.value), th.specializations):
            return rules.points["urgency_crisis_specialist"], "Crisis intervention specialist"
        return rules.points["urgency_crisis_general"], "General practice (may need crisis specialist)"
    if urgency is Urgency.HIGH:
        if _first_shared(rules.urgency_tags(urgency.value), th.specializations):
            return rules.points["urgency_high_specialist"], "Experience with urgent cases"
        return rules.points["urgency_high_general"], "General practice"
    return rules.points["urgency_standard"], "Appropriate for urgency level"

def special_requirements_score(cri: ReferralCriteria, th: TherapistProfile, rules: MatchingRules) -> Factor:
    """Keyword heuristics over the free-text requirements, first rule wins."""
    if not cri.special_requirements:
        return NO_SCORE

    text = cri.special_requirements.lower()
    specializations = th.specializations or []
    points = rules.points

    if "wheelchair" in text or "accessibility" in text:
        return points["special_accessibility"], "Accessibility considerations noted"
    if "cultural" in text or "religion" in text:
        return points["special_cultural"], "Cultural considerations noted"
    if "cbt" in text and "CBT" in specializations:
        return points["special_cbt"], "CBT specialist"
    if "emdr" in text and "EMDR" in specializations:
        return points["special_emdr"], "EMDR specialist"
    return points["special_other"], "Special requirements noted"

# ─────────────────────────────
# Full score builder

def score_breakdown(cri: ReferralCriteria, th: TherapistProfile, rules: MatchingRules) -> Tuple[ScoreBreakdown, list]:
    """Evaluate every factor in order; returns per-factor points and the reasons list."""
    factors = [
        ("verified", verified_score(th, rules)),
        ("specialization", specialization_score(cri, th, rules)),
        ("language", language_score(cri, th, rules)),
        ("modality", modality_score(cri, th, rules)),
        ("age", age_score(cri, th, rules)),
        ("urgency", urgency_score(cri, th, rules)),
        ("special_requirements", special_requirements_score(cri, th, rules)),
    ]
    breakdown = ScoreBreakdown(**{name: points for name, (points, _) in factors})
    reasons = [reason for _, (_, reason) in factors if reason]
    return breakdown, reasons

def score_therapist(cri: ReferralCriteria, th: TherapistProfile, rules: MatchingRules) -> Tuple[int, list]:
    breakdown, reasons = score_breakdown(cri, th, rules)
    return breakdown.total, reasons

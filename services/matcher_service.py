# 📦 /services/matcher_service.py

from datetime import datetime, timezone

import structlog
from prometheus_client import Counter

from engine.matcher import DEFAULT_LIMIT, Matcher
from schemas.schemas import (
    MatchLogRow,
    MatchNotifications,
    MatchResult,
    Referral,
    ReferralCriteria,
    ReferralStatus,
    ReferrerNotification,
    TherapistNotification,
)
from supabase_client import supabase
from utils.fetch_therapists import fetch_referral, fetch_therapist_verification, fetch_therapists
from utils.supabase_utils import MatchStoreError, insert_with_retry, require_client

log = structlog.get_logger()

REQUEST_COUNTER = Counter("mindmatch_requests_total", "Total /recommend requests made")
MATCHES_RETURNED_COUNTER = Counter("mindmatch_matches_returned", "Number of matches returned per request")
FILTERED_OUT_COUNTER = Counter("mindmatch_matches_filtered_out", "Number of candidates dropped for a non-positive score")
COMMIT_COUNTER = Counter("mindmatch_match_commits", "Referral match commits by outcome", ["outcome"])

class ReferralNotFound(LookupError):
    """No referral row exists for the given id."""

def run_matcher(criteria: ReferralCriteria, therapists, limit=DEFAULT_LIMIT, rules=None):
    matcher = Matcher(rules)
    matches, dropped = matcher.rank(criteria, therapists, limit=limit)

    if dropped:
        FILTERED_OUT_COUNTER.inc(dropped)
    if matches:
        MATCHES_RETURNED_COUNTER.inc(len(matches))
    return matches, matcher.rules.version

def run_explanation(criteria: ReferralCriteria, therapists, rules=None):
    matcher = Matcher(rules)
    matches = matcher.find_matches(criteria, therapists, limit=1)

    if not matches:
        return None

    return matcher.explain(criteria, matches[0].therapist)

def log_recommendation(criteria: ReferralCriteria, matches: list[MatchResult], rules_version: str):
    """Write the ranked list to `match_logs` for clinical review."""
    best = matches[0]
    row = MatchLogRow(
        rules_version=rules_version,
        criteria=criteria,
        top_match_id=best.therapist.id,
        top_match_score=best.score,
        recommended=[
            {"therapist_id": m.therapist.id, "score": m.score, "reasons": m.reasons}
            for m in matches
        ],
    )
    client = require_client(supabase)
    return insert_with_retry(client.table("match_logs"), row.model_dump(mode="json"))

def commit_match(referral_id: str, therapist_id: str) -> bool:
    """Point the referral at its chosen therapist. Single update, no retry.

    Concurrent commits for the same referral are last-write-wins; the store
    has to serialize them if double-booking matters.
    """
    try:
        client = require_client(supabase)
        client.table("referrals").update({
            "matched_therapist_id": therapist_id,
            "status": ReferralStatus.MATCHED.value,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }).eq("id", referral_id).execute()
    except Exception as e:
        log.error("Failed to commit match", referral_id=referral_id, therapist_id=therapist_id, error=str(e))
        COMMIT_COUNTER.labels("failure").inc()
        return False

    COMMIT_COUNTER.labels("success").inc()
    log.info("Referral matched", referral_id=referral_id, therapist_id=therapist_id)
    return True

async def process_referral(referral_id: str, limit=DEFAULT_LIMIT, rules=None):
    """Rank therapists for a stored referral and commit the best one.

    Returns (matches, matched therapist id, notification payloads). The
    payloads are None when nothing matched or the therapist has no booking link.
    """
    referral = fetch_referral(referral_id)
    if referral is None:
        raise ReferralNotFound(referral_id)

    therapists = await fetch_therapists()
    matches = Matcher(rules).find_matches(referral.criteria(), therapists, limit=limit)
    if not matches:
        log.warning("No matches for referral", referral_id=referral_id)
        return matches, None, None

    best = matches[0]
    if not commit_match(referral_id, best.therapist.id):
        raise MatchStoreError(f"Could not commit match for referral {referral_id}")

    notifications = None
    if best.therapist.booking_url:
        notifications = build_match_notifications(referral, best)
    else:
        log.warning("Matched therapist has no booking link", referral_id=referral_id, therapist_id=best.therapist.id)
    return matches, best.therapist.id, notifications

def check_therapist_availability(therapist_id: str) -> bool:
    """Availability is approximated by verification status; calendars are not consulted."""
    return bool(fetch_therapist_verification(therapist_id))

def build_match_notifications(referral: Referral, match: MatchResult, booking_link: str | None = None, referrer_email: str | None = None) -> MatchNotifications:
    """Assemble the data fed into the referrer and therapist match messages."""
    therapist = match.therapist
    link = booking_link or therapist.booking_url
    if not link:
        raise ValueError(f"No booking link available for therapist {therapist.id}")

    return MatchNotifications(
        referrer=ReferrerNotification(
            referrer_email=referrer_email,
            client_name=referral.client_name,
            therapist_name=therapist.full_name or "Your therapist",
            therapist_bio=therapist.bio or "",
            booking_link=link,
        ),
        therapist=TherapistNotification(
            therapist_email=therapist.email,
            client_name=referral.client_name,
            client_age=referral.client_age,
            issue_type=referral.issue_type,
            urgency=referral.urgency,
            booking_link=link,
        ),
    )

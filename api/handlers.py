import asyncio

from fastapi import APIRouter
from fastapi.responses import JSONResponse
import structlog

from engine.matcher import DEFAULT_LIMIT
from engine.rules import RulesError, reload_rules
from schemas.schemas import (
    AvailabilityResponse,
    CommitMatchResponse,
    ErrorResponse,
    ExplainResponse,
    HealthCheckResponse,
    ProcessReferralResponse,
    RecommendResponse,
    ReferralCriteria,
)
from services.matcher_service import (
    REQUEST_COUNTER,
    ReferralNotFound,
    check_therapist_availability,
    commit_match,
    log_recommendation,
    process_referral,
    run_explanation,
    run_matcher,
)
from utils.fetch_therapists import fetch_therapists
from utils.supabase_utils import MatchStoreError

log = structlog.get_logger()

router = APIRouter()

VERSION = "1.0.0"

# Verified therapist pool — refreshed at startup and via /admin/reload-therapists
THERAPISTS = []

async def refresh_therapists():
    global THERAPISTS
    THERAPISTS = await fetch_therapists()
    return THERAPISTS

def _error(status_code: int, message: str, info=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(status="error", message=message, info=info).model_dump(),
    )

@router.get("/", response_model=HealthCheckResponse)
async def healthcheck():
    return HealthCheckResponse(
        status="ok",
        message="MindMatch matching engine live",
        version=VERSION,
    )

@router.post("/recommend", response_model=RecommendResponse, responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}})
async def recommend(criteria: ReferralCriteria, limit: int = DEFAULT_LIMIT):
    REQUEST_COUNTER.inc()

    if limit < 1:
        return _error(422, "limit must be a positive integer.")

    matches, rules_version = run_matcher(criteria, THERAPISTS, limit=limit)

    if not matches:
        return _error(404, "No suitable therapists found for this referral.")

    try:
        await asyncio.to_thread(log_recommendation, criteria, matches, rules_version)
    except Exception as e:
        log.error("Failed to log match", error=str(e))
        return _error(500, "Failed to log match to Supabase.", str(e))

    return RecommendResponse(status="success", rules_version=rules_version, data=matches)

@router.post("/explain", response_model=ExplainResponse, responses={404: {"model": ErrorResponse}})
async def explain(criteria: ReferralCriteria):
    explanation = run_explanation(criteria, THERAPISTS)

    if not explanation:
        return _error(404, "No suitable therapist found for explanation.")

    return ExplainResponse(status="success", data=explanation)

@router.post("/referrals/{referral_id}/process", response_model=ProcessReferralResponse, responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}})
async def process(referral_id: str, limit: int = DEFAULT_LIMIT):
    if limit < 1:
        return _error(422, "limit must be a positive integer.")

    try:
        matches, matched_id, notifications = await process_referral(referral_id, limit=limit)
    except ReferralNotFound:
        return _error(404, f"Referral {referral_id} not found.")
    except MatchStoreError as e:
        return _error(500, "Failed to process referral.", str(e))

    return ProcessReferralResponse(
        status="success" if matched_id else "no_match",
        referral_id=referral_id,
        matched_therapist_id=matched_id,
        data=matches,
        notifications=notifications,
    )

@router.post("/referrals/{referral_id}/match/{therapist_id}", response_model=CommitMatchResponse, responses={500: {"model": ErrorResponse}})
async def choose_match(referral_id: str, therapist_id: str):
    if not commit_match(referral_id, therapist_id):
        return _error(500, "Failed to commit match.")

    return CommitMatchResponse(
        status="success",
        message="Therapist matched successfully.",
        referral_id=referral_id,
        therapist_id=therapist_id,
    )

@router.get("/therapists/{therapist_id}/availability", response_model=AvailabilityResponse, responses={500: {"model": ErrorResponse}})
async def availability(therapist_id: str):
    try:
        available = check_therapist_availability(therapist_id)
    except MatchStoreError as e:
        return _error(500, "Failed to check availability.", str(e))

    return AvailabilityResponse(status="success", therapist_id=therapist_id, available=available)

@router.post("/admin/reload-rules")
async def admin_reload_rules():
    try:
        rules = reload_rules()
    except RulesError as e:
        log.error("Failed to reload matching rules", error=str(e))
        return _error(500, "Failed to reload matching rules.")
    return {"status": "rules reloaded", "version": rules.version}

@router.post("/admin/reload-therapists")
async def admin_reload_therapists():
    try:
        therapists = await refresh_therapists()
    except MatchStoreError as e:
        return _error(500, "Failed to reload therapists.", str(e))
    return {"status": "therapists reloaded", "count": len(therapists)}

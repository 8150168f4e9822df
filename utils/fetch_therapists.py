# 📦 utils/fetch_therapists.py

import asyncio
from typing import List

import structlog
from pydantic import ValidationError

from schemas.schemas import Referral, TherapistProfile
from supabase_client import supabase
from utils.supabase_utils import MatchStoreError, require_client

log = structlog.get_logger()

THERAPIST_COLUMNS = "*, users!inner(full_name, email)"

def therapist_from_row(row: dict) -> TherapistProfile:
    """Map a `therapists` row (joined with `users`) to the matching model."""
    user = row.get("users") or {}
    return TherapistProfile(
        id=row.get("id"),
        user_id=row.get("user_id"),
        full_name=user.get("full_name"),
        email=user.get("email"),
        is_verified=bool(row.get("is_verified")),
        specializations=row.get("specializations") or [],
        languages=row.get("languages") or [],
        hourly_rate=row.get("hourly_rate") or 0,
        bio=row.get("bio"),
        availability=row.get("availability"),
        profile_image_url=row.get("profile_image_url"),
        booking_url=row.get("booking_url"),
    )

async def fetch_therapists(retries: int = 3, delay: float = 2.0) -> List[TherapistProfile]:
    """Fetch verified therapists from Supabase, with retry logic."""
    client = require_client(supabase)
    for attempt in range(retries):
        try:
            log.info("Fetching verified therapists", attempt=attempt + 1)
            response = (
                client.table("therapists")
                .select(THERAPIST_COLUMNS)
                .eq("is_verified", True)
                .execute()
            )

            if not response.data:
                log.warning("No verified therapists found in Supabase.")
                return []

            therapists = []
            for row in response.data:
                try:
                    therapists.append(therapist_from_row(row))
                except ValidationError as e:
                    log.error("Skipping malformed therapist row", therapist_id=row.get("id"), error=str(e))
            log.info("Fetched therapists from Supabase", count=len(therapists))
            return therapists

        except Exception as e:
            log.error("Failed to fetch therapists", attempt=attempt + 1, error=str(e))
            if attempt < retries - 1:
                await asyncio.sleep(delay * (2 ** attempt))  # Exponential backoff
            else:
                raise MatchStoreError("Could not fetch therapists from Supabase.") from e
    return []

def fetch_referral(referral_id: str) -> Referral | None:
    """Load one referral row; None when it does not exist."""
    client = require_client(supabase)
    try:
        response = client.table("referrals").select("*").eq("id", referral_id).limit(1).execute()
    except Exception as e:
        log.error("Failed to fetch referral", referral_id=referral_id, error=str(e))
        raise MatchStoreError(f"Could not fetch referral {referral_id}") from e

    if not response.data:
        return None
    try:
        return Referral(**response.data[0])
    except ValidationError as e:
        log.error("Stored referral failed validation", referral_id=referral_id, error=str(e))
        raise MatchStoreError(f"Referral {referral_id} cannot be matched: stored record is invalid") from e

def fetch_therapist_verification(therapist_id: str) -> bool | None:
    """Return the therapist's `is_verified` flag, or None when unknown."""
    client = require_client(supabase)
    try:
        response = (
            client.table("therapists")
            .select("is_verified, availability")
            .eq("id", therapist_id)
            .limit(1)
            .execute()
        )
    except Exception as e:
        log.error("Failed to fetch therapist", therapist_id=therapist_id, error=str(e))
        raise MatchStoreError(f"Could not fetch therapist {therapist_id}") from e

    if not response.data:
        return None
    return bool(response.data[0].get("is_verified"))

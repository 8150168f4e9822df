# 📦 engine/filters.py
# ─────────────────────────────
# Candidate filters applied around scoring

def filter_by_verification(th):
    """Only verified therapists may be matched."""
    return bool(getattr(th, "is_verified", False))

def filter_by_positive_score(match):
    """Drop results that earned nothing.

    Every verified therapist collects base, modality, age and urgency points,
    so with the bundled weights this never removes anyone. It guards against
    future policy files with zero or negative weights.
    """
    return match.score > 0

def apply_candidate_filters(therapists):
    """Keep verified candidates, preserving pool order."""
    return [th for th in therapists if filter_by_verification(th)]

# engine/__init__.py
# ─────────────────────────────
# Init file for the matching engine package
# Exposes core components

from .filters import apply_candidate_filters
from .matcher import Matcher, find_matches
from .rules import MatchingRules, RulesError, get_rules, load_rules, reload_rules
from .scoring import score_breakdown, score_therapist

__all__ = [
    "apply_candidate_filters",
    "Matcher",
    "find_matches",
    "MatchingRules",
    "RulesError",
    "get_rules",
    "load_rules",
    "reload_rules",
    "score_breakdown",
    "score_therapist",
]

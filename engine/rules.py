# rules.py – matching-policy loader
# ==================================
"""
Load the clinical matching policy (`config/matching_rules.yml`) into a
`MatchingRules` value so the scoring code never hard-codes point weights or
issue → specialization tables.

Lookup order (first match wins)
-------------------------------
1. **Environment variable** `MATCHING_RULES_PATH`
   Absolute or relative path to an alternative YAML policy file.
2. **Bundled policy** `config/matching_rules.yml` next to the engine package.

A malformed file raises `RulesError`; there is no silent fallback from a
broken policy to the bundled one.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

import yaml
from structlog import get_logger

log = get_logger()

DEFAULT_RULES_PATH = Path(__file__).resolve().parent.parent / "config" / "matching_rules.yml"

REQUIRED_POINTS = (
    "verified",
    "direct_specialization",
    "related_specialization",
    "language_exact",
    "language_english_fallback",
    "modality_available",
    "age_child_specialist",
    "age_under_12_general",
    "age_general",
    "urgency_crisis_specialist",
    "urgency_crisis_general",
    "urgency_high_specialist",
    "urgency_high_general",
    "urgency_standard",
    "special_accessibility",
    "special_cultural",
    "special_cbt",
    "special_emdr",
    "special_other",
)


class RulesError(ValueError):
    """Raised when a matching policy file cannot be used."""


@dataclass(frozen=True)
class MatchingRules:
    version: str
    points: Mapping[str, int]
    direct_matches: Mapping[str, Tuple[str, ...]]
    related_matches: Mapping[str, Tuple[str, ...]]
    urgency_specializations: Mapping[str, Tuple[str, ...]]
    child_specialization: str = "Child & Adolescent"
    child_age_threshold: int = 12
    fallback_language: str = "English"
    source: Optional[str] = field(default=None, compare=False)

    def direct_tags(self, issue_type: str) -> Tuple[str, ...]:
        return self.direct_matches.get(issue_type, ())

    def related_tags(self, issue_type: str) -> Tuple[str, ...]:
        return self.related_matches.get(issue_type, ())

    def urgency_tags(self, urgency: str) -> Tuple[str, ...]:
        return self.urgency_specializations.get(urgency, ())

    @property
    def max_score(self) -> int:
        """Highest total a single therapist can reach under this policy."""
        p = self.points
        return (
            p["verified"]
            + p["direct_specialization"]
            + p["language_exact"]
            + p["modality_available"]
            + max(p["age_child_specialist"], p["age_general"], p["age_under_12_general"])
            + max(p["urgency_crisis_specialist"], p["urgency_high_specialist"], p["urgency_standard"])
            + max(p["special_accessibility"], p["special_cultural"], p["special_cbt"], p["special_emdr"], p["special_other"])
        )


# ---------------------------------------------------------------------- #
# Parsing
# ---------------------------------------------------------------------- #
def _tag_table(raw, name: str) -> Mapping[str, Tuple[str, ...]]:
    if raw is None:
        return MappingProxyType({})
    if not isinstance(raw, dict):
        raise RulesError(f"'{name}' must be a mapping")
    table = {}
    for key, tags in raw.items():
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise RulesError(f"'{name}.{key}' must be a list of strings")
        table[str(key)] = tuple(tags)
    return MappingProxyType(table)


def parse_rules(data: dict, source: Optional[str] = None) -> MatchingRules:
    """Build `MatchingRules` from an already-parsed YAML document."""
    if not isinstance(data, dict):
        raise RulesError("Matching rules document must be a mapping")

    raw_points = data.get("points") or {}
    missing = [k for k in REQUIRED_POINTS if k not in raw_points]
    if missing:
        raise RulesError(f"Missing point values: {', '.join(missing)}")
    if not all(isinstance(v, int) and not isinstance(v, bool) for v in raw_points.values()):
        raise RulesError("All point values must be integers")

    return MatchingRules(
        version=str(data.get("version", "unversioned")),
        points=MappingProxyType(dict(raw_points)),
        direct_matches=_tag_table(data.get("direct_matches"), "direct_matches"),
        related_matches=_tag_table(data.get("related_matches"), "related_matches"),
        urgency_specializations=_tag_table(data.get("urgency_specializations"), "urgency_specializations"),
        child_specialization=data.get("child_specialization", "Child & Adolescent"),
        child_age_threshold=int(data.get("child_age_threshold", 12)),
        fallback_language=data.get("fallback_language", "English"),
        source=source,
    )


def _from_env() -> Optional[Path]:
    """Use MATCHING_RULES_PATH if it exists on the local file-system."""
    p = os.getenv("MATCHING_RULES_PATH")
    if not p:
        return None
    path = Path(p).expanduser()
    if path.is_file():
        log.info("Matching rules path from env var", path=str(path))
        return path
    log.warning("Env var MATCHING_RULES_PATH set but file not found", path=str(path))
    return None


# ---------------------------------------------------------------------- #
# Public API
# ---------------------------------------------------------------------- #
def load_rules(path: str | Path | None = None) -> MatchingRules:
    """Read and validate a matching policy file."""
    rules_path = Path(path) if path else (_from_env() or DEFAULT_RULES_PATH)
    try:
        with open(rules_path, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise RulesError(f"Could not read matching rules from {rules_path}: {e}") from e

    rules = parse_rules(data, source=str(rules_path))
    log.info("Matching rules loaded", version=rules.version, path=str(rules_path))
    return rules


# Shared policy used when callers don't pass their own
_active_rules: MatchingRules | None = None


def get_rules() -> MatchingRules:
    global _active_rules
    if _active_rules is None:
        _active_rules = load_rules()
    return _active_rules


def reload_rules(path: str | Path | None = None) -> MatchingRules:
    """Swap the shared policy; the old one stays valid for in-flight calls."""
    global _active_rules
    _active_rules = load_rules(path)
    return _active_rules

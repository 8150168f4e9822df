# 📦 /tests/test_rules.py

import pytest
import yaml

from engine import rules as rules_module
from engine.rules import DEFAULT_RULES_PATH, RulesError, load_rules, parse_rules, reload_rules

def test_bundled_tables_are_complete():
    rules = load_rules()
    assert rules.direct_tags("Anxiety") == ("Anxiety Disorders", "Social Anxiety")
    assert rules.direct_tags("Family Issues") == ("Family Therapy",)
    assert rules.direct_tags("School/Work Stress") == ("School Issues",)
    assert rules.direct_tags("Suicidal Thoughts") == ("Suicidal Ideation",)
    assert rules.direct_tags("Grief/Loss") == ("Grief & Loss",)
    assert rules.related_tags("Trauma/PTSD") == ("Child & Adolescent", "EMDR")
    assert rules.related_tags("Family Issues") == ("Child & Adolescent", "Couples Therapy")
    assert rules.related_tags("Self-Harm") == ("Child & Adolescent", "Crisis Intervention")
    assert rules.urgency_tags("crisis") == ("Suicidal Ideation", "Self-Harm", "Crisis Intervention")
    assert rules.urgency_tags("high") == ("Suicidal Ideation", "Self-Harm", "Trauma/PTSD")
    assert rules.urgency_tags("low") == ()
    assert len(rules.direct_matches) == len(rules.related_matches) == 13

def test_unknown_issue_type_has_no_tags():
    rules = load_rules()
    assert rules.direct_tags("Insomnia") == ()
    assert rules.related_tags("Insomnia") == ()

def test_env_override(tmp_path, monkeypatch):
    with open(DEFAULT_RULES_PATH) as f:
        data = yaml.safe_load(f)
    data["version"] = "test-override"
    custom = tmp_path / "rules.yml"
    custom.write_text(yaml.safe_dump(data))

    monkeypatch.setenv("MATCHING_RULES_PATH", str(custom))
    assert load_rules().version == "test-override"

def test_env_override_missing_file_falls_back(monkeypatch, tmp_path):
    monkeypatch.setenv("MATCHING_RULES_PATH", str(tmp_path / "nope.yml"))
    assert load_rules().source == str(DEFAULT_RULES_PATH)

def test_missing_points_rejected():
    with pytest.raises(RulesError, match="Missing point values"):
        parse_rules({"version": "x", "points": {"verified": 10}})

def test_malformed_table_rejected():
    with open(DEFAULT_RULES_PATH) as f:
        data = yaml.safe_load(f)
    data["direct_matches"]["Anxiety"] = "Anxiety Disorders"
    with pytest.raises(RulesError):
        parse_rules(data)

def test_unreadable_file_rejected(tmp_path):
    with pytest.raises(RulesError):
        load_rules(tmp_path / "missing.yml")

def test_reload_swaps_shared_policy(tmp_path, monkeypatch):
    monkeypatch.setattr(rules_module, "_active_rules", None)
    with open(DEFAULT_RULES_PATH) as f:
        data = yaml.safe_load(f)
    data["version"] = "reloaded"
    custom = tmp_path / "rules.yml"
    custom.write_text(yaml.safe_dump(data))

    assert reload_rules(custom).version == "reloaded"
    assert rules_module.get_rules().version == "reloaded"

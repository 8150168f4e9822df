# 📦 /tests/test_full.py

import pytest
import yaml
from fastapi.testclient import TestClient

from engine import rules as rules_module
from main import app
from services import matcher_service
from tests.utils.dummies import DummySupabase, make_therapist
from utils import fetch_therapists as fetch_module

client = TestClient(app)

def make_dummy_criteria():
    return {
        "issue_type": "Anxiety",
        "urgency": "crisis",
        "preferred_language": "Irish",
        "preferred_modality": "video",
        "client_age": 15,
        "special_requirements": "needs CBT approach",
    }

@pytest.fixture
def pool(monkeypatch):
    therapists = [
        make_therapist("B", specializations=["Depression"]),
        make_therapist("A", specializations=["Anxiety Disorders", "Child & Adolescent"], languages=["English", "Irish"]),
        make_therapist("C", specializations=["CBT"], languages=["Irish"]),
    ]
    monkeypatch.setattr("api.handlers.THERAPISTS", therapists)
    return therapists

@pytest.fixture
def logged(monkeypatch):
    rows = []
    monkeypatch.setattr("api.handlers.log_recommendation", lambda *args: rows.append(args))
    return rows

# ---------------------- Validation ----------------------

def test_unknown_urgency_rejected(pool, logged):
    dummy = make_dummy_criteria()
    dummy["urgency"] = "urgent"
    assert client.post("/recommend", json=dummy).status_code == 422

def test_client_age_bounds(pool, logged):
    dummy = make_dummy_criteria()
    dummy["client_age"] = 30
    assert client.post("/recommend", json=dummy).status_code == 422

def test_invalid_limit(pool, logged):
    assert client.post("/recommend?limit=0", json=make_dummy_criteria()).status_code == 422

# ---------------------- Recommend ----------------------

def test_recommend_ranking_and_limit(pool, logged):
    response = client.post("/recommend?limit=2", json=make_dummy_criteria())
    assert response.status_code == 200
    data = response.json()["data"]
    assert [m["therapist"]["id"] for m in data] == ["A", "C"]
    assert data[0]["score"] >= data[1]["score"]
    assert "CBT specialist" in data[1]["reasons"]
    assert len(logged) == 1

def test_recommend_empty_pool(monkeypatch, logged):
    monkeypatch.setattr("api.handlers.THERAPISTS", [])
    response = client.post("/recommend", json=make_dummy_criteria())
    assert response.status_code == 404
    assert response.json()["status"] == "error"
    assert logged == []

def test_recommend_log_failure(pool, monkeypatch):
    def boom(*args):
        raise RuntimeError("match_logs down")
    monkeypatch.setattr("api.handlers.log_recommendation", boom)
    response = client.post("/recommend", json=make_dummy_criteria())
    assert response.status_code == 500
    assert response.json()["info"] == "match_logs down"

def test_explain_empty_pool(monkeypatch):
    monkeypatch.setattr("api.handlers.THERAPISTS", [])
    assert client.post("/explain", json=make_dummy_criteria()).status_code == 404

# ---------------------- Commit & process ----------------------

@pytest.fixture
def store(monkeypatch):
    db = DummySupabase(tables={
        "referrals": [{
            "id": "ref-1",
            "client_name": "Aoife",
            "client_age": 15,
            "issue_type": "Anxiety",
            "urgency": "crisis",
            "preferred_language": "Irish",
            "preferred_modality": "video",
            "consent_given": True,
            "status": "pending",
        }],
        "therapists": [{
            "id": "th-1",
            "is_verified": True,
            "specializations": ["Anxiety Disorders"],
            "languages": ["Irish"],
            "hourly_rate": 70,
            "booking_url": "https://calendly.com/niamh",
            "users": {"full_name": "Niamh Byrne"},
        }],
    })
    monkeypatch.setattr(fetch_module, "supabase", db)
    monkeypatch.setattr(matcher_service, "supabase", db)
    return db

def test_choose_match(store):
    response = client.post("/referrals/ref-1/match/th-9")
    assert response.status_code == 200
    assert response.json()["therapist_id"] == "th-9"
    assert store.tables["referrals"][0]["matched_therapist_id"] == "th-9"

def test_choose_match_failure(monkeypatch):
    monkeypatch.setattr(matcher_service, "supabase", DummySupabase(fail_tables={"referrals"}))
    response = client.post("/referrals/ref-1/match/th-1")
    assert response.status_code == 500

def test_process_referral_endpoint(store):
    response = client.post("/referrals/ref-1/process")
    assert response.status_code == 200
    body = response.json()
    assert body["matched_therapist_id"] == "th-1"
    assert body["data"][0]["therapist"]["full_name"] == "Niamh Byrne"
    assert body["notifications"]["referrer"]["therapist_name"] == "Niamh Byrne"
    assert body["notifications"]["referrer"]["booking_link"] == "https://calendly.com/niamh"
    assert body["notifications"]["therapist"]["client_name"] == "Aoife"

def test_process_missing_referral(store):
    assert client.post("/referrals/nope/process").status_code == 404

def test_process_invalid_stored_referral(store):
    store.tables["referrals"][0]["client_age"] = 26
    response = client.post("/referrals/ref-1/process")
    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    body = response.json()
    assert body["status"] == "error"
    assert body["message"] == "Failed to process referral."
    assert store.tables["referrals"][0]["status"] == "pending"

def test_availability_endpoint(store):
    response = client.get("/therapists/th-1/availability")
    assert response.status_code == 200
    assert response.json()["available"] is True

# ---------------------- Admin ----------------------

@pytest.fixture
def active_rules(monkeypatch):
    monkeypatch.delenv("MATCHING_RULES_PATH", raising=False)
    monkeypatch.setattr(rules_module, "_active_rules", None)

def test_reload_rules_ignores_caller_path(active_rules, tmp_path):
    with open(rules_module.DEFAULT_RULES_PATH) as f:
        data = yaml.safe_load(f)
    data["version"] = "attacker"
    data["points"]["direct_specialization"] = -500
    other = tmp_path / "other.yml"
    other.write_text(yaml.safe_dump(data))

    response = client.post("/admin/reload-rules", params={"path": str(other)})

    assert response.status_code == 200
    assert response.json()["version"] != "attacker"
    assert rules_module.get_rules().version != "attacker"
    assert rules_module.get_rules().points["direct_specialization"] == 40

def test_reload_rules_failure_hides_details(active_rules, monkeypatch, tmp_path):
    broken = tmp_path / "secret.txt"
    broken.write_text("token: [unclosed\n")
    monkeypatch.setattr(rules_module, "DEFAULT_RULES_PATH", broken)

    response = client.post("/admin/reload-rules")

    assert response.status_code == 500
    body = response.json()
    assert body["info"] is None
    assert "secret.txt" not in response.text
    assert "unclosed" not in response.text

# ---------------------- Audit logging ----------------------

def test_recommend_logs_off_the_event_loop(pool, monkeypatch):
    offloaded = []

    async def fake_to_thread(func, *args):
        offloaded.append(func)
        return func(*args)

    monkeypatch.setattr("api.handlers.log_recommendation", lambda *args: None)
    monkeypatch.setattr("api.handlers.asyncio.to_thread", fake_to_thread)

    response = client.post("/recommend", json=make_dummy_criteria())

    assert response.status_code == 200
    assert len(offloaded) == 1

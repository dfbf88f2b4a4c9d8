"""
API Endpoint Tests.

Runs the full application (lifespan included) through TestClient with
a fake generation service and in-memory ledger storage.
"""

import pytest
from fastapi.testclient import TestClient

from kdsa.audit.repository import InMemoryLedgerRepository
from kdsa.core.config import Settings
from kdsa.decision.generation import UnavailableGenerationService
from kdsa.main import create_app
from tests.conftest import RoutingGenerationService
from tests.test_audit.test_repositories import FakeBaserow, make_baserow_repo


API = "/api/v1"

CRITICAL_ASSESSMENT = {
    "component_scores": {
        "environment_score": 35,
        "adaptive_capacity": 2.0,
        "validation_score": 40,
        "neural_coefficient": 0.7,
    },
    "scarf_profile": {
        "status": 0.8,
        "certainty": 0.8,
        "autonomy": 0.8,
        "relatedness": 0.8,
        "fairness": 0.8,
    },
}


# ============================================================================
# FIXTURES
# ============================================================================


class RejectingRepository(InMemoryLedgerRepository):
    async def append(self, entry):
        return False


def make_client(repo, generation_service=None) -> TestClient:
    app = create_app(
        settings=Settings(ENVIRONMENT="testing", LOG_FORMAT="console", LEDGER_BACKEND="memory"),
        generation_service=generation_service or RoutingGenerationService(),
        ledger_repository=repo,
    )
    return TestClient(app)


@pytest.fixture
def repo() -> InMemoryLedgerRepository:
    return InMemoryLedgerRepository()


@pytest.fixture
def client(repo):
    with make_client(repo) as c:
        yield c


# ============================================================================
# TESTS
# ============================================================================


class TestRootAndHealth:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["api"] == API

    def test_request_id_echoed(self, client):
        response = client.get("/", headers={"X-Request-ID": "req_abc"})
        assert response.headers["X-Request-ID"] == "req_abc"

    def test_request_id_generated(self, client):
        assert client.get("/").headers["X-Request-ID"].startswith("req_")

    def test_health_healthy(self, client):
        body = client.get(f"{API}/health").json()
        assert body["status"] == "healthy"
        names = {c["name"]: c["status"] for c in body["components"]}
        assert names == {"sensing": "healthy", "decision_engine": "healthy", "ledger": "healthy"}

    def test_health_degraded_without_generation(self, repo):
        with make_client(repo, UnavailableGenerationService()) as c:
            body = c.get(f"{API}/health").json()
        assert body["status"] == "degraded"

    def test_health_unhealthy_after_tamper(self, client, repo):
        client.post(f"{API}/audit/events", json={"module": "M1", "action": "calibration"})
        stored = repo._entries[0]
        repo._entries[0] = stored.model_copy(update={"payload": {**stored.payload, "action": "x"}})

        body = client.get(f"{API}/health").json()
        assert body["status"] == "unhealthy"


class TestRiskFlagEndpoint:
    def test_build_flag(self, client):
        """Worked example: 80 / 4.0 / 75 / 0.9 is resilient and inactive."""
        response = client.post(
            f"{API}/risk-flag",
            json={
                "component_scores": {
                    "environment_score": 80,
                    "adaptive_capacity": 4.0,
                    "validation_score": 75,
                    "neural_coefficient": 0.9,
                },
                "scarf_profile": CRITICAL_ASSESSMENT["scarf_profile"],
            },
        )
        assert response.status_code == 200
        body = response.json()
        assert body["score"] == pytest.approx(70.2)
        assert body["zone"] == "resilient"
        assert body["risk_active"] is False
        assert body["trigger_count"] == 0

    def test_out_of_range_rejected(self, client):
        payload = {
            **CRITICAL_ASSESSMENT,
            "component_scores": {**CRITICAL_ASSESSMENT["component_scores"], "environment_score": 120},
        }
        assert client.post(f"{API}/risk-flag", json=payload).status_code == 422


class TestDecisionEndpoints:
    def test_analyze_with_flag_from_sensor(self, client):
        """A flag returned by /risk-flag can be passed straight to /decision/analyze."""
        flag = client.post(f"{API}/risk-flag", json=CRITICAL_ASSESSMENT).json()
        assert flag["risk_active"] is True

        response = client.post(
            f"{API}/decision/analyze",
            json={"decision_text": "Acquire a competitor", "risk_flag": flag},
        )

        assert response.status_code == 200
        record = response.json()
        assert record["protocols"] == ["pre_mortem_mandatory"]
        assert record["chosen_protocol"] == "pre_mortem_mandatory"
        assert record["risk_level"] == "critical"
        assert record["scenario_source"] == "generated"
        assert record["determinism_verified"] is True
        assert record["recommendation"]["outcome"] == "abort_recommended"

        logs = client.get(f"{API}/audit/logs").json()
        assert logs["total"] == 1
        assert logs["entries"][0]["payload"]["decision_id"] == record["decision_id"]

    def test_analyze_without_generation_uses_fallback(self, repo):
        with make_client(repo, UnavailableGenerationService()) as c:
            flag = c.post(f"{API}/risk-flag", json=CRITICAL_ASSESSMENT).json()
            record = c.post(
                f"{API}/decision/analyze",
                json={"decision_text": "Acquire a competitor", "risk_flag": flag},
            ).json()

        assert record["scenario_source"] == "fallback"
        assert record["determinism_verified"] is False

    def test_blank_text_rejected(self, client):
        response = client.post(f"{API}/decision/analyze", json={"decision_text": "   "})
        assert response.status_code == 422

    def test_ledger_failure_is_503(self):
        with make_client(RejectingRepository()) as c:
            response = c.post(f"{API}/decision/analyze", json={"decision_text": "Renew the lease"})

        assert response.status_code == 503
        error = response.json()["error"]
        assert error["code"] == "E6000"
        assert error["details"]["pending_id"].startswith("dec_")

    def test_detect_biases(self, client):
        response = client.post(
            f"{API}/decision/detect-biases",
            json={"text": "Obviously this will definitely work"},
        )
        assert response.status_code == 200
        assert [f["type"] for f in response.json()] == ["overconfidence", "confirmation"]


class TestAuditEndpoints:
    def test_record_and_list_events(self, client):
        created = client.post(
            f"{API}/audit/events",
            json={"module": "M3", "action": "chain_export", "details": {"format": "csv"}},
        )
        assert created.status_code == 201
        assert created.json()["sequence_number"] == 0
        assert created.json()["payload"]["record_type"] == "audit_event"

        client.post(f"{API}/decision/analyze", json={"decision_text": "Renew the lease"})

        events = client.get(f"{API}/audit/logs", params={"record_type": "audit_event"}).json()
        assert events["total"] == 1

        newest = client.get(f"{API}/audit/logs", params={"newest_first": True, "limit": 1}).json()
        assert newest["entries"][0]["sequence_number"] == 1

    def test_invalid_module_rejected(self, client):
        response = client.post(f"{API}/audit/events", json={"module": "M9", "action": "x"})
        assert response.status_code == 422

    def test_verify(self, client, repo):
        client.post(f"{API}/audit/events", json={"module": "M1", "action": "calibration"})
        client.post(f"{API}/audit/events", json={"module": "M2", "action": "override"})

        assert client.get(f"{API}/audit/verify").json()["valid"] is True

        del repo._entries[0]
        body = client.get(f"{API}/audit/verify").json()
        assert body["valid"] is False
        assert body["broken_at_sequence"] == 0
        assert body["error_type"] == "sequence_gap"

    def test_unreadable_backend_is_503(self):
        fake = FakeBaserow()
        with make_client(make_baserow_repo(fake)) as c:
            c.post(f"{API}/audit/events", json={"module": "M3", "action": "chain_export"})
            fake.read_status = 500

            verify = c.get(f"{API}/audit/verify")
            logs = c.get(f"{API}/audit/logs")
            health = c.get(f"{API}/health").json()

        assert verify.status_code == 503
        assert verify.json()["error"]["code"] == "E6001"
        assert logs.status_code == 503
        assert health["status"] == "unhealthy"

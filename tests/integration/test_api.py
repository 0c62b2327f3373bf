"""Integration tests for API endpoints"""

import hashlib
import uuid

import pytest
from fastapi.testclient import TestClient

pytestmark = pytest.mark.integration

CONTRACT_BODY = {
    "investor_id": "INV-001",
    "product_code": "FIXED30",
    "method": "scheduled_p_i",
    "remittance_day": 5,
    "cutoff_day": 10,
    "custodial_account_id": "CUST-001",
    "servicer_fee_bps": 50,
    "late_fee_split_bps": 5000,
    "waterfall_rules": [
        {"rank": 1, "bucket": "interest"},
        {"rank": 2, "bucket": "principal"},
        {"rank": 3, "bucket": "late_fees", "cap_minor": 10000},
    ],
}


def create_contract(client: TestClient) -> str:
    response = client.post("/v1/contracts", json=CONTRACT_BODY)
    assert response.status_code == 201
    return response.json()["contract_id"]


def locked_cycle(client: TestClient) -> str:
    contract_id = create_contract(client)
    cycle_id = client.post("/v1/cycles/initiate", json={"contract_id": contract_id}).json()["cycle_id"]
    assert client.post(f"/v1/cycles/{cycle_id}/calculate").status_code == 200
    assert client.post(f"/v1/cycles/{cycle_id}/lock").status_code == 200
    return cycle_id


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "remittance_cycle_transitions_total" in response.text


def test_request_id_echoed(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_contract_endpoints(client: TestClient):
    contract_id = create_contract(client)

    fetched = client.get(f"/v1/contracts/{contract_id}").json()
    assert fetched["version"] == 1
    assert [r["bucket"] for r in fetched["waterfall_rules"]] == ["interest", "principal", "late_fees"]

    version = client.post(f"/v1/contracts/{contract_id}/versions", json={**CONTRACT_BODY, "servicer_fee_bps": 25})
    assert version.status_code == 201
    assert version.json()["supersedes_id"] == contract_id

    active = client.get("/v1/contracts").json()["contracts"]
    assert [c["version"] for c in active] == [2]
    everything = client.get("/v1/contracts", params={"include_superseded": True}).json()["contracts"]
    assert len(everything) == 2


def test_invalid_contract_returns_422(client: TestClient):
    response = client.post("/v1/contracts", json={**CONTRACT_BODY, "servicer_fee_bps": 20000})
    assert response.status_code == 422
    assert response.json()["error"] == "ValidationError"


def test_malformed_id_returns_400(client: TestClient):
    response = client.get("/v1/cycles/not-a-uuid")
    assert response.status_code == 400
    assert response.json()["error"] == "InvalidIdentifierError"


def test_unknown_cycle_returns_404(client: TestClient):
    response = client.post(f"/v1/cycles/{uuid.uuid4()}/calculate")
    assert response.status_code == 404
    assert response.json()["error"] == "NotFoundError"


def test_settle_open_cycle_returns_409(client: TestClient):
    contract_id = create_contract(client)
    cycle_id = client.post("/v1/cycles/initiate", json={"contract_id": contract_id}).json()["cycle_id"]

    response = client.post(f"/v1/cycles/{cycle_id}/settle", json={"user_id": "ops-user"})

    assert response.status_code == 409
    assert response.json()["error"] == "InvalidTransitionError"
    assert client.get(f"/v1/cycles/{cycle_id}").json()["status"] == "open"


def test_remittance_flow(client: TestClient, two_loan_scenario):
    """Test initiate -> calculate -> lock -> export -> settle -> reconcile"""
    contract_id = create_contract(client)

    initiated = client.post("/v1/cycles/initiate", json={"contract_id": contract_id})
    assert initiated.status_code == 200
    cycle = initiated.json()
    assert cycle["period_start"] == "2024-03-10"
    assert cycle["period_end"] == "2024-03-31"
    assert cycle["settlement_date"] == "2024-04-05"
    cycle_id = cycle["cycle_id"]

    calculated = client.post(f"/v1/cycles/{cycle_id}/calculate").json()
    assert calculated["status"] == "closed"
    assert calculated["totals"]["servicer_fee_minor"] == 4538
    assert calculated["totals"]["investor_due_minor"] == 152962

    assert client.post(f"/v1/cycles/{cycle_id}/lock").json()["status"] == "locked"

    items = client.get(f"/v1/cycles/{cycle_id}/items").json()["items"]
    assert [i["loan_id"] for i in items] == ["LOAN-A", "LOAN-B"]

    export = client.post(f"/v1/cycles/{cycle_id}/export", json={"format": "csv"}).json()
    download = client.get(f"/v1/exports/{export['export_id']}/download")
    assert download.status_code == 200
    assert download.headers["content-type"].startswith("text/csv")
    assert hashlib.sha256(download.content).hexdigest() == export["content_hash"]

    xml_export = client.post(f"/v1/cycles/{cycle_id}/export", json={"format": "xml"}).json()
    xml_download = client.get(f"/v1/exports/{xml_export['export_id']}/download")
    assert xml_download.headers["content-type"].startswith("application/xml")

    settled = client.post(f"/v1/cycles/{cycle_id}/settle", json={"user_id": "ops-user"})
    assert settled.status_code == 200
    assert settled.json()["status"] == "settled"

    snapshot = client.post(f"/v1/cycles/{cycle_id}/reconcile", json={"user_id": "auditor"}).json()
    assert snapshot["is_balanced"] is True
    assert snapshot["diff_investor_minor"] == "0"
    assert snapshot["diff_servicer_minor"] == "0"
    assert snapshot["diff_total_minor"] == "0"

    report = client.get(f"/v1/cycles/{cycle_id}/report").json()
    assert report["loan_count"] == 2
    assert report["latest_reconciliation"]["snapshot_id"] == snapshot["snapshot_id"]

    history = client.get(f"/v1/cycles/{cycle_id}/reconciliation").json()["snapshots"]
    assert len(history) == 1
    assert client.get("/v1/reconciliation/unbalanced").json()["snapshots"] == []


def test_export_before_lock_returns_409(client: TestClient):
    contract_id = create_contract(client)
    cycle_id = client.post("/v1/cycles/initiate", json={"contract_id": contract_id}).json()["cycle_id"]

    response = client.post(f"/v1/cycles/{cycle_id}/export", json={"format": "csv"})
    assert response.status_code == 409


def test_unknown_export_format_returns_422(client: TestClient):
    cycle_id = locked_cycle(client)
    response = client.post(f"/v1/cycles/{cycle_id}/export", json={"format": "pdf"})
    assert response.status_code == 422


def test_unreconciled_cycle_listed_as_unbalanced(client: TestClient, two_loan_scenario):
    cycle_id = locked_cycle(client)

    snapshot = client.post(f"/v1/cycles/{cycle_id}/reconcile", json={"user_id": "auditor"}).json()
    assert snapshot["is_balanced"] is False
    assert snapshot["diff_investor_minor"] == "-152962"

    unbalanced = client.get("/v1/reconciliation/unbalanced").json()["snapshots"]
    assert [s["cycle_id"] for s in unbalanced] == [cycle_id]


def test_scheduler_run_endpoint(client: TestClient):
    create_contract(client)

    response = client.post("/v1/scheduler/run")

    assert response.status_code == 200
    data = response.json()
    assert data["contracts_processed"] == 1
    assert len(data["cycles_created"]) == 1
    assert data["failed_contracts"] == []


def test_list_cycles_filters(client: TestClient):
    contract_id = create_contract(client)
    client.post("/v1/cycles/initiate", json={"contract_id": contract_id})

    assert len(client.get("/v1/cycles", params={"status": "open"}).json()["cycles"]) == 1
    assert client.get("/v1/cycles", params={"status": "settled"}).json()["cycles"] == []
    assert client.get("/v1/cycles", params={"status": "bogus"}).status_code == 422

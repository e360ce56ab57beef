import pytest
from fastapi.testclient import TestClient

from site_scanner import main
from site_scanner.main import app
from site_scanner.models.schemas import CoreResult, ScanResult, ScanStatus, SolutionsResult


class FakeOrchestrator:
    def __init__(self):
        self.requests = []

    async def scan(self, request):
        self.requests.append(request)
        return ScanResult(
            scan_id=request.scan_id,
            core_result=CoreResult(website_id=request.website_id, status=ScanStatus.COMPLETED,
                                   final_url=f"https://{request.target_url}/"),
            solutions_result=SolutionsResult(website_id=request.website_id, uswds_count=len(self.requests)),
        )


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        app.state.runtime.orchestrator = FakeOrchestrator()
        yield test_client


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_scan_and_fetch_by_id(client):
    resp = client.post("/scan", json={"websiteId": 4, "targetUrl": "18f.gov", "scanId": "s-1"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["coreResult"]["finalUrl"] == "https://18f.gov/"
    assert body["solutionsResult"] == {"websiteId": 4, "uswdsCount": 1}

    assert client.get("/scan/s-1").json() == body


def test_rescan_replaces_result(client):
    client.post("/scan", json={"websiteId": 4, "targetUrl": "18f.gov", "scanId": "s-2"})
    client.post("/scan", json={"websiteId": 4, "targetUrl": "18f.gov", "scanId": "s-2"})
    assert client.get("/scan/s-2").json()["solutionsResult"]["uswdsCount"] == 2


def test_unknown_scan_id(client):
    assert client.get("/scan/missing").status_code == 404


def test_oldest_results_are_evicted(client, monkeypatch):
    monkeypatch.setattr(main, "MAX_RESULTS", 2)
    for scan_id in ("e-1", "e-2", "e-3"):
        client.post("/scan", json={"websiteId": 4, "targetUrl": "18f.gov", "scanId": scan_id})
    assert client.get("/scan/e-1").status_code == 404
    assert client.get("/scan/e-2").status_code == 200
    assert client.get("/scan/e-3").status_code == 200
    assert len(main._RESULTS) == 2

from reportflow.workers.graph.core.constants import (
    CANCELLED_MESSAGE,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_QUEUED,
)
from reportflow.workers.graph.core.errors import ValidationError

CSV = "region,revenue\nnorth,10\nsouth,12\neast,9\nnorth,14\n"
PAYLOAD = {
    "inputData": [{"type": "structured", "format": "csv", "data": CSV}],
    "config": {"title": "Regional Revenue", "outputFormats": ["PDF", "HTML"]},
}


def _create(client, payload=PAYLOAD):
    response = client.post("/reports", json=payload)
    assert response.status_code == 200, response.text
    return response.json()


def test_health(api_app):
    response = api_app["client"].get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_create_report_and_download_files(api_app):
    client = api_app["client"]
    started = _create(client)
    report_id = started["reportId"]
    assert started["instanceId"] == f"report-{report_id}"

    waited = client.get(f"/reports/{report_id}/wait", params={"timeout": 30})
    assert waited.status_code == 200
    assert waited.json()["success"] is True

    record = client.get(f"/reports/{report_id}").json()
    assert record["status"] == STATUS_COMPLETED
    assert [item["format"] for item in record["files"]] == ["PDF", "HTML"]

    status = client.get(f"/reports/{report_id}/status").json()
    assert status == {
        "reportId": report_id,
        "status": STATUS_COMPLETED,
        "progress": 100,
        "currentStep": "Report complete",
    }

    html = client.get(f"/reports/{report_id}/files", params={"format": "html"})
    assert html.status_code == 200
    assert html.headers["content-type"].startswith("text/html")
    assert html.headers["content-disposition"] == f'attachment; filename="{report_id}.html"'
    assert "Regional Revenue" in html.text

    pdf = client.get(f"/reports/{report_id}/files", params={"format": "PDF"})
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.content.startswith(b"PDF:Regional Revenue")

    assert client.get(f"/reports/{report_id}/files", params={"format": "DOCX"}).status_code == 404
    assert client.get(f"/reports/{report_id}/files", params={"format": "PPTX"}).status_code == 400

    listed = client.get("/reports").json()["reports"]
    assert [item["id"] for item in listed] == [report_id]


def test_invalid_requests_are_rejected(api_app):
    client = api_app["client"]
    bad_format = {**PAYLOAD, "config": {"title": "Bad", "outputFormats": ["PPTX"]}}
    response = client.post("/reports", json=bad_format)
    assert response.status_code == 400

    response = client.post("/reports", json={"config": {"title": "No input"}})
    assert response.status_code == 422

    assert client.get("/reports").json() == {"reports": []}


def test_unknown_report_is_404(api_app):
    client = api_app["client"]
    for path in ("", "/status", "/wait", "/costs"):
        response = client.get(f"/reports/missing{path}")
        assert response.status_code == 404
        assert response.json()["detail"] == "Report not found"
    assert client.post("/reports/missing/cancel").status_code == 404


def test_cancel_running_report(api_app):
    client = api_app["client"]
    api_app["gate"].clear()
    started = _create(client)
    report_id = started["reportId"]

    cancelled = client.post(f"/reports/{report_id}/cancel")
    assert cancelled.json() == {"reportId": report_id, "cancelled": True}
    api_app["gate"].set()

    waited = client.get(f"/reports/{report_id}/wait", params={"timeout": 30}).json()
    assert waited["success"] is False
    assert waited["error"] == CANCELLED_MESSAGE
    assert waited["errorType"] == "CancelledError"

    record = client.get(f"/reports/{report_id}").json()
    assert record["status"] == STATUS_FAILED
    assert record["files"] == []
    assert client.post(f"/reports/{report_id}/cancel").json()["cancelled"] is False


def test_wait_times_out_while_running(api_app):
    client = api_app["client"]
    api_app["gate"].clear()
    started = _create(client)

    response = client.get(f"/reports/{started['reportId']}/wait", params={"timeout": 0.2})
    assert response.status_code == 408

    retried = client.post(f"/reports/{started['reportId']}/retry")
    assert retried.status_code == 400
    api_app["gate"].set()


def test_wait_answers_from_record_for_other_processes(api_app):
    client = api_app["client"]
    storage = api_app["storage"]
    storage.save_report("old", {"status": STATUS_FAILED, "instanceId": "report-old", "errorMessage": "boom"})
    storage.save_report("stuck", {"status": STATUS_QUEUED, "instanceId": "report-stuck"})

    waited = client.get("/reports/old/wait").json()
    assert waited["success"] is False
    assert waited["error"] == "boom"
    assert client.get("/reports/stuck/wait").status_code == 409

    status = client.get("/reports/old/status").json()
    assert status["status"] == STATUS_FAILED


def test_retry_failed_report(api_app):
    client = api_app["client"]
    api_app["llm"].failures.append(ValidationError("prompt rejected"))
    first = _create(client)
    assert client.get(f"/reports/{first['reportId']}/wait", params={"timeout": 30}).json()["success"] is False

    second = client.post(f"/reports/{first['reportId']}/retry")
    assert second.status_code == 200
    second_id = second.json()["reportId"]
    assert second_id != first["reportId"]
    assert client.get(f"/reports/{second_id}/wait", params={"timeout": 30}).json()["success"] is True
    assert client.get(f"/reports/{second_id}").json()["retryOf"] == first["reportId"]


def test_cost_endpoints(api_app):
    client = api_app["client"]
    started = _create(client)
    report_id = started["reportId"]
    assert client.get(f"/reports/{report_id}/costs").status_code == 404

    api_app["tracker"].track_usage(report_id, prompt_tokens=1000, completion_tokens=1000)
    costs = client.get(f"/reports/{report_id}/costs").json()
    assert costs["reportId"] == report_id
    assert costs["openai"]["totalTokens"] == 2000
    assert costs["openai"]["estimatedCost"] == 0.02

    totals = client.get("/costs").json()
    assert totals == {"totalReports": 1, "totalTokens": 2000, "totalCost": 0.02, "averageCostPerReport": 0.02}
    client.get(f"/reports/{report_id}/wait", params={"timeout": 30})


def test_request_id_is_echoed(api_app):
    response = api_app["client"].get("/health", headers={"x-request-id": "req-123"})
    assert response.headers["x-request-id"] == "req-123"

# tests/test_pipeline_smoke.py
from pathlib import Path

import pytest

from reportflow.common.costs import CostTracker
from reportflow.common.llm import OpenAINarrativeService
from reportflow.common.storage import LocalStorage
from reportflow.workers.graph.core.constants import STATUS_COMPLETED
from reportflow.workers.worker import build_client
from tests.conftest import SALES_CSV
from tests.integration.utils.fakes import FakeOpenAI


@pytest.fixture()
def pipeline(settings):
    storage = LocalStorage(settings.storage_path)
    storage.initialize()
    openai_client = FakeOpenAI(prompt_tokens=100, completion_tokens=50)
    llm = OpenAINarrativeService(
        settings,
        cost_tracker=CostTracker.from_settings(storage, settings),
        client=openai_client,
    )
    client = build_client(settings, storage=storage, llm=llm)
    yield client, storage, openai_client
    client.shutdown(wait=True)


def test_full_pipeline_renders_every_format(pipeline):
    client, storage, openai_client = pipeline
    started = client.start(
        [
            {"type": "structured", "format": "csv", "data": SALES_CSV},
            {"type": "unstructured", "format": "markdown", "content": "# Notes\nNorth had a promotion."},
        ],
        {
            "title": "Quarterly Sales",
            "style": "business",
            "outputFormats": ["PDF", "HTML", "DOCX"],
            "branding": {"companyName": "Acme", "primaryColor": "#003366"},
        },
    )
    outcome = client.await_result(started["instanceId"], timeout=120)
    assert outcome.success is True, outcome.error

    record = storage.get_report(started["reportId"])
    assert record["status"] == STATUS_COMPLETED
    assert len(record["files"]) == 3

    payloads = {item["format"]: Path(item["location"]).read_bytes() for item in record["files"]}
    assert payloads["PDF"].startswith(b"%PDF")
    assert payloads["DOCX"].startswith(b"PK")
    html = payloads["HTML"].decode("utf-8")
    assert "Quarterly Sales" in html
    assert "data:image/png;base64," in html
    assert "Revenue grew steadily across regions." in html

    # notes reach the prompt alongside the data profile
    assert "North had a promotion." in openai_client.requests[0]["messages"][1]["content"]

    charts = list(Path(storage.root, "charts", started["reportId"]).glob("*.png"))
    assert charts
    assert all(path.read_bytes().startswith(b"\x89PNG") for path in charts)

    costs = client.get_cost_metrics(started["reportId"])
    assert costs.total_tokens == 150
    assert costs.estimated_cost > 0
    assert client.get_aggregated_costs()["totalReports"] == 1

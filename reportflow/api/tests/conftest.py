import threading

import anyio
import httpx
import pytest

from reportflow.api.app import create_app
from reportflow.common.costs import CostTracker
from reportflow.common.storage import LocalStorage
from reportflow.config import load_settings
from reportflow.workers.client import PipelineClient
from reportflow.workers.engine import PipelineEngine
from reportflow.workers.graph.core.context import Dependencies
from reportflow.workers.graph.render import HtmlRenderer
from tests.integration.utils.fakes import ScriptedLLM, StubChartRenderer, stub_renderers


@pytest.fixture()
def api_app(tmp_path):
    settings = load_settings(
        environ={},
        storage_path=str(tmp_path / "storage"),
        disable_checkpoint=True,
        heartbeat_interval=0.05,
    )
    storage = LocalStorage(settings.storage_path)
    storage.initialize()
    tracker = CostTracker.from_settings(storage, settings)

    # charts block until released so tests can observe a running report
    gate = threading.Event()
    gate.set()
    chart_renderer = StubChartRenderer(on_render=lambda _index: gate.wait(10))
    llm = ScriptedLLM()

    deps = Dependencies(
        storage=storage,
        llm=llm,
        chart_renderer=chart_renderer,
        renderers={"HTML": HtmlRenderer(), **stub_renderers()},
        cost_tracker=tracker,
    )
    engine = PipelineEngine(settings, deps, sleep=lambda _delay: None, poll_interval=0.01)
    pipeline = PipelineClient(engine, storage, settings, cost_tracker=tracker)
    app = create_app(pipeline)

    transport = httpx.ASGITransport(app=app)
    async_client = httpx.AsyncClient(transport=transport, base_url="http://testserver")

    class SyncClient:
        def request(self, method: str, url: str, **kwargs):
            return anyio.run(lambda: async_client.request(method, url, **kwargs))

        def get(self, url: str, **kwargs):
            return self.request("GET", url, **kwargs)

        def post(self, url: str, **kwargs):
            return self.request("POST", url, **kwargs)

    try:
        yield {
            "client": SyncClient(),
            "pipeline": pipeline,
            "storage": storage,
            "tracker": tracker,
            "llm": llm,
            "gate": gate,
        }
    finally:
        gate.set()
        pipeline.shutdown(wait=True)
        anyio.run(async_client.aclose)

from typing import List, Optional

import pytest

from reportflow.common.costs import CostTracker
from reportflow.common.storage import LocalStorage
from reportflow.config import load_settings
from reportflow.workers.client import PipelineClient
from reportflow.workers.engine import PipelineEngine
from reportflow.workers.graph.core.context import Dependencies
from reportflow.workers.graph.render import HtmlRenderer
from tests.integration.utils.fakes import ScriptedLLM, StubChartRenderer, stub_renderers


SALES_CSV = (
    "date,region,revenue,units\n"
    "2024-01-01,north,120.5,10\n"
    "2024-01-02,south,98.0,8\n"
    "2024-01-03,north,143.25,12\n"
    "2024-01-04,east,80.0,7\n"
    "2024-01-05,south,110.0,9\n"
    "2024-01-06,north,150.0,13\n"
    "2024-01-07,east,95.5,8\n"
    "2024-01-08,south,101.0,9\n"
    "2024-01-09,north,160.0,14\n"
    "2024-01-10,east,88.0,7\n"
    "2024-01-11,south,104.0,9\n"
    "2024-01-12,north,171.0,15\n"
)

SALES_INPUT = [{"type": "structured", "format": "csv", "data": SALES_CSV}]


@pytest.fixture()
def settings(tmp_path):
    return load_settings(
        environ={},
        storage_path=str(tmp_path / "storage"),
        disable_checkpoint=True,
        heartbeat_interval=0.05,
        heartbeat_timeout=5.0,
        activity_timeout=30.0,
    )


@pytest.fixture()
def storage(settings):
    store = LocalStorage(settings.storage_path)
    store.initialize()
    return store


@pytest.fixture()
def make_client(settings, storage):
    """Builds a client around in-memory doubles; every engine is shut down afterwards."""
    clients: List[PipelineClient] = []

    def _make(
        *,
        llm=None,
        chart_renderer=None,
        renderers=None,
        checkpointer=None,
        sleeps: Optional[list] = None,
        **overrides,
    ) -> PipelineClient:
        cfg = settings.model_copy(update=overrides) if overrides else settings
        tracker = CostTracker.from_settings(storage, cfg)
        if renderers is None:
            renderers = {"HTML": HtmlRenderer(), **stub_renderers()}
        deps = Dependencies(
            storage=storage,
            llm=llm if llm is not None else ScriptedLLM(),
            chart_renderer=chart_renderer if chart_renderer is not None else StubChartRenderer(),
            renderers=renderers,
            cost_tracker=tracker,
        )
        engine = PipelineEngine(
            cfg,
            deps,
            checkpointer=checkpointer,
            sleep=sleeps.append if sleeps is not None else (lambda _delay: None),
            poll_interval=0.01,
        )
        client = PipelineClient(engine, storage, cfg, cost_tracker=tracker)
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.shutdown(wait=True)

import threading
import time

import pytest
from langgraph.checkpoint.memory import MemorySaver

from reportflow.workers.engine import PipelineInstance, RetryPolicy
from reportflow.workers.graph.core.constants import STATUS_COMPLETED, STATUS_FAILED
from reportflow.workers.graph.core.errors import (
    ActivityTimeoutError,
    HeartbeatTimeoutError,
    TransientError,
    ValidationError,
)
from tests.conftest import SALES_INPUT
from tests.integration.utils.fakes import ScriptedLLM, StubChartRenderer

CONFIG = {"title": "Quarterly Sales", "style": "business", "outputFormats": ["PDF"]}


def test_retry_policy_backoff_is_capped():
    policy = RetryPolicy()
    assert [policy.delay_for(attempt) for attempt in (1, 2, 3)] == [1.0, 2.0, 4.0]
    assert policy.delay_for(10) == 30.0


def test_transient_failures_exhaust_retries(make_client, storage):
    sleeps = []
    llm = ScriptedLLM(failures=[TransientError("LLM rate limited")] * 3)
    client = make_client(llm=llm, sleeps=sleeps)

    started = client.start(SALES_INPUT, CONFIG)
    outcome = client.await_result(started["instanceId"], timeout=30)

    assert outcome.success is False
    assert outcome.error == "LLM rate limited"
    assert outcome.error_type == "TransientError"
    assert len(llm.calls) == 3
    assert sleeps == [1.0, 2.0]

    record = storage.get_report(started["reportId"])
    assert record["status"] == STATUS_FAILED
    assert record["errorMessage"] == "LLM rate limited"
    assert record["errorType"] == "TransientError"
    assert client.status(started["instanceId"]).status == STATUS_FAILED


def test_transient_failure_recovers_on_retry(make_client, storage):
    sleeps = []
    llm = ScriptedLLM(failures=[TransientError("blip")])
    client = make_client(llm=llm, sleeps=sleeps)

    started = client.start(SALES_INPUT, CONFIG)
    outcome = client.await_result(started["instanceId"], timeout=30)

    assert outcome.success is True
    assert len(llm.calls) == 2
    assert sleeps == [1.0]
    assert storage.get_report(started["reportId"])["status"] == STATUS_COMPLETED


def test_validation_errors_are_not_retried(make_client):
    sleeps = []
    llm = ScriptedLLM(failures=[ValidationError("prompt rejected")])
    client = make_client(llm=llm, sleeps=sleeps)

    started = client.start(SALES_INPUT, CONFIG)
    outcome = client.await_result(started["instanceId"], timeout=30)

    assert outcome.success is False
    assert outcome.error_type == "ValidationError"
    assert len(llm.calls) == 1
    assert sleeps == []


def test_slow_activity_times_out(make_client):
    release = threading.Event()
    renderer = StubChartRenderer(on_render=lambda _index: release.wait(5))
    client = make_client(chart_renderer=renderer, activity_timeout=0.2, retry_maximum_attempts=1)

    started = client.start(SALES_INPUT, CONFIG)
    outcome = client.await_result(started["instanceId"], timeout=30)
    release.set()

    assert outcome.success is False
    assert outcome.error_type == ActivityTimeoutError.__name__
    assert "generate_charts" in outcome.error


def test_missing_heartbeats_fail_the_attempt(make_client):
    client = make_client(heartbeat_timeout=0.1, retry_maximum_attempts=1)
    engine = client.engine
    instance = PipelineInstance(engine, "r-heartbeat", "report-r-heartbeat", {})

    def silent(ctx):
        time.sleep(0.6)
        return "done"

    with pytest.raises(HeartbeatTimeoutError):
        engine.execute_activity(instance, "silent", silent, heartbeat=True)
    assert instance.activity_log == [("silent", 1, "HeartbeatTimeoutError")]


def test_heartbeating_activity_outlives_heartbeat_timeout(make_client):
    client = make_client(heartbeat_timeout=0.2, heartbeat_interval=0.02)
    engine = client.engine
    instance = PipelineInstance(engine, "r-ticker", "report-r-ticker", {})

    def chatty(ctx):
        with ctx.ticker("work", 8) as ticker:
            for _ in range(8):
                time.sleep(0.05)
                ticker.advance()
        return ticker.completed

    assert engine.execute_activity(instance, "chatty", chatty, heartbeat=True) == 8


def test_activity_hung_inside_ticker_misses_heartbeats(make_client):
    client = make_client(
        heartbeat_timeout=0.2,
        heartbeat_interval=0.02,
        activity_timeout=5.0,
        retry_maximum_attempts=1,
    )
    engine = client.engine
    instance = PipelineInstance(engine, "r-hung", "report-r-hung", {})
    release = threading.Event()

    def hung(ctx):
        with ctx.ticker("export", 3):
            release.wait(10)
        return "done"

    started = time.monotonic()
    try:
        with pytest.raises(HeartbeatTimeoutError):
            engine.execute_activity(instance, "hung", hung, heartbeat=True)
        assert time.monotonic() - started < 5.0
    finally:
        release.set()
    assert instance.activity_log == [("hung", 1, "HeartbeatTimeoutError")]


def test_start_is_idempotent_while_running(make_client, storage):
    release = threading.Event()
    renderer = StubChartRenderer(on_render=lambda _index: release.wait(5))
    client = make_client(chart_renderer=renderer)
    engine = client.engine

    first = engine.start(report_id="dup", instance_id="report-dup", input_data=SALES_INPUT, config=CONFIG)
    second = engine.start(report_id="dup", instance_id="report-dup", input_data=SALES_INPUT, config=CONFIG)
    assert first is second

    release.set()
    assert first.result(timeout=30).success is True


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_finished_instances_are_evicted_past_retention(make_client, storage):
    client = make_client(finished_instance_retention=2)

    started = []
    for index in range(4):
        handle = client.start(SALES_INPUT, {"title": f"Run {index}", "outputFormats": ["PDF"]})
        assert client.await_result(handle["instanceId"], timeout=30).success is True
        started.append(handle)

    assert _wait_for(lambda: len(client.engine.instances()) == 2)
    kept = {instance.instance_id for instance in client.engine.instances()}
    assert kept == {handle["instanceId"] for handle in started[-2:]}

    evicted = started[0]
    assert client.engine.get(evicted["instanceId"]) is None
    state = client.status(evicted["instanceId"])
    assert (state.status, state.progress) == (STATUS_COMPLETED, 100)
    assert client.await_result(evicted["instanceId"]) is None


def test_finished_instance_drops_request_when_checkpointed(make_client):
    client = make_client(checkpointer=MemorySaver())

    started = client.start(SALES_INPUT, CONFIG)
    assert client.await_result(started["instanceId"], timeout=30).success is True

    instance = client.engine.get(started["instanceId"])
    assert _wait_for(lambda: instance.request is None)

    retried = client.retry(started["reportId"])
    assert client.await_result(retried["instanceId"], timeout=30).success is True

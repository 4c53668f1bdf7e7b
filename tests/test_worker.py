import logging
import signal
import threading

from reportflow.workers.worker import stop_on_signal


def test_signal_handler_only_sets_the_stop_event(caplog):
    stop = threading.Event()
    handler = stop_on_signal(stop)

    with caplog.at_level(logging.DEBUG):
        handler(signal.SIGTERM, None)

    assert stop.is_set()
    assert caplog.records == []

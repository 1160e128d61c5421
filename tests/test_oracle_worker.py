# ABOUTME: Tests the oracle message contract, fault containment, and the client transport.
# ABOUTME: Uses an in-process loopback worker plus one real spawned worker round trip.

import asyncio
import queue
import time
import unittest

import pytest

from src.common.config import ModelWeights
from src.common.schemas import Flag, PredictionSnapshot, SubjectSnapshot
from src.oracle import worker as worker_module
from src.oracle.client import OracleClient
from src.oracle.ensemble import neutral_result
from src.oracle.errors import OraclePredictionError, OracleTimeoutError, OracleUnavailableError
from src.oracle.worker import OracleWorker, handle_message

SCENARIO = PredictionSnapshot(
    subjects=(SubjectSnapshot("polity", proficiency=80.0, confidence=0.9, exam_weight=0.2),),
)


class LoopbackWorker:
    """Answers requests in-process; `orphans` are delivered before each real response."""

    def __init__(self, orphans=0, alive=True, silent=False):
        self.orphans = orphans
        self.alive = alive
        self.silent = silent
        self.sent = []
        self._outbox = queue.Queue()

    def start(self):
        return self

    def stop(self):
        self.alive = False

    def is_alive(self):
        return self.alive

    def send(self, request):
        self.sent.append(request)
        if self.silent:
            return
        for i in range(self.orphans):
            self._outbox.put({"status": "PONG", "request_id": f"stale-{i}"})
        self._outbox.put(handle_message(request))

    def receive(self, timeout):
        return self._outbox.get(timeout=timeout)


def test_ping_and_health_check_echo_the_request_id():
    assert handle_message({"command": "PING", "request_id": "a1"}) == {"status": "PONG", "request_id": "a1"}
    assert handle_message({"command": "health_check", "request_id": 7})["status"] == "PONG"


@pytest.mark.parametrize("request_message", [None, "PING", 42, [], {"command": "DANCE"}, {}])
def test_malformed_messages_become_errors(request_message):
    response = handle_message(request_message)
    assert response["status"] == "ERROR"
    assert response["message"]


def test_predict_with_empty_snapshot_succeeds_with_neutral_result():
    response = handle_message({"command": "PREDICT", "request_id": "r1", "snapshot": {}})
    assert response["status"] == "SUCCESS"
    assert response["request_id"] == "r1"
    assert response["result"]["flags"] == [Flag.NEW_RECRUIT.value]
    assert response["result"]["range"] == {"min": 0.0, "max": 200.0}


def test_predict_tolerates_garbage_fields():
    response = handle_message(
        {
            "command": "PREDICT",
            "snapshot": {
                "subjects": [{"subject_id": "polity", "proficiency": "80", "confidence": None, "exam_weight": 0.2}, "junk"],
                "modifiers": {"mistake": "n/a"},
            },
            "config": {"run_count": "100", "seed": 4, "bogus": True},
            "history_hint": "70",
        }
    )
    assert response["status"] == "SUCCESS"
    assert response["result"]["score"] > 0


def test_internal_faults_are_reported_with_a_trace(monkeypatch):
    def _explode(snapshot, config):
        raise RuntimeError("simulation diverged")

    monkeypatch.setattr(worker_module, "predict", _explode)
    response = handle_message({"command": "PREDICT", "request_id": "r9", "snapshot": SCENARIO.to_dict()})
    assert response["status"] == "ERROR"
    assert response["request_id"] == "r9"
    assert response["message"] == "simulation diverged"
    assert "RuntimeError" in response["trace"]


def test_history_hint_overrides_snapshot_depth(monkeypatch):
    seen = {}

    def _capture(snapshot, config):
        seen["depth"] = snapshot.history_depth
        return neutral_result(config)

    monkeypatch.setattr(worker_module, "predict", _capture)
    handle_message({"command": "PREDICT", "snapshot": SCENARIO.to_dict(), "history_hint": 64})
    assert seen["depth"] == 64


class TestOracleClient(unittest.TestCase):
    def test_ping_reports_health(self):
        self.assertTrue(OracleClient(LoopbackWorker()).ping())
        self.assertFalse(OracleClient(LoopbackWorker(alive=False)).ping())

    def test_predict_round_trips_through_the_message_contract(self):
        worker = LoopbackWorker()
        client = OracleClient(worker)
        result = client.predict(SCENARIO, {"seed": 3}, history_depth=5)
        self.assertGreater(result.score, 0)
        self.assertEqual(worker.sent[0]["history_hint"], 5)
        self.assertEqual(worker.sent[0]["config"]["seed"], 3)

    def test_explicit_weights_travel_in_the_config(self):
        worker = LoopbackWorker()
        result = OracleClient(worker).predict(SCENARIO, weights=ModelWeights(1, 0, 0), timeout=5)
        self.assertEqual(worker.sent[0]["config"]["weights"], {"simulated": 1, "bayesian": 0, "pattern": 0})
        self.assertEqual(result.score, result.breakdown["simulated"])

    def test_orphaned_responses_are_discarded(self):
        worker = LoopbackWorker(orphans=3)
        self.assertTrue(OracleClient(worker).ping())
        self.assertEqual(len(worker.sent), 1)

    def test_request_ids_are_unique(self):
        worker = LoopbackWorker()
        client = OracleClient(worker)
        client.ping()
        client.ping()
        self.assertNotEqual(worker.sent[0]["request_id"], worker.sent[1]["request_id"])

    def test_silent_worker_times_out(self):
        client = OracleClient(LoopbackWorker(silent=True))
        started = time.monotonic()
        with self.assertRaises(OracleTimeoutError):
            client.predict(SCENARIO, timeout=0.3)
        self.assertLess(time.monotonic() - started, 5.0)

    def test_dead_worker_is_unavailable(self):
        with self.assertRaises(OracleUnavailableError):
            OracleClient(LoopbackWorker(alive=False)).predict(SCENARIO)

    def test_error_response_raises_prediction_error(self):
        worker = LoopbackWorker()
        worker.send = lambda request: worker._outbox.put(
            {"status": "ERROR", "request_id": request["request_id"], "message": "bad", "trace": "tb"}
        )
        with self.assertRaises(OraclePredictionError) as ctx:
            OracleClient(worker).predict(SCENARIO)
        self.assertEqual(ctx.exception.trace, "tb")

    def test_predict_async(self):
        client = OracleClient(LoopbackWorker())
        result = asyncio.run(client.predict_async(SCENARIO, {"seed": 1}))
        self.assertGreater(result.score, 0)


def test_spawned_worker_answers_ping_and_predict():
    with OracleClient(OracleWorker(), default_timeout=60.0) as client:
        assert client.ping(timeout=60.0)
        result = client.predict(SCENARIO, {"seed": 2})
        assert 30 <= result.score <= 36
        assert client.worker.is_alive()
    assert not client.worker.is_alive()


@pytest.mark.parametrize(
    "overrides",
    [
        {"snapshot": {"subjects": SCENARIO.to_dict()["subjects"], "modifiers": [1, 2]}},
        {"snapshot": "x"},
        {"snapshot": SCENARIO.to_dict(), "config": "run_count"},
        {"snapshot": SCENARIO.to_dict(), "config": [("run_count", 3)]},
    ],
)
def test_malformed_predict_fields_fall_back_to_defaults(overrides):
    response = handle_message({"command": "PREDICT", "request_id": "m1", **overrides})
    assert response["status"] == "SUCCESS", response.get("trace")
    assert response["request_id"] == "m1"


def test_unparseable_history_hint_is_ignored(monkeypatch):
    seen = {}

    def _capture(snapshot, config):
        seen["depth"] = snapshot.history_depth
        return neutral_result(config)

    monkeypatch.setattr(worker_module, "predict", _capture)
    snapshot = PredictionSnapshot(subjects=SCENARIO.subjects, history_depth=20)
    handle_message({"command": "PREDICT", "snapshot": snapshot.to_dict(), "history_hint": "unknown"})
    assert seen["depth"] == 20


class TestPredictionMemo(unittest.TestCase):
    def test_unchanged_request_is_not_resimulated(self):
        worker = LoopbackWorker()
        client = OracleClient(worker)
        first = client.predict(SCENARIO, {"seed": 3})
        second = client.predict(SCENARIO, {"seed": 3})
        self.assertIs(first, second)
        self.assertEqual(len(worker.sent), 1)

    def test_changed_state_triggers_a_new_run(self):
        worker = LoopbackWorker()
        client = OracleClient(worker)
        client.predict(SCENARIO, {"seed": 3})
        client.predict(SCENARIO, {"seed": 3}, history_depth=60)
        stronger = PredictionSnapshot(subjects=(SubjectSnapshot("polity", 90.0, 0.9, 0.2),))
        client.predict(stronger, {"seed": 3})
        self.assertEqual(len(worker.sent), 3)

# ABOUTME: Hosts the oracle in an isolated process that talks only through message queues.
# ABOUTME: Converts every request into exactly one response and never lets a fault escape.

from __future__ import annotations

import multiprocessing
import traceback
from dataclasses import replace
from typing import Any, Dict, Mapping, Optional

from src.common.config import SimulationConfig
from src.common.log import get_logger, setup_logging
from src.common.schemas import PredictionSnapshot, as_count

from .ensemble import predict

logger = get_logger(__name__)

PING_COMMANDS = {"PING", "HEALTH_CHECK"}
PREDICT_COMMAND = "PREDICT"

STATUS_PONG = "PONG"
STATUS_SUCCESS = "SUCCESS"
STATUS_ERROR = "ERROR"


def _error(request_id: Any, message: str, trace: str = "") -> Dict[str, Any]:
    return {"status": STATUS_ERROR, "request_id": request_id, "message": message, "trace": trace}


def _run_prediction(request: Mapping[str, Any]) -> Dict[str, Any]:
    snapshot = PredictionSnapshot.from_dict(request.get("snapshot"))
    config = SimulationConfig.from_dict(request.get("config"))
    hint = as_count(request.get("history_hint"))
    if hint is not None:
        snapshot = replace(snapshot, history_depth=hint)
    return predict(snapshot, config).to_dict()


def handle_message(request: Any) -> Dict[str, Any]:
    """
    Answer one request message.

    Request:  {command: PING | HEALTH_CHECK | PREDICT, request_id?, snapshot?, config?, history_hint?}
    Response: {status: PONG | SUCCESS | ERROR, request_id, result? | message, trace?}
    """

    request_id: Optional[Any] = None
    try:
        if not isinstance(request, Mapping):
            return _error(None, f"Malformed request of type {type(request).__name__}")
        request_id = request.get("request_id")
        command = str(request.get("command", "")).strip().upper()

        if command in PING_COMMANDS:
            return {"status": STATUS_PONG, "request_id": request_id}
        if command == PREDICT_COMMAND:
            return {"status": STATUS_SUCCESS, "request_id": request_id, "result": _run_prediction(request)}
        return _error(request_id, f"Unknown command '{command}'")
    except Exception as exc:
        logger.error("Oracle request failed", exc_info=True, extra={"request_id": request_id})
        return _error(request_id, str(exc) or type(exc).__name__, traceback.format_exc())


def serve(inbox, outbox, log_level: str = "WARNING") -> None:
    """Worker loop: one response per request until the `None` sentinel arrives."""

    setup_logging(log_level)
    while True:
        request = inbox.get()
        if request is None:
            break
        outbox.put(handle_message(request))


class OracleWorker:
    """
    Process wrapper around `serve`.

    Uses the spawn start method so the worker inherits no memory from its host.
    """

    def __init__(self, log_level: str = "WARNING"):
        self._ctx = multiprocessing.get_context("spawn")
        self._inbox = self._ctx.Queue()
        self._outbox = self._ctx.Queue()
        self._process = None
        self.log_level = log_level

    def start(self) -> "OracleWorker":
        if self.is_alive():
            return self
        self._process = self._ctx.Process(
            target=serve,
            args=(self._inbox, self._outbox, self.log_level),
            name="oracle-worker",
            daemon=True,
        )
        self._process.start()
        logger.info("Oracle worker spawned", extra={"pid": self._process.pid})
        return self

    def is_alive(self) -> bool:
        return self._process is not None and self._process.is_alive()

    def send(self, request: Dict[str, Any]) -> None:
        self._inbox.put(request)

    def receive(self, timeout: float) -> Dict[str, Any]:
        """Raises queue.Empty when nothing arrives within `timeout` seconds."""
        return self._outbox.get(timeout=timeout)

    def stop(self, timeout: float = 2.0) -> None:
        if self._process is None:
            return
        if self._process.is_alive():
            self._inbox.put(None)
            self._process.join(timeout)
        if self._process.is_alive():
            self._process.terminate()
            self._process.join(timeout)
        self._process = None

# ABOUTME: Caller-side handle for the isolated oracle worker with health checks and timeouts.
# ABOUTME: Serializes requests and matches responses by correlation id, discarding orphans.

from __future__ import annotations

import asyncio
import json
import queue
import threading
import time
import uuid
from functools import partial
from typing import Any, Dict, Mapping, Optional, Union

from src.common.config import ModelWeights, SimulationConfig
from src.common.log import get_logger
from src.common.schemas import PredictionResult, PredictionSnapshot

from .errors import OraclePredictionError, OracleTimeoutError, OracleUnavailableError
from .worker import STATUS_ERROR, STATUS_PONG, OracleWorker

logger = get_logger(__name__)

POLL_SECONDS = 0.25


class OracleClient:
    """
    Owns an `OracleWorker` and exposes blocking and asyncio prediction calls.

    Only one request is in flight at a time. A timed-out run is not killed;
    its late response is recognized by request id and dropped. A prediction
    request identical to the previous one is answered from memory.
    """

    def __init__(self, worker: Optional[OracleWorker] = None, default_timeout: float = 30.0):
        self.worker = worker or OracleWorker()
        self.default_timeout = default_timeout
        self._lock = threading.Lock()
        self._last_signature: Optional[str] = None
        self._last_prediction: Optional[PredictionResult] = None

    def start(self) -> "OracleClient":
        self.worker.start()
        return self

    def close(self) -> None:
        self.worker.stop()

    def __enter__(self) -> "OracleClient":
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, payload: Dict[str, Any], timeout: Optional[float]) -> Dict[str, Any]:
        timeout = self.default_timeout if timeout is None else timeout
        with self._lock:
            if not self.worker.is_alive():
                raise OracleUnavailableError("Oracle worker is not running.")

            request_id = uuid.uuid4().hex
            self.worker.send({**payload, "request_id": request_id})
            deadline = time.monotonic() + timeout

            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise OracleTimeoutError(f"No oracle response within {timeout:.1f}s.")
                try:
                    response = self.worker.receive(timeout=min(remaining, POLL_SECONDS))
                except queue.Empty:
                    if not self.worker.is_alive():
                        raise OracleUnavailableError("Oracle worker exited during a request.")
                    continue
                if not isinstance(response, Mapping) or response.get("request_id") != request_id:
                    logger.debug("Discarding orphaned oracle response")
                    continue
                return dict(response)

    def ping(self, timeout: float = 5.0) -> bool:
        """Health check; any transport fault reads as unhealthy."""
        try:
            response = self._request({"command": "PING"}, timeout)
        except (OracleTimeoutError, OracleUnavailableError) as exc:
            logger.warning("Oracle health check failed: %s", exc)
            return False
        return response.get("status") == STATUS_PONG

    def predict(
        self,
        snapshot: PredictionSnapshot,
        config: Union[SimulationConfig, Mapping[str, Any], None] = None,
        history_depth: Optional[int] = None,
        timeout: Optional[float] = None,
        weights: Optional[ModelWeights] = None,
    ) -> PredictionResult:
        if isinstance(config, SimulationConfig):
            config = config.to_dict()
        options = dict(config or {})
        if weights is not None:
            options["weights"] = {
                "simulated": weights.simulated,
                "bayesian": weights.bayesian,
                "pattern": weights.pattern,
            }
        payload: Dict[str, Any] = {
            "command": "PREDICT",
            "snapshot": snapshot.to_dict(),
            "config": options,
        }
        if history_depth is not None:
            payload["history_hint"] = history_depth

        signature = json.dumps(payload, sort_keys=True, default=str)
        if signature == self._last_signature and self._last_prediction is not None:
            logger.debug("Reusing cached prediction for unchanged state")
            return self._last_prediction

        response = self._request(payload, timeout)
        if response.get("status") == STATUS_ERROR:
            raise OraclePredictionError(str(response.get("message", "")), str(response.get("trace", "")))
        result = PredictionResult.from_dict(response.get("result") or {})
        self._last_signature, self._last_prediction = signature, result
        return result

    async def predict_async(
        self,
        snapshot: PredictionSnapshot,
        config: Union[SimulationConfig, Mapping[str, Any], None] = None,
        history_depth: Optional[int] = None,
        timeout: Optional[float] = None,
        weights: Optional[ModelWeights] = None,
    ) -> PredictionResult:
        loop = asyncio.get_running_loop()
        call = partial(self.predict, snapshot, config, history_depth, timeout, weights)
        return await loop.run_in_executor(None, call)

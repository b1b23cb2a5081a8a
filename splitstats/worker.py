"""Background execution of the CPU-heavy computations.

Interactive callers hand a ``WorkerRequest`` (with their own correlation id)
to an ``AnalysisWorker`` and get a ``Future[WorkerResponse]`` back.  A single
background thread processes one request at a time; queued requests wait in
the executor.  Cancellation is cooperative: ``cancel(request_id)`` sets a
flag that the computation checks between phases, and a cancelled request
produces a discarded response, never an error.

Full results can be stored under a caller-supplied ``cache_key`` in a
results cache that is independent of the engine's memo caches.
"""

from __future__ import annotations

import enum
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from pydantic import BaseModel, Field

from splitstats.core.config import Settings, settings as default_settings
from splitstats.core.exceptions import ComputationCancelled
from splitstats.models import SequentialDesign, VariantRecord
from splitstats.stats import bayesian, curves, sequential
from splitstats.stats.cache import LRUCache
from splitstats.stats.insights import calculate_test_strength

logger = logging.getLogger(__name__)


class RequestType(str, enum.Enum):
    CURVE_POINTS = "curve_points"
    TEST_STRENGTH = "test_strength"
    BAYESIAN = "bayesian"
    SEQUENTIAL = "sequential"


class WorkerRequest(BaseModel):
    request_id: str
    type: RequestType
    params: dict[str, Any] = Field(default_factory=dict)
    cache_key: str | None = None


class WorkerResponse(BaseModel):
    request_id: str
    result: dict[str, Any] | None = None
    error: str | None = None
    cancelled: bool = False
    cached: bool = False


class CancellationToken:
    """Flag polled by long-running computations at defined checkpoints."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ComputationCancelled()


class AnalysisWorker:
    """Single-threaded request processor with cancellation and a result cache.

    Parameters
    ----------
    config : Settings | None
        Supplies the result-cache capacity and simulation defaults.
    """

    def __init__(self, config: Settings | None = None) -> None:
        self.config = config or default_settings
        self.results: LRUCache[dict[str, Any]] = LRUCache(self.config.WORKER_RESULT_CACHE_SIZE)
        self._tokens: dict[str, CancellationToken] = {}
        self._executor: ThreadPoolExecutor | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def __enter__(self) -> AnalysisWorker:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
            logger.info("Analysis worker stopped")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(self, request: WorkerRequest) -> Future[WorkerResponse]:
        """Queue a request for the background thread."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="splitstats-worker")
            logger.info("Analysis worker started")
        token = CancellationToken()
        self._tokens[request.request_id] = token
        return self._executor.submit(self.handle, request, token)

    def cancel(self, request_id: str) -> bool:
        """Cancel a pending or running request; False if it is unknown or finished."""
        token = self._tokens.get(request_id)
        if token is None:
            return False
        token.cancel()
        logger.debug("Cancellation requested for %s", request_id)
        return True

    def handle(self, request: WorkerRequest, token: CancellationToken | None = None) -> WorkerResponse:
        """Process one request synchronously."""
        token = token or CancellationToken()
        try:
            if request.cache_key is not None:
                hit = self.results.get(request.cache_key)
                if hit is not None:
                    return WorkerResponse(request_id=request.request_id, result=hit, cached=True)

            token.raise_if_cancelled()
            result = self._dispatch(request, token)
            token.raise_if_cancelled()

            if request.cache_key is not None:
                self.results.set(request.cache_key, result)
            return WorkerResponse(request_id=request.request_id, result=result)
        except ComputationCancelled:
            logger.debug("Request %s cancelled; result discarded", request.request_id)
            return WorkerResponse(request_id=request.request_id, cancelled=True)
        except Exception as exc:
            logger.exception("Worker request %s failed", request.request_id)
            return WorkerResponse(request_id=request.request_id, error=str(exc))
        finally:
            # a resubmitted id may already own a newer token
            if self._tokens.get(request.request_id) is token:
                del self._tokens[request.request_id]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _dispatch(self, request: WorkerRequest, token: CancellationToken) -> dict[str, Any]:
        params = request.params
        match request.type:
            case RequestType.CURVE_POINTS:
                points = curves.generate_paired_curves(
                    params["control_mean"],
                    params["control_std_dev"],
                    params["test_mean"],
                    params["test_std_dev"],
                    params["min_x"],
                    params["max_x"],
                    steps=params.get("steps", 100),
                    confidence_level=params.get("confidence_level", 95),
                    two_sided=params.get("two_sided", True),
                    checkpoint=token.raise_if_cancelled,
                )
                return points.model_dump()
            case RequestType.TEST_STRENGTH:
                return {"strength": calculate_test_strength(params["p_value"], params["alpha"])}
            case RequestType.BAYESIAN:
                control = VariantRecord.model_validate(params["control"])
                test = VariantRecord.model_validate(params["test"])
                result = bayesian.run_bayesian_test(
                    control,
                    test,
                    n_samples=params.get("n_samples", self.config.BAYESIAN_SIMULATIONS),
                    seed=params.get("seed"),
                    loss_samples=params.get("loss_samples", self.config.EXPECTED_LOSS_SIMULATIONS),
                    checkpoint=token.raise_if_cancelled,
                )
                return result.model_dump()
            case RequestType.SEQUENTIAL:
                design = SequentialDesign.model_validate(params.get("design", {}))
                statuses = []
                # params["looks"][i] holds the cumulative counts at look i + 1
                for look, counts in enumerate(params["looks"], start=1):
                    token.raise_if_cancelled()
                    status = sequential.analyze_sequential_test(
                        VariantRecord.model_validate(counts["control"]),
                        VariantRecord.model_validate(counts["test"]),
                        look,
                        design,
                    )
                    statuses.append(status.model_dump())
                return {"looks": statuses}
        raise ValueError(f"Unknown operation type: {request.type!r}")

"""Tests for the background analysis worker."""

import threading

import pytest

from splitstats.core.config import Settings
from splitstats.worker import (
    AnalysisWorker,
    CancellationToken,
    RequestType,
    WorkerRequest,
)

CURVE_PARAMS = {
    "control_mean": 5.0,
    "control_std_dev": 0.5,
    "test_mean": 6.0,
    "test_std_dev": 0.5,
    "min_x": 3.0,
    "max_x": 8.0,
    "steps": 20,
}


class CancelOnCall(CancellationToken):
    """Token that cancels itself at its n-th checkpoint."""

    def __init__(self, call: int) -> None:
        super().__init__()
        self.remaining = call

    def raise_if_cancelled(self) -> None:
        self.remaining -= 1
        if self.remaining <= 0:
            self.cancel()
        super().raise_if_cancelled()


@pytest.fixture
def worker():
    with AnalysisWorker(Settings(WORKER_RESULT_CACHE_SIZE=2)) as w:
        yield w


class TestHandle:
    def test_curve_points(self, worker):
        response = worker.handle(
            WorkerRequest(request_id="r1", type=RequestType.CURVE_POINTS, params=CURVE_PARAMS)
        )
        assert response.request_id == "r1"
        assert response.error is None
        assert len(response.result["control_points"]) == 21

    def test_test_strength(self, worker):
        response = worker.handle(
            WorkerRequest(
                request_id="r2",
                type=RequestType.TEST_STRENGTH,
                params={"p_value": 0.01, "alpha": 0.05},
            )
        )
        assert response.result == {"strength": 100.0}

    def test_bayesian(self, worker):
        response = worker.handle(
            WorkerRequest(
                request_id="r3",
                type=RequestType.BAYESIAN,
                params={
                    "control": {"label": "A", "visitors": 1000, "conversions": 50},
                    "test": {"label": "B", "visitors": 1000, "conversions": 100},
                    "n_samples": 20_000,
                    "seed": 42,
                },
            )
        )
        assert response.result["probability_of_improvement"] > 0.99
        assert response.result["simulations"] == 20_000

    def test_sequential_looks(self, worker):
        looks = [
            {
                "control": {"label": "A", "visitors": 2_000 * i, "conversions": 100 * i},
                "test": {"label": "B", "visitors": 2_000 * i, "conversions": 120 * i},
            }
            for i in range(1, 4)
        ]
        response = worker.handle(
            WorkerRequest(
                request_id="r4",
                type=RequestType.SEQUENTIAL,
                params={"looks": looks, "design": {"total_looks": 3}},
            )
        )
        statuses = response.result["looks"]
        assert [s["current_look"] for s in statuses] == [1, 2, 3]
        assert statuses[-1]["information_fraction"] == 1.0
        # more data at the same rates means a smaller p-value
        assert statuses[2]["p_value"] < statuses[0]["p_value"]

    def test_failure_becomes_error_response(self, worker):
        response = worker.handle(
            WorkerRequest(
                request_id="bad",
                type=RequestType.BAYESIAN,
                params={
                    "control": {"label": "A", "visitors": 10, "conversions": 50},
                    "test": {"label": "B", "visitors": 10, "conversions": 1},
                },
            )
        )
        assert response.result is None
        assert response.error
        assert not response.cancelled

    def test_bayesian_cancelled_between_phases(self, worker, monkeypatch):
        loss_calls = []
        monkeypatch.setattr(
            "splitstats.stats.bayesian.expected_loss", lambda *a, **kw: loss_calls.append(1) or 0.0
        )
        # checkpoint 1 is the pre-dispatch check, 2 follows the posterior draws
        token = CancelOnCall(2)
        response = worker.handle(
            WorkerRequest(
                request_id="b1",
                type=RequestType.BAYESIAN,
                params={
                    "control": {"label": "A", "visitors": 1000, "conversions": 50},
                    "test": {"label": "B", "visitors": 1000, "conversions": 100},
                    "n_samples": 1_000,
                },
            ),
            token,
        )
        assert response.cancelled
        assert response.error is None
        assert loss_calls == []

    def test_cancelled_token_discards_result(self, worker):
        token = CancellationToken()
        token.cancel()
        response = worker.handle(
            WorkerRequest(request_id="c1", type=RequestType.CURVE_POINTS, params=CURVE_PARAMS),
            token,
        )
        assert response.cancelled
        assert response.result is None
        assert response.error is None


class TestResultCache:
    def test_hit_is_flagged(self, worker):
        request = WorkerRequest(
            request_id="k1", type=RequestType.CURVE_POINTS, params=CURVE_PARAMS, cache_key="curve"
        )
        first = worker.handle(request)
        second = worker.handle(request.model_copy(update={"request_id": "k2"}))
        assert not first.cached
        assert second.cached
        assert second.request_id == "k2"
        assert second.result == first.result

    def test_bounded(self, worker):
        for i in range(3):
            worker.handle(
                WorkerRequest(
                    request_id=str(i),
                    type=RequestType.TEST_STRENGTH,
                    params={"p_value": 0.5, "alpha": 0.05},
                    cache_key=f"s{i}",
                )
            )
        assert worker.results.keys() == ["s1", "s2"]

    def test_cancelled_result_not_cached(self, worker):
        token = CancellationToken()
        token.cancel()
        worker.handle(
            WorkerRequest(
                request_id="x", type=RequestType.CURVE_POINTS, params=CURVE_PARAMS, cache_key="never"
            ),
            token,
        )
        assert "never" not in worker.results


class TestSubmit:
    """Background execution through the single worker thread."""

    def test_future_resolves(self, worker):
        future = worker.submit(
            WorkerRequest(
                request_id="f1",
                type=RequestType.TEST_STRENGTH,
                params={"p_value": 0.5, "alpha": 0.05},
            )
        )
        response = future.result(timeout=10)
        assert response.result["strength"] == pytest.approx(100 * 0.5 / 0.95)

    def test_cancel_queued_request(self, worker, monkeypatch):
        release = threading.Event()
        original = worker._dispatch

        def blocking_dispatch(request, token):
            if request.request_id == "slow":
                release.wait(timeout=10)
            return original(request, token)

        monkeypatch.setattr(worker, "_dispatch", blocking_dispatch)

        slow = worker.submit(
            WorkerRequest(
                request_id="slow",
                type=RequestType.TEST_STRENGTH,
                params={"p_value": 0.5, "alpha": 0.05},
            )
        )
        queued = worker.submit(
            WorkerRequest(request_id="queued", type=RequestType.CURVE_POINTS, params=CURVE_PARAMS)
        )
        assert worker.cancel("queued") is True
        release.set()

        assert slow.result(timeout=10).result is not None
        assert queued.result(timeout=10).cancelled

    def test_resubmitted_id_stays_cancellable(self, worker, monkeypatch):
        gates = [threading.Event(), threading.Event()]
        order = iter(gates)
        original = worker._dispatch

        def gated_dispatch(request, token):
            next(order).wait(timeout=10)
            return original(request, token)

        monkeypatch.setattr(worker, "_dispatch", gated_dispatch)
        request = WorkerRequest(
            request_id="dup", type=RequestType.TEST_STRENGTH, params={"p_value": 0.5, "alpha": 0.05}
        )
        first = worker.submit(request)
        second = worker.submit(request)

        gates[0].set()
        assert first.result(timeout=10).result is not None
        # the finished first run must not drop the token of the second
        assert worker.cancel("dup") is True
        gates[1].set()
        assert second.result(timeout=10).cancelled

    def test_cancel_unknown_request(self, worker):
        assert worker.cancel("nope") is False

    def test_shutdown_is_idempotent(self):
        worker = AnalysisWorker()
        worker.submit(
            WorkerRequest(
                request_id="s", type=RequestType.TEST_STRENGTH, params={"p_value": 0.1, "alpha": 0.05}
            )
        ).result(timeout=10)
        worker.shutdown()
        worker.shutdown()

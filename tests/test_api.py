import inspect

from fastapi.testclient import TestClient
from app import app, evaluate


def test_evaluate_example_pipeline():
    """skip -> map -> take over a list"""
    with TestClient(app) as client:
        r = client.post("/pipeline/evaluate", json={
            "source": {"kind": "from", "items": [1, 2, 3, 4, 5]},
            "operations": [
                {"type": "skip", "count": 1},
                {"type": "map", "function": "double"},
                {"type": "take", "count": 2}
            ]
        })
        assert r.status_code == 200
        body = r.json()
        assert body["ok"] is True
        assert body["items"] == [4, 6]
        assert body["result"] is None
        assert body["operations_applied"] == ["skip", "map", "take"]
        assert body["performance"]["output_size"] == 2


def test_evaluate_zip_returns_pairs():
    with TestClient(app) as client:
        r = client.post("/pipeline/evaluate", json={
            "source": {"kind": "from", "items": [1, 2, 3]},
            "operations": [{"type": "zip", "other": {"kind": "repeat", "value": 4}}]
        })
        assert r.status_code == 200
        assert r.json()["items"] == [[1, 4], [2, 4], [3, 4]]


def test_evaluate_fold():
    with TestClient(app) as client:
        r = client.post("/pipeline/evaluate", json={
            "source": {"kind": "from", "items": [1, 2, 3]},
            "operations": [{"type": "fold", "function": "add", "initial": 0}]
        })
        assert r.status_code == 200
        body = r.json()
        assert body["result"] == 6
        assert body["items"] is None


def test_evaluate_text_source():
    with TestClient(app) as client:
        r = client.post("/pipeline/evaluate", json={
            "source": {"kind": "from", "text": "hi"},
            "operations": []
        })
        assert r.status_code == 200
        assert r.json()["items"] == [104, 105]


def test_unbounded_pipeline_is_rejected():
    with TestClient(app) as client:
        r = client.post("/pipeline/evaluate", json={
            "source": {"kind": "repeat", "value": 1},
            "limits": {"max_output_items": 20}
        })
        assert r.status_code == 400
        body = r.json()
        assert body["error_code"] == "PIPELINE_ERROR"
        assert "timestamp" in body


def test_unknown_function_is_rejected():
    with TestClient(app) as client:
        r = client.post("/pipeline/evaluate", json={
            "source": {"kind": "from", "items": [1]},
            "operations": [{"type": "filter", "function": "is_prime"}]
        })
        assert r.status_code == 400
        assert "is_prime" in r.json()["error"]


def test_type_mismatch_is_rejected():
    with TestClient(app) as client:
        r = client.post("/pipeline/evaluate", json={
            "source": {"kind": "from", "items": ["a", "b"]},
            "operations": [{"type": "map", "function": "negate"}]
        })
        assert r.status_code == 400


def test_invalid_description_is_422():
    with TestClient(app) as client:
        r = client.post("/pipeline/evaluate", json={
            "source": {"kind": "from"},
            "operations": []
        })
        assert r.status_code == 422


def test_source_pull_limit_is_capped():
    with TestClient(app) as client:
        r = client.post("/pipeline/evaluate", json={
            "source": {"kind": "from", "items": [1]},
            "limits": {"max_source_pulls": 2_000_000}
        })
        assert r.status_code == 422


def test_evaluate_runs_in_threadpool():
    """A plain def endpoint keeps long evaluations off the event loop"""
    assert not inspect.iscoroutinefunction(evaluate)


def test_operations_listing():
    with TestClient(app) as client:
        r = client.get("/operations")
        assert r.status_code == 200
        body = r.json()
        assert "from" in body["sources"]
        assert body["operations"] == ["skip", "take", "map", "filter", "zip", "fold"]
        assert "double" in body["functions"]["map"]


def test_health_and_metrics():
    with TestClient(app) as client:
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

        client.post("/pipeline/evaluate", json={"source": {"kind": "once", "value": 1}})
        r = client.get("/metrics")
        assert r.status_code == 200
        assert r.json()["total_operations"] >= 1

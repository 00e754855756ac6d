import asyncio
import json

from app import seq_error_handler
from errors import EmptyReductionError
from models import ServiceSettings


def pipeline(source, operations=None, terminal="to_list"):
    return {"source": source, "operations": operations or [], "terminal": terminal}


def assert_validation_error(r):
    assert r.status_code == 422
    body = r.json()
    assert body["ok"] is False
    assert body["error_code"] == "VALIDATION_ERROR"
    assert body["error_type"] == "RequestValidationError"
    assert body["error"].startswith("Invalid request")
    assert body["details"]["errors"], "Each validation error must be listed"
    return body


class TestStatusEndpoints:
    """Test banner, health and metrics endpoints"""

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        body = r.json()
        assert body["ok"] is True
        assert "square" in body["available_functions"]["map"]
        assert "is_even" in body["available_functions"]["predicates"]

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        body = r.json()
        assert body["healthy"] is True
        assert body["settings"]["max_result_items"] >= 1
        assert "total_operations" in body["performance"]

    def test_metrics_record_and_reset(self, client):
        assert client.delete("/metrics").json()["total_operations"] == 0

        client.post("/pipeline", json=pipeline({"kind": "range", "start": 0, "end": 3}))
        assert client.get("/metrics").json()["total_operations"] == 1

        assert client.delete("/metrics").json()["total_operations"] == 0


class TestPipelineEndpoint:
    """Test POST /pipeline"""

    def test_map_filter_take(self, client):
        r = client.post("/pipeline", json=pipeline(
            {"kind": "range", "start": 0, "end": 20},
            [
                {"type": "map", "function": "square"},
                {"type": "filter", "function": "is_even"},
                {"type": "take", "count": 3},
            ]
        ))
        assert r.status_code == 200
        body = r.json()
        assert body["result"] == [0, 4, 16]
        assert body["truncated"] is False
        assert body["operations_applied"] == ["map(square)", "filter(is_even)", "take(3)"]
        assert body["performance"]["output_size"] == 3

    def test_fibonacci_source(self, client):
        r = client.post("/pipeline", json=pipeline(
            {"kind": "fibonacci"}, [{"type": "take", "count": 7}]
        ))
        assert r.json()["result"] == [0, 1, 1, 2, 3, 5, 8]

    def test_flat_map_and_skip(self, client):
        r = client.post("/pipeline", json=pipeline(
            {"kind": "items", "items": [1, 2, 3]},
            [
                {"type": "flat_map", "function": "range_to"},
                {"type": "skip", "count": 1},
            ]
        ))
        assert r.json()["result"] == [0, 1, 0, 1, 2]

    def test_parameterized_functions(self, client):
        r = client.post("/pipeline", json=pipeline(
            {"kind": "range", "start": 1},
            [
                {"type": "map", "function": "multiply", "argument": 3},
                {"type": "take_while", "function": "less_than", "argument": 15},
            ]
        ))
        assert r.json()["result"] == [3, 6, 9, 12]

    def test_terminal_operations(self, client):
        source = {"kind": "range", "start": 1, "end": 5}
        expected = {"sum": 10, "product": 24, "count": 4, "min": 1, "max": 4, "first": 1}

        for terminal, value in expected.items():
            r = client.post("/pipeline", json=pipeline(source, terminal=terminal))
            assert r.status_code == 200, r.text
            assert r.json()["result"] == value, f"{terminal}: {r.json()}"

    def test_unbounded_source_is_truncated(self, client, monkeypatch):
        monkeypatch.setattr("app.settings", ServiceSettings(max_result_items=5))

        r = client.post("/pipeline", json=pipeline({"kind": "repeat", "value": "x"}))
        body = r.json()
        assert body["result"] == ["x"] * 5
        assert body["truncated"] is True
        assert body["item_limit"] == 5

    def test_text_source(self, client):
        r = client.post("/pipeline", json=pipeline({"kind": "text", "text": "lazy"}, terminal="count"))
        assert r.json()["result"] == 4

    def test_empty_reduction_is_reported(self, client):
        r = client.post("/pipeline", json=pipeline(
            {"kind": "range", "start": 0, "end": 0}, terminal="min"
        ))
        assert r.status_code == 400
        body = r.json()
        assert body["ok"] is False
        assert body["error_type"] == "EmptyReductionError"
        assert body["error_code"] == "SEQUENCE_ERROR"

    def test_callback_failure_is_reported(self, client):
        r = client.post("/pipeline", json=pipeline(
            {"kind": "text", "text": "ab"}, [{"type": "map", "function": "negate"}]
        ))
        assert r.status_code == 400
        assert r.json()["error_type"] == "TypeError"
        assert r.json()["error_code"] == "EVALUATION_ERROR"


class TestPipelineValidation:
    """Test request validation"""

    def test_unknown_function(self, client):
        r = client.post("/pipeline", json=pipeline(
            {"kind": "range", "end": 3}, [{"type": "map", "function": "explode"}]
        ))
        assert_validation_error(r)

    def test_predicate_used_as_map_function(self, client):
        r = client.post("/pipeline", json=pipeline(
            {"kind": "range", "end": 3}, [{"type": "map", "function": "is_even"}]
        ))
        assert_validation_error(r)

    def test_take_requires_count(self, client):
        r = client.post("/pipeline", json=pipeline({"kind": "range", "end": 3}, [{"type": "take"}]))
        assert_validation_error(r)

    def test_items_source_requires_items(self, client):
        r = client.post("/pipeline", json=pipeline({"kind": "items"}))
        body = assert_validation_error(r)
        assert "items" in body["error"]

    def test_unknown_terminal(self, client):
        r = client.post("/pipeline", json=pipeline({"kind": "range", "end": 3}, terminal="average"))
        assert_validation_error(r)


class TestPaginationEndpoint:
    """Test POST /pipeline/page"""

    def test_middle_page(self, client):
        r = client.post(
            "/pipeline/page?page_number=2&page_size=5",
            json=pipeline({"kind": "range", "start": 1, "end": 21})
        )
        assert r.status_code == 200
        body = r.json()
        assert body["page_data"] == [6, 7, 8, 9, 10]
        assert body["has_next_page"] is True
        assert body["has_previous_page"] is True

    def test_last_page(self, client):
        r = client.post(
            "/pipeline/page?page_number=4&page_size=5",
            json=pipeline({"kind": "range", "start": 1, "end": 21})
        )
        body = r.json()
        assert body["page_data"] == [16, 17, 18, 19, 20]
        assert body["has_next_page"] is False

    def test_page_of_filtered_infinite_source(self, client):
        r = client.post(
            "/pipeline/page?page_number=1&page_size=3",
            json=pipeline({"kind": "range", "start": 0}, [{"type": "filter", "function": "is_odd"}])
        )
        body = r.json()
        assert body["page_data"] == [1, 3, 5]
        assert body["has_previous_page"] is False
        assert body["operations_applied"] == ["filter(is_odd)"]

    def test_invalid_page_number(self, client):
        r = client.post(
            "/pipeline/page?page_number=0",
            json=pipeline({"kind": "range", "end": 3})
        )
        body = assert_validation_error(r)
        assert body["details"]["errors"][0]["loc"] == ["query", "page_number"]


class TestSequenceErrorHandler:
    """Test that SeqError bodies match whichever way they are raised"""

    def test_handler_body_matches_pipeline_body(self):
        response = asyncio.run(seq_error_handler(None, EmptyReductionError("nothing to reduce")))
        body = json.loads(response.body)

        assert response.status_code == 400
        assert body["ok"] is False
        assert body["error_code"] == "SEQUENCE_ERROR"
        assert body["error_type"] == "EmptyReductionError"
        assert "nothing to reduce" in body["error"]

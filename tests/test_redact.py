from __future__ import annotations

from armysync._redact import redact_for_log


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "writes": [{"update": {"name": "users/u/data/syncedData"}}],
        "idToken": "eyJhbGciOi",
        "key": "AIza-api-key",
        "nested": {"Authorization": "Bearer abc", "refresh_token": "r"},
    }

    redacted = redact_for_log(payload)
    assert redacted["idToken"] == "<redacted>"
    assert redacted["key"] == "<redacted>"
    assert redacted["nested"]["Authorization"] == "<redacted>"
    assert redacted["nested"]["refresh_token"] == "<redacted>"
    assert redacted["writes"] == payload["writes"]


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_redact_for_log_bounds_large_collections() -> None:
    units = {f"unit-{i}": {"id": f"unit-{i}"} for i in range(30)}

    redacted = redact_for_log({"customUnits": units, "tags": list(range(25))}, max_items=5)

    assert len(redacted["customUnits"]) == 6
    assert redacted["customUnits"]["…"] == "<25 more keys>"
    assert redacted["tags"] == [0, 1, 2, 3, 4, "<20 more items>"]

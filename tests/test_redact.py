from __future__ import annotations

from etatrack._redact import redact_for_log, redact_url


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "destination": {"lat": 52.3, "lng": 4.9},
        "apiKey": "secret-key",
        "auth": {"token": "T", "password": "pw"},
        "participants": [{"id": "a", "Authorization": "Bearer x"}],
    }

    redacted = redact_for_log(payload)
    assert redacted["destination"] == {"lat": 52.3, "lng": 4.9}
    assert redacted["apiKey"] == "<redacted>"
    assert redacted["auth"]["token"] == "<redacted>"
    assert redacted["auth"]["password"] == "<redacted>"
    assert redacted["participants"][0]["Authorization"] == "<redacted>"
    assert redacted["participants"][0]["id"] == "a"


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_redact_url_masks_key_parameter() -> None:
    assert redact_url("https://h/api/route?key=abc&x=1") == "https://h/api/route?key=<redacted>&x=1"
    assert redact_url("https://h/api/route") == "https://h/api/route"


def test_redact_for_log_coarsens_coordinates() -> None:
    payload = {"participants": [{"id": "a", "lat": 52.370216, "lng": 4.895168}]}

    coarse = redact_for_log(payload)
    exact = redact_for_log(payload, coordinate_digits=None)

    assert coarse["participants"][0] == {"id": "a", "lat": 52.37, "lng": 4.895}
    assert exact["participants"][0]["lat"] == 52.370216

from __future__ import annotations

import json
import logging

from capi_client_sdk.logger import get_logger, log_event
from capi_client_sdk.notifications import LoggingNotifier, ToastLevel, ToastQueue


def test_toast_queue_is_bounded_and_dismissable() -> None:
    queue = ToastQueue(max_items=2)

    queue.notify("um")
    queue.notify("dois", ToastLevel.ERROR)
    queue.notify("três", ToastLevel.SUCCESS)

    assert queue.messages() == ["dois", "três"]
    assert queue.messages(ToastLevel.ERROR) == ["dois"]

    queue.dismiss(queue.toasts[0].id)
    assert queue.messages() == ["três"]
    queue.clear()
    assert queue.toasts == []


def test_logging_notifier_emits_json_line(caplog) -> None:
    with caplog.at_level(logging.INFO, logger="capi_client_sdk.notifications"):
        LoggingNotifier().notify("Venda registrada", ToastLevel.SUCCESS)

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["event"] == "user.notification"
    assert payload["message"] == "Venda registrada"
    assert payload["level"] == "INFO"


def test_log_event_scrubs_sensitive_fields(caplog) -> None:
    logger = get_logger("capi_client_sdk.tests")
    with caplog.at_level(logging.INFO, logger="capi_client_sdk.tests"):
        log_event(logger, "profile.saved", email="ana@example.com", tax_id="12345678901", user_id="u1")

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["email"] == "***"
    assert payload["tax_id"] == "***"
    assert payload["user_id"] == "u1"

import json
from typing import Any, List

import pytest
from resort_booking.models import ReservationStatus
from resort_booking.utils import audit_log
from resort_booking.utils.request_id import set_request_id


def test_emit_audit_log_outputs_json(monkeypatch) -> None:
    messages: List[str] = []

    class DummyLogger:
        def info(self, message: str) -> None:
            messages.append(message)

    dummy_logger = DummyLogger()
    monkeypatch.setattr(audit_log, "_audit_logger", dummy_logger)

    set_request_id("req-123")
    audit_log.emit_audit_log(
        action="reservation.created",
        initiator="guest",
        reservation_id=1,
        resource_type="quad",
        unit_code="instructor",
        staff_id=None,
        units=2,
        status_from=None,
        status_to=ReservationStatus.PENDING,
        version=1,
        extra={"final_total": "95"},
    )
    assert len(messages) == 1
    payload = json.loads(messages[0])
    assert payload["action"] == "reservation.created"
    assert payload["initiator"] == "guest"
    assert payload["request_id"] == "req-123"
    assert payload["status_to"] == "pending"
    assert payload["final_total"] == "95"
    assert "staff_id" not in payload
    assert "status_from" not in payload
    assert "timestamp" in payload


def test_emit_audit_log_raises_on_logger_failure(monkeypatch) -> None:
    class DummyLogger:
        def info(self, _: Any) -> None:
            raise ValueError("fail")

    dummy_logger = DummyLogger()
    monkeypatch.setattr(audit_log, "_audit_logger", dummy_logger)

    with pytest.raises(RuntimeError):
        audit_log.emit_audit_log(
            action="reservation.cancelled",
            initiator="staff",
            reservation_id=1,
            resource_type="bath",
            unit_code="B1",
            staff_id=4,
            units=1,
            status_from=ReservationStatus.CONFIRMED,
            status_to=ReservationStatus.CANCELLED,
            version=2,
        )

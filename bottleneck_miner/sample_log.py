from __future__ import annotations

from typing import List

from .models import ProcessEvent

_ORDER_TO_CASH = (
    ("A1", "Order Created", "2024-01-01T09:00:00"),
    ("A1", "Payment Received", "2024-01-01T10:30:00"),
    ("A1", "Order Shipped", "2024-01-02T08:00:00"),
    ("A1", "Order Delivered", "2024-01-03T14:00:00"),
    ("A2", "Order Created", "2024-01-01T11:00:00"),
    ("A2", "Payment Received", "2024-01-01T11:45:00"),
    ("A2", "Order Shipped", "2024-01-02T09:00:00"),
    ("A2", "Order Delivered", "2024-01-03T10:00:00"),
    # A3 goes through a payment issue and pays twice
    ("A3", "Order Created", "2024-01-02T08:00:00"),
    ("A3", "Payment Received", "2024-01-02T14:00:00"),
    ("A3", "Payment Issue", "2024-01-02T14:30:00"),
    ("A3", "Payment Received", "2024-01-03T09:00:00"),
    ("A3", "Order Shipped", "2024-01-04T10:00:00"),
    ("A3", "Order Delivered", "2024-01-05T16:00:00"),
    ("A4", "Order Created", "2024-01-03T10:00:00"),
    ("A4", "Payment Received", "2024-01-03T10:15:00"),
    ("A4", "Order Shipped", "2024-01-03T14:00:00"),
    ("A4", "Order Delivered", "2024-01-04T11:00:00"),
    ("A5", "Order Created", "2024-01-03T14:00:00"),
    ("A5", "Order Cancelled", "2024-01-03T15:00:00"),
    ("A6", "Order Created", "2024-01-04T09:00:00"),
    ("A6", "Payment Received", "2024-01-04T09:30:00"),
    ("A6", "Order Shipped", "2024-01-04T16:00:00"),
    ("A6", "Order Delivered", "2024-01-06T10:00:00"),
    ("A7", "Order Created", "2024-01-05T08:00:00"),
    ("A7", "Payment Received", "2024-01-05T12:00:00"),
    ("A7", "Order Shipped", "2024-01-06T09:00:00"),
    ("A7", "Order Delivered", "2024-01-07T14:00:00"),
    ("A8", "Order Created", "2024-01-05T10:00:00"),
    ("A8", "Payment Received", "2024-01-05T10:20:00"),
    ("A8", "Order Shipped", "2024-01-05T15:00:00"),
    ("A8", "Order Delivered", "2024-01-06T11:00:00"),
    ("A8", "Return Requested", "2024-01-07T09:00:00"),
    ("A8", "Return Processed", "2024-01-08T14:00:00"),
)


def sample_events() -> List[ProcessEvent]:
    """Eight order-to-cash cases covering rework, cancellation and returns."""
    return [ProcessEvent(case_id, activity, timestamp) for case_id, activity, timestamp in _ORDER_TO_CASH]

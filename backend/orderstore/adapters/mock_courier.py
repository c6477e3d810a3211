import time
from typing import Dict
from uuid import uuid4


class CourierError(Exception):
    pass


class MockCourierAdapter:
    """
    Simple synchronous mock courier adapter.
    book_shipment returns a dict {carrier, tracking_number}; the store only
    records those two strings.
    """

    def __init__(self, delay_ms: int = 0, carrier: str = "mock-courier", fail: bool = False):
        self.delay = delay_ms / 1000.0
        self.carrier = carrier
        self.fail = fail

    def book_shipment(self, order_number: str) -> Dict:
        # simulate latency
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise CourierError("Simulated courier outage")
        tracking = f"TRK-{uuid4().hex[:12].upper()}"
        return {"carrier": self.carrier, "tracking_number": tracking, "reference": order_number}

    def health_check(self) -> bool:
        return not self.fail

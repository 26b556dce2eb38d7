"""
Best-effort notifications sent after an order transaction commits.

Search re-indexing and admin notifications live in other services. A failure
here is logged and dropped; it never affects the order that was just saved.
"""
import os
import httpx
import structlog
from shared.security.api_key import INTERNAL_API_KEY

logger = structlog.get_logger(__name__)

SEARCH_SYNC_URL = os.getenv("SEARCH_SYNC_URL", "")
NOTIFICATION_URL = os.getenv("NOTIFICATION_URL", "")
SIDE_EFFECT_TIMEOUT = float(os.getenv("SIDE_EFFECT_TIMEOUT", "2.0"))

# Security Headers for internal service-to-service communication
API_HEADERS = {"X-Internal-API-Key": INTERNAL_API_KEY}


class OrderEventPublisher:
    def __init__(self, targets: list[str] = None, timeout: float = SIDE_EFFECT_TIMEOUT, transport=None):
        if targets is None:
            targets = [url for url in (SEARCH_SYNC_URL, NOTIFICATION_URL) if url]
        self.targets = targets
        self.timeout = timeout
        self.transport = transport

    async def publish(self, event: str, order) -> None:
        if not self.targets:
            return
        payload = {
            "event": event,
            "order_id": str(order.id),
            "order_number": order.order_number,
            "status": order.status.value,
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for url in self.targets:
                try:
                    resp = await client.post(url, json=payload, headers=API_HEADERS)
                    resp.raise_for_status()
                except httpx.HTTPError as e:
                    logger.warning("order_event_delivery_failed", event=event, url=url, error=str(e))


publisher = OrderEventPublisher()

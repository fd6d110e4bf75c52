"""Read-only proxy to the Jaeger query API."""
from typing import Any, Dict, List, Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)

RECENT_TRACES_LIMIT = 20


class TraceQueryClient:
    """
    Fetches recent traces of this service from Jaeger.

    Failures of any kind (connection refused, timeout, non-2xx, bad JSON)
    yield an empty list.
    """

    def __init__(
        self,
        base_url: str,
        service_name: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.service_name = service_name
        self.transport = transport

    async def recent_traces(self, limit: int = RECENT_TRACES_LIMIT) -> List[Dict[str, Any]]:
        params = {"service": self.service_name, "limit": limit}
        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.get(f"{self.base_url}/api/traces", params=params)
                response.raise_for_status()
                data = response.json().get("data") or []
        except Exception as e:
            logger.warning(
                "trace_query_failed",
                url=self.base_url,
                error=str(e),
                error_type=type(e).__name__,
            )
            return []

        logger.debug("trace_query_completed", traces=len(data))
        return data

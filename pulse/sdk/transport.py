"""
HTTP Transport

Posts trace batches to the Pulse collector. Delivery is best effort:
failures are logged and the batch is dropped, never raised to the caller.
"""

from __future__ import annotations
import json
import logging
from typing import List, Optional

import httpx

from pulse.core.errors import TransportError
from pulse.sdk.config import PulseConfig
from pulse.sdk.tracing import Trace

logger = logging.getLogger("pulse.sdk.transport")


class HTTPTransport:
    """
    Sends batches to {api_url}/v1/traces/batch with Bearer auth.

    A fresh AsyncClient is opened per send so the transport works from any
    event loop, including the one asyncio.run creates at interpreter exit.
    """

    def __init__(
        self,
        config: PulseConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._transport = transport

    async def _post(self, traces: List[Trace]) -> None:
        body = json.dumps([t.to_dict() for t in traces], default=str)

        try:
            async with httpx.AsyncClient(
                timeout=self.config.timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    self.config.batch_endpoint,
                    headers={
                        "Authorization": f"Bearer {self.config.api_key}",
                        "Content-Type": "application/json",
                    },
                    content=body,
                )
        except httpx.TimeoutException as e:
            raise TransportError(f"timed out sending traces: {e}")
        except httpx.HTTPError as e:
            raise TransportError(f"network error sending traces: {e}")

        if not response.is_success:
            raise TransportError(
                f"failed to send traces ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )

    async def send(self, traces: List[Trace]) -> bool:
        """Send a batch. Returns True on a 2xx response; never raises."""
        if not traces:
            return True

        try:
            await self._post(traces)
        except TransportError as e:
            logger.error(f"Pulse SDK: {e} ({len(traces)} traces dropped)")
            return False
        except Exception as e:
            logger.error(f"Pulse SDK: unexpected error sending traces: {e}")
            return False

        logger.debug(f"Pulse SDK: sent {len(traces)} traces")
        return True

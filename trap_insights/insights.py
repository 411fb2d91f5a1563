#  Copyright 2024 Red Hat, Inc.
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.

"""Batching client for the New Relic Insights insert API."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any

import aiohttp

from trap_insights.errors import InsightsError

logger = logging.getLogger(__name__)

INSIGHTS_HOSTS = {
    "US": "insights-collector.newrelic.com",
    "EU": "insights-collector.eu01.nr-data.net",
}

DEFAULT_MAX_BUFFER = 10000
REQUEST_TIMEOUT = 30


def insights_url(account_id: int, region: str = "US") -> str:
    host = INSIGHTS_HOSTS.get(region.upper())
    if host is None:
        logger.warning("Unknown region %s, using US", region)
        host = INSIGHTS_HOSTS["US"]
    return f"https://{host}/v1/accounts/{account_id}/events"


class InsightsClient:
    """Buffer events in memory and post them in batches on flush.

    ``enqueue_event`` never blocks and never performs I/O. A failed flush
    keeps the batch so that the next flush retries it.
    """

    def __init__(
        self,
        account_id: int,
        insert_key: str,
        region: str = "US",
        max_buffer: int = DEFAULT_MAX_BUFFER,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        if not insert_key:
            msg = "an Insights insert key is required"
            raise InsightsError(msg)
        self.url = insights_url(account_id, region)
        self.insert_key = insert_key
        self.max_buffer = max_buffer
        self._buffer: deque[dict[str, Any]] = deque()
        self._session = session
        self._owns_session = session is None
        self.dropped = 0

    def __len__(self) -> int:
        return len(self._buffer)

    def enqueue_event(self, event: dict[str, Any]) -> None:
        if len(self._buffer) >= self.max_buffer:
            self._buffer.popleft()
            self.dropped += 1
            logger.warning("Event buffer full (%d), dropped oldest event", self.max_buffer)
        self._buffer.append(dict(event))

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            # trust_env picks up HTTP_PROXY/HTTPS_PROXY
            self._session = aiohttp.ClientSession(trust_env=True)
            self._owns_session = True
        return self._session

    async def flush(self) -> None:
        """Post every buffered event.

        Raises
        ------
            InsightsError: The batch was not accepted. It stays buffered.
        """
        if not self._buffer:
            return

        batch = list(self._buffer)
        self._buffer.clear()

        session = await self._get_session()
        headers = {
            "X-Insert-Key": self.insert_key,
            "Content-Type": "application/json",
        }
        try:
            async with session.post(
                self.url,
                json=batch,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT),
            ) as response:
                response.raise_for_status()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            self._requeue(batch)
            msg = f"failed to post {len(batch)} event(s): {exc}"
            raise InsightsError(msg) from exc

        logger.debug("Posted %d event(s) to %s", len(batch), self.url)

    def _requeue(self, batch: list[dict[str, Any]]) -> None:
        self._buffer.extendleft(reversed(batch))
        while len(self._buffer) > self.max_buffer:
            self._buffer.popleft()
            self.dropped += 1

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

"""JSON-over-HTTP transport for the travel-time service."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from etatrack._constants import USER_AGENT
from etatrack._redact import redact_for_log, redact_url
from etatrack.config import EtaConfig
from etatrack.exceptions import EtaTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """What the HTTP provider and the telemetry sink need from the wire.

    ``post_json`` returns the decoded reply body or raises
    :class:`~etatrack.exceptions.EtaTransportError`.
    """

    async def post_json(self, endpoint: str, payload: Mapping[str, Any]) -> Any:
        ...


class HttpTransport:
    """POSTs JSON bodies and decodes JSON replies over a shared aiohttp session."""

    def __init__(self, config: EtaConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    def _url(self, endpoint: str) -> str:
        url = f"{self._config.base_url.rstrip('/')}{endpoint}"
        if self._config.api_key:
            sep = "&" if "?" in url else "?"
            url = f"{url}{sep}key={self._config.api_key}"
        return url

    async def post_json(self, endpoint: str, payload: Mapping[str, Any]) -> Any:
        """POST *payload* as JSON to *endpoint* and return the decoded body.

        Raises
        ------
        EtaTransportError
            On network errors, timeouts, non-2xx statuses, or a body that
            is not JSON.
        """
        url = self._url(endpoint)
        headers = {
            "accept": "application/json",
            "content-type": "application/json; charset=UTF-8",
            "user-agent": USER_AGENT,
        }

        _logger.debug("POST %s body=%s", redact_url(url), redact_for_log(payload, max_string=200))

        try:
            async with self._http.post(
                url,
                data=json.dumps(payload, separators=(",", ":")),
                headers=headers,
                timeout=self._timeout,
            ) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    raise EtaTransportError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except EtaTransportError:
            raise
        except asyncio.TimeoutError as exc:
            raise EtaTransportError(
                f"Request to {endpoint} timed out after {self._config.request_timeout}s",
                endpoint=endpoint,
            ) from exc
        except aiohttp.ClientError as exc:
            raise EtaTransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc

        if not text.strip():
            return {}

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise EtaTransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                status_code=resp.status,
                endpoint=endpoint,
            ) from exc

"""Async client for the ecobee thermostat REST API (read-only subset)."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from ecobee_sync.errors import CredentialError, DecodeError, TransientError
from ecobee_sync.models import Snapshot, ThermostatSummary, parse_thermostat_summary

__all__ = ["API_URL", "EcobeeClient", "TokenSource", "thermostat_selection"]

logger = logging.getLogger("ecobee_sync.client")

API_URL = "https://api.ecobee.com"
THERMOSTAT_PATH = "/1/thermostat"
SUMMARY_PATH = "/1/thermostatSummary"

# status.code values meaning the access token is no longer usable
_TOKEN_ERROR_CODES = {1, 2, 14, 16}


class TokenSource(Protocol):
    async def access_token(self) -> str: ...

    def invalidate(self) -> None: ...


def thermostat_selection(thermostat_id: str) -> dict[str, Any]:
    """Selection for one thermostat with everything the sync loop reads."""
    return {
        "selectionType": "thermostats",
        "selectionMatch": thermostat_id,
        "includeRuntime": True,
        "includeExtendedRuntime": True,
        "includeSensors": True,
        "includeWeather": True,
        "includeEquipmentStatus": True,
    }


class EcobeeClient:
    """Fetches thermostat data with a bearer token from a :class:`TokenSource`.

    Failures are mapped onto the sync error taxonomy: network errors,
    5xx responses and API status codes become :class:`TransientError`,
    token rejections :class:`CredentialError`, and malformed bodies
    :class:`DecodeError`.

    Parameters:
        credentials: Supplies (and refreshes) the access token.
        base_url: API root.
        timeout_s: Per-request timeout.
        transport: Optional httpx transport (tests use ``MockTransport``).
    """

    def __init__(
        self,
        credentials: TokenSource,
        *,
        base_url: str = API_URL,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._credentials = credentials
        self._http = httpx.AsyncClient(base_url=base_url, timeout=httpx.Timeout(timeout_s), transport=transport)

    async def __aenter__(self) -> EcobeeClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.aclose()

    async def _get(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        token = await self._credentials.access_token()
        request = json.dumps(body, separators=(",", ":"))
        logger.debug("GET %s?json=%s", path, request)
        try:
            resp = await self._http.get(
                path,
                params={"json": request},
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise TransientError(f"error fetching {path}: {exc}") from exc

        try:
            payload = resp.json()
        except ValueError as exc:
            if resp.status_code != 200:
                raise TransientError(f"invalid server response: HTTP {resp.status_code}") from exc
            raise DecodeError(f"error decoding {path} response: {exc}") from exc
        if not isinstance(payload, dict):
            raise DecodeError(f"unexpected {path} response: {type(payload).__name__}")

        status = payload.get("status") or {}
        code = status.get("code", 0)
        if code in _TOKEN_ERROR_CODES:
            self._credentials.invalidate()
            raise CredentialError(f"access token rejected ({code}): {status.get('message', '')}")
        if code != 0:
            raise TransientError(f"api error {code}: {status.get('message', '')}")
        if resp.status_code != 200:
            raise TransientError(f"invalid server response: HTTP {resp.status_code}")
        return payload

    async def get_thermostats(self, selection: dict[str, Any]) -> list[Snapshot]:
        payload = await self._get(THERMOSTAT_PATH, {"selection": selection})
        try:
            return [Snapshot.model_validate(item) for item in payload.get("thermostatList") or []]
        except ValidationError as exc:
            raise DecodeError(f"error decoding thermostat list: {exc}") from exc

    async def fetch_snapshot(self, thermostat_id: str) -> Snapshot:
        """Read runtime, extended runtime, sensors and weather of one thermostat."""
        thermostats = await self.get_thermostats(thermostat_selection(thermostat_id))
        if len(thermostats) != 1:
            raise DecodeError(f"got {len(thermostats)} thermostats, wanted 1")
        return thermostats[0]

    async def thermostat_summary(self, selection: dict[str, Any] | None = None) -> dict[str, ThermostatSummary]:
        """Revision and equipment-status summary of every registered thermostat."""
        if selection is None:
            selection = {"selectionType": "registered", "selectionMatch": "", "includeEquipmentStatus": True}
        payload = await self._get(SUMMARY_PATH, {"selection": selection})
        return parse_thermostat_summary(payload.get("revisionList") or [], payload.get("statusList") or [])

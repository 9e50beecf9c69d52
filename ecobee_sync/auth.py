"""ecobee credentials - PIN pairing, refresh-token rotation and a JSON
token cache on disk.

First use needs an interactive pairing: the user enters a PIN on
https://www.ecobee.com/consumerportal under "My Apps".  After that the
cached refresh token keeps the service authorized.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ecobee_sync.client import API_URL, EcobeeClient
from ecobee_sync.errors import CredentialError

__all__ = ["CACHE_FILE_NAME", "CredentialProvider", "PinResponse", "Token"]

logger = logging.getLogger("ecobee_sync.auth")

CACHE_FILE_NAME = "ecobee-cred-cache"
SCOPES = ("smartRead", "smartWrite")

# Refresh a little before the server-side expiry
_EXPIRY_MARGIN = timedelta(seconds=10)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Token(BaseModel):
    """Cached OAuth token (same JSON keys as a Go ``oauth2.Token``)."""

    access_token: str = ""
    token_type: str = "Bearer"
    refresh_token: str = ""
    expiry: datetime | None = None

    def valid(self, now: datetime | None = None) -> bool:
        if not self.access_token or self.expiry is None:
            return False
        return (now or _utcnow()) + _EXPIRY_MARGIN < self.expiry


class PinResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    ecobee_pin: str = Field(alias="ecobeePin")
    code: str


class _TokenResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str = ""
    expires_in: int = 0
    token_type: str = "Bearer"


def _console_prompt(pin: PinResponse) -> None:
    print(
        f"Pin is {pin.ecobee_pin!r}\n"
        "Press <enter> after authorizing it on https://www.ecobee.com/consumerportal "
        "in the menu under 'My Apps'"
    )
    input()


class CredentialProvider:
    """Supplies a valid access token for the ecobee API.

    Parameters:
        api_key: Application key from the ecobee developer portal.
        cache_file: JSON token cache (read at construction, rewritten on
            every new token).
        base_url: API root.
        timeout_s: Per-request timeout.
        prompt: Shows the pairing PIN and blocks until the user confirms.
        transport: Optional httpx transport (tests use ``MockTransport``).
    """

    def __init__(
        self,
        api_key: str,
        cache_file: str | Path,
        *,
        base_url: str = API_URL,
        timeout_s: float = 10.0,
        prompt: Callable[[PinResponse], None] = _console_prompt,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise CredentialError("an ecobee api_key is required")
        self.api_key = api_key
        self.cache_file = Path(cache_file)
        self._base_url = base_url
        self._timeout_s = timeout_s
        self._prompt = prompt
        self._transport = transport
        self._http = httpx.AsyncClient(base_url=base_url, timeout=httpx.Timeout(timeout_s), transport=transport)
        self._lock = asyncio.Lock()
        self.token = self._load()

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def _load(self) -> Token:
        # A missing or corrupt cache just means starting unauthenticated.
        try:
            return Token.model_validate_json(self.cache_file.read_text())
        except FileNotFoundError:
            return Token()
        except (OSError, ValidationError) as exc:
            logger.warning("Ignoring unreadable credential cache %s: %s", self.cache_file, exc)
            return Token()

    def save(self) -> None:
        self.cache_file.parent.mkdir(parents=True, exist_ok=True)
        self.cache_file.write_text(self.token.model_dump_json())
        self.cache_file.chmod(0o600)

    # ------------------------------------------------------------------
    # Token endpoints
    # ------------------------------------------------------------------

    async def authorize(self) -> PinResponse:
        """Request a pairing PIN and its authorization code."""
        params = {"response_type": "ecobeePin", "client_id": self.api_key, "scope": ",".join(SCOPES)}
        try:
            resp = await self._http.get("/authorize", params=params)
            resp.raise_for_status()
            return PinResponse.model_validate(resp.json())
        except (httpx.HTTPError, ValueError) as exc:
            raise CredentialError(f"error requesting pairing PIN: {exc}") from exc

    async def request_token(self, code: str) -> Token:
        """Exchange an authorized PIN code for a token and cache it."""
        return await self._token_request({"grant_type": "ecobeePin", "client_id": self.api_key, "code": code})

    async def refresh(self) -> Token:
        if not self.token.refresh_token:
            raise CredentialError("no refresh token available")
        return await self._token_request(
            {"grant_type": "refresh_token", "client_id": self.api_key, "refresh_token": self.token.refresh_token}
        )

    async def _token_request(self, params: dict[str, str]) -> Token:
        try:
            resp = await self._http.post("/token", params=params)
            resp.raise_for_status()
            body = _TokenResponse.model_validate(resp.json())
        except (httpx.HTTPError, ValueError) as exc:
            raise CredentialError(f"error obtaining token ({params['grant_type']}): {exc}") from exc

        token = Token(
            access_token=body.access_token,
            token_type=body.token_type,
            refresh_token=body.refresh_token or self.token.refresh_token,
            expiry=_utcnow() + timedelta(seconds=body.expires_in),
        )
        if not token.valid():
            raise CredentialError("server returned an invalid token")
        self.token = token
        try:
            self.save()
        except OSError as exc:
            raise CredentialError(f"error saving token to {self.cache_file}: {exc}") from exc
        logger.info("Obtained new access token (expires %s)", token.expiry.isoformat())
        return token

    async def pair(self) -> Token:
        """Run the interactive PIN flow."""
        pin = await self.authorize()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._prompt, pin)
        return await self.request_token(pin.code)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def access_token(self, *, allow_pairing: bool = False) -> str:
        """Return a valid access token, refreshing it when needed.

        Interactive pairing only happens with ``allow_pairing``; otherwise a
        missing credential raises :class:`CredentialError`.
        """
        async with self._lock:
            if self.token.valid():
                return self.token.access_token
            if self.token.refresh_token:
                await self.refresh()
            elif allow_pairing:
                await self.pair()
            else:
                raise CredentialError("no cached ecobee credential - run 'ecobee-sync authorize' first")
            return self.token.access_token

    def invalidate(self) -> None:
        """Forget the access token so the next request refreshes it."""
        self.token = self.token.model_copy(update={"access_token": "", "expiry": None})

    async def authenticated_client(self, *, allow_pairing: bool = True) -> EcobeeClient:
        """Make sure a credential exists, then build an API client on it.

        Raises:
            CredentialError: no credential could be obtained.
        """
        await self.access_token(allow_pairing=allow_pairing)
        return EcobeeClient(self, base_url=self._base_url, timeout_s=self._timeout_s, transport=self._transport)

    async def close(self) -> None:
        await self._http.aclose()

    def describe(self) -> dict[str, Any]:
        """Token state for diagnostics (no secrets)."""
        return {
            "cache_file": str(self.cache_file),
            "has_refresh_token": bool(self.token.refresh_token),
            "expiry": self.token.expiry.isoformat() if self.token.expiry else None,
        }

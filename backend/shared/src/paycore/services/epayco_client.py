"""ePayco API client for checkout sessions and transaction lookups.

Session creation goes through the Apify API, which requires a short-lived
bearer token obtained with Basic auth (public key : private key). The
token is cached and refreshed shortly before it expires; a 401 during
session creation forces a refresh and is retried a bounded number of
times with exponential backoff.
"""

import asyncio
import base64
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from pydantic import BaseModel

from paycore.models import GatewayError
from paycore.utils.logging import get_logger, mask_email

logger = get_logger(__name__)

TOKEN_LIFETIME_SECONDS = 14 * 60
TOKEN_SAFETY_MARGIN_SECONDS = 60
REQUEST_TIMEOUT_SECONDS = 10.0
MAX_SESSION_ATTEMPTS = 3
MAX_BACKOFF_SECONDS = 5.0

# Processor rejects loopback addresses; its documentation uses this one for tests
SANDBOX_CLIENT_IP = "201.245.254.45"
_LOOPBACK = {"::1", "127.0.0.1", "localhost"}

# A fixed key, or a callable asked on every login (keys may arrive from SSM later)
CredentialSource = str | Callable[[], str | None] | None


def _resolve(source: CredentialSource) -> str | None:
    return source() if callable(source) else source


class SessionRequest(BaseModel):
    """Data needed to open a hosted checkout session."""

    order_id: str
    service_id: str
    service_name: str
    description: str
    amount: int
    currency: str
    email: str
    full_name: str
    phone: str
    user_id: str | None = None
    client_ip: str | None = None


class GatewaySession(BaseModel):
    session_id: str
    token: str | None = None


class EpaycoClient:
    """Async client for the ePayco Apify and validation APIs."""

    def __init__(
        self,
        *,
        apify_url: str,
        validation_url: str,
        public_key: CredentialSource,
        private_key: CredentialSource,
        merchant_name: str = "Rasi",
        test_mode: bool = False,
        response_url: str | None = None,
        confirmation_url: str | None = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._apify_url = apify_url.rstrip("/")
        self._validation_url = validation_url.rstrip("/")
        self._public_key = public_key
        self._private_key = private_key
        self._merchant_name = merchant_name
        self._test_mode = test_mode
        self._response_url = response_url
        self._confirmation_url = confirmation_url
        self._timeout = timeout
        self._transport = transport
        self._sleep = sleep
        self._clock = clock
        self._token: str | None = None
        self._token_expires_at: float | None = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def invalidate_token(self) -> None:
        self._token = None
        self._token_expires_at = None

    def _token_is_fresh(self) -> bool:
        if self._token is None or self._token_expires_at is None:
            return False
        return self._clock() < self._token_expires_at - TOKEN_SAFETY_MARGIN_SECONDS

    async def get_token(self, *, force_refresh: bool = False) -> str:
        """Return a cached Apify token, logging in when needed.

        Raises:
            GatewayError: If credentials are missing or login fails.
        """
        if not force_refresh and self._token_is_fresh():
            return self._token  # type: ignore[return-value]

        public_key = _resolve(self._public_key)
        private_key = _resolve(self._private_key)
        if not public_key or not private_key:
            raise GatewayError("ePayco credentials are not configured")

        basic = base64.b64encode(f"{public_key}:{private_key}".encode()).decode()
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self._apify_url}/login",
                    json={},
                    headers={"Authorization": f"Basic {basic}"},
                )
                response.raise_for_status()
                token = response.json().get("token")
        except httpx.HTTPStatusError as e:
            self.invalidate_token()
            raise GatewayError(
                f"ePayco login failed: {e.response.status_code}", e.response.status_code
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            self.invalidate_token()
            raise GatewayError(f"ePayco login failed: {e}") from e

        if not token:
            self.invalidate_token()
            raise GatewayError("ePayco login response has no token")

        self._token = token
        self._token_expires_at = self._clock() + TOKEN_LIFETIME_SECONDS
        logger.info("ePayco Apify token refreshed")
        return token

    def build_session_payload(self, request: SessionRequest) -> dict[str, Any]:
        client_ip = request.client_ip or SANDBOX_CLIENT_IP
        if client_ip in _LOOPBACK:
            client_ip = SANDBOX_CLIENT_IP

        payload: dict[str, Any] = {
            "checkout_version": "2",
            "name": self._merchant_name,
            "description": request.description,
            "currency": request.currency,
            "amount": request.amount,
            "lang": "ES",
            "country": "CO",
            "ip": client_ip,
            "test": self._test_mode,
            "method": "POST",
            "billing": {
                "email": request.email,
                "name": request.full_name,
                "address": "",
                "typeDoc": "CC",
                "numberDoc": "",
                "callingCode": "+57",
                "mobilePhone": request.phone,
            },
            "extras": {
                "extra1": request.order_id,
                "extra2": request.service_id,
                "extra3": request.user_id or "",
                "extra4": request.email,
                "extra5": request.service_name,
            },
            "methodsDisable": [],
        }
        if self._response_url and self._confirmation_url:
            payload["response"] = self._response_url
            payload["confirmation"] = self._confirmation_url
        return payload

    async def create_checkout_session(self, request: SessionRequest) -> GatewaySession:
        """Open a hosted checkout session.

        Retries on 401 (expired token) up to MAX_SESSION_ATTEMPTS in total,
        refreshing the token and sleeping min(2**attempt, 5) seconds
        between attempts.

        Raises:
            GatewayError: If the session cannot be created.
        """
        payload = self.build_session_payload(request)

        for attempt in range(MAX_SESSION_ATTEMPTS):
            token = await self.get_token(force_refresh=attempt > 0)
            try:
                async with self._client() as client:
                    response = await client.post(
                        f"{self._apify_url}/payment/session/create",
                        json=payload,
                        headers={"Authorization": f"Bearer {token}"},
                    )
            except httpx.HTTPError as e:
                raise GatewayError(f"ePayco session request failed: {e}") from e

            if response.status_code == 401 and attempt < MAX_SESSION_ATTEMPTS - 1:
                delay = min(2.0**attempt, MAX_BACKOFF_SECONDS)
                logger.warning(
                    "ePayco token rejected, retry %d/%d in %.0fs",
                    attempt + 1,
                    MAX_SESSION_ATTEMPTS - 1,
                    delay,
                )
                self.invalidate_token()
                await self._sleep(delay)
                continue

            if response.is_error:
                raise GatewayError(
                    f"ePayco session creation failed: {response.status_code}",
                    response.status_code,
                )

            try:
                data = response.json().get("data") or {}
            except ValueError as e:
                raise GatewayError("ePayco session response is not JSON") from e

            session_id = data.get("sessionId")
            if not session_id:
                raise GatewayError("ePayco did not return a sessionId")

            logger.info(
                "Checkout session created for order %s (%s)",
                request.order_id,
                mask_email(request.email),
            )
            return GatewaySession(session_id=session_id, token=data.get("token"))

        raise GatewayError("ePayco session creation failed after token refreshes", 401)

    async def get_transaction(self, reference_id: str) -> dict[str, Any] | None:
        """Look up a transaction by processor reference.

        Returns:
            The processor's transaction data, or None if not found.

        Raises:
            GatewayError: On network errors or unexpected responses.
        """
        try:
            async with self._client() as client:
                response = await client.get(f"{self._validation_url}/{reference_id}")
        except httpx.HTTPError as e:
            raise GatewayError(f"ePayco transaction lookup failed: {e}") from e

        if response.status_code == 404:
            return None
        if response.is_error:
            raise GatewayError(
                f"ePayco transaction lookup failed: {response.status_code}", response.status_code
            )

        try:
            body = response.json()
        except ValueError as e:
            raise GatewayError("ePayco lookup response is not JSON") from e

        if not body.get("success", True) or not body.get("data"):
            return None
        return body["data"]

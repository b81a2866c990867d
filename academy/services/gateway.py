"""Flutterwave gateway: OAuth2 token cache, mobile-money charges, charge lookup."""
from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from academy.config import settings
from academy.errors import AuthError, GatewayError, NotFoundError, ParseError, ValidationError
from academy.models.charge import ChargeHandle

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
TOKEN_EXPIRY_BUFFER_SECONDS = 30
DEFAULT_TOKEN_TTL_SECONDS = 300


class TokenCache:
    """Single-slot access token cache. Expiry is buffered against clock skew."""

    def __init__(self, clock: Clock = time.time, buffer_seconds: int = TOKEN_EXPIRY_BUFFER_SECONDS):
        self._clock = clock
        self.buffer_seconds = buffer_seconds
        self.access_token: Optional[str] = None
        self.expires_at: float = 0.0

    def is_valid(self) -> bool:
        return bool(self.access_token) and self._clock() < self.expires_at

    def remaining_seconds(self) -> int:
        return max(0, int(self.expires_at - self._clock()))

    def store(self, access_token: str, expires_in: int) -> None:
        self.access_token = access_token
        self.expires_at = self._clock() + max(0, expires_in - self.buffer_seconds)

    def clear(self) -> None:
        self.access_token = None
        self.expires_at = 0.0

    async def get_or_refresh(self, fetch: Callable[[], Awaitable[tuple[str, int]]]) -> dict:
        if self.is_valid():
            secs = self.remaining_seconds()
            logger.debug("Using cached gateway token, expires in %ss", secs)
            return {"access_token": self.access_token, "expires_in": secs}
        access_token, expires_in = await fetch()
        self.store(access_token, expires_in)
        return {"access_token": access_token, "expires_in": expires_in}


async def _read_json(resp) -> dict:
    try:
        data = await resp.json(content_type=None)
    except (aiohttp.ContentTypeError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def _error_message(data: dict, resp, default: str) -> str:
    error = data.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    if data.get("message"):
        return str(data["message"])
    return resp.reason or default


def parse_charge_handle(data: Any) -> ChargeHandle:
    """Parse a direct-charge response into a handle.

    Two shapes are accepted: the enveloped ``{"status": ..., "data": {"id": ...}}``
    and a bare charge object ``{"id": ...}``. Anything else raises ParseError.
    """
    if not isinstance(data, dict):
        raise ParseError("Charge response is not a JSON object")
    body = data["data"] if isinstance(data.get("data"), dict) else data
    charge_id = body.get("id")
    if charge_id is None or str(charge_id).strip() == "":
        raise ParseError("Charge response has no charge id")
    status = body.get("status")
    return ChargeHandle(
        charge_id=str(charge_id),
        reference=body.get("reference"),
        status=str(status) if status is not None else None,
        raw=data,
    )


def parse_charge_status(data: Any) -> str:
    if not isinstance(data, dict):
        raise ParseError("Charge lookup response is not a JSON object")
    body = data["data"] if isinstance(data.get("data"), dict) else data
    status = body.get("status")
    if not isinstance(status, str) or not status:
        raise ParseError("Charge lookup response has no status")
    return status


class FlutterwaveClient:
    """Gateway client. Token cache and HTTP session are injectable."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str,
        base_url: str,
        country_code: str = "233",
        default_currency: str = "GHS",
        session: Optional[aiohttp.ClientSession] = None,
        token_cache: Optional[TokenCache] = None,
        timeout: float = 30.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.base_url = base_url.rstrip("/")
        self.country_code = country_code
        self.default_currency = default_currency
        self.token_cache = token_cache or TokenCache()
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_settings(cls, session=None, token_cache: Optional[TokenCache] = None) -> "FlutterwaveClient":
        return cls(
            client_id=settings.flutterwave_client_id,
            client_secret=settings.flutterwave_client_secret,
            token_url=settings.flutterwave_token_url,
            base_url=settings.flutterwave_base_url,
            country_code=settings.flutterwave_country_code,
            default_currency=settings.flutterwave_currency,
            session=session,
            token_cache=token_cache,
            timeout=settings.http_timeout_seconds,
        )

    def _get_session(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    # -- token ---------------------------------------------------------------

    async def get_token(self) -> dict:
        """Return ``{access_token, expires_in}``, refreshing only when the cache is stale."""
        return await self.token_cache.get_or_refresh(self._fetch_token)

    async def _fetch_token(self) -> tuple[str, int]:
        if not self.client_id or not self.client_secret:
            raise AuthError("Missing gateway credentials")
        logger.info("Fetching new gateway token")
        form = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "client_credentials",
        }
        async with self._get_session().post(
            self.token_url,
            data=form,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        ) as resp:
            data = await _read_json(resp)
            if not resp.ok:
                logger.error("Token request failed status=%s body=%s", resp.status, data)
                message = data.get("error_description") or data.get("error") or resp.reason or "Token error"
                raise AuthError(str(message), status_code=resp.status)
        access_token = data.get("access_token")
        if not access_token:
            raise AuthError("No access_token in token response")
        try:
            expires_in = int(data.get("expires_in", DEFAULT_TOKEN_TTL_SECONDS))
        except (TypeError, ValueError):
            expires_in = DEFAULT_TOKEN_TTL_SECONDS
        logger.info("Gateway token obtained, expires_in=%ss", expires_in)
        return access_token, expires_in

    async def _auth_headers(self) -> dict[str, str]:
        token = await self.get_token()
        return {
            "accept": "application/json",
            "authorization": f"Bearer {token['access_token']}",
        }

    # -- raw proxies ---------------------------------------------------------

    async def direct_charge(self, payload: dict) -> dict:
        """POST a direct-charge payload as-is; returns the gateway JSON on 2xx."""
        mobile_money = (payload.get("payment_method") or {}).get("mobile_money") or {}
        logger.info(
            "Direct charge amount=%s currency=%s network=%s",
            payload.get("amount"),
            payload.get("currency"),
            mobile_money.get("network"),
        )
        headers = await self._auth_headers()
        headers["content-type"] = "application/json"
        async with self._get_session().post(
            f"{self.base_url}/orchestration/direct-charges",
            json=payload,
            headers=headers,
        ) as resp:
            data = await _read_json(resp)
            if not resp.ok:
                logger.error("Charge failed status=%s body=%s", resp.status, data)
                raise GatewayError(_error_message(data, resp, "Charge error"), status_code=resp.status)
        return data

    async def get_charge(self, charge_id: str) -> dict:
        if not charge_id:
            raise ValidationError("Missing charge id")
        headers = await self._auth_headers()
        async with self._get_session().get(f"{self.base_url}/charges/{charge_id}", headers=headers) as resp:
            data = await _read_json(resp)
            if resp.status == 404:
                raise NotFoundError(_error_message(data, resp, "Charge not found"))
            if not resp.ok:
                raise GatewayError(_error_message(data, resp, "Verify error"), status_code=resp.status)
        return data

    # -- operations ----------------------------------------------------------

    def build_charge_payload(
        self,
        amount: float,
        currency: Optional[str],
        phone_number: str,
        network: str,
        customer_email: Optional[str],
        reference: str,
    ) -> dict:
        return {
            "amount": amount,
            "currency": currency or self.default_currency,
            "reference": reference,
            "customer": {"email": customer_email},
            "payment_method": {
                "type": "mobile_money",
                "mobile_money": {
                    "network": network,
                    "country_code": self.country_code,
                    "phone_number": phone_number,
                },
            },
        }

    async def initiate_charge(
        self,
        amount: float,
        currency: Optional[str],
        phone_number: str,
        network: str,
        customer_email: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> ChargeHandle:
        if not (phone_number or "").strip():
            raise ValidationError("Phone number is required")
        if not (network or "").strip():
            raise ValidationError("Mobile network is required")
        if amount is None or amount <= 0:
            raise ValidationError("Amount must be greater than zero")
        reference = reference or uuid.uuid4().hex
        payload = self.build_charge_payload(
            amount, currency, phone_number.strip(), network.strip(), customer_email, reference
        )
        data = await self.direct_charge(payload)
        handle = parse_charge_handle(data)
        if not handle.reference:
            handle.reference = reference
        return handle

    async def verify_charge(self, charge_id: str) -> str:
        data = await self.get_charge(charge_id)
        return parse_charge_status(data)

"""HTTP client for the marketplace API.

Every request carries no-cache headers, a strictly increasing ``_t``
query parameter and, when someone is signed in, the bearer token plus
the ``X-User-*`` identity headers. Failures are returned as
:class:`ApiResult` values instead of being raised.
"""

import logging
import time
from typing import Any, Callable, List, Mapping, Optional, Union

import httpx
from pydantic import BaseModel, ValidationError

from core.config import get_cached_settings
from marketplace_client.base import AuthSessionPort
from marketplace_client.models import ApiResult, FailureKind
from schemas.marketplace import (
    MarketplaceServer,
    MarketplaceServerCreate,
    MarketplaceServerUpdate,
    MarketplaceStats,
    ReviewCreate,
    ServerReview,
)

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

SESSION_EXPIRED_MESSAGE = "Please sign in again"
PERMISSION_DENIED_MESSAGE = "You do not have permission to perform this action"
RATE_LIMITED_MESSAGE = "Too many requests, please try again later"

Payload = Union[BaseModel, Mapping[str, Any]]


def _body(payload: Payload) -> Any:
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json", by_alias=True, exclude_unset=True)
    return dict(payload)


class MarketplaceApiClient:
    """Talks to the marketplace HTTP API on behalf of the signed-in user."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        auth: AuthSessionPort,
        base_url: Optional[str] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.http = http
        self.auth = auth
        self.base_url = (base_url or get_cached_settings().MARKETPLACE_API_URL).rstrip("/")
        self._clock = clock or (lambda: time.time_ns() // 1_000_000)
        self._last_stamp = 0

    def _cache_buster(self) -> int:
        stamp = self._clock()
        if stamp <= self._last_stamp:
            stamp = self._last_stamp + 1
        self._last_stamp = stamp
        return stamp

    def _headers(self) -> dict:
        headers = dict(NO_CACHE_HEADERS)
        token = self.auth.get_access_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        user = self.auth.get_current_user()
        if user is not None:
            headers["X-User-Id"] = user.id
            # Header values are sent as ASCII; optional display fields are dropped otherwise
            if user.email and user.email.isascii():
                headers["X-User-Email"] = user.email
            if user.name and user.name.isascii():
                headers["X-User-Name"] = user.name
        return headers

    async def _send(self, method: str, endpoint: str, body: Any) -> httpx.Response:
        return await self.http.request(
            method,
            f"{self.base_url}{endpoint}",
            params={"_t": self._cache_buster()},
            headers=self._headers(),
            json=body,
        )

    async def request(self, method: str, endpoint: str, body: Any = None) -> ApiResult:
        """Send one request and interpret the response envelope."""
        try:
            response = await self._send(method, endpoint, body)
            if response.status_code == 304:
                logger.debug(f"{method} {endpoint} returned 304, retrying once")
                response = await self._send(method, endpoint, body)
        except httpx.ConnectError as e:
            logger.warning(f"Marketplace API unreachable at {self.base_url}: {e}")
            return ApiResult(
                success=False,
                error=str(e) or "Connection refused",
                failure=FailureKind.CONNECTION_REFUSED,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Network error on {method} {endpoint}: {e}")
            return ApiResult(
                success=False,
                error=str(e) or "Network error occurred",
                failure=FailureKind.NETWORK,
            )
        except UnicodeEncodeError as e:
            logger.error(f"Cannot encode request headers for {method} {endpoint}: {e}")
            return ApiResult(
                success=False,
                error="User identity cannot be sent in request headers",
                failure=FailureKind.INVALID_REQUEST,
            )

        return await self._interpret(response)

    async def _interpret(self, response: httpx.Response) -> ApiResult:
        status = response.status_code

        if status == 401:
            logger.info("Marketplace API rejected the session, signing out")
            await self.auth.sign_out()
            return self._http_failure(SESSION_EXPIRED_MESSAGE, status)
        if status == 403:
            return self._http_failure(PERMISSION_DENIED_MESSAGE, status)
        if status == 429:
            return self._http_failure(RATE_LIMITED_MESSAGE, status)
        if status == 304 or not response.is_success:
            message = f"Request failed with status {status}"
            payload = self._json(response)
            if isinstance(payload, dict):
                message = payload.get("error") or payload.get("message") or message
            return self._http_failure(str(message), status)

        payload = self._json(response)
        if isinstance(payload, dict) and "success" in payload:
            if payload.get("success") is False:
                return self._http_failure(str(payload.get("error") or "Request failed"), status)
            return ApiResult(success=True, data=payload.get("data"), status_code=status)
        return ApiResult(success=True, data=payload, status_code=status)

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    @staticmethod
    def _http_failure(message: str, status: int) -> ApiResult:
        return ApiResult(success=False, error=message, status_code=status, failure=FailureKind.HTTP)

    @staticmethod
    def _parse(result: ApiResult, model: type, many: bool = False) -> ApiResult:
        if not result.success:
            return result
        try:
            if many:
                items: List[Any] = result.data if isinstance(result.data, list) else []
                data: Any = [model.model_validate(item) for item in items]
            elif result.data is None:
                data = None
            else:
                data = model.model_validate(result.data)
        except ValidationError as e:
            logger.error(f"Unexpected marketplace payload: {e}")
            return ApiResult(
                success=False,
                error="Invalid response from marketplace API",
                status_code=result.status_code,
                failure=FailureKind.INVALID_RESPONSE,
            )
        return ApiResult(success=True, data=data, status_code=result.status_code)

    # Marketplace operations

    async def get_servers(self) -> ApiResult:
        return self._parse(await self.request("GET", "/servers"), MarketplaceServer, many=True)

    async def get_my_servers(self) -> ApiResult:
        return self._parse(await self.request("GET", "/servers/my"), MarketplaceServer, many=True)

    async def get_server(self, server_id: str) -> ApiResult:
        return self._parse(await self.request("GET", f"/servers/{server_id}"), MarketplaceServer)

    async def get_stats(self) -> ApiResult:
        return self._parse(await self.request("GET", "/servers/stats"), MarketplaceStats)

    async def create_server(self, server_data: Union[MarketplaceServerCreate, Mapping[str, Any]]) -> ApiResult:
        result = await self.request("POST", "/servers", _body(server_data))
        return self._parse(result, MarketplaceServer)

    async def update_server(
        self, server_id: str, server_data: Union[MarketplaceServerUpdate, Mapping[str, Any]]
    ) -> ApiResult:
        result = await self.request("PUT", f"/servers/{server_id}", _body(server_data))
        return self._parse(result, MarketplaceServer)

    async def delete_server(self, server_id: str) -> ApiResult:
        return await self.request("DELETE", f"/servers/{server_id}")

    async def track_install(self, server_id: str) -> ApiResult:
        return await self.request("POST", f"/servers/{server_id}/install")

    async def track_uninstall(self, server_id: str) -> ApiResult:
        return await self.request("POST", f"/servers/{server_id}/uninstall")

    async def get_server_reviews(self, server_id: str) -> ApiResult:
        result = await self.request("GET", f"/servers/{server_id}/reviews")
        return self._parse(result, ServerReview, many=True)

    async def create_review(self, server_id: str, review: Union[ReviewCreate, Mapping[str, Any]]) -> ApiResult:
        result = await self.request("POST", f"/servers/{server_id}/reviews", _body(review))
        return self._parse(result, ServerReview)

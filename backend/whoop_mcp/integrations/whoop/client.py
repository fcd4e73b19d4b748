"""
Whoop API client
"""
import asyncio
import logging
import urllib.parse
import uuid
from collections import OrderedDict
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

import httpx

from whoop_mcp.config import settings
from whoop_mcp.integrations.base.credentials import CredentialSink
from whoop_mcp.integrations.whoop.constants import (
    BODY_MEASUREMENT_PATH,
    COLLECTION_PATHS,
    PAGE_LIMIT,
    PROFILE_PATH,
    TOKEN_REFRESH_MARGIN,
    WHOOP_API_BASE,
    WHOOP_AUTH_URL,
    WHOOP_SCOPES,
    WHOOP_TOKEN_URL,
)
from whoop_mcp.schemas.whoop import (
    RECORD_MODELS,
    RecordKind,
    WhoopBodyMeasurement,
    WhoopModel,
    WhoopPage,
    WhoopProfile,
    WhoopTokens,
)
from whoop_mcp.utils.datetime_helper import to_iso_z, utc_now

logger = logging.getLogger(__name__)

# Issued OAuth states kept for callback validation
MAX_PENDING_STATES = 32


class WhoopAPIError(Exception):
    """Whoop API error (non-2xx response, transport failure or failed refresh)"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class WhoopNotAuthenticatedError(Exception):
    """No Whoop credentials available"""
    pass


class TokenState(str, Enum):
    """Token lifecycle as seen by the next request"""

    UNSET = "unset"
    AUTHENTICATED = "authenticated"
    EXPIRED_PENDING_REFRESH = "expired_pending_refresh"
    ERROR = "error"


class WhoopClient:
    """Whoop API client with transparent token refresh"""

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        credential_sink: Optional[CredentialSink] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.client_id = client_id if client_id is not None else settings.WHOOP_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else settings.WHOOP_CLIENT_SECRET
        self.redirect_uri = redirect_uri if redirect_uri is not None else settings.WHOOP_REDIRECT_URI
        self.credential_sink = credential_sink
        self.http_client = http_client or httpx.AsyncClient(
            timeout=timeout or settings.WHOOP_REQUEST_TIMEOUT
        )
        self.clock = clock

        self._tokens: Optional[WhoopTokens] = None
        self._refresh_failed = False
        self._refresh_lock = asyncio.Lock()
        self._pending_states: "OrderedDict[str, datetime]" = OrderedDict()

    async def close(self):
        """Close the HTTP client"""
        await self.http_client.aclose()

    # ============ Token state ============

    @property
    def tokens(self) -> Optional[WhoopTokens]:
        return self._tokens

    def set_tokens(self, tokens: WhoopTokens) -> None:
        """
        Install a token pair

        A different pair (fresh authorization) clears a previous refresh failure.
        """
        if tokens != self._tokens:
            self._refresh_failed = False
        self._tokens = tokens

    @property
    def token_state(self) -> TokenState:
        if self._tokens is None:
            return TokenState.UNSET
        if self._refresh_failed:
            return TokenState.ERROR
        if self._tokens.expires_within(TOKEN_REFRESH_MARGIN, self.clock()):
            return TokenState.EXPIRED_PENDING_REFRESH
        return TokenState.AUTHENTICATED

    # ============ OAuth ============

    def get_authorization_url(self, scopes: Optional[List[str]] = None) -> str:
        """
        Build the authorization URL

        Args:
            scopes: OAuth scopes (defaults to all read scopes + offline)

        Returns:
            authorization URL carrying a fresh state parameter
        """
        state = uuid.uuid4().hex
        self._pending_states[state] = self.clock()
        while len(self._pending_states) > MAX_PENDING_STATES:
            self._pending_states.popitem(last=False)

        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(scopes or WHOOP_SCOPES),
            "state": state,
        }
        return f"{WHOOP_AUTH_URL}?{urllib.parse.urlencode(params)}"

    def consume_state(self, state: Optional[str]) -> bool:
        """Check and invalidate a state issued by get_authorization_url"""
        if not state:
            return False
        return self._pending_states.pop(state, None) is not None

    async def _post_token(self, data: Dict[str, str], action: str) -> Dict[str, Any]:
        form = {
            **data,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        try:
            response = await self.http_client.post(WHOOP_TOKEN_URL, data=form)
        except httpx.HTTPError as e:
            logger.error(f"Whoop {action} exception: {str(e)}")
            raise WhoopAPIError(f"{action} exception: {str(e)}") from e

        if not response.is_success:
            logger.error(f"Whoop {action} failed: {response.status_code} {response.text}")
            raise WhoopAPIError(
                f"{action} failed: {response.status_code} {response.text}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Whoop {action} returned invalid JSON: {str(e)}")
            raise WhoopAPIError(f"{action} returned invalid JSON", status_code=response.status_code) from e

    async def exchange_code_for_token(self, code: str) -> WhoopTokens:
        """
        Exchange an authorization code for a token pair

        Args:
            code: authorization code from the redirect

        Returns:
            token pair (also installed on this client)

        Raises:
            WhoopAPIError: exchange rejected
        """
        payload = await self._post_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            },
            action="Token exchange",
        )
        try:
            tokens = WhoopTokens.from_token_response(payload, self.clock())
        except (ValueError, TypeError, AttributeError) as e:
            raise WhoopAPIError(f"Token exchange returned an invalid response: {e}") from e

        self.set_tokens(tokens)
        logger.info("Obtained Whoop access token")
        return tokens

    async def _refresh_tokens(self) -> None:
        """
        Refresh the token pair and persist it through the credential sink

        Serialized: concurrent callers that all saw a near-expiry token
        trigger a single refresh, since Whoop rotates refresh tokens.
        """
        async with self._refresh_lock:
            current = self._tokens
            if current is None:
                raise WhoopNotAuthenticatedError("Not authenticated with Whoop")
            if self._refresh_failed:
                raise WhoopAPIError("Token refresh failed previously; re-authorization required", status_code=401)
            if not current.expires_within(TOKEN_REFRESH_MARGIN, self.clock()):
                return

            try:
                payload = await self._post_token(
                    {
                        "grant_type": "refresh_token",
                        "refresh_token": current.refresh_token,
                        "scope": "offline",
                    },
                    action="Token refresh",
                )
                refreshed = WhoopTokens.from_token_response(
                    payload, self.clock(), previous_refresh_token=current.refresh_token
                )
            except (ValueError, TypeError, AttributeError) as e:
                self._refresh_failed = True
                raise WhoopAPIError(f"Token refresh returned an invalid response: {e}") from e
            except WhoopAPIError:
                self._refresh_failed = True
                raise

            self._tokens = refreshed
            if self.credential_sink is not None:
                await self.credential_sink.save_tokens(refreshed)

            logger.info(f"Refreshed Whoop access token, expires at {refreshed.expires_at.isoformat()}")

    async def _get_access_token(self) -> str:
        if self._tokens is None:
            raise WhoopNotAuthenticatedError("Not authenticated with Whoop")
        if self._refresh_failed:
            raise WhoopAPIError("Token refresh failed previously; re-authorization required", status_code=401)
        if self._tokens.expires_within(TOKEN_REFRESH_MARGIN, self.clock()):
            await self._refresh_tokens()
        return self._tokens.access_token

    # ============ Requests ============

    async def _make_request(self, path: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """
        Send an authenticated GET

        Args:
            path: path relative to the API base
            params: query parameters

        Returns:
            response JSON

        Raises:
            WhoopAPIError: non-2xx response or transport failure
        """
        access_token = await self._get_access_token()
        url = f"{WHOOP_API_BASE}{path}"

        try:
            response = await self.http_client.get(
                url,
                params=params,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as e:
            logger.error(f"Whoop API request exception: {path} - {str(e)}")
            raise WhoopAPIError(f"API request exception: {str(e)}") from e

        if not response.is_success:
            logger.error(f"Whoop API request failed: {path} - {response.status_code}")
            raise WhoopAPIError(
                f"API request failed: {response.status_code} {response.text}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Whoop API returned invalid JSON: {path}")
            raise WhoopAPIError(
                f"API request returned invalid JSON: {path}",
                status_code=response.status_code,
            ) from e

    async def get_profile(self) -> WhoopProfile:
        """Basic user profile"""
        data = await self._make_request(PROFILE_PATH)
        return WhoopProfile.model_validate(data)

    async def get_body_measurement(self) -> WhoopBodyMeasurement:
        """Height, weight and max heart rate"""
        data = await self._make_request(BODY_MEASUREMENT_PATH)
        return WhoopBodyMeasurement.model_validate(data)

    async def fetch_page(
        self,
        kind: RecordKind,
        start: Optional[Union[datetime, str]] = None,
        end: Optional[Union[datetime, str]] = None,
        limit: Optional[int] = PAGE_LIMIT,
        next_token: Optional[str] = None,
    ) -> WhoopPage:
        """
        Fetch one page of a collection

        Args:
            kind: collection to read
            start: window start (inclusive)
            end: window end
            limit: page size
            next_token: continuation token from the previous page

        Returns:
            page with raw records and the next continuation token
        """
        params: Dict[str, str] = {}
        if start is not None:
            params["start"] = to_iso_z(start) if isinstance(start, datetime) else start
        if end is not None:
            params["end"] = to_iso_z(end) if isinstance(end, datetime) else end
        if limit:
            params["limit"] = str(limit)
        if next_token:
            params["nextToken"] = next_token

        data = await self._make_request(COLLECTION_PATHS[kind], params)
        return WhoopPage.model_validate(data)

    async def fetch_all(
        self,
        kind: RecordKind,
        start: Optional[Union[datetime, str]] = None,
        end: Optional[Union[datetime, str]] = None,
    ) -> List[WhoopModel]:
        """
        Fetch every page of a collection, in upstream order

        Args:
            kind: collection to read
            start: window start
            end: window end

        Returns:
            parsed records
        """
        model = RECORD_MODELS[kind]
        records: List[WhoopModel] = []
        next_token: Optional[str] = None
        pages = 0

        while True:
            page = await self.fetch_page(kind, start=start, end=end, next_token=next_token)
            records.extend(model.model_validate(item) for item in page.records)
            pages += 1
            next_token = page.next_token
            if not next_token:
                break

        logger.info(f"Fetched {len(records)} Whoop {kind.value} records ({pages} pages)")
        return records

import asyncio
import time
from typing import Any, Dict, Iterable, List, Optional

import httpx

from core.errors import ConfigError, RateLimited, SourceUnavailable
from core.ratelimits import RateLimitTracker
from services.twitch.models.stream import CategoryInfo, ProfileInfo, StatusRecord
from shared.logging.logger import get_logger

log = get_logger("twitch.helix", runtime="streamalerts")

MAX_IDS_PER_REQUEST = 100


def _chunks(values: List[Any], size: int) -> Iterable[List[Any]]:
    for i in range(0, len(values), size):
        yield values[i:i + size]


def _items(data: Dict[str, Any], path: str) -> List[Dict[str, Any]]:
    items = data.get("data")
    if not isinstance(items, list):
        raise SourceUnavailable(f"Twitch {path} response has no data list")
    return [item for item in items if isinstance(item, dict)]


def _header_int(headers: httpx.Headers, name: str) -> Optional[int]:
    raw = headers.get(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


class HelixStatusClient:
    """
    Twitch Helix status source.

    Responsibilities:
    - Report which tracked broadcasters are live (GET /streams)
    - Resolve category names (GET /games), cached per process
    - Resolve profiles by id or login (GET /users)
    - Record the quota headers of every response in the RateLimitTracker

    A raised SourceUnavailable / RateLimited means "unknown"; callers must
    not treat it as "offline".
    """

    BASE_URL = "https://api.twitch.tv/helix"
    TOKEN_URL = "https://id.twitch.tv/oauth2/token"

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: Optional[str] = None,
        access_token: Optional[str] = None,
        rate_limits: Optional[RateLimitTracker] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not client_id:
            raise ConfigError("Twitch client_id is required")
        if not client_secret and not access_token:
            raise ConfigError("Twitch client_secret or access_token is required")

        self.client_id = client_id
        self._client_secret = client_secret
        self._access_token = access_token
        self.rate_limits = rate_limits or RateLimitTracker()
        self._timeout = timeout
        self._transport = transport

        self._token_lock = asyncio.Lock()
        self._category_cache: Dict[str, CategoryInfo] = {}

    # ------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------

    async def get_status(self, entity_ids: List[str]) -> Dict[str, StatusRecord]:
        """
        Return entity_id -> StatusRecord for every entity currently live.

        Entities missing from the mapping are offline. Lookups are
        batched in chunks of 100; any failing chunk fails the call.
        """
        ids = [i for i in dict.fromkeys(entity_ids) if i]
        records: Dict[str, StatusRecord] = {}

        for chunk in _chunks(ids, MAX_IDS_PER_REQUEST):
            data = await self._get("/streams", [("user_id", i) for i in chunk] + [("first", str(len(chunk)))])
            for item in _items(data, "/streams"):
                record = StatusRecord.from_helix(item)
                if record and record.entity_id:
                    records[record.entity_id] = record

        return records

    async def get_metadata(self, category_id: str) -> CategoryInfo:
        if not category_id:
            raise SourceUnavailable("category id is empty")

        cached = self._category_cache.get(category_id)
        if cached:
            return cached

        data = await self._get("/games", [("id", category_id)])
        items = _items(data, "/games")
        if not items:
            raise SourceUnavailable(f"no category found for id {category_id}")

        item = items[0]
        info = CategoryInfo(
            id=str(item.get("id") or category_id),
            name=str(item.get("name") or ""),
            box_art_url=str(item.get("box_art_url") or ""),
        )
        self._category_cache[category_id] = info
        return info

    async def get_profiles(
        self,
        *,
        ids: Optional[List[str]] = None,
        logins: Optional[List[str]] = None,
    ) -> Dict[str, ProfileInfo]:
        """
        Return entity_id -> ProfileInfo for the given ids and/or logins.
        """
        params = [("id", i) for i in (ids or []) if i]
        params += [("login", login.lower()) for login in (logins or []) if login]
        if not params:
            return {}

        profiles: Dict[str, ProfileInfo] = {}
        for chunk in _chunks(params, MAX_IDS_PER_REQUEST):
            data = await self._get("/users", chunk)
            for item in _items(data, "/users"):
                profile = ProfileInfo.from_helix(item)
                if profile.id:
                    profiles[profile.id] = profile

        return profiles

    async def get_profile_by_login(self, login: str) -> Optional[ProfileInfo]:
        profiles = await self.get_profiles(logins=[login])
        for profile in profiles.values():
            if profile.login.lower() == login.lower():
                return profile
        return None

    # ------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------

    async def _ensure_token(self, *, force: bool = False) -> str:
        async with self._token_lock:
            if self._access_token and not force:
                return self._access_token

            if not self._client_secret:
                if self._access_token:
                    return self._access_token
                raise SourceUnavailable("no Twitch credentials available")

            params = {
                "client_id": self.client_id,
                "client_secret": self._client_secret,
                "grant_type": "client_credentials",
            }
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                try:
                    r = await client.post(self.TOKEN_URL, params=params)
                    r.raise_for_status()
                    payload = r.json()
                except (httpx.HTTPError, ValueError) as e:
                    raise SourceUnavailable(f"Twitch token request failed: {e}") from e

            if not isinstance(payload, dict):
                raise SourceUnavailable("Twitch token response is not an object")

            token = payload.get("access_token")
            if not token:
                raise SourceUnavailable("Twitch token response missing access_token")

            self._access_token = token
            log.info("Twitch app access token acquired")
            return token

    # ------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------

    async def _get(self, path: str, params: List[tuple]) -> Dict[str, Any]:
        token = await self._ensure_token()
        response = await self._request(path, params, token)

        if response.status_code == 401 and self._client_secret:
            log.info("Twitch token rejected; refreshing")
            token = await self._ensure_token(force=True)
            response = await self._request(path, params, token)

        self._record_rate_limit(response)

        if response.status_code == 429:
            reset = _header_int(response.headers, "Ratelimit-Reset")
            retry_after = max(0.0, reset - time.time()) if reset is not None else None
            raise RateLimited(f"Twitch rate limit hit on {path}", retry_after=retry_after)

        if response.status_code >= 400:
            raise SourceUnavailable(
                f"Twitch {path} returned HTTP {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise SourceUnavailable(f"Twitch {path} returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise SourceUnavailable(f"Twitch {path} returned a non-object payload")
        return data

    async def _request(self, path: str, params: List[tuple], token: str) -> httpx.Response:
        headers = {
            "Client-Id": self.client_id,
            "Authorization": f"Bearer {token}",
        }
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                return await client.get(f"{self.BASE_URL}{path}", params=params, headers=headers)
            except httpx.HTTPError as e:
                raise SourceUnavailable(f"Twitch {path} request failed: {e}") from e

    def _record_rate_limit(self, response: httpx.Response) -> None:
        limit = _header_int(response.headers, "Ratelimit-Limit")
        remaining = _header_int(response.headers, "Ratelimit-Remaining")
        if limit is None or remaining is None:
            return
        reset = _header_int(response.headers, "Ratelimit-Reset")
        self.rate_limits.update(limit, remaining, reset)

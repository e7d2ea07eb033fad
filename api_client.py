"""
App Store Connect API client.
Handles request signing, pagination and batched removal of beta testers.
"""

import json
import logging
import time
from typing import Any, AsyncIterator, Dict, List, Optional

import aiohttp
import jwt

from config import API, ENDPOINTS, LIMITS
from errors import ApiError
from storage import Credentials
from utils import (
    App, BetaGroup, InactivityWindow, Tester, chunked, coerce_session_count, format_progress,
)

TESTER_FIELDS = "firstName,lastName,email,state"


# =============================================================================
# RESPONSE PARSING
# =============================================================================
def parse_app(resource: Dict[str, Any]) -> App:
    attributes = resource.get("attributes") or {}
    return App(
        id=resource["id"],
        name=attributes.get("name"),
        bundle_id=attributes.get("bundleId"),
    )


def parse_beta_group(resource: Dict[str, Any]) -> BetaGroup:
    attributes = resource.get("attributes") or {}
    relationships = resource.get("relationships") or {}
    app_data = (relationships.get("app") or {}).get("data") or {}
    return BetaGroup(
        id=resource["id"],
        name=attributes.get("name"),
        public_link=attributes.get("publicLink"),
        public_link_id=attributes.get("publicLinkId"),
        app_id=app_data.get("id"),
    )


def parse_tester(resource: Dict[str, Any]) -> Tester:
    attributes = resource.get("attributes") or {}
    return Tester(
        id=resource["id"],
        first_name=attributes.get("firstName"),
        last_name=attributes.get("lastName"),
        email=attributes.get("email"),
        state=attributes.get("state"),
    )


def _tester_id_from_dimension(value: Any) -> Optional[str]:
    """
    The betaTesters dimension arrives as a bare id, an identifier object,
    or a list holding either.
    """
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and isinstance(value.get("id"), str):
        return value["id"]
    return None


def session_counts_by_tester(page: Dict[str, Any]) -> Dict[str, int]:
    """Sum sessionCount over every data point of one usage-metrics page."""
    counts: Dict[str, int] = {}
    for datum in page.get("data") or []:
        dimensions = datum.get("dimensions") or {}
        tester_id = _tester_id_from_dimension(
            (dimensions.get("betaTesters") or {}).get("data")
        )
        if tester_id is None:
            continue

        points = datum.get("dataPoints") or []
        if isinstance(points, dict):
            points = [points]

        total = 0
        for point in points:
            total += coerce_session_count((point.get("values") or {}).get("sessionCount"))
        counts[tester_id] = counts.get(tester_id, 0) + total
    return counts


def error_details(body: str) -> List[str]:
    """Extract "CODE: detail" strings from an App Store Connect error body."""
    try:
        payload = json.loads(body)
    except ValueError:
        return [body.strip()] if body.strip() else []

    details = []
    for error in (payload or {}).get("errors") or []:
        message = error.get("detail") or error.get("title") or "unknown error"
        code = error.get("code")
        details.append(f"{code}: {message}" if code else message)
    return details


# =============================================================================
# CLIENT
# =============================================================================
class AppStoreConnectClient:
    """
    Async client for the TestFlight parts of the App Store Connect API.

    Every list method follows `links.next` until the last page and returns a
    fully materialized list. Requests are issued one at a time.

    Usage:
        async with AppStoreConnectClient(credentials) as client:
            apps = await client.fetch_apps()
    """

    def __init__(
        self,
        credentials: Credentials,
        base_url: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.credentials = credentials
        self.base_url = (base_url or API["base_url"]).rstrip("/")
        self.logger = logging.getLogger('testflight_manager')

        self._session = session
        self._owns_session = session is None
        self._token: Optional[str] = None
        self._token_expiry = 0.0

    async def __aenter__(self):
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=API["request_timeout"])
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"User-Agent": API["user_agent"], "Accept": "application/json"},
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------
    def _bearer_token(self) -> str:
        """Return a signed ES256 token, minting a new one near expiry."""
        now = time.time()
        if self._token and now < self._token_expiry - API["token_refresh_margin"]:
            return self._token

        issued_at = int(now)
        expires_at = issued_at + API["token_lifetime"]
        self._token = jwt.encode(
            {
                "iss": self.credentials.issuer_id,
                "iat": issued_at,
                "exp": expires_at,
                "aud": API["audience"],
            },
            self.credentials.read_private_key(),
            algorithm="ES256",
            headers={"kid": self.credentials.key_id, "typ": "JWT"},
        )
        self._token_expiry = expires_at
        return self._token

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}{path}"

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        if self._session is None:
            raise RuntimeError("AppStoreConnectClient must be used as an async context manager")

        headers = {"Authorization": f"Bearer {self._bearer_token()}"}
        url = self._url(path)
        self.logger.debug(f"{method} {url} {params or ''}")

        async with self._session.request(
            method, url, params=params, json=body, headers=headers
        ) as response:
            text = await response.text()
            if response.status >= 400:
                self.logger.debug(f"{method} {url} failed with {response.status}: {text}")
                raise ApiError(response.status, error_details(text))
            if response.status == 204 or not text.strip():
                return None
            try:
                return json.loads(text)
            except ValueError:
                raise ApiError(response.status, ["Response body was not valid JSON"])

    async def _pages(self, path: str, params: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        next_url: Optional[str] = path
        next_params: Optional[Dict[str, Any]] = params
        while next_url:
            page = await self._request("GET", next_url, params=next_params) or {}
            yield page
            next_url = (page.get("links") or {}).get("next")
            next_params = None  # the next link already carries the query

    async def _fetch_all(self, path: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        resources: List[Dict[str, Any]] = []
        async for page in self._pages(path, params):
            resources.extend(page.get("data") or [])
        return resources

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------
    async def verify(self) -> None:
        """Issue the cheapest authenticated request to prove the key works."""
        await self._request("GET", ENDPOINTS["apps"], params={"limit": 1})

    async def fetch_apps(self) -> List[App]:
        resources = await self._fetch_all(ENDPOINTS["apps"], {
            "sort": "name",
            "fields[apps]": "name,bundleId",
            "limit": LIMITS["page_size"],
        })
        return [parse_app(r) for r in resources]

    async def fetch_beta_groups_for_app(self, app_id: str) -> List[BetaGroup]:
        resources = await self._fetch_all(ENDPOINTS["app_beta_groups"].format(app_id=app_id), {
            "fields[betaGroups]": "name,publicLink,publicLinkId",
            "limit": LIMITS["page_size"],
        })
        return [parse_beta_group(r) for r in resources]

    async def fetch_beta_group(self, group_id: str) -> BetaGroup:
        response = await self._request("GET", ENDPOINTS["beta_group"].format(group_id=group_id), params={
            "fields[betaGroups]": "name,publicLink,publicLinkId,app",
            "include": "app",
        })
        if not response or not response.get("data"):
            raise ApiError(None, [f"Beta group {group_id} was not returned"])
        return parse_beta_group(response["data"])

    async def fetch_beta_testers(self, group_id: str) -> List[Tester]:
        resources = await self._fetch_all(ENDPOINTS["beta_group_testers"].format(group_id=group_id), {
            "fields[betaTesters]": TESTER_FIELDS,
            "limit": LIMITS["page_size"],
        })
        return [parse_tester(r) for r in resources]

    async def fetch_beta_group_testers(self, group_id: str) -> List[Tester]:
        """Group roster for membership checks; only ids matter here."""
        resources = await self._fetch_all(ENDPOINTS["beta_group_testers"].format(group_id=group_id), {
            "fields[betaTesters]": "email",
            "limit": LIMITS["page_size"],
        })
        return [parse_tester(r) for r in resources]

    async def fetch_app_testers(self, app_id: str) -> List[Tester]:
        self.logger.info(f"Fetching all beta testers for app {app_id}...")

        testers: List[Tester] = []
        last_reported = 0
        page_index = 0
        async for page in self._pages(ENDPOINTS["beta_testers"], {
            "filter[apps]": app_id,
            "fields[betaTesters]": TESTER_FIELDS,
            "limit": LIMITS["page_size"],
        }):
            page_index += 1
            testers.extend(parse_tester(r) for r in page.get("data") or [])
            if page_index == 1 or len(testers) - last_reported >= LIMITS["progress_interval"]:
                self.logger.info(f"Fetched {len(testers)} beta tester(s)...")
                last_reported = len(testers)

        self.logger.info(f"Completed fetching {len(testers)} beta tester(s).")
        return testers

    async def fetch_usage(self, group_id: str, window: InactivityWindow) -> Dict[str, int]:
        """Session counts per tester id for the window; absent ids had no sessions."""
        counts: Dict[str, int] = {}
        async for page in self._pages(ENDPOINTS["beta_group_usages"].format(group_id=group_id), {
            "period": window.api_token,
            "groupBy": "betaTesters",
            "limit": LIMITS["page_size"],
        }):
            for tester_id, sessions in session_counts_by_tester(page).items():
                counts[tester_id] = counts.get(tester_id, 0) + sessions
        self.logger.debug(f"Usage metrics returned {len(counts)} tester(s) for group {group_id}")
        return counts

    # -------------------------------------------------------------------------
    # Removals
    # -------------------------------------------------------------------------
    async def _delete_linkages(self, path: str, tester_ids: List[str], target: str) -> int:
        if not tester_ids:
            return 0

        batch_size = LIMITS["delete_batch_size"]
        self.logger.info(f"Removing {len(tester_ids)} tester(s) from {target}...")

        removed = 0
        for batch in chunked(tester_ids, batch_size):
            await self._request("DELETE", path, body={
                "data": [{"type": "betaTesters", "id": tester_id} for tester_id in batch],
            })
            removed += len(batch)
            if len(tester_ids) > batch_size:
                self.logger.info(
                    f"Removed {removed} of {len(tester_ids)} tester(s)... "
                    f"{format_progress(removed, len(tester_ids))}"
                )

        self.logger.info(f"Successfully removed {removed} tester(s).")
        return removed

    async def remove_testers_from_group(self, group_id: str, tester_ids: List[str]) -> int:
        path = ENDPOINTS["beta_group_tester_links"].format(group_id=group_id)
        return await self._delete_linkages(path, tester_ids, f"beta group {group_id}")

    async def remove_app_testers(self, app_id: str, tester_ids: List[str]) -> int:
        path = ENDPOINTS["app_beta_testers"].format(app_id=app_id)
        return await self._delete_linkages(path, tester_ids, f"app {app_id}")

    async def remove_testers_from_testflight(self, tester_ids: List[str]) -> int:
        """Delete each tester outright; the API has no bulk form of this call."""
        if not tester_ids:
            return 0

        batch_size = LIMITS["delete_batch_size"]
        self.logger.info(f"Removing {len(tester_ids)} tester(s) from TestFlight...")

        removed = 0
        for batch in chunked(tester_ids, batch_size):
            for tester_id in batch:
                await self._request("DELETE", ENDPOINTS["beta_tester"].format(tester_id=tester_id))
                removed += 1
            if len(tester_ids) > batch_size:
                self.logger.info(
                    f"Removed {removed} of {len(tester_ids)} tester(s)... "
                    f"{format_progress(removed, len(tester_ids))}"
                )

        self.logger.info(f"Successfully removed {removed} tester(s).")
        return removed

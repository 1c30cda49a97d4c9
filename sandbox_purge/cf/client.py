"""
HTTP transport for the Cloud Foundry v3 API.

Handles UAA client-credentials authentication, pagination and error
translation. Resource-specific calls live in ``resources.py``.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import requests

from ..context import RunContext
from ..errors import CFAPIError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
PER_PAGE = 5000


class UAATokenProvider:
    """Fetches and caches a client-credentials access token."""

    def __init__(self, token_url: str, client_id: str, client_secret: str, session: requests.Session):
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.session = session
        self._token: Optional[str] = None
        self._expires_at = 0.0

    def token(self, force_refresh: bool = False) -> str:
        if force_refresh or not self._token or time.time() >= self._expires_at - 30:
            self._fetch()
        return self._token

    def _fetch(self) -> None:
        logger.debug(f"Requesting client credentials token from {self.token_url}")
        try:
            response = self.session.post(
                self.token_url,
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
                headers={"Accept": "application/json"},
                timeout=DEFAULT_TIMEOUT,
            )
        except requests.exceptions.RequestException as e:
            raise CFAPIError(0, [{"title": "TokenRequestFailed", "detail": str(e)}], self.token_url) from e

        if response.status_code != 200:
            raise CFAPIError(response.status_code, _error_details(response), self.token_url)

        payload = response.json()
        self._token = payload["access_token"]
        self._expires_at = time.time() + int(payload.get("expires_in", 0))


def _error_details(response: requests.Response) -> List[Dict[str, Any]]:
    try:
        payload = response.json()
    except ValueError:
        return [{"title": "HTTPError", "detail": response.text[:200]}]
    if isinstance(payload, dict):
        if "errors" in payload:
            return payload["errors"]
        if "error" in payload:
            return [{"title": payload["error"], "detail": payload.get("error_description", "")}]
    return [{"title": "HTTPError", "detail": str(payload)[:200]}]


def job_guid_from_location(location: Optional[str]) -> str:
    """Return the job GUID from a ``Location: .../v3/jobs/<guid>`` header, or ''."""
    if not location:
        return ""
    path = urlparse(location).path.rstrip("/")
    parts = path.split("/")
    if len(parts) >= 2 and parts[-2] == "jobs":
        return parts[-1]
    return ""


class CFSession:
    """Authenticated, cancellable access to the v3 API."""

    def __init__(
        self,
        api_url: str,
        token_provider: Optional[UAATokenProvider] = None,
        session: Optional[requests.Session] = None,
        ctx: Optional[RunContext] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.api_url = api_url.rstrip("/")
        self.token_provider = token_provider
        self.session = session or requests.Session()
        self.ctx = ctx or RunContext()
        self.timeout = timeout

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.api_url}/{path.lstrip('/')}"

    def _headers(self, force_refresh: bool = False) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token_provider is not None:
            headers["Authorization"] = f"Bearer {self.token_provider.token(force_refresh)}"
        return headers

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        """Issue a request, refreshing the token once on 401."""
        url = self._url(path)
        for attempt in range(2):
            self.ctx.check()
            try:
                response = self.session.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=self._headers(force_refresh=attempt > 0),
                    timeout=self.ctx.timeout_for(self.timeout),
                )
            except requests.exceptions.RequestException as e:
                raise CFAPIError(0, [{"title": "RequestFailed", "detail": str(e)}], url) from e

            if response.status_code == 401 and attempt == 0 and self.token_provider is not None:
                logger.debug("Access token rejected, refreshing")
                continue
            break

        if response.status_code >= 400:
            raise CFAPIError(response.status_code, _error_details(response), url)
        return response

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.request("GET", path, params=params).json()

    def list_all(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        resources, _ = self.list_all_with_included(path, params)
        return resources

    def list_all_with_included(
        self, path: str, params: Optional[Dict[str, Any]] = None
    ) -> Tuple[List[Dict[str, Any]], Dict[str, List[Dict[str, Any]]]]:
        """Follow ``pagination.next`` and collect resources plus ``included`` blocks."""
        query = dict(params or {})
        query.setdefault("per_page", PER_PAGE)

        resources: List[Dict[str, Any]] = []
        included: Dict[str, List[Dict[str, Any]]] = {}
        next_url: Optional[str] = path
        while next_url:
            page = self.get(next_url, params=query)
            resources.extend(page.get("resources", []))
            for key, items in (page.get("included") or {}).items():
                included.setdefault(key, []).extend(items)
            next_url = ((page.get("pagination") or {}).get("next") or {}).get("href")
            # next href already carries the query string
            query = None
        return resources, included


def discover_token_url(api_url: str, session: requests.Session) -> str:
    """Read the login server location from the API root document."""
    root_url = api_url.rstrip("/") + "/"
    try:
        response = session.get(root_url, headers={"Accept": "application/json"}, timeout=DEFAULT_TIMEOUT)
    except requests.exceptions.RequestException as e:
        raise CFAPIError(0, [{"title": "RequestFailed", "detail": str(e)}], root_url) from e
    if response.status_code != 200:
        raise CFAPIError(response.status_code, _error_details(response), root_url)

    links = response.json().get("links", {})
    login = (links.get("login") or links.get("uaa") or {}).get("href")
    if not login:
        raise CFAPIError(response.status_code, [{"title": "NoLoginLink", "detail": "API root has no login link"}], root_url)
    return login.rstrip("/") + "/oauth/token"

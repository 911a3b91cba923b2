# core/utils/http.py
import logging
from typing import Any, Dict, Optional

import requests

from core.errors import RateLimited, SourceUnavailable
from core.utils.rate_limit import RateLimiter


class HttpClient:
    """Thin wrapper over a requests session shared by every source client.

    Every call carries a timeout. Transport failures and non-2xx answers are
    translated into ``SourceUnavailable`` (``RateLimited`` for HTTP 429) so
    callers only ever handle the project's own error taxonomy.
    """

    def __init__(self, source: str, timeout: float = 10.0,
                 rate_limiter: Optional[RateLimiter] = None,
                 session: Optional[requests.Session] = None,
                 user_agent: Optional[str] = None):
        """
        Initialize the client.

        Args:
            source: Name of the upstream service, used in errors and logs
            timeout: Request timeout in seconds
            rate_limiter: Optional limiter applied before every request
            session: Optional pre-built session (tests inject a mock here)
            user_agent: Optional User-Agent header
        """
        self.source = source
        self.timeout = timeout
        self.rate_limiter = rate_limiter
        self.session = session or requests.Session()
        if user_agent:
            self.session.headers.update({'User-Agent': user_agent})
        self.logger = logging.getLogger(self.__class__.__name__)

    def request(self, method: str, url: str, params: Optional[Dict[str, Any]] = None,
                timeout: Optional[float] = None) -> requests.Response:
        """
        Perform a request and return the successful response.

        Raises:
            RateLimited: The service answered 429
            SourceUnavailable: Timeout, connection error or any other non-2xx answer
        """
        if self.rate_limiter:
            self.rate_limiter.delay()

        self.logger.debug(f"{method} {url} {params or ''}")
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                timeout=timeout or self.timeout
            )
        except requests.Timeout as e:
            raise SourceUnavailable(self.source, f"timeout: {e}") from e
        except requests.RequestException as e:
            raise SourceUnavailable(self.source, str(e)) from e

        if response.status_code == 429:
            self.logger.warning(f"{self.source} rate limited: {url}")
            raise RateLimited(self.source)

        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            raise SourceUnavailable(self.source, str(e), status_code=response.status_code) from e
        return response

    def get_text(self, url: str, params: Optional[Dict[str, Any]] = None,
                 timeout: Optional[float] = None) -> str:
        return self.request('GET', url, params=params, timeout=timeout).text

    def get_json(self, url: str, params: Optional[Dict[str, Any]] = None,
                 timeout: Optional[float] = None) -> Any:
        response = self.request('GET', url, params=params, timeout=timeout)
        try:
            return response.json()
        except ValueError as e:
            raise SourceUnavailable(self.source, f"invalid JSON: {e}") from e

    def head(self, url: str, timeout: Optional[float] = None) -> requests.Response:
        return self.request('HEAD', url, timeout=timeout)

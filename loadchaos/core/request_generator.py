"""HTTP request firing for load tests."""

import asyncio
import json
import logging
import random
import time
from typing import List, Dict, Any, Optional, Sequence, Tuple, Union

import aiohttp

from .auth import select_random_session
from .log import Logger, NullLogger, REQUEST_LOGGER_NAME
from .models import RequestResult, SingleSession, MultiSession, CookieSource
from .presets import (
    CACHE_HEADER_NAMES,
    CUSTOM_ENDPOINT_PREFIX,
    ENDPOINT_PATHS,
    ERROR_STATUS,
    HTTP_OK,
    REQUEST_TIMEOUT_SECONDS,
    USER_AGENTS,
)

CookiesArg = Union[CookieSource, Dict[str, str], None]

# Display order for the per-request cache header echo
DISPLAY_CACHE_HEADERS = ("x-ac", "x-nananana", "x-cache", "age")


def resolve_endpoint(slug: str, base_url: str) -> Optional[str]:
    """Map a named slug or ``custom:<path>`` to a full URL, or None."""
    slug = slug.strip()
    if slug.startswith(CUSTOM_ENDPOINT_PREFIX):
        path = slug[len(CUSTOM_ENDPOINT_PREFIX):].strip()
        if not path:
            return None
    else:
        path = ENDPOINT_PATHS.get(slug)
        if path is None:
            return None

    if not path.startswith("/"):
        path = "/" + path
    return base_url.rstrip("/") + path


def prepare_body(body: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Return the payload and the content type it should be sent with."""
    if body is None or body == "":
        return None, None
    try:
        json.loads(body)
    except ValueError:
        return body, "application/x-www-form-urlencoded"
    return body, "application/json"


def format_cookie_header(cookies: Dict[str, str]) -> str:
    """Render cookies as 'name1=value1; name2=value2'."""
    return "; ".join(f"{name}={value}" for name, value in cookies.items())


def extract_cache_headers(headers) -> Dict[str, str]:
    """Pick the allow-listed cache headers out of a response's headers."""
    captured = {}
    for name, value in headers.items():
        key = name.lower()
        if key in CACHE_HEADER_NAMES:
            captured[key] = value
    return captured


def count_protocol_errors(payload: Any) -> int:
    """Number of entries in a top-level ``errors`` list, as GraphQL reports them."""
    if isinstance(payload, dict) and isinstance(payload.get("errors"), list):
        return len(payload["errors"])
    return 0


class RequestGenerator:
    """Fires single requests and concurrent bursts over one client session.

    Per-burst cache headers are tallied after the burst's requests have all
    completed, never from inside the concurrent requests.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        collect_cache_headers: bool = False,
        inspect_protocol_errors: bool = False,
        user_agent: Optional[str] = None,
        logger: Optional[Logger] = None,
        rng: Optional[random.Random] = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ):
        self.session = session
        self._owns_session = session is None
        self.collect_cache_headers = collect_cache_headers
        self.inspect_protocol_errors = inspect_protocol_errors
        self.user_agent = user_agent
        self.logger = logger or NullLogger()
        self.rng = rng or random.Random()
        self.timeout = timeout
        self.request_logger = logging.getLogger(REQUEST_LOGGER_NAME)

        self.cache_header_tally: Dict[str, Dict[str, int]] = {}
        self.last_request_cache_headers: Dict[str, str] = {}

    async def __aenter__(self) -> "RequestGenerator":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def open(self) -> None:
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                cookie_jar=aiohttp.DummyCookieJar(),
            )
            self._owns_session = True

    async def close(self) -> None:
        if self.session is not None and self._owns_session:
            await self.session.close()
            self.session = None

    def select_cookies(self, cookies: CookiesArg) -> Dict[str, str]:
        """Pick the cookie set for one request."""
        if cookies is None:
            return {}
        if isinstance(cookies, MultiSession):
            return select_random_session(cookies, self.rng)
        if isinstance(cookies, SingleSession):
            return cookies.cookies
        return dict(cookies)

    def build_headers(
        self,
        content_type: Optional[str],
        cookies: Dict[str, str],
        headers: Optional[Dict[str, str]],
    ) -> Dict[str, str]:
        request_headers = {"User-Agent": self.user_agent or self.rng.choice(USER_AGENTS)}
        if headers:
            request_headers.update(headers)
        if content_type and "Content-Type" not in request_headers:
            request_headers["Content-Type"] = content_type
        if cookies:
            request_headers["Cookie"] = format_cookie_header(cookies)
        return request_headers

    async def _send(
        self,
        url: str,
        method: str,
        payload: Optional[str],
        content_type: Optional[str],
        cookies: CookiesArg,
        headers: Optional[Dict[str, str]],
        dispatched_at: float,
    ) -> RequestResult:
        request_headers = self.build_headers(
            content_type, self.select_cookies(cookies), headers
        )
        try:
            async with self.session.request(
                method, url, data=payload, headers=request_headers
            ) as response:
                raw = await response.read()
                elapsed = round(time.perf_counter() - dispatched_at, 4)

                protocol_errors = None
                if self.inspect_protocol_errors and response.status == HTTP_OK:
                    try:
                        protocol_errors = count_protocol_errors(json.loads(raw))
                    except ValueError:
                        protocol_errors = 0

                cache_headers = {}
                if self.collect_cache_headers:
                    cache_headers = extract_cache_headers(response.headers)

                return RequestResult(
                    elapsed=elapsed,
                    status=response.status,
                    url=url,
                    method=method,
                    protocol_errors=protocol_errors,
                    cache_headers=cache_headers,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            elapsed = round(time.perf_counter() - dispatched_at, 4)
            return RequestResult(
                elapsed=elapsed,
                status=ERROR_STATUS,
                url=url,
                method=method,
                error=str(e) or type(e).__name__,
            )

    def _record(self, results: Sequence[RequestResult]) -> None:
        for result in results:
            self.request_logger.info(
                f"Request | Time: {result.elapsed}s | Code: {result.status} "
                f"| URL: {result.url} | Method: {result.method}"
            )
            if self.collect_cache_headers:
                for name, value in result.cache_headers.items():
                    values = self.cache_header_tally.setdefault(name, {})
                    values[value] = values.get(value, 0) + 1
                self.last_request_cache_headers = dict(result.cache_headers)

    async def fire_request(
        self,
        url: str,
        method: str = "GET",
        body: Optional[str] = None,
        cookies: CookiesArg = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> RequestResult:
        """Fire one request; transport failures come back as status 'ERROR'."""
        await self.open()
        payload, content_type = prepare_body(body)
        result = await self._send(
            url, method, payload, content_type, cookies, headers, time.perf_counter()
        )
        self._record([result])
        return result

    async def fire_burst(
        self,
        urls: Sequence[str],
        method: str = "GET",
        body: Optional[str] = None,
        cookies: CookiesArg = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> List[RequestResult]:
        """Fire one request per URL concurrently and wait for all of them.

        Every request is timed from the same dispatch point, so elapsed times
        include any queuing inside the burst.
        """
        if not urls:
            return []
        await self.open()
        payload, content_type = prepare_body(body)
        dispatched_at = time.perf_counter()
        results = await asyncio.gather(
            *(
                self._send(url, method, payload, content_type, cookies, headers, dispatched_at)
                for url in urls
            )
        )
        self._record(results)
        return list(results)

    async def fire_requests_concurrent(
        self,
        url: str,
        n: int,
        method: str = "GET",
        body: Optional[str] = None,
        cookies: CookiesArg = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> List[RequestResult]:
        return await self.fire_burst([url] * n, method, body, cookies, headers)

    def describe_result(self, result: RequestResult) -> str:
        """One display line, e.g. '-> 200 in 0.0123s [x-ac: HIT]'."""
        line = f"-> {result.status} in {result.elapsed}s"
        if result.protocol_errors:
            line += f" ({result.protocol_errors} GraphQL errors)"
        if result.error:
            line += f" ({result.error})"
        shown = [
            f"{name}: {result.cache_headers[name]}"
            for name in DISPLAY_CACHE_HEADERS
            if name in result.cache_headers
        ]
        if shown:
            line += " [" + "] [".join(shown) + "]"
        return line

    def reset_cache_headers(self) -> None:
        self.cache_header_tally = {}

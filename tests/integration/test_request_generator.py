"""Integration tests for the request generator against a local stub site."""

import random

import pytest

from loadchaos.core.models import MultiSession, SingleSession
from loadchaos.core.presets import USER_AGENTS
from loadchaos.core.request_generator import (
    RequestGenerator,
    extract_cache_headers,
    prepare_body,
    resolve_endpoint,
)


class TestResolveEndpoint:
    @pytest.mark.parametrize(
        "slug,expected",
        [
            ("home", "http://site.test/"),
            ("shop", "http://site.test/shop/"),
            ("cart", "http://site.test/cart/"),
            ("checkout", "http://site.test/checkout/"),
            ("custom:/wp-json/wc/store", "http://site.test/wp-json/wc/store"),
            ("custom:graphql", "http://site.test/graphql"),
        ],
    )
    def test_known_slugs(self, slug, expected):
        assert resolve_endpoint(slug, "http://site.test/") == expected

    @pytest.mark.parametrize("slug", ["blog", "custom:", ""])
    def test_unknown_slugs(self, slug):
        assert resolve_endpoint(slug, "http://site.test") is None


class TestPrepareBody:
    def test_json_body(self):
        assert prepare_body('{"query": "{ posts { id } }"}')[1] == "application/json"

    def test_form_body(self):
        assert prepare_body("a=1&b=2") == ("a=1&b=2", "application/x-www-form-urlencoded")

    def test_no_body(self):
        assert prepare_body(None) == (None, None)

    def test_extract_cache_headers(self):
        headers = {"X-Cache": "HIT", "Age": "5", "Server": "nginx"}
        assert extract_cache_headers(headers) == {"x-cache": "HIT", "age": "5"}


class TestFireRequest:
    """Test single requests."""

    @pytest.mark.asyncio
    async def test_ok_response(self, base_url):
        async with RequestGenerator() as generator:
            result = await generator.fire_request(base_url + "/")

        assert result.status == 200
        assert result.elapsed > 0
        assert result.protocol_errors is None
        assert result.is_success

    @pytest.mark.asyncio
    async def test_server_error_is_data(self, base_url):
        async with RequestGenerator() as generator:
            result = await generator.fire_request(base_url + "/shop/")
        assert result.status == 500
        assert not result.is_success

    @pytest.mark.asyncio
    async def test_connection_failure_is_error_sentinel(self):
        async with RequestGenerator(timeout=2) as generator:
            result = await generator.fire_request("http://127.0.0.1:1/")
        assert result.status == "ERROR"
        assert result.error

    @pytest.mark.asyncio
    async def test_json_body_and_headers(self, base_url):
        async with RequestGenerator() as generator:
            result = await generator.fire_request(
                base_url + "/echo",
                method="POST",
                body='{"a": 1}',
                cookies=SingleSession({"session": "abc"}),
                headers={"X-Test": "yes"},
            )
        assert result.status == 200

    @pytest.mark.asyncio
    async def test_request_shape_reaches_server(self, stub_server, base_url):
        async with RequestGenerator(user_agent="loadchaos-test") as generator:
            await generator.fire_request(
                base_url + "/echo",
                method="POST",
                body='{"a": 1}',
                cookies={"session": "abc", "ab": "x"},
                headers={"X-Test": "yes"},
            )
        request = stub_server.app["requests"][-1]
        assert request["method"] == "POST"
        assert request["headers"]["Content-Type"] == "application/json"
        assert request["headers"]["Cookie"] == "session=abc; ab=x"
        assert request["headers"]["X-Test"] == "yes"
        assert request["headers"]["User-Agent"] == "loadchaos-test"

    @pytest.mark.asyncio
    async def test_user_agent_comes_from_pool(self, stub_server, base_url):
        async with RequestGenerator() as generator:
            await generator.fire_request(base_url + "/echo")
        assert stub_server.app["requests"][-1]["headers"]["User-Agent"] in USER_AGENTS

    @pytest.mark.asyncio
    async def test_graphql_errors_are_counted(self, base_url):
        async with RequestGenerator(inspect_protocol_errors=True) as generator:
            broken = await generator.fire_request(
                base_url + "/graphql", method="POST", body='{"query": "broken"}'
            )
            fine = await generator.fire_request(
                base_url + "/graphql", method="POST", body='{"query": "{ ok }"}'
            )
            failed = await generator.fire_request(base_url + "/shop/")

        assert broken.protocol_errors == 2
        assert not broken.is_success
        assert fine.protocol_errors == 0
        assert fine.is_success
        assert failed.protocol_errors is None


class TestConcurrentRequests:
    """Test bursts."""

    @pytest.mark.asyncio
    async def test_fires_n_requests(self, base_url, hits):
        async with RequestGenerator() as generator:
            results = await generator.fire_requests_concurrent(base_url + "/", 5)

        assert len(results) == 5
        assert all(r.status == 200 for r in results)
        assert hits.count("/") == 5

    @pytest.mark.asyncio
    async def test_requests_run_concurrently(self, base_url):
        async with RequestGenerator() as generator:
            results = await generator.fire_requests_concurrent(base_url + "/slow", 5)
        # Run one after another these would need at least 250ms
        assert max(r.elapsed for r in results) < 0.25

    @pytest.mark.asyncio
    async def test_burst_over_multiple_urls(self, base_url, hits):
        async with RequestGenerator() as generator:
            results = await generator.fire_burst([base_url + "/", base_url + "/cart/", base_url + "/shop/"])
        assert sorted(r.status for r in results) == [200, 200, 500]
        assert sorted(hits) == ["/", "/cart/", "/shop/"]

    @pytest.mark.asyncio
    async def test_empty_burst(self):
        generator = RequestGenerator()
        assert await generator.fire_burst([]) == []

    @pytest.mark.asyncio
    async def test_multi_session_cookies_pick_one_session(self, stub_server, base_url):
        sessions = MultiSession(({"user": "a"}, {"user": "b"}))
        async with RequestGenerator(rng=random.Random(7)) as generator:
            await generator.fire_requests_concurrent(base_url + "/echo", 20, cookies=sessions)

        cookies = {r["headers"]["Cookie"] for r in stub_server.app["requests"]}
        assert cookies <= {"user=a", "user=b"}
        assert len(cookies) == 2


class TestCacheHeaderCapture:
    """Test cache header tallying."""

    @pytest.mark.asyncio
    async def test_tally_and_last_request(self, base_url):
        async with RequestGenerator(collect_cache_headers=True) as generator:
            await generator.fire_requests_concurrent(base_url + "/", 3)
            await generator.fire_request(base_url + "/cart/")

        assert generator.cache_header_tally == {
            "x-ac": {"HIT": 3, "MISS": 1},
            "age": {"10": 3, "20": 1},
        }
        assert generator.last_request_cache_headers == {"x-ac": "MISS", "age": "20"}

    @pytest.mark.asyncio
    async def test_reset(self, base_url):
        async with RequestGenerator(collect_cache_headers=True) as generator:
            await generator.fire_request(base_url + "/")
        generator.reset_cache_headers()
        assert generator.cache_header_tally == {}

    @pytest.mark.asyncio
    async def test_disabled_by_default(self, base_url):
        async with RequestGenerator() as generator:
            result = await generator.fire_request(base_url + "/")
        assert result.cache_headers == {}
        assert generator.cache_header_tally == {}

    @pytest.mark.asyncio
    async def test_describe_result(self, base_url):
        async with RequestGenerator(collect_cache_headers=True) as generator:
            result = await generator.fire_request(base_url + "/")
        line = generator.describe_result(result)
        assert line.startswith("-> 200 in ")
        assert "[x-ac: HIT] [age: 10]" in line

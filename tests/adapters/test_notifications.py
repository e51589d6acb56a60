"""Tests for cache purging and event publishing adapters."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from revdel.adapters.cache import HttpCachePurger, NullCachePurger, get_cache_purger
from revdel.adapters.events import NullPublisher, SnsPublisher, get_event_publisher
from revdel.config import Settings


def mock_async_client():
    """Patch ``httpx.AsyncClient`` in the cache module; returns (patcher, client)."""
    client = AsyncMock()
    patcher = patch("revdel.adapters.cache.httpx.AsyncClient")
    return patcher, client


class TestHttpCachePurger:
    @pytest.mark.asyncio
    async def test_purge_urls_sends_purge(self):
        response = MagicMock(status_code=200)
        patcher, client = mock_async_client()
        client.request.return_value = response
        with patcher as client_cls:
            client_cls.return_value.__aenter__.return_value = client
            await HttpCachePurger("http://cdn.local/", timeout=2.0).purge_urls(
                ["http://wiki.local/Page", "http://wiki.local/Other"]
            )

        client_cls.assert_called_once_with(timeout=2.0)
        assert client.request.await_count == 2
        client.request.assert_any_await("PURGE", "http://wiki.local/Page")
        response.raise_for_status.assert_called()

    @pytest.mark.asyncio
    async def test_invalidate_uses_endpoint(self):
        patcher, client = mock_async_client()
        client.request.return_value = MagicMock(status_code=200)
        with patcher as client_cls:
            client_cls.return_value.__aenter__.return_value = client
            await HttpCachePurger("http://cdn.local/").invalidate("File:Foo.jpg")

        client_cls.assert_called_once_with(timeout=5.0)
        client.request.assert_awaited_once_with("PURGE", "http://cdn.local/File:Foo.jpg")

    @pytest.mark.asyncio
    async def test_empty_url_list_opens_no_client(self):
        with patch("revdel.adapters.cache.httpx.AsyncClient") as client_cls:
            await HttpCachePurger("http://cdn.local").purge_urls([])

        client_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_http_error_propagates(self):
        patcher, client = mock_async_client()
        client.request.side_effect = httpx.ConnectError("down")
        with patcher as client_cls:
            client_cls.return_value.__aenter__.return_value = client
            with pytest.raises(httpx.HTTPError):
                await HttpCachePurger("http://cdn.local").purge_urls(
                    ["http://wiki.local/Page"]
                )

    @pytest.mark.asyncio
    async def test_null_purger_is_awaitable(self):
        purger = NullCachePurger()
        await purger.invalidate("Page")
        await purger.purge_urls(["http://wiki.local/Page"])

    def test_factory(self):
        with patch(
            "revdel.adapters.cache.get_settings",
            return_value=Settings(cdn_purge_endpoint=None),
        ):
            assert isinstance(get_cache_purger(), NullCachePurger)
        with patch(
            "revdel.adapters.cache.get_settings",
            return_value=Settings(cdn_purge_endpoint="http://cdn.local"),
        ):
            assert isinstance(get_cache_purger(), HttpCachePurger)


class TestSnsPublisher:
    def test_publish(self):
        with patch("revdel.adapters.events.boto3.client") as mock_client:
            publisher = SnsPublisher("arn:aws:sns:us-east-1:123:revdel")
            publisher.publish(
                "revision.visibility_changed",
                {"ids": ["10"]},
                attributes={"kind": "revision"},
            )

        kwargs = mock_client.return_value.publish.call_args.kwargs
        assert kwargs["TopicArn"] == "arn:aws:sns:us-east-1:123:revdel"
        assert json.loads(kwargs["Message"]) == {"ids": ["10"]}
        assert kwargs["MessageAttributes"]["event_type"]["StringValue"] == (
            "revision.visibility_changed"
        )
        assert kwargs["MessageAttributes"]["kind"]["StringValue"] == "revision"

    def test_factory_without_topic(self):
        with patch(
            "revdel.adapters.events.get_settings",
            return_value=Settings(sns_topic_arn=None),
        ):
            assert isinstance(get_event_publisher(), NullPublisher)

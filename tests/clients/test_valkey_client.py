"""Tests for ValkeyClient - Redis-compatible device marker store."""

from unittest.mock import MagicMock, patch

import pytest
import redis

from clients.valkey_client import ValkeyClient


@pytest.fixture
def redis_mock():
    with patch("clients.valkey_client.redis.from_url") as from_url:
        client = MagicMock()
        from_url.return_value = client
        yield client


class TestValkeyClientInit:
    """Connection initialization."""

    def test_connects_with_decoded_responses(self, redis_mock):
        """Valid URL creates working connection."""
        ValkeyClient("redis://localhost:6379/0")

        redis_mock.ping.assert_called_once()

    def test_unreachable_server_fails_fast(self, redis_mock):
        redis_mock.ping.side_effect = redis.ConnectionError("refused")

        with pytest.raises(redis.ConnectionError):
            ValkeyClient("redis://localhost:6379/0")


class TestBasicOperations:
    """Get and set-if-absent operations."""

    def test_get_returns_stored_value(self, redis_mock):
        redis_mock.get.return_value = "true"

        assert ValkeyClient("redis://x").get("device:1:marker") == "true"

    def test_get_missing_returns_none(self, redis_mock):
        """Get on non-existent key returns None (not error)."""
        redis_mock.get.return_value = None

        assert ValkeyClient("redis://x").get("missing") is None

    def test_set_if_absent_uses_nx(self, redis_mock):
        redis_mock.set.return_value = True

        assert ValkeyClient("redis://x").set_if_absent("k", "v") is True
        redis_mock.set.assert_called_once_with("k", "v", nx=True)

    def test_set_if_absent_existing_key(self, redis_mock):
        """redis-py returns None when NX finds the key present."""
        redis_mock.set.return_value = None

        assert ValkeyClient("redis://x").set_if_absent("k", "v") is False

    def test_close(self, redis_mock):
        ValkeyClient("redis://x").close()

        redis_mock.close.assert_called_once()

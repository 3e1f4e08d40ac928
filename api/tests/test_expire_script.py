"""Tests for the expiry sweep script."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from scripts import expire_enrollments


MODULE = "scripts.expire_enrollments"


@pytest.fixture
def connections():
    """Patch every connection the script opens."""
    with (
        patch(f"{MODULE}.init_redis", new_callable=AsyncMock) as init_redis,
        patch(f"{MODULE}.shutdown_redis", new_callable=AsyncMock) as shutdown_redis,
        patch(
            f"{MODULE}.init_async_cassandra", new_callable=AsyncMock
        ) as init_cassandra,
        patch(
            f"{MODULE}.shutdown_async_cassandra", new_callable=AsyncMock
        ) as shutdown_cassandra,
        patch(f"{MODULE}.create_progression_services") as create_services,
    ):
        yield SimpleNamespace(
            init_redis=init_redis,
            shutdown_redis=shutdown_redis,
            init_cassandra=init_cassandra,
            shutdown_cassandra=shutdown_cassandra,
            create_services=create_services,
        )


class TestExpireScript:
    """The sweep only runs behind the distributed lock."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error", [RedisConnectionError("refused"), ConnectionRefusedError()]
    )
    async def test_exits_non_zero_without_redis(self, connections, error) -> None:
        connections.init_redis.side_effect = error

        status = await expire_enrollments.main()

        assert status == expire_enrollments.EXIT_REDIS_UNAVAILABLE
        connections.init_cassandra.assert_not_awaited()
        connections.create_services.assert_not_called()

    @pytest.mark.asyncio
    async def test_sweeps_with_redis_locks(self, connections) -> None:
        redis_client = Mock()
        session = Mock()
        lifecycle = Mock(expire_overdue=AsyncMock(return_value=2))
        connections.init_redis.return_value = redis_client
        connections.init_cassandra.return_value = session
        connections.create_services.return_value = SimpleNamespace(
            lifecycle=lifecycle
        )

        status = await expire_enrollments.main()

        assert status == expire_enrollments.EXIT_OK
        _, kwargs = connections.create_services.call_args
        assert kwargs["redis"] is redis_client
        lifecycle.expire_overdue.assert_awaited_once()
        connections.shutdown_cassandra.assert_awaited_once()
        connections.shutdown_redis.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connections_closed_when_sweep_fails(self, connections) -> None:
        connections.init_redis.return_value = Mock()
        connections.create_services.return_value = SimpleNamespace(
            lifecycle=Mock(expire_overdue=AsyncMock(side_effect=ConnectionError()))
        )

        with pytest.raises(ConnectionError):
            await expire_enrollments.main()

        connections.shutdown_cassandra.assert_awaited_once()
        connections.shutdown_redis.assert_awaited_once()

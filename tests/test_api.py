"""Tests for the high-level API."""

from unittest.mock import Mock, patch

import pytest

from stunnel_wrapper.api import CachedStunnelConnector, managed_tunnel, stress_test
from stunnel_wrapper.cache.store import TunnelCache
from stunnel_wrapper.common.exceptions import InitializationFailedError, TunnelNotFoundError
from stunnel_wrapper.core.connector import StunnelConnector


@pytest.fixture
def mock_cache():
    return Mock(spec=TunnelCache)


@pytest.fixture
def mock_connector():
    return Mock(spec=StunnelConnector)


class TestCachedStunnelConnector:
    """Test cases for the cache-first connect facade"""

    def test_cache_hit(self, mock_cache, mock_connector):
        handle = Mock()
        mock_cache.remove.return_value = handle

        result = CachedStunnelConnector(mock_cache, mock_connector).connect("h", 443)

        assert result is handle
        mock_cache.remove.assert_called_once_with("h", 443)
        mock_connector.connect.assert_not_called()

    def test_cache_miss_falls_back_to_fresh_stunnel(self, mock_cache, mock_connector):
        handle = Mock()
        mock_cache.remove.side_effect = TunnelNotFoundError("h", 443)
        mock_connector.connect.return_value = handle

        result = CachedStunnelConnector(mock_cache, mock_connector).connect(
            "h", 443, use_fork_exec_helper=False, unique_id=9
        )

        assert result is handle
        mock_connector.connect.assert_called_once_with(
            "h", 443, use_fork_exec_helper=False, unique_id=9
        )

    def test_connect_errors_propagate(self, mock_cache, mock_connector):
        mock_cache.remove.side_effect = TunnelNotFoundError("h", 443)
        mock_connector.connect.side_effect = InitializationFailedError()

        with pytest.raises(InitializationFailedError):
            CachedStunnelConnector(mock_cache, mock_connector).connect("h", 443)

    def test_donate_and_shutdown(self, mock_cache, mock_connector):
        handle = Mock()
        facade = CachedStunnelConnector(mock_cache, mock_connector)

        facade.donate(handle)
        facade.shutdown()

        mock_cache.add.assert_called_once_with(handle)
        mock_cache.flush.assert_called_once()


class TestManagedTunnel:
    """Test cases for scoped tunnel borrowing"""

    def test_clean_exit_donates(self, mock_cache, mock_connector):
        handle = Mock()
        mock_cache.remove.return_value = handle
        facade = CachedStunnelConnector(mock_cache, mock_connector)

        with patch("stunnel_wrapper.api.disconnect") as mock_disconnect:
            with managed_tunnel(facade, "h", 443) as tunnel:
                assert tunnel is handle

        mock_cache.add.assert_called_once_with(handle)
        mock_disconnect.assert_not_called()

    def test_error_disconnects(self, mock_cache, mock_connector):
        handle = Mock()
        mock_cache.remove.return_value = handle
        facade = CachedStunnelConnector(mock_cache, mock_connector)

        with patch("stunnel_wrapper.api.disconnect") as mock_disconnect:
            with pytest.raises(RuntimeError):
                with managed_tunnel(facade, "h", 443):
                    raise RuntimeError("request failed")

        mock_disconnect.assert_called_once_with(handle)
        mock_cache.add.assert_not_called()


class TestStressTest:
    """Test cases for the connect/disconnect soak loop"""

    def test_reports_every_hundred_runs(self, mock_connector):
        lines = []

        with patch("stunnel_wrapper.api.disconnect") as mock_disconnect:
            runs = stress_test(
                "h", 443, 250, connector=mock_connector, write_to_log=lines.append
            )

        assert runs == 250
        assert mock_disconnect.call_count == 250
        assert lines == ["Ran stunnel 100 times", "Ran stunnel 200 times"]

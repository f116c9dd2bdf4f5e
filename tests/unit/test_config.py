"""
配置测试
"""

import pytest
from pydantic import ValidationError

from clusterlink.config import RequestConfiguration, TransportSettings, default_node_predicate
from clusterlink.config.constants import TimeoutDefaults
from clusterlink.models.node import Node
from clusterlink.models.response import RequestData


class TestTransportSettings:
    def test_defaults(self) -> None:
        settings = TransportSettings()
        assert settings.sniff_on_startup
        assert settings.max_retries is None
        assert settings.node_predicate is default_node_predicate

    def test_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(ValidationError):
            TransportSettings(request_timeout=0)

    def test_rejects_max_dead_timeout_below_base(self) -> None:
        with pytest.raises(ValidationError):
            TransportSettings(dead_timeout=60, max_dead_timeout=10)

    def test_ping_timeout_depends_on_ssl(self) -> None:
        settings = TransportSettings()
        assert settings.effective_ping_timeout(False) == TimeoutDefaults.PING_TIMEOUT
        assert settings.effective_ping_timeout(True) == TimeoutDefaults.PING_TIMEOUT_SSL
        assert TransportSettings(ping_timeout=1.0).effective_ping_timeout(True) == 1.0

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CLUSTERLINK_REQUEST_TIMEOUT", "5")
        monkeypatch.setenv("CLUSTERLINK_MAX_RETRIES", "3")
        monkeypatch.setenv("CLUSTERLINK_SNIFF_ON_STARTUP", "false")
        monkeypatch.setenv("CLUSTERLINK_SNIFF_LIFESPAN", "none")

        settings = TransportSettings.from_env(throw_exceptions=True)
        assert settings.request_timeout == 5.0
        assert settings.max_retries == 3
        assert not settings.sniff_on_startup
        assert settings.sniff_lifespan is None
        assert settings.throw_exceptions

    def test_default_predicate_drops_master_only_nodes(self) -> None:
        assert not default_node_predicate(Node("a:9200", holds_data=False, ingest_enabled=False))
        assert default_node_predicate(Node("b:9200"))


class TestRequestData:
    def test_request_configuration_overrides_settings(self) -> None:
        settings = TransportSettings(request_timeout=30, max_retries=4, headers={"X-A": "1"})
        request_config = RequestConfiguration(
            request_timeout=5,
            max_retries=1,
            allowed_status_codes=frozenset({404}),
            throw_exceptions=True,
            headers={"X-B": "2"},
        )
        data = RequestData.create("get", "_search", b"{}", settings, request_config)

        assert data.method == "GET"
        assert data.path == "/_search"
        assert data.request_timeout == 5
        assert data.max_retries == 1
        assert data.allowed_status_codes == frozenset({404})
        assert data.throw_exceptions
        assert data.headers == {"X-A": "1", "X-B": "2"}

    def test_uri_requires_bound_node(self) -> None:
        data = RequestData.create("GET", "/", None, TransportSettings())
        with pytest.raises(RuntimeError):
            _ = data.uri
        data.node = Node("a:9200")
        assert data.uri == "http://a:9200/"


class TestRequestConfiguration:
    def test_zero_retries_is_allowed(self) -> None:
        assert RequestConfiguration(max_retries=0).max_retries == 0

    @pytest.mark.parametrize(
        "overrides",
        [{"max_retries": -1}, {"request_timeout": 0}, {"ping_timeout": -1.5}],
    )
    def test_rejects_invalid_overrides(self, overrides: dict) -> None:
        with pytest.raises(ValueError):
            RequestConfiguration(**overrides)

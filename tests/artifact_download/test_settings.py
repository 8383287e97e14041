# === NAVMAP v1 ===
# {
#   "module": "tests.artifact_download.test_settings",
#   "purpose": "Settings defaults, environment overrides, validation, and transport construction.",
#   "sections": [
#     {"id": "tests", "name": "Test Cases", "anchor": "TST", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Settings defaults, environment overrides, validation, and transport construction."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest
from pydantic import ValidationError

from CircuitArtifacts.ArtifactDownload.catalog import ProgramFormat
from CircuitArtifacts.ArtifactDownload.constants import DEFAULT_GATEWAYS
from CircuitArtifacts.ArtifactDownload.errors import ConfigError
from CircuitArtifacts.ArtifactDownload.network import (
    GatewayTransport,
    NodeTransport,
    TrustlessGatewayTransport,
    create_transport,
)
from CircuitArtifacts.ArtifactDownload.settings import (
    DownloaderSettings,
    LogLevel,
    RetrySettings,
    TransportSettings,
    TransportStrategy,
    default_store_root,
    get_settings,
    reset_settings,
)


def test_defaults(tmp_path) -> None:
    settings = DownloaderSettings()

    assert settings.store_root == tmp_path / "default-store"
    assert settings.transport.strategy is TransportStrategy.TRUSTLESS
    assert settings.transport.gateways == list(DEFAULT_GATEWAYS)
    assert settings.require_digests is True
    assert settings.retry.max_retries == 5
    assert settings.retry.base_delay_ms == 1000
    assert settings.program_format is ProgramFormat.WASM
    assert settings.memory_cache is False
    assert settings.max_workers == 3


def test_store_root_falls_back_to_user_data_dir(monkeypatch) -> None:
    monkeypatch.delenv("CIRCUIT_ARTIFACTS_STORE_ROOT")

    assert DownloaderSettings().store_root == default_store_root()


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("CIRCUIT_ARTIFACTS_USE_NATIVE_ARTIFACTS", "true")
    monkeypatch.setenv("CIRCUIT_ARTIFACTS_TRANSPORT__STRATEGY", "gateway")
    monkeypatch.setenv("CIRCUIT_ARTIFACTS_REQUIRE_DIGESTS", "false")
    monkeypatch.setenv("CIRCUIT_ARTIFACTS_TRANSPORT__GATEWAYS", '["https://a.example/", "https://b.example"]')
    monkeypatch.setenv("CIRCUIT_ARTIFACTS_RETRY__MAX_RETRIES", "2")
    monkeypatch.setenv("CIRCUIT_ARTIFACTS_LOG_LEVEL", "debug")
    reset_settings()

    settings = get_settings()

    assert settings.program_format is ProgramFormat.NATIVE
    assert settings.transport.strategy is TransportStrategy.GATEWAY
    assert settings.require_digests is False
    assert settings.transport.gateways == ["https://a.example", "https://b.example"]
    assert settings.retry.max_retries == 2
    assert settings.log_level is LogLevel.DEBUG


def test_get_settings_is_cached_until_reset() -> None:
    first = get_settings()
    assert get_settings() is first

    reset_settings()
    assert get_settings() is not first


def test_store_root_expands_user(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))

    settings = DownloaderSettings(store_root="~/artifacts")

    assert settings.store_root == Path(tmp_path) / "artifacts"


def test_gateways_accept_comma_separated_string() -> None:
    transport = TransportSettings(gateways="https://a.example/, https://b.example")

    assert transport.gateways == ["https://a.example", "https://b.example"]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"gateways": []},
        {"gateways": ["ftp://mirror.example"]},
        {"node_api_url": "127.0.0.1:5001"},
        {"strategy": "carrier-pigeon"},
        {"read_timeout_s": 0},
    ],
)
def test_invalid_transport_settings(kwargs) -> None:
    with pytest.raises(ValidationError):
        TransportSettings(**kwargs)


@pytest.mark.parametrize("kwargs", [{"max_workers": 0}, {"max_workers": 17}, {"log_level": "loud"}])
def test_invalid_downloader_settings(kwargs) -> None:
    with pytest.raises(ValidationError):
        DownloaderSettings(**kwargs)


def test_retry_settings_build_policy() -> None:
    policy = RetrySettings(max_retries=3, base_delay_ms=250, jitter=False, max_delay_ms=2000).to_policy()

    assert policy.max_attempts == 3
    assert policy.total_calls == 4
    assert policy.base_delay == 0.25
    assert policy.jitter is False
    assert policy.max_delay == 2.0
    assert RetrySettings().to_policy().max_delay is None

    with pytest.raises(ValidationError):
        RetrySettings(max_retries=-1)


@pytest.mark.parametrize(
    "strategy, expected",
    [
        (TransportStrategy.GATEWAY, GatewayTransport),
        (TransportStrategy.TRUSTLESS, TrustlessGatewayTransport),
        (TransportStrategy.NODE, NodeTransport),
    ],
)
def test_create_transport_per_strategy(strategy, expected) -> None:
    transport = create_transport(TransportSettings(strategy=strategy))

    assert type(transport) is expected
    assert not transport.initialized


def test_create_transport_passes_gateways_and_node_url() -> None:
    gateway = create_transport(TransportSettings(gateways=["https://one.example/"]))
    node = create_transport(
        TransportSettings(strategy="node", node_api_url="http://node.internal:5001/")
    )

    assert gateway.gateways == ("https://one.example",)
    assert node.api_url == "http://node.internal:5001"


def test_unknown_strategy_is_config_error() -> None:
    bogus = SimpleNamespace(strategy="carrier-pigeon", gateways=["https://a.example"], node_api_url="http://x")

    with pytest.raises(ConfigError):
        create_transport(bogus, client_factory=lambda: None)

"""Unit tests for credential resolution and settings"""
import pytest

from solconnect.core.config import (
    ClientSettings,
    Commitment,
    Credentials,
    Network,
    resolve,
)
from solconnect.core.errors import ConfigError


class TestResolve:

    def test_devnet_defaults(self):
        config = resolve(Credentials())
        assert config.network is Network.DEVNET
        assert config.rpc_endpoint == "https://api.devnet.solana.com"
        assert config.ws_endpoint == "wss://api.devnet.solana.com"
        assert config.commitment is Commitment.CONFIRMED

    def test_mainnet_alias(self):
        config = resolve(Credentials(network="mainnet"))
        assert config.network is Network.MAINNET
        assert config.rpc_endpoint == "https://api.mainnet-beta.solana.com"
        assert config.is_production

    def test_custom_without_url_fails(self):
        with pytest.raises(ConfigError):
            resolve(Credentials(network="custom", custom_rpc_url=""))

    def test_custom_with_malformed_url_fails(self):
        with pytest.raises(ConfigError):
            resolve(Credentials(network="custom", custom_rpc_url="not a url"))

    def test_custom_url_is_verbatim(self):
        url = "https://rpc.example.com/v1/abc?key=1"
        config = resolve(Credentials(network="custom", custom_rpc_url=url))
        assert config.rpc_endpoint == url
        assert config.ws_endpoint == "wss://rpc.example.com/v1/abc?key=1"

    def test_custom_http_maps_to_ws(self):
        config = resolve(Credentials(network="custom", custom_rpc_url="http://localhost:8899"))
        assert config.ws_endpoint == "ws://localhost:8899"

    def test_explicit_ws_url_wins(self):
        config = resolve(Credentials(network="testnet", ws_url="wss://ws.example.com"))
        assert config.rpc_endpoint == "https://api.testnet.solana.com"
        assert config.ws_endpoint == "wss://ws.example.com"

    def test_malformed_ws_url_fails(self):
        with pytest.raises(ConfigError):
            resolve(Credentials(ws_url="ftp://example.com"))


class TestCredentials:

    def test_unknown_network(self):
        with pytest.raises(ConfigError):
            Credentials(network="moonnet")

    def test_unknown_commitment(self):
        with pytest.raises(ConfigError):
            Credentials(commitment="eventually")

    def test_blank_fields_become_none(self):
        creds = Credentials(private_key="  ", custom_rpc_url="")
        assert creds.private_key is None
        assert creds.custom_rpc_url is None
        assert not creds.has_private_key

    def test_repr_hides_private_key(self):
        creds = Credentials(private_key="SECRETKEYMATERIAL")
        assert "SECRETKEYMATERIAL" not in repr(creds)

    def test_from_mapping_camel_case(self):
        creds = Credentials.from_mapping({
            "network": "custom",
            "customRpcUrl": "https://rpc.example.com",
            "commitment": "finalized",
            "wsUrl": "",
        })
        assert creds.network is Network.CUSTOM
        assert creds.custom_rpc_url == "https://rpc.example.com"
        assert creds.commitment is Commitment.FINALIZED
        assert creds.ws_url is None

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SOLANA_NETWORK", "testnet")
        monkeypatch.setenv("SOLANA_COMMITMENT", "processed")
        monkeypatch.delenv("SOLANA_RPC_URL", raising=False)
        monkeypatch.delenv("SOLANA_PRIVATE_KEY", raising=False)
        monkeypatch.delenv("SOLANA_WS_URL", raising=False)
        creds = Credentials.from_env(str(tmp_path / "missing.env"))
        assert creds.network is Network.TESTNET
        assert creds.commitment is Commitment.PROCESSED
        assert creds.private_key is None


class TestCommitment:

    def test_ordering(self):
        assert Commitment.CONFIRMED.reached_by("confirmed")
        assert Commitment.CONFIRMED.reached_by("finalized")
        assert not Commitment.CONFIRMED.reached_by("processed")
        assert not Commitment.FINALIZED.reached_by(None)


class TestClientSettings:

    def test_defaults(self):
        settings = ClientSettings()
        assert settings.slot_time_ms == 400
        assert settings.max_attempts == 3

    def test_validation(self):
        with pytest.raises(ConfigError):
            ClientSettings(slot_time_ms=0)
        with pytest.raises(ConfigError):
            ClientSettings(max_attempts=0)

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SOLCONNECT_SLOT_TIME_MS", "450")
        monkeypatch.setenv("SOLCONNECT_MAX_ATTEMPTS", "5")
        settings = ClientSettings.from_env(str(tmp_path / "missing.env"))
        assert settings.slot_time_ms == 450.0
        assert settings.max_attempts == 5

    def test_from_env_rejects_garbage(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SOLCONNECT_BASE_DELAY", "soon")
        with pytest.raises(ConfigError):
            ClientSettings.from_env(str(tmp_path / "missing.env"))

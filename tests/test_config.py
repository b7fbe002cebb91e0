"""
Tests for configuration management
"""

import pytest
import pydantic

from uplink.config import (
    DEFAULT_API_URL,
    DEFAULT_SOLANA_FEE_PAYER,
    UplinkConfig,
    get_uplink_config,
)


class TestConfigurationLoading:
    """Test configuration loading and validation"""

    def test_defaults(self):
        """Test config loads with defaults"""
        config = UplinkConfig()

        assert config.api_url == DEFAULT_API_URL
        assert config.network == "base"
        assert config.max_retries == 3
        assert config.retry_delay == 1.0
        assert config.timeout == 120.0
        assert config.facilitator_lookup_timeout == 5.0
        assert config.solana_default_fee_payer == DEFAULT_SOLANA_FEE_PAYER
        assert config.create_ata_fee_acceptance is False
        assert config.minimum_crosschain_fee_acceptance is False

    def test_environment_variables(self, monkeypatch):
        """Test that config loads from UPLINK_* environment variables"""
        monkeypatch.setenv("UPLINK_API_KEY", "env-key")
        monkeypatch.setenv("UPLINK_NETWORK", "solana")
        monkeypatch.setenv("UPLINK_MAX_RETRIES", "5")
        monkeypatch.setenv("UPLINK_CREATE_ATA_FEE_ACCEPTANCE", "true")

        config = UplinkConfig()

        assert config.api_key == "env-key"
        assert config.network == "solana"
        assert config.max_retries == 5
        assert config.create_ata_fee_acceptance is True

    def test_dotenv_file(self, tmp_path):
        """Test that a .env file in the working directory is read"""
        (tmp_path / ".env").write_text("UPLINK_API_KEY=dotenv-key\n")

        assert UplinkConfig().api_key == "dotenv-key"

    def test_explicit_values_override_environment(self, monkeypatch):
        """Test that constructor arguments win over the environment"""
        monkeypatch.setenv("UPLINK_API_KEY", "env-key")

        assert UplinkConfig(api_key="explicit").api_key == "explicit"

    def test_api_url_trailing_slash_removed(self):
        """Test that the aggregator URL is normalized"""
        config = UplinkConfig(api_url="https://staging.example.com/")

        assert config.api_url == "https://staging.example.com"

    def test_negative_values_rejected(self):
        """Test that negative retry and timeout settings are invalid"""
        with pytest.raises(pydantic.ValidationError):
            UplinkConfig(max_retries=-1)
        with pytest.raises(pydantic.ValidationError):
            UplinkConfig(timeout=-5)

    def test_unsupported_network_rejected(self):
        """Test that only base and solana are accepted"""
        with pytest.raises(pydantic.ValidationError):
            UplinkConfig(network="ethereum")

    def test_config_is_frozen(self):
        """Test that config cannot be mutated after creation"""
        config = UplinkConfig()

        with pytest.raises(pydantic.ValidationError):
            config.api_key = "changed"


class TestConfigSingleton:

    def test_singleton_returns_same_instance(self):
        """Test get_uplink_config caches its instance"""
        assert get_uplink_config() is get_uplink_config()

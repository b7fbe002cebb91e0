"""
Pytest configuration and shared fixtures
"""

import os

import pytest
import structlog
import base58
from eth_account import Account
from solders.keypair import Keypair

import uplink.config
from uplink.config import UplinkConfig

TEST_EVM_KEY = "0x1234567890abcdef1234567890abcdef1234567890abcdef1234567890abcdef"


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep UPLINK_* variables and stray .env files out of every test"""
    for name in list(os.environ):
        if name.upper().startswith("UPLINK_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(uplink.config, "_uplink_config", None)
    yield
    structlog.reset_defaults()


@pytest.fixture
def test_account():
    """Deterministic EVM payer account"""
    return Account.from_key(TEST_EVM_KEY)


@pytest.fixture
def solana_keypair() -> Keypair:
    """Random Solana payer keypair"""
    return Keypair()


@pytest.fixture
def solana_private_key(solana_keypair) -> str:
    """Base58 secret key for solana_keypair"""
    return base58.b58encode(bytes(solana_keypair)).decode()


@pytest.fixture
def uplink_config() -> UplinkConfig:
    """Config with retries that do not sleep"""
    return UplinkConfig(
        api_key="test-api-key",
        api_url="https://aggregator.test/",
        retry_delay=0,
        create_ata_fee_acceptance=True,
        minimum_crosschain_fee_acceptance=True,
    )

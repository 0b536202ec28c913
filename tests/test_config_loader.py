"""
Tests for flashswap/config_loader.py
"""

import json
from pathlib import Path

import pytest

from flashswap.config_loader import ConfigLoader, ConfigValidationError
from flashswap.pool_locator import pool_address

ENV_KEYS = (
    "RPC_URL",
    "RPC_TIMEOUT",
    "ORIGIN_REGISTRY",
    "TARGET_REGISTRY",
    "OWNER_ADDRESS",
    "BENEFICIARY",
    "MIN_PROFIT",
    "DEBUG_MODE",
)

REGISTRIES = {
    "registries": {
        "UNISWAP_V2": {
            "factory": "0x5C69bEe701ef814a2B6a3EDD4B1652CB9cc5aA6f",
            "init_code_hash": "0x96e8ac4277198ff8b6f785478aa9a39f403cb768dd02cbee326c3e7da348845f",
        },
        "SUSHISWAP": {
            "factory": "0xC0AEe478e3658e2610c5F7A4A2E1777cE9e4f2Ac",
            "init_code_hash": "0xe18a34eb0e04b04f7a0ac29a6e80748dca96319b42c520bfb7ee765fa2cb1f7c",
        },
    }
}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # set-then-delete so monkeypatch restores whatever dotenv writes
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


@pytest.fixture
def write_config(tmp_path):
    def _write(content=REGISTRIES):
        path = tmp_path / "registries.json"
        path.write_text(content if isinstance(content, str) else json.dumps(content))
        return str(path)
    return _write


@pytest.fixture
def make_loader(tmp_path, write_config):
    def _make(content=REGISTRIES, env=None):
        env_path = tmp_path / ".env"
        if env is not None:
            env_path.write_text(env)
        return ConfigLoader(config_path=write_config(content), env_path=str(env_path))
    return _make


class TestRegistries:

    def test_get_registry(self, make_loader):
        registry = make_loader().get_registry("UNISWAP_V2")
        assert registry.name == "UNISWAP_V2"
        assert registry.address == "0x5C69bEe701ef814a2B6a3EDD4B1652CB9cc5aA6f"

    def test_name_is_case_insensitive_and_cached(self, make_loader):
        loader = make_loader()
        assert loader.get_registry("sushiswap") is loader.get_registry("SUSHISWAP")

    def test_unknown_registry(self, make_loader):
        with pytest.raises(ConfigValidationError, match="PANCAKE"):
            make_loader().get_registry("pancake")

    def test_missing_field(self, make_loader):
        loader = make_loader({"registries": {"X": {"factory": "0x" + "11" * 20}}})
        with pytest.raises(ConfigValidationError, match="init_code_hash"):
            loader.get_registry("X")

    @pytest.mark.parametrize("factory", ["0x1234", "5C69bEe701ef814a2B6a3EDD4B1652CB9cc5aA6f", "0x" + "zz" * 20])
    def test_bad_factory(self, make_loader, factory):
        loader = make_loader({"registries": {"X": {"factory": factory, "init_code_hash": "0x" + "01" * 32}}})
        with pytest.raises(ConfigValidationError):
            loader.get_registry("X")

    def test_bad_init_code_hash(self, make_loader):
        loader = make_loader({"registries": {"X": {"factory": "0x" + "11" * 20, "init_code_hash": "0x01"}}})
        with pytest.raises(ConfigValidationError):
            loader.get_registry("X")


class TestConfigFile:

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigValidationError):
            ConfigLoader(config_path=str(tmp_path / "nope.json"), env_path=str(tmp_path / ".env"))

    def test_invalid_json(self, make_loader):
        with pytest.raises(ConfigValidationError):
            make_loader("{not json")

    def test_missing_registries_key(self, make_loader):
        with pytest.raises(ConfigValidationError):
            make_loader({"pools": {}})

    def test_shipped_config(self, tmp_path):
        shipped = Path(__file__).resolve().parent.parent / "config" / "registries.json"
        loader = ConfigLoader(config_path=str(shipped), env_path=str(tmp_path / ".env"))

        uniswap = loader.get_registry("UNISWAP_V2")
        usdc = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
        weth = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
        assert pool_address(uniswap, usdc, weth) == "0xB4e16d0168e52d35CaCD2c6185b44281Ec28C9Dc"


class TestArbConfig:

    def test_defaults(self, make_loader):
        config = make_loader().get_arb_config()

        assert config.origin_registry.name == "UNISWAP_V2"
        assert config.target_registry.name == "SUSHISWAP"
        assert config.rpc_url == "http://127.0.0.1:8545"
        assert config.rpc_timeout == 10
        assert config.owner is None
        assert config.min_profit == 0

    def test_environment(self, make_loader, monkeypatch):
        monkeypatch.setenv("ORIGIN_REGISTRY", "SUSHISWAP")
        monkeypatch.setenv("TARGET_REGISTRY", "UNISWAP_V2")
        monkeypatch.setenv("MIN_PROFIT", "5")
        monkeypatch.setenv("OWNER_ADDRESS", "0x" + "a1" * 20)

        config = make_loader().get_arb_config()
        assert config.origin_registry.name == "SUSHISWAP"
        assert config.target_registry.name == "UNISWAP_V2"
        assert config.min_profit == 5
        assert config.owner == "0x" + "a1" * 20

    def test_arguments_override_environment(self, make_loader, monkeypatch):
        monkeypatch.setenv("ORIGIN_REGISTRY", "SUSHISWAP")
        config = make_loader().get_arb_config(origin="uniswap_v2", target="sushiswap")
        assert config.origin_registry.name == "UNISWAP_V2"

    def test_dotenv_file(self, make_loader):
        config = make_loader(env="MIN_PROFIT=7\nRPC_URL=http://node:8545\n").get_arb_config()
        assert config.min_profit == 7
        assert config.rpc_url == "http://node:8545"

    def test_same_registry(self, make_loader):
        with pytest.raises(ConfigValidationError):
            make_loader().get_arb_config(origin="UNISWAP_V2", target="uniswap_v2")

    @pytest.mark.parametrize("value", ["abc", "1.5", "-1"])
    def test_bad_min_profit(self, make_loader, monkeypatch, value):
        monkeypatch.setenv("MIN_PROFIT", value)
        with pytest.raises(ConfigValidationError):
            make_loader().get_arb_config()

    def test_bad_beneficiary(self, make_loader, monkeypatch):
        monkeypatch.setenv("BENEFICIARY", "0x1234")
        with pytest.raises(ConfigValidationError, match="BENEFICIARY"):
            make_loader().get_arb_config()

    def test_debug_mode(self, make_loader, monkeypatch):
        assert make_loader().debug_mode is False
        monkeypatch.setenv("DEBUG_MODE", "TRUE")
        assert make_loader().debug_mode is True

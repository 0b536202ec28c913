"""
Tests for main.py (dry run and registry check, no RPC)
"""

import json
from argparse import Namespace
from unittest.mock import MagicMock

import pytest

import main
from conftest import BENEFICIARY, OWNER, REGISTRY_1, REGISTRY_2, TOKEN_A, TOKEN_B
from flashswap.config_loader import ArbConfig
from flashswap.pool_locator import ZERO_ADDRESS, pool_address
from flashswap.simulation import SimulatedChain


class FakeReader:
    """Live-reader stand-in: fixed reserves, factory answers from `pairs`"""

    def __init__(self, pairs=None):
        self.reserves = {
            pool_address(REGISTRY_1, TOKEN_A, TOKEN_B): (1000, 1000, 1),
            pool_address(REGISTRY_2, TOKEN_A, TOKEN_B): (1000, 1500, 1),
        }
        self.pairs = pairs or {}

    def get_reserves(self, pool):
        return self.reserves[pool]

    def get_pair(self, registry, token_a, token_b):
        return self.pairs.get(registry.address, pool_address(registry, token_a, token_b))


def make_config(owner=None, beneficiary=None, min_profit=0):
    return ArbConfig(
        origin_registry=REGISTRY_1,
        target_registry=REGISTRY_2,
        rpc_url="http://127.0.0.1:8545",
        owner=owner,
        beneficiary=beneficiary,
        min_profit=min_profit,
    )


ARGS = Namespace(token_a=TOKEN_A, token_b=TOKEN_B, amount_a=10, amount_b=0)


class TestDryRun:

    def test_profit_goes_to_configured_beneficiary(self):
        chain = SimulatedChain()
        result = main.dry_run(make_config(owner=OWNER, beneficiary=BENEFICIARY), FakeReader(), ARGS, chain)

        assert result.profit == 3
        assert chain.balance_of(TOKEN_B, BENEFICIARY) == 3
        assert chain.balance_of(TOKEN_B, OWNER) == 0

    def test_beneficiary_defaults_to_configured_owner(self):
        chain = SimulatedChain()
        main.dry_run(make_config(owner=OWNER), FakeReader(), ARGS, chain)
        assert chain.balance_of(TOKEN_B, OWNER) == 3

    def test_simulation_owner_without_config(self):
        chain = SimulatedChain()
        main.dry_run(make_config(), FakeReader(), ARGS, chain)
        assert chain.balance_of(TOKEN_B, main.SIM_OWNER) == 3


class TestMain:

    @pytest.fixture
    def run_main(self, tmp_path, monkeypatch):
        for key in ("ORIGIN_REGISTRY", "TARGET_REGISTRY", "OWNER_ADDRESS", "BENEFICIARY", "MIN_PROFIT"):
            monkeypatch.delenv(key, raising=False)
        config = tmp_path / "registries.json"
        config.write_text(json.dumps({"registries": {
            "UNISWAP_V2": {"factory": REGISTRY_1.address, "init_code_hash": REGISTRY_1.init_code_hash},
            "SUSHISWAP": {"factory": REGISTRY_2.address, "init_code_hash": REGISTRY_2.init_code_hash},
        }}))
        monkeypatch.setattr(main, "Web3", MagicMock())

        def _run(reader, *extra):
            monkeypatch.setattr(main, "Web3ReserveReader", lambda w3: reader)
            return main.main([TOKEN_A, TOKEN_B, "--amount-a", "10", "--config", str(config), *extra])
        return _run

    def test_preview(self, run_main, capsys):
        assert run_main(FakeReader()) == 0
        assert "Profit:       3" in capsys.readouterr().out

    def test_dry_run(self, run_main, capsys):
        assert run_main(FakeReader(), "--dry-run") == 0
        assert "profit forwarded: 3" in capsys.readouterr().out

    def test_registry_mismatch_stops_before_preview(self, run_main, capsys):
        reader = FakeReader(pairs={REGISTRY_2.address: ZERO_ADDRESS})
        assert run_main(reader) == 1
        out = capsys.readouterr().out
        assert "RegistryMismatch" in out
        assert "Profit:" not in out

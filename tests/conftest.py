"""
Shared fixtures: two registries with one A/B pool each on an in-memory chain.
"""

from types import SimpleNamespace

import pytest
from web3 import Web3

from flashswap.orchestrator import FlashArbitrageur
from flashswap.pool_locator import Registry
from flashswap.simulation import SimulatedChain, SimulatedRegistry

# TOKEN_A < TOKEN_B, so A is token0 in every pool
TOKEN_A = Web3.to_checksum_address("0x" + "11" * 20)
TOKEN_B = Web3.to_checksum_address("0x" + "22" * 20)

OWNER = Web3.to_checksum_address("0x" + "a1" * 20)
BENEFICIARY = Web3.to_checksum_address("0x" + "be" * 20)
ARB_ADDRESS = Web3.to_checksum_address("0x" + "c0" * 20)
LP = Web3.to_checksum_address("0x" + "b0" * 20)

REGISTRY_1 = Registry(address="0x" + "aa" * 20, init_code_hash="0x" + "01" * 32, name="R1")
REGISTRY_2 = Registry(address="0x" + "bb" * 20, init_code_hash="0x" + "02" * 32, name="R2")


def build_market(reserves1=(1000, 1000), reserves2=(1000, 1500)):
    """Chain with pool1 on REGISTRY_1 and pool2 on REGISTRY_2, reserves given as (A, B)."""
    chain = SimulatedChain()
    token_a = chain.create_token(TOKEN_A, "A")
    token_b = chain.create_token(TOKEN_B, "B")

    pools = []
    for registry, (reserve_a, reserve_b) in ((REGISTRY_1, reserves1), (REGISTRY_2, reserves2)):
        pool = SimulatedRegistry(chain, registry).create_pool(TOKEN_A, TOKEN_B)
        token_a.mint(LP, reserve_a)
        token_b.mint(LP, reserve_b)
        pool.add_liquidity(LP, reserve_a, reserve_b)
        pools.append(pool)

    arb = FlashArbitrageur(chain, ARB_ADDRESS, REGISTRY_1, REGISTRY_2, owner=OWNER, beneficiary=BENEFICIARY)
    chain.deploy(ARB_ADDRESS, arb)

    return SimpleNamespace(
        chain=chain,
        token_a=token_a,
        token_b=token_b,
        pool1=pools[0],
        pool2=pools[1],
        arb=arb,
    )


def chain_state(chain):
    """Everything a run may touch, for before/after comparison."""
    return dict(chain.balances), {addr: dict(state) for addr, state in chain.storage.items()}


@pytest.fixture
def market():
    return build_market()


@pytest.fixture(scope="session")
def market_factory():
    return build_market


@pytest.fixture(scope="session")
def state_of():
    return chain_state

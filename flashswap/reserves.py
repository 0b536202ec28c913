"""
Reserve Resolver

Locates a pool through the deterministic locator, reads its last-settled
reserve pair and orients it to the caller's token order.

Reserves are the snapshot taken at the pool's last settled swap/sync, not
its live balances: transfers made earlier in the same atomic run are not
reflected until the pool settles again.
"""

import logging
from typing import List, Protocol, Sequence, Tuple

from web3 import Web3

from .abi_loader import get_factory_abi, get_pair_abi
from .amm_math import get_amounts_in, get_amounts_out
from .errors import InvalidPath, RegistryMismatch
from .pool_locator import ZERO_ADDRESS, Registry, pool_address, sort_tokens

logger = logging.getLogger(__name__)


class PoolStateReader(Protocol):
    """Anything that can read a pool's (reserve0, reserve1, timestamp)"""

    def get_reserves(self, pool: str) -> Tuple[int, int, int]:
        ...


class ReserveResolver:
    """
    Resolve oriented reserve pairs for (registry, token_a, token_b).

    Example:
        >>> resolver = ReserveResolver(chain)
        >>> reserve_a, reserve_b = resolver.reserves_for(registry, token_a, token_b)
    """

    def __init__(self, reader: PoolStateReader):
        self.reader = reader

    def reserves_for(self, registry: Registry, token_a: str, token_b: str) -> Tuple[int, int]:
        token0, _ = sort_tokens(token_a, token_b)
        pool = pool_address(registry, token_a, token_b)

        reserve0, reserve1, _ = self.reader.get_reserves(pool)

        if Web3.to_checksum_address(token_a) == token0:
            return reserve0, reserve1
        return reserve1, reserve0

    def hops_for_path(self, registry: Registry, path: Sequence[str]) -> List[Tuple[int, int]]:
        """Oriented (reserve_in, reserve_out) for every hop of a token path."""
        if len(path) < 2:
            raise InvalidPath("path must contain at least two tokens")
        return [
            self.reserves_for(registry, path[i], path[i + 1])
            for i in range(len(path) - 1)
        ]


def get_amounts_out_for_path(
    resolver: ReserveResolver,
    registry: Registry,
    amount_in: int,
    path: Sequence[str]
) -> List[int]:
    """Amounts along a token path for an exact input, reading live reserves."""
    return get_amounts_out(amount_in, resolver.hops_for_path(registry, path))


def get_amounts_in_for_path(
    resolver: ReserveResolver,
    registry: Registry,
    amount_out: int,
    path: Sequence[str]
) -> List[int]:
    """Amounts along a token path for an exact output, reading live reserves."""
    return get_amounts_in(amount_out, resolver.hops_for_path(registry, path))


# ============================================
# Live chain reader
# ============================================

class Web3ReserveReader:
    """
    Read pair state from a deployed V2-style pair over RPC.

    Contract objects are cached per address.
    """

    def __init__(self, w3: Web3):
        self.w3 = w3
        self._pair_abi = get_pair_abi()
        self._factory_abi = get_factory_abi()
        self._contracts = {}

    def _contract(self, address: str, abi):
        address = self.w3.to_checksum_address(address)
        contract = self._contracts.get(address)
        if contract is None:
            contract = self.w3.eth.contract(address=address, abi=abi)
            self._contracts[address] = contract
        return contract

    def _pair(self, pool: str):
        return self._contract(pool, self._pair_abi)

    def get_reserves(self, pool: str) -> Tuple[int, int, int]:
        reserve0, reserve1, timestamp = self._pair(pool).functions.getReserves().call()
        logger.debug(f"getReserves({pool}) -> ({reserve0}, {reserve1}, {timestamp})")
        return reserve0, reserve1, timestamp

    def token0(self, pool: str) -> str:
        return self._pair(pool).functions.token0().call()

    def token1(self, pool: str) -> str:
        return self._pair(pool).functions.token1().call()

    def get_pair(self, registry: Registry, token_a: str, token_b: str) -> str:
        """Pair address the deployed factory reports, zero address when none."""
        factory = self._contract(registry.address, self._factory_abi)
        pair = factory.functions.getPair(
            self.w3.to_checksum_address(token_a),
            self.w3.to_checksum_address(token_b),
        ).call()
        return self.w3.to_checksum_address(pair)


def verify_registry(reader: Web3ReserveReader, registry: Registry, token_a: str, token_b: str) -> str:
    """
    Check the locator against the deployed factory for one pair.

    A wrong init code hash yields a well-formed address with no pool behind it.

    Raises:
        RegistryMismatch: the factory has no such pair, or reports another address
    """
    derived = pool_address(registry, token_a, token_b)
    deployed = reader.get_pair(registry, token_a, token_b)

    if deployed == ZERO_ADDRESS:
        raise RegistryMismatch(f"{registry.name or registry.address}: no pair deployed for {token_a}/{token_b}")
    if deployed != derived:
        raise RegistryMismatch(
            f"{registry.name or registry.address}: factory reports {deployed}, "
            f"locator derived {derived} (check init_code_hash)"
        )
    logger.debug(f"{registry.name or registry.address}: pair {derived} verified")
    return derived

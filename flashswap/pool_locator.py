"""
Pool Locator - deterministic CREATE2 pool addresses

A pair's address is a pure function of its registry (factory), the sorted
token pair and the registry's init code hash:

    keccak256(0xff ++ factory ++ keccak256(token0 ++ token1) ++ init_code_hash)[12:]

No RPC round-trip is needed once the registry is known. The init code hash
pins the derivation to one pool implementation; a wrong hash silently yields a
wrong address, so it must be verified against the deployed factory.
"""

from dataclasses import dataclass, field
from typing import Tuple

from web3 import Web3

from .errors import IdenticalTokens, ZeroToken

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

CREATE2_PREFIX = b"\xff"


@dataclass(frozen=True)
class Registry:
    """A pool registry (factory) and the code fingerprint of its pools"""
    address: str
    init_code_hash: str
    name: str = ""
    # Pre-computed for hot path
    address_bytes: bytes = field(default=b"", repr=False, compare=False)
    init_code_hash_bytes: bytes = field(default=b"", repr=False, compare=False)

    def __post_init__(self):
        address = Web3.to_checksum_address(self.address)
        code_hash = self.init_code_hash.lower()
        if not code_hash.startswith("0x") or len(code_hash) != 66:
            raise ValueError(f"init code hash must be 32 bytes hex: {self.init_code_hash}")

        object.__setattr__(self, "address", address)
        object.__setattr__(self, "init_code_hash", code_hash)
        object.__setattr__(self, "address_bytes", bytes.fromhex(address[2:]))
        object.__setattr__(self, "init_code_hash_bytes", bytes.fromhex(code_hash[2:]))


def sort_tokens(token_a: str, token_b: str) -> Tuple[str, str]:
    """
    Return the pair in canonical (ascending address) order.

    Raises:
        IdenticalTokens: both tokens are the same address
        ZeroToken: the lower token is the null address
    """
    token_a = Web3.to_checksum_address(token_a)
    token_b = Web3.to_checksum_address(token_b)

    if token_a == token_b:
        raise IdenticalTokens(f"identical tokens: {token_a}")

    if int(token_a, 16) < int(token_b, 16):
        token0, token1 = token_a, token_b
    else:
        token0, token1 = token_b, token_a

    if token0 == ZERO_ADDRESS:
        raise ZeroToken("token address is the zero address")

    return token0, token1


def pool_address(registry: Registry, token_a: str, token_b: str) -> str:
    """Compute the checksummed pool address for a token pair on a registry."""
    token0, token1 = sort_tokens(token_a, token_b)

    salt = Web3.keccak(bytes.fromhex(token0[2:]) + bytes.fromhex(token1[2:]))
    create2_input = CREATE2_PREFIX + registry.address_bytes + salt + registry.init_code_hash_bytes
    pool_hash = Web3.keccak(create2_input)[-20:]

    return Web3.to_checksum_address("0x" + bytes(pool_hash).hex())


resolve = pool_address

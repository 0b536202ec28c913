"""
In-memory execution environment

Supplies what a chain gives the arbitrage contract:
- one atomic unit of execution per transaction (snapshot / rollback)
- fungible tokens with standard transfer semantics
- constant-product pairs with Uniswap V2 flash swap behaviour
  (optimistic transfer -> callback -> fee-adjusted K check)

Used for previews, dry runs and tests. Pool addresses come from the same
deterministic locator the orchestrator uses, so a pool created through a
SimulatedRegistry lives exactly where the orchestrator expects it.
"""

import logging
from contextlib import contextmanager
from copy import deepcopy
from typing import Any, Dict, Iterator, Optional, Tuple

from web3 import Web3

from .amm_math import FEE_DENOMINATOR, FEE_NUMERATOR
from .pool_locator import Registry, pool_address, sort_tokens

logger = logging.getLogger(__name__)

# uint112 reserve slots, as in the V2 pair
MAX_RESERVE = 2 ** 112 - 1

FEE_INPUT_FACTOR = FEE_DENOMINATOR - FEE_NUMERATOR  # 3


class PoolError(Exception):
    """Raised by a simulated pool when its own checks fail"""
    pass


class SimulatedChain:
    """
    Ledger, contract registry and transaction boundary.

    All mutable state lives in `balances` and `storage` so a snapshot is a
    single deep copy.
    """

    def __init__(self, timestamp: int = 1):
        self.balances: Dict[Tuple[str, str], int] = {}
        self.storage: Dict[str, Dict[str, Any]] = {}
        self.contracts: Dict[str, Any] = {}
        self.timestamp = timestamp
        self.tx_count = 0
        self.revert_count = 0
        self._depth = 0

    # ------------------------------------------
    # Contracts
    # ------------------------------------------

    def deploy(self, address: str, contract: Any) -> Any:
        address = Web3.to_checksum_address(address)
        if address in self.contracts:
            raise ValueError(f"address already in use: {address}")
        self.contracts[address] = contract
        return contract

    def contract_at(self, address: str) -> Optional[Any]:
        return self.contracts.get(Web3.to_checksum_address(address))

    def token(self, address: str) -> "SimulatedToken":
        contract = self.contract_at(address)
        if not isinstance(contract, SimulatedToken):
            raise LookupError(f"no token deployed at {address}")
        return contract

    def pool(self, address: str) -> "ConstantProductPool":
        contract = self.contract_at(address)
        if not isinstance(contract, ConstantProductPool):
            raise LookupError(f"no pool deployed at {address}")
        return contract

    def create_token(self, address: str, symbol: str = "", decimals: int = 18) -> "SimulatedToken":
        return self.deploy(address, SimulatedToken(self, address, symbol, decimals))

    # ------------------------------------------
    # State
    # ------------------------------------------

    def balance_of(self, token: str, holder: str) -> int:
        key = (Web3.to_checksum_address(token), Web3.to_checksum_address(holder))
        return self.balances.get(key, 0)

    def _set_balance(self, token: str, holder: str, amount: int) -> None:
        key = (Web3.to_checksum_address(token), Web3.to_checksum_address(holder))
        self.balances[key] = amount

    def get_reserves(self, pool: str) -> Tuple[int, int, int]:
        return self.pool(pool).get_reserves()

    # ------------------------------------------
    # Transaction boundary
    # ------------------------------------------

    @contextmanager
    def atomic(self) -> Iterator["SimulatedChain"]:
        """
        All-or-nothing block: on any exception every balance and storage
        change made inside is undone, then the exception propagates.
        Nested blocks roll back to their own entry point.
        """
        snapshot = (deepcopy(self.balances), deepcopy(self.storage))
        outermost = self._depth == 0
        self._depth += 1
        try:
            yield self
        except Exception as e:
            self.balances, self.storage = snapshot
            if outermost:
                self.revert_count += 1
                logger.debug(f"transaction reverted: {type(e).__name__}: {e}")
            raise
        finally:
            self._depth -= 1

        if outermost:
            self.tx_count += 1
            self.timestamp += 1

    def transact(self, func, *args, **kwargs):
        """Run `func` as one transaction."""
        with self.atomic():
            return func(*args, **kwargs)


class SimulatedToken:
    """Plain fungible token: no transfer fee, no hooks."""

    def __init__(self, chain: SimulatedChain, address: str, symbol: str = "", decimals: int = 18):
        self.chain = chain
        self.address = Web3.to_checksum_address(address)
        self.symbol = symbol
        self.decimals = decimals

    def balance_of(self, holder: str) -> int:
        return self.chain.balance_of(self.address, holder)

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        if amount < 0:
            return False
        balance = self.balance_of(sender)
        if balance < amount:
            return False
        self.chain._set_balance(self.address, sender, balance - amount)
        self.chain._set_balance(self.address, to, self.balance_of(to) + amount)
        return True

    def mint(self, to: str, amount: int) -> None:
        self.chain._set_balance(self.address, to, self.balance_of(to) + amount)

    def __repr__(self) -> str:
        return f"SimulatedToken({self.symbol or self.address})"


class ConstantProductPool:
    """
    Uniswap V2 style pair.

    swap() releases the requested outputs first, invokes the recipient's
    `on_flash_swap_received(caller, amount0, amount1, data)` when `data` is
    non-empty, and only then checks that the fee-adjusted product of the
    balances did not decrease.
    """

    def __init__(self, chain: SimulatedChain, address: str, token_a: str, token_b: str):
        self.chain = chain
        self.address = Web3.to_checksum_address(address)
        self._token0, self._token1 = sort_tokens(token_a, token_b)
        chain.storage[self.address] = {
            "reserve0": 0,
            "reserve1": 0,
            "timestamp": 0,
            "unlocked": True,
        }

    @property
    def _state(self) -> Dict[str, Any]:
        return self.chain.storage[self.address]

    def token0(self) -> str:
        return self._token0

    def token1(self) -> str:
        return self._token1

    def get_reserves(self) -> Tuple[int, int, int]:
        state = self._state
        return state["reserve0"], state["reserve1"], state["timestamp"]

    def _update(self, balance0: int, balance1: int) -> None:
        if balance0 > MAX_RESERVE or balance1 > MAX_RESERVE:
            raise PoolError("OVERFLOW")
        state = self._state
        state["reserve0"] = balance0
        state["reserve1"] = balance1
        state["timestamp"] = self.chain.timestamp

    def _balances(self) -> Tuple[int, int]:
        return (
            self.chain.balance_of(self._token0, self.address),
            self.chain.balance_of(self._token1, self.address),
        )

    def _safe_transfer(self, token: str, to: str, amount: int) -> None:
        if not self.chain.token(token).transfer(self.address, to, amount):
            raise PoolError("TRANSFER_FAILED")

    def sync(self) -> None:
        """Force reserves to match balances."""
        self._update(*self._balances())

    def add_liquidity(self, provider: str, amount0: int, amount1: int) -> None:
        """Move liquidity from `provider` into the pool and settle reserves."""
        if amount0 <= 0 or amount1 <= 0:
            raise PoolError("INSUFFICIENT_LIQUIDITY_MINTED")
        if not self.chain.token(self._token0).transfer(provider, self.address, amount0):
            raise PoolError("TRANSFER_FAILED")
        if not self.chain.token(self._token1).transfer(provider, self.address, amount1):
            raise PoolError("TRANSFER_FAILED")
        self.sync()

    def swap(self, amount0_out: int, amount1_out: int, to: str, data: bytes = b"") -> None:
        state = self._state
        if not state["unlocked"]:
            raise PoolError("LOCKED")
        if amount0_out < 0 or amount1_out < 0 or (amount0_out == 0 and amount1_out == 0):
            raise PoolError("INSUFFICIENT_OUTPUT_AMOUNT")

        reserve0, reserve1, _ = self.get_reserves()
        if amount0_out >= reserve0 or amount1_out >= reserve1:
            raise PoolError("INSUFFICIENT_LIQUIDITY")

        to = Web3.to_checksum_address(to)
        if to in (self._token0, self._token1):
            raise PoolError("INVALID_TO")

        state["unlocked"] = False
        try:
            # Optimistic transfer
            if amount0_out > 0:
                self._safe_transfer(self._token0, to, amount0_out)
            if amount1_out > 0:
                self._safe_transfer(self._token1, to, amount1_out)

            if data:
                receiver = self.chain.contract_at(to)
                if receiver is None or not hasattr(receiver, "on_flash_swap_received"):
                    raise PoolError("CALLBACK_TARGET")
                receiver.on_flash_swap_received(self.address, amount0_out, amount1_out, data)

            balance0, balance1 = self._balances()
            amount0_in = balance0 - (reserve0 - amount0_out) if balance0 > reserve0 - amount0_out else 0
            amount1_in = balance1 - (reserve1 - amount1_out) if balance1 > reserve1 - amount1_out else 0
            if amount0_in <= 0 and amount1_in <= 0:
                raise PoolError("INSUFFICIENT_INPUT_AMOUNT")

            balance0_adjusted = balance0 * FEE_DENOMINATOR - amount0_in * FEE_INPUT_FACTOR
            balance1_adjusted = balance1 * FEE_DENOMINATOR - amount1_in * FEE_INPUT_FACTOR
            if balance0_adjusted * balance1_adjusted < reserve0 * reserve1 * FEE_DENOMINATOR ** 2:
                raise PoolError("K")

            self._update(balance0, balance1)
            logger.debug(
                f"swap {self.address}: in=({amount0_in}, {amount1_in}) "
                f"out=({amount0_out}, {amount1_out}) -> reserves ({balance0}, {balance1})"
            )
        finally:
            # storage may have been replaced by a nested rollback
            if self.address in self.chain.storage:
                self.chain.storage[self.address]["unlocked"] = True

    def __repr__(self) -> str:
        return f"ConstantProductPool({self.address})"


class SimulatedRegistry:
    """Factory that deploys pools at their locator-derived addresses."""

    def __init__(self, chain: SimulatedChain, registry: Registry):
        self.chain = chain
        self.registry = registry

    def create_pool(self, token_a: str, token_b: str) -> ConstantProductPool:
        address = pool_address(self.registry, token_a, token_b)
        if self.chain.contract_at(address) is not None:
            raise PoolError("PAIR_EXISTS")
        pool = ConstantProductPool(self.chain, address, token_a, token_b)
        self.chain.deploy(address, pool)
        logger.debug(f"{self.registry.name or self.registry.address}: pool {address} created")
        return pool

    def get_pool(self, token_a: str, token_b: str) -> Optional[ConstantProductPool]:
        contract = self.chain.contract_at(pool_address(self.registry, token_a, token_b))
        return contract if isinstance(contract, ConstantProductPool) else None

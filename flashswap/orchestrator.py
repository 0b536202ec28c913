#!/usr/bin/env python3
"""
Flash Swap Arbitrage Orchestrator

Borrow -> callback -> verify -> repay -> forward, in one atomic run:

1. start_arbitrage() flash-borrows one token from the origin pool (registry 1)
2. The origin pool calls back on_flash_swap_received() mid-swap
3. The debt owed to the origin pool is computed from its reserves (rounded up)
4. The borrowed tokens are sold into the target pool (registry 2)
5. The run aborts with Unprofitable unless the receipt beats the debt
6. The debt is repaid, the surplus goes to the beneficiary

The execution environment supplies the atomicity: any exception raised at any
step undoes every transfer of the run.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, ContextManager, Optional, Protocol, Tuple

from eth_abi import decode, encode
from web3 import Web3

from .amm_math import get_amount_in, get_amount_out
from .errors import (
    AmbiguousBorrow,
    IdenticalTokens,
    InvalidAmount,
    InvalidCallbackData,
    InvalidState,
    InvalidTokenPair,
    NoAmountBorrowed,
    TransferFailed,
    Unauthorized,
    UnauthorizedCallback,
    Unprofitable,
)
from .pool_locator import Registry, pool_address, sort_tokens
from .reserves import ReserveResolver

logger = logging.getLogger(__name__)

# Callback data layout: abi.encode(address targetPool, uint256 minProfit)
CALLBACK_DATA_TYPES = ["address", "uint256"]
CALLBACK_DATA_SIZE = 64


class ExecutionEnvironment(Protocol):
    """What the orchestrator needs from the chain it runs on"""

    def atomic(self) -> ContextManager[Any]:
        ...

    def pool(self, address: str) -> Any:
        ...

    def token(self, address: str) -> Any:
        ...

    def get_reserves(self, pool: str) -> Tuple[int, int, int]:
        ...


class ArbState(Enum):
    """Orchestration state of the current (or last) run"""
    IDLE = "idle"
    BORROW_REQUESTED = "borrow_requested"
    IN_CALLBACK = "in_callback"
    RECEIPT_VERIFIED = "receipt_verified"
    REPAID = "repaid"
    PROFIT_FORWARDED = "profit_forwarded"
    REVERTED = "reverted"


TERMINAL_STATES = (ArbState.PROFIT_FORWARDED, ArbState.REVERTED)


@dataclass(frozen=True)
class ArbitrageContext:
    """Per-run record threaded through the callback, never persisted"""
    origin_pool: str
    target_pool: str
    borrowed_token: str
    debt_token: str
    borrowed_amount: int
    debt_amount: int


@dataclass
class ArbitrageResult:
    """Outcome (or preview) of one arbitrage"""
    borrowed_token: str
    debt_token: str
    borrowed_amount: int
    debt_amount: int
    amount_received: int
    profit: int
    profitable: bool
    origin_pool: str = ""
    target_pool: str = ""


@dataclass
class _PendingRun:
    origin_pool: str
    target_pool: str
    min_profit: int
    result: Optional[ArbitrageResult] = None


# ============================================
# Callback data codec
# ============================================

def encode_callback_data(target_pool: str, min_profit: int = 0) -> bytes:
    return encode(CALLBACK_DATA_TYPES, [Web3.to_checksum_address(target_pool), min_profit])


def decode_callback_data(data: bytes) -> Tuple[str, int]:
    """Decode (target_pool, min_profit), rejecting anything but the exact layout."""
    if not isinstance(data, (bytes, bytearray)) or len(data) != CALLBACK_DATA_SIZE:
        raise InvalidCallbackData(
            f"expected {CALLBACK_DATA_SIZE} bytes of callback data, got "
            f"{len(data) if isinstance(data, (bytes, bytearray)) else type(data).__name__}"
        )
    # the address word must be left-padded with zeros
    if any(data[:12]):
        raise InvalidCallbackData("malformed target pool word")

    target_pool, min_profit = decode(CALLBACK_DATA_TYPES, bytes(data))
    return Web3.to_checksum_address(target_pool), min_profit


def _check_amounts(amount_a: int, amount_b: int) -> None:
    for amount in (amount_a, amount_b):
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise InvalidAmount(f"amounts must be non-negative integers, got {amount!r}")
    if amount_a == 0 and amount_b == 0:
        raise InvalidAmount("one of amount_a / amount_b must be positive")
    if amount_a > 0 and amount_b > 0:
        raise AmbiguousBorrow("borrow exactly one side of the pair")


# ============================================
# Off-chain preview
# ============================================

def preview_arbitrage(
    resolver: ReserveResolver,
    origin_registry: Registry,
    target_registry: Registry,
    token_a: str,
    token_b: str,
    amount_a: int,
    amount_b: int
) -> ArbitrageResult:
    """
    Compute debt, receipt and profit of a run from current reserves.

    No state is touched and an unprofitable run is reported, not raised.
    Reads the target pool's settled reserves, as the callback does.
    """
    if Web3.to_checksum_address(token_a) == Web3.to_checksum_address(token_b):
        raise InvalidTokenPair(f"token pair must be distinct: {token_a}")
    _check_amounts(amount_a, amount_b)

    if amount_a > 0:
        borrowed_token, debt_token, borrowed_amount = token_a, token_b, amount_a
    else:
        borrowed_token, debt_token, borrowed_amount = token_b, token_a, amount_b

    reserve_borrowed, reserve_debt = resolver.reserves_for(origin_registry, borrowed_token, debt_token)
    debt_amount = get_amount_in(borrowed_amount, reserve_debt, reserve_borrowed)

    reserve_borrowed_t, reserve_debt_t = resolver.reserves_for(target_registry, borrowed_token, debt_token)
    amount_received = get_amount_out(borrowed_amount, reserve_borrowed_t, reserve_debt_t)

    profit = amount_received - debt_amount
    return ArbitrageResult(
        borrowed_token=Web3.to_checksum_address(borrowed_token),
        debt_token=Web3.to_checksum_address(debt_token),
        borrowed_amount=borrowed_amount,
        debt_amount=debt_amount,
        amount_received=amount_received,
        profit=profit,
        profitable=profit > 0,
        origin_pool=pool_address(origin_registry, token_a, token_b),
        target_pool=pool_address(target_registry, token_a, token_b),
    )


# ============================================
# Orchestrator
# ============================================

class FlashArbitrageur:
    """
    Two-pool flash swap arbitrage contract.

    Example:
        >>> arb = FlashArbitrageur(chain, ARB_ADDRESS, uniswap, sushiswap, owner=OWNER)
        >>> chain.deploy(ARB_ADDRESS, arb)
        >>> result = arb.start_arbitrage(OWNER, WETH, DAI, 10**18, 0)
    """

    def __init__(
        self,
        chain: ExecutionEnvironment,
        address: str,
        origin_registry: Registry,
        target_registry: Registry,
        owner: str,
        beneficiary: Optional[str] = None
    ):
        self.chain = chain
        self.address = Web3.to_checksum_address(address)
        self.origin_registry = origin_registry
        self.target_registry = target_registry
        self.owner = Web3.to_checksum_address(owner)
        self.beneficiary = Web3.to_checksum_address(beneficiary or owner)
        self.resolver = ReserveResolver(chain)

        self.state = ArbState.IDLE
        self.last_state = ArbState.IDLE
        self._pending: Optional[_PendingRun] = None

        # Stats
        self.run_count = 0
        self.success_count = 0

    # ------------------------------------------
    # State machine
    # ------------------------------------------

    def _transition(self, expected: ArbState, new: ArbState) -> None:
        if self.state != expected:
            raise InvalidState(
                f"invalid transition {self.state.value} -> {new.value}"
            )
        logger.debug(f"{expected.value} -> {new.value}")
        self.state = new

    def _require_owner(self, sender: str) -> None:
        if Web3.to_checksum_address(sender) != self.owner:
            raise Unauthorized(f"{sender} is not the owner")

    def _transfer(self, token: str, to: str, amount: int) -> None:
        if not self.chain.token(token).transfer(self.address, to, amount):
            raise TransferFailed(f"transfer of {amount} {token} to {to} failed")

    # ------------------------------------------
    # Entry point
    # ------------------------------------------

    def start_arbitrage(
        self,
        sender: str,
        token_a: str,
        token_b: str,
        amount_a: int,
        amount_b: int,
        min_profit: int = 0
    ) -> ArbitrageResult:
        """
        Flash-borrow `amount_a` of token_a or `amount_b` of token_b from the
        origin pool and run the arbitrage against the target pool.

        Exactly one amount must be positive. The run is atomic: on any error
        the chain state is exactly as before and the error is re-raised.
        """
        self._require_owner(sender)
        if self._pending is not None:
            raise InvalidState("an arbitrage is already in flight")

        try:
            token0, _ = sort_tokens(token_a, token_b)
        except IdenticalTokens as e:
            raise InvalidTokenPair(str(e)) from e
        _check_amounts(amount_a, amount_b)
        if not isinstance(min_profit, int) or min_profit < 0:
            raise InvalidAmount(f"min_profit must be a non-negative integer, got {min_profit!r}")

        origin_pool = pool_address(self.origin_registry, token_a, token_b)
        target_pool = pool_address(self.target_registry, token_a, token_b)

        if Web3.to_checksum_address(token_a) == token0:
            amount0, amount1 = amount_a, amount_b
        else:
            amount0, amount1 = amount_b, amount_a

        self.run_count += 1
        self.state = ArbState.IDLE
        self._pending = _PendingRun(origin_pool, target_pool, min_profit)
        try:
            with self.chain.atomic():
                self._transition(ArbState.IDLE, ArbState.BORROW_REQUESTED)
                logger.debug(f"flash borrow ({amount0}, {amount1}) from {origin_pool}")
                self.chain.pool(origin_pool).swap(
                    amount0, amount1, self.address, encode_callback_data(target_pool, min_profit)
                )
                if self.state != ArbState.PROFIT_FORWARDED:
                    # the pool returned without calling back
                    raise InvalidState("origin pool did not invoke the callback")
            result = self._pending.result
        except Exception as e:
            self.state = ArbState.REVERTED
            logger.warning(f"arbitrage reverted: {type(e).__name__}: {e}")
            raise
        finally:
            self.last_state = self.state
            self.state = ArbState.IDLE
            self._pending = None

        self.success_count += 1
        logger.info(
            f"arbitrage done: borrowed {result.borrowed_amount} {result.borrowed_token}, "
            f"repaid {result.debt_amount}, profit {result.profit} {result.debt_token}"
        )
        return result

    # ------------------------------------------
    # Flash swap callback
    # ------------------------------------------

    def _verify_caller(self, caller: str) -> Tuple[str, str, str]:
        """Check the callback comes from the pending origin pool; return (pool, token0, token1)."""
        if self._pending is None:
            raise UnauthorizedCallback("no arbitrage in flight")

        caller = Web3.to_checksum_address(caller)
        if caller != self._pending.origin_pool:
            raise UnauthorizedCallback(f"unexpected callback caller {caller}")

        pool = self.chain.pool(caller)
        token0, token1 = pool.token0(), pool.token1()
        if pool_address(self.origin_registry, token0, token1) != caller:
            raise UnauthorizedCallback(f"{caller} is not a registry pool for its tokens")
        return caller, token0, token1

    def on_flash_swap_received(self, caller: str, amount0: int, amount1: int, data: bytes) -> None:
        """
        Invoked by the origin pool after it released the borrowed tokens and
        before it checks its invariant.
        """
        origin_pool, token0, token1 = self._verify_caller(caller)

        if amount0 == 0 and amount1 == 0:
            raise NoAmountBorrowed("flash swap released no tokens")
        if amount0 != 0 and amount1 != 0:
            raise AmbiguousBorrow(f"both sides borrowed: ({amount0}, {amount1})")

        self._transition(ArbState.BORROW_REQUESTED, ArbState.IN_CALLBACK)

        target_pool, min_profit = decode_callback_data(data)
        if target_pool != pool_address(self.target_registry, token0, token1):
            raise InvalidCallbackData(f"target pool {target_pool} does not match the pair")

        if amount0 > 0:
            borrowed_token, debt_token, borrowed_amount = token0, token1, amount0
        else:
            borrowed_token, debt_token, borrowed_amount = token1, token0, amount1

        # Debt owed to the origin pool, from its last-settled reserves
        reserve_borrowed, reserve_debt = self.resolver.reserves_for(
            self.origin_registry, borrowed_token, debt_token
        )
        debt_amount = get_amount_in(borrowed_amount, reserve_debt, reserve_borrowed)

        ctx = ArbitrageContext(
            origin_pool=origin_pool,
            target_pool=target_pool,
            borrowed_token=borrowed_token,
            debt_token=debt_token,
            borrowed_amount=borrowed_amount,
            debt_amount=debt_amount,
        )

        # Sell the borrowed tokens into the target pool
        self._transfer(borrowed_token, target_pool, borrowed_amount)
        reserve_borrowed_t, reserve_debt_t = self.resolver.reserves_for(
            self.target_registry, borrowed_token, debt_token
        )
        amount_received = get_amount_out(borrowed_amount, reserve_borrowed_t, reserve_debt_t)

        if amount_received <= debt_amount:
            raise Unprofitable(f"receipt {amount_received} does not cover debt {debt_amount}")
        profit = amount_received - debt_amount
        if profit < min_profit:
            raise Unprofitable(f"profit {profit} below minimum {min_profit}")
        self._transition(ArbState.IN_CALLBACK, ArbState.RECEIPT_VERIFIED)

        self._settle(ctx, amount_received)

        self._pending.result = ArbitrageResult(
            borrowed_token=borrowed_token,
            debt_token=debt_token,
            borrowed_amount=borrowed_amount,
            debt_amount=debt_amount,
            amount_received=amount_received,
            profit=profit,
            profitable=True,
            origin_pool=origin_pool,
            target_pool=target_pool,
        )

    def _settle(self, ctx: ArbitrageContext, amount_received: int) -> None:
        """Realize the receipt, repay the origin pool, forward the surplus."""
        if ctx.debt_token == self.chain.pool(ctx.target_pool).token0():
            amount0_out, amount1_out = amount_received, 0
        else:
            amount0_out, amount1_out = 0, amount_received
        self.chain.pool(ctx.target_pool).swap(amount0_out, amount1_out, self.address, b"")

        self._transfer(ctx.debt_token, ctx.origin_pool, ctx.debt_amount)
        self._transition(ArbState.RECEIPT_VERIFIED, ArbState.REPAID)

        self._transfer(ctx.debt_token, self.beneficiary, amount_received - ctx.debt_amount)
        self._transition(ArbState.REPAID, ArbState.PROFIT_FORWARDED)

    # ------------------------------------------
    # Owner operations
    # ------------------------------------------

    def sweep(self, sender: str, token: str, to: Optional[str] = None) -> int:
        """Send the whole balance of `token` held by this contract to `to` (default: beneficiary)."""
        self._require_owner(sender)
        recipient = Web3.to_checksum_address(to or self.beneficiary)

        with self.chain.atomic():
            amount = self.chain.token(token).balance_of(self.address)
            if amount > 0:
                self._transfer(token, recipient, amount)

        logger.info(f"swept {amount} of {token} to {recipient}")
        return amount

    def get_stats(self):
        return {
            "address": self.address,
            "run_count": self.run_count,
            "success_count": self.success_count,
            "last_state": self.last_state.value,
        }

"""
Constant-product AMM math (Uniswap V2 style)

Integer-only arithmetic, bit-exact with the on-chain pair:
- 0.3% swap fee applied to the input as 997/1000
- amount_out rounds down, amount_in rounds up (in the pool's favor)
- every intermediate value is checked against uint256, overflow is fatal
"""

from typing import List, Sequence, Tuple

from .errors import ArithmeticOverflow, InsufficientLiquidity, InvalidInput, InvalidPath

# ============================================
# Pre-computed Constants
# ============================================

MAX_UINT256 = 2 ** 256 - 1

FEE_NUMERATOR = 997
FEE_DENOMINATOR = 1000


# ============================================
# Checked Arithmetic
# ============================================

def _checked(value: int) -> int:
    if value < 0 or value > MAX_UINT256:
        raise ArithmeticOverflow(f"value out of uint256 range: {value}")
    return value


def _mul(a: int, b: int) -> int:
    return _checked(a * b)


def _add(a: int, b: int) -> int:
    return _checked(a + b)


def _sub(a: int, b: int) -> int:
    return _checked(a - b)


def _require_reserves(reserve_in: int, reserve_out: int) -> None:
    if reserve_in <= 0 or reserve_out <= 0:
        raise InsufficientLiquidity(
            f"reserves must be positive (reserve_in={reserve_in}, reserve_out={reserve_out})"
        )


# ============================================
# Single-hop Functions
# ============================================

def get_amount_out(amount_in: int, reserve_in: int, reserve_out: int) -> int:
    """
    Maximum output for an exact input, fee included.

    amount_out = floor(amount_in*997 * reserve_out / (reserve_in*1000 + amount_in*997))
    """
    if amount_in <= 0:
        raise InvalidInput(f"amount_in must be positive, got {amount_in}")
    _require_reserves(reserve_in, reserve_out)

    amount_in_with_fee = _mul(amount_in, FEE_NUMERATOR)
    numerator = _mul(amount_in_with_fee, reserve_out)
    denominator = _add(_mul(reserve_in, FEE_DENOMINATOR), amount_in_with_fee)

    return numerator // denominator


def get_amount_in(amount_out: int, reserve_in: int, reserve_out: int) -> int:
    """
    Minimum input required for an exact output, fee included.

    Rounds up by adding 1 after the integer division, so the result is never
    short of what the pool's invariant check needs.
    """
    if amount_out <= 0:
        raise InvalidInput(f"amount_out must be positive, got {amount_out}")
    _require_reserves(reserve_in, reserve_out)
    if amount_out >= reserve_out:
        raise InsufficientLiquidity(
            f"amount_out {amount_out} exceeds available reserve {reserve_out}"
        )

    numerator = _mul(_mul(reserve_in, amount_out), FEE_DENOMINATOR)
    denominator = _mul(_sub(reserve_out, amount_out), FEE_NUMERATOR)

    return _add(numerator // denominator, 1)


def quote(amount_a: int, reserve_a: int, reserve_b: int) -> int:
    """Proportional conversion at the current reserve ratio, no fee."""
    if amount_a <= 0:
        raise InvalidInput(f"amount_a must be positive, got {amount_a}")
    _require_reserves(reserve_a, reserve_b)

    return _mul(amount_a, reserve_b) // reserve_a


# ============================================
# Multi-hop Functions
# ============================================

def _require_path(hops: Sequence[Tuple[int, int]]) -> None:
    # a path of N tokens has N - 1 hops
    if len(hops) + 1 < 2:
        raise InvalidPath("path must contain at least two tokens")
    for reserve_in, reserve_out in hops:
        _require_reserves(reserve_in, reserve_out)


def get_amounts_out(amount_in: int, hops: Sequence[Tuple[int, int]]) -> List[int]:
    """
    Chain get_amount_out across ordered (reserve_in, reserve_out) hops.

    Returns [amount_in, out_hop1, out_hop2, ...]. All hops are validated
    before anything is computed.
    """
    _require_path(hops)
    if amount_in <= 0:
        raise InvalidInput(f"amount_in must be positive, got {amount_in}")

    amounts = [amount_in]
    for reserve_in, reserve_out in hops:
        amounts.append(get_amount_out(amounts[-1], reserve_in, reserve_out))
    return amounts


def get_amounts_in(amount_out: int, hops: Sequence[Tuple[int, int]]) -> List[int]:
    """
    Chain get_amount_in backwards across ordered (reserve_in, reserve_out) hops.

    Returns [in_hop1, ..., amount_out] in path order.
    """
    _require_path(hops)
    if amount_out <= 0:
        raise InvalidInput(f"amount_out must be positive, got {amount_out}")

    amounts = [amount_out]
    for reserve_in, reserve_out in reversed(hops):
        amounts.insert(0, get_amount_in(amounts[0], reserve_in, reserve_out))
    return amounts

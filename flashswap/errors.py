"""
FlashSwap error taxonomy

Every failure inside an arbitrage run is raised synchronously and is never
recovered locally: the atomic wrapper of the execution environment rolls the
whole run back and re-raises the original exception to the caller.
"""


class ArbitrageError(Exception):
    """Base class for all arbitrage engine errors"""
    pass


# ============================================
# Math
# ============================================

class InvalidInput(ArbitrageError):
    """A math precondition was violated (zero amount, bad path...)"""
    pass


class InsufficientLiquidity(InvalidInput):
    """Reserves are empty or cannot cover the requested output"""
    pass


class InvalidPath(InvalidInput):
    """A multi-hop path has fewer than two tokens"""
    pass


class ArithmeticOverflow(ArbitrageError):
    """An intermediate value does not fit in uint256"""
    pass


# ============================================
# Pool locator
# ============================================

class IdenticalTokens(ArbitrageError):
    """Both sides of a pair are the same token"""
    pass


class ZeroToken(ArbitrageError):
    """The lower-ordered token is the null address"""
    pass


# ============================================
# Orchestrator
# ============================================

class InvalidTokenPair(ArbitrageError):
    pass


class InvalidAmount(ArbitrageError):
    pass


class NoAmountBorrowed(ArbitrageError):
    pass


class AmbiguousBorrow(ArbitrageError):
    """Both token slots of a flash swap are non-zero"""
    pass


class Unprofitable(ArbitrageError):
    """The second pool does not return enough to repay the first"""
    pass


class InvalidCallbackData(ArbitrageError):
    pass


class UnauthorizedCallback(ArbitrageError):
    """The flash swap callback did not come from the expected origin pool"""
    pass


class Unauthorized(ArbitrageError):
    """The caller is not allowed to use an owner-only operation"""
    pass


class TransferFailed(ArbitrageError):
    pass


class InvalidState(ArbitrageError):
    """The orchestrator was driven out of its state machine order"""
    pass


class RegistryMismatch(ArbitrageError):
    """A registry's deployed pair differs from the locally derived address"""
    pass

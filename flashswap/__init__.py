"""
FlashSwap: 两池闪电兑换套利引擎
恒定乘积 AMM 数学、池地址推导、储备读取与原子套利编排
"""

from .amm_math import get_amount_in, get_amount_out, get_amounts_in, get_amounts_out, quote
from .config_loader import ArbConfig, ConfigLoader, ConfigValidationError
from .errors import ArbitrageError, InvalidState, RegistryMismatch
from .orchestrator import ArbitrageContext, ArbitrageResult, ArbState, FlashArbitrageur, preview_arbitrage
from .pool_locator import Registry, pool_address, resolve, sort_tokens
from .reserves import ReserveResolver, Web3ReserveReader, verify_registry

__all__ = [
    "get_amount_in",
    "get_amount_out",
    "get_amounts_in",
    "get_amounts_out",
    "quote",
    "ArbConfig",
    "ConfigLoader",
    "ConfigValidationError",
    "ArbitrageError",
    "InvalidState",
    "RegistryMismatch",
    "ArbitrageContext",
    "ArbitrageResult",
    "ArbState",
    "FlashArbitrageur",
    "preview_arbitrage",
    "Registry",
    "pool_address",
    "resolve",
    "sort_tokens",
    "ReserveResolver",
    "Web3ReserveReader",
    "verify_registry",
]

"""
FlashSwap ABI 加载器

从本地 abis/ 目录加载并缓存合约 ABI。
找不到文件时，常用的 V2 Pair / Factory ABI 会回退到内置的最小版本。
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional


class ABILoadError(Exception):
    """ABI 加载失败时抛出的异常"""
    pass


# 已加载 ABI 的缓存（模块级别）
_abi_cache: Dict[str, List[Dict[str, Any]]] = {}


# V2 Pair 最小 ABI（储备读取 + flash swap）
MINIMAL_PAIR_ABI: List[Dict[str, Any]] = [
    {
        "inputs": [],
        "name": "getReserves",
        "outputs": [
            {"name": "reserve0", "type": "uint112"},
            {"name": "reserve1", "type": "uint112"},
            {"name": "blockTimestampLast", "type": "uint32"}
        ],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "token0",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "token1",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [
            {"name": "amount0Out", "type": "uint256"},
            {"name": "amount1Out", "type": "uint256"},
            {"name": "to", "type": "address"},
            {"name": "data", "type": "bytes"}
        ],
        "name": "swap",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    }
]


# V2 Factory 最小 ABI（用于核对 init code hash）
MINIMAL_FACTORY_ABI: List[Dict[str, Any]] = [
    {
        "inputs": [
            {"name": "tokenA", "type": "address"},
            {"name": "tokenB", "type": "address"}
        ],
        "name": "getPair",
        "outputs": [{"name": "pair", "type": "address"}],
        "stateMutability": "view",
        "type": "function"
    }
]


def _find_abis_directory() -> Optional[Path]:
    """
    定位 abis 目录

    依次查找项目根目录和当前工作目录，找不到时返回 None。
    """
    current = Path(__file__).resolve().parent

    search_paths = [
        current.parent / "abis",   # 项目根目录 / abis
        Path.cwd() / "abis",       # 当前工作目录 / abis
    ]

    for path in search_paths:
        if path.exists() and path.is_dir():
            return path
    return None


def get_abi_path(file_name: str) -> Optional[Path]:
    """获取 ABI 文件的完整路径（带或不带 .json 扩展名）"""
    abis_dir = _find_abis_directory()
    if abis_dir is None:
        return None

    if not file_name.endswith(".json"):
        file_name = f"{file_name}.json"

    return abis_dir / file_name


def load_abi(file_name: str, use_cache: bool = True) -> List[Dict[str, Any]]:
    """
    从 abis 目录加载合约 ABI

    支持原始 ABI 数组以及 {"abi": [...]} 包装格式。

    异常:
        ABILoadError: 文件不存在或 JSON 格式无效
    """
    if not file_name.endswith(".json"):
        file_name = f"{file_name}.json"

    if use_cache and file_name in _abi_cache:
        return _abi_cache[file_name]

    abi_path = get_abi_path(file_name)
    if abi_path is None or not abi_path.exists():
        raise ABILoadError(f"ABI 文件不存在: {file_name}")

    try:
        with open(abi_path, "r", encoding="utf-8") as f:
            content = json.load(f)
    except json.JSONDecodeError as e:
        raise ABILoadError(f"{abi_path} 中的 JSON 格式无效: {e}")

    if isinstance(content, dict) and "abi" in content:
        abi = content["abi"]
    elif isinstance(content, list):
        abi = content
    else:
        raise ABILoadError(
            f"{file_name} 中的 ABI 格式无效。"
            f"期望列表或带有 'abi' 键的字典，得到 {type(content).__name__}"
        )

    if use_cache:
        _abi_cache[file_name] = abi

    return abi


def clear_abi_cache() -> None:
    """清除 ABI 缓存以强制重新加载"""
    _abi_cache.clear()
    get_pair_abi.cache_clear()
    get_factory_abi.cache_clear()


@lru_cache(maxsize=1)
def get_pair_abi() -> List[Dict[str, Any]]:
    """获取 V2 Pair ABI，文件不存在时返回内置最小 ABI"""
    try:
        return load_abi("uniswap_v2_pair")
    except ABILoadError:
        return MINIMAL_PAIR_ABI


@lru_cache(maxsize=1)
def get_factory_abi() -> List[Dict[str, Any]]:
    """获取 V2 Factory ABI，文件不存在时返回内置最小 ABI"""
    try:
        return load_abi("uniswap_v2_factory")
    except ABILoadError:
        return MINIMAL_FACTORY_ABI

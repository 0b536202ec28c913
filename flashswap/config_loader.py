"""
FlashSwap 配置加载器

负责加载和验证注册表（工厂）配置以及环境变量中的运行参数。
将静态 JSON 配置与 .env 结合，地址类配置在加载时统一校验。
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .pool_locator import Registry


@dataclass
class ArbConfig:
    """一次套利运行所需的完整配置"""

    origin_registry: Registry
    target_registry: Registry
    rpc_url: str
    rpc_timeout: int = 10
    owner: Optional[str] = None
    beneficiary: Optional[str] = None
    min_profit: int = 0


class ConfigValidationError(Exception):
    """配置验证失败时抛出的异常"""
    pass


def _is_hex(value: str, size: int) -> bool:
    if not isinstance(value, str) or not value.startswith("0x") or len(value) != 2 + size * 2:
        return False
    try:
        int(value[2:], 16)
    except ValueError:
        return False
    return True


class ConfigLoader:
    """
    FlashSwap 配置管理器

    从 JSON 文件加载注册表配置，并与环境变量中的运行参数结合。

    使用示例:
        >>> loader = ConfigLoader()
        >>> registry = loader.get_registry("UNISWAP_V2")
        >>> config = loader.get_arb_config()
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        env_path: Optional[str] = None
    ) -> None:
        """
        初始化配置加载器

        参数:
            config_path: registries.json 文件路径，默认为 config/registries.json
            env_path: .env 文件路径，默认为项目根目录的 .env
        """
        self._project_root = self._find_project_root()

        env_file = Path(env_path) if env_path else self._project_root / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        config_file = Path(config_path) if config_path else self._project_root / "config" / "registries.json"
        self._raw_config = self._load_json_config(config_file)

        # 已解析注册表的缓存
        self._registry_cache: Dict[str, Registry] = {}

        # 从环境变量加载全局设置
        self._rpc_url = os.getenv("RPC_URL", "http://127.0.0.1:8545")
        self._rpc_timeout = int(os.getenv("RPC_TIMEOUT", "10"))
        self._origin_name = os.getenv("ORIGIN_REGISTRY", "UNISWAP_V2")
        self._target_name = os.getenv("TARGET_REGISTRY", "SUSHISWAP")
        self._owner = os.getenv("OWNER_ADDRESS") or None
        self._beneficiary = os.getenv("BENEFICIARY") or None
        self._min_profit = os.getenv("MIN_PROFIT", "0")
        self._debug_mode = os.getenv("DEBUG_MODE", "false").lower() == "true"

    def _find_project_root(self) -> Path:
        """
        查找项目根目录

        向上查找 config 文件夹或 .git，最多 5 层。
        """
        current = Path(__file__).resolve().parent

        for _ in range(5):
            if (current / "config").exists() or (current / ".git").exists():
                return current
            current = current.parent

        return Path(__file__).resolve().parent.parent

    def _load_json_config(self, path: Path) -> Dict[str, Any]:
        """
        加载并验证 JSON 配置文件

        异常:
            ConfigValidationError: 文件不存在、JSON 无效或缺少 registries 字段
        """
        if not path.exists():
            raise ConfigValidationError(f"配置文件不存在: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigValidationError(f"{path} 中的 JSON 格式无效: {e}")

        if not isinstance(config, dict) or not isinstance(config.get("registries"), dict):
            raise ConfigValidationError("配置必须是包含 'registries' 对象的 JSON")

        return config

    def _validate_registry_config(self, name: str, config: Dict[str, Any]) -> None:
        """
        验证单个注册表的配置

        异常:
            ConfigValidationError: 缺少必需字段或字段格式无效
        """
        for field_name in ("factory", "init_code_hash"):
            if field_name not in config:
                raise ConfigValidationError(
                    f"注册表 {name} 的配置中缺少必需字段 '{field_name}'"
                )

        if not _is_hex(config["factory"], 20):
            raise ConfigValidationError(
                f"注册表 {name} 的 factory 地址无效: {config['factory']}"
            )

        if not _is_hex(config["init_code_hash"], 32):
            raise ConfigValidationError(
                f"注册表 {name} 的 init_code_hash 无效: {config['init_code_hash']}"
            )

    def get_registry(self, name: str) -> Registry:
        """
        获取指定注册表

        参数:
            name: 注册表名称（如 "UNISWAP_V2"、"SUSHISWAP"），不区分大小写

        异常:
            ConfigValidationError: 注册表不存在或配置无效
        """
        name = name.upper()

        if name in self._registry_cache:
            return self._registry_cache[name]

        registries = self._raw_config["registries"]
        if name not in registries:
            available = ", ".join(registries.keys())
            raise ConfigValidationError(
                f"注册表 '{name}' 不存在。可用的注册表: {available}"
            )

        raw = registries[name]
        self._validate_registry_config(name, raw)

        registry = Registry(
            address=raw["factory"],
            init_code_hash=raw["init_code_hash"],
            name=name,
        )
        self._registry_cache[name] = registry
        return registry

    def get_arb_config(
        self,
        origin: Optional[str] = None,
        target: Optional[str] = None
    ) -> ArbConfig:
        """
        组合注册表与环境变量，生成套利配置

        参数:
            origin: 借出方注册表名称，默认取 ORIGIN_REGISTRY
            target: 兑换方注册表名称，默认取 TARGET_REGISTRY

        异常:
            ConfigValidationError: 两个注册表相同，或地址/数值配置无效
        """
        origin_registry = self.get_registry(origin or self._origin_name)
        target_registry = self.get_registry(target or self._target_name)

        if origin_registry.address == target_registry.address:
            raise ConfigValidationError("借出方与兑换方必须是不同的注册表")

        for label, value in (("OWNER_ADDRESS", self._owner), ("BENEFICIARY", self._beneficiary)):
            if value is not None and not _is_hex(value, 20):
                raise ConfigValidationError(f"{label} 地址无效: {value}")

        try:
            min_profit = int(self._min_profit)
        except ValueError:
            raise ConfigValidationError(f"MIN_PROFIT 必须是整数（最小单位）: {self._min_profit}")
        if min_profit < 0:
            raise ConfigValidationError("MIN_PROFIT 不能为负数")

        return ArbConfig(
            origin_registry=origin_registry,
            target_registry=target_registry,
            rpc_url=self._rpc_url,
            rpc_timeout=self._rpc_timeout,
            owner=self._owner,
            beneficiary=self._beneficiary,
            min_profit=min_profit,
        )

    @property
    def debug_mode(self) -> bool:
        """检查是否启用了调试模式"""
        return self._debug_mode

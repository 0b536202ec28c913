#!/usr/bin/env python3
"""
=========================================================
     FlashSwap - Two-Pool Flash Swap Arbitrage Preview
=========================================================

Resolves the origin/target pools of a token pair on two registries, reads
their live reserves and prints the debt, receipt and profit of a flash swap
arbitrage. With --dry-run the full borrow/repay run is replayed on an
in-memory chain seeded with those reserves.

Usage:
    python main.py TOKEN_A TOKEN_B --amount-a 1000000000000000000
    python main.py TOKEN_A TOKEN_B --amount-b 5000000 --dry-run
"""

import argparse
import logging
import sys
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from web3 import Web3

from flashswap.config_loader import ConfigLoader, ConfigValidationError
from flashswap.errors import ArbitrageError
from flashswap.orchestrator import FlashArbitrageur, preview_arbitrage
from flashswap.pool_locator import pool_address, sort_tokens
from flashswap.reserves import ReserveResolver, Web3ReserveReader, verify_registry
from flashswap.simulation import PoolError, SimulatedChain, SimulatedRegistry

# Accounts used on the in-memory chain
SIM_OWNER = "0x00000000000000000000000000000000000000A1"
SIM_CONTRACT = "0x00000000000000000000000000000000000000C0"
SIM_LP = "0x00000000000000000000000000000000000000B0"


def _create_persistent_session() -> requests.Session:
    """HTTP session with keep-alive and retry on rate limits."""
    session = requests.Session()

    retry_strategy = Retry(
        total=3,
        backoff_factor=0.1,
        status_forcelist=[429, 500, 502, 503, 504],
    )
    adapter = HTTPAdapter(pool_connections=4, pool_maxsize=8, max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"Content-Type": "application/json"})

    return session


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Two-pool flash swap arbitrage preview")
    parser.add_argument("token_a")
    parser.add_argument("token_b")
    parser.add_argument("--amount-a", type=int, default=0, help="borrow amount of token A (raw units)")
    parser.add_argument("--amount-b", type=int, default=0, help="borrow amount of token B (raw units)")
    parser.add_argument("--origin", help="registry to borrow from (default: ORIGIN_REGISTRY)")
    parser.add_argument("--target", help="registry to sell into (default: TARGET_REGISTRY)")
    parser.add_argument("--config", help="path to registries.json")
    parser.add_argument("--dry-run", action="store_true", help="replay the run on an in-memory chain")
    return parser.parse_args(argv)


def dry_run(config, reader: Web3ReserveReader, args: argparse.Namespace, chain: Optional[SimulatedChain] = None):
    """Replay the arbitrage against an in-memory copy of both pools."""
    chain = chain or SimulatedChain()
    owner = config.owner or SIM_OWNER
    token0, token1 = sort_tokens(args.token_a, args.token_b)
    chain.create_token(token0)
    chain.create_token(token1)

    for registry in (config.origin_registry, config.target_registry):
        reserve0, reserve1, _ = reader.get_reserves(pool_address(registry, token0, token1))
        pool = SimulatedRegistry(chain, registry).create_pool(token0, token1)
        chain.token(token0).mint(SIM_LP, reserve0)
        chain.token(token1).mint(SIM_LP, reserve1)
        pool.add_liquidity(SIM_LP, reserve0, reserve1)

    arb = FlashArbitrageur(
        chain,
        SIM_CONTRACT,
        config.origin_registry,
        config.target_registry,
        owner=owner,
        beneficiary=config.beneficiary,
    )
    chain.deploy(SIM_CONTRACT, arb)

    return arb.start_arbitrage(
        owner, args.token_a, args.token_b, args.amount_a, args.amount_b, config.min_profit
    )


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        loader = ConfigLoader(config_path=args.config)
        config = loader.get_arb_config(args.origin, args.target)
    except ConfigValidationError as e:
        print(f"❌ Config error: {e}")
        return 2

    logging.basicConfig(
        level=logging.DEBUG if loader.debug_mode else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    print("\n" + "=" * 60)
    print("     FlashSwap - Two-Pool Flash Swap Arbitrage Preview")
    print("=" * 60)
    print(f"\n🌐 Connecting to: {config.rpc_url[:50]}...")

    session = _create_persistent_session()
    try:
        provider = Web3.HTTPProvider(
            config.rpc_url,
            request_kwargs={"timeout": config.rpc_timeout},
            session=session,
        )
        w3 = Web3(provider)
        if not w3.is_connected():
            print("❌ Failed to connect")
            return 1
        print(f"✅ Connected, Chain ID: {w3.eth.chain_id}")

        reader = Web3ReserveReader(w3)
        resolver = ReserveResolver(reader)

        try:
            for registry in (config.origin_registry, config.target_registry):
                verify_registry(reader, registry, args.token_a, args.token_b)
            preview = preview_arbitrage(
                resolver,
                config.origin_registry,
                config.target_registry,
                args.token_a,
                args.token_b,
                args.amount_a,
                args.amount_b,
            )
        except ArbitrageError as e:
            print(f"❌ {type(e).__name__}: {e}")
            return 1
        except Exception as e:
            print(f"❌ Pool read failed (does the pair exist on both registries?): {e}")
            return 1

        print(f"\n📊 {config.origin_registry.name} -> {config.target_registry.name}")
        print(f"   Origin pool:  {preview.origin_pool}")
        print(f"   Target pool:  {preview.target_pool}")
        print(f"   Borrow:       {preview.borrowed_amount} {preview.borrowed_token}")
        print(f"   Debt:         {preview.debt_amount} {preview.debt_token}")
        print(f"   Received:     {preview.amount_received} {preview.debt_token}")
        print(f"   Profit:       {preview.profit} ({'✅ profitable' if preview.profitable else '❌ unprofitable'})")

        if args.dry_run:
            print("\n🧪 Dry run on in-memory chain...")
            try:
                result = dry_run(config, reader, args)
            except (ArbitrageError, PoolError) as e:
                print(f"❌ Reverted: {type(e).__name__}: {e}")
                return 1
            print(f"✅ Run completed, profit forwarded: {result.profit} {result.debt_token}")
    finally:
        session.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())

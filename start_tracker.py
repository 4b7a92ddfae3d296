#!/usr/bin/env python3
"""
Classify a token's holders, then watch team / bundle / MEV wallets for sells

Usage:
    python start_tracker.py 0xTokenAddress --network ethereum
    python start_tracker.py 0xTokenAddress --analyze-only --json
"""

import argparse
import asyncio
import json
import logging
import sys

from bundle_tracker.clients.dexscreener_client import DexScreenerClient
from bundle_tracker.clients.etherscan_client import EtherscanClient
from bundle_tracker.core.database import AlertStore
from bundle_tracker.core.models import ClassificationResult, SellAlert
from bundle_tracker.services.alert_dispatcher import AlertDispatcher
from bundle_tracker.services.holder_analysis import HolderAnalysisService
from bundle_tracker.services.monitoring import MonitoringManager
from bundle_tracker.utils.config_loader import (
    ConfigError, get_database_path, get_log_level, get_log_path,
    load_config, validate_required_keys
)
from bundle_tracker.utils.discord_notifier import DiscordNotifier
from bundle_tracker.utils.logger_setup import setup_logging
from bundle_tracker.utils.telegram_notifier import TelegramNotifier


def print_summary(result: ClassificationResult):
    counts = result.counts
    print(f"\n📊 Holder analysis for {result.token_address} ({result.network})")
    print(f"   Holders in snapshot: {result.holder_count} | analyzed: {counts['total_analyzed']}")
    print(f"   Deployer: {result.deployer or 'unknown'}")
    print(f"   Team: {counts['team']} | Bundle: {counts['bundle']} | "
          f"MEV: {counts['mev']} | Holder: {counts['holder']}")

    for title, wallets in (("Team", result.team_wallets),
                           ("Bundle", result.bundle_wallets),
                           ("MEV", result.mev_wallets)):
        if not wallets:
            continue
        print(f"\n   {title} wallets:")
        for w in wallets:
            print(f"     {w.address}  {w.supply_percentage:8.4f}%  "
                  f"[{w.risk_level.value}]  {w.reason}")


def print_alert(alert: SellAlert):
    usd = f" (${alert.usd_value:,.2f})" if alert.usd_value is not None else ""
    print(f"🚨 {alert.wallet_role.value} {alert.wallet_address[:10]}... sold "
          f"{alert.amount_sold:,.4f}{usd} -{alert.change_percentage:.2f}% via {alert.counterparty_venue}")


async def run(args) -> int:
    try:
        config = load_config(args.config)
        validate_required_keys(config, args.network)
    except ConfigError as e:
        print(f"❌ {e}")
        return 1

    setup_logging(args.log_level or get_log_level(config), get_log_path(config))
    logger = logging.getLogger("WalletTracker")

    gateway = EtherscanClient(
        api_keys=config['api_keys'],
        base_urls=config['networks'],
        request_timeout=config['activity']['request_timeout_sec'],
    )
    price_client = DexScreenerClient(
        base_url=config['price']['dexscreener_url'],
        cache_ttl=config['price']['cache_ttl_sec'],
    )

    notifications = config['notifications']
    discord = DiscordNotifier(notifications.get('discord_webhook_url', ''))
    telegram = TelegramNotifier(notifications.get('telegram_bot_token', ''),
                                notifications.get('telegram_chat_id', ''))

    store = AlertStore(get_database_path(config), tick_interval=config['monitoring']['poll_interval_sec'])
    await store.initialize()

    dispatcher = AlertDispatcher(
        channels=[c for c in (discord, telegram) if c.enabled],
        store=store,
    )
    manager = MonitoringManager(gateway, dispatcher, config, price_client=price_client)
    handle = None

    try:
        analysis = HolderAnalysisService(gateway, config)
        result = await analysis.classify_holders(args.token, args.network)

        if args.json:
            print(json.dumps(result.to_dict(), indent=2))
        else:
            print_summary(result)

        if result.is_empty:
            await discord.send_error_notification(
                "Holder analysis returned no wallets",
                {"token": args.token, "network": args.network}
            )

        if args.analyze_only:
            return 0

        wallets = result.monitorable_wallets()
        if not wallets:
            print("\nNo wallets worth monitoring, exiting")
            return 0

        manager.subscribe(print_alert)
        handle = await manager.start_monitoring(wallets, args.token, args.network)
        await discord.send_monitoring_status(args.token, args.network, len(wallets), active=True)

        print(f"\n👀 Monitoring {len(wallets)} wallets every "
              f"{manager.config.poll_interval_sec}s (Ctrl-C to stop, logs in {get_log_path(config)})")

        session = manager.get_session(handle)
        await session.task

    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.error(f"Wallet tracker failed: {e}")
        await discord.send_error_notification(
            str(e), {"token": args.token, "network": args.network, "stage": "monitoring" if handle else "analysis"}
        )
        return 1
    finally:
        if handle is not None:
            await manager.stop_all()
            await discord.send_monitoring_status(args.token, args.network, 0, active=False)
        await dispatcher.close()
        for notifier in (discord, telegram):
            if notifier not in dispatcher.channels:
                await notifier.close()
        await price_client.close()
        await gateway.close()
        logger.info("Wallet tracker shut down")

    return 0


def main():
    parser = argparse.ArgumentParser(description="Token holder role classifier and sell tracker")
    parser.add_argument('token', help='Token contract address')
    parser.add_argument('--network', default='ethereum', choices=['ethereum', 'bsc', 'polygon'],
                        help='Network the token lives on (default: ethereum)')
    parser.add_argument('--config', default=None,
                        help='Configuration file path (default: config/config.yml)')
    parser.add_argument('--analyze-only', action='store_true',
                        help='Classify holders and exit without monitoring')
    parser.add_argument('--json', action='store_true', help='Print the classification as JSON')
    parser.add_argument('--log-level', default=None, help='Override logging level')
    args = parser.parse_args()

    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        print("\n🛑 Wallet tracker stopped by user")


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Raffle Coordinator Application

Main entry point: wires the randomness coordinator client, the raffle state
machine, the upkeep keeper and the web server, then runs until signalled.
"""

import asyncio
import signal
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load .env before the logger reads LOG_LEVEL
load_dotenv(Path.cwd() / ".env")

from raffle.blockchain.vrf import VRFCoordinatorClient
from raffle.lottery.accounts import AccountBook
from raffle.lottery.errors import ConfigError, RaffleError
from raffle.lottery.event_manager import EventLog
from raffle.lottery.keeper import UpkeepKeeper
from raffle.lottery.models import RaffleConfig
from raffle.lottery.raffle import Raffle
from raffle.utils.config import get_config_value, load_config
from raffle.utils.logger import configure_logging, get_logger
from raffle.web_server import RaffleWebServer

logger = get_logger(__name__)


class RaffleCoordinatorApp:
    """Owns the service components and their start/stop order."""

    def __init__(self, config=None):
        self.config = config if config is not None else load_config()
        configure_logging(
            get_config_value(self.config, "logging.level"),
            get_config_value(self.config, "logging.file"),
        )
        self.raffle_config = RaffleConfig.from_dict(self.config)
        self.accounts = self._build_account_book()
        self.vrf_client = None
        self.raffle = None
        self.keeper = None
        self.web_server = None
        self.running = True

    def _build_account_book(self):
        """Seed balances from `accounts.genesis`, like a dev chain's funded accounts."""
        book = AccountBook()
        allocations = get_config_value(self.config, "accounts.genesis") or {}
        if not isinstance(allocations, dict):
            raise ConfigError("accounts.genesis must map addresses to wei amounts")
        for address, amount in allocations.items():
            try:
                book.credit(address, int(amount))
            except (TypeError, ValueError, RaffleError) as e:
                raise ConfigError(f"Invalid genesis allocation for {address}: {e}") from e
        if allocations:
            logger.info(f"Funded {len(allocations)} accounts from config")
        return book

    def _display_config_summary(self):
        logger.info("=" * 60)
        logger.info("RAFFLE CONFIGURATION")
        logger.info("=" * 60)
        logger.info(f"Entrance fee: {self.raffle_config.entrance_fee} wei (must send more)")
        logger.info(f"Interval: {self.raffle_config.interval}s")
        logger.info(f"VRF coordinator: {self.raffle_config.vrf_coordinator}")
        logger.info(f"Subscription: {self.raffle_config.subscription_id}")
        logger.info(f"Confirmations: {self.raffle_config.request_confirmations}")
        logger.info(f"Callback gas limit: {self.raffle_config.callback_gas_limit}")
        logger.info(f"RPC URL: {get_config_value(self.config, 'blockchain.rpc_url', 'Not configured')}")
        logger.info("=" * 60)

    def initialize(self):
        self._display_config_summary()

        self.vrf_client = VRFCoordinatorClient(self.config)
        self.vrf_client.initialize()

        self.raffle = Raffle(
            self.raffle_config,
            provider=self.vrf_client,
            accounts=self.accounts,
            events=EventLog(),
            address=get_config_value(self.config, "raffle.address"),
        )
        poll_interval = float(get_config_value(self.config, "keeper.poll_interval", 10))
        self.keeper = UpkeepKeeper(self.raffle, poll_interval=poll_interval)
        self.web_server = RaffleWebServer(self.config, self.raffle, self.keeper)

    async def start(self):
        self.initialize()
        host = get_config_value(self.config, "server.host", "0.0.0.0")
        port = int(get_config_value(self.config, "server.port", 6080))

        await self.keeper.start()
        server_task = asyncio.create_task(self.web_server.start(host=host, port=port))
        try:
            while self.running and not server_task.done():
                await asyncio.sleep(1)
            logger.info("Shutdown requested, stopping application...")
        finally:
            await self.stop()
            await server_task

    async def stop(self):
        self.running = False
        if self.keeper:
            await self.keeper.stop()
        if self.web_server:
            await self.web_server.stop()
        if self.vrf_client:
            self.vrf_client.close()
        logger.info("Raffle coordinator stopped")

    def _handle_signal(self, signum, frame):
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        self.running = False


async def _run():
    try:
        app = RaffleCoordinatorApp()
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    signal.signal(signal.SIGINT, app._handle_signal)
    signal.signal(signal.SIGTERM, app._handle_signal)

    try:
        await app.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception:
        logger.exception("Raffle coordinator failed")
        sys.exit(1)


def main():
    asyncio.run(_run())


if __name__ == "__main__":
    main()

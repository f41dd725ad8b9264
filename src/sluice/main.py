#!/usr/bin/env python3
"""SLUICE - gated devnet token faucet.

Entry point for the SLUICE service.
"""

import asyncio
import json
import logging
import os
import signal
import sys
import tempfile
from decimal import Decimal
from pathlib import Path

from solders.keypair import Keypair

from sluice.api import ApiServer, create_app
from sluice.cli import create_parser, run_cli
from sluice.config import SluiceConfig
from sluice.faucet import (
    AccessWorkflow,
    CooldownGate,
    EligibilityOracle,
    FaucetService,
    HistoryLedger,
    ReferenceSetSource,
    TransferExecutor,
)
from sluice.http import HttpClient
from sluice.identity import GitHubIdentityVerifier
from sluice.ledger import EnvironmentWallet, LedgerClient
from sluice.observability.health import HealthServer, LedgerHealthCheck, StoreHealthCheck
from sluice.observability.logging import configure_logging
from sluice.storage import create_store

# Extra lease time past the confirmation timeout, so a lease never expires
# while its transfer is still being confirmed
LEASE_MARGIN_SECONDS = 60


def generate_wallet(output_path: str) -> None:
    """Generate a new funding wallet and save the private key to a file.

    Parameters
    ----------
    output_path : str
        Path to save the private key file.
    """
    keypair = Keypair()

    key_path = Path(output_path)
    key_path.parent.mkdir(parents=True, exist_ok=True)

    # Temp file in the same directory so the rename is atomic
    fd, temp_path = tempfile.mkstemp(dir=key_path.parent, prefix=".sluice-key-")
    fd_closed = False
    try:
        os.fchmod(fd, 0o600)
        os.write(fd, json.dumps(list(bytes(keypair))).encode())
        os.close(fd)
        fd_closed = True
        os.rename(temp_path, key_path)
    except Exception:
        if not fd_closed:
            os.close(fd)
        Path(temp_path).unlink(missing_ok=True)
        raise

    print(f"""
Funding wallet generated.

  Address:     {keypair.pubkey()}
  Private Key: {key_path.absolute()}

Fund this address on devnet (solana airdrop 2 <address> --url devnet),
then start SLUICE with:

  export SLUICE_WALLET_PRIVATE_KEY_FILE={key_path.absolute()}
  sluice run

Keep this private key secure. Anyone with access can drain the faucet.
""")


def parse_args():
    """Parse command line arguments."""
    return create_parser().parse_args()


async def run_service() -> None:
    """Run the SLUICE service (long-running mode).

    Wires up and starts all service components:
    - HealthServer with store and ledger readiness checks
    - Store (Redis with in-memory fallback)
    - Wallet and LedgerClient
    - FaucetService with eligibility, cooldown, transfer and history
    - ApiServer exposing the faucet over HTTP
    """
    config = SluiceConfig()
    configure_logging(level=config.log_level, log_format=config.log_format)

    logger = logging.getLogger(__name__)
    logger.info("SLUICE starting")
    logger.info("RPC endpoint: %s", config.rpc_endpoint)
    logger.info("Airdrop: %s per %s hours", config.airdrop_amount, config.cooldown_hours)
    if not config.admin_email:
        logger.warning("SLUICE_ADMIN_EMAIL not set; admin operations are disabled")

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def on_shutdown_signal(sig_name: str) -> None:
        logger.info("Received signal %s, initiating shutdown", sig_name)
        shutdown_event.set()

    loop.add_signal_handler(signal.SIGTERM, lambda: on_shutdown_signal("SIGTERM"))
    loop.add_signal_handler(signal.SIGINT, lambda: on_shutdown_signal("SIGINT"))

    # Start health server first (for K8s health checks)
    health_server = HealthServer(port=config.metrics_port)
    await health_server.start()

    if config.wallet_private_key:
        if config.wallet_private_key_file:
            logger.warning(
                "Both SLUICE_WALLET_PRIVATE_KEY and SLUICE_WALLET_PRIVATE_KEY_FILE set; "
                "using SLUICE_WALLET_PRIVATE_KEY"
            )
        wallet = EnvironmentWallet(private_key=config.wallet_private_key)
    elif config.wallet_private_key_file:
        wallet = EnvironmentWallet(private_key_file=config.wallet_private_key_file)
    else:
        logger.error(
            "No wallet configured. Set SLUICE_WALLET_PRIVATE_KEY or SLUICE_WALLET_PRIVATE_KEY_FILE"
        )
        await health_server.stop()
        sys.exit(1)

    logger.info("Funding wallet loaded: %s", wallet.address)

    client = LedgerClient(config.rpc_endpoint, wallet, request_timeout=config.http_timeout_seconds)

    store = create_store(config.redis_url)
    health_server.add_check(StoreHealthCheck(store))
    health_server.add_check(LedgerHealthCheck(client))

    http = HttpClient(timeout_seconds=config.http_timeout_seconds)
    workflow = AccessWorkflow(store)
    oracle = EligibilityOracle(
        store,
        workflow,
        ReferenceSetSource(config.reference_url, http, token=config.github_api_token),
        cache_seconds=config.reference_cache_seconds,
    )
    cooldown = CooldownGate(
        store,
        cooldown_hours=config.cooldown_hours,
        lease_seconds=config.tx_timeout_seconds + LEASE_MARGIN_SECONDS,
    )
    executor = TransferExecutor(
        client,
        Decimal(str(config.airdrop_amount)),
        confirm_timeout=config.tx_timeout_seconds,
    )
    faucet = FaucetService(
        oracle=oracle,
        cooldown=cooldown,
        executor=executor,
        history=HistoryLedger(store),
        workflow=workflow,
        admin_email=config.admin_email,
        store_durable=lambda: store.durable,
    )

    verifier = GitHubIdentityVerifier(
        http,
        client_id=config.github_client_id,
        client_secret=config.github_client_secret,
    )
    api_server = ApiServer(
        create_app(faucet, verifier, explorer_url=config.block_explorer_url),
        host=config.api_host,
        port=config.api_port,
    )
    await api_server.start()

    status = await faucet.get_status()
    logger.info(
        "SLUICE service ready",
        extra={
            "balance": str(status.balance),
            "store_durable": status.store_durable,
            "status": status.message,
        },
    )

    await shutdown_event.wait()

    logger.info("SLUICE shutting down...")
    await api_server.stop()
    await http.aclose()
    await health_server.stop()
    logger.info("SLUICE shutdown complete")


async def main() -> None:
    """Main entry point for SLUICE."""
    args = parse_args()

    if args.generate_wallet:
        generate_wallet(args.generate_wallet)
        return

    if args.command and args.command != "run":
        exit_code = run_cli(args)
        if exit_code >= 0:
            sys.exit(exit_code)
        create_parser().print_help()
        sys.exit(0)

    await run_service()


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()

"""CLI subcommands for SLUICE operations.

Provides command-line interface for:
- Wallet operations (address, balance)
- Distribution history
- Access request review (list, approve, reject, dedupe)
- Cooldown reset and eligibility checks

Admin commands run as the configured admin email and go through the same
authorization as the HTTP API.
"""

import argparse
import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from decimal import Decimal
from typing import Any

from sluice.api.formatter import ResponseFormatter
from sluice.config import SluiceConfig
from sluice.faucet import (
    AccessWorkflow,
    AdminResult,
    CooldownGate,
    EligibilityOracle,
    FaucetService,
    HistoryLedger,
    ReferenceSetSource,
    TransferExecutor,
)
from sluice.http import HttpClient
from sluice.identity import VerifiedIdentity
from sluice.ledger import EnvironmentWallet, LedgerClient
from sluice.storage import KeyValueStore, create_store

OPERATOR_HANDLE = "operator"


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="sluice",
        description="SLUICE - gated devnet token faucet",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Output in JSON format",
    )
    parser.add_argument(
        "--generate-wallet",
        metavar="FILE",
        help="Generate a new funding wallet and save private key to FILE, then exit",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Wallet subcommand
    wallet_parser = subparsers.add_parser("wallet", help="Funding wallet operations")
    wallet_sub = wallet_parser.add_subparsers(dest="wallet_command")
    wallet_sub.add_parser("address", help="Show funding wallet address")
    wallet_sub.add_parser("balance", help="Show funding wallet balance")

    # History subcommand
    history_parser = subparsers.add_parser("history", help="Show recent distributions")
    history_parser.add_argument("--limit", type=int, default=10, help="Entries to show")
    history_parser.add_argument(
        "--public", action="store_true", help="Hide anonymous distributions"
    )

    # Access request subcommand
    requests_parser = subparsers.add_parser("requests", help="Access request review")
    requests_sub = requests_parser.add_subparsers(dest="requests_command")
    requests_sub.add_parser("list", help="List pending requests")
    requests_sub.add_parser("allowlisted", help="List allowlisted users")
    requests_sub.add_parser("rejected", help="List rejected users")
    requests_sub.add_parser("dedupe", help="Collapse duplicate pending requests")
    for name, help_text in (
        ("approve", "Approve a pending request"),
        ("reject", "Reject a pending request"),
        ("approve-rejected", "Move a rejected user to the allowlist"),
        ("reject-allowlisted", "Move an allowlisted user to rejected"),
    ):
        transition_parser = requests_sub.add_parser(name, help=help_text)
        transition_parser.add_argument("handle", type=str, help="GitHub username")

    # Cooldown subcommand
    cooldown_parser = subparsers.add_parser("cooldown", help="Cooldown operations")
    cooldown_sub = cooldown_parser.add_subparsers(dest="cooldown_command")
    reset_parser = cooldown_sub.add_parser("reset", help="Clear a user's cooldown")
    reset_parser.add_argument("handle", type=str, help="GitHub username")

    # Eligibility check
    check_parser = subparsers.add_parser("check", help="Explain a user's eligibility")
    check_parser.add_argument("handle", type=str, help="GitHub username")

    # Run subcommand (start service)
    subparsers.add_parser("run", help="Start the SLUICE service")

    return parser


class CLIContext:
    """Shared context for CLI commands."""

    def __init__(self, config: SluiceConfig, json_output: bool = False):
        self.config = config
        self.json_output = json_output
        self._wallet: EnvironmentWallet | None = None
        self._client: LedgerClient | None = None
        self._store: KeyValueStore | None = None
        self._http: HttpClient | None = None
        self._faucet: FaucetService | None = None
        self.formatter = ResponseFormatter(config.block_explorer_url)

    @property
    def admin(self) -> VerifiedIdentity:
        """Identity the admin commands run as."""
        return VerifiedIdentity(handle=OPERATOR_HANDLE, email=self.config.admin_email)

    @property
    def wallet(self) -> EnvironmentWallet:
        """Get wallet (lazy loaded)."""
        if self._wallet is None:
            if self.config.wallet_private_key:
                self._wallet = EnvironmentWallet(private_key=self.config.wallet_private_key)
            elif self.config.wallet_private_key_file:
                self._wallet = EnvironmentWallet(
                    private_key_file=self.config.wallet_private_key_file
                )
            else:
                raise ValueError(
                    "No wallet configured. "
                    "Set SLUICE_WALLET_PRIVATE_KEY or SLUICE_WALLET_PRIVATE_KEY_FILE"
                )
        return self._wallet

    @property
    def client(self) -> LedgerClient:
        """Get ledger client (lazy loaded)."""
        if self._client is None:
            self._client = LedgerClient(
                self.config.rpc_endpoint,
                self.wallet,
                request_timeout=self.config.http_timeout_seconds,
            )
        return self._client

    @property
    def store(self) -> KeyValueStore:
        if self._store is None:
            self._store = create_store(self.config.redis_url)
        return self._store

    @property
    def faucet(self) -> FaucetService:
        """Get faucet service (lazy loaded)."""
        if self._faucet is None:
            workflow = AccessWorkflow(self.store)
            self._http = HttpClient(timeout_seconds=self.config.http_timeout_seconds)
            source = ReferenceSetSource(
                self.config.reference_url, self._http, token=self.config.github_api_token
            )
            self._faucet = FaucetService(
                oracle=EligibilityOracle(
                    self.store,
                    workflow,
                    source,
                    cache_seconds=self.config.reference_cache_seconds,
                ),
                cooldown=CooldownGate(self.store, cooldown_hours=self.config.cooldown_hours),
                executor=TransferExecutor(
                    self.client,
                    Decimal(str(self.config.airdrop_amount)),
                    confirm_timeout=self.config.tx_timeout_seconds,
                ),
                history=HistoryLedger(self.store),
                workflow=workflow,
                admin_email=self.config.admin_email,
            )
        return self._faucet

    def run(self, operation: Callable[[FaucetService], Awaitable[Any]]) -> Any:
        """Run an async faucet operation to completion."""

        async def _run() -> Any:
            try:
                return await operation(self.faucet)
            finally:
                if self._http is not None:
                    await self._http.aclose()

        return asyncio.run(_run())

    def output(self, data: dict) -> None:
        """Output data in the appropriate format."""
        if self.json_output:

            def decimal_default(obj):
                if isinstance(obj, Decimal):
                    return str(obj)
                raise TypeError(f"Object of type {type(obj)} is not JSON serializable")

            print(json.dumps(data, default=decimal_default, indent=2))
        else:
            self._print_formatted(data)

    def _print_formatted(self, data: dict, indent: int = 0) -> None:
        """Print data in human-readable format."""
        prefix = "  " * indent
        for key, value in data.items():
            if isinstance(value, dict):
                print(f"{prefix}{key}:")
                self._print_formatted(value, indent + 1)
            elif isinstance(value, list):
                print(f"{prefix}{key}: ({len(value)})")
                for item in value:
                    if isinstance(item, dict):
                        print(f"{prefix}  -")
                        self._print_formatted(item, indent + 2)
                    else:
                        print(f"{prefix}  - {item}")
            else:
                print(f"{prefix}{key}: {value}")

    def output_admin(self, result: AdminResult) -> int:
        """Print an admin result and map it to an exit code."""
        self.output(self.formatter.format_admin(result))
        return 0 if result.success else 1


# Wallet commands


def cmd_wallet_address(ctx: CLIContext) -> int:
    """Show wallet address."""
    try:
        ctx.output({"address": ctx.wallet.address})
        return 0
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


def cmd_wallet_balance(ctx: CLIContext) -> int:
    """Show funding wallet balance."""
    try:
        if not ctx.client.connected:
            ctx.output({"error": "Not connected to RPC endpoint"})
            return 1

        balance = ctx.client.get_balance()
        ctx.output(
            {
                "address": ctx.wallet.address,
                "balance": balance,
                "airdrop_amount": Decimal(str(ctx.config.airdrop_amount)),
                "rpc": ctx.config.rpc_endpoint,
                "genesis_hash": ctx.client.genesis_hash,
            }
        )
        return 0
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


# Faucet commands


def cmd_history(ctx: CLIContext, limit: int, public: bool) -> int:
    """Show recent distributions."""
    try:
        if public:
            records = ctx.run(lambda faucet: faucet.public_history(limit))
            ctx.output(ctx.formatter.format_history(records))
            return 0
        result = ctx.run(lambda faucet: faucet.recent_history(ctx.admin, limit))
        return ctx.output_admin(result)
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


def cmd_admin(
    ctx: CLIContext, operation: Callable[[FaucetService], Awaitable[AdminResult]]
) -> int:
    """Run an admin operation as the configured admin."""
    try:
        return ctx.output_admin(ctx.run(operation))
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


ADMIN_LISTS = {
    "list": lambda ctx: lambda faucet: faucet.list_pending(ctx.admin),
    "allowlisted": lambda ctx: lambda faucet: faucet.list_allowlisted(ctx.admin),
    "rejected": lambda ctx: lambda faucet: faucet.list_rejected(ctx.admin),
    "dedupe": lambda ctx: lambda faucet: faucet.dedupe(ctx.admin),
}

ADMIN_TRANSITIONS = {
    "approve": "approve",
    "reject": "reject",
    "approve-rejected": "approve_rejected",
    "reject-allowlisted": "reject_allowed",
}


def cmd_requests(ctx: CLIContext, args: argparse.Namespace) -> int:
    """Route ``requests`` subcommands."""
    command = args.requests_command
    if command in ADMIN_LISTS:
        return cmd_admin(ctx, ADMIN_LISTS[command](ctx))
    if command in ADMIN_TRANSITIONS:
        method = ADMIN_TRANSITIONS[command]
        return cmd_admin(ctx, lambda faucet: getattr(faucet, method)(ctx.admin, args.handle))

    print(
        "Usage: sluice requests "
        "[list|allowlisted|rejected|dedupe|approve|reject|approve-rejected|reject-allowlisted]",
        file=sys.stderr,
    )
    return 1


def run_cli(args: argparse.Namespace) -> int:
    """Execute CLI command based on parsed arguments.

    Returns
    -------
    int
        Exit code: 0 for success, positive for error, -1 signals caller
        to show help (no CLI command specified).
    """
    try:
        config = SluiceConfig()
    except Exception as e:
        if args.json:
            print(json.dumps({"error": f"Configuration error: {e}"}))
        else:
            print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    ctx = CLIContext(config, json_output=args.json)

    if args.command == "wallet":
        if args.wallet_command == "address":
            return cmd_wallet_address(ctx)
        elif args.wallet_command == "balance":
            return cmd_wallet_balance(ctx)
        else:
            print("Usage: sluice wallet [address|balance]", file=sys.stderr)
            return 1

    elif args.command == "history":
        return cmd_history(ctx, args.limit, args.public)

    elif args.command == "requests":
        return cmd_requests(ctx, args)

    elif args.command == "cooldown":
        if args.cooldown_command == "reset":
            return cmd_admin(ctx, lambda faucet: faucet.reset_cooldown(ctx.admin, args.handle))
        print("Usage: sluice cooldown reset <handle>", file=sys.stderr)
        return 1

    elif args.command == "check":
        return cmd_admin(ctx, lambda faucet: faucet.explain_eligibility(ctx.admin, args.handle))

    else:
        return -1

"""Ledger integration for SLUICE."""

from .client import LAMPORTS_PER_SOL, LedgerClient, to_lamports, validate_address
from .wallet import EnvironmentWallet, WalletProvider, load_keypair, parse_private_key

__all__ = [
    "LAMPORTS_PER_SOL",
    "EnvironmentWallet",
    "LedgerClient",
    "WalletProvider",
    "load_keypair",
    "parse_private_key",
    "to_lamports",
    "validate_address",
]

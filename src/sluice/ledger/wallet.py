"""Funding wallet: the operator-held account that pays out airdrops."""

import json
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import SecretStr
from solders.keypair import Keypair

KEYPAIR_LENGTH = 64
SEED_LENGTH = 32


def parse_private_key(material: str) -> bytes:
    """Decode byte-list key material.

    Accepts a comma-separated list of byte values such as ``"12,250,3,..."``
    or the JSON array written by ``solana-keygen``. The result is either a
    64-byte keypair (secret then public half) or a 32-byte seed.

    Raises
    ------
    ValueError
        If the material is not a list of 32 or 64 byte values.
    """
    material = material.strip()
    try:
        if material.startswith("["):
            values = json.loads(material)
        else:
            values = [int(part) for part in material.split(",")]
        key = bytes(values)
    except (ValueError, TypeError) as e:
        raise ValueError("Byte-list private key must contain integers 0-255") from e

    if len(key) not in (KEYPAIR_LENGTH, SEED_LENGTH):
        raise ValueError(f"Private key must be 64 or 32 bytes, got {len(key)}")
    return key


def load_keypair(material: str) -> Keypair:
    """Build a keypair from a byte list, a JSON array or a base58 secret key."""
    material = material.strip()
    if material.startswith("[") or "," in material:
        key = parse_private_key(material)
        if len(key) == SEED_LENGTH:
            return Keypair.from_seed(key)
        try:
            return Keypair.from_bytes(key)
        except Exception as e:
            raise ValueError("Private key bytes do not form a valid keypair") from e
    try:
        return Keypair.from_base58_string(material)
    except Exception as e:
        raise ValueError("Private key is not a valid base58 keypair") from e


class WalletProvider(ABC):
    """Abstract wallet provider for signing transactions."""

    @abstractmethod
    def get_keypair(self) -> Keypair:
        """Get the funding keypair for signing."""
        ...

    @property
    def address(self) -> str:
        """Base58 public key of the funding account."""
        return str(self.get_keypair().pubkey())


class EnvironmentWallet(WalletProvider):
    """Load the funding key from configuration or a mounted secret file.

    Parameters
    ----------
    private_key : SecretStr, optional
        Key material from ``SLUICE_WALLET_PRIVATE_KEY``.
    private_key_file : str, optional
        Path to a file containing key material, such as a ``solana-keygen``
        keypair file.

    Raises
    ------
    ValueError
        If neither source is provided or the key is malformed.
    FileNotFoundError
        If private_key_file does not exist.
    """

    def __init__(
        self,
        private_key: SecretStr | None = None,
        private_key_file: str | None = None,
    ):
        if private_key is not None:
            material = private_key.get_secret_value()
        elif private_key_file is not None:
            key_path = Path(private_key_file).expanduser()
            if not key_path.exists():
                raise FileNotFoundError(f"Private key file not found: {private_key_file}")
            material = key_path.read_text()
        else:
            raise ValueError("Either private_key or private_key_file must be provided")

        self._keypair = load_keypair(material)

    def get_keypair(self) -> Keypair:
        return self._keypair

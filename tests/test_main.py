"""Tests for SLUICE main entry point."""

import json
import sys
from unittest.mock import AsyncMock, patch

import pytest

from sluice.ledger import EnvironmentWallet, validate_address
from sluice.main import generate_wallet, main, parse_args


class TestParseArgs:
    """Tests for argument parsing."""

    def test_no_args(self):
        with patch("sys.argv", ["sluice"]):
            args = parse_args()
            assert args.generate_wallet is None
            assert args.command is None

    def test_generate_wallet_arg(self):
        """--generate-wallet sets output path."""
        with patch("sys.argv", ["sluice", "--generate-wallet", "/tmp/key.txt"]):
            assert parse_args().generate_wallet == "/tmp/key.txt"


class TestGenerateWallet:
    """Tests for wallet generation."""

    def test_generates_loadable_key(self, tmp_path):
        """Generated key works with EnvironmentWallet."""
        key_file = tmp_path / "wallet.key"

        with patch("builtins.print"):
            generate_wallet(str(key_file))

        key_bytes = json.loads(key_file.read_text())
        assert len(key_bytes) == 64
        assert all(0 <= b <= 255 for b in key_bytes)
        wallet = EnvironmentWallet(private_key_file=str(key_file))
        assert validate_address(wallet.address)
        assert str(wallet.get_keypair().pubkey()) == wallet.address

    @pytest.mark.skipif(sys.platform == "win32", reason="chmod not supported on Windows")
    def test_sets_restrictive_permissions(self, tmp_path):
        """Key file has 600 permissions."""
        key_file = tmp_path / "wallet.key"

        with patch("builtins.print"):
            generate_wallet(str(key_file))

        assert key_file.stat().st_mode & 0o777 == 0o600

    def test_creates_parent_directories(self, tmp_path):
        key_file = tmp_path / "nested" / "path" / "wallet.key"

        with patch("builtins.print"):
            generate_wallet(str(key_file))

        assert key_file.exists()
        assert not list(key_file.parent.glob(".sluice-key-*"))

    def test_prints_instructions(self, tmp_path, capsys):
        generate_wallet(str(tmp_path / "wallet.key"))

        output = capsys.readouterr().out
        assert "Address:" in output
        assert "SLUICE_WALLET_PRIVATE_KEY_FILE" in output


class TestMain:
    """Tests for command routing in main()."""

    @pytest.mark.asyncio
    async def test_generate_wallet_exits_early(self, tmp_path):
        key_file = tmp_path / "wallet.key"

        with (
            patch("sys.argv", ["sluice", "--generate-wallet", str(key_file)]),
            patch("builtins.print"),
            patch("sluice.main.run_service", new_callable=AsyncMock) as run_service,
        ):
            await main()

        assert key_file.exists()
        run_service.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("argv", [["sluice"], ["sluice", "run"]])
    async def test_runs_service(self, argv):
        with (
            patch("sys.argv", argv),
            patch("sluice.main.run_service", new_callable=AsyncMock) as run_service,
        ):
            await main()

        run_service.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cli_command_exits_with_code(self):
        with (
            patch("sys.argv", ["sluice", "wallet", "address"]),
            patch("sluice.main.run_cli", return_value=3),
            patch("sluice.main.run_service", new_callable=AsyncMock) as run_service,
            pytest.raises(SystemExit) as exc_info,
        ):
            await main()

        assert exc_info.value.code == 3
        run_service.assert_not_awaited()

"""
Test the anonymous-reactions CLI commands.

Most tests run the click group in-process; one runs the module as a
subprocess to check the console entry point wiring.
"""
import shutil
import subprocess
import sys
import uuid

import pytest
from click.testing import CliRunner

from anonymous_reactions import __version__
from anonymous_reactions.cli import main
from anonymous_reactions.reactions_protocol.commitments import derive_commitment
from anonymous_reactions.reactions_protocol.key_derivation import derive_reaction_key

SHARED_KEY = "42" * 32


def get_cli_command():
    """Get the CLI command to run."""
    cli_path = shutil.which("anonymous-reactions")
    if cli_path:
        return [cli_path]
    return [sys.executable, "-m", "anonymous_reactions.cli"]


@pytest.fixture
def runner():
    return CliRunner()


def test_cli_help_subprocess():
    result = subprocess.run(
        get_cli_command() + ["--help"], capture_output=True, text=True, timeout=60
    )
    assert result.returncode == 0
    assert "simulate" in result.stdout
    assert "derive-commitment" in result.stdout


def test_version(runner):
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_derive_commitment(runner):
    result = runner.invoke(main, ["derive-commitment", "alice"])
    assert result.exit_code == 0
    assert result.output.strip() == derive_commitment("alice").hex()


def test_derive_commitment_empty_address(runner):
    result = runner.invoke(main, ["derive-commitment", ""])
    assert result.exit_code != 0


def test_derive_reaction_key(runner):
    message_id = uuid.UUID("12345678-0000-0000-0000-000000000001")
    result = runner.invoke(
        main, ["derive-key", "--shared-key", SHARED_KEY, "--message-id", str(message_id)]
    )
    assert result.exit_code == 0
    expected = derive_reaction_key(bytes.fromhex(SHARED_KEY), message_id).hex()
    assert result.output.strip() == expected


def test_derive_feed_key(runner):
    result = runner.invoke(
        main, ["derive-key", "--shared-key", SHARED_KEY, "--feed-id", str(uuid.uuid4())]
    )
    assert result.exit_code == 0
    lines = result.output.strip().splitlines()
    assert [line.split(":")[0] for line in lines] == ["feed_secret", "public_key.x", "public_key.y"]


class TestDeriveKeyErrors:
    def test_requires_exactly_one_target(self, runner):
        result = runner.invoke(main, ["derive-key", "--shared-key", SHARED_KEY])
        assert result.exit_code == 2
        assert "exactly one" in result.output

    def test_non_hex_key(self, runner):
        result = runner.invoke(
            main, ["derive-key", "--shared-key", "zz", "--feed-id", str(uuid.uuid4())]
        )
        assert result.exit_code == 2
        assert "not a hex string" in result.output

    def test_short_key(self, runner):
        result = runner.invoke(
            main, ["derive-key", "--shared-key", "42" * 16, "--feed-id", str(uuid.uuid4())]
        )
        assert result.exit_code == 2


class TestCheckSettings:
    def test_valid_file(self, runner, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("reactions:\n  root_grace_window: 4\n", encoding="utf-8")

        result = runner.invoke(main, ["check-settings", str(path)])

        assert result.exit_code == 0
        assert "✓ Settings are valid" in result.output
        assert "Root grace window: 4" in result.output

    def test_invalid_file(self, runner, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("reactions:\n  grace: 4\n", encoding="utf-8")

        result = runner.invoke(main, ["check-settings", str(path)])

        assert result.exit_code == 1
        assert "✗" in result.output


def test_simulate(runner, tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("verifier:\n  backend: groth16\n", encoding="utf-8")

    result = runner.invoke(main, ["simulate", "--members", "3", "--reactions", "4", "--settings", str(path)])

    assert result.exit_code == 0, result.output
    assert "thumbs_up" in result.output
    assert "Accepted: 4/4  Distinct reactors: 3" in result.output

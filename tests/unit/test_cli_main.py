"""Tests for sshca.cli.main module."""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from sshca.cli.main import Context, cli, handle_errors, parse_principals
from sshca.config import Settings


@pytest.fixture
def runner():
    """Create a CLI runner."""
    return CliRunner()


class TestContext:
    """Tests for CLI Context class."""

    def test_context_initialization(self):
        settings = Settings(_env_file=None)
        with patch("sshca.cli.main.get_settings", return_value=settings):
            ctx = Context()

        assert ctx.settings is settings
        assert ctx.verbose is False

    def test_rpc_options_uses_keygen_program(self):
        settings = Settings(_env_file=None, keygen_program="/opt/bin/ssh-keygen")
        with patch("sshca.cli.main.get_settings", return_value=settings):
            ctx = Context()

        options = ctx.rpc_options(True, "/etc/ca/ca", "", "")

        assert options.local is True
        assert options.ca_private_key_path == "/etc/ca/ca"
        assert options.remote == ""
        assert options.keygen_program == "/opt/bin/ssh-keygen"


class TestHandleErrors:
    """Tests for handle_errors decorator."""

    def test_handle_errors_passes_through(self):
        @handle_errors
        def test_func():
            return "success"

        assert test_func() == "success"

    def test_handle_errors_catches_exception(self, capsys):
        @handle_errors
        def test_func():
            raise ValueError("test error")

        with pytest.raises(SystemExit) as exc_info:
            test_func()

        assert exc_info.value.code == 1
        assert "test error" in capsys.readouterr().err

    def test_handle_errors_keyboard_interrupt(self):
        @handle_errors
        def test_func():
            raise KeyboardInterrupt()

        with pytest.raises(SystemExit) as exc_info:
            test_func()

        assert exc_info.value.code == 130

    def test_handle_errors_reports_every_grouped_error(self, capsys):
        """Each host key failure gets its own line."""

        @handle_errors
        def test_func():
            raise ExceptionGroup("failed", [ValueError("first key"), OSError("second key")])

        with pytest.raises(SystemExit) as exc_info:
            test_func()

        err = capsys.readouterr().err
        assert exc_info.value.code == 1
        assert "first key" in err
        assert "second key" in err


class TestParsePrincipals:
    """Tests for parse_principals."""

    def test_comma_separated(self):
        assert parse_principals("alice, root,deploy") == ["alice", "root", "deploy"]

    def test_empty_entries_dropped(self):
        assert parse_principals(",alice,,") == ["alice"]
        assert parse_principals("") == []


class TestCLIGroup:
    """Tests for the main CLI group."""

    def test_cli_version(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "sshca" in result.output

    def test_cli_help(self, runner):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("server", "trust", "sign-user", "sign-host"):
            assert command in result.output

    def test_cli_verbose_option(self, runner):
        result = runner.invoke(cli, ["--verbose", "--help"])
        assert result.exit_code == 0

    @pytest.mark.parametrize("command", ["trust", "sign-user", "sign-host"])
    def test_rpc_options_present(self, runner, command):
        result = runner.invoke(cli, [command, "--help"])

        assert result.exit_code == 0
        for option in ("--local", "--ca-private", "--ca-public", "--remote"):
            assert option in result.output

    def test_server_help(self, runner):
        result = runner.invoke(cli, ["server", "--help"])

        assert result.exit_code == 0
        assert "--skip-confirmation" in result.output
        assert "--private" in result.output

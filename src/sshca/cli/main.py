"""CLI main entry point and shared options."""

from __future__ import annotations

import sys
from collections.abc import Callable
from functools import wraps

import click

from sshca import __version__
from sshca.cli.output import error_console, print_error
from sshca.config import Settings, get_settings
from sshca.logging import init_logging, setup_logging
from sshca.rpc.client import RPCOptions


class Context:
    """CLI context object passed to all commands."""

    def __init__(self):
        self.settings: Settings = get_settings()
        self.verbose: bool = False

    def rpc_options(
        self,
        local: bool,
        ca_private_key_path: str,
        ca_public_key_path: str,
        remote: str,
    ) -> RPCOptions:
        """Build RPCOptions from the shared command line flags."""
        return RPCOptions(
            local=local,
            ca_private_key_path=ca_private_key_path,
            ca_public_key_path=ca_public_key_path,
            remote=remote,
            keygen_program=self.settings.keygen_program,
        )


pass_context = click.make_pass_decorator(Context, ensure=True)


def handle_errors(f: Callable) -> Callable:
    """Decorator to handle common errors gracefully."""

    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except KeyboardInterrupt:
            print_error("Operation cancelled")
            sys.exit(130)
        except click.ClickException:
            raise
        except ExceptionGroup as group:
            for error in group.exceptions:
                print_error(str(error))
            sys.exit(1)
        except Exception as e:
            print_error(str(e))
            if args and getattr(args[0], "verbose", False):
                error_console.print_exception()
            sys.exit(1)

    return wrapper


def rpc_options(f: Callable) -> Callable:
    """Add the --local/--remote options used by every client command."""
    options = [
        click.option(
            "-l",
            "--local",
            is_flag=True,
            help="Run CA operations in this process (exclusive with --remote)",
        ),
        click.option(
            "-s",
            "--ca-private",
            "ca_private_key_path",
            default="",
            metavar="PRIVATE_KEY_PATH",
            help="SSH CA private key path (only required when --local is set)",
        ),
        click.option(
            "-p",
            "--ca-public",
            "ca_public_key_path",
            default="",
            metavar="PUBLIC_KEY_PATH",
            help="SSH CA public key path (optional, only used when --local is set)",
        ),
        click.option(
            "-r",
            "--remote",
            default="",
            metavar="HOST:PORT",
            help="Remote server for SSH CA operations (exclusive with --local)",
        ),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def parse_principals(value: str) -> list[str]:
    """Split a comma-separated principal list, dropping empty entries."""
    return [p.strip() for p in value.split(",") if p.strip()]


@click.group()
@click.version_option(version=__version__, prog_name="sshca")
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    help="Enable verbose output",
)
@pass_context
def cli(ctx: Context, verbose: bool):
    """
    sshca - CLI tool for easily using SSH certificate authorities

    Sign user and host keys with a CA held locally or by an 'sshca server',
    and configure sshd to trust it.
    """
    ctx.verbose = verbose
    if verbose:
        setup_logging(level="DEBUG", format=ctx.settings.log_format)
    else:
        init_logging()


# Import and register commands
from sshca.cli.commands.server import server_command
from sshca.cli.commands.sign import sign_host_command, sign_user_command
from sshca.cli.commands.trust import trust_command

cli.add_command(server_command)
cli.add_command(trust_command)
cli.add_command(sign_user_command)
cli.add_command(sign_host_command)


def main():
    """Main entry point."""
    cli(auto_envvar_prefix="SSHCA")


if __name__ == "__main__":
    main()

"""Certificate signing commands for CLI."""

from __future__ import annotations

import click

from sshca.cli.main import Context, handle_errors, parse_principals, pass_context, rpc_options
from sshca.cli.output import print_key_value, print_success, print_warning
from sshca.core.keys import CertificateType
from sshca.operations import generate_certificate, host_principals, sign_host_keys


@click.command("sign-user")
@rpc_options
@click.option(
    "--principals",
    "-n",
    required=True,
    help="Principals to authorise the key for (comma-separated)",
)
@click.argument("public_key_path", type=click.Path(exists=True, dir_okay=False))
@pass_context
@handle_errors
def sign_user_command(
    ctx: Context,
    local: bool,
    ca_private_key_path: str,
    ca_public_key_path: str,
    remote: str,
    principals: str,
    public_key_path: str,
):
    """
    Generate a user certificate for a public key.

    Example:
        sshca sign-user -r ca.example.com:2222 -n alice ~/.ssh/id_ed25519.pub
    """
    principal_list = parse_principals(principals)
    if not principal_list:
        raise click.UsageError("at least one principal is required")

    options = ctx.rpc_options(local, ca_private_key_path, ca_public_key_path, remote)
    with options.make_client() as client:
        cert_path = generate_certificate(
            client, public_key_path, principal_list, CertificateType.USER
        )

    print_success(f"wrote certificate to {cert_path}")


@click.command("sign-host")
@rpc_options
@click.option(
    "--principals",
    "-n",
    default="",
    help="Extra principals for the host keys (comma-separated)",
)
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="sshd_config to read host keys from and update",
)
@pass_context
@handle_errors
def sign_host_command(
    ctx: Context,
    local: bool,
    ca_private_key_path: str,
    ca_public_key_path: str,
    remote: str,
    principals: str,
    config_path: str | None,
):
    """
    Generate and configure certificates for all the host keys.

    The short and fully qualified hostname are always principals.
    """
    settings = ctx.settings
    config_path = config_path or settings.sshd_config_path
    principal_list = host_principals([*settings.extra_principals, *parse_principals(principals)])

    options = ctx.rpc_options(local, ca_private_key_path, ca_public_key_path, remote)
    with options.make_client() as client:
        written = sign_host_keys(client, config_path, principal_list, settings.sshd_program)

    if not written:
        print_warning(f"no host keys found in {config_path}")
        return

    print_key_value("Principals:", ", ".join(principal_list))
    for cert_path in written:
        print_success(f"wrote certificate to {cert_path}")

"""Trusting the CA on this host."""

from __future__ import annotations

import click

from sshca.cli.main import Context, handle_errors, pass_context, rpc_options
from sshca.cli.output import print_success
from sshca.operations import trust_as_host_ca, trust_as_user_ca


@click.command("trust")
@rpc_options
@pass_context
@handle_errors
def trust_command(
    ctx: Context,
    local: bool,
    ca_private_key_path: str,
    ca_public_key_path: str,
    remote: str,
):
    """Trust the CA for user and host authentication."""
    settings = ctx.settings
    options = ctx.rpc_options(local, ca_private_key_path, ca_public_key_path, remote)

    with options.make_client() as client:
        public_key = client.get_ca_public_key()

    trust_as_host_ca(public_key, settings.known_hosts_path)
    print_success(
        f"trusted public key (fingerprint {public_key.fingerprint}) "
        "as authority for host authentication"
    )

    trust_as_user_ca(
        public_key,
        settings.trusted_user_ca_keys_path,
        settings.sshd_config_path,
        settings.sshd_program,
    )
    print_success(
        f"trusted public key (fingerprint {public_key.fingerprint}) "
        "as authority for user authentication"
    )

"""The CA server command."""

from __future__ import annotations

import click

from sshca.cli.main import Context, handle_errors, pass_context
from sshca.cli.output import print_ca_details, print_info
from sshca.core.ca import CAService
from sshca.metrics import start_metrics_server
from sshca.rpc.server import serve


@click.command("server")
@click.argument("address")
@click.option(
    "-s",
    "--private",
    "private_key_path",
    required=True,
    metavar="PRIVATE_KEY_PATH",
    help="SSH CA private key path",
)
@click.option(
    "-p",
    "--public",
    "public_key_path",
    default=None,
    metavar="PUBLIC_KEY_PATH",
    help="SSH CA public key path (optional, inferred from private key path)",
)
@click.option(
    "-q",
    "--skip-confirmation",
    is_flag=True,
    help="Skip confirmation for public key signing requests",
)
@click.option(
    "--metrics-port",
    type=int,
    default=None,
    help="Expose Prometheus metrics on this port",
)
@pass_context
@handle_errors
def server_command(
    ctx: Context,
    address: str,
    private_key_path: str,
    public_key_path: str | None,
    skip_confirmation: bool,
    metrics_port: int | None,
):
    """
    Run as the SSH CA server on a TCP ADDRESS (host:port).

    Every signing request is printed and, unless --skip-confirmation is set,
    waits for Enter on this terminal. ssh-keygen may also ask here for the
    CA key's passphrase.
    """
    service = CAService.from_paths(
        private_key_path,
        public_key_path,
        skip_confirmation=skip_confirmation,
        keygen_program=ctx.settings.keygen_program,
    )
    public_key = service.get_ca_public_key()
    print_ca_details(
        fingerprint=public_key.fingerprint,
        algorithm=public_key.algorithm,
        address=address,
        confirm=not skip_confirmation,
    )

    port = metrics_port or ctx.settings.metrics_port
    if port:
        start_metrics_server(port)
        print_info(f"metrics available on port {port}")

    serve(service, address)

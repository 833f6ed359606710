"""Output formatting helpers for CLI."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel

# Global console instances
console = Console()
error_console = Console(stderr=True)


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    error_console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]![/yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]ℹ[/blue] {message}")


def print_key_value(key: str, value: str, key_width: int = 14) -> None:
    """Print a key-value pair."""
    console.print(f"[cyan]{key:<{key_width}}[/cyan] {value}")


def print_ca_details(fingerprint: str, algorithm: str, address: str, confirm: bool) -> None:
    """Print the banner shown when the CA server starts."""
    content = [
        f"[cyan]Algorithm:[/cyan]    {algorithm}",
        f"[cyan]Fingerprint:[/cyan]  {fingerprint}",
        f"[cyan]Listening:[/cyan]    {address}",
        f"[cyan]Confirmation:[/cyan] {'required' if confirm else 'skipped'}",
    ]
    console.print(
        Panel(
            "\n".join(content),
            title="[bold]SSH CA[/bold]",
            border_style="blue",
        )
    )

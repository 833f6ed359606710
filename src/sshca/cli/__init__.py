"""Command-line interface for sshca."""

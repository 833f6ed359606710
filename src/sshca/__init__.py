"""sshca - issue and trust SSH certificates without hand-editing sshd_config."""

__version__ = "0.3.0"

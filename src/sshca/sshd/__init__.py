"""Reading and safely modifying sshd configuration."""

from sshca.sshd.effective import lookup
from sshca.sshd.modifier import Modification, Modifier, TransactionState

__all__ = ["lookup", "Modification", "Modifier", "TransactionState"]

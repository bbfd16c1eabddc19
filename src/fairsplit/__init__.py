"""FairSplit: group expense splitting and settlement ledger."""

__version__ = "0.1.0"

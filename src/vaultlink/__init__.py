"""vaultlink — bridge between a document host and external agent processes."""

__version__ = "0.1.0"

"""Evidence Sync - durable upload queue for anti-theft evidence photos."""

__version__ = "0.1.0"

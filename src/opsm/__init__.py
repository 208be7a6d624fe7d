"""opsm: provision secrets from 1Password onto the local filesystem."""

__version__ = "1.0.0"

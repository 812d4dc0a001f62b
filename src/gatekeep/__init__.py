"""Gatekeep - authentication and account-security core."""

__version__ = "0.1.0"

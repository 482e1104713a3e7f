"""Passkey authentication core for the Sabzzi grocery list app."""

__version__ = "0.3.0"

"""Tycana CLI installer and self-upgrader."""

__version__ = "0.2.0"

"""Homeserver account registration: username checks, auth flows, accounts and tokens."""

__version__ = "0.1.0"

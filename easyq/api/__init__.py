"""HTTP routes for the EasyQ service."""

from . import auth, connection, keys, randomness, search

__all__ = ["auth", "connection", "keys", "randomness", "search"]

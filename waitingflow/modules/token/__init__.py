"""
Token Module - Black Box Interface

Purpose: Issue admission tokens that prove a user was let in
Interface: TokenIssuer.get_or_create()
Hidden: Hash algorithm, canonical input format, caching

Tokens are deterministic, so any process can re-verify them without a
store round-trip.
"""

from .token import TOKEN_NAMESPACE, TokenCache, TokenIssuer

__all__ = ["TokenIssuer", "TokenCache", "TOKEN_NAMESPACE"]

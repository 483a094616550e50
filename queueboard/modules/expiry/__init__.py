"""
Expiry Module - Black Box Interface

Purpose: Display-only countdown for waiting room entries
Interface: compute_expiry(), ExpiryState, ExpiryTicker
Hidden: Time arithmetic, mm:ss formatting, tick scheduling

Expiry never removes or flags an entry in the store; an expired entry
stays queryable and poppable.
"""

from .expiry import DEFAULT_DURATION, EXPIRED_LABEL, ExpiryState, ExpiryTicker, compute_expiry

__all__ = [
    "DEFAULT_DURATION",
    "EXPIRED_LABEL",
    "ExpiryState",
    "ExpiryTicker",
    "compute_expiry",
]

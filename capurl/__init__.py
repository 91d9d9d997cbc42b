"""Capability-style signed URLs (HMAC-SHA256, expiring, single-use per completion)."""

__version__ = "1.0.0"

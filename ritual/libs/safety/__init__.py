"""Input safety helpers."""

from .guard import contains_injection, sanitize_partner_input, sanitize_text

__all__ = ["contains_injection", "sanitize_partner_input", "sanitize_text"]

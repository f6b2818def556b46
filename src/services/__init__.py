"""
Service functions used by the contact form pipeline.

This package contains the rate limiter, the email template loader and the
SMTP notifier.
"""

__all__ = ['email', 'rate_limiter', 'templates']

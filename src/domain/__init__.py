"""
Domain layer for contact form handling.

This layer contains:
- Data models (submission, rate limit decision, verification result, mail message)
- Error taxonomy (each error knows its HTTP response)
- Request pipeline (ordering and short-circuiting of the checks)
"""

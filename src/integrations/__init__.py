"""
Clients for external services called by the contact form pipeline.
"""

"""
API server bootstrap: HTTP listener, database and rate limiter startup,
and orderly shutdown on fatal errors.
"""

__version__ = "1.0.0"

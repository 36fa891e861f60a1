"""
campus_cache: two-tier cache and sliding-window rate limiting for the
school dashboard.
"""

__version__ = "1.0.0"

"""
Integration tests.

These exercise the cache stack against a live redis-server and are skipped
unless USE_REAL_REDIS is set.
"""

"""Application layer: services built on the cache infrastructure."""

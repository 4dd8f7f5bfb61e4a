"""Infrastructure layer: Redis client, cache manager, locking and monitoring."""

from .ttl_cache import TTLCache  # noqa: F401

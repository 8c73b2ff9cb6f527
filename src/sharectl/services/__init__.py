"""Service layer — registry, selector, cache, and the session that owns them.

Services may import from domain and infrastructure layers.
They must never import from commands or output.
"""

"""Domain layer — passphrase codec, cell IDs, and the records built on them.

This layer depends only on stdlib and pydantic.
It must never import from services, infrastructure, commands, or config.
"""

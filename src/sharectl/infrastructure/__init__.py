"""Infrastructure layer — local database, key/value store, conductor backends.

The conductor protocols in :mod:`sharectl.infrastructure.conductor.base`
are the only contract the services rely on; the loopback backend is one
implementation of them.
"""

"""Infrastructure layer — SQLite store, query cache, lock transports.

This layer depends on stdlib and third-party libs (SQLAlchemy, httpx).
Only the store and transports translate rows and payloads into domain
models; the database modules never import from domain.
It must never import from services, commands, or output.
"""

"""Top-level package for the division budget tracker.

Subpackages: `core` (settings, db, storage, errors), `repo` (sqlite
system of record), `pipeline` (merge, validation, commit, scheduling,
archive), `client` (record clients) and `api` (FastAPI routers).
"""
__all__ = ["api", "client", "core", "pipeline", "repo"]
__version__ = "0.1.0"

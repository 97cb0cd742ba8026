"""
Service Adapters

I/O layer components:
- Database (SQLite history store + FTS5 index)
- Query builder and query service
- Fuzzy finder (fzf)

These adapters provide clean interfaces and isolate external dependencies.
"""

__all__ = ['database', 'query_builder', 'query_service', 'fuzzy_finder']

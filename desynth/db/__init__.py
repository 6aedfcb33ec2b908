"""Database Infrastructure — SQLAlchemy Base and the commit-or-rollback unit of work.

Invariants:
    - All sessions are async (AsyncSession)

Design Decisions:
    - asyncpg driver for PostgreSQL (native async, no thread pool overhead)
"""

"""SQLAlchemy Declarative Base — shared metadata for all settlement tables.

Invariants:
    - All models inherit from Base
    - Constraint and index names are deterministic (NAMING_CONVENTION), so
      migrations can drop or alter them by name on every backend

Design Decisions:
    - Separate file for Base: avoids circular imports between models
"""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all settlement ORM models."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)

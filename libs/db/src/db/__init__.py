"""db: shared database library (SQLAlchemy).

Public exports
--------------
- ``Base`` and ``metadata`` for schema creation
- ORM models in ``db.models.superbank`` (re-exported for convenience)
- Engine/session helpers in ``db.client``
"""

from __future__ import annotations

from .models.superbank import Base, SbBank, SbTag, SbTransaction

metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "SbBank",
    "SbTag",
    "SbTransaction",
]

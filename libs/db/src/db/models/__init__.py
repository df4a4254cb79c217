"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the Super Bank models used by ``super_bank``.
"""

from .superbank import Base, SbBank, SbTag, SbTransaction

__all__ = [
    "Base",
    "SbBank",
    "SbTag",
    "SbTransaction",
]

# slowpost/models/__init__.py
"""
Models package
SQLAlchemy table definitions for the relational store
"""

from .base import Base, build_engine
from .letter import LetterRow

__all__ = [
    "Base",
    "build_engine",
    "LetterRow",
]

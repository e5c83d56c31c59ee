"""
Database Module
"""
from .connection import Database
from .models import Base

__all__ = [
    "Database",
    "Base",
]

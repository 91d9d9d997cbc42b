"""Database module for salt storage"""
from .models import Base, SignedUrlSalt
from .connection import init_db, normalize_database_url

__all__ = [
    'Base',
    'SignedUrlSalt',
    'init_db',
    'normalize_database_url',
]

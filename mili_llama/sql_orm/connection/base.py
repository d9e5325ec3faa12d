"""
Declarative base shared by the local bookkeeping tables.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass

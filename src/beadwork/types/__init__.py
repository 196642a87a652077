# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py, db_base.py, or any mixin; that would create circular imports.
"""Typed return-value contracts for beadwork core and API layers."""

from __future__ import annotations

from beadwork.types.bonding import BondProjectionDict, BondResultDict, EdgeDict
from beadwork.types.core import DependencyRecord, ISOTimestamp, ItemDict, ProjectConfig

__all__ = [
    "BondProjectionDict",
    "BondResultDict",
    "DependencyRecord",
    "EdgeDict",
    "ISOTimestamp",
    "ItemDict",
    "ProjectConfig",
]

"""Beadwork — dependency-graph tracker for work items with formula bonding."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("beadwork")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from beadwork.core import BeadDB, Item

__all__ = ["BeadDB", "Item", "__version__"]

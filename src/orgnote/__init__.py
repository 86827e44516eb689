"""
orgnote - mirror org-mode outline notes into a relational index.

Headlines carrying an ``:ID:`` property become nodes; their inherited tags,
parent (master) relation and ``id:`` cross-references are stored in SQLite
so that lookups, backlinks and tag queries do not have to re-read files.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("orgnote")
except PackageNotFoundError:
    __version__ = "0.3.0"

"""Storage layer for orgnote: the org parser and the SQLite repositories."""

"""
pysqlaccess: Provider-agnostic relational database access.

This module defines dependencies required for SQLite.
"""

import sqlite3  # noqa: F401

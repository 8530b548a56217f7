"""
pysqlaccess: Provider-agnostic relational database access.

This module defines dependencies required for Oracle.
"""

import oracledb  # pyright: ignore[reportUnusedImport] # noqa: F401

"""
pysqlaccess: Provider-agnostic relational database access.

This module defines dependencies required for Microsoft SQL Server.
"""

import pyodbc  # noqa: F401

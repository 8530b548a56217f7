"""
pysqlaccess: Provider-agnostic relational database access.

This library lets you run queries and stored procedures, and synchronize in-memory tables with a database, without
binding your code to a specific database driver (client library).
"""

__version__ = "0.1.0"
__author__ = "Levente Hunyadi"
__copyright__ = "Copyright 2023-2025, Levente Hunyadi"
__license__ = "MIT"
__maintainer__ = "Levente Hunyadi"
__status__ = "Beta"

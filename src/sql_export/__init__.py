"""sql-export - stream a SQL query result to a delimited text file."""

from sql_export.__about__ import __version__

__all__ = ["__version__"]

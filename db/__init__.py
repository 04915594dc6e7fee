"""Database package for the appointment scheduler."""
from db.connection import Database
from db.datastore import SqlDatastore

__all__ = ["Database", "SqlDatastore"]

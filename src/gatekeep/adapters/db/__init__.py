"""Database adapters."""

from gatekeep.adapters.db.app_db import AppDatabase, affected_rows, dump_json, load_json

__all__ = ["AppDatabase", "affected_rows", "dump_json", "load_json"]

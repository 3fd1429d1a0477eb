# scripts/init_db.py
import os
import sys

from movietracker.repo import SqliteDocumentStore

DB = sys.argv[1] if len(sys.argv) > 1 else os.path.join("data", "movietracker.db")
SqliteDocumentStore(DB).init_schema()
print("initialized db at", DB)

#!/usr/bin/env python3
"""Script to list the tables and indexes of the reservations database."""
from sqlalchemy import create_engine, inspect

from reservations.config import get_settings

DATABASE_URL = get_settings().database_url

def check_indexes():
    engine = create_engine(DATABASE_URL)
    inspector = inspect(engine)
    tables = inspector.get_table_names()
    print("Tables:")
    for table in tables:
        print(f"  {table}")

    print("\nDatabase Indexes:")
    for table in tables:
        for index in inspector.get_indexes(table):
            unique = " (unique)" if index.get("unique") else ""
            print(f"Table: {table}, Index: {index['name']}, Columns: {', '.join(index['column_names'])}{unique}")

if __name__ == "__main__":
    check_indexes()

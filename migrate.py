"""Migration / setup helper
This script initializes the database schema used by the app.
Run: python migrate.py
"""
from db import init_db, get_repository


def main():
    init_db()
    print(f"Database initialized ({get_repository().backend})")


if __name__ == "__main__":
    main()

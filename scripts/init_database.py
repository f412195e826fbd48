#!/usr/bin/env python3
"""
Initialize the library inventory database.

This script:
1. Creates all database tables
2. Creates the default admin staff account if it does not exist
3. Optionally loads sample catalog, patron and loan data
4. Verifies the expected tables exist

Usage:
    python scripts/init_database.py [--drop-existing] [--sample-data]
"""

import argparse
import logging
import random
import sys
from datetime import datetime, timedelta

from faker import Faker
from sqlalchemy import inspect

from library_inventory.api.auth import hash_password
from library_inventory.config import get_config
from library_inventory.database.catalog_repository import (
    AuthorCreateSchema,
    AuthorRepository,
    ItemCreateSchema,
    ItemRepository,
    PublisherCreateSchema,
    PublisherRepository,
)
from library_inventory.database.patron_repository import PatronCreateSchema, PatronRepository
from library_inventory.database.session import DatabaseManager
from library_inventory.database.staff_repository import StaffCreateSchema, StaffRepository
from library_inventory.models.catalog import ItemKind
from library_inventory.services.availability import AvailabilityEngine

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

EXPECTED_TABLES = {"authors", "items", "loan_records", "patrons", "publishers", "staff"}

fake = Faker()
Faker.seed(42)
random.seed(42)


def ensure_admin(db_manager: DatabaseManager, username: str, password: str) -> int:
    """Create the admin account unless it exists; returns its staff id."""
    with db_manager.session_scope() as session:
        repo = StaffRepository(session)
        existing = repo.get_db_by_username(username)
        if existing is not None:
            logger.info("Admin account '%s' already exists", username)
            return existing.id
        admin = repo.create(
            StaffCreateSchema(
                username=username,
                full_name="Administrator",
                role="admin",
                password_hash=hash_password(password),
            )
        )
        logger.info("Created admin account '%s'", username)
        return admin.id


def load_sample_data(db_manager: DatabaseManager, admin_id: int, count: int = 20) -> None:
    """
    Load sample data.

    This creates a handful of authors and publishers, ``count`` books, a few
    disks, ``count`` patrons and some loans, a few of them long overdue.
    """
    with db_manager.session_scope() as session:
        authors = AuthorRepository(session)
        publishers = PublisherRepository(session)
        items = ItemRepository(session)
        patrons = PatronRepository(session)

        author_ids = [
            authors.create(
                AuthorCreateSchema(last_name=fake.last_name(), first_name=fake.first_name())
            ).id
            for _ in range(5)
        ]
        publisher_ids = [
            publishers.create(PublisherCreateSchema(name=fake.company())).id for _ in range(3)
        ]

        item_barcodes = []
        for i in range(count):
            book = items.create(
                ItemCreateSchema(
                    kind=ItemKind.BOOK,
                    barcode=f"46{i + 1:011d}",
                    title=fake.catch_phrase().title(),
                    isbn=fake.isbn13(separator=""),
                    author_id=random.choice(author_ids),
                    publisher_id=random.choice(publisher_ids),
                    publication_year=random.randint(1950, 2024),
                    location=f"Shelf {random.randint(1, 12)}",
                ),
                actor_id=admin_id,
            )
            item_barcodes.append(book.barcode)
        for i in range(count // 4):
            items.create(
                ItemCreateSchema(
                    kind=ItemKind.DISK,
                    barcode=f"47{i + 1:011d}",
                    title=fake.bs().title(),
                    subject=random.choice(["History", "Biology", "Literature", "Physics"]),
                    resource_type="DVD",
                ),
                actor_id=admin_id,
            )

        patron_barcodes = []
        for i in range(count):
            patron = patrons.create(
                PatronCreateSchema(
                    barcode=f"20{i + 1:011d}",
                    last_name=fake.last_name(),
                    first_name=fake.first_name(),
                    grade=random.randint(1, 11),
                    class_name=random.choice("ABC"),
                ),
                actor_id=admin_id,
            )
            patron_barcodes.append(patron.barcode)

        # Loans are issued through the engine with a clock set in the past
        start = datetime.now() - timedelta(days=45)
        for offset, barcode in enumerate(item_barcodes[: count // 2]):
            issued_at = start + timedelta(days=offset * 3)
            engine = AvailabilityEngine(session, now=lambda at=issued_at: at)
            engine.issue(barcode, random.choice(patron_barcodes), admin_id)
            if offset % 3 == 0:
                returned_at = issued_at + timedelta(days=random.randint(1, 14))
                AvailabilityEngine(session, now=lambda at=returned_at: at).return_item(
                    barcode, admin_id
                )

    logger.info("Loaded sample data: %s books, %s patrons", count, count)


def main():
    """Main entry point for database initialization."""
    parser = argparse.ArgumentParser(description="Initialize the library inventory database")
    parser.add_argument(
        "--drop-existing",
        action="store_true",
        help="Drop existing tables before creating new ones",
    )
    parser.add_argument(
        "--sample-data",
        action="store_true",
        help="Load sample data after creating tables",
    )
    parser.add_argument("--database-url", help="Override the configured database URL")
    parser.add_argument("--admin-username", default="admin")
    parser.add_argument("--admin-password", default="admin123")

    args = parser.parse_args()

    config = get_config()
    db_manager = DatabaseManager(args.database_url or config.get_database_url())

    if not db_manager.verify_connection():
        logger.error("Failed to connect to database")
        sys.exit(1)

    try:
        db_manager.init_database(drop_existing=args.drop_existing)

        tables = set(inspect(db_manager.engine).get_table_names())
        missing_tables = EXPECTED_TABLES - tables
        if missing_tables:
            logger.error("Missing expected tables: %s", missing_tables)
            sys.exit(1)

        admin_id = ensure_admin(db_manager, args.admin_username, args.admin_password)

        if args.sample_data:
            load_sample_data(db_manager, admin_id)

        logger.info("Database initialization complete")
    except Exception:
        logger.exception("Database initialization failed")
        sys.exit(1)
    finally:
        db_manager.close()


if __name__ == "__main__":
    main()

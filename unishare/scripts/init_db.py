#!/usr/bin/env python3
"""
Database initialization script.

Creates the gamification tables and optionally registers users from a
YAML or JSON seed file::

    python -m unishare.scripts.init_db --seed users.yaml

The seed file holds a list of ``{id, full_name, department, course}`` entries.
"""

import sys
import json
import asyncio
import argparse
from pathlib import Path

import yaml

from unishare.common.exceptions import DuplicateError
from unishare.common.logger import app_logger
from unishare.database.init_db import close_database, get_session_factory, initialize_database
from unishare.gamification.repository import GamificationRepository

logger = app_logger.getChild("scripts.init_db")


def load_seed_users(path: str) -> list:
    """Read seed users from a YAML or JSON file."""
    seed_path = Path(path)
    with open(seed_path, "r") as f:
        if seed_path.suffix.lower() == ".json":
            return json.load(f) or []
        return yaml.safe_load(f) or []


async def async_main(seed: str = None):
    """Initialize the database."""
    try:
        await initialize_database()
        logger.info("Database schema created")

        if seed:
            repository = GamificationRepository(get_session_factory())
            for user in load_seed_users(seed):
                try:
                    await repository.create_user(
                        str(user["id"]),
                        full_name=user.get("full_name"),
                        department=user.get("department"),
                        course=user.get("course")
                    )
                except DuplicateError:
                    logger.info(f"User {user['id']} already exists, skipping")

        logger.info("Database initialized successfully")

    except Exception as e:
        logger.error(f"Error initializing database: {e}")
        sys.exit(1)
    finally:
        await close_database()


def main():
    parser = argparse.ArgumentParser(description="Create the gamification tables")
    parser.add_argument("--seed", help="YAML or JSON file of users to register")
    args = parser.parse_args()
    asyncio.run(async_main(args.seed))


if __name__ == "__main__":
    main()

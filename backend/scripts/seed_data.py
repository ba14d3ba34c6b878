#!/usr/bin/env python3
"""
Seed data script for the billing backend.
This script applies all migrations, including the one that seeds the demo admin and sample products.
"""

import logging
import subprocess
import sys
from pathlib import Path

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def run_seed_migration():
    """Run migrations up to and including the seed data."""
    try:
        logger.info("Running billing migrations...")

        result = subprocess.run(
            ["alembic", "upgrade", "head"],
            cwd=Path(__file__).parent.parent,
            capture_output=True,
            text=True,
            check=True
        )

        logger.info("Migration completed successfully")
        logger.info(f"Migration output: {result.stdout}")

        return True

    except subprocess.CalledProcessError as e:
        logger.error(f"Migration failed: {e}")
        logger.error(f"Error output: {e.stderr}")
        return False
    except FileNotFoundError:
        logger.error("alembic executable not found; install the project first")
        return False


def main():
    """Main function."""
    logger.info("Seeding billing database...")

    if run_seed_migration():
        logger.info("Seed data script completed successfully")
        sys.exit(0)

    logger.error("Seed data script failed")
    sys.exit(1)


if __name__ == "__main__":
    main()

"""
BankDash - Database Seed Script

Creates an admin and demo accounts for local development.

Usage:
    python -m scripts.seed_users
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import structlog

from backend.config import settings
from backend.logging import configure_logging
from backend.auth.accounts import AccountRepository
from backend.auth.database import get_engine, init_db, get_session_factory
from backend.auth.errors import AccountExists
from backend.auth.models import AccountStatus, Role
from backend.auth.password import hash_password


logger = structlog.get_logger("scripts.seed_users")

DEMO_ACCOUNTS = [
    ("admin@bankdash.local", "Admin@BankDash2024", "Ada", "Admin", Role.ADMIN),
    ("premium@bankdash.local", "Premium@2024", "Pat", "Premium", Role.PREMIUM),
    ("user@bankdash.local", "User@2024!", "Uma", "User", Role.USER),
]


def seed_accounts(repository: AccountRepository, work_factor: int) -> int:
    """Create the demo accounts that do not exist yet; returns how many were created."""
    created = 0
    for email, password, first_name, last_name, role in DEMO_ACCOUNTS:
        try:
            repository.create(
                email=email,
                password_hash=hash_password(password, work_factor),
                first_name=first_name,
                last_name=last_name,
                role=role,
                account_status=AccountStatus.ACTIVE,
                is_verified=True,
            )
        except AccountExists:
            logger.info("seed_account_exists", email=email)
            continue
        created += 1
        logger.info("seed_account_created", email=email, role=role.value)
    return created


def main() -> None:
    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)

    engine = get_engine(settings.DATABASE_URL)
    init_db(engine)
    repository = AccountRepository(get_session_factory(engine))

    created = seed_accounts(repository, settings.BCRYPT_WORK_FACTOR)
    logger.info("seed_complete", created=created, database=settings.DATABASE_URL)

    print()
    print("Demo credentials:")
    for email, password, _, _, role in DEMO_ACCOUNTS:
        print(f"  {email:<28} {password:<20} {role.value}")


if __name__ == "__main__":
    main()

"""
Background job to expire plugin licenses

This script should be run periodically (e.g., via cron) to flip active
licenses whose ``expires_at`` has passed to ``expired``.

    python -m pluginhub.scripts.expire_licenses
"""

import sys
from typing import Optional

from sqlmodel import Session
import structlog

from pluginhub.core.database import engine
from pluginhub.core.logging import configure_logging
from pluginhub.services.license_service import LicenseService

logger = structlog.get_logger(__name__)


def expire_licenses(session: Session, now: Optional[int] = None) -> dict:
    """Expire every license past its expiry timestamp"""
    try:
        expired = LicenseService(session).check_expired_licenses(now=now)
    except Exception as e:
        session.rollback()
        logger.error(f"Error expiring licenses: {e}")
        raise

    if not expired:
        logger.info("No expired licenses found")
    return {"expired": expired}


def main():
    """Main entry point for the expiry job"""
    configure_logging()
    logger.info("Starting license expiry job")

    try:
        with Session(engine) as session:
            results = expire_licenses(session)
            logger.info(f"License expiry complete: {results}")
    except Exception as e:
        logger.error(f"Fatal error in license expiry job: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

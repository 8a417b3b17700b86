"""Create or refresh the admin account from ADMIN_EMAIL / ADMIN_PASSWORD."""
import logging
import sys

import database
from accounts import AccountService
from config import load_settings
from errors import ShopError

logger = logging.getLogger("seed_admin")


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        settings = load_settings()
        if not settings.admin_email or not settings.admin_password:
            logger.error("Missing ADMIN_EMAIL or ADMIN_PASSWORD in environment. Aborting.")
            return 1
        db = database.connect(settings)
        if db is None:
            logger.error("DATABASE_URL is not set. Aborting.")
            return 1
        database.ensure_indexes(db)
        AccountService(db, settings).ensure_admin_user()
    except ShopError as exc:
        logger.error("Admin seed failed: %s", exc)
        return 1
    logger.info("Admin seed complete for %s", settings.admin_email)
    return 0


if __name__ == "__main__":
    sys.exit(main())

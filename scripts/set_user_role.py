import os
import sys
import argparse
import logging

# Ensure project root is on sys.path
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if BASE_DIR not in sys.path:
    sys.path.insert(0, BASE_DIR)

from sqlalchemy import select

from lms_app import create_app, db
from lms_app.models import User, ROLES

logger = logging.getLogger(__name__)


def update_account(email: str, role: str | None = None, active: bool | None = None) -> bool:
    app = create_app()
    with app.app_context():
        user = db.session.execute(
            select(User).filter_by(email=email.strip().lower())
        ).scalars().first()
        if not user:
            logger.error("No account registered for %s", email)
            return False
        if role and role != user.role:
            logger.info("Role for %s: %s -> %s", user.email, user.role, role)
            user.role = role
        if active is not None and active != user.is_active:
            logger.info("%s %s", "Activating" if active else "Deactivating", user.email)
            user.is_active = active
        db.session.commit()
        return True


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    parser = argparse.ArgumentParser(description="Change an account's role or active flag by email.")
    parser.add_argument("--email", required=True, help="Email address of the account")
    parser.add_argument("--role", choices=ROLES, help="Role to assign")
    state = parser.add_mutually_exclusive_group()
    state.add_argument("--activate", dest="active", action="store_const", const=True)
    state.add_argument("--deactivate", dest="active", action="store_const", const=False)
    args = parser.parse_args()
    if not args.role and args.active is None:
        parser.error("nothing to change: pass --role, --activate or --deactivate")

    sys.exit(0 if update_account(args.email, args.role, args.active) else 1)

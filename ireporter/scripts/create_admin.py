"""
Grant the admin role to an existing account.

Roles are never set over HTTP; this is the out-of-band path.

Run: python -m ireporter.scripts.create_admin someone@example.com
"""
import sys

from ..domain.errors import NotFound
from ..domain.services.auth_service import auth_service
from ..infrastructure.database import SessionLocal, init_db


def promote(email: str) -> int:
    init_db()
    db = SessionLocal()
    try:
        user = auth_service.promote_to_admin(email, db)
        print(f"{user.username} <{user.email}> is now an admin")
        return 0
    except NotFound:
        print(f"No user registered with email {email}")
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description="Promote a user to admin")
    parser.add_argument('email', help='Email of the account to promote')
    args = parser.parse_args()

    sys.exit(promote(args.email))

"""CLI script to create (or reset) an admin account.
Usage: python scripts/create_admin.py EMAIL NAME [--password PASSWORD]
"""
import sys
import argparse
import getpass
import pathlib
from typing import Optional
# Ensure `backend/` is on sys.path so `examhub` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from examhub.config import Settings
from examhub.database import build_engine, create_db_and_tables
from examhub import services


def main(email: str, name: str, password: Optional[str] = None):
    """Create the admin `email` or reset its name and password.

    The password is prompted for when not given on the command line.
    """
    settings = Settings()
    engine = build_engine(settings.DATABASE_URL)
    create_db_and_tables(engine)
    if not password:
        password = getpass.getpass('Admin password: ')
    if not password:
        print('Password must not be empty')
        return 1
    with Session(engine) as session:
        admin = services.AuthService(session, settings).upsert_admin(email, name, password)
        print(f'Admin ready: id={admin.id} email={admin.email}')
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('email')
    parser.add_argument('name')
    parser.add_argument('--password', help='Admin password (prompted when omitted)')
    args = parser.parse_args()
    sys.exit(main(args.email, args.name, args.password))

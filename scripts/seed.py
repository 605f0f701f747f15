"""Seed the database with an initial admin account.

Reads SEED_ADMIN_EMAIL / SEED_ADMIN_NAME / SEED_ADMIN_PASSWORD; when no
password is given a strong one is generated and printed once.
"""

import os

from sqlalchemy.orm import Session
from app.db.session import SessionLocal
from app.models.user import count_admins
from app.schemas.user import AdminCreate
from app.services.auth import upsert_admin
from app.services.password import generate_secure_password


def run():
    email = os.getenv("SEED_ADMIN_EMAIL", "admin@example.com")
    name = os.getenv("SEED_ADMIN_NAME", "admin")
    password = os.getenv("SEED_ADMIN_PASSWORD")
    generated = password is None
    if generated:
        password = generate_secure_password()

    db: Session = SessionLocal()
    try:
        if count_admins(db) > 0:
            print("admins already exist, nothing to seed")
            return
        admin = upsert_admin(
            db, AdminCreate(email=email, name=name, password=password)
        )
        print(f"created admin {admin.email}")
        if generated:
            print(f"generated password: {password}")
    finally:
        db.close()


if __name__ == "__main__":
    run()

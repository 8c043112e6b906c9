#!/usr/bin/env python3
"""
Admin Account Seed Script
Creates an admin account for the Pathway admin console.

Usage:
    python -m scripts.seed_admin <email> <password> [superadmin|support]

Example:
    python -m scripts.seed_admin admin@example.com securepassword123 superadmin
"""
import sys
import os

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pathway_admin.database import SessionLocal, init_db
from pathway_admin.errors import IdentityError, StoreError
from pathway_admin.models.db_models import AdminRole
from pathway_admin.services.identity_service import IdentityService, validate_password


def create_admin_account(email: str, password: str, role: AdminRole) -> bool:
    """Create an admin account, or grant the role to an existing account."""
    # Ensure tables exist
    init_db()

    db = SessionLocal()
    try:
        identity = IdentityService(db)
        existing = identity.get_by_email(email)
        if existing:
            if existing.is_admin and existing.role == role.value:
                print(f"Account '{email}' is already a {role.value}.")
                return False
            existing.is_admin = True
            existing.role = role.value
            db.commit()
            print(f"Granted {role.value} role to existing account '{email}'.")
            return True

        uid = identity.create_account(email, password, role=role)
        print("Admin account created successfully!")
        print(f"  Email: {email}")
        print(f"  UID: {uid}")
        print(f"  Role: {role.value}")
        return True

    except (IdentityError, StoreError) as e:
        print(f"Error creating admin account: {e}")
        db.rollback()
        return False
    finally:
        db.close()


def main():
    if len(sys.argv) not in (3, 4):
        print(__doc__)
        sys.exit(1)

    email = sys.argv[1]
    password = sys.argv[2]
    role_name = sys.argv[3] if len(sys.argv) == 4 else AdminRole.SUPERADMIN.value

    try:
        role = AdminRole(role_name)
    except ValueError:
        print("Error: Role must be superadmin or support.")
        sys.exit(1)

    problem = validate_password(password)
    if problem:
        print(f"Error: {problem}.")
        sys.exit(1)

    if "@" not in email:
        print("Error: Invalid email format.")
        sys.exit(1)

    success = create_admin_account(email, password, role)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Seed a verified user (and its profile) straight into Firestore.

Handy for logging in against a fresh database without going through
registration. Re-running with the same e-mail updates the existing user.

    python scripts/create_simple_user.py --email simple@example.com --password secret123
"""

import argparse
import sys

from skillswap.core.logging_config import setup_logging
from skillswap.core.security import get_password_hash
from skillswap.db.firebase_ops import FirebaseManager, get_firestore_ops_instance, generate_object_id

PROFILE_COLLECTIONS = {"client": "client_profiles", "freelancer": "freelancer_profiles"}


def create_simple_user(name: str, email: str, password: str, role: str) -> str:
    firestore_ops = get_firestore_ops_instance()

    existing = firestore_ops.query(collection_name="users", field="email", operator="==", value=email)
    user_id = existing[0]["id"] if existing else generate_object_id()

    user_record = {
        "name": name,
        "email": email,
        "role": role,
        "hashed_password": get_password_hash(password),
        "is_verified": True,
        "account_status": "active",
        "is_active": True,
    }
    if not firestore_ops.save(collection_name="users", data_model=user_record, document_id=user_id):
        raise RuntimeError(f"Could not save user {email}")
    print(f"✅ User {'updated' if existing else 'created'}: {email} ({user_id})")

    collection = PROFILE_COLLECTIONS.get(role)
    if collection and not firestore_ops.get(collection_name=collection, document_id=user_id):
        profile = {"user_id": user_id}
        if role == "freelancer":
            profile["verification_status"] = "approved"
        firestore_ops.save(collection_name=collection, data_model=profile, document_id=user_id)
        print(f"✅ {role.capitalize()} profile created")

    return user_id


def main():
    parser = argparse.ArgumentParser(description="Create or update a SkillSwap user directly in Firestore")
    parser.add_argument("--name", default="Simple User")
    parser.add_argument("--email", default="simple@example.com")
    parser.add_argument("--password", required=True)
    parser.add_argument("--role", choices=["client", "freelancer", "admin"], default="client")
    args = parser.parse_args()

    setup_logging("INFO")
    if FirebaseManager().get_db() is None:
        print("❌ Firebase connection failed! Set FIREBASE_CREDENTIALS to your service account key.")
        sys.exit(1)

    create_simple_user(args.name, args.email, args.password, args.role)
    print(f"\nLog in with: {args.email} / <the password you passed>")


if __name__ == "__main__":
    main()

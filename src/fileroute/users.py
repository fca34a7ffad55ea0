"""
User lookups over the `users` table.

Only find_by_email returns the password hash; everything that can end up
in request.meta or an API response uses PUBLIC_COLUMNS.
"""

from typing import Any, Dict, List, Optional
import logging
import sqlite3
import time

from .auth.passwords import hash_password, verify_password
from .storage import Database


logger = logging.getLogger(__name__)


PUBLIC_COLUMNS = "id, email, name, role, created_at"


class UserRepository:
    def __init__(self, db: Database):
        self.db = db

    def find_by_id(self, user_id: Any) -> Optional[Dict[str, Any]]:
        try:
            user_id = int(user_id)
        except (TypeError, ValueError):
            return None
        return self.db.fetch_one(f"SELECT {PUBLIC_COLUMNS} FROM users WHERE id = ?", (user_id,))

    def find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Includes the password hash, for credential checks."""
        return self.db.table("users").where("email", email).first()

    def all(self) -> List[Dict[str, Any]]:
        return self.db.fetch_all(f"SELECT {PUBLIC_COLUMNS} FROM users ORDER BY created_at DESC, id DESC")

    def create(self, fields: Dict[str, Any]) -> int:
        """
        Create a user from email, password, optional name and role.

        Raises:
            ValueError: the email is already registered
        """
        try:
            return self.db.table("users").insert({
                "email": fields["email"],
                "password": hash_password(fields["password"]),
                "name": fields.get("name") or "",
                "role": fields.get("role") or "user",
                "created_at": int(time.time()),
            })
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Email already registered: {fields['email']}") from e

    def authenticate(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        """The public user record when the credentials match, else None."""
        user = self.find_by_email(email) if email else None
        if user is None or not verify_password(password or "", user["password"]):
            return None
        return self.find_by_id(user["id"])

    def seed(self) -> List[str]:
        """Create the demo accounts that do not exist yet."""
        created = []
        for email, name, role in (
            ("admin@example.com", "Admin User", "admin"),
            ("user@example.com", "Demo User", "user"),
        ):
            if self.find_by_email(email) is None:
                self.create({"email": email, "password": "password", "name": name, "role": role})
                logger.info(f"Created {role} account {email}")
                created.append(email)
        return created

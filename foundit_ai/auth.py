"""
Campus login (simulation only)
------------------------------
email on the campus domain -> fixed one-time code -> profile. This is a demo
flow and not a security boundary.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional, Set

from .common.errors import ValidationError
from .common.schemas import User
from .common.utils import normalize_email
from .store import Store

logger = logging.getLogger(__name__)


class CampusLogin:

    def __init__(self, store: Store, campus_domain: str = "nmims.in",
                 campus_name: str = "Shirpur", otp: str = "1234"):
        self._store = store
        self._domain = campus_domain.lower().lstrip("@")
        self._campus = campus_name
        self._otp = otp
        self._started: Set[str] = set()
        self._verified: Set[str] = set()
        self._lock = threading.Lock()

    def start(self, email: str) -> str:
        email = normalize_email(email)
        if not email.endswith(f"@{self._domain}"):
            raise ValidationError(f"Please use your official @{self._domain} email ID.")
        with self._lock:
            self._started.add(email)
        logger.info(f"Simulated OTP sent to {email}")
        return email

    def verify(self, email: str, otp: str) -> None:
        email = normalize_email(email)
        with self._lock:
            if email not in self._started:
                raise ValidationError("Login was not started for this email")
            if otp.strip() != self._otp:
                raise ValidationError("Invalid OTP")
            self._verified.add(email)

    def find_user(self, email: str) -> Optional[User]:
        email = normalize_email(email)
        return next((u for u in self._store.all("users") if u.email == email), None)

    def complete_profile(self, email: str, name: str) -> User:
        email = normalize_email(email)
        if email not in self._verified:
            raise ValidationError("Email has not been verified")
        if not name.strip():
            raise ValidationError("Name cannot be empty")

        user = self.find_user(email)
        if user is None:
            user = User(name=name.strip(), email=email, campus=self._campus, is_verified=True)
            self._store.put("users", user.id, user)
            logger.info(f"Created user {user.id} for {email}")

        with self._lock:
            self._started.discard(email)
            self._verified.discard(email)
        return user

"""
FoundIt configuration
---------------------
Reads the environment (and a local .env file) once into a Settings object.
"""

from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel


class Settings(BaseModel):
    google_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"
    oracle_timeout: float = 30.0

    match_threshold: float = 60.0
    max_verification_attempts: int = 2

    store_backend: str = "memory"  # memory | firestore
    snapshot_dir: Optional[str] = None
    project_id: Optional[str] = None

    campus_domain: str = "nmims.in"
    campus_name: str = "Shirpur"
    login_otp: str = "1234"

    notify_webhook_url: Optional[str] = None
    log_file: Optional[str] = "activity.log"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()

        settings = cls(
            google_api_key=os.getenv("GOOGLE_API_KEY") or None,
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash"),
            oracle_timeout=float(os.getenv("ORACLE_TIMEOUT", "30")),
            match_threshold=float(os.getenv("MATCH_THRESHOLD", "60")),
            max_verification_attempts=int(os.getenv("MAX_VERIFICATION_ATTEMPTS", "2")),
            store_backend=os.getenv("STORE_BACKEND", "memory").lower(),
            snapshot_dir=os.getenv("SNAPSHOT_DIR") or None,
            project_id=os.getenv("PROJECT_ID") or None,
            campus_domain=os.getenv("CAMPUS_DOMAIN", "nmims.in"),
            campus_name=os.getenv("CAMPUS_NAME", "Shirpur"),
            login_otp=os.getenv("LOGIN_OTP", "1234"),
            notify_webhook_url=os.getenv("NOTIFY_WEBHOOK_URL") or None,
            log_file=os.getenv("LOG_FILE", "activity.log") or None,
        )

        if settings.store_backend == "firestore" and not settings.project_id:
            raise RuntimeError("PROJECT_ID must be set when STORE_BACKEND=firestore")
        if settings.store_backend not in ("memory", "firestore"):
            raise RuntimeError(f"Unknown STORE_BACKEND: {settings.store_backend}")

        return settings

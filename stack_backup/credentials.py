"""Read access to the stack's stored credentials file."""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from ._utils import logger


class CredentialsUnavailable(Exception):
    """The credentials file is missing or cannot be parsed."""


class CredentialStore:
    """Load credentials written by the stack installer.

    The file is a JSON object keyed by service, e.g.
    ``{"postgres": {"password": "..."}, ...}``. It is re-read on every call
    so a restored credentials file takes effect immediately.
    """

    def __init__(self, credentials_path: str):
        self.credentials_path = Path(credentials_path)

    def load(self) -> Dict[str, Any]:
        try:
            with open(self.credentials_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise CredentialsUnavailable(f"Credentials file not found: {self.credentials_path}") from e
        except (OSError, json.JSONDecodeError) as e:
            raise CredentialsUnavailable(f"Cannot read credentials file {self.credentials_path}: {e}") from e

        if not isinstance(data, dict):
            raise CredentialsUnavailable(f"Credentials file {self.credentials_path} is not a JSON object")
        return data

    def postgres_password(self) -> Optional[str]:
        """Return the stored PostgreSQL password, or None if unavailable."""
        try:
            credentials = self.load()
        except CredentialsUnavailable as e:
            logger.warning(f"PostgreSQL credentials unavailable: {e}")
            return None

        postgres = credentials.get("postgres") or {}
        if not isinstance(postgres, dict):
            return None
        return postgres.get("password") or None

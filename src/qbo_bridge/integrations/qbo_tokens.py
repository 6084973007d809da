"""QBO OAuth credential and its on-disk store.

The store only exists so a development/service process survives restarts
without re-running the consent flow. It is best-effort: a failed write is
logged and the in-memory credential stays authoritative.
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import asdict, dataclass
from typing import Any

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = (
    "access_token",
    "refresh_token",
    "expires_at",
    "refresh_expires_at",
    "realm_id",
    "environment",
)


@dataclass(frozen=True, slots=True)
class QBOCredential:
    access_token: str
    refresh_token: str
    expires_at: int
    refresh_expires_at: int
    realm_id: str
    environment: str

    def is_access_token_valid(self, now: float | None = None) -> bool:
        return (time.time() if now is None else now) < self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "QBOCredential":
        """Build a credential, rejecting partial documents."""

        if not isinstance(raw, dict):
            raise ValueError("credential document must be a JSON object")
        missing = [k for k in _REQUIRED_FIELDS if raw.get(k) in (None, "")]
        if missing:
            raise ValueError(f"credential is missing fields: {', '.join(missing)}")

        try:
            expires_at = int(raw["expires_at"])
            refresh_expires_at = int(raw["refresh_expires_at"])
        except (TypeError, ValueError) as e:
            raise ValueError(f"credential expiry is not a unix timestamp: {e}") from e

        return cls(
            access_token=str(raw["access_token"]),
            refresh_token=str(raw["refresh_token"]),
            expires_at=expires_at,
            refresh_expires_at=refresh_expires_at,
            realm_id=str(raw["realm_id"]),
            environment=str(raw["environment"]),
        )

    @classmethod
    def from_grant(
        cls,
        *,
        access_token: str | None,
        refresh_token: str | None,
        expires_in: int | None,
        refresh_expires_in: int | None,
        realm_id: str | None,
        environment: str,
        issued_at: float | None = None,
    ) -> "QBOCredential":
        """Build a credential from the relative lifetimes an OAuth grant returns."""

        issued = int(time.time() if issued_at is None else issued_at)
        return cls.from_dict(
            {
                "access_token": access_token,
                "refresh_token": refresh_token,
                "expires_at": issued + int(expires_in) if expires_in else None,
                "refresh_expires_at": (
                    issued + int(refresh_expires_in) if refresh_expires_in else None
                ),
                "realm_id": realm_id,
                "environment": environment,
            }
        )

    def __repr__(self) -> str:
        # Never leak secrets through logs or tracebacks.
        return (
            f"QBOCredential(realm_id={self.realm_id!r}, environment={self.environment!r}, "
            f"expires_at={self.expires_at}, refresh_expires_at={self.refresh_expires_at})"
        )


class QBOCredentialStore:
    """Single JSON document holding the current credential."""

    def __init__(self, path: str) -> None:
        self._path = path

    @property
    def path(self) -> str:
        return self._path

    def load(self) -> QBOCredential | None:
        if not os.path.exists(self._path):
            logger.debug("No stored QBO credential at %s", self._path)
            return None
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            credential = QBOCredential.from_dict(raw)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable QBO credential at %s: %s", self._path, e)
            return None

        logger.debug("Read locally stored QBO credential for realm %s", credential.realm_id)
        return credential

    def save(self, credential: QBOCredential) -> bool:
        """Overwrite the stored credential. Returns False when the write failed."""

        try:
            with open(self._path, "w", encoding="utf-8") as f:
                json.dump(credential.to_dict(), f, indent=2)
        except OSError as e:
            logger.error("Failed to persist QBO credential to %s: %s", self._path, e)
            return False
        return True

    def clear(self) -> None:
        try:
            os.remove(self._path)
        except FileNotFoundError:
            return
        except OSError as e:
            logger.error("Failed to remove QBO credential at %s: %s", self._path, e)

"""Process-local cache of the signed-in principal."""

from __future__ import annotations

import logging
from pathlib import Path
from threading import Lock

from pydantic import ValidationError

from essay_grader.schemas.user import Principal

logger = logging.getLogger(__name__)


class CredentialStore:
    """Hold the non-secret :class:`Principal` for the current session.

    Only the principal snapshot is ever written to ``path``; credential
    material stays in the HTTP client's cookie jar. Without a ``path`` the
    store lives in memory only.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path else None
        self._lock = Lock()
        self._principal: Principal | None = self._load()

    def _load(self) -> Principal | None:
        if self._path is None or not self._path.exists():
            return None
        try:
            return Principal.model_validate_json(self._path.read_text(encoding="utf-8"))
        except ValidationError:
            logger.warning("discarding unreadable principal snapshot at %s", self._path)
            self._path.unlink(missing_ok=True)
            return None

    def set(self, principal: Principal) -> None:
        """Replace the cached principal wholesale."""
        with self._lock:
            self._principal = principal
            if self._path is not None:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                self._path.write_text(principal.model_dump_json(), encoding="utf-8")

    def clear(self) -> None:
        """Forget the principal; calling it again is a no-op."""
        with self._lock:
            self._principal = None
            if self._path is not None:
                self._path.unlink(missing_ok=True)

    def current(self) -> Principal | None:
        return self._principal

    def is_role(self, role: str) -> bool:
        principal = self._principal
        return principal is not None and principal.role == role

    @property
    def is_authenticated(self) -> bool:
        return self._principal is not None

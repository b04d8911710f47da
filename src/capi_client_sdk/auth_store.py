from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from platformdirs import user_data_dir
from pydantic import ValidationError as ModelValidationError

from .models import SessionData, User


@dataclass
class AuthStore:
    app_name: str = "capi"
    filename: str = "session.json"
    base_dir: Path | None = None

    def _path(self) -> Path:
        base = self.base_dir or Path(user_data_dir(self.app_name, "CAPI"))
        base.mkdir(parents=True, exist_ok=True)
        return base / self.filename

    def save(self, session: SessionData) -> None:
        path = self._path()
        data = session.model_dump(mode="json", by_alias=True)
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        try:
            path.chmod(0o600)
        except OSError:
            pass

    def load(self) -> SessionData | None:
        path = self._path()
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            self.clear()
            return None
        try:
            return SessionData.model_validate(data)
        except ModelValidationError:
            self.clear()
            return None

    def save_user(self, user: User) -> SessionData:
        """Replace the stored user, keeping the token and store display fields."""
        current = self.load() or SessionData()
        if current.user is not None and user.store_name is None:
            user = user.model_copy(update={"store_name": current.user.store_name})
        session = current.model_copy(update={"user": user})
        self.save(session)
        return session

    def clear(self) -> None:
        path = self._path()
        if path.exists():
            path.unlink()

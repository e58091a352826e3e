from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

SESSION_FILE = "session.json"
UPLOADS_DIR = "uploads"
DOWNLOADS_DIR = "downloads"
DELIVERED_DIR = "delivered"


class SessionStore:
    """Per-user files under ``<data_dir>/<user_id>/``.

    ``session.json`` holds the engine session handle; ``downloads/`` is the
    outbox the engine is told to write files into.
    """

    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir)

    def user_dir(self, user_id: int | str) -> Path:
        return self.data_dir / str(user_id)

    def uploads_path(self, user_id: int | str) -> Path:
        return self.user_dir(user_id) / UPLOADS_DIR

    def outbox_path(self, user_id: int | str) -> Path:
        return self.user_dir(user_id) / DOWNLOADS_DIR

    def delivered_path(self, user_id: int | str) -> Path:
        return self.user_dir(user_id) / DELIVERED_DIR

    def ensure_user_dirs(self, user_id: int | str) -> Path:
        self.uploads_path(user_id).mkdir(parents=True, exist_ok=True)
        self.outbox_path(user_id).mkdir(parents=True, exist_ok=True)
        return self.user_dir(user_id)

    def collect_outbox(self, user_id: int | str) -> list[Path]:
        """Move every file the engine left in the outbox to ``delivered/``.

        Returns the delivered paths; a file is reported once, and a later
        file with the same name replaces the earlier delivery.
        """
        outbox = self.outbox_path(user_id)
        if not outbox.is_dir():
            return []
        files = sorted(path for path in outbox.iterdir() if path.is_file())
        if not files:
            return []
        delivered = self.delivered_path(user_id)
        delivered.mkdir(parents=True, exist_ok=True)
        moved = [path.replace(delivered / path.name) for path in files]
        logger.info(f"Delivered {len(moved)} outbox file(s) for user {user_id}")
        return moved

    def get(self, user_id: int | str) -> Optional[str]:
        path = self.user_dir(user_id) / SESSION_FILE
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(f"Unreadable session file {path}: {exc}")
            return None
        if not isinstance(data, dict):
            return None
        return data.get("currentSessionId") or None

    def save(self, user_id: int | str, session_id: str) -> None:
        user_dir = self.user_dir(user_id)
        user_dir.mkdir(parents=True, exist_ok=True)
        (user_dir / SESSION_FILE).write_text(
            json.dumps({"currentSessionId": session_id}, indent=2),
            encoding="utf-8",
        )

    def clear(self, user_id: int | str) -> None:
        (self.user_dir(user_id) / SESSION_FILE).unlink(missing_ok=True)

    def wipe(self, user_id: int | str) -> None:
        shutil.rmtree(self.user_dir(user_id), ignore_errors=True)

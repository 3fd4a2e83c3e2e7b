# estimator/project_store.py

from __future__ import annotations

import copy
import json
import logging
import os
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from estimator.exceptions import NotFoundError, StorageError

logger = logging.getLogger(__name__)

_COLLECTIONS = ("users", "projects", "files", "versions", "analyses")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


class ProjectStore:
    """
    JSON-file record store for users, projects, uploaded files, module
    versions and analyses.

    Every call re-reads the file and every write replaces it atomically, so
    several Streamlit sessions can share one store. Records handed out are
    copies; mutate through the store methods.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.RLock()

    # ----------------------------------------------------------------
    # Low-level document access
    # ----------------------------------------------------------------

    def _empty(self) -> Dict[str, Dict[str, Any]]:
        return {name: {} for name in _COLLECTIONS}

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return self._empty()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read store {self.path}: {e}") from e
        for name in _COLLECTIONS:
            data.setdefault(name, {})
        return data

    def _save(self, data: Dict[str, Dict[str, Any]]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, default=str)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"Failed to write store {self.path}: {e}") from e

    def _get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._load()[collection].get(record_id)
        return copy.deepcopy(record) if record else None

    def _insert(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            data = self._load()
            data[collection][record["id"]] = record
            self._save(data)
        return copy.deepcopy(record)

    def _update(self, collection: str, record_id: str, **changes: Any) -> Dict[str, Any]:
        with self._lock:
            data = self._load()
            record = data[collection].get(record_id)
            if record is None:
                raise NotFoundError(f"{collection[:-1].capitalize()} not found", details={"id": record_id})
            record.update(changes)
            self._save(data)
        return copy.deepcopy(record)

    def _select(self, collection: str, **filters: Any) -> List[Dict[str, Any]]:
        with self._lock:
            records = list(self._load()[collection].values())
        return [
            copy.deepcopy(r)
            for r in records
            if all(r.get(k) == v for k, v in filters.items())
        ]

    # ----------------------------------------------------------------
    # Users
    # ----------------------------------------------------------------

    def create_user(self, email: str, password_hash: str, name: str) -> Dict[str, Any]:
        return self._insert("users", {
            "id": _new_id(),
            "email": email,
            "password": password_hash,
            "name": name,
            "created_at": _now(),
        })

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._get("users", user_id)

    def find_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        matches = self._select("users", email=email)
        return matches[0] if matches else None

    # ----------------------------------------------------------------
    # Projects
    # ----------------------------------------------------------------

    def create_project(self, user_id: str, name: str, description: str = "") -> Dict[str, Any]:
        now = _now()
        return self._insert("projects", {
            "id": _new_id(),
            "user_id": user_id,
            "name": name,
            "description": description,
            "status": "draft",
            "active_version_id": None,
            "created_at": now,
            "updated_at": now,
        })

    def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        return self._get("projects", project_id)

    def list_projects(self, user_id: str) -> List[Dict[str, Any]]:
        projects = self._select("projects", user_id=user_id)
        return sorted(projects, key=lambda p: p.get("updated_at") or "", reverse=True)

    def update_project(self, project_id: str, **changes: Any) -> Dict[str, Any]:
        changes["updated_at"] = _now()
        return self._update("projects", project_id, **changes)

    def set_active_version(self, project_id: str, version_id: str) -> Dict[str, Any]:
        # last writer wins; no compare-and-set on the previous pointer
        return self.update_project(project_id, active_version_id=version_id)

    # ----------------------------------------------------------------
    # Module versions (immutable once written)
    # ----------------------------------------------------------------

    def create_version(
        self,
        project_id: str,
        modules_data: Dict[str, Any],
        name: Optional[str] = None,
        **summary: Any,
    ) -> Dict[str, Any]:
        with self._lock:
            data = self._load()
            if project_id not in data["projects"]:
                raise NotFoundError("Project not found", details={"id": project_id})

            existing = [
                v["version"] for v in data["versions"].values()
                if v.get("project_id") == project_id
            ]
            next_version = max(existing, default=0) + 1

            record = {
                "id": _new_id(),
                "project_id": project_id,
                "version": next_version,
                "name": name or f"Version {next_version}",
                "modules_data": copy.deepcopy(modules_data),
                "created_at": _now(),
            }
            record.update(summary)
            data["versions"][record["id"]] = record
            self._save(data)

        logger.info("Created version %s (v%d) for project %s", record["id"], next_version, project_id)
        return copy.deepcopy(record)

    def get_version(self, version_id: str) -> Optional[Dict[str, Any]]:
        return self._get("versions", version_id)

    def list_versions(self, project_id: str) -> List[Dict[str, Any]]:
        versions = self._select("versions", project_id=project_id)
        return sorted(versions, key=lambda v: v["version"], reverse=True)

    def latest_version(self, project_id: str) -> Optional[Dict[str, Any]]:
        versions = self.list_versions(project_id)
        return versions[0] if versions else None

    # ----------------------------------------------------------------
    # Files
    # ----------------------------------------------------------------

    def add_file(
        self,
        project_id: str,
        filename: str,
        original_name: str,
        file_size: int,
        mime_type: str,
        file_path: str,
    ) -> Dict[str, Any]:
        return self._insert("files", {
            "id": _new_id(),
            "project_id": project_id,
            "filename": filename,
            "original_name": original_name,
            "file_size": file_size,
            "mime_type": mime_type,
            "file_path": file_path,
            "uploaded_at": _now(),
        })

    def get_file(self, file_id: str) -> Optional[Dict[str, Any]]:
        return self._get("files", file_id)

    def list_files(self, project_id: str) -> List[Dict[str, Any]]:
        files = self._select("files", project_id=project_id)
        return sorted(files, key=lambda f: f["uploaded_at"], reverse=True)

    def delete_file(self, file_id: str) -> None:
        with self._lock:
            data = self._load()
            if data["files"].pop(file_id, None) is None:
                raise NotFoundError("File not found", details={"id": file_id})
            self._save(data)

    # ----------------------------------------------------------------
    # Analyses (one per project)
    # ----------------------------------------------------------------

    def save_analysis(self, project_id: str, analysis: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            data = self._load()
            previous = data["analyses"].get(project_id) or {}
            record = dict(analysis)
            record["id"] = previous.get("id") or _new_id()
            record["project_id"] = project_id
            record["analyzed_at"] = _now()
            data["analyses"][project_id] = record
            self._save(data)
        return copy.deepcopy(record)

    def get_analysis(self, project_id: str) -> Optional[Dict[str, Any]]:
        return self._get("analyses", project_id)

"""Read OpenCode's file-based session storage.

Layout under the storage root::

    project/<projectID>.json
    session/<projectID>/<sessionID>.json
    message/<sessionID>/<messageID>.json
    part/<messageID>/<partID>.json

Missing directories read as empty and unreadable files are skipped, so a
half-written session still loads.
"""

import json
from pathlib import Path


class StorageError(Exception):
    """Raised when an explicitly requested export file cannot be read."""


def get_default_storage_path() -> Path:
    return Path.home() / ".local" / "share" / "opencode" / "storage"


def _read_json(path: Path):
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return None
    try:
        obj = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return obj if isinstance(obj, dict) else None


def _list_json_objects(directory: Path) -> list[dict]:
    if not directory.is_dir():
        return []
    objects = []
    for path in directory.glob("*.json"):
        if not path.is_file():
            continue
        obj = _read_json(path)
        if obj is not None:
            objects.append(obj)
    return objects


def _updated_at(obj: dict):
    times = obj.get("time")
    if not isinstance(times, dict):
        return 0
    return times.get("updated") or times.get("created") or 0


def _by_id(obj: dict) -> str:
    value = obj.get("id")
    return value if isinstance(value, str) else ""


def list_projects(storage_path) -> list[dict]:
    """List all projects, most recently updated first."""
    projects = _list_json_objects(Path(storage_path) / "project")
    projects.sort(key=_updated_at, reverse=True)
    return projects


def get_project(storage_path, project_id: str) -> dict | None:
    return _read_json(Path(storage_path) / "project" / f"{project_id}.json")


def find_project_by_path(storage_path, workdir) -> dict | None:
    """Return the project whose worktree contains ``workdir``."""
    workdir = str(workdir)
    for project in list_projects(storage_path):
        worktree = project.get("worktree")
        if isinstance(worktree, str) and worktree and workdir.startswith(worktree):
            return project
    return None


def list_sessions(storage_path, project_id: str) -> list[dict]:
    """List sessions of one project, most recently updated first."""
    sessions = _list_json_objects(Path(storage_path) / "session" / project_id)
    sessions.sort(key=_updated_at, reverse=True)
    return sessions


def get_session(storage_path, project_id: str, session_id: str) -> dict | None:
    return _read_json(Path(storage_path) / "session" / project_id / f"{session_id}.json")


def list_all_sessions(storage_path) -> list[tuple[dict, dict]]:
    """List ``(project, session)`` pairs across every project, newest first."""
    results = []
    for project in list_projects(storage_path):
        project_id = project.get("id")
        if not isinstance(project_id, str):
            continue
        for session in list_sessions(storage_path, project_id):
            results.append((project, session))
    results.sort(key=lambda pair: _updated_at(pair[1]), reverse=True)
    return results


def find_session(storage_path, session_id: str) -> tuple[dict, dict] | None:
    """Locate a session by id without knowing its project."""
    for project in list_projects(storage_path):
        project_id = project.get("id")
        if not isinstance(project_id, str):
            continue
        session = get_session(storage_path, project_id, session_id)
        if session is not None:
            return project, session
    return None


def list_messages(storage_path, session_id: str) -> list[dict]:
    """List a session's messages in chronological order.

    Message ids embed their creation time, so sorting by id is sorting by
    time.
    """
    messages = _list_json_objects(Path(storage_path) / "message" / session_id)
    messages.sort(key=_by_id)
    return messages


def list_parts(storage_path, message_id: str) -> list[dict]:
    parts = _list_json_objects(Path(storage_path) / "part" / message_id)
    parts.sort(key=_by_id)
    return parts


def get_messages_with_parts(storage_path, session_id: str) -> list[dict]:
    """Load a whole conversation as ``{"message": ..., "parts": [...]}`` envelopes."""
    result = []
    for message in list_messages(storage_path, session_id):
        message_id = message.get("id")
        parts = list_parts(storage_path, message_id) if isinstance(message_id, str) else []
        result.append({"message": message, "parts": parts})
    return result


def _normalize_envelope(obj) -> dict | None:
    if not isinstance(obj, dict):
        return None
    info = obj.get("message")
    if not isinstance(info, dict):
        info = obj.get("info")
    if not isinstance(info, dict):
        return None
    parts = obj.get("parts")
    return {"message": info, "parts": parts if isinstance(parts, list) else []}


def parse_export_data(data) -> tuple[dict | None, list[dict]]:
    """Split exported session data into ``(session, envelopes)``.

    Accepts the ``opencode export`` shape ``{"info": session, "messages":
    [...]}`` as well as a bare list of message envelopes.
    """
    session = None
    if isinstance(data, dict):
        info = data.get("info") or data.get("session")
        session = info if isinstance(info, dict) else None
        raw_messages = data.get("messages", [])
    elif isinstance(data, list):
        raw_messages = data
    else:
        raise StorageError("Export must be a JSON object or a list of messages")

    if not isinstance(raw_messages, list):
        raise StorageError("Export 'messages' must be a list")

    messages = []
    for obj in raw_messages:
        envelope = _normalize_envelope(obj)
        if envelope is not None:
            messages.append(envelope)
    return session, messages


def load_export_file(path) -> tuple[dict | None, list[dict]]:
    """Load a session export written by ``opencode export`` (or ``--json``)."""
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise StorageError(f"Could not read {path}: {e}") from e
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise StorageError(f"Invalid JSON in {path}: {e}") from e
    return parse_export_data(data)

from __future__ import annotations

import json
import logging
import os
import time
import urllib.error
import urllib.request
from collections.abc import Callable
from typing import Any, Optional

LOGGER = logging.getLogger("tool_tracking.projects")

CACHE_TTL_SECONDS = 300
REQUEST_TIMEOUT_SECONDS = 20

ProjectLookup = Callable[[str], Optional[dict]]


class ProjectRegistryError(RuntimeError):
    pass


# Projects keyed by id, plus the monotonic time at which they go stale.
_directory: dict[str, Any] = {"projects": {}, "expires_at": 0.0}


def _projects_request() -> urllib.request.Request:
    base_url = (os.environ.get("PROJECT_API_BASE_URL") or "").strip().rstrip("/")
    if not base_url:
        raise ProjectRegistryError("PROJECT_API_BASE_URL is not configured")

    headers = {"Accept": "application/json"}
    token = (os.environ.get("PROJECT_API_TOKEN") or "").strip()
    if token:
        header_name = (os.environ.get("PROJECT_API_AUTH_HEADER") or "Authorization").strip()
        scheme = (os.environ.get("PROJECT_API_AUTH_SCHEME") or "").strip()
        headers[header_name] = f"{scheme} {token}" if scheme else token
    return urllib.request.Request(f"{base_url}/projects", headers=headers)


def _load_projects() -> dict[str, dict[str, str]]:
    """Fetch the registry and index the usable rows by project id.

    The endpoint answers with either a bare list or `{"projects": [...]}`.
    Rows need an id and a name (or title); anything else is skipped.
    """
    try:
        with urllib.request.urlopen(_projects_request(), timeout=REQUEST_TIMEOUT_SECONDS) as response:
            payload = json.load(response)
    except urllib.error.HTTPError as exc:
        raise ProjectRegistryError(f"Project API HTTP error: {exc.code}") from exc
    except urllib.error.URLError as exc:
        raise ProjectRegistryError(f"Project API connection error: {exc.reason}") from exc
    except ValueError as exc:
        raise ProjectRegistryError("Project API returned invalid JSON") from exc

    rows = payload.get("projects") if isinstance(payload, dict) else payload
    if not isinstance(rows, list):
        raise ProjectRegistryError("Project API payload has no project list")

    projects: dict[str, dict[str, str]] = {}
    skipped = 0
    for row in rows:
        if not isinstance(row, dict):
            skipped += 1
            continue
        project_id = str(row.get("id") or "").strip()
        name = str(row.get("name") or row.get("title") or "").strip()
        if not project_id or not name:
            skipped += 1
            continue
        projects[project_id] = {"id": project_id, "name": name, "status": str(row.get("status") or "").strip()}

    if skipped:
        LOGGER.warning("Project rows skipped count=%s", skipped)
    return projects


def get_project_directory(force_refresh: bool = False) -> dict[str, dict[str, str]]:
    now = time.monotonic()
    if force_refresh or now >= _directory["expires_at"]:
        _directory["projects"] = _load_projects()
        _directory["expires_at"] = now + CACHE_TTL_SECONDS
        LOGGER.info("Project directory refreshed count=%s", len(_directory["projects"]))
    return dict(_directory["projects"])


def resolve_project(project_id: str | int) -> dict[str, str] | None:
    """Look up a project by id; None when the registry does not know it.

    A cache miss forces one refresh before giving up, so projects created
    since the last fetch still resolve.
    """
    key = str(project_id or "").strip()
    if not key:
        return None
    entry = get_project_directory().get(key)
    if entry is None:
        entry = get_project_directory(force_refresh=True).get(key)
    return dict(entry) if entry else None


def tolerant_lookup(resolver: ProjectLookup) -> ProjectLookup:
    """Wrap a resolver for read paths: a registry outage yields None."""

    def lookup(project_id: str):
        try:
            return resolver(project_id)
        except ProjectRegistryError as exc:
            LOGGER.warning("Project lookup unavailable project_id=%s reason=%s", project_id, exc)
            return None

    return lookup

"""Detection, extraction and write-back of Task Master task documents.

tasks.json has changed shape across Task Master releases. Four shapes are
recognised, tried in this order:

    [ {...}, ... ]                                  flat
    {"master": {"tasks": [...]}, "<tag>": {...}}    direct-tag
    {"tags": {"master": {"tasks": [...]}, ...}}     nested-tag
    {"tasks": [...]}                                legacy

Each shape keeps a reference to the parsed container so mutations can be
written back without changing the on-disk layout. The raw task dicts are
never rewritten during extraction; callers get normalized copies.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Mapping, Optional

from taskmaster_bridge.core.errors import FormatError
from taskmaster_bridge.core.status import normalize

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_TAG",
    "DocumentShape",
    "FlatDocument",
    "LegacyDocument",
    "DirectTagDocument",
    "NestedTagDocument",
    "ExtractedTasks",
    "detect_shape",
    "extract",
    "normalize_raw_tasks",
    "load_document",
    "save_document",
    "load_task_files",
    "find_document",
]

DEFAULT_TAG = "master"

# task_001.json or 001.json, never tasks.json
_TASK_FILE_PATTERN = re.compile(r"^(task_)?\d+\.json$")


# =============================================================================
# Document shapes
# =============================================================================


@dataclass
class DocumentShape:
    """A parsed task document plus the tag whose tasks are active.

    Subclasses differ only in where the active task list lives.
    """

    container: Any
    tag: str = DEFAULT_TAG

    kind: ClassVar[str] = ""
    is_tagged: ClassVar[bool] = False

    def active_tasks(self) -> List[Dict[str, Any]]:
        """Return the raw, mutable task list for the active tag."""
        raise NotImplementedError

    def writeback(self, tasks: List[Dict[str, Any]]) -> Any:
        """Replace the active task list and return the container to persist."""
        raise NotImplementedError

    def tag_names(self) -> List[str]:
        return [DEFAULT_TAG]

    def add_tag(self, name: str, *, timestamp: str, description: str = "") -> None:
        raise FormatError(f"{self.kind} documents do not support tags")

    def remove_tag(self, name: str) -> None:
        raise FormatError(f"{self.kind} documents do not support tags")


@dataclass
class FlatDocument(DocumentShape):
    kind: ClassVar[str] = "flat"

    def active_tasks(self) -> List[Dict[str, Any]]:
        return self.container

    def writeback(self, tasks: List[Dict[str, Any]]) -> Any:
        self.container = list(tasks)
        return self.container


@dataclass
class LegacyDocument(DocumentShape):
    kind: ClassVar[str] = "legacy"

    def active_tasks(self) -> List[Dict[str, Any]]:
        return self.container["tasks"]

    def writeback(self, tasks: List[Dict[str, Any]]) -> Any:
        self.container["tasks"] = list(tasks)
        return self.container


@dataclass
class _TaggedDocument(DocumentShape):
    is_tagged: ClassVar[bool] = True

    def _tag_map(self) -> Dict[str, Any]:
        raise NotImplementedError

    def active_tasks(self) -> List[Dict[str, Any]]:
        return self._tag_map()[self.tag]["tasks"]

    def writeback(self, tasks: List[Dict[str, Any]]) -> Any:
        self._tag_map()[self.tag]["tasks"] = list(tasks)
        return self.container

    def tag_names(self) -> List[str]:
        names = [name for name, value in self._tag_map().items() if _has_tasks(value)]
        if DEFAULT_TAG in names:
            names.remove(DEFAULT_TAG)
        return [DEFAULT_TAG] + sorted(names)

    def add_tag(self, name: str, *, timestamp: str, description: str = "") -> None:
        tags = self._tag_map()
        if name in tags:
            raise FormatError(f"Tag '{name}' already exists")
        tags[name] = {
            "tasks": [],
            "metadata": {
                "created": timestamp,
                "updated": timestamp,
                "description": description or f"Tag created on {timestamp[:10]}",
            },
        }

    def remove_tag(self, name: str) -> None:
        tags = self._tag_map()
        if name not in tags:
            raise FormatError(f"Tag '{name}' does not exist")
        del tags[name]


@dataclass
class DirectTagDocument(_TaggedDocument):
    kind: ClassVar[str] = "direct-tag"

    def _tag_map(self) -> Dict[str, Any]:
        return self.container


@dataclass
class NestedTagDocument(_TaggedDocument):
    kind: ClassVar[str] = "nested-tag"

    def _tag_map(self) -> Dict[str, Any]:
        return self.container["tags"]


# =============================================================================
# Detection and extraction
# =============================================================================


@dataclass
class ExtractedTasks:
    """Normalized task dicts for the active tag plus the shape to write to."""

    tasks: List[Dict[str, Any]]
    shape: DocumentShape
    requested_tag: str = DEFAULT_TAG

    @property
    def is_tagged_format(self) -> bool:
        return self.shape.is_tagged

    @property
    def current_tag(self) -> str:
        return self.shape.tag

    @property
    def original_container(self) -> Any:
        return self.shape.container


def _has_tasks(value: Any) -> bool:
    return isinstance(value, Mapping) and isinstance(value.get("tasks"), list)


def _resolve_tag(tags: Mapping[str, Any], requested: str, kind: str) -> str:
    if _has_tasks(tags.get(requested)):
        return requested
    if _has_tasks(tags.get(DEFAULT_TAG)):
        if requested != DEFAULT_TAG:
            logger.info(
                "Tag '%s' not found or empty in %s document, falling back to '%s'",
                requested,
                kind,
                DEFAULT_TAG,
            )
        return DEFAULT_TAG
    raise FormatError(f"{kind} document has no usable '{requested}' or '{DEFAULT_TAG}' tag")


def detect_shape(doc: Any, current_tag: str = DEFAULT_TAG) -> DocumentShape:
    """Classify ``doc`` and resolve the active tag.

    Raises:
        FormatError: If ``doc`` matches none of the known shapes, or a tagged
            document has neither the requested tag nor ``master``.
    """
    requested = current_tag or DEFAULT_TAG
    if isinstance(doc, list):
        return FlatDocument(container=doc)
    if not isinstance(doc, dict):
        raise FormatError(f"Unknown task document type: {type(doc).__name__}")
    if _has_tasks(doc.get(DEFAULT_TAG)):
        return DirectTagDocument(
            container=doc, tag=_resolve_tag(doc, requested, "direct-tag")
        )
    if isinstance(doc.get("tags"), dict):
        return NestedTagDocument(
            container=doc, tag=_resolve_tag(doc["tags"], requested, "nested-tag")
        )
    if isinstance(doc.get("tasks"), list):
        return LegacyDocument(container=doc)
    raise FormatError(
        "Unknown tasks.json format. Expected array, tagged format, or legacy format."
    )


def normalize_raw_tasks(raw_tasks: Any) -> List[Dict[str, Any]]:
    """Return normalized copies of ``raw_tasks``.

    Entries without an id are dropped, ids become strings and statuses are
    mapped to canonical values, recursively through ``subtasks``.
    """
    if not isinstance(raw_tasks, list):
        return []
    result: List[Dict[str, Any]] = []
    for entry in raw_tasks:
        if not isinstance(entry, dict) or entry.get("id") is None:
            continue
        item = copy.copy(entry)
        item["id"] = str(entry["id"])
        item["status"] = normalize(entry.get("status", "pending")).value
        subtasks = entry.get("subtasks")
        item["subtasks"] = normalize_raw_tasks(subtasks) if subtasks else []
        result.append(item)
    return result


def extract(doc: Any, current_tag: str = DEFAULT_TAG) -> ExtractedTasks:
    """Detect the document shape and extract the active tag's tasks."""
    shape = detect_shape(doc, current_tag)
    raw = shape.active_tasks()
    tasks = normalize_raw_tasks(raw)
    logger.debug(
        "Extracted %d tasks from %s document (tag=%s)", len(tasks), shape.kind, shape.tag
    )
    return ExtractedTasks(tasks=tasks, shape=shape, requested_tag=current_tag)


# =============================================================================
# Persistence
# =============================================================================


def load_document(path: Path) -> Any:
    """Parse a tasks.json file.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        FormatError: If the file is not valid JSON.
    """
    with open(path, "r", encoding="utf-8") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as exc:
            raise FormatError(f"Invalid JSON in {path}: {exc}", path=str(path)) from exc


def save_document(path: Path, container: Any) -> None:
    """Write ``container`` to ``path`` atomically (temp file, then replace)."""
    temp_file = path.with_suffix(".tmp")
    try:
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(container, f, indent=2, ensure_ascii=False)
            f.write("\n")
        temp_file.replace(path)
    except OSError:
        if temp_file.exists():
            temp_file.unlink()
        raise


def load_task_files(tasks_dir: Path) -> List[Dict[str, Any]]:
    """Read the per-task files older Task Master releases produced.

    Only ``task_NNN.json`` / ``NNN.json`` files are considered, and entries
    missing an id or title are skipped. Unreadable files are logged and
    ignored.
    """
    if not tasks_dir.is_dir():
        return []
    raw_tasks: List[Dict[str, Any]] = []
    for task_path in sorted(tasks_dir.iterdir()):
        if not _TASK_FILE_PATTERN.match(task_path.name):
            continue
        try:
            with open(task_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Error reading task file %s: %s", task_path.name, exc)
            continue
        if isinstance(data, dict) and data.get("id") and data.get("title"):
            raw_tasks.append(data)
    logger.debug("Loaded %d individual task files from %s", len(raw_tasks), tasks_dir)
    return normalize_raw_tasks(raw_tasks)


def find_document(tasks_dir: Path) -> Optional[Path]:
    """Return ``tasks_dir/tasks.json`` if it exists."""
    candidate = tasks_dir / "tasks.json"
    return candidate if candidate.is_file() else None

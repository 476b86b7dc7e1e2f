"""Active-tag bookkeeping backed by ``.taskmaster/state.json``.

The state file is re-read on every call; nothing is cached, so a tag
switched by the CLI in another terminal is picked up on the next operation.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from taskmaster_bridge.core.formats import DEFAULT_TAG, DocumentShape, save_document
from taskmaster_bridge.core.models import TagContextInfo

logger = logging.getLogger(__name__)

__all__ = ["TagContext", "FALLBACK_TAG_CONTEXT", "validate_tag_context"]

STATE_FILE = "state.json"

FALLBACK_TAG_CONTEXT = TagContextInfo(
    current_tag=DEFAULT_TAG,
    available_tags=(DEFAULT_TAG,),
    is_tagged_format=False,
)


class TagContext:
    """Reads and writes the current tag for one ``.taskmaster`` directory."""

    def __init__(self, taskmaster_dir: Path):
        self.taskmaster_dir = Path(taskmaster_dir)

    @property
    def state_path(self) -> Path:
        return self.taskmaster_dir / STATE_FILE

    def _read_state(self) -> Dict[str, Any]:
        if not self.state_path.is_file():
            return {}
        try:
            with open(self.state_path, "r", encoding="utf-8") as f:
                state = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Could not read %s, defaulting to '%s': %s", STATE_FILE, DEFAULT_TAG, exc)
            return {}
        return state if isinstance(state, dict) else {}

    def current_tag(self) -> str:
        """Return the active tag name (``master`` when unset or unreadable)."""
        tag = self._read_state().get("currentTag")
        return tag if isinstance(tag, str) and tag else DEFAULT_TAG

    def set_current_tag(self, name: str) -> None:
        """Persist ``name`` as the active tag, keeping other state keys."""
        state = self._read_state()
        state["currentTag"] = name
        state["lastSwitched"] = (
            datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        )
        self.taskmaster_dir.mkdir(parents=True, exist_ok=True)
        save_document(self.state_path, state)
        logger.info("Switched to tag: %s", name)

    def describe(self, shape: Optional[DocumentShape]) -> TagContextInfo:
        """Build a ``TagContextInfo`` from the state file and a parsed document."""
        current = self.current_tag()
        if shape is None:
            return TagContextInfo(current, (current,), False)
        available = shape.tag_names()
        if shape.is_tagged and current not in available:
            current = shape.tag
        return TagContextInfo(
            current_tag=current if shape.is_tagged else DEFAULT_TAG,
            available_tags=tuple(available),
            is_tagged_format=shape.is_tagged,
        )


def validate_tag_context(
    info: TagContextInfo, required_tag: Optional[str] = None
) -> Optional[str]:
    """Return an error message if ``info`` is unusable, else None."""
    if not info.current_tag:
        return "No current tag is set"
    if info.current_tag not in info.available_tags:
        return f"Current tag '{info.current_tag}' is not in the available tags"
    if required_tag and info.current_tag != required_tag:
        return (
            f"Operation requires tag '{required_tag}', "
            f"but the current tag is '{info.current_tag}'"
        )
    return None

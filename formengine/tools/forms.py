"""
Mock form store.

Forms are kept as their serialized camelCase configuration, the same
opaque shape the clinic backend persists.
"""

import logging
import uuid
from typing import Any, Optional

logger = logging.getLogger(__name__)

_forms: dict[str, dict[str, Any]] = {}


def save_form(config: dict[str, Any], status: Optional[str] = None) -> str:
    """Insert or replace a form configuration and return its id."""
    form_id = config.get("id") or f"form-{uuid.uuid4().hex[:8]}"
    stored = dict(config, id=form_id)
    if status:
        stored["status"] = status
    _forms[form_id] = stored
    logger.info("Form stored: %s (%s)", form_id, stored.get("status", "draft"))
    return form_id


def get_form(form_id: str) -> Optional[dict[str, Any]]:
    stored = _forms.get(form_id)
    return dict(stored) if stored else None


def reset() -> None:
    """Clear all forms. Used by test fixtures for isolation."""
    _forms.clear()

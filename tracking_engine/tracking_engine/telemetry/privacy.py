"""Privacy gate applied to interaction records before they are queued.

Redaction is decided per category and independently:

1. **Prompts**: ``prompt_text`` is replaced by :data:`REDACTED_PROMPT` (never
   the empty string, so downstream display can tell "redacted" from "no
   prompt").
2. **Tokens**: all six token counts become ``None``.
3. **Metadata**: ``metadata`` becomes ``None``.

``prompt_id`` and ``session_id`` are structural identifiers and are never
redacted; update-by-id depends on them.

Both functions are pure.  Whether tracking happens at all is the caller's
decision (see :attr:`PrivacySettings.tracking_enabled`).
"""

from __future__ import annotations

from tracking_engine.models.interaction import TOKEN_FIELDS, InteractionRecord, ResponseUpdate
from tracking_engine.models.privacy import PrivacySettings

REDACTED_PROMPT = "[REDACTED]"


def filter_record(settings: PrivacySettings, record: InteractionRecord) -> InteractionRecord:
    """Return a copy of *record* with the categories *settings* disallow removed."""
    changes: dict[str, object] = {}
    if not settings.track_prompts:
        changes["prompt_text"] = REDACTED_PROMPT
    if not settings.track_tokens:
        changes.update(dict.fromkeys(TOKEN_FIELDS))
    if not settings.track_metadata:
        changes["metadata"] = None
    return record.model_copy(update=changes, deep=True)


def filter_update(settings: PrivacySettings, update: ResponseUpdate) -> ResponseUpdate:
    """Apply the same token and metadata rules to a late response update."""
    changes: dict[str, object] = {}
    if not settings.track_tokens:
        changes.update({field: None for field in TOKEN_FIELDS if field in ResponseUpdate.model_fields})
    if not settings.track_metadata:
        changes["metadata"] = None
    return update.model_copy(update=changes, deep=True)

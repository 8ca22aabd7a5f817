"""
Export document schema.

The file boundary format is a JSON object:

    {
        "export_date": "<ISO-8601>",
        "user_id": "<principal id>",
        "profile": {...} | null,
        "cases": [{...}, ...],
        "evidence": [{...}, ...]
    }

For import only ``cases`` is required; it is validated in full here before
anything is written.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import config
from account.errors import FormatError
from account.models import CaseFile, EvidenceItem, Profile


@dataclass
class ExportDocument:
    """Snapshot of everything a user owns. Never persisted by this package."""

    user_id: str
    profile: Optional[Profile] = None
    cases: List[CaseFile] = field(default_factory=list)
    evidence: List[EvidenceItem] = field(default_factory=list)
    export_date: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "export_date": self.export_date.isoformat(),
            "user_id": self.user_id,
            "profile": self.profile.to_dict() if self.profile else None,
            "cases": [case.to_dict() for case in self.cases],
            "evidence": [item.to_dict() for item in self.evidence],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


def parse_document(payload: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
    """
    Decode an import payload into a mapping.

    Args:
        payload: JSON text/bytes, or an already-decoded object.

    Raises:
        FormatError: Not valid JSON, or not a JSON object.
    """
    if isinstance(payload, (str, bytes, bytearray)):
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise FormatError(f"Invalid import file format: not valid JSON ({e})") from e

    if not isinstance(payload, dict):
        raise FormatError("Invalid import file format: expected a JSON object")
    return payload


def validate_cases(document: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Check the ``cases`` field and every entry in it.

    Returns:
        The list of case entries.

    Raises:
        FormatError: Missing/non-list ``cases`` or a malformed entry.
    """
    cases = document.get("cases")
    if not isinstance(cases, list):
        raise FormatError("Invalid import file format: 'cases' must be a list")

    for index, entry in enumerate(cases):
        if not isinstance(entry, dict):
            raise FormatError(f"Invalid case at position {index}: expected an object")

        for text_field in ("title", "description"):
            value = entry.get(text_field)
            if value is not None and not isinstance(value, str):
                raise FormatError(f"Invalid case at position {index}: '{text_field}' must be text")

        status = entry.get("status")
        if status is not None and status not in config.CASE_STATUSES:
            raise FormatError(f"Invalid case at position {index}: unknown status '{status}'")

        platforms = entry.get("social_media_platforms")
        if platforms is not None and (
            not isinstance(platforms, list) or not all(isinstance(p, str) for p in platforms)
        ):
            raise FormatError(
                f"Invalid case at position {index}: 'social_media_platforms' must be a list of names"
            )
    return cases


def map_case_for_import(entry: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    Build a new case row owned by the importing user.

    Ids, ownership and timestamps in the file are dropped; the store
    assigns fresh ones.
    """
    return {
        "user_id": user_id,
        "title": entry.get("title") or "",
        "description": entry.get("description") or "",
        "status": entry.get("status") or config.DEFAULT_CASE_STATUS,
        "social_media_platforms": list(entry.get("social_media_platforms") or []),
    }

"""
Record types for the account subsystem.

Rows come back from the store as plain dicts; from_row() picks out the
known columns and ignores the rest, to_dict() produces the JSON shape used
in exports.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import config


@dataclass
class Profile:
    """One per principal; id is both primary key and principal id."""

    id: str
    email: str = ""
    full_name: str = ""
    phone: str = ""
    anonymous_mode: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Profile':
        return cls(
            id=row["id"],
            email=row.get("email") or "",
            full_name=row.get("full_name") or "",
            phone=row.get("phone") or "",
            anonymous_mode=bool(row.get("anonymous_mode", False)),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class NotificationSettings:
    """Notification group of UserPreferences."""

    email_notifications: bool = True
    sms_notifications: bool = False
    notification_frequency: str = "immediate"

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'NotificationSettings':
        values = {}
        for column, default in config.DEFAULT_NOTIFICATIONS.items():
            value = row.get(column)
            if value is None:
                value = default
            values[column] = value
        return cls(
            email_notifications=bool(values["email_notifications"]),
            sms_notifications=bool(values["sms_notifications"]),
            notification_frequency=values["notification_frequency"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class UserPreferences:
    """At most one row per user (unique on user_id)."""

    user_id: str
    theme: str = config.DEFAULT_THEME
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'UserPreferences':
        return cls(
            user_id=row["user_id"],
            theme=row.get("theme") or config.DEFAULT_THEME,
            notifications=NotificationSettings.from_row(row),
            id=row.get("id"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


@dataclass
class CaseFile:
    id: Optional[str]
    user_id: str
    title: str = ""
    description: str = ""
    status: str = config.DEFAULT_CASE_STATUS
    social_media_platforms: List[str] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'CaseFile':
        return cls(
            id=row.get("id"),
            user_id=row["user_id"],
            title=row.get("title") or "",
            description=row.get("description") or "",
            status=row.get("status") or config.DEFAULT_CASE_STATUS,
            social_media_platforms=list(row.get("social_media_platforms") or []),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class EvidenceItem:
    """Owned through its case; there is no user_id column."""

    id: Optional[str]
    case_id: str
    file_url: str = ""
    file_type: str = "document"
    extracted_text: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    harm_detected: bool = False
    threat_level: str = "none"
    uploaded_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'EvidenceItem':
        return cls(
            id=row.get("id"),
            case_id=row["case_id"],
            file_url=row.get("file_url") or "",
            file_type=row.get("file_type") or "document",
            extracted_text=row.get("extracted_text") or "",
            metadata=dict(row.get("metadata") or {}),
            harm_detected=bool(row.get("harm_detected", False)),
            threat_level=row.get("threat_level") or "none",
            uploaded_at=row.get("uploaded_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

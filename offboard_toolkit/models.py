"""Data models for directory identities and operation outcomes."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .locations import parent_location

ACCOUNTDISABLE = 0x0002
NORMAL_ACCOUNT = 0x0200


class ErrorKind(str, Enum):
    """Structured reasons an operation can fail."""

    UNCONFIRMED = "unconfirmed"
    MISSING_IDENTIFIER = "missing_identifier"
    MISSING_SOURCE_FILE = "missing_source_file"
    NO_SUCH_IDENTITY = "no_such_identity"
    NO_PHOTO = "no_photo"
    MAILBOX_UNAVAILABLE = "mailbox_unavailable"
    DIRECTORY_ERROR = "directory_error"
    IMAGE_ERROR = "image_error"
    DISPLAY_UNAVAILABLE = "display_unavailable"


@dataclass
class Identity:
    """A user account as read from the directory."""

    identifier: str
    distinguished_name: str
    display_name: str = ""
    title: str = ""
    enabled: bool = True
    description: str = ""
    user_account_control: int = NORMAL_ACCOUNT
    thumbnail_photo: Optional[bytes] = None

    @property
    def location(self) -> str:
        return parent_location(self.distinguished_name)

    @classmethod
    def from_attributes(cls, distinguished_name: str, attributes: Dict[str, Any]) -> "Identity":
        uac = _first(attributes.get("userAccountControl"))
        try:
            control = int(uac) if uac not in (None, "", []) else NORMAL_ACCOUNT
        except (TypeError, ValueError):
            control = NORMAL_ACCOUNT
        photo = _first(attributes.get("thumbnailPhoto"))
        return cls(
            identifier=str(_first(attributes.get("sAMAccountName")) or ""),
            distinguished_name=distinguished_name,
            display_name=str(_first(attributes.get("displayName")) or ""),
            title=str(_first(attributes.get("title")) or ""),
            enabled=not control & ACCOUNTDISABLE,
            description=str(_first(attributes.get("description")) or ""),
            user_account_control=control,
            thumbnail_photo=bytes(photo) if photo else None,
        )


@dataclass(frozen=True)
class GroupMembership:
    name: str
    distinguished_name: str


@dataclass
class Mailbox:
    """A mail recipient backing an identity."""

    identifier: str
    distinguished_name: str
    address: Optional[str] = None
    hidden: bool = False
    source: str = "directory"


@dataclass(frozen=True)
class OperationError:
    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class OperationResult:
    """Outcome of a single administrative operation.

    ``ok`` is the success discriminant. Failed results always carry an
    :class:`OperationError`; callers decide how to surface it.
    """

    operation: str
    identifier: str
    ok: bool = True
    error: Optional[OperationError] = None
    dry_run: bool = False
    actions: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    def fail(self, kind: ErrorKind, message: str) -> "OperationResult":
        self.ok = False
        self.error = OperationError(kind=kind, message=message)
        return self

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "operation": self.operation,
            "identifier": self.identifier,
            "ok": self.ok,
            "dry_run": self.dry_run,
            "actions": list(self.actions),
            "warnings": list(self.warnings),
        }
        if self.error:
            payload["error"] = {"kind": self.error.kind.value, "message": self.error.message}
        payload.update(
            {key: value for key, value in self.details.items() if not isinstance(value, bytes)}
        )
        return payload


@dataclass
class OffboardResult(OperationResult):
    """Outcome of the offboarding workflow."""

    operation: str = "offboard"
    identifier: str = ""
    target_location: Optional[str] = None
    moved: bool = False
    hidden: bool = False
    removed_groups: List[str] = field(default_factory=list)
    skipped_groups: List[str] = field(default_factory=list)
    failed_groups: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload.update(
            {
                "target_location": self.target_location,
                "moved": self.moved,
                "hidden": self.hidden,
                "removed_groups": list(self.removed_groups),
                "skipped_groups": list(self.skipped_groups),
                "failed_groups": list(self.failed_groups),
            }
        )
        return payload


def _first(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


__all__ = [
    "ACCOUNTDISABLE",
    "NORMAL_ACCOUNT",
    "ErrorKind",
    "GroupMembership",
    "Identity",
    "Mailbox",
    "OffboardResult",
    "OperationError",
    "OperationResult",
]

"""Transform member database rows into Constant Contact contact bodies.

Member rows arrive as loose dicts; MemberRecord pins down the fields we read.
Custom fields whose value is empty or the "unknown" placeholder are dropped.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Mapping, Optional

from .errors import InvalidMemberError

UNKNOWN = "unknown"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: Any) -> str:
    """Join key across systems: trimmed, lowercased."""
    return str(email or "").strip().lower()


def _clean(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


@dataclass(frozen=True)
class MemberRecord:
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    membership_type: Optional[str] = None
    status: Optional[str] = None
    joined_date: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_dict(cls, row: Any) -> "MemberRecord":
        if not isinstance(row, Mapping):
            raise InvalidMemberError(f"Member record must be an object, got {type(row).__name__}")
        return cls(**{f.name: _clean(row.get(f.name)) for f in fields(cls)})

    @property
    def normalized_email(self) -> str:
        return normalize_email(self.email)


def member_email(row: Any) -> Optional[str]:
    """Best-effort email for error messages, whatever shape the row has."""
    if isinstance(row, Mapping):
        v = row.get("email")
        return None if v is None else str(v)
    return None


def validate_email(email: Optional[str]) -> str:
    e = (email or "").strip()
    if not e:
        raise InvalidMemberError("Member has no email address")
    if not _EMAIL_RE.match(e):
        raise InvalidMemberError(f"Invalid email address: {e!r}")
    return e


def build_custom_fields(member: MemberRecord) -> List[Dict[str, str]]:
    candidates = [
        ("membership_type", member.membership_type or UNKNOWN),
        ("status", member.status or UNKNOWN),
        ("joined_date", member.joined_date or member.created_at or ""),
    ]
    return [
        {"custom_field_id": fid, "value": value}
        for fid, value in candidates
        if value and value != UNKNOWN
    ]


def member_to_contact(member: MemberRecord) -> Dict[str, Any]:
    """
    Build the contact body for upsert/update. Keys with no value are omitted;
    email_address is the plain string here (the client wraps it for the API).
    """
    contact: Dict[str, Any] = {"email_address": validate_email(member.email)}
    if member.first_name:
        contact["first_name"] = member.first_name
    if member.last_name:
        contact["last_name"] = member.last_name
    if member.phone:
        contact["phone_number"] = f"+1{member.phone}"

    address = {
        "line1": member.address,
        "city": member.city,
        "state": member.state,
        "postal_code": member.zip,
    }
    address = {k: v for k, v in address.items() if v}
    if address:
        contact["address"] = address

    contact["custom_fields"] = build_custom_fields(member)
    return contact


@dataclass(frozen=True)
class ListMember:
    contact_id: str
    email_address: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    status: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contact_id": self.contact_id,
            "email_address": self.email_address,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "status": self.status,
        }


def parse_list_member(raw: Mapping[str, Any]) -> ListMember:
    email = raw.get("email_address") or {}
    if isinstance(email, str):
        address, permission = email, ""
    else:
        address, permission = email.get("address") or "", email.get("permission_to_send") or ""
    return ListMember(
        contact_id=str(raw.get("contact_id") or ""),
        email_address=address,
        first_name=raw.get("first_name"),
        last_name=raw.get("last_name"),
        status=raw.get("status") or permission or "",
    )

"""Reconcile local member rows against the Constant Contact list.

plan_sync() is pure: it matches members to existing contacts by normalized email
and decides create/update per row. sync_members() executes the plan one member at
a time, in input order, folding per-record outcomes into a SyncResult.

A failure on one member is recorded and the loop moves on. A token refresh failure
aborts the whole sync (every later call would fail the same way).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .errors import InvalidMemberError, TokenRefreshError
from .transform import ListMember, MemberRecord, member_email, member_to_contact, normalize_email

logger = logging.getLogger(__name__)

CREATE = "create"
UPDATE = "update"
INVALID = "invalid"
REMOVE = "remove"


@dataclass(frozen=True)
class PlannedAction:
    action: str
    email: Optional[str]
    contact: Optional[Dict[str, Any]] = None
    contact_id: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class RecordOutcome:
    action: str
    email: Optional[str]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SyncResult:
    added: int = 0
    updated: int = 0
    removed: int = 0
    errors: List[str] = field(default_factory=list)

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[RecordOutcome]) -> "SyncResult":
        result = cls()
        for o in outcomes:
            if not o.ok:
                result.errors.append(o.error)  # type: ignore[arg-type]
            elif o.action == CREATE:
                result.added += 1
            elif o.action == UPDATE:
                result.updated += 1
            elif o.action == REMOVE:
                result.removed += 1
        return result

    def to_dict(self) -> Dict[str, Any]:
        return {"added": self.added, "updated": self.updated, "errors": list(self.errors)}


def index_by_email(existing: Sequence[ListMember]) -> Dict[str, ListMember]:
    """Normalized email -> contact. On duplicates the first contact in list order wins."""
    index: Dict[str, ListMember] = {}
    for c in existing:
        key = normalize_email(c.email_address)
        if not key:
            continue
        if key in index:
            logger.warning(
                "Duplicate contact for %s on the list (keeping %s, ignoring %s)",
                key, index[key].contact_id, c.contact_id,
            )
            continue
        index[key] = c
    return index


def plan_sync(members: Sequence[Any], existing: Sequence[ListMember]) -> List[PlannedAction]:
    index = index_by_email(existing)
    plan: List[PlannedAction] = []
    for i, row in enumerate(members):
        try:
            record = MemberRecord.from_dict(row)
            contact = member_to_contact(record)
        except InvalidMemberError as e:
            email = member_email(row)
            if email is None:
                email = f"<row {i}: no email>"
            plan.append(PlannedAction(action=INVALID, email=email, error=str(e)))
            continue

        match = index.get(record.normalized_email)
        if match:
            plan.append(PlannedAction(action=UPDATE, email=record.email, contact=contact, contact_id=match.contact_id))
        else:
            plan.append(PlannedAction(action=CREATE, email=record.email, contact=contact))
    return plan


def plan_removals(members: Sequence[Any], existing: Sequence[ListMember]) -> List[ListMember]:
    """List contacts whose email matches no local member."""
    local = {normalize_email(member_email(row)) for row in members}
    local.discard("")
    return [c for c in existing if normalize_email(c.email_address) not in local]


def _failed(action: str, email: Optional[str], message: str) -> RecordOutcome:
    error = f"Failed to sync member {email}: {message}"
    logger.error(error)
    return RecordOutcome(action=action, email=email, error=error)


def apply_action(client, planned: PlannedAction) -> RecordOutcome:
    if planned.action == INVALID:
        return _failed(INVALID, planned.email, planned.error or "invalid member record")
    try:
        if planned.action == UPDATE:
            client.update_contact(planned.contact_id, planned.contact)
        else:
            client.upsert_contact(planned.contact)
    except TokenRefreshError:
        raise
    except Exception as e:
        return _failed(planned.action, planned.email, str(e))
    logger.debug("%s %s", planned.action, planned.email)
    return RecordOutcome(action=planned.action, email=planned.email)


def remove_contact(client, contact: ListMember) -> RecordOutcome:
    try:
        client.remove_contact_from_list(contact.contact_id)
    except TokenRefreshError:
        raise
    except Exception as e:
        error = f"Failed to remove contact {contact.email_address}: {e}"
        logger.error(error)
        return RecordOutcome(action=REMOVE, email=contact.email_address, error=error)
    return RecordOutcome(action=REMOVE, email=contact.email_address)


def sync_members(members: Sequence[Any], client, *, remove_missing: bool = False) -> SyncResult:
    """
    Converge the external list toward `members` (local rows are never modified).

    If the initial list fetch fails, nothing is written and the result carries a
    single batch-level error. TokenRefreshError propagates to the caller.
    """
    try:
        existing = client.list_members()
    except TokenRefreshError:
        raise
    except Exception as e:
        error = f"Failed to sync members: {e}"
        logger.error(error)
        return SyncResult(errors=[error])

    outcomes = [apply_action(client, planned) for planned in plan_sync(members, existing)]
    if remove_missing:
        outcomes.extend(remove_contact(client, c) for c in plan_removals(members, existing))

    result = SyncResult.from_outcomes(outcomes)
    logger.info(
        "Sync finished: added=%d updated=%d removed=%d errors=%d",
        result.added, result.updated, result.removed, len(result.errors),
    )
    return result

from __future__ import annotations

from sqlalchemy import func, or_, select

from cellar_core.auth import membership, require_admin, user_or_404
from cellar_core.config import settings
from cellar_core.db import (
    fetch_one,
    new_id,
    now_ms,
    session_scope,
    sisterhood,
    sisterhood_invitation,
    user_account,
    user_sisterhood,
)
from cellar_core.errors import conflict, forbidden, invalid_state, not_found, validation_error
from cellar_core.integrity import delete_by_id
from cellar_core.observability import increment, log_event
from cellar_core.storage import Attachment, attachment_from_row, make_attachment
from cellar_core.users import normalize_email
from cellar_core.validation import clean_text, optional_text

PENDING = "Pending"
ACCEPTED = "Accepted"
DECLINED = "Declined"
EXPIRED = "Expired"
INVITATION_STATUSES = (PENDING, ACCEPTED, DECLINED, EXPIRED)
TERMINAL_STATUSES = (ACCEPTED, DECLINED, EXPIRED)

_UNSET = object()

_PUBLIC_COLUMNS = (
    sisterhood.c.id,
    sisterhood.c.name,
    sisterhood.c.description,
    sisterhood.c.created_at,
)


def _name_taken(session, name: str, exclude_id: str | None = None) -> bool:
    query = select(sisterhood.c.id).where(sisterhood.c.name == name)
    if exclude_id is not None:
        query = query.where(sisterhood.c.id != exclude_id)
    return session.execute(query).first() is not None


def _get_sisterhood(session, sisterhood_id: str) -> dict:
    row = session.execute(select(*_PUBLIC_COLUMNS).where(sisterhood.c.id == sisterhood_id)).mappings().one_or_none()
    if row is None:
        raise not_found("Sisterhood", {"id": sisterhood_id})
    return dict(row)


def _admin_count(session, sisterhood_id: str) -> int:
    return session.execute(
        select(func.count())
        .select_from(user_sisterhood)
        .where(user_sisterhood.c.sisterhood_id == sisterhood_id, user_sisterhood.c.is_admin.is_(True))
    ).scalar_one()


def create_sisterhood(name: str, admin_user_id: str, description: str | None = None) -> dict:
    clean = clean_text(name, "Sisterhood name", 256)
    desc = optional_text(description, "Description", 2048)
    with session_scope() as session:
        user_or_404(session, admin_user_id)
        if _name_taken(session, clean):
            raise conflict("sisterhood_exists", "A sisterhood with this name already exists", {"name": clean})
        ts = now_ms()
        row = {"id": new_id(), "name": clean, "description": desc, "created_at": ts}
        session.execute(sisterhood.insert().values(**row))
        session.execute(
            user_sisterhood.insert().values(
                user_id=admin_user_id, sisterhood_id=row["id"], is_admin=True, joined_at=ts
            )
        )
        session.commit()
    increment("social.sisterhood.created")
    log_event("social.sisterhood.created", sisterhood_id=row["id"], admin_user_id=admin_user_id)
    return row


def get_sisterhood(sisterhood_id: str) -> dict:
    with session_scope() as session:
        return _get_sisterhood(session, sisterhood_id)


def update_sisterhood(sisterhood_id: str, user_id: str, name: str | None = None, description=_UNSET) -> dict:
    with session_scope() as session:
        row = _get_sisterhood(session, sisterhood_id)
        require_admin(session, sisterhood_id, user_id)
        values = {}
        if name is not None:
            clean = clean_text(name, "Sisterhood name", 256)
            if _name_taken(session, clean, exclude_id=sisterhood_id):
                raise conflict("sisterhood_exists", "A sisterhood with this name already exists", {"name": clean})
            values["name"] = clean
        if description is not _UNSET:
            values["description"] = optional_text(description, "Description", 2048)
        if values:
            session.execute(sisterhood.update().where(sisterhood.c.id == sisterhood_id).values(**values))
            session.commit()
    row.update(values)
    increment("social.sisterhood.updated")
    log_event("social.sisterhood.updated", sisterhood_id=sisterhood_id, fields=sorted(values))
    return row


def delete_sisterhood(sisterhood_id: str, user_id: str) -> None:
    with session_scope() as session:
        _get_sisterhood(session, sisterhood_id)
        require_admin(session, sisterhood_id, user_id)
        delete_by_id(session, sisterhood, sisterhood_id)
        session.commit()
    increment("social.sisterhood.deleted")
    log_event("social.sisterhood.deleted", sisterhood_id=sisterhood_id, user_id=user_id)


def set_sisterhood_photo(sisterhood_id: str, user_id: str, payload: bytes, content_type: str) -> Attachment:
    attachment = make_attachment(payload, content_type)
    with session_scope() as session:
        _get_sisterhood(session, sisterhood_id)
        require_admin(session, sisterhood_id, user_id)
        session.execute(
            sisterhood.update()
            .where(sisterhood.c.id == sisterhood_id)
            .values(profile_photo=attachment.payload, profile_photo_content_type=attachment.content_type)
        )
        session.commit()
    increment("social.sisterhood.photo.set")
    log_event("social.sisterhood.photo.set", sisterhood_id=sisterhood_id, size=len(attachment.payload))
    return attachment


def get_sisterhood_photo(sisterhood_id: str) -> Attachment | None:
    with session_scope() as session:
        row = session.execute(
            select(sisterhood.c.profile_photo, sisterhood.c.profile_photo_content_type).where(
                sisterhood.c.id == sisterhood_id
            )
        ).one_or_none()
        if row is None:
            raise not_found("Sisterhood", {"id": sisterhood_id})
        return attachment_from_row(row)


def clear_sisterhood_photo(sisterhood_id: str, user_id: str) -> None:
    with session_scope() as session:
        _get_sisterhood(session, sisterhood_id)
        require_admin(session, sisterhood_id, user_id)
        session.execute(
            sisterhood.update()
            .where(sisterhood.c.id == sisterhood_id)
            .values(profile_photo=None, profile_photo_content_type=None)
        )
        session.commit()
    increment("social.sisterhood.photo.cleared")
    log_event("social.sisterhood.photo.cleared", sisterhood_id=sisterhood_id)


def add_member(sisterhood_id: str, user_id: str, acting_user_id: str, is_admin: bool = False) -> dict:
    with session_scope() as session:
        _get_sisterhood(session, sisterhood_id)
        require_admin(session, sisterhood_id, acting_user_id)
        user_or_404(session, user_id)
        if membership(session, sisterhood_id, user_id) is not None:
            raise conflict("already_member", "User is already a member", {"user_id": user_id})
        row = {"user_id": user_id, "sisterhood_id": sisterhood_id, "is_admin": bool(is_admin), "joined_at": now_ms()}
        session.execute(user_sisterhood.insert().values(**row))
        session.commit()
    increment("social.member.added")
    log_event("social.member.added", sisterhood_id=sisterhood_id, user_id=user_id, is_admin=row["is_admin"])
    return row


def remove_member(sisterhood_id: str, user_id: str, acting_user_id: str) -> None:
    with session_scope() as session:
        _get_sisterhood(session, sisterhood_id)
        if acting_user_id != user_id:
            require_admin(session, sisterhood_id, acting_user_id)
        row = membership(session, sisterhood_id, user_id)
        if row is None:
            raise not_found("Membership", {"sisterhood_id": sisterhood_id, "user_id": user_id})
        members = session.execute(
            select(func.count()).select_from(user_sisterhood).where(user_sisterhood.c.sisterhood_id == sisterhood_id)
        ).scalar_one()
        if row.is_admin and members > 1 and _admin_count(session, sisterhood_id) == 1:
            raise invalid_state("last_admin", "The last admin cannot leave while other members remain")
        session.execute(
            user_sisterhood.delete().where(
                user_sisterhood.c.sisterhood_id == sisterhood_id,
                user_sisterhood.c.user_id == user_id,
            )
        )
        session.commit()
    increment("social.member.removed")
    log_event("social.member.removed", sisterhood_id=sisterhood_id, user_id=user_id)


def set_admin(sisterhood_id: str, user_id: str, is_admin: bool, acting_user_id: str) -> dict:
    with session_scope() as session:
        _get_sisterhood(session, sisterhood_id)
        require_admin(session, sisterhood_id, acting_user_id)
        row = membership(session, sisterhood_id, user_id)
        if row is None:
            raise not_found("Membership", {"sisterhood_id": sisterhood_id, "user_id": user_id})
        if row.is_admin and not is_admin and _admin_count(session, sisterhood_id) == 1:
            raise invalid_state("last_admin", "A sisterhood must keep at least one admin")
        session.execute(
            user_sisterhood.update()
            .where(user_sisterhood.c.sisterhood_id == sisterhood_id, user_sisterhood.c.user_id == user_id)
            .values(is_admin=bool(is_admin))
        )
        session.commit()
    increment("social.member.admin_changed")
    log_event("social.member.admin_changed", sisterhood_id=sisterhood_id, user_id=user_id, is_admin=bool(is_admin))
    return {**row._asdict(), "is_admin": bool(is_admin)}


def is_admin(sisterhood_id: str, user_id: str) -> bool:
    with session_scope() as session:
        row = membership(session, sisterhood_id, user_id)
        return bool(row is not None and row.is_admin)


def list_members(sisterhood_id: str) -> list[dict]:
    with session_scope() as session:
        _get_sisterhood(session, sisterhood_id)
        rows = session.execute(
            select(
                user_sisterhood.c.user_id,
                user_account.c.name,
                user_sisterhood.c.is_admin,
                user_sisterhood.c.joined_at,
            )
            .join(user_account, user_account.c.id == user_sisterhood.c.user_id)
            .where(user_sisterhood.c.sisterhood_id == sisterhood_id)
            .order_by(user_sisterhood.c.joined_at.asc(), user_sisterhood.c.user_id.asc())
        ).mappings()
        return [dict(r) for r in rows]


def list_sisterhoods_for_user(user_id: str) -> list[dict]:
    with session_scope() as session:
        rows = session.execute(
            select(*_PUBLIC_COLUMNS, user_sisterhood.c.is_admin, user_sisterhood.c.joined_at)
            .join(user_sisterhood, user_sisterhood.c.sisterhood_id == sisterhood.c.id)
            .where(user_sisterhood.c.user_id == user_id)
            .order_by(sisterhood.c.name.asc())
        ).mappings()
        return [dict(r) for r in rows]


def invite(sisterhood_id: str, email: str, inviter_user_id: str) -> dict:
    normalized = normalize_email(email)
    if normalized is None or "@" not in normalized:
        raise validation_error("invalid_email", "A valid email address is required", {"email": email})
    with session_scope() as session:
        _get_sisterhood(session, sisterhood_id)
        require_admin(session, sisterhood_id, inviter_user_id)
        invitee = session.execute(
            select(user_account.c.id).where(user_account.c.email == normalized)
        ).scalar_one_or_none()
        if invitee is not None and membership(session, sisterhood_id, invitee) is not None:
            raise conflict("already_member", "Invitee is already a member", {"email": normalized})
        existing = session.execute(
            select(sisterhood_invitation).where(
                sisterhood_invitation.c.sisterhood_id == sisterhood_id,
                sisterhood_invitation.c.invitee_email == normalized,
            )
        ).mappings().one_or_none()
        if existing is not None:
            if existing["status"] == PENDING:
                raise conflict(
                    "invitation_exists",
                    "A pending invitation for this email already exists",
                    {"invitation_id": existing["id"], "status": existing["status"]},
                )
            accepted_by = existing["invitee_user_id"] if existing["status"] == ACCEPTED else None
            if accepted_by is not None and membership(session, sisterhood_id, accepted_by) is not None:
                raise conflict("already_member", "Invitee is already a member", {"email": normalized})
            # Closed invitations are superseded by a fresh one once the invitee is not a member.
            session.execute(sisterhood_invitation.delete().where(sisterhood_invitation.c.id == existing["id"]))
        ts = now_ms()
        row = {
            "id": new_id(),
            "sisterhood_id": sisterhood_id,
            "invitee_email": normalized,
            "invitee_user_id": invitee,
            "status": PENDING,
            "created_at": ts,
            "updated_at": ts,
        }
        session.execute(sisterhood_invitation.insert().values(**row))
        session.commit()
    increment("social.invitation.created")
    log_event("social.invitation.created", invitation_id=row["id"], sisterhood_id=sisterhood_id)
    return row


def _resolve_pending(session, invitation_id: str, user_id: str) -> dict:
    row = session.execute(
        select(sisterhood_invitation).where(sisterhood_invitation.c.id == invitation_id).with_for_update()
    ).mappings().one_or_none()
    if row is None:
        raise not_found("Invitation", {"id": invitation_id})
    row = dict(row)
    if row["status"] in TERMINAL_STATUSES:
        raise invalid_state(
            "invitation_closed",
            f"Invitation is already {row['status'].lower()}",
            {"invitation_id": invitation_id, "status": row["status"]},
        )
    user = user_or_404(session, user_id)
    if row["invitee_user_id"] is not None:
        if row["invitee_user_id"] != user_id:
            raise forbidden("This invitation was sent to someone else")
    elif user["email"] != row["invitee_email"]:
        raise forbidden("This invitation was sent to someone else")
    if row["created_at"] + settings.invitation_ttl_ms < now_ms():
        raise invalid_state("invitation_expired", "Invitation has expired", {"invitation_id": invitation_id})
    return row


def _close(session, invitation_id: str, status: str, user_id: str, ts: int) -> None:
    # The status guard makes a concurrent accept/decline lose cleanly.
    updated = session.execute(
        sisterhood_invitation.update()
        .where(sisterhood_invitation.c.id == invitation_id, sisterhood_invitation.c.status == PENDING)
        .values(status=status, invitee_user_id=user_id, updated_at=ts)
    ).rowcount
    if updated != 1:
        raise invalid_state("invitation_closed", "Invitation is no longer pending", {"invitation_id": invitation_id})


def accept_invitation(invitation_id: str, user_id: str) -> dict:
    with session_scope() as session:
        row = _resolve_pending(session, invitation_id, user_id)
        if membership(session, row["sisterhood_id"], user_id) is not None:
            raise conflict("already_member", "User is already a member", {"sisterhood_id": row["sisterhood_id"]})
        ts = now_ms()
        _close(session, invitation_id, ACCEPTED, user_id, ts)
        session.execute(
            user_sisterhood.insert().values(
                user_id=user_id, sisterhood_id=row["sisterhood_id"], is_admin=False, joined_at=ts
            )
        )
        session.commit()
    row.update(status=ACCEPTED, invitee_user_id=user_id, updated_at=ts)
    increment("social.invitation.accepted")
    log_event(
        "social.invitation.accepted", invitation_id=invitation_id, sisterhood_id=row["sisterhood_id"], user_id=user_id
    )
    return row


def decline_invitation(invitation_id: str, user_id: str) -> dict:
    with session_scope() as session:
        row = _resolve_pending(session, invitation_id, user_id)
        ts = now_ms()
        _close(session, invitation_id, DECLINED, user_id, ts)
        session.commit()
    row.update(status=DECLINED, invitee_user_id=user_id, updated_at=ts)
    increment("social.invitation.declined")
    log_event("social.invitation.declined", invitation_id=invitation_id, user_id=user_id)
    return row


def expire_invitations(now: int | None = None) -> int:
    ts = now_ms() if now is None else now
    cutoff = ts - settings.invitation_ttl_ms
    with session_scope() as session:
        expired = session.execute(
            sisterhood_invitation.update()
            .where(sisterhood_invitation.c.status == PENDING, sisterhood_invitation.c.created_at < cutoff)
            .values(status=EXPIRED, updated_at=ts)
        ).rowcount
        session.commit()
    if expired:
        increment("social.invitation.expired", expired)
        log_event("social.invitation.expired", count=expired)
    return expired


def get_invitation(invitation_id: str) -> dict:
    with session_scope() as session:
        return fetch_one(session, sisterhood_invitation, invitation_id, "Invitation")


def list_invitations_for_invitee(user_id: str, status: str | None = PENDING) -> list[dict]:
    with session_scope() as session:
        user = user_or_404(session, user_id)
        match = sisterhood_invitation.c.invitee_user_id == user_id
        if user["email"]:
            match = or_(match, sisterhood_invitation.c.invitee_email == user["email"])
        query = (
            select(sisterhood_invitation, sisterhood.c.name.label("sisterhood_name"))
            .join(sisterhood, sisterhood.c.id == sisterhood_invitation.c.sisterhood_id)
            .where(match)
        )
        if status is not None:
            query = query.where(sisterhood_invitation.c.status == status)
        rows = session.execute(query.order_by(sisterhood_invitation.c.created_at.desc())).mappings()
        return [dict(r) for r in rows]


def list_pending_invitations(sisterhood_id: str) -> list[dict]:
    with session_scope() as session:
        _get_sisterhood(session, sisterhood_id)
        rows = session.execute(
            select(sisterhood_invitation)
            .where(sisterhood_invitation.c.sisterhood_id == sisterhood_id, sisterhood_invitation.c.status == PENDING)
            .order_by(sisterhood_invitation.c.created_at.asc())
        ).mappings()
        return [dict(r) for r in rows]


def find_invitation(sisterhood_id: str, email: str) -> dict | None:
    normalized = normalize_email(email)
    with session_scope() as session:
        row = session.execute(
            select(sisterhood_invitation).where(
                sisterhood_invitation.c.sisterhood_id == sisterhood_id,
                sisterhood_invitation.c.invitee_email == normalized,
            )
        ).mappings().one_or_none()
        return dict(row) if row is not None else None


def accept_invitation_by_email(sisterhood_id: str, user_id: str) -> dict:
    with session_scope() as session:
        email = user_or_404(session, user_id)["email"]
    row = find_invitation(sisterhood_id, email) if email else None
    if row is None:
        raise not_found("Invitation", {"sisterhood_id": sisterhood_id, "user_id": user_id})
    return accept_invitation(row["id"], user_id)

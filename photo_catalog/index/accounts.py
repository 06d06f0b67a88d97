from __future__ import annotations

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .schema import ROLE_ADMIN, AccountRow


class OwnerResolutionError(RuntimeError):
    """Raised when neither the owner hint nor any administrator account resolves."""


def find_account_by_email(session: Session, email: str | None) -> Optional[AccountRow]:
    if not email or not email.strip():
        return None
    return session.scalar(
        select(AccountRow).where(func.lower(AccountRow.email) == email.strip().lower())
    )


def first_admin(session: Session) -> Optional[AccountRow]:
    return session.scalar(
        select(AccountRow).where(AccountRow.role == ROLE_ADMIN).order_by(AccountRow.id).limit(1)
    )


def resolve_owner(session: Session, owner_hint: str | None) -> AccountRow:
    """Return the hinted account, else the first administrator."""
    account = find_account_by_email(session, owner_hint)
    if account is not None:
        return account
    admin = first_admin(session)
    if admin is None:
        raise OwnerResolutionError("No administrator account found")
    return admin

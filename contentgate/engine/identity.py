"""
Identity/Role Resolver

Maps assignee specs (user, role, external) onto concrete reviewer identities.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol

from sqlalchemy.orm import Session

from ..models.user import User
from ..schemas.workflow import Assignee


class IdentityResolver(Protocol):
    def matches(self, reviewer_id: str, assignee: Assignee) -> bool:
        ...

    def recipients(self, assignees: Iterable[Assignee]) -> List[str]:
        ...

    def for_organization(self, organization_id: Optional[str]) -> "IdentityResolver":
        """The same resolver, limited to one organization's reviewers."""
        ...


@dataclass
class Capabilities:
    can_approve: bool = False
    can_reject: bool = False
    can_request_changes: bool = False
    can_comment: bool = False

    def allows(self, action: str) -> bool:
        return {
            "approve": self.can_approve,
            "reject": self.can_reject,
            "request_changes": self.can_request_changes,
            "comment": self.can_comment,
        }.get(action, False)

    @classmethod
    def unrestricted(cls) -> "Capabilities":
        return cls(True, True, True, True)


def capabilities_for(resolver: IdentityResolver, reviewer_id: str, assignees: Iterable[Assignee]) -> Optional[Capabilities]:
    """Union of the capability flags of every assignee the reviewer matches, or None."""
    caps = None
    for assignee in assignees:
        if not resolver.matches(reviewer_id, assignee):
            continue
        caps = caps or Capabilities()
        caps.can_approve |= assignee.can_approve
        caps.can_reject |= assignee.can_reject
        caps.can_request_changes |= assignee.can_request_changes
        caps.can_comment |= assignee.can_comment
    return caps


class StaticIdentityResolver:
    """Resolver backed by an in-memory reviewer -> roles map."""

    def __init__(self, roles: Optional[Dict[str, Iterable[str]]] = None):
        self.roles = {reviewer: set(r) for reviewer, r in (roles or {}).items()}

    def for_organization(self, organization_id: Optional[str]) -> "StaticIdentityResolver":
        return self

    def matches(self, reviewer_id: str, assignee: Assignee) -> bool:
        if assignee.type == "role":
            return assignee.id in self.roles.get(reviewer_id, set())
        return reviewer_id in (assignee.id, assignee.email)

    def recipients(self, assignees: Iterable[Assignee]) -> List[str]:
        found = []
        for assignee in assignees:
            if assignee.type == "role":
                found.extend(r for r, roles in sorted(self.roles.items()) if assignee.id in roles)
            elif assignee.type == "external":
                found.append(assignee.email or assignee.id)
            else:
                found.append(assignee.id)
        return list(dict.fromkeys(found))


class DirectoryIdentityResolver:
    """
    Resolver backed by the users table; reviewer ids are usernames.

    Role assignees only ever resolve to active users of the resolver's
    organization. An unscoped resolver (``organization_id=None``) is narrowed
    per request with ``for_organization``.
    """

    def __init__(self, db: Session, organization_id: Optional[str] = None):
        self.db = db
        self.organization_id = organization_id

    def for_organization(self, organization_id: Optional[str]) -> "DirectoryIdentityResolver":
        if organization_id == self.organization_id:
            return self
        return DirectoryIdentityResolver(self.db, organization_id)

    def _members(self):
        query = self.db.query(User).filter(User.is_active.is_(True))
        if self.organization_id is not None:
            query = query.filter(User.organization_id == self.organization_id)
        return query

    def matches(self, reviewer_id: str, assignee: Assignee) -> bool:
        if assignee.type == "role":
            user = self._members().filter(User.username == reviewer_id).first()
            return user is not None and user.has_role(assignee.id)
        return reviewer_id in (assignee.id, assignee.email)

    def recipients(self, assignees: Iterable[Assignee]) -> List[str]:
        found = []
        for assignee in assignees:
            if assignee.type == "role":
                users = self._members().order_by(User.username).all()
                found.extend(u.username for u in users if u.has_role(assignee.id))
            elif assignee.type == "external":
                found.append(assignee.email or assignee.id)
            else:
                found.append(assignee.id)
        return list(dict.fromkeys(found))

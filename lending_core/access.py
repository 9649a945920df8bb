"""
Resource Access Gate

Decides whether a user may create loans or record payments on a collection
line. The tenant check always runs first; the line's allow-list is
default-deny, so an empty or missing list admits nobody.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Set, Union

from .errors import AccessDenied, TenantMismatch


DIFFERENT_TENANT = "different tenant"
NO_ACCESS_ASSIGNMENTS = "no access assignments"
NOT_AUTHORIZED = "not authorized"


@dataclass(frozen=True)
class AccessDecision:
    """Outcome of an access evaluation"""
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed

    @classmethod
    def allow(cls) -> 'AccessDecision':
        return cls(True)

    @classmethod
    def deny(cls, reason: str) -> 'AccessDecision':
        return cls(False, reason)


Allowed = AccessDecision.allow()


def parse_access_user_ids(value: Union[None, str, Iterable[Union[int, str]]]) -> Set[int]:
    """
    Normalise an allow-list into a set of user ids.

    Legacy rows carry a comma-delimited string ("3, 7,12"); anything that is
    not an integer is dropped.
    """
    if value is None:
        return set()
    if isinstance(value, str):
        items = value.split(',')
    else:
        items = value

    result = set()
    for item in items:
        if isinstance(item, bool):
            continue
        if isinstance(item, int):
            result.add(item)
            continue
        text = str(item).strip()
        if text.lstrip('-').isdigit():
            result.add(int(text))
    return result


def check_tenant(resource_tenant_id: str, tenant_id: str) -> AccessDecision:
    if resource_tenant_id != tenant_id:
        return AccessDecision.deny(DIFFERENT_TENANT)
    return Allowed


def check_line_access(access_user_ids: Optional[Iterable[int]], user_id: int) -> AccessDecision:
    members = set(access_user_ids or ())
    if not members:
        return AccessDecision.deny(NO_ACCESS_ASSIGNMENTS)
    if user_id not in members:
        return AccessDecision.deny(NOT_AUTHORIZED)
    return Allowed


class ResourceAccessGate:
    """Evaluates tenant membership and line allow-lists"""

    def authorize(self, line, user_id: int, tenant_id: str) -> AccessDecision:
        """
        Evaluate access to a collection line.

        Args:
            line: Object with ``tenant_id`` and ``access_user_ids``
            user_id: Requesting user
            tenant_id: Tenant from the verified credential

        Returns:
            AccessDecision; tenant mismatch wins over allow-list results
        """
        decision = check_tenant(line.tenant_id, tenant_id)
        if not decision:
            return decision
        return check_line_access(line.access_user_ids, user_id)

    def require(self, line, user_id: int, tenant_id: str) -> None:
        """Raise TenantMismatch or AccessDenied unless the user may act on the line"""
        decision = self.authorize(line, user_id, tenant_id)
        if decision:
            return
        details = {"line_id": getattr(line, 'id', None), "user_id": user_id, "reason": decision.reason}
        if decision.reason == DIFFERENT_TENANT:
            raise TenantMismatch("Access denied: line belongs to a different tenant", details)
        raise AccessDenied(f"Access denied: {decision.reason}", details)

    def require_tenant(self, resource_tenant_id: str, tenant_id: str, resource: str, resource_id: str) -> None:
        if not check_tenant(resource_tenant_id, tenant_id):
            raise TenantMismatch(
                f"Access denied: {resource} belongs to a different tenant",
                {f"{resource}_id": resource_id}
            )

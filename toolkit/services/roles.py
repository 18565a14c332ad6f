from __future__ import annotations

from toolkit.schemas import ActorRole
from toolkit.services.errors import AuthorizationError, ValidationError

ROLE_RANK: dict[ActorRole, int] = {
    ActorRole.STAFF: 1,
    ActorRole.ASSESSOR: 2,
    ActorRole.APPROVER: 3,
    ActorRole.ADMIN: 4,
}


def coerce_role(value: ActorRole | str) -> ActorRole:
    try:
        return ActorRole(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown actor role '{value}'.") from exc


def require_role(actor_role: ActorRole | str, minimum: ActorRole, action: str) -> ActorRole:
    role = coerce_role(actor_role)
    if ROLE_RANK[role] < ROLE_RANK[minimum]:
        raise AuthorizationError(
            f"Role '{role.value}' may not {action}; requires '{minimum.value}' or higher."
        )
    return role

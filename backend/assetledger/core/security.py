"""
Security Module - Caller identity & role checks

Authentication and tenant routing happen upstream (API gateway / auth
service). By the time a request reaches this service the caller's tenant,
username and role are forwarded as trusted headers.
"""
from dataclasses import dataclass
from typing import List, Optional
from fastapi import Depends, Header, HTTPException, status


class Role:
    """Constants for caller roles"""
    OWNER = "OWNER"
    ACCOUNTANT = "ACCOUNTANT"
    STAFF = "STAFF"


@dataclass
class CurrentActor:
    tenant_id: int
    username: str
    role: str = Role.STAFF


async def get_current_actor(
    x_tenant_id: Optional[int] = Header(default=None),
    x_actor: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
) -> CurrentActor:
    """
    Dependency to get the calling actor from the forwarded identity headers.
    """
    if x_tenant_id is None or not x_actor:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing caller identity (X-Tenant-ID and X-Actor headers)",
        )

    return CurrentActor(
        tenant_id=x_tenant_id,
        username=x_actor,
        role=(x_actor_role or Role.STAFF).upper(),
    )


class RoleChecker:
    """Dependency for checking the caller's role"""

    def __init__(self, allowed_roles: List[str]):
        self.allowed_roles = set(allowed_roles)

    def __call__(self, actor: CurrentActor = Depends(get_current_actor)):
        if actor.role not in self.allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role {actor.role} may not perform this action; "
                       f"requires one of: {', '.join(sorted(self.allowed_roles))}"
            )
        return actor

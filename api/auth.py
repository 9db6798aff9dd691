"""
Caller identity and the one authorization check every job endpoint uses.

Authentication itself happens upstream (the API gateway verifies the JWT
and forwards the verified identity). This service only trusts two headers:

    X-Caller-Id:   the verified user id
    X-Caller-Role: USER | TEAM_OWNER | ADMIN   (defaults to USER)

Authorization is a single capability check, authorize(caller, job),
applied through the get_authorized_job dependency before any per-job
handler runs. Owners see their own jobs; ADMIN sees everything.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from models.enums import CallerRole
from models.errors import ForbiddenError
from models.job import GenerationJob


@dataclass(frozen=True)
class Caller:
    id: str
    role: CallerRole = CallerRole.USER

    @property
    def is_privileged(self) -> bool:
        return self.role == CallerRole.ADMIN


async def get_caller(
    x_caller_id: Optional[str] = Header(default=None),
    x_caller_role: Optional[str] = Header(default=None),
) -> Caller:
    if not x_caller_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required"
        )
    try:
        role = CallerRole((x_caller_role or CallerRole.USER.value).upper())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Unknown role: {x_caller_role}"
        )
    return Caller(id=x_caller_id, role=role)


def owner_scope(caller: Caller) -> Optional[str]:
    """Owner filter for list/stat queries: None (everyone) for privileged callers."""
    return None if caller.is_privileged else caller.id


def authorize(caller: Caller, job: GenerationJob) -> None:
    if caller.is_privileged or job.owner_id == caller.id:
        return
    raise ForbiddenError("You can only access your own image generations")


async def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.is_privileged:
        raise ForbiddenError("Admin access required")
    return caller

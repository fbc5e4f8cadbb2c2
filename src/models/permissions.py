"""
Role-based permission models for jurisdiction scoping.

Normalises the authorization collaborator's free-form role strings into a
closed enumeration and carries the operator facts the ScopeGuard needs: the
granted permission names and the operator's home county.
"""

from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UserRole(str, Enum):
    """Standard operator roles in the console."""
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    COUNTY_COORDINATOR = "county_coordinator"
    CONSTITUENCY_COORDINATOR = "constituency_coordinator"
    WARD_COORDINATOR = "ward_coordinator"
    AGENT = "agent"
    VIEWER = "viewer"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "UserRole":
        """
        Parse a role string into a UserRole.

        "SUPER_ADMIN", "SuperAdmin", "super_admin" and "super-admin" all map to
        SUPER_ADMIN. Unknown or missing roles map to VIEWER.
        """
        if isinstance(raw, cls):
            return raw
        if not raw:
            return cls.VIEWER

        compact = "".join(ch for ch in str(raw).lower() if ch.isalnum())
        for role in cls:
            if role.value.replace("_", "") == compact:
                return role

        if "super" in compact and "admin" in compact:
            return cls.SUPER_ADMIN
        elif "county" in compact:
            return cls.COUNTY_COORDINATOR
        elif "constituency" in compact:
            return cls.CONSTITUENCY_COORDINATOR
        elif "ward" in compact:
            return cls.WARD_COORDINATOR
        elif "admin" in compact:
            return cls.ADMIN
        else:
            return cls.VIEWER


class OperatorContext(BaseModel):
    """Authorization facts about the operator driving a session."""
    model_config = ConfigDict(frozen=True)

    user_id: Optional[str] = None
    role: UserRole = UserRole.VIEWER
    home_county: Optional[str] = None
    permissions: FrozenSet[str] = Field(default_factory=frozenset)

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v):
        return UserRole.parse(v)

    @field_validator("permissions", mode="before")
    @classmethod
    def normalize_permissions(cls, v):
        if v is None:
            return frozenset()
        if isinstance(v, str):
            v = [v]
        return frozenset(p.strip() for p in v if p and p.strip())

    @field_validator("home_county", mode="before")
    @classmethod
    def normalize_home_county(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @classmethod
    def from_user(cls, user: Dict[str, Any], permissions: Iterable[str] = ()) -> "OperatorContext":
        """Build from the session user record ({id, role, county, ...})."""
        return cls(
            user_id=str(user["id"]) if user.get("id") is not None else None,
            role=user.get("role"),
            home_county=user.get("county") or user.get("county_name"),
            permissions=list(permissions),
        )

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN

    def has_permission(self, name: str) -> bool:
        return name in self.permissions

    def permission_checker(self) -> Callable[[str], bool]:
        return self.has_permission

"""User domain models, roles, and the storage role mapping."""

from enum import StrEnum

from pydantic import BaseModel, Field


class UserRole(StrEnum):
    """Application-facing user role."""

    ADMIN = "admin"
    MANAGER = "manager"
    TEAM_LEAD = "team_lead"
    EMPLOYEE = "employee"


class DbRole(StrEnum):
    """Role values stored in the user_roles table."""

    ADMIN = "admin"
    LANDLORD = "landlord"
    TENANT = "tenant"
    MERCHANT = "merchant"


_APP_TO_DB: dict[UserRole, DbRole] = {
    UserRole.ADMIN: DbRole.ADMIN,
    UserRole.MANAGER: DbRole.LANDLORD,
    UserRole.TEAM_LEAD: DbRole.TENANT,
    UserRole.EMPLOYEE: DbRole.MERCHANT,
}
_DB_TO_APP: dict[DbRole, UserRole] = {db: app for app, db in _APP_TO_DB.items()}


def to_db_role(role: UserRole | str) -> DbRole:
    """Map an application role to its stored value.

    Raises:
        ValueError: If role is not an application role
    """
    return _APP_TO_DB[UserRole(role)]


def from_db_role(db_role: DbRole | str) -> UserRole:
    """Map a stored role value back to the application role.

    Raises:
        ValueError: If db_role is not a stored role value
    """
    return _DB_TO_APP[DbRole(db_role)]


class User(BaseModel):
    """User profile data transfer object."""

    id: str = Field(..., description="Opaque user ID from the identity provider")
    name: str = Field(default="", description="Display name")
    email: str = Field(default="", description="Email address")
    role: UserRole = Field(default=UserRole.EMPLOYEE, description="Application role")
    title: str | None = Field(default=None, description="Job title")
    avatar_url: str | None = Field(default=None, description="Avatar reference")
    department: str | None = Field(default=None, description="Department")
    is_approved: bool = Field(default=False, description="Whether an administrator approved the account")
    monthly_points: int = Field(default=0, description="Points recorded on the profile")

    @property
    def is_admin(self) -> bool:
        """Whether the user holds the admin role."""
        return self.role == UserRole.ADMIN

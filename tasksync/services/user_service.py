"""User service for authentication, approval and member management."""

import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterator
from datetime import datetime
from typing import Any, Protocol

from tasksync.core.backend import DataStore, IdentityProvider
from tasksync.core.errors import (
    AuthError,
    ErrorCode,
    NetworkError,
    NotFoundError,
    PersistenceError,
    TaskSyncError,
    ValidationError,
)
from tasksync.core.logging import span
from tasksync.domain.user import User, UserRole, from_db_role, to_db_role
from tasksync.interface import email_sender
from tasksync.interface.email_sender import SendEmailResult
from tasksync.models.service_models import AuthResult
from tasksync.services.notification_service import Notifier


logger = logging.getLogger(__name__)

PROFILES_TABLE = "profiles"
USER_ROLES_TABLE = "user_roles"
NOTIFICATIONS_TABLE = "notifications"


class ApprovalEmailSender(Protocol):
    """Callable that delivers the account-approved email."""

    def __call__(self, *, name: str, email: str, role: str) -> Awaitable[SendEmailResult]: ...


def _parse_role(role: UserRole | str) -> UserRole:
    try:
        return UserRole(role)
    except ValueError as e:
        raise ValidationError(f"Unknown role: {role!r}") from e


def profile_to_user(profile: dict[str, Any], db_role: str | None = None) -> User:
    """Build a user from a profiles row, preferring the role stored in user_roles."""
    role = from_db_role(db_role) if db_role else UserRole(profile.get("role") or UserRole.EMPLOYEE)
    return User(
        id=profile["id"],
        name=profile.get("full_name") or profile.get("name") or "",
        email=profile.get("email") or "",
        role=role,
        title=profile.get("title"),
        avatar_url=profile.get("avatar_url"),
        department=profile.get("department"),
        is_approved=bool(profile.get("is_approved")),
        monthly_points=profile.get("monthly_points") or 0,
    )


class UserService:
    """Signs users in and out and lets administrators manage accounts.

    Sign-in, registration and sign-out never raise auth or network errors:
    they are surfaced through the notifier and returned in the result.
    Administrative operations notify and then re-raise.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        data_store: DataStore,
        *,
        notifier: Notifier | None = None,
        send_approval_email: ApprovalEmailSender = email_sender.send_approval_email,
        delete_user: Callable[[str], Awaitable[None]] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._identity = identity
        self._store = data_store
        self._notifier = notifier or Notifier()
        self._send_approval_email = send_approval_email
        self._delete_user = delete_user or identity.delete_user
        self._clock = clock
        self._current_user: User | None = None

    @property
    def current_user(self) -> User | None:
        return self._current_user

    @contextlib.contextmanager
    def _surface_errors(self) -> Iterator[None]:
        try:
            yield
        except TaskSyncError as e:
            self._notifier.exception(e)
            raise

    def _require_admin(self) -> User:
        if self._current_user is None or not self._current_user.is_admin:
            raise AuthError("Only administrators can manage users", code=ErrorCode.ERR_PERMISSION_DENIED)
        return self._current_user

    # Authentication

    async def sign_in(self, email: str, password: str) -> AuthResult:
        """Authenticate and load the profile; accounts without an approved profile are signed back out."""
        with span("user_service.sign_in"):
            try:
                session = await self._identity.sign_in(email, password)
                try:
                    user = await self.get_user(session.user_id)
                except NotFoundError as e:
                    await self._identity.sign_out()
                    raise AuthError("No profile exists for this account") from e
                except PersistenceError:
                    await self._identity.sign_out()
                    raise

                if not user.is_approved:
                    await self._identity.sign_out()
                    raise AuthError("Account pending approval", not_approved=True)
            except (AuthError, NetworkError, PersistenceError) as e:
                logger.warning("Sign-in failed", extra={"email": email, "code": e.code})
                self._notifier.exception(e)
                return AuthResult(error=e.message)

            self._current_user = user
            logger.info("User signed in", extra={"user_id": user.id, "role": user.role})
            return AuthResult(user=user)

    async def register(
        self,
        email: str,
        password: str,
        full_name: str,
        *,
        department: str | None = None,
    ) -> AuthResult:
        """Create an unapproved employee account awaiting administrator approval."""
        with span("user_service.register"):
            if not full_name.strip():
                raise ValidationError("Full name is required")

            try:
                session = await self._identity.sign_up(email, password, {"name": full_name, "full_name": full_name})
                user = User(
                    id=session.user_id,
                    name=full_name,
                    email=session.email,
                    role=UserRole.EMPLOYEE,
                    department=department,
                    is_approved=False,
                )
                await self._store.upsert(
                    PROFILES_TABLE,
                    [
                        {
                            "id": user.id,
                            "full_name": user.name,
                            "email": user.email,
                            "department": department,
                            "role": user.role.value,
                            "is_approved": False,
                        }
                    ],
                    on_conflict="id",
                )
                await self._store.upsert(
                    USER_ROLES_TABLE,
                    [{"user_id": user.id, "role": to_db_role(user.role).value}],
                    on_conflict="user_id",
                )
            except AuthError as e:
                logger.warning(
                    "Registration failed", extra={"email": email, "already_registered": e.already_registered}
                )
                self._notifier.exception(e)
                return AuthResult(error=e.message, already_registered=e.already_registered)
            except NetworkError as e:
                self._notifier.exception(e)
                return AuthResult(error=e.message)

            logger.info("Registered user pending approval", extra={"user_id": user.id})
            self._notifier.success("Registration successful. Please wait for admin approval.")
            return AuthResult(user=user)

    async def sign_out(self) -> None:
        with span("user_service.sign_out"):
            try:
                await self._identity.sign_out()
            except (AuthError, NetworkError) as e:
                self._notifier.exception(e)
            self._current_user = None

    # Queries

    async def list_users(self) -> list[User]:
        """All users, merging profiles with their stored roles by user id."""
        with span("user_service.list_users"):
            profiles = await self._store.select(PROFILES_TABLE)
            roles = {row["user_id"]: row["role"] for row in await self._store.select(USER_ROLES_TABLE)}
            return [profile_to_user(profile, roles.get(profile["id"])) for profile in profiles]

    async def get_user(self, user_id: str) -> User:
        """Raises NotFoundError if no profile exists for user_id."""
        profiles = await self._store.select(PROFILES_TABLE, filters={"id": user_id})
        if not profiles:
            raise NotFoundError(f"User not found: {user_id}", code=ErrorCode.ERR_USER_NOT_FOUND)
        roles = await self._store.select(USER_ROLES_TABLE, filters={"user_id": user_id})
        return profile_to_user(profiles[0], roles[0]["role"] if roles else None)

    async def pending_users(self) -> list[User]:
        return [user for user in await self.list_users() if not user.is_approved]

    # Administration

    async def approve_user(self, user_id: str, role: UserRole | str, *, title: str | None = None) -> User:
        """Approve an account, assign its role and send the approval email.

        A failed email does not undo the approval.

        Raises:
            AuthError: If the current user is not an administrator
            NotFoundError: If the user does not exist
            ValidationError: If role is not an application role
        """
        with span("user_service.approve_user"), self._surface_errors():
            admin = self._require_admin()
            new_role = _parse_role(role)
            user = await self.get_user(user_id)

            await self._store.update(
                PROFILES_TABLE,
                {
                    "is_approved": True,
                    "role": new_role.value,
                    "title": title,
                    "updated_at": self._clock().isoformat(),
                },
                filters={"id": user_id},
            )
            await self._store.upsert(
                USER_ROLES_TABLE,
                [{"user_id": user_id, "role": to_db_role(new_role).value}],
                on_conflict="user_id",
            )
            await self._store.insert(
                NOTIFICATIONS_TABLE,
                {
                    "user_id": user_id,
                    "type": "approval",
                    "message": f"Your account has been approved with the role of {new_role.value}.",
                    "read": False,
                    "created_at": self._clock().isoformat(),
                },
            )

            result = await self._send_approval_email(name=user.name, email=user.email, role=new_role.value)
            if not result.success:
                logger.warning("Approval email failed", extra={"user_id": user_id, "error": result.error})
                self._notifier.error("Approved user but failed to send notification email")

            approved = user.model_copy(update={"is_approved": True, "role": new_role, "title": title})
            logger.info("Approved user", extra={"user_id": user_id, "role": new_role, "admin_id": admin.id})
            self._notifier.success(f"User {approved.name} has been approved as {new_role.value}")
            return approved

    async def reject_user(self, user_id: str) -> None:
        """Reject a pending account by deleting it."""
        with span("user_service.reject_user"), self._surface_errors():
            self._require_admin()
            await self._delete_user(user_id)
            logger.info("Rejected user", extra={"user_id": user_id})
            self._notifier.success("User has been rejected and account deleted")

    async def update_user_role(self, user_id: str, role: UserRole | str) -> User:
        """Change a user's role in both the profile and the stored role row.

        Raises:
            ValidationError: If role is not an application role
        """
        with span("user_service.update_user_role"), self._surface_errors():
            self._require_admin()
            new_role = _parse_role(role)
            user = await self.get_user(user_id)
            await self._store.update(PROFILES_TABLE, {"role": new_role.value}, filters={"id": user_id})
            await self._store.upsert(
                USER_ROLES_TABLE,
                [{"user_id": user_id, "role": to_db_role(new_role).value}],
                on_conflict="user_id",
            )
            logger.info("Updated user role", extra={"user_id": user_id, "role": new_role})
            return user.model_copy(update={"role": new_role})

    async def update_user_title(self, user_id: str, title: str | None) -> User:
        """Set a user's job title; None or "none" clears it."""
        with span("user_service.update_user_title"), self._surface_errors():
            self._require_admin()
            title = None if title in (None, "", "none") else title
            user = await self.get_user(user_id)
            await self._store.update(PROFILES_TABLE, {"title": title}, filters={"id": user_id})
            return user.model_copy(update={"title": title})

    async def delete_user(self, user_id: str) -> None:
        """Delete an account through the privileged deletion handler."""
        with span("user_service.delete_user"), self._surface_errors():
            self._require_admin()
            await self._delete_user(user_id)
            logger.info("Deleted user", extra={"user_id": user_id})
            self._notifier.success("User deleted successfully")

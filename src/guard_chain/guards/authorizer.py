"""AuthorizerGuard — role, permission and custom-predicate checks."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING, Any

from guard_chain._internal.awaitables import resolve
from guard_chain.errors import GuardError
from guard_chain.guards.base import Guard
from guard_chain.result import GuardResult

if TYPE_CHECKING:
    from guard_chain.context import RequestContext

# Loads extra permissions for a principal id.  May be sync or async.
PermissionLoader = Callable[[str], Iterable[str] | Awaitable[Iterable[str]]]

# Returns True to allow, False (or a reason string) to deny.  May be async.
Predicate = Callable[["RequestContext"], Any]


class AuthorizerGuard(Guard):
    """Checks the authenticated principal against configured requirements.

    Must come after an :class:`AuthenticatorGuard`; a missing principal is
    an ordering mistake and fails as an internal error.

    Checks run in this order and every configured one must pass:

    1. ``roles`` — the principal holds **at least one** listed role.
    2. ``permissions`` — the principal holds **all** listed permissions.
       When ``permission_loader`` is set, its result is merged with the
       principal's own permissions; the resolved set is stored in
       ``context.state["permissions"]``.
    3. ``predicate`` — a custom check that may inspect the whole request
       (resource ownership and the like).

    Parameters:
        roles:             Accepted roles (any-of).
        permissions:       Required permissions (all-of).
        permission_loader: Callable ``(principal_id) -> iterable``.
        predicate:         Callable ``(context) -> bool | str``.
        deny_reason:       Message used when the predicate returns ``False``.
        name:              Unique guard name.
    """

    _guard_type = "authorizer"
    _guard_description = "Enforces roles, permissions and custom access rules"

    def __init__(
        self,
        *,
        roles: Iterable[str] | None = None,
        permissions: Iterable[str] | None = None,
        permission_loader: PermissionLoader | None = None,
        predicate: Predicate | None = None,
        deny_reason: str = "Access denied",
        name: str = "authorizer",
    ) -> None:
        self._name = name
        self.roles = frozenset(roles) if roles is not None else None
        self.permissions = frozenset(permissions) if permissions is not None else None
        self._loader = permission_loader
        self._predicate = predicate
        self._deny_reason = deny_reason

    @property
    def name(self) -> str:
        return self._name

    def export(self) -> dict[str, Any]:
        data = super().export()
        data["config"] = {
            "roles": sorted(self.roles) if self.roles is not None else None,
            "permissions": sorted(self.permissions) if self.permissions is not None else None,
            "has_permission_loader": self._loader is not None,
            "has_predicate": self._predicate is not None,
        }
        return data

    async def attempt(self, context: RequestContext) -> GuardResult:
        principal = context.principal
        if principal is None:
            return GuardResult.deny(
                GuardError.internal(
                    self.name,
                    "Authorization requires an authenticated principal; "
                    "declare the authenticator before the authorizer",
                    "PRINCIPAL_REQUIRED",
                )
            )

        if self.roles and not principal.has_role(*self.roles):
            return GuardResult.deny(
                GuardError.authorization(
                    self.name,
                    f"Requires one of roles: {', '.join(sorted(self.roles))}",
                    "MISSING_ROLE",
                    required_roles=sorted(self.roles),
                )
            )

        if self.permissions:
            granted = set(principal.permissions)
            if self._loader is not None:
                granted.update(await resolve(self._loader(principal.id)))
            context.state["permissions"] = sorted(granted)
            missing = sorted(self.permissions - granted)
            if missing:
                return GuardResult.deny(
                    GuardError.authorization(
                        self.name,
                        f"Missing permissions: {', '.join(missing)}",
                        "MISSING_PERMISSION",
                        missing_permissions=missing,
                    )
                )

        if self._predicate is not None:
            verdict = await resolve(self._predicate(context))
            if isinstance(verdict, str):
                return GuardResult.deny(
                    GuardError.authorization(
                        self.name, verdict or self._deny_reason, "PREDICATE_REJECTED"
                    )
                )
            if not verdict:
                return GuardResult.deny(
                    GuardError.authorization(self.name, self._deny_reason, "PREDICATE_REJECTED")
                )

        return GuardResult.allow(self.name)

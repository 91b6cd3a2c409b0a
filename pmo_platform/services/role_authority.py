"""
Role Authority — platform role checks.

One role per principal; two elevated roles bypass every check.

Usage:
    from pmo_platform.services.role_authority import check_role, is_authorized

    # Raises AuthorizationError if not allowed
    check_role(principal.role, ["project_manager", "tech_lead"], "connect a repository")

    # Boolean check
    if is_authorized(principal.role, TRANSITION_ROLES["sign_off"]):
        ...
"""

from pmo_platform.core.exceptions import AuthorizationError

ROLES = (
    "super_admin",
    "org_admin",
    "project_manager",
    "tech_lead",
    "developer",
    "client_stakeholder",
    "viewer",
)

ELEVATED_ROLES = frozenset({"super_admin", "org_admin"})


def is_authorized(role: str | None, required_roles) -> bool:
    """
    Check whether *role* satisfies *required_roles*.

    Args:
        role: The caller's platform role.
        required_roles: Iterable of roles allowed to perform the action.

    Returns:
        True for elevated roles and for roles listed in *required_roles*.
    """
    if not role:
        return False
    if role in ELEVATED_ROLES:
        return True
    return role in required_roles


def check_role(role: str | None, required_roles, action: str) -> None:
    """
    Assert *role* is authorized; raise AuthorizationError if not.

    Raises:
        AuthorizationError: message names the role, the action and the
            required roles.
    """
    if not is_authorized(role, required_roles):
        raise AuthorizationError(
            f"Role '{role}' is not authorized to {action}. "
            f"Required: {', '.join(required_roles)}",
            details={"role": role, "required": list(required_roles)},
        )

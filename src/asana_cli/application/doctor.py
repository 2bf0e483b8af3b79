"""Connectivity check against the authenticated user endpoint.

Usage example:
    from asana_cli.application.doctor import check_connection

    report = check_connection(transport, principal=deps.principal)
    print(report.user_name, report.workspaces)
"""

from __future__ import annotations

from dataclasses import dataclass

from ..exceptions import InvalidResponseError
from ..infrastructure.validation import IncomingDataError, validate_as
from ..observability import get_logger
from ..protocols import Transport
from ..types import RequestDescriptor, UserIO

logger = get_logger("asana_cli.application.doctor")

ME_FIELDS = "gid,name,email,workspaces.gid,workspaces.name"


@dataclass(frozen=True)
class ConnectionReport:
    """Who the token authenticates as and which workspaces it can see."""

    user_gid: str
    user_name: str
    email: str | None
    workspaces: tuple[str, ...]


def check_connection(transport: Transport, *, principal: str = "") -> ConnectionReport:
    """Fetch the authenticated user, proving the token and base URL work.

    Raises:
        AuthenticationError: If the token is rejected.
        InvalidResponseError: If the response is not a user object.
    """
    request = RequestDescriptor.get(
        "/users/me", {"opt_fields": ME_FIELDS}, principal=principal, cacheable=False
    )
    payload = transport.send(request).payload
    try:
        user = validate_as(UserIO, payload.get("data"))
    except IncomingDataError as exc:
        raise InvalidResponseError(request.path, str(exc)) from exc
    if "gid" not in user:
        raise InvalidResponseError(request.path, "user object is missing `gid`")

    workspaces = tuple(
        workspace.get("name") or workspace.get("gid", "")
        for workspace in user.get("workspaces", [])
    )
    logger.debug("Authenticated as %s with %d workspaces", user["gid"], len(workspaces))
    return ConnectionReport(
        user_gid=user["gid"],
        user_name=user.get("name") or "",
        email=user.get("email"),
        workspaces=workspaces,
    )

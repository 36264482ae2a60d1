"""
Domain errors raised by the logistics core.
Routes let these propagate; main.create_app() turns them into JSON responses.
"""
from typing import Any, Dict, List, Optional


class LogisticsError(Exception):
    """Base class for every recoverable logistics error."""

    code = "logistics_error"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(LogisticsError):
    code = "not_found"
    status_code = 404


class InvalidWindow(LogisticsError):
    """Start does not strictly precede end."""

    code = "invalid_window"
    status_code = 400


class NoTeamAssigned(LogisticsError):
    code = "no_team_assigned"
    status_code = 400


class VehicleUnavailable(LogisticsError):
    code = "vehicle_unavailable"
    status_code = 409


class TeamMemberUnavailable(LogisticsError):
    code = "team_member_unavailable"
    status_code = 409


class GuardViolation(LogisticsError):
    """A finalization or confirmation step was attempted out of sequence."""

    code = "guard_violation"
    status_code = 409


class InvalidRouteTransition(GuardViolation):
    code = "invalid_route_transition"


class PersistenceError(LogisticsError):
    """The whole operation failed to commit; nothing was written."""

    code = "persistence_error"
    status_code = 503


class IndeterminateDerivedStatus(Exception):
    """
    Route statuses do not map to a single logistics status.
    Internal signal only: callers keep the prior status.
    """

    def __init__(self, statuses: List[str]):
        super().__init__(f"Cannot derive logistics status from {sorted(statuses)}")
        self.statuses = statuses

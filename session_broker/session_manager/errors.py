"""Typed acquisition failures.

Every failure of a sign-in attempt is one of these. They are raised by the
driver, locator and acquirer and contained by the refresh scheduler; none of
them ever reach the request-forwarding path.
"""

from __future__ import annotations

from ..models.session import FieldRole


class AcquisitionError(Exception):
    """Base class for a failed acquisition attempt."""

    kind = "acquisition_error"


class LaunchError(AcquisitionError):
    """The automation engine failed to start."""

    kind = "launch_error"


class NavigationError(AcquisitionError):
    """The sign-in surface could not be reached in time."""

    kind = "navigation_error"


class FieldNotFound(AcquisitionError):
    """No candidate or fallback matched a sign-in form element."""

    kind = "field_not_found"

    def __init__(self, role: FieldRole):
        self.role = role
        super().__init__(f"{role.value} not found - page structure may have changed")


class LoginRejected(AcquisitionError):
    """Credentials were refused or the browser is still on the sign-in page."""

    kind = "login_rejected"

    def __init__(self, reason: str, url: str = ""):
        self.reason = reason
        self.url = url
        message = reason if not url else f"{reason} (url: {url})"
        super().__init__(message)


class InteractionError(AcquisitionError):
    """A located element could not be typed into or clicked."""

    kind = "interaction_error"


class AcquisitionTimeout(AcquisitionError):
    """The attempt exceeded its overall ceiling."""

    kind = "acquisition_timeout"

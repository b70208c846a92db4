"""Session acquisition, storage, refresh and forwarding."""

from .acquirer import AcquisitionStage, CredentialAcquirer
from .browser import BrowserDriver, CamoufoxDriver, DriverHandle
from .errors import (
    AcquisitionError,
    AcquisitionTimeout,
    FieldNotFound,
    InteractionError,
    LaunchError,
    LoginRejected,
    NavigationError,
)
from .locator import ResilientLocator
from .scheduler import RefreshScheduler
from .store import SessionStore

__all__ = [
    "AcquisitionError",
    "AcquisitionStage",
    "AcquisitionTimeout",
    "BrowserDriver",
    "CamoufoxDriver",
    "CredentialAcquirer",
    "DriverHandle",
    "FieldNotFound",
    "InteractionError",
    "LaunchError",
    "LoginRejected",
    "NavigationError",
    "RefreshScheduler",
    "ResilientLocator",
    "SessionStore",
]

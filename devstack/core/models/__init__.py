"""
Domain models — Pydantic and dataclass types for provisioning runs.

The leaf models are re-exported here for convenient access:

    from devstack.core.models import Receipt, Settings, InstallSettings
"""

from devstack.core.models.receipt import Outcome, Receipt
from devstack.core.models.settings import (
    CacheSettings,
    DatabaseSettings,
    GeneralSettings,
    InstallSettings,
    PackageManagerSettings,
    ProjectSettings,
    PythonEnvSettings,
    Scope,
    Settings,
    WebServerSettings,
)

__all__ = [
    # receipt.py
    "Outcome",
    "Receipt",
    # settings.py
    "CacheSettings",
    "DatabaseSettings",
    "GeneralSettings",
    "InstallSettings",
    "PackageManagerSettings",
    "ProjectSettings",
    "PythonEnvSettings",
    "Scope",
    "Settings",
    "WebServerSettings",
]

"""Provisioning flows: credential, connection, environment and token."""

from __future__ import annotations

from .errors import (
    AuthenticationError,
    DuplicateEnvironmentError,
    MissingEnvironmentError,
    NoConnectionsError,
    NoEmbeddablesError,
    ProvisioningCancelled,
    ProvisioningError,
)
from .expiry import DEFAULT_EXPIRY, normalize_expiry, parse_expiry
from .flows import (
    AuthResult,
    ClientFactory,
    ConnectionOutcome,
    EnvironmentOutcome,
    TokenOutcome,
    TokenRequest,
    authenticate,
    check_connection,
    find_duplicate_environment,
    issue_security_token,
    logout,
    provision_connection,
    provision_environment,
    remove_connection,
    remove_environment,
    resolve_environment,
    set_default_environment,
)
from .guidance import FailureCategory, Guidance, classify_test_failure, guidance_for
from .interaction import Choice, Interaction
from .setup import SetupSummary, run_setup

__all__ = [
    "DEFAULT_EXPIRY",
    "AuthResult",
    "AuthenticationError",
    "Choice",
    "ClientFactory",
    "ConnectionOutcome",
    "DuplicateEnvironmentError",
    "EnvironmentOutcome",
    "FailureCategory",
    "Guidance",
    "Interaction",
    "MissingEnvironmentError",
    "NoConnectionsError",
    "NoEmbeddablesError",
    "ProvisioningCancelled",
    "ProvisioningError",
    "SetupSummary",
    "TokenOutcome",
    "TokenRequest",
    "authenticate",
    "check_connection",
    "classify_test_failure",
    "find_duplicate_environment",
    "guidance_for",
    "issue_security_token",
    "logout",
    "normalize_expiry",
    "parse_expiry",
    "provision_connection",
    "provision_environment",
    "remove_connection",
    "remove_environment",
    "resolve_environment",
    "run_setup",
    "set_default_environment",
]

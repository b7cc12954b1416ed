"""
Launchpad Errors

Typed failures surfaced by the protocol core. Datum decoding is the only
place that swallows failures (see datums.decode); every other component
raises one of these.

`retryable` tells the caller whether rebuilding later can succeed: time or
list-state conditions change on their own, deployment defects do not.
"""

from typing import Optional

from .enums import ActionKind


class LaunchpadError(Exception):
    """Base class of all protocol core errors"""

    retryable = False


# ============================================================================
# Script artifacts
# ============================================================================


class MalformedPayloadError(LaunchpadError):
    """Compiled script export could not be decoded to raw script bytes"""


class InvalidVersionError(LaunchpadError):
    """Compiled script export declares an unknown Plutus version"""


# ============================================================================
# Reference script carriers
# ============================================================================


class NotFoundError(LaunchpadError):
    """No unspent candidate exists (yet) for the requested output"""


class AmbiguousError(LaunchpadError):
    """More than one unspent candidate exists where exactly one is expected"""


class NotApplicableError(LaunchpadError):
    """The requested launch output type never carries a reference script"""


class IntegrityFaultError(LaunchpadError):
    """
    A deployed script does not hash to the expected artifact.

    Indicates a wrong or malicious deployment. Never retried.
    """


# ============================================================================
# Commitment linked list
# ============================================================================


class ListExhaustedError(LaunchpadError):
    """No node sorts before the new key, the head node is missing"""


class DuplicateKeyError(LaunchpadError):
    """A node with the proposed key already exists"""


class TooRecentError(LaunchpadError):
    """The node is still inside its inactivity period"""

    retryable = True


# ============================================================================
# Tiers and validity windows
# ============================================================================


class OutOfTierBoundsError(LaunchpadError):
    """The committed amount lies outside the active tier's bounds"""

    retryable = True


class WindowInfeasibleError(LaunchpadError):
    """The action can no longer (or not yet) be valid at the reference time"""

    retryable = True


# ============================================================================
# Collaborators
# ============================================================================


class IndexerUnavailableError(LaunchpadError):
    """The indexer did not answer after the configured reconnect attempts"""

    retryable = True


class InputAlreadySpentError(LaunchpadError):
    """
    The ledger rejected a transaction because one of its inputs was consumed.

    Expected under concurrent contributors: rebuild against a fresh snapshot.
    """

    retryable = True


class ActionBuildError(LaunchpadError):
    """Building a protocol action failed in one of its components"""

    def __init__(self, action: ActionKind, cause: LaunchpadError, detail: Optional[str] = None):
        self.action = action
        self.cause = cause
        message = f"{action.value}: {type(cause).__name__}: {cause}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.cause.retryable

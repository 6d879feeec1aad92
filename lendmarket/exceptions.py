"""
Lending Market Exceptions

Custom exception classes for the deployment pipeline.
"""


class LendMarketError(Exception):
    """Base exception for the deployment pipeline."""
    pass


class ConfigurationError(LendMarketError):
    """Configuration file or environment is malformed."""
    pass


class PreconditionMissing(LendMarketError):
    """Required configuration or report field is zero or absent."""

    def __init__(self, message: str, missing=()):
        super().__init__(message)
        self.missing = tuple(missing)


class ComponentUnreachable(LendMarketError):
    """Expected address has no live code."""

    def __init__(self, name: str, address: str):
        super().__init__(f"{name} at {address} has no code")
        self.name = name
        self.address = address


class CrossReferenceMismatch(LendMarketError):
    """Two components disagree about their relationship."""
    pass


class InvalidPriceReading(LendMarketError):
    """A price feed reported a non-positive value."""
    pass


class InvalidAggregator(LendMarketError):
    """A price feed address is the zero address."""
    pass


class AlreadyFinalized(LendMarketError):
    """A privileged path was exercised after its privilege was revoked."""
    pass


class AccessDenied(LendMarketError):
    """Caller lacks the role or ownership a component requires."""
    pass


class ReportOverwriteError(LendMarketError):
    """A populated market report field would be replaced by a different address."""
    pass


class LedgerError(LendMarketError):
    """Ledger communication or execution error."""
    pass


class ArtifactDeploymentError(LedgerError):
    """Creating a component from an artifact failed."""
    pass


class CallReverted(LedgerError):
    """A state-changing or read-only call was rejected by the ledger."""
    pass


class OrchestrationAborted(LendMarketError):
    """A deployment stage failed; carries the partially filled report."""

    def __init__(self, stage: str, report, cause: BaseException):
        super().__init__(f"stage '{stage}' failed: {cause}")
        self.stage = stage
        self.report = report
        self.cause = cause

"""Error taxonomy for contract rollouts."""

from typing import Iterable, Optional


class RolloutError(Exception):
    """Base exception for rollout errors."""


#
# Configuration
#


class ConfigurationError(RolloutError, ValueError):
    """Raised when networks, params, profiles or artifacts are misconfigured."""


class UnknownNetwork(ConfigurationError):
    """Raised when a network identifier has no configured entry."""

    def __init__(self, network: str):
        self.network = network
        super().__init__(f"Unknown network '{network}'")


class MissingCredential(ConfigurationError):
    """Raised when deploying to a network that has no signer configured."""

    def __init__(self, network: str, envvar: Optional[str] = None):
        self.network = network
        self.envvar = envvar
        hint = f"; set {envvar}" if envvar else ""
        super().__init__(f"No signer credential configured for network '{network}'{hint}")


class MissingCompilerProfile(ConfigurationError):
    """Raised when a compiler profile name does not exist."""

    def __init__(self, profile: str, contract: Optional[str] = None):
        self.profile = profile
        self.contract = contract
        target = f" (requested for {contract})" if contract else ""
        super().__init__(f"Compiler profile '{profile}' is not defined{target}")


class LedgerError(RolloutError):
    """Raised when a ledger file cannot be read or fails validation."""


#
# Deployment
#


class DeploymentError(RolloutError):
    """Base exception for failures that stop a deployment run."""


class DependencyCycle(DeploymentError):
    """Raised when the contract set contains a reference cycle."""

    def __init__(self, contracts: Iterable[str]):
        self.contracts = list(contracts)
        super().__init__(f"Dependency cycle between contracts: {', '.join(self.contracts)}")


class UnresolvedDependency(DeploymentError):
    """Raised when a referenced contract is neither in the ledger nor deployed in this run."""

    def __init__(self, contract: str, reference: str):
        self.contract = contract
        self.reference = reference
        super().__init__(
            f"{contract} references ${reference}, which has not been deployed on this network"
        )


class DeployError(DeploymentError):
    """Raised when a deployment transaction fails, reverts or times out."""

    def __init__(self, contract: str, reason: str, tx_hash: Optional[str] = None):
        self.contract = contract
        self.reason = reason
        self.tx_hash = tx_hash
        message = f"Deployment of {contract} failed: {reason}"
        if tx_hash:
            message += f" (transaction {tx_hash})"
        super().__init__(message)


class DeploymentCancelled(DeploymentError):
    """Raised when a cancellation was requested before the next deployment."""


class DeploymentAborted(DeploymentError):
    """Raised when the operator declines a confirmation prompt."""


#
# Verification
#


class VerifyError(RolloutError):
    """Raised when the explorer rejects or fails a verification request."""

    def __init__(self, message: str, retryable: bool = False):
        self.retryable = retryable
        super().__init__(message)

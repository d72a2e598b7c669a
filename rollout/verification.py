import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from rollout.artifacts import ArtifactStore
from rollout.constants import (
    VERIFICATION_ATTEMPTS,
    VERIFICATION_BACKOFF,
    VERIFICATION_DELAY,
    VERIFICATION_WORKERS,
)
from rollout.exceptions import ConfigurationError, VerifyError
from rollout.explorer import (
    ExplorerClient,
    VerificationRequest,
    VerificationStatus,
    encode_constructor_args,
)
from rollout.ledger import DeploymentRecord
from rollout.networks import NetworkConfig

logger = logging.getLogger(__name__)

SUCCESSFUL_STATUSES = (VerificationStatus.VERIFIED, VerificationStatus.ALREADY_VERIFIED)


@dataclass
class VerificationOutcome:
    """Verification state of one deployed contract."""

    name: str
    network: str
    address: str
    status: VerificationStatus = VerificationStatus.PENDING
    error: Optional[str] = None
    attempts: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status in SUCCESSFUL_STATUSES

    def transition(self, status: VerificationStatus, error: Optional[str] = None) -> None:
        if self.status is not VerificationStatus.PENDING:
            raise ValueError(
                f"{self.name} verification is already {self.status.value}; cannot become {status.value}"
            )
        if status is VerificationStatus.PENDING:
            raise ValueError("Verification cannot transition back to Pending")
        self.status = status
        self.error = error


class VerificationReport:
    """Per-contract outcomes of a verification batch."""

    def __init__(self, outcomes: List[VerificationOutcome], cancelled: bool = False):
        self.outcomes = outcomes
        self.cancelled = cancelled

    def __iter__(self):
        return iter(self.outcomes)

    def __len__(self) -> int:
        return len(self.outcomes)

    @property
    def failed(self) -> List[VerificationOutcome]:
        return [o for o in self.outcomes if o.status is VerificationStatus.FAILED]

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def summary_rows(self) -> List[Tuple[str, str, str, str, str]]:
        return [
            (o.name, o.address, o.status.value, str(o.attempts), o.error or "")
            for o in self.outcomes
        ]


class _RateLimiter:
    """Keeps consecutive request starts at least `interval` seconds apart across threads."""

    def __init__(self, interval: float, sleep: Callable[[float], None], clock=time.monotonic):
        self.interval = interval
        self._sleep = sleep
        self._clock = clock
        self._lock = threading.Lock()
        self._next_start: Optional[float] = None

    def wait(self) -> None:
        with self._lock:
            now = self._clock()
            if self._next_start is not None and now < self._next_start:
                self._sleep(self._next_start - now)
                now = self._next_start
            self._next_start = now + self.interval


class VerificationDriver:
    """
    Verifies deployed contracts one record at a time.

    A failure is recorded on that record's outcome and the batch carries on;
    retryable explorer errors are retried a bounded number of times with
    exponential backoff before the record is marked Failed.
    """

    def __init__(
        self,
        explorer: ExplorerClient,
        artifacts: ArtifactStore,
        delay: float = VERIFICATION_DELAY,
        max_attempts: int = VERIFICATION_ATTEMPTS,
        backoff: float = VERIFICATION_BACKOFF,
        workers: int = VERIFICATION_WORKERS,
        sleep: Callable[[float], None] = time.sleep,
        cancel_event: Optional[threading.Event] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.explorer = explorer
        self.artifacts = artifacts
        self.delay = delay
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.workers = workers
        self._sleep = sleep
        self.cancel_event = cancel_event or threading.Event()

    def build_request(self, network: NetworkConfig, record: DeploymentRecord) -> VerificationRequest:
        # the ledger keeps the solc source name, which is also the artifact subdirectory
        artifact = self.artifacts.load(record.name, record.source)
        if artifact.compiler_input is None or not artifact.solc_long_version:
            raise ConfigurationError(
                f"No build info for {record.name}; cannot submit its sources for verification"
            )
        return VerificationRequest(
            contract_path=artifact.fully_qualified_name,
            address=record.address,
            constructor_args=encode_constructor_args(
                artifact.constructor_inputs, list(record.constructor_args)
            ),
            compiler_version=artifact.solc_long_version,
            source_input=artifact.compiler_input,
            chain_id=network.chain_id,
        )

    def verify(
        self, network: NetworkConfig, records: Sequence[DeploymentRecord]
    ) -> List[VerificationOutcome]:
        if not network.can_verify:
            logger.info("No explorer credentials for %s; skipping verification", network.name)
            return []

        outcomes = [
            VerificationOutcome(name=r.name, network=network.name, address=r.address)
            for r in records
        ]
        if self.workers == 1:
            self._verify_sequentially(network, records, outcomes)
        else:
            self._verify_concurrently(network, records, outcomes)
        return outcomes

    def _verify_sequentially(
        self,
        network: NetworkConfig,
        records: Sequence[DeploymentRecord],
        outcomes: List[VerificationOutcome],
    ) -> None:
        for index, (record, outcome) in enumerate(zip(records, outcomes)):
            if self.cancel_event.is_set():
                logger.warning("Verification cancelled; %d record(s) left pending", len(records) - index)
                return
            if index > 0 and self.delay:
                self._sleep(self.delay)
            self._verify_one(network, record, outcome)

    def _verify_concurrently(
        self,
        network: NetworkConfig,
        records: Sequence[DeploymentRecord],
        outcomes: List[VerificationOutcome],
    ) -> None:
        limiter = _RateLimiter(self.delay, self._sleep)

        def task(record: DeploymentRecord, outcome: VerificationOutcome) -> None:
            if self.cancel_event.is_set():
                return
            limiter.wait()
            if self.cancel_event.is_set():
                return
            self._verify_one(network, record, outcome)

        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = [executor.submit(task, r, o) for r, o in zip(records, outcomes)]
            for future in futures:
                future.result()

    def _verify_one(
        self, network: NetworkConfig, record: DeploymentRecord, outcome: VerificationOutcome
    ) -> None:
        logger.info("Verifying %s at %s", record.name, record.address)
        api_key = network.explorer_api_key.reveal()
        try:
            request = self.build_request(network, record)
        except (ConfigurationError, ValueError, TypeError) as e:
            outcome.attempts += 1
            outcome.transition(VerificationStatus.FAILED, str(e))
            logger.error("Could not prepare verification of %s: %s", record.name, e)
            return
        except Exception as e:
            outcome.attempts += 1
            logger.exception("Unexpected error preparing verification of %s", record.name)
            outcome.transition(VerificationStatus.FAILED, f"{type(e).__name__}: {e}")
            return

        while True:
            outcome.attempts += 1
            try:
                status = self.explorer.submit_verification(request, api_key)
            except VerifyError as e:
                if e.retryable and outcome.attempts < self.max_attempts:
                    wait = self.backoff * 2 ** (outcome.attempts - 1)
                    logger.warning(
                        "Verification of %s failed (%s); retrying in %.1fs", record.name, e, wait
                    )
                    self._sleep(wait)
                    continue
                outcome.transition(VerificationStatus.FAILED, str(e))
                logger.error("Verification of %s failed: %s", record.name, e)
                return

            except Exception as e:
                logger.exception("Unexpected error verifying %s", record.name)
                outcome.transition(VerificationStatus.FAILED, f"{type(e).__name__}: {e}")
                return

            outcome.transition(status)
            logger.info("%s: %s", record.name, status.value)
            return

"""Block explorer verification boundary (Etherscan-compatible APIs)."""

import json
import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, NamedTuple, Optional

import requests
from eth_abi import encode
from eth_abi.exceptions import EncodingError

from rollout.constants import EXPLORER_MAX_POLLS, EXPLORER_POLL_INTERVAL, EXPLORER_TIMEOUT
from rollout.exceptions import ConfigurationError, VerifyError

logger = logging.getLogger(__name__)

PENDING_RESULT = "pending in queue"
PASS_RESULT = "pass - verified"
ALREADY_VERIFIED_MARKER = "already verified"

# explorer messages that clear up if the request is repeated later
RETRYABLE_MARKERS = (
    "rate limit",
    "unable to locate contractcode",
    "try again later",
    "does not have any bytecode",
)


class VerificationStatus(Enum):
    PENDING = "Pending"
    VERIFIED = "Verified"
    ALREADY_VERIFIED = "AlreadyVerified"
    FAILED = "Failed"


class VerificationRequest(NamedTuple):
    """Everything an explorer needs to match deployed bytecode to its source."""

    contract_path: str  # <source path>:<contract name>
    address: str
    constructor_args: str  # ABI-encoded, hex without 0x prefix
    compiler_version: str
    source_input: Dict[str, Any]  # solc standard JSON input
    chain_id: Optional[int] = None


def _abi_type(abi_input: Dict[str, Any]) -> str:
    abi_type = abi_input["type"]
    if abi_type.startswith("tuple"):
        components = ",".join(_abi_type(c) for c in abi_input.get("components", []))
        return f"({components}){abi_type[len('tuple'):]}"
    return abi_type


def encode_constructor_args(constructor_inputs: List[Dict[str, Any]], args: List[Any]) -> str:
    """ABI-encodes constructor arguments the way explorers expect them."""
    if len(args) != len(constructor_inputs):
        raise ConfigurationError(
            f"Constructor takes {len(constructor_inputs)} argument(s), got {len(args)}"
        )
    if not constructor_inputs:
        return ""
    types = [_abi_type(abi_input) for abi_input in constructor_inputs]
    try:
        values = [_normalize_value(abi_type, value) for abi_type, value in zip(types, args)]
        return encode(types, values).hex()
    except (EncodingError, ValueError) as e:
        raise ConfigurationError(f"Constructor arguments do not match the ABI: {e}") from e


def _normalize_value(abi_type: str, value: Any) -> Any:
    # ledger values are JSON; bytes arrive as hex strings
    if isinstance(value, list) and abi_type.endswith("]"):
        element_type = abi_type[: abi_type.rindex("[")]
        return [_normalize_value(element_type, v) for v in value]
    if abi_type.startswith("bytes") and isinstance(value, str):
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)
    return value


class ExplorerClient(ABC):
    """Boundary to the block explorer verification service."""

    @abstractmethod
    def submit_verification(
        self, request: VerificationRequest, api_key: str
    ) -> VerificationStatus:
        """Returns VERIFIED or ALREADY_VERIFIED; raises VerifyError otherwise."""
        raise NotImplementedError


def _is_retryable(message: str) -> bool:
    message = message.lower()
    return any(marker in message for marker in RETRYABLE_MARKERS)


class EtherscanClient(ExplorerClient):
    """Submits standard-JSON verifications and polls for their result."""

    def __init__(
        self,
        api_url: str,
        timeout: float = EXPLORER_TIMEOUT,
        poll_interval: float = EXPLORER_POLL_INTERVAL,
        max_polls: int = EXPLORER_MAX_POLLS,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_url = api_url
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.session = session or requests.Session()
        self._sleep = sleep

    def _call(self, method: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self.session.request(method, self.api_url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise VerifyError(f"Explorer request failed: {e}", retryable=True) from e

        if response.status_code == 429 or response.status_code >= 500:
            raise VerifyError(
                f"Explorer returned HTTP {response.status_code}", retryable=True
            )
        if response.status_code != 200:
            raise VerifyError(f"Explorer returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            raise VerifyError("Explorer returned a non-JSON response", retryable=True)
        if not isinstance(data, dict) or "result" not in data:
            raise VerifyError(f"Unexpected explorer response: {data!r}")
        return data

    def submit_verification(
        self, request: VerificationRequest, api_key: str
    ) -> VerificationStatus:
        payload = {
            "apikey": api_key,
            "module": "contract",
            "action": "verifysourcecode",
            "contractaddress": request.address,
            "sourceCode": json.dumps(request.source_input),
            "codeformat": "solidity-standard-json-input",
            "contractname": request.contract_path,
            "compilerversion": f"v{request.compiler_version.lstrip('v')}",
            # (sic) the explorer API spells it this way
            "constructorArguements": request.constructor_args,
        }
        params = {"chainid": request.chain_id} if request.chain_id else None
        data = self._call("POST", data=payload, params=params)

        result = str(data["result"])
        if data.get("status") != "1":
            if ALREADY_VERIFIED_MARKER in result.lower():
                return VerificationStatus.ALREADY_VERIFIED
            raise VerifyError(result, retryable=_is_retryable(result))

        logger.debug("Verification of %s submitted with guid %s", request.address, result)
        return self._wait_for_result(guid=result, api_key=api_key, chain_id=request.chain_id)

    def _wait_for_result(
        self, guid: str, api_key: str, chain_id: Optional[int]
    ) -> VerificationStatus:
        params = {
            "apikey": api_key,
            "module": "contract",
            "action": "checkverifystatus",
            "guid": guid,
        }
        if chain_id:
            params["chainid"] = chain_id

        for _ in range(self.max_polls):
            self._sleep(self.poll_interval)
            data = self._call("GET", params=params)
            result = str(data["result"])
            lowered = result.lower()
            if lowered.startswith(PENDING_RESULT):
                continue
            if lowered.startswith(PASS_RESULT):
                return VerificationStatus.VERIFIED
            if ALREADY_VERIFIED_MARKER in lowered:
                return VerificationStatus.ALREADY_VERIFIED
            raise VerifyError(result, retryable=_is_retryable(result))

        raise VerifyError(
            f"Verification {guid} still pending after {self.max_polls} checks", retryable=True
        )

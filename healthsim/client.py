from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from .directory import Actor

LOGGER = logging.getLogger("healthsim.client")

BASE_DIR = Path(__file__).resolve().parent
DEFAULT_ABI_PATH = BASE_DIR / "abi" / "HealthDataSharing.json"
DEFAULT_RPC_URL = "http://127.0.0.1:8545"
DEFAULT_CONTRACT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"

# Errors web3 surfaces for RPC failures: reverts and node errors derive from
# Web3Exception or ValueError, transport problems from OSError.
_CALL_ERRORS = (Web3Exception, ValueError, OSError)


class RemoteCallError(Exception):
    """Raised when the remote service rejects a call or cannot be reached."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ClientInitError(Exception):
    """Raised when the contract client cannot be constructed."""


@dataclass(frozen=True)
class PendingCall:
    actor: str
    operation: str
    handle: Any
    # Bound contract function, replayed to recover the reason of a mined revert.
    function: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ClientSettings:
    rpc_url: str = DEFAULT_RPC_URL
    contract_address: str = DEFAULT_CONTRACT_ADDRESS
    abi_path: Path = DEFAULT_ABI_PATH
    receipt_timeout: float = 120.0
    gas: int | None = None
    gas_price_gwei: float = 20.0
    connect_timeout: float = 60.0


class RemoteServiceClient(Protocol):
    """Two-phase call contract: ``invoke`` submits, ``wait`` blocks until applied.

    All three methods raise :class:`RemoteCallError` on rejection.
    """

    def invoke(self, actor: Actor, operation: str, *args: Any) -> PendingCall:
        ...

    def wait(self, pending: PendingCall) -> Any:
        ...

    def query(self, actor: Actor, operation: str, *args: Any) -> Any:
        ...


def error_reason(exc: BaseException) -> str:
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(exc) or type(exc).__name__


class Web3ServiceClient:
    """Contract client over a JSON-RPC node.

    Node-managed actors submit through ``eth_sendTransaction``; actors with a
    local key are signed here with their pending nonce. Callers must not issue
    two calls for the same actor concurrently.
    """

    def __init__(self, web3: Web3, contract: Any, settings: ClientSettings) -> None:
        self._web3 = web3
        self._contract = contract
        self._settings = settings
        self._chain_id = web3.eth.chain_id
        self._gas_price = Web3.to_wei(settings.gas_price_gwei, "gwei")

    @property
    def chain_id(self) -> int:
        return self._chain_id

    def node_accounts(self) -> list[str]:
        try:
            return list(self._web3.eth.accounts)
        except _CALL_ERRORS as exc:
            LOGGER.warning("node did not report managed accounts: %s", error_reason(exc))
            return []

    def invoke(self, actor: Actor, operation: str, *args: Any) -> PendingCall:
        function = self._function(operation, args)
        try:
            if actor.private_key is None:
                tx_params: dict[str, Any] = {"from": actor.address}
                if self._settings.gas is not None:
                    tx_params["gas"] = self._settings.gas
                tx_hash = function.transact(tx_params)
            else:
                tx_hash = self._send_signed(actor, function)
        except _CALL_ERRORS as exc:
            raise RemoteCallError(error_reason(exc)) from exc
        return PendingCall(actor=actor.address, operation=operation, handle=tx_hash, function=function)

    def wait(self, pending: PendingCall) -> Any:
        try:
            receipt = self._web3.eth.wait_for_transaction_receipt(
                pending.handle, timeout=self._settings.receipt_timeout
            )
        except TimeExhausted as exc:
            raise RemoteCallError(
                f"{pending.operation} not confirmed within {self._settings.receipt_timeout:.0f}s"
            ) from exc
        except _CALL_ERRORS as exc:
            raise RemoteCallError(error_reason(exc)) from exc

        if receipt.get("status", 1) == 0:
            raise RemoteCallError(self._revert_reason(pending, receipt))
        return receipt

    def query(self, actor: Actor, operation: str, *args: Any) -> Any:
        function = self._function(operation, args)
        try:
            return function.call({"from": actor.address})
        except _CALL_ERRORS as exc:
            raise RemoteCallError(error_reason(exc)) from exc

    def _revert_reason(self, pending: PendingCall, receipt: Any) -> str:
        """Replay a mined, reverted call against the parent block to read its reason.

        The reason never embeds the transaction hash so failures group in the
        error histogram.
        """
        fallback = f"{pending.operation} reverted"
        if pending.function is None:
            return fallback

        block_number = receipt.get("blockNumber")
        block = block_number - 1 if isinstance(block_number, int) and block_number > 0 else "latest"
        try:
            pending.function.call({"from": pending.actor}, block)
        except ContractLogicError as exc:
            return error_reason(exc)
        except _CALL_ERRORS as exc:
            LOGGER.debug(
                "could not replay %s from %s: %s", _hex(pending.handle), pending.actor, error_reason(exc)
            )
        return fallback

    def _function(self, operation: str, args: tuple) -> Any:
        try:
            return getattr(self._contract.functions, operation)(*args)
        except (AttributeError, Web3Exception) as exc:
            raise RemoteCallError(f"{operation}: {error_reason(exc)}") from exc

    def _send_signed(self, actor: Actor, function: Any) -> Any:
        tx_params: dict[str, Any] = {
            "from": actor.address,
            "nonce": self._web3.eth.get_transaction_count(actor.address, "pending"),
            "gasPrice": self._gas_price,
            "chainId": self._chain_id,
        }
        if self._settings.gas is not None:
            tx_params["gas"] = self._settings.gas
        tx = function.build_transaction(tx_params)
        signed = Account.sign_transaction(tx, actor.private_key)
        return self._web3.eth.send_raw_transaction(signed.raw_transaction)


def load_abi(path: Path) -> list[dict[str, Any]]:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ClientInitError(f"unable to load contract ABI from {path}") from exc
    if isinstance(data, dict):
        # Hardhat artifacts keep the ABI under "abi".
        data = data.get("abi")
    if not isinstance(data, list):
        raise ClientInitError(f"{path} does not contain a contract ABI")
    return data


def create_client(settings: ClientSettings) -> Web3ServiceClient:
    abi = load_abi(settings.abi_path)
    if not Web3.is_address(settings.contract_address):
        raise ClientInitError(f"invalid contract address {settings.contract_address!r}")

    web3 = Web3(Web3.HTTPProvider(settings.rpc_url))
    backoff = 1.0
    max_backoff = 10.0
    deadline = time.time() + settings.connect_timeout

    while not web3.is_connected():
        if time.time() >= deadline:
            raise ClientInitError(
                f"failed to connect to RPC endpoint {settings.rpc_url} "
                f"within {settings.connect_timeout:.0f} seconds"
            )
        LOGGER.info("waiting for RPC endpoint %s", settings.rpc_url)
        time.sleep(min(backoff, max(deadline - time.time(), 0.0)))
        backoff = min(backoff * 1.5, max_backoff)

    contract = web3.eth.contract(
        address=Web3.to_checksum_address(settings.contract_address), abi=abi
    )
    try:
        client = Web3ServiceClient(web3, contract, settings)
    except _CALL_ERRORS as exc:
        raise ClientInitError(f"RPC endpoint {settings.rpc_url} is not usable") from exc
    LOGGER.info(
        "Attached to contract at %s via %s (chain id %d)",
        contract.address,
        settings.rpc_url,
        client.chain_id,
    )
    return client


def _hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value)

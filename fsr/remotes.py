from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Protocol

import httpx
import requests
from web3 import Web3
from web3.exceptions import ContractLogicError, InvalidAddress, TimeExhausted

from .errors import ConfigurationError, ReadError, RemoteError, WriteError
from .model import OperationRef


class RemoteSystem(Protocol):
    """Anything exposing named read and write operations.

    ``read`` returns the raw current value (a Value or a plain python value);
    ``write`` performs one state mutation. Both raise ReadError / WriteError,
    with ``transient=True`` for transport failures.
    """

    identity: str

    def read(self, op: OperationRef) -> Any: ...

    def write(self, op: OperationRef) -> None: ...


def target_identity(target: Any) -> str:
    return getattr(target, "identity", None) or type(target).__name__


def _json_arg(a: Any) -> Any:
    if isinstance(a, (bytes, bytearray)):
        return "0x" + bytes(a).hex()
    return a


class HttpRemote:
    """Target reached over HTTP.

    Protocol (see examples/example_target):
      POST {base}/targets/{target}/read   {"method": ..., "args": [...]} -> {"value": ...}
      POST {base}/targets/{target}/write  {"method": ..., "args": [...]} -> 2xx
    Connection errors, timeouts, 429 and 5xx are transient; other 4xx are rejections.
    """

    def __init__(self, base_url: str, target: str, client: httpx.Client | None = None, timeout_s: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.target = target
        self.identity = f"{self.base_url}/targets/{target}"
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout_s, follow_redirects=False)

    def read(self, op: OperationRef) -> Any:
        data = self._post("read", op, ReadError)
        if not isinstance(data, dict) or "value" not in data:
            raise ReadError(f"read {op.name}: malformed response {data!r}")
        return data["value"]

    def write(self, op: OperationRef) -> None:
        self._post("write", op, WriteError)

    def _post(self, verb: str, op: OperationRef, err_cls: type[RemoteError]) -> Any:
        url = f"{self.identity}/{verb}"
        payload = {"method": op.name, "args": [_json_arg(a) for a in op.args]}
        try:
            resp = self._client.post(url, json=payload)
        except httpx.TransportError as e:
            raise err_cls(f"{verb} {op.name}: {type(e).__name__}: {e}", transient=True) from e

        if resp.status_code == 429 or resp.status_code >= 500:
            raise err_cls(f"{verb} {op.name}: HTTP {resp.status_code}", transient=True)
        if resp.status_code >= 400:
            raise err_cls(f"{verb} {op.name}: HTTP {resp.status_code}: {_detail(resp)}")
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            raise err_cls(f"{verb} {op.name}: invalid JSON response") from None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpRemote":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


def _detail(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(data, dict) and "detail" in data:
        return str(data["detail"])
    return str(data)[:200]


def _checksum(a: Any) -> Any:
    """web3 only accepts EIP-55 checksummed addresses as arguments."""
    if isinstance(a, str) and Web3.is_address(a):
        return Web3.to_checksum_address(a)
    return a


# Failures reaching the node. web3's HTTPProvider is built on requests.
_RPC_TRANSPORT_ERRORS = (requests.exceptions.ConnectionError, requests.exceptions.Timeout)


class ContractRemote:
    """A deployed contract; reads are ``call()``s, writes are transactions.

    A revert (ContractLogicError) or a mined receipt with status 0 is a
    rejection. A receipt wait that times out is not retried: the transaction
    may still be mined, and a later run will observe it.
    """

    def __init__(
        self,
        w3: Web3,
        contract: Any,
        sender: str | None = None,
        receipt_timeout_s: int = 120,
        identity: str | None = None,
    ):
        self.w3 = w3
        self.contract = contract
        self.sender = sender
        self.receipt_timeout_s = receipt_timeout_s
        self.identity = identity or str(contract.address)

    @classmethod
    def from_deployment(
        cls,
        rpc_url: str,
        path: str | Path,
        sender: str | None = None,
        timeout_s: float = 10.0,
        receipt_timeout_s: int = 120,
    ) -> "ContractRemote":
        """Load a hardhat-deploy style artifact: ``{"address": "0x...", "abi": [...]}``."""
        p = Path(path)
        try:
            payload = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"cannot load deployment {p}: {e}") from e
        if not isinstance(payload, dict) or not Web3.is_address(payload.get("address", "")):
            raise ConfigurationError(f"deployment {p} has no valid 'address'")
        if not isinstance(payload.get("abi"), list):
            raise ConfigurationError(f"deployment {p} has no 'abi' list")

        w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout_s}))
        contract = w3.eth.contract(address=Web3.to_checksum_address(payload["address"]), abi=payload["abi"])
        if sender and not Web3.is_address(sender):
            raise ConfigurationError(f"invalid sender address {sender!r}")
        return cls(
            w3,
            contract,
            sender=Web3.to_checksum_address(sender) if sender else None,
            receipt_timeout_s=receipt_timeout_s,
            identity=f"{p.stem}@{payload['address']}",
        )

    def _function(self, op: OperationRef, err_cls: type[RemoteError]) -> Any:
        try:
            return getattr(self.contract.functions, op.name)(*(_checksum(a) for a in op.args))
        except AttributeError as e:
            raise err_cls(f"contract has no function '{op.name}'") from e
        except (TypeError, ValueError) as e:
            raise err_cls(f"bad arguments for {op}: {e}") from e

    def read(self, op: OperationRef) -> Any:
        fn = self._function(op, ReadError)
        try:
            return fn.call()
        except ContractLogicError as e:
            raise ReadError(f"{op} reverted: {e}") from e
        except InvalidAddress as e:
            raise ReadError(f"bad address argument for {op}: {e}") from e
        except _RPC_TRANSPORT_ERRORS as e:
            raise ReadError(f"{op}: {type(e).__name__}: {e}", transient=True) from e

    def write(self, op: OperationRef) -> None:
        fn = self._function(op, WriteError)
        tx: dict[str, Any] = {"from": self.sender} if self.sender else {}
        try:
            tx_hash = fn.transact(tx)
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout_s)
        except ContractLogicError as e:
            raise WriteError(f"{op} reverted: {e}") from e
        except InvalidAddress as e:
            raise WriteError(f"bad address argument for {op}: {e}") from e
        except TimeExhausted as e:
            raise WriteError(f"{op}: no receipt after {self.receipt_timeout_s}s") from e
        except _RPC_TRANSPORT_ERRORS as e:
            raise WriteError(f"{op}: {type(e).__name__}: {e}", transient=True) from e
        if receipt.get("status", 1) != 1:
            raise WriteError(f"{op} reverted in tx {Web3.to_hex(tx_hash)}")

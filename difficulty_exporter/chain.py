import itertools
import logging
import time
from typing import NamedTuple, Optional

import requests

from .errors import (
    ChainConnectionError,
    NotFoundError,
    RPCError,
    RPCTimeoutError,
    TransientFetchError,
)

logger = logging.getLogger(__name__)

MAX_UINT64 = 2**64 - 1


class Header(NamedTuple):
    number: int
    difficulty: int


def parse_quantity(value, field: str) -> int:
    """Decode a JSON-RPC quantity (hex string or int) into a 64-bit unsigned int."""
    if isinstance(value, bool) or value is None:
        raise RPCError(f"Header field {field} is missing")
    try:
        if isinstance(value, int):
            number = value
        elif isinstance(value, str):
            number = int(value, 16) if value.lower().startswith("0x") else int(value)
        else:
            raise ValueError(f"unsupported type {type(value).__name__}")
    except ValueError as e:
        raise RPCError(f"Header field {field} is not a quantity: {value!r}") from e
    if number < 0 or number > MAX_UINT64:
        raise RPCError(f"Header field {field} out of 64-bit range: {number}")
    return number


class ChainReader:
    """JSON-RPC client for the chain tip and block headers."""

    def __init__(
        self,
        url: str,
        namespace: str = "quai",
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.namespace = namespace
        self.timeout = timeout
        self.session = session or requests.Session()
        self._ids = itertools.count(1)

    def connect(self, attempts: int = 5, delay: float = 2, sleep=time.sleep):
        """
        Check the endpoint answers, retrying a bounded number of times.

        Raises ChainConnectionError once every attempt has failed.
        """
        last_error = None
        for attempt in range(1, attempts + 1):
            try:
                height = self.current_height()
                logger.info(f"Connected to {self.url} at height {height}")
                return self
            except TransientFetchError as e:
                last_error = e
                logger.warning(
                    f"Connection attempt {attempt}/{attempts} to {self.url} failed: {e}"
                )
            if attempt < attempts:
                sleep(delay)
        raise ChainConnectionError(
            f"failed to connect to node {self.url} after {attempts} attempts"
        ) from last_error

    def current_height(self) -> int:
        result = self._call(f"{self.namespace}_blockNumber")
        return parse_quantity(result, "blockNumber")

    def header_at(self, height: int) -> Header:
        result = self._call(f"{self.namespace}_getHeaderByNumber", hex(height))
        if result is None:
            raise NotFoundError(f"No header at height {height}")
        if not isinstance(result, dict):
            raise RPCError(f"Unexpected header payload at height {height}: {result!r}")

        # Quai nests work fields under woHeader, flat headers carry them inline.
        fields = result.get("woHeader") or result
        if not isinstance(fields, dict):
            raise RPCError(f"Unexpected woHeader at height {height}: {fields!r}")
        header = Header(
            number=parse_quantity(fields.get("number"), "number"),
            difficulty=parse_quantity(fields.get("difficulty"), "difficulty"),
        )
        if header.number != height:
            raise RPCError(
                f"Header number mismatch: asked for {height}, got {header.number}"
            )
        return header

    def close(self):
        self.session.close()

    def _call(self, method: str, *params):
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": list(params),
        }
        try:
            resp = self.session.post(self.url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            body = resp.json()
        except requests.Timeout as e:
            raise RPCTimeoutError(f"{method} timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise RPCError(f"{method} failed: {e}") from e
        except ValueError as e:
            raise RPCError(f"{method} returned invalid JSON: {e}") from e

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug({"event": "node_response", "method": method, "response": body})

        if not isinstance(body, dict):
            raise RPCError(f"{method} returned unexpected body: {body!r}")
        if body.get("error"):
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise RPCError(f"{method} returned error: {message}")
        if "result" not in body:
            raise RPCError(f"{method} response has no result")
        return body["result"]

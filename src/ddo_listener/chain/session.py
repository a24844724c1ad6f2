"""JSON-RPC chain session - the one long-lived connection to the node."""

from __future__ import annotations

import itertools
import logging
from typing import Any, Sequence

import httpx

log = logging.getLogger(__name__)


class ChainConnectionError(RuntimeError):
    """The RPC endpoint could not be reached at startup. Fatal."""


class ChainRpcError(RuntimeError):
    """The node answered a call with a JSON-RPC error object."""

    def __init__(self, method: str, code: Any, message: Any) -> None:
        super().__init__(f"{method}: RPC error {code}: {message}")
        self.method = method
        self.code = code


class JsonRpcSession:
    """Owns the httpx client used for all eth_* calls.

    Lifecycle: ``start()`` opens the client and confirms connectivity with
    ``eth_chainId``; ``close()`` releases it. Usable as an async context
    manager. Tests substitute any object with the same four coroutines.
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._ids = itertools.count(1)
        self.chain_id: int | None = None

    @property
    def is_open(self) -> bool:
        return self._client is not None

    async def start(self) -> int:
        self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        try:
            self.chain_id = int(await self._call("eth_chainId"), 16)
        except (httpx.HTTPError, ChainRpcError, TypeError, ValueError) as exc:
            await self.close()
            raise ChainConnectionError(f"cannot connect to {self._rpc_url}: {exc}") from exc
        log.debug("Connected to %s (chain id %d)", self._rpc_url, self.chain_id)
        return self.chain_id

    async def block_number(self) -> int:
        return int(await self._call("eth_blockNumber"), 16)

    async def get_logs(
        self,
        address: str,
        topics: Sequence[str | None],
        from_block: int,
        to_block: int,
    ) -> list[dict[str, Any]]:
        params = [{
            "address": address,
            "topics": list(topics),
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
        }]
        result = await self._call("eth_getLogs", params)
        return list(result or [])

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            log.info("RPC connection closed")

    async def __aenter__(self) -> JsonRpcSession:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _call(self, method: str, params: list | None = None) -> Any:
        if self._client is None:
            raise RuntimeError("session is not started")
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        resp = await self._client.post(self._rpc_url, json=payload)
        resp.raise_for_status()
        data = resp.json()
        if data.get("error"):
            err = data["error"]
            raise ChainRpcError(method, err.get("code"), err.get("message"))
        return data.get("result")

"""Async JSONBin.io v3 client using httpx.

Endpoints:
- POST /b (create a private bin, returns ``metadata.id``)
- GET /b/{id}/latest (read the document, ``X-Bin-Meta: false``)
- PUT /b/{id} (overwrite the document)
- DELETE /b/{id} (remove the bin)

The client does not retry.  Every failure is translated into the sync error
taxonomy and the :class:`~fitsync.sync.engine.SyncEngine` decides what to do.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from fitsync.config import JsonBinConfig
from fitsync.storage.models import FitnessDataset
from fitsync.sync.errors import (
    AuthenticationError,
    MalformedDataError,
    NetworkUnavailableError,
    RemoteServerError,
)

log = structlog.get_logger(__name__)

_TIMEOUT = 30.0
_RETRIABLE_STATUS = frozenset({408, 425, 429})


class JsonBinClient:
    """Single-document remote store addressed by a fixed bin id."""

    def __init__(
        self,
        config: JsonBinConfig,
        *,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = _transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> JsonBinClient:
        kw: dict = {
            "base_url": self._config.base_url,
            "timeout": _TIMEOUT,
            "headers": {"X-Master-Key": self._config.api_key.get_secret_value()},
        }
        if self._transport is not None:
            kw["transport"] = self._transport
        self._client = httpx.AsyncClient(**kw)
        return self

    async def __aexit__(self, *exc: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def bin_id(self) -> str:
        return self._config.bin_id

    # -- request helper --

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        assert self._client is not None  # noqa: S101

        try:
            resp = await self._client.request(method, url, json=json, headers=headers)
        except httpx.TransportError as exc:
            raise NetworkUnavailableError(f"JSONBin unreachable: {exc}") from exc

        if resp.status_code in (401, 403):
            raise AuthenticationError(
                f"JSONBin rejected the API key ({resp.status_code}). "
                "Update it with: fitsync config set jsonbin.api_key <key>"
            )

        if resp.status_code in _RETRIABLE_STATUS or resp.status_code >= 500:
            raise RemoteServerError(
                f"JSONBin server error: {resp.status_code} {resp.text}",
                status_code=resp.status_code,
            )

        if resp.status_code >= 400:
            raise MalformedDataError(f"JSONBin refused the request: {resp.status_code} {resp.text}")

        return resp

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            raise MalformedDataError("JSONBin returned a body that is not JSON") from exc

    def _require_bin(self, bin_id: str | None) -> str:
        bin_id = bin_id or self._config.bin_id
        if not bin_id:
            raise MalformedDataError("No bin id configured. Run: fitsync cloud init")
        return bin_id

    # -- public API --

    async def create_bin(self, document: dict, *, name: str = "fitsync") -> str:
        """Create a private bin holding *document*; return its id."""
        resp = await self._request(
            "POST",
            "/b",
            json=document,
            headers={"X-Bin-Private": "true", "X-Bin-Name": name},
        )
        data = self._json(resp)
        try:
            bin_id = data["metadata"]["id"]
        except (KeyError, TypeError) as exc:
            raise MalformedDataError("JSONBin create response has no metadata.id") from exc
        log.info("bin_created", bin_id=bin_id)
        return bin_id

    async def read_bin(self, bin_id: str | None = None) -> dict:
        """Return the latest version of the document."""
        resp = await self._request(
            "GET",
            f"/b/{self._require_bin(bin_id)}/latest",
            headers={"X-Bin-Meta": "false"},
        )
        data = self._json(resp)
        if not isinstance(data, dict):
            raise MalformedDataError("Remote document is not a JSON object")
        return data

    async def update_bin(self, document: dict, bin_id: str | None = None) -> None:
        """Overwrite the document in place."""
        await self._request("PUT", f"/b/{self._require_bin(bin_id)}", json=document)

    async def reset_bin(self, bin_id: str | None = None) -> None:
        """Replace the document with an empty dataset."""
        await self.update_bin(FitnessDataset().model_dump(mode="json"), bin_id)
        log.info("bin_reset", bin_id=bin_id or self._config.bin_id)

    async def delete_bin(self, bin_id: str | None = None) -> None:
        target = self._require_bin(bin_id)
        await self._request("DELETE", f"/b/{target}")
        log.info("bin_deleted", bin_id=target)

    async def ping(self) -> bool:
        """Return True if the API host answers at all, whatever the status code."""
        assert self._client is not None  # noqa: S101
        try:
            await self._client.request("GET", "/b")
        except httpx.TransportError:
            return False
        return True

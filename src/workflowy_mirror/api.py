"""Workflowy API client."""

import asyncio
from typing import Any

import requests
from loguru import logger

from workflowy_mirror.config import API_BASE_URL, API_TOKEN_FILES
from workflowy_mirror.errors import ApiError
from workflowy_mirror.models.node import Node


class WorkflowyApi:
    """Thin Workflowy REST client.

    Each request runs in a worker thread so the sync engine can fan out
    concurrently. There is no retry or backoff here.
    """

    def __init__(self, *, base_url: str = API_BASE_URL, timeout: float = 30.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.sess = requests.Session()

        api_token_name: str | None = None
        for token_path in API_TOKEN_FILES:
            try:
                self.api_token = token_path.read_text(encoding="utf-8").strip()
                api_token_name = str(token_path)
                break
            except FileNotFoundError:
                pass
        else:
            msg = f"Cannot find workflowy token file, was looking at {API_TOKEN_FILES!r}"
            raise ApiError(msg)

        self.sess.headers.update(
            {"Authorization": f"Bearer {self.api_token}", "Content-Type": "application/json"}
        )
        logger.debug("API ready: token from {!r}, base_url {!r}", api_token_name, self.base_url)

    def call(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Invoke the API, return json (empty dict for empty bodies)."""
        logger.debug("Making request: {} {!r} {}", method, path, repr(params or body)[:32])
        r = self.sess.request(
            method,
            f"{self.base_url}{path}",
            params=params,
            json=body,
            timeout=self.timeout,
        )
        if not r.ok:
            msg = f"API call failed: ({method} {path!r}) -> {r.status_code} {r.reason}"
            raise ApiError(msg)
        if not r.text:
            return {}
        rv: dict[str, Any] = r.json()
        return rv

    async def _acall(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        return await asyncio.to_thread(self.call, method, path, **kwargs)

    async def list_children(self, parent_id: str) -> list[Node]:
        data = await self._acall("GET", "/nodes", params={"parent_id": parent_id})
        return [Node.from_api(n) for n in data.get("nodes", [])]

    async def create_node(self, parent_id: str, name: str, note: str | None = None) -> Node:
        body: dict[str, Any] = {"parent_id": parent_id, "name": name}
        if note:
            body["note"] = note
        data = await self._acall("POST", "/nodes", body=body)
        return Node.from_api(data)

    async def update_node(self, node_id: str, **fields: Any) -> Node:
        data = await self._acall("POST", f"/nodes/{node_id}", body=fields)
        return Node.from_api({"id": node_id, **data})

    async def delete_node(self, node_id: str) -> None:
        await self._acall("DELETE", f"/nodes/{node_id}")

    async def complete_node(self, node_id: str) -> None:
        await self._acall("POST", f"/nodes/{node_id}/complete")

    async def uncomplete_node(self, node_id: str) -> None:
        await self._acall("POST", f"/nodes/{node_id}/uncomplete")

    async def move_node(self, node_id: str, parent_id: str, priority: int) -> Node:
        data = await self._acall(
            "POST", f"/nodes/{node_id}/move", body={"parent_id": parent_id, "priority": priority}
        )
        return Node.from_api({"id": node_id, "priority": priority, **data})

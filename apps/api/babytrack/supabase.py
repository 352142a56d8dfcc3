from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional, Set
from uuid import uuid4

import httpx

from .errors import StoreError
from .store import DocumentStore, Increment, SnapshotKey, apply_fields

logger = logging.getLogger(__name__)


@lru_cache
def _supabase_config() -> tuple[str, str]:
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY")
    if not url or not key:
        raise RuntimeError("Missing SUPABASE_URL/SUPABASE_SERVICE_ROLE_KEY for store access.")
    return url.rstrip("/"), key


async def _describe_response(resp: httpx.Response) -> str:
    try:
        return resp.text or "<empty response>"
    except Exception:
        return "<unable to read response>"


async def _raise_supabase_error(
    resp: httpx.Response,
    action: str,
    *,
    object_label: Optional[str] = None,
) -> None:
    detail = await _describe_response(resp)
    label = f" ({object_label})" if object_label else ""
    raise StoreError(action, f"Supabase{label}: status={resp.status_code}, body={detail}")


@dataclass
class SupabaseClient:
    base_url: str
    api_key: str
    timeout: float = 15.0

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = f"{self.base_url}/rest/v1/{table}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=self._headers(headers),
                )
        except httpx.HTTPError as exc:
            raise StoreError(method.lower(), f"table={table}: {exc}") from exc

    async def select(self, table: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        resp = await self.request("GET", table, params=params)
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "select", object_label=f"table={table}")
        return resp.json()

    async def insert(self, table: str, payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        resp = await self.request(
            "POST",
            table,
            json=payload,
            headers={"Prefer": "return=representation"},
        )
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "create", object_label=f"table={table}")
        return resp.json() if resp.content else []

    async def update(
        self,
        table: str,
        payload: Dict[str, Any],
        params: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        resp = await self.request(
            "PATCH",
            table,
            params=params,
            json=payload,
            headers={"Prefer": "return=representation"},
        )
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "update", object_label=f"table={table}")
        return resp.json() if resp.content else []

    async def delete(self, table: str, params: Dict[str, Any]) -> None:
        resp = await self.request("DELETE", table, params=params)
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "delete", object_label=f"table={table}")


@lru_cache
def get_admin_client() -> SupabaseClient:
    base_url, key = _supabase_config()
    return SupabaseClient(base_url=base_url, api_key=key)


class SupabaseDocumentStore(DocumentStore):
    """PostgREST-backed store; one table per collection.

    PostgREST has no push channel here, so snapshots are re-selected after
    every write made through this store and on ``refresh()``.
    """

    def __init__(self, client: Optional[SupabaseClient] = None) -> None:
        super().__init__()
        self._client = client or get_admin_client()
        self._pending: Set[asyncio.Task] = set()

    async def _select_key(self, key: SnapshotKey) -> List[Dict[str, Any]]:
        direction = "desc" if key.descending else "asc"
        return await self._client.select(
            key.collection,
            params={"select": "*", key.field: f"eq.{key.value}", "order": f"{key.order_by}.{direction}"},
        )

    async def _refresh_token(self, token: int) -> None:
        subscription = self._subscriptions.get(token)
        if subscription is None:
            return
        try:
            rows = await self._select_key(subscription.key)
        except StoreError:
            logger.exception("snapshot refresh failed", extra={"collection": subscription.key.collection})
            return
        if token in self._subscriptions:
            self._deliver(subscription, rows)

    async def refresh(self, collection: Optional[str] = None) -> None:
        for token, subscription in list(self._subscriptions.items()):
            if collection is None or subscription.key.collection == collection:
                await self._refresh_token(token)

    def _deliver_initial(self, token: int) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("no running loop; initial snapshot deferred until refresh()")
            return
        task = loop.create_task(self._refresh_token(token))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def create(self, collection: str, record: Dict[str, Any]) -> str:
        payload = {**record, "id": record.get("id") or str(uuid4())}
        rows = await self._client.insert(collection, payload)
        record_id = str(rows[0].get("id")) if rows else payload["id"]
        await self.refresh(collection)
        return record_id

    async def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> None:
        params = {"id": f"eq.{record_id}"}
        if any(isinstance(value, Increment) for value in fields.values()):
            rows = await self._client.select(collection, params={"select": "*", **params, "limit": "1"})
            if not rows:
                raise StoreError("update", f"{collection}/{record_id} not found")
            resolved = apply_fields(rows[0], fields)
            fields = {name: resolved[name] for name in fields}
        updated = await self._client.update(collection, fields, params=params)
        if not updated:
            raise StoreError("update", f"{collection}/{record_id} not found")
        await self.refresh(collection)

    async def delete(self, collection: str, record_id: str) -> None:
        await self._client.delete(collection, params={"id": f"eq.{record_id}"})
        await self.refresh(collection)

"""Order persistence over the key-value store."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Mapping

from loguru import logger

from regdesk_api.core.kv import KeyValueStore

from .integrity import attach_immutable_order_hash

ORDERS_INDEX_KEY = "orders:index"


class OrderNotFoundError(LookupError):
    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class OrderCache:
    """Holds the loaded order list until a writer or a new report run calls :meth:`invalidate`."""

    def __init__(self) -> None:
        self._orders: list[dict[str, Any]] | None = None

    @property
    def is_warm(self) -> bool:
        return self._orders is not None

    def get(self) -> list[dict[str, Any]] | None:
        return self._orders

    def store(self, orders: list[dict[str, Any]]) -> None:
        self._orders = orders

    def invalidate(self) -> None:
        self._orders = None


class OrderRepository:
    """Stores orders as JSON under ``order:<id>`` and indexes ids in ``orders:index``."""

    def __init__(self, store: KeyValueStore, *, cache: OrderCache | None = None) -> None:
        self._store = store
        self._cache = cache

    @staticmethod
    def order_key(order_id: str) -> str:
        return f"order:{order_id}"

    async def create(self, order: Mapping[str, Any], *, now: datetime | None = None) -> dict[str, Any]:
        """Seal a freshly completed checkout order and persist it."""

        order_id = str(order.get("id") or "").strip()
        if not order_id:
            raise ValueError("Order id is required")
        sealed = attach_immutable_order_hash(order, now=now)
        await self._write(order_id, sealed, index=True)
        logger.info("Order sealed", order_id=order_id, hash=sealed["hash"])
        return sealed

    async def get(self, order_id: str) -> dict[str, Any]:
        raw = await self._store.get(self.order_key(order_id))
        order = _decode_order(raw)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def save_resealed(self, order: Mapping[str, Any]) -> dict[str, Any]:
        """Persist an order that already went through the admin re-seal."""

        order_id = str(order.get("id") or "").strip()
        if not order_id:
            raise ValueError("Order id is required")
        stored = dict(order)
        await self._write(order_id, stored)
        return stored

    async def list_all(self) -> list[dict[str, Any]]:
        if self._cache is not None:
            cached = self._cache.get()
            if cached is not None:
                return cached

        order_ids = await self._store.smembers(ORDERS_INDEX_KEY)
        orders: list[dict[str, Any]] = []
        missing = 0
        for order_id in sorted(order_ids):
            order = _decode_order(await self._store.get(self.order_key(order_id)))
            if order is None:
                missing += 1
                continue
            orders.append(order)
        if missing:
            logger.warning("Order index references missing orders", missing=missing)

        if self._cache is not None:
            self._cache.store(orders)
        return orders

    async def _write(self, order_id: str, order: Mapping[str, Any], *, index: bool = False) -> None:
        await self._store.set(self.order_key(order_id), json.dumps(order, default=str))
        if index:
            await self._store.sadd(ORDERS_INDEX_KEY, order_id)
        # A list_all that ran during the writes may have cached a snapshot without them.
        if self._cache is not None:
            self._cache.invalidate()


def _decode_order(raw: str | None) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        decoded = json.loads(raw)
    except ValueError:
        return None
    return decoded if isinstance(decoded, dict) else None


__all__ = ["ORDERS_INDEX_KEY", "OrderCache", "OrderNotFoundError", "OrderRepository"]

"""Reportable item catalog and per-item configuration."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Protocol

from loguru import logger

from regdesk_api.core.clock import parse_iso_datetime
from regdesk_api.core.kv import KeyValueStore

# (item kind, KV key holding the JSON list); earlier sources win on duplicate ids.
CATALOG_SOURCES: tuple[tuple[str, str], ...] = (
    ("banquet", "banquets"),
    ("addon", "addons"),
    ("catalog", "products"),
)


@dataclass(slots=True)
class ReportItem:
    id: str
    kind: str
    label: str
    frequency_raw: str | None = None


@dataclass(slots=True)
class ItemConfig:
    label: str | None = None
    kind: str | None = None
    frequency_raw: str | None = None
    publish_start: datetime | None = None
    publish_end: datetime | None = None
    chair_emails: list[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "ItemConfig":
        frequency = _first_present(raw, "reportFrequency", "report_frequency")
        return cls(
            label=_string_field(raw.get("name")),
            kind=(_string_field(raw.get("kind")) or "").lower() or None,
            frequency_raw=frequency,
            publish_start=parse_iso_datetime(raw.get("publishStart")),
            publish_end=parse_iso_datetime(raw.get("publishEnd")),
            chair_emails=_parse_email_list(raw.get("chairEmails")),
        )


class ReportCatalog(Protocol):
    async def list_items(self) -> list[ReportItem]:
        ...

    async def load_config(self, item_id: str) -> ItemConfig:
        ...


class KeyValueReportCatalog:
    """Reads banquet/add-on/product lists and ``<namespace>:<id>`` config hashes."""

    def __init__(self, store: KeyValueStore, *, namespace: str = "itemcfg") -> None:
        self._store = store
        self._namespace = namespace

    async def list_items(self) -> list[ReportItem]:
        items: list[ReportItem] = []
        seen: set[str] = set()
        for kind, key in CATALOG_SOURCES:
            for entry in await self._load_entries(key):
                if not is_entry_reportable(entry):
                    continue
                item_id = _string_field(entry.get("id"))
                if not item_id or item_id in seen:
                    continue
                seen.add(item_id)
                items.append(
                    ReportItem(
                        id=item_id,
                        kind=kind,
                        label=_string_field(entry.get("name")) or item_id,
                        frequency_raw=_first_present(entry, "reportFrequency", "report_frequency"),
                    )
                )
        return items

    async def load_config(self, item_id: str) -> ItemConfig:
        raw = await self._store.hgetall(f"{self._namespace}:{item_id}")
        return ItemConfig.from_mapping(raw)

    async def _load_entries(self, key: str) -> list[dict[str, Any]]:
        raw = await self._store.get(key)
        if not raw:
            return []
        try:
            decoded = json.loads(raw)
        except ValueError:
            logger.warning("Catalog list is not valid JSON", catalog_key=key)
            return []
        if not isinstance(decoded, list):
            return []
        return [entry for entry in decoded if isinstance(entry, dict)]


def is_entry_reportable(entry: Mapping[str, Any]) -> bool:
    """Archived or inactive entries never reach the scheduler."""

    if entry.get("active") is False:
        return False
    if entry.get("archived") is True or entry.get("isArchived") is True:
        return False
    return True


def _first_present(raw: Mapping[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return str(value)
    return None


def _string_field(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_email_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                value = json.loads(text)
            except ValueError:
                return []
        else:
            return [part.strip() for part in text.split(",") if part.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


__all__ = [
    "CATALOG_SOURCES",
    "ItemConfig",
    "KeyValueReportCatalog",
    "ReportCatalog",
    "ReportItem",
    "is_entry_reportable",
]

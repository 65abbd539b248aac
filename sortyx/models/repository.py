from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Iterable
from typing import Any

from sortyx.config import ThresholdDefaults
from sortyx.errors import DuplicateIdentifierError, EntityNotFoundError
from sortyx.models.database import DatabaseManager, utc_now_iso

LOGGER = logging.getLogger(__name__)

SMART_BINS = "smart-bins"
SINGLE_BINS = "single-bins"
COMPARTMENTS = "compartments"
ALERTS = "alerts"
USERS = "users"
SUBSCRIPTION_PLANS = "subscription-plans"

MAX_SEQUENCE = 999

TYPE_CODES: dict[str, str] = {
    "recyclable": "REC",
    "recycle": "REC",
    "recycling": "REC",
    "organic": "ORG",
    "compost": "ORG",
    "general": "GEN",
    "general_waste": "GEN",
    "landfill": "GEN",
    "plastic": "PLA",
    "paper": "PAP",
    "glass": "GLA",
    "metal": "MET",
    "mixed": "MIX",
    "hazardous": "HAZ",
}

SNAPSHOT_FIELDS: tuple[str, ...] = (
    "current_fill",
    "battery_level",
    "temperature",
    "humidity",
    "air_quality",
    "odour_level",
    "last_sensor_update",
)


def _alnum(value: str | None) -> str:
    return re.sub(r"[^A-Za-z0-9]", "", value or "")


def type_code(waste_type: str | None, label: str | None = None) -> str:
    known = TYPE_CODES.get((waste_type or "").strip().lower())
    if known:
        return known
    for source in (waste_type, label):
        cleaned = _alnum(source)
        if cleaned:
            return cleaned[:3].upper()
    return "CMP"


def generate_compartment_id(bin_name: str, code: str, existing_ids: Iterable[str]) -> str:
    """Build `<BinName>-<CODE>-<NNN>`, probing NNN upward from 001."""
    taken = set(existing_ids)
    prefix = f"{_alnum(bin_name)[:10] or 'Bin'}-{code}"
    for sequence in range(1, MAX_SEQUENCE + 1):
        proposed = f"{prefix}-{sequence:03d}"
        if proposed not in taken:
            return proposed

    LOGGER.warning("All %d sequence numbers used for %s, using random suffix", MAX_SEQUENCE, prefix)
    return f"{prefix}-{uuid.uuid4().hex[:6].upper()}"


class EntityRepository:
    def __init__(self, db: DatabaseManager, collection: str):
        self.db = db
        self.collection = collection

    def get(self, entity_id: str) -> dict[str, Any] | None:
        return self.db.get(self.collection, entity_id)

    def require(self, entity_id: str) -> dict[str, Any]:
        document = self.get(entity_id)
        if document is None:
            raise EntityNotFoundError(self.collection, entity_id)
        return document

    def list(self, order_by: str | None = None, descending: bool = False, **filters: Any) -> list[dict[str, Any]]:
        criteria = {key: value for key, value in filters.items() if value is not None}
        return self.db.query(self.collection, criteria, order_by=order_by, descending=descending)

    def create(self, data: dict[str, Any]) -> dict[str, Any]:
        now = utc_now_iso()
        return self.db.insert(self.collection, {**data, "created_date": now, "updated_date": now})

    def update(self, entity_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        document = self.db.update(self.collection, entity_id, {**changes, "updated_date": utc_now_iso()})
        if document is None:
            raise EntityNotFoundError(self.collection, entity_id)
        return document

    def delete(self, entity_id: str) -> bool:
        return self.db.delete(self.collection, entity_id)


class BinRepository:
    def __init__(self, db: DatabaseManager, thresholds: ThresholdDefaults | None = None):
        self.db = db
        self.thresholds = thresholds or ThresholdDefaults()
        self.smart_bins = EntityRepository(db, SMART_BINS)
        self.single_bins = EntityRepository(db, SINGLE_BINS)
        self.compartments = EntityRepository(db, COMPARTMENTS)

    def _with_defaults(self, data: dict[str, Any]) -> dict[str, Any]:
        document = dict(data)
        for key in ("fill_threshold", "battery_threshold", "temp_threshold"):
            if document.get(key) is None:
                document[key] = getattr(self.thresholds, key)
        document.setdefault("sensors_enabled", {"fill_level": True})
        for key in SNAPSHOT_FIELDS:
            document.setdefault(key, None)
        return document

    def create_smart_bin(self, data: dict[str, Any], *, owner: str) -> dict[str, Any]:
        document = self._with_defaults(data)
        document["created_by"] = owner
        document["type"] = "smartbin"
        document.setdefault("status", "active")
        return self.smart_bins.create(document)

    def create_single_bin(self, data: dict[str, Any], *, owner: str) -> dict[str, Any]:
        document = self._with_defaults(data)
        document["created_by"] = owner
        document["type"] = "singlebin"
        document.setdefault("status", "active")
        return self.single_bins.create(document)

    def compartments_for(self, smart_bin_id: str) -> list[dict[str, Any]]:
        return self.compartments.list(smartbin_id=smart_bin_id)

    def create_compartment(self, data: dict[str, Any]) -> dict[str, Any]:
        smart_bin = self.smart_bins.require(data["smartbin_id"])
        existing_ids = [item["unique_id"] for item in self.compartments_for(smart_bin["id"]) if item.get("unique_id")]

        document = self._with_defaults(data)
        requested = document.get("unique_id")
        if requested:
            if requested in existing_ids:
                raise DuplicateIdentifierError(f"Compartment id `{requested}` already used in {smart_bin['name']}")
        else:
            code = type_code(document.get("waste_type"), document.get("label"))
            document["unique_id"] = generate_compartment_id(smart_bin["name"], code, existing_ids)

        document["created_by"] = smart_bin.get("created_by")
        return self.compartments.create(document)

    def delete_smart_bin(self, smart_bin_id: str) -> int:
        self.smart_bins.require(smart_bin_id)
        removed = self.db.delete_where(COMPARTMENTS, {"smartbin_id": smart_bin_id})
        self.smart_bins.delete(smart_bin_id)
        LOGGER.info("Deleted SmartBin %s and %d compartments", smart_bin_id, removed)
        return removed

    def delete_single_bin(self, single_bin_id: str) -> None:
        if not self.single_bins.delete(single_bin_id):
            raise EntityNotFoundError(SINGLE_BINS, single_bin_id)

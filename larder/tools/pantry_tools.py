"""Pantry tools: read and change stock through the document store."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any

from larder.agent.executor import ToolResult
from larder.documents import Document
from larder.tools.base import PantryTool

ITEM_PREFIX = "item:"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_date(value: Any) -> str | None:
    """ISO date (YYYY-MM-DD) when parseable, the trimmed text otherwise."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return datetime.fromisoformat(text).date().isoformat()
    except ValueError:
        return text


def batch_total(batches: list[dict]) -> float:
    return sum(float(batch.get("quantity") or 0) for batch in batches)


def item_total(item: Document) -> float:
    return sum(batch_total(loc.get("batches") or []) for loc in item.get("locations") or [])


def _format_quantity(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def _expiry_key(batch: dict) -> str:
    # Batches without a date are consumed last.
    return batch.get("expirationDate") or date.max.isoformat()


def _iso_date(value: Any) -> date | None:
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def summarize_item(item: Document) -> dict[str, Any]:
    return {
        "name": item.get("name"),
        "categoryId": item.get("categoryId") or None,
        "total": item_total(item),
        "locations": [
            {
                "location": loc.get("locationId"),
                "quantity": batch_total(loc.get("batches") or []),
                "expirations": sorted(
                    {b["expirationDate"] for b in loc.get("batches") or [] if b.get("expirationDate")}
                ),
            }
            for loc in item.get("locations") or []
        ],
    }


class _ItemTool(PantryTool):
    """Shared lookups for tools that work on a named product."""

    async def find_item(self, name: str) -> Document | None:
        wanted = name.strip().lower()
        matches = await self.documents.find(
            lambda doc: doc.get("type") == "item" and (doc.get("name") or "").lower() == wanted
        )
        return matches[0] if matches else None

    async def suggest(self, query: str) -> list[str]:
        items = await self.documents.find(lambda doc: doc.get("type") == "item")
        lowered = query.strip().lower()
        close = [item["name"] for item in items if lowered and lowered in (item.get("name") or "").lower()]
        return (close or [item["name"] for item in items])[:3]

    async def not_found(self, name: str) -> ToolResult:
        suggestions = await self.suggest(name)
        details = (
            [self.t("agent.details.suggestions", value=", ".join(suggestions))] if suggestions else []
        )
        return self.error(self.t("agent.errors.productNotFound", name=name), details)

    def unknown_location(self, value: Any) -> ToolResult:
        return self.error(
            self.t("agent.errors.unknownLocation", value=value),
            [self.t("agent.details.options", value=", ".join(self.catalog.locations))],
        )

    @staticmethod
    def location_entry(item: Document, location: str, create: bool = False) -> dict | None:
        for entry in item.setdefault("locations", []):
            if (entry.get("locationId") or "").lower() == location.lower():
                return entry
        if not create:
            return None
        entry = {"locationId": location, "batches": []}
        item["locations"].append(entry)
        return entry


class AddProductTool(_ItemTool):
    """Add stock, creating the product if it does not exist yet."""

    @property
    def name(self) -> str:
        return "addProduct"

    @property
    def description(self) -> str:
        return (
            "Add a product by name with quantity and location, plus optional "
            "category and expiration date. Creates the product if it is new."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Product name."},
                "quantity": {"type": "number", "description": "Quantity to add (> 0)."},
                "location": {"type": "string", "description": "Where it is stored."},
                "categoryId": {"type": "string", "description": "Optional category."},
                "expirationDate": {"type": "string", "description": "Optional ISO expiration date."},
            },
            "required": ["name", "quantity", "location"],
        }

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        name = arguments["name"]
        quantity = float(arguments["quantity"])
        if quantity <= 0:
            return self.error(self.t("agent.errors.quantityPositive"))

        location = self.catalog.resolve_location(arguments["location"])
        if location is None:
            return self.unknown_location(arguments["location"])

        expiration = normalize_date(arguments.get("expirationDate"))
        raw_category = arguments.get("categoryId")
        category = self.catalog.resolve_category(raw_category) or (
            raw_category.strip() if isinstance(raw_category, str) else ""
        )

        existing = await self.find_item(name)
        now = _now()
        if existing is None:
            item: Document = {
                "_id": f"{ITEM_PREFIX}{uuid.uuid4()}",
                "type": "item",
                "name": name,
                "categoryId": category,
                "locations": [],
                "createdAt": now,
            }
        else:
            item = existing
            if category:
                item["categoryId"] = category

        entry = self.location_entry(item, location, create=True)
        entry["batches"].append({
            "batchId": f"batch:{uuid.uuid4()}",
            "quantity": quantity,
            "expirationDate": expiration,
        })
        item["updatedAt"] = now
        saved = await self.documents.save(item)

        key = "agent.results.addExisting" if existing else "agent.results.addNew"
        return self.ok(
            self.t(key, name=saved["name"], location=location),
            {
                "name": saved["name"],
                "location": location,
                "quantity": quantity,
                "expirationDate": expiration,
            },
        )


class AdjustQuantityTool(_ItemTool):
    """Increase or consume stock at one location."""

    @property
    def name(self) -> str:
        return "adjustQuantity"

    @property
    def description(self) -> str:
        return (
            "Change the quantity of a product at a location by a delta (e.g. +2, -1). "
            "Consumption uses the batches that expire first unless a batch date is given."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Product to adjust."},
                "location": {"type": "string", "description": "Location of the stock."},
                "quantityChange": {"type": "number", "description": "Delta to apply."},
                "expirationDate": {"type": "string", "description": "Batch date to target (optional)."},
            },
            "required": ["name", "location", "quantityChange"],
        }

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        name = arguments["name"]
        delta = float(arguments["quantityChange"])
        location = self.catalog.resolve_location(arguments["location"])
        if location is None:
            return self.unknown_location(arguments["location"])

        item = await self.find_item(name)
        if item is None:
            return await self.not_found(name)

        expiration = normalize_date(arguments.get("expirationDate"))
        entry = self.location_entry(item, location, create=delta > 0)
        if entry is None:
            return self.error(self.t("agent.errors.notEnoughStock", name=item["name"], location=location))

        batches = entry["batches"]
        if delta > 0:
            target = next((b for b in batches if b.get("expirationDate") == expiration), None)
            if target is None:
                batches.append({
                    "batchId": f"batch:{uuid.uuid4()}",
                    "quantity": delta,
                    "expirationDate": expiration,
                })
            else:
                target["quantity"] = float(target.get("quantity") or 0) + delta
        elif delta < 0:
            candidates = [b for b in batches if expiration is None or b.get("expirationDate") == expiration]
            remaining = -delta
            if batch_total(candidates) < remaining:
                return self.error(self.t("agent.errors.notEnoughStock", name=item["name"], location=location))
            for batch in sorted(candidates, key=_expiry_key):
                taken = min(float(batch.get("quantity") or 0), remaining)
                batch["quantity"] = float(batch.get("quantity") or 0) - taken
                remaining -= taken
                if remaining <= 0:
                    break
            entry["batches"] = [b for b in batches if float(b.get("quantity") or 0) > 0]

        item["locations"] = [loc for loc in item["locations"] if loc.get("batches")]
        item["updatedAt"] = _now()
        await self.documents.save(item)

        quantity = batch_total(entry["batches"])
        return self.ok(
            self.t(
                "agent.results.adjusted",
                name=item["name"],
                location=location,
                quantity=_format_quantity(quantity),
            ),
            {"name": item["name"], "location": location, "quantityChange": delta, "quantity": quantity},
        )


class DeleteProductTool(_ItemTool):
    @property
    def name(self) -> str:
        return "deleteProduct"

    @property
    def description(self) -> str:
        return "Remove a product from the pantry entirely."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Exact product name."},
            },
            "required": ["name"],
        }

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        name = arguments["name"]
        item = await self.find_item(name)
        if item is None:
            return await self.not_found(name)
        await self.documents.remove(item["_id"])
        return self.ok(self.t("agent.results.deleted", name=item["name"]), {"name": item["name"]})


class GetProductsTool(_ItemTool):
    @property
    def name(self) -> str:
        return "getProducts"

    @property
    def description(self) -> str:
        return "List every product with its quantity, location and expiration dates."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        items = await self.documents.find(lambda doc: doc.get("type") == "item")
        items.sort(key=lambda item: (item.get("name") or "").lower())
        if not items:
            return self.ok(self.t("agent.results.emptyPantry"), {"count": 0, "items": []})
        return self.ok(
            self.t("agent.results.products", count=len(items)),
            {"count": len(items), "items": [summarize_item(item) for item in items]},
            [f"{item['name']}: {_format_quantity(item_total(item))}" for item in items],
        )


class ListByLocationTool(_ItemTool):
    @property
    def name(self) -> str:
        return "listByLocation"

    @property
    def description(self) -> str:
        return "List the products stored at one location."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "location": {"type": "string", "description": "Location to list."},
            },
            "required": ["location"],
        }

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        location = self.catalog.resolve_location(arguments["location"])
        if location is None:
            return self.unknown_location(arguments["location"])

        items = await self.documents.find(
            lambda doc: doc.get("type") == "item"
            and self.location_entry(doc, location) is not None
        )
        listed = []
        for item in sorted(items, key=lambda i: (i.get("name") or "").lower()):
            entry = self.location_entry(item, location)
            listed.append({"name": item["name"], "quantity": batch_total(entry["batches"])})
        return self.ok(
            self.t("agent.results.byLocation", count=len(listed), location=location),
            {"location": location, "count": len(listed), "items": listed},
            [f"{row['name']}: {_format_quantity(row['quantity'])}" for row in listed],
        )


class GetLocationsTool(PantryTool):
    @property
    def name(self) -> str:
        return "getLocations"

    @property
    def description(self) -> str:
        return "Return the available storage locations (Pantry, Fridge, Freezer, ...)."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        locations = list(self.catalog.locations)
        return self.ok(
            self.t("agent.results.locations", value=", ".join(locations)),
            {"locations": locations},
        )


class GetCategoriesTool(PantryTool):
    @property
    def name(self) -> str:
        return "getCategories"

    @property
    def description(self) -> str:
        return "Return the categories available to classify products."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        categories = list(self.catalog.categories)
        return self.ok(
            self.t("agent.results.categories", value=", ".join(categories)),
            {"categories": categories},
        )


class MoveProductTool(_ItemTool):
    """Move stock between locations, earliest-expiring batches first."""

    @property
    def name(self) -> str:
        return "moveProduct"

    @property
    def description(self) -> str:
        return (
            "Move a product from one location to another (e.g. Pantry to Fridge). "
            "Moves everything unless a quantity is given; an expiration date limits it to one batch."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Product to move."},
                "fromLocation": {"type": "string", "description": "Where it is now."},
                "toLocation": {"type": "string", "description": "Where it goes."},
                "quantity": {"type": "number", "description": "Amount to move (optional, default all)."},
                "expirationDate": {"type": "string", "description": "Batch date to move (optional)."},
            },
            "required": ["name", "fromLocation", "toLocation"],
        }

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        name = arguments["name"]
        source_location = self.catalog.resolve_location(arguments["fromLocation"])
        if source_location is None:
            return self.unknown_location(arguments["fromLocation"])
        target_location = self.catalog.resolve_location(arguments["toLocation"])
        if target_location is None:
            return self.unknown_location(arguments["toLocation"])

        item = await self.find_item(name)
        if item is None:
            return await self.not_found(name)
        if source_location == target_location:
            return self.error(self.t("agent.errors.sameLocation", name=item["name"], location=source_location))

        source = self.location_entry(item, source_location)
        if source is None or batch_total(source["batches"]) <= 0:
            return self.error(self.t("agent.errors.notInLocation", name=item["name"], location=source_location))

        expiration = normalize_date(arguments.get("expirationDate"))
        candidates = [b for b in source["batches"] if expiration is None or b.get("expirationDate") == expiration]
        available = batch_total(candidates)
        if available <= 0:
            return self.error(self.t("agent.errors.batchNotFound", date=expiration))

        requested = arguments.get("quantity")
        amount = available
        if isinstance(requested, (int, float)) and not isinstance(requested, bool) and requested > 0:
            amount = min(float(requested), available)

        target = self.location_entry(item, target_location, create=True)
        remaining = amount
        for batch in sorted(candidates, key=_expiry_key):
            if remaining <= 0:
                break
            taken = min(float(batch.get("quantity") or 0), remaining)
            if taken <= 0:
                continue
            batch["quantity"] = float(batch.get("quantity") or 0) - taken
            remaining -= taken
            _merge_batch(target["batches"], batch, taken)

        source["batches"] = [b for b in source["batches"] if float(b.get("quantity") or 0) > 0]
        item["locations"] = [loc for loc in item["locations"] if loc.get("batches")]
        item["updatedAt"] = _now()
        await self.documents.save(item)

        return self.ok(
            self.t(
                "agent.results.moved",
                quantity=_format_quantity(amount),
                name=item["name"],
                source=source_location,
                target=target_location,
            ),
            {
                "name": item["name"],
                "fromLocation": source_location,
                "toLocation": target_location,
                "quantity": amount,
                "batchExpiration": expiration,
            },
        )


def _merge_batch(batches: list[dict], moved: dict, quantity: float) -> None:
    for batch in batches:
        if (
            batch.get("expirationDate") == moved.get("expirationDate")
            and bool(batch.get("opened")) == bool(moved.get("opened"))
        ):
            batch["quantity"] = float(batch.get("quantity") or 0) + quantity
            return
    fresh = {k: v for k, v in moved.items() if k != "batchId"}
    fresh.update({"batchId": f"batch:{uuid.uuid4()}", "quantity": quantity})
    batches.append(fresh)


class GetExpiringSoonTool(_ItemTool):
    DEFAULT_DAYS = 5

    @property
    def name(self) -> str:
        return "getExpiringSoon"

    @property
    def description(self) -> str:
        return "List the batches that expire within the next few days, including ones already expired."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "days": {"type": "number", "description": "Window in days (optional, default 5)."},
            },
        }

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        days = arguments.get("days")
        if not (isinstance(days, (int, float)) and not isinstance(days, bool) and days > 0):
            days = self.DEFAULT_DAYS
        today = date.today()
        horizon = today + timedelta(days=days)

        rows = []
        for item in await self.documents.find(lambda doc: doc.get("type") == "item"):
            for loc in item.get("locations") or []:
                for batch in loc.get("batches") or []:
                    expires = _iso_date(batch.get("expirationDate"))
                    if expires is None or expires > horizon:
                        continue
                    rows.append({
                        "name": item["name"],
                        "location": loc.get("locationId"),
                        "quantity": float(batch.get("quantity") or 0),
                        "expirationDate": expires.isoformat(),
                        "expired": expires < today,
                    })
        rows.sort(key=lambda row: (row["expirationDate"], row["name"].lower()))

        shown_days = _format_quantity(days)
        count = len({row["name"] for row in rows})
        if not rows:
            summary = self.t("agent.results.expiringEmpty", days=shown_days)
        else:
            summary = self.t("agent.results.expiring", count=count, days=shown_days)
        return self.ok(
            summary,
            {"days": days, "count": count, "items": rows},
            [f"{row['name']} ({row['location']}): {row['expirationDate']}" for row in rows],
        )


class MarkOpenedTool(_ItemTool):
    """Flag one batch of a product as opened."""

    @property
    def name(self) -> str:
        return "markOpened"

    @property
    def description(self) -> str:
        return "Mark a product as opened, optionally at a given location and date."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Product to mark."},
                "location": {"type": "string", "description": "Location (optional)."},
                "openedDate": {"type": "string", "description": "ISO date it was opened (optional, default today)."},
            },
            "required": ["name"],
        }

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        name = arguments["name"]
        item = await self.find_item(name)
        if item is None:
            return await self.not_found(name)

        raw_location = arguments.get("location")
        if raw_location:
            location = self.catalog.resolve_location(raw_location)
            if location is None:
                return self.unknown_location(raw_location)
        else:
            stocked = [loc for loc in item.get("locations") or [] if loc.get("batches")]
            location = stocked[0]["locationId"] if stocked else None

        entry = self.location_entry(item, location) if location else None
        if entry is None or not entry.get("batches"):
            return self.error(self.t("agent.errors.notInLocation", name=item["name"], location=location or "-"))

        ordered = sorted(entry["batches"], key=_expiry_key)
        batch = next((b for b in ordered if not b.get("opened")), ordered[0])
        opened_on = normalize_date(arguments.get("openedDate")) or date.today().isoformat()
        batch["opened"] = True
        batch["openedAt"] = opened_on
        item["updatedAt"] = _now()
        await self.documents.save(item)

        return self.ok(
            self.t("agent.results.opened", name=item["name"], location=location),
            {
                "name": item["name"],
                "location": location,
                "openedDate": opened_on,
                "expirationDate": batch.get("expirationDate"),
            },
        )

"""
POS Sync Service: pull the POS catalog, taxonomy and orders into the local store.

Remote items that share an item group become one local Product with one
variant per item; ungrouped items become single-variant Products. Each remote
record is upserted and committed on its own: a failing record is logged,
counted in the report and skipped, and the job carries on.

Identity resolution for an incoming group or item:
    group id -> external item id -> SKU -> exact name -> create
"""
import logging
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db_models import Category, ItemGroup, ModifierGroup, Order, Product, new_id, touch
from app.services.pos_client import PosApiError, PosClient, pos_client
from app.services.product_service import strip_from_carts

logger = logging.getLogger(__name__)

RESOURCES = ("categories", "itemGroups", "modifierGroups", "items", "orders")


def _counter() -> Dict[str, int]:
    return {"created": 0, "updated": 0, "errors": 0}


def new_report(resources: Iterable[str] = RESOURCES) -> Dict[str, Any]:
    report: Dict[str, Any] = {name: _counter() for name in resources}
    report["errors"] = []
    return report


def minor_to_major(value) -> float:
    try:
        return round(float(value or 0) / 100, 2)
    except (TypeError, ValueError):
        return 0.0


def _elements(record: Optional[dict], key: str) -> List[dict]:
    """Expanded POS relations arrive as `{"elements": [...]}` (or a bare list)."""
    if not record:
        return []
    value = record.get(key)
    if isinstance(value, dict):
        return value.get("elements") or []
    if isinstance(value, list):
        return value
    return []


def read_variant_attributes(item: dict) -> Tuple[str, str]:
    """Return (size, flavour) from item attributes, falling back to the item name."""
    size, flavour = "", ""
    for attr in _elements(item, "attributes"):
        attr_name = (attr.get("name") or "").lower()
        value = (attr.get("value") or "").strip()
        if "flavour" in attr_name or "flavor" in attr_name:
            flavour = value
        elif "size" in attr_name or "capacity" in attr_name:
            size = value
    name = (item.get("name") or "").strip()
    return size or name, flavour or name


def item_to_variant(item: dict) -> Dict[str, Any]:
    size, flavour = read_variant_attributes(item)
    stock = item.get("itemStock") or {}
    quantity = stock.get("quantity", item.get("stockCount", 0)) or 0
    return {
        "size": size,
        "flavour": flavour,
        "price": minor_to_major(item.get("price")),
        "quantity": max(0, int(quantity)),
        "external_id": item.get("id"),
        "sku": item.get("sku") or item.get("code") or "",
        "show_on_pos": not item.get("hidden", False),
        "image": None,
    }


def _item_image_urls(item: dict) -> List[str]:
    urls = []
    for image in item.get("images") or []:
        url = image.get("url") if isinstance(image, dict) else image
        if url:
            urls.append(url)
    return urls


def merge_images(existing: List[dict], urls: Iterable[str]) -> List[dict]:
    """Append new image URLs to the existing list, deduplicated by URL."""
    merged = list(existing or [])
    seen = {image.get("url") for image in merged}
    for url in urls:
        if url not in seen:
            merged.append({"url": url, "public_id": None})
            seen.add(url)
    return merged


class CatalogIndex:
    """
    In-memory lookup of local products by every identity key the sync uses.

    Built once per run and kept current as products are created, updated or
    deleted, so each remote record resolves without extra queries.
    """

    def __init__(self, products: Iterable[Product] = ()):
        self.by_group: Dict[str, List[Product]] = {}
        self.by_external: Dict[str, Product] = {}
        self.by_sku: Dict[str, Product] = {}
        self.by_name: Dict[str, Product] = {}
        for product in products:
            self.add(product)

    @classmethod
    async def load(cls, session: AsyncSession) -> "CatalogIndex":
        result = await session.execute(select(Product).order_by(Product.created_at, Product.id))
        return cls(result.scalars().all())

    def add(self, product: Product):
        if product.external_group_id:
            group = self.by_group.setdefault(product.external_group_id, [])
            if product not in group:
                group.append(product)
        if product.external_id:
            self.by_external.setdefault(product.external_id, product)
        for variant in product.variants or []:
            if variant.get("external_id"):
                self.by_external.setdefault(variant["external_id"], product)
            if variant.get("sku"):
                self.by_sku.setdefault(variant["sku"], product)
        if product.product_id:
            self.by_sku.setdefault(product.product_id, product)
        if product.name:
            self.by_name.setdefault(product.name, product)

    def remove(self, product: Product):
        for group_id in list(self.by_group):
            self.by_group[group_id] = [p for p in self.by_group[group_id] if p is not product]
            if not self.by_group[group_id]:
                del self.by_group[group_id]
        for mapping in (self.by_external, self.by_sku, self.by_name):
            for key in [k for k, p in mapping.items() if p is product]:
                del mapping[key]

    def refresh(self, product: Product):
        self.remove(product)
        self.add(product)

    def id_lookup(self) -> Tuple[Dict[str, str], Dict[str, str]]:
        """Plain {external_id: product.id} and {sku: product.id} maps, safe across rollbacks."""
        return (
            {key: product.id for key, product in self.by_external.items()},
            {key: product.id for key, product in self.by_sku.items()},
        )

    def product_id_taken(self, product_id: str) -> bool:
        return product_id in self.by_sku

    def resolve(
        self,
        group_id: Optional[str] = None,
        external_ids: Iterable[str] = (),
        skus: Iterable[str] = (),
        name: Optional[str] = None,
        claimed: Optional[set] = None,
    ) -> Tuple[Optional[Product], Optional[str]]:
        """Return (product, matched_key) following the identity preference order."""
        claimed = claimed or set()

        def free(product):
            return product is not None and product.id not in claimed

        if group_id:
            for product in self.by_group.get(group_id, []):
                if free(product):
                    return product, "group"
        for external_id in external_ids:
            product = self.by_external.get(external_id) if external_id else None
            if free(product):
                return product, "external_id"
        for sku in skus:
            product = self.by_sku.get(sku) if sku else None
            if free(product):
                return product, "sku"
        if name:
            product = self.by_name.get(name)
            if free(product):
                return product, "name"
        return None, None


def _merge_variant_local_fields(product: Product, variants: List[dict]) -> List[dict]:
    """Carry over local-only variant fields (image) for variants matched by external id."""
    previous = {v.get("external_id"): v for v in (product.variants or []) if v.get("external_id")}
    for variant in variants:
        old = previous.get(variant["external_id"])
        if old and old.get("image"):
            variant["image"] = old["image"]
    return variants


def _apply_remote(
    product: Product,
    items: List[dict],
    variants: List[dict],
    name: str,
    group_id: Optional[str],
):
    first = items[0]
    categories = [c.get("name") for c in _elements(first, "categories") if c.get("name")]
    stock_count = sum(v["quantity"] for v in variants)

    product.name = name
    product.variants = variants
    product.price = min(v["price"] for v in variants)
    product.stock_count = stock_count
    product.in_stock = stock_count > 0
    product.flavour = variants[0]["flavour"]
    product.show_on_pos = not first.get("hidden", False)
    product.modifier_groups = _elements(first, "modifierGroups")
    product.tax_rates = _elements(first, "taxRates")
    if categories:
        product.categories = categories
    if not product.description:
        product.description = first.get("description") or name

    urls = [url for item in items for url in _item_image_urls(item)]
    product.images = merge_images(product.images, urls)

    if group_id:
        product.external_group_id = group_id
        product.external_id = None
    else:
        product.external_id = first.get("id")
        product.external_group_id = None

    touch(product, "variants", "images", "categories", "modifier_groups", "tax_rates")


def _new_product_id(index: CatalogIndex, items: List[dict], group_id: Optional[str]) -> str:
    first = items[0]
    base = group_id or first.get("sku") or first.get("id") or new_id()
    if not index.product_id_taken(base):
        return base
    return f"{base}-{first.get('id') or new_id()}"


async def upsert_catalog_entry(
    session: AsyncSession,
    index: CatalogIndex,
    items: List[dict],
    group_id: Optional[str] = None,
    group_name: Optional[str] = None,
    claimed: Optional[set] = None,
) -> str:
    """Upsert one remote group (or one ungrouped item) as a local Product."""
    claimed = claimed if claimed is not None else set()
    first = items[0]
    name = (group_name or first.get("name") or "").strip() or "Unnamed item"
    variants = [item_to_variant(item) for item in items]

    # Products sharing the group id are duplicates of one another
    if group_id:
        duplicates = [p for p in index.by_group.get(group_id, []) if p.id not in claimed][1:]
        for duplicate in duplicates:
            logger.info(f"Deleting duplicate product {duplicate.id} for item group {group_id}")
            index.remove(duplicate)
            await session.delete(duplicate)
        if duplicates:
            await strip_from_carts(session, [d.id for d in duplicates])

    product, matched_by = index.resolve(
        group_id=group_id,
        external_ids=[v["external_id"] for v in variants],
        skus=[v["sku"] for v in variants],
        name=name,
        claimed=claimed,
    )
    if matched_by == "name":
        logger.warning(f"POS record '{name}' matched local product {product.id} by name only")

    if product is None:
        product = Product(
            id=new_id(),
            product_id=_new_product_id(index, items, group_id),
            name=name,
            description="",
            categories=[],
            images=[],
            other_flavours=[],
            bestseller=False,
            sweetness_level=5,
            mint_level=0,
            price=0.0,
            stock_count=0,
        )
        session.add(product)
        action = "created"
    else:
        variants = _merge_variant_local_fields(product, variants)
        action = "updated"

    _apply_remote(product, items, variants, name, group_id)
    await session.flush()
    index.refresh(product)
    claimed.add(product.id)
    return action


async def upsert_category(session: AsyncSession, remote: dict) -> str:
    external_id = remote.get("id")
    name = (remote.get("name") or "").strip() or "Unnamed"

    category = None
    if external_id:
        result = await session.execute(select(Category).where(Category.category_id == external_id))
        category = result.scalars().first()
    if category is None:
        result = await session.execute(select(Category).where(Category.name == name))
        category = result.scalars().first()

    if category is None:
        session.add(Category(name=name, category_id=external_id))
        return "created"

    category.name = name
    if external_id:
        category.category_id = external_id
    return "updated"


async def upsert_item_group(session: AsyncSession, remote: dict) -> str:
    external_id = remote["id"]
    attributes = [{"id": a.get("id"), "name": a.get("name")} for a in _elements(remote, "attributes")]
    result = await session.execute(select(ItemGroup).where(ItemGroup.external_id == external_id))
    group = result.scalar_one_or_none()
    if group is None:
        session.add(ItemGroup(external_id=external_id, name=remote.get("name") or "", attributes=attributes))
        return "created"
    group.name = remote.get("name") or group.name
    group.attributes = attributes
    touch(group, "attributes")
    return "updated"


async def upsert_modifier_group(session: AsyncSession, remote: dict) -> str:
    external_id = remote["id"]
    modifiers = [
        {"id": m.get("id"), "name": m.get("name"), "price": minor_to_major(m.get("price"))}
        for m in _elements(remote, "modifiers")
    ]
    result = await session.execute(select(ModifierGroup).where(ModifierGroup.external_id == external_id))
    group = result.scalar_one_or_none()
    if group is None:
        session.add(ModifierGroup(external_id=external_id, name=remote.get("name") or "", modifiers=modifiers))
        return "created"
    group.name = remote.get("name") or group.name
    group.modifiers = modifiers
    touch(group, "modifiers")
    return "updated"


def _order_phone(remote: dict) -> str:
    if remote.get("phone"):
        return remote["phone"]
    for customer in _elements(remote, "customers"):
        for phone in _elements(customer, "phoneNumbers"):
            if phone.get("phoneNumber"):
                return phone["phoneNumber"]
    return "N/A"


def _line_quantity(line: dict) -> int:
    # unitQty is expressed in thousandths of a unit
    if line.get("unitQty"):
        return max(1, round(int(line["unitQty"]) / 1000))
    return max(1, int(line.get("quantity") or 1))


async def upsert_order(
    session: AsyncSession,
    lookup: Tuple[Dict[str, str], Dict[str, str]],
    remote: dict,
) -> str:
    """Mirror a POS order. Remote orders never change local stock."""
    by_external, by_sku = lookup
    result = await session.execute(select(Order).where(Order.external_id == remote["id"]))
    order = result.scalars().first()

    # Line ids and fulfillment status are local state; keep them across re-syncs
    previous = {}
    existing_lines = order.items if order is not None else None
    for line in existing_lines or []:
        key = line.get("external_line_id") or line.get("external_item_id")
        if key and key not in previous:
            previous[key] = line

    items = []
    for line in _elements(remote, "lineItems"):
        item_id = (line.get("item") or {}).get("id") or line.get("itemId")
        sku = line.get("itemCode") or line.get("sku")
        product_id = by_external.get(item_id) if item_id else None
        if product_id is None and sku:
            product_id = by_sku.get(sku)
        line_key = line.get("id") or item_id
        known = previous.pop(line_key, None) if line_key else None
        items.append({
            "id": known["id"] if known else new_id(),
            "external_line_id": line.get("id"),
            "external_item_id": item_id,
            "product_id": product_id,
            "name": line.get("name") or "Unknown",
            "variant_size": line.get("variant") or "default",
            "image": "",
            "status": known.get("status", "Pending") if known else "Pending",
            "quantity": _line_quantity(line),
            "price": minor_to_major(line.get("price")),
        })

    address = remote.get("address") or {}
    address = {
        "street": address.get("street") or address.get("address1") or "N/A",
        "city": address.get("city") or "N/A",
        "state": address.get("state") or "N/A",
        "zip": address.get("zip") or address.get("postalCode") or "N/A",
        "country": address.get("country") or "N/A",
    }
    amount = minor_to_major(remote.get("total", remote.get("amount")))
    paid = bool(_elements(remote, "payments")) or remote.get("paymentState") == "PAID"

    if order is None:
        session.add(Order(
            external_id=remote["id"],
            phone=_order_phone(remote),
            items=items,
            amount=amount,
            address=address,
            status="Pending",
            payment_method="Clover",
            payment=paid,
        ))
        return "created"

    order.phone = _order_phone(remote)
    order.items = items
    order.amount = amount
    order.address = address
    order.payment = paid
    touch(order, "items", "address")
    return "updated"


async def _run_upserts(
    session: AsyncSession,
    report: Dict[str, Any],
    resource: str,
    records: Iterable,
    upsert,
    describe,
):
    """Apply `upsert` per record, committing each and recording failures."""
    for record in records:
        try:
            action = await upsert(record)
            await session.commit()
            report[resource][action] += 1
        except Exception as e:
            await session.rollback()
            record_id, record_name = describe(record)
            logger.error(f"POS sync failed for {resource} {record_id} ({record_name}): {e}")
            report[resource]["errors"] += 1
            report["errors"].append({"id": record_id, "name": record_name, "type": resource, "error": str(e)})


async def _fetch(report: Dict[str, Any], resource: str, fetcher) -> List[dict]:
    try:
        return await fetcher()
    except PosApiError as e:
        logger.error(f"Failed to fetch {resource} from POS: {e}")
        report["errors"].append({"id": None, "name": resource, "type": "fetch", "error": str(e)})
        return []


def group_items(items: List[dict]) -> Tuple["OrderedDict[str, List[dict]]", List[dict]]:
    """Split remote items into {group_id: [items]} and ungrouped items, keeping POS order."""
    groups: "OrderedDict[str, List[dict]]" = OrderedDict()
    standalone = []
    for item in items:
        group_id = (item.get("itemGroup") or {}).get("id")
        if group_id:
            groups.setdefault(group_id, []).append(item)
        else:
            standalone.append(item)
    return groups, standalone


async def sync_items(
    session: AsyncSession,
    client: PosClient,
    report: Dict[str, Any],
    group_names: Optional[Dict[str, str]] = None,
):
    remote_items = await _fetch(report, "items", client.get_products)
    groups, standalone = group_items(remote_items)
    group_names = dict(group_names or {})
    for group_id, members in groups.items():
        embedded = (members[0].get("itemGroup") or {}).get("name")
        if embedded and group_id not in group_names:
            group_names[group_id] = embedded

    index = await CatalogIndex.load(session)
    claimed: set = set()
    entries = [(gid, members) for gid, members in groups.items()] + [(None, [item]) for item in standalone]

    for group_id, members in entries:
        try:
            action = await upsert_catalog_entry(
                session, index, members, group_id=group_id,
                group_name=group_names.get(group_id) if group_id else None, claimed=claimed,
            )
            await session.commit()
            report["items"][action] += 1
        except Exception as e:
            await session.rollback()
            record_id = group_id or members[0].get("id")
            name = members[0].get("name")
            logger.error(f"POS sync failed for {'group' if group_id else 'item'} {record_id} ({name}): {e}")
            report["items"]["errors"] += 1
            report["errors"].append({
                "id": record_id, "name": name,
                "type": "group" if group_id else "standalone", "error": str(e),
            })
            # Rollback expires loaded rows; start from a fresh snapshot
            index = await CatalogIndex.load(session)

    logger.info(
        f"POS item sync: {len(groups)} groups, {len(standalone)} standalone, "
        f"created={report['items']['created']} updated={report['items']['updated']} "
        f"errors={report['items']['errors']}"
    )


async def sync_from_pos(
    session: AsyncSession,
    client: Optional[PosClient] = None,
    mode: str = "both",
    resources: Iterable[str] = RESOURCES,
) -> Dict[str, Any]:
    """
    Run a one-shot reconciliation with the POS.

    Args:
        session: database session
        client: POS client (defaults to the configured singleton)
        mode: 'pull', 'push' or 'both'
        resources: subset of RESOURCES to pull

    Returns:
        Report with per-resource {created, updated, errors}, the list of
        record errors and, unless mode is 'pull', a `push` section.
    """
    client = client or pos_client
    resources = tuple(resources)
    report = new_report(resources)
    logger.info(f"POS sync started: mode={mode}", extra={"sync_mode": mode})

    if mode in ("pull", "both"):
        if "categories" in resources:
            categories = await _fetch(report, "categories", client.get_categories)
            await _run_upserts(
                session, report, "categories", categories,
                lambda c: upsert_category(session, c),
                lambda c: (c.get("id"), c.get("name")),
            )

        group_names: Dict[str, str] = {}
        if "itemGroups" in resources or "items" in resources:
            remote_groups = await _fetch(report, "itemGroups", client.get_item_groups)
            group_names = {g["id"]: g.get("name") for g in remote_groups if g.get("id") and g.get("name")}
            if "itemGroups" in resources:
                await _run_upserts(
                    session, report, "itemGroups", remote_groups,
                    lambda g: upsert_item_group(session, g),
                    lambda g: (g.get("id"), g.get("name")),
                )

        if "modifierGroups" in resources:
            modifier_groups = await _fetch(report, "modifierGroups", client.get_modifier_groups)
            await _run_upserts(
                session, report, "modifierGroups", modifier_groups,
                lambda g: upsert_modifier_group(session, g),
                lambda g: (g.get("id"), g.get("name")),
            )

        if "items" in resources:
            await sync_items(session, client, report, group_names)

        if "orders" in resources:
            orders = await _fetch(report, "orders", client.get_orders)
            lookup = (await CatalogIndex.load(session)).id_lookup()
            await _run_upserts(
                session, report, "orders", orders,
                lambda o: upsert_order(session, lookup, o),
                lambda o: (o.get("id"), o.get("title") or o.get("id")),
            )

    if mode in ("push", "both"):
        from app.services.pos_push_service import push_all
        report["push"] = await push_all(session, client)

    logger.info(f"POS sync finished: mode={mode}, errors={len(report['errors'])}", extra={"sync_mode": mode})
    return report

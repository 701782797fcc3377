"""
POS Push Service: mirror local catalog edits out to the POS, best-effort.

A product with more than one variant (or one already linked to an item
group) is pushed as a POS item group with one item per variant; anything
else is a single standalone item. Remote IDs are written back onto the
local record so later pushes update instead of duplicating.

The POS cannot rename an item once it belongs to a group, so grouped
variants only ever receive price, SKU, visibility and group-link updates.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db_models import Category, Product, touch
from app.services.pos_client import PosApiError, PosClient, pos_client

logger = logging.getLogger(__name__)


def to_minor(amount) -> int:
    return int(round(float(amount or 0) * 100))


def variant_item_name(product: Product, variant: dict) -> str:
    label = (variant.get("size") or variant.get("flavour") or "").strip()
    if label and label != product.name:
        return f"{product.name} - {label}"
    return product.name


def build_item_payload(
    product: Product,
    variant: Optional[dict] = None,
    group_id: Optional[str] = None,
    grouped_update: bool = False,
) -> Dict[str, Any]:
    """Build the POS item body for a product or one of its variants."""
    source = variant or {}
    show_on_pos = source.get("show_on_pos", product.show_on_pos)
    payload: Dict[str, Any] = {
        "price": to_minor(source.get("price", product.price)),
        "sku": source.get("sku") or product.product_id,
        "hidden": not (show_on_pos if show_on_pos is not None else True),
    }
    if not grouped_update:
        payload["name"] = variant_item_name(product, variant) if variant else product.name
    if group_id:
        payload["itemGroup"] = {"id": group_id}
    return payload


def _returned_id(created: Optional[dict]) -> Optional[str]:
    if not created:
        return None
    return created.get("id") or created.get("itemId")


async def _push_stock(client: PosClient, item_id: str, quantity: int):
    try:
        await client.update_inventory(item_id, max(0, int(quantity or 0)))
    except PosApiError as e:
        logger.warning(f"Stock push failed for POS item {item_id}: {e}")


async def _create_item(client: PosClient, payload: Dict[str, Any]) -> str:
    item_id = _returned_id(await client.create_item(payload))
    if not item_id:
        raise PosApiError(f"POS did not return an id for item '{payload.get('name')}'")
    return item_id


async def _push_standalone(client: PosClient, product: Product, variants: List[dict]) -> str:
    variant = variants[0] if variants else None
    payload = build_item_payload(product, variant)
    if variant:
        # A single variant is sold under the product's own name
        payload["name"] = product.name
    action = None

    if product.external_id:
        try:
            await client.update_item(product.external_id, payload)
            action = "updated"
        except PosApiError as e:
            if not e.not_found:
                raise
            logger.warning(f"POS item {product.external_id} for '{product.name}' no longer exists, recreating")
            product.external_id = None

    if not product.external_id:
        product.external_id = await _create_item(client, payload)
        action = "created"

    if variant is not None:
        variant["external_id"] = product.external_id
    quantity = variant.get("quantity") if variant else product.stock_count
    await _push_stock(client, product.external_id, quantity)
    return action


async def _push_group_variants(client: PosClient, product: Product, variants: List[dict]):
    """Update linked variant items and create the missing ones inside the product's group."""
    group_id = product.external_group_id
    for variant in variants:
        if variant.get("external_id"):
            # Always restate the group link so an item whose attach failed earlier joins it
            payload = build_item_payload(product, variant, group_id=group_id, grouped_update=True)
            await client.update_item(variant["external_id"], payload)
        else:
            variant["external_id"] = await _create_item(
                client, build_item_payload(product, variant, group_id=group_id)
            )
        await _push_stock(client, variant["external_id"], variant.get("quantity"))


async def _update_group(client: PosClient, product: Product, variants: List[dict]) -> str:
    await client.update_item_group(product.external_group_id, product.name)
    await _push_group_variants(client, product, variants)
    # Left over from an interrupted promotion; the item now lives in the group
    product.external_id = None
    return "updated"


async def _create_group(client: PosClient, product: Product, variants: List[dict]) -> str:
    """Create the item group; a prior standalone item becomes the first variant."""
    prior_item_id = product.external_id
    had_remote = bool(prior_item_id) or any(v.get("external_id") for v in variants)

    group_id = _returned_id(await client.create_item_group(product.name))
    if not group_id:
        raise PosApiError(f"POS did not return an id for item group '{product.name}'")
    product.external_group_id = group_id

    if prior_item_id and variants and not variants[0].get("external_id"):
        variants[0]["external_id"] = prior_item_id

    await _push_group_variants(client, product, variants)
    product.external_id = None
    return "updated" if had_remote else "created"


async def _category_ids(session: AsyncSession, names: List[str]) -> List[str]:
    if not names:
        return []
    result = await session.execute(select(Category.category_id).where(Category.name.in_(names)))
    return [category_id for category_id in result.scalars().all() if category_id]


async def sync_item_categories(client: PosClient, item_id: str, target_ids: List[str]) -> Dict[str, int]:
    """Add and remove POS category links so the item sits in exactly `target_ids`."""
    item = await client.get_item(item_id) or {}
    current = [c.get("id") for c in (item.get("categories") or {}).get("elements", []) if c.get("id")]

    to_add = [c for c in target_ids if c not in current]
    to_remove = [c for c in current if c not in target_ids]
    for category_id in to_add:
        await client.add_item_to_category(item_id, category_id)
    for category_id in to_remove:
        await client.remove_item_from_category(item_id, category_id)
    return {"added": len(to_add), "removed": len(to_remove)}


async def _push_categories(session: AsyncSession, client: PosClient, product: Product, variants: List[dict]):
    target_ids = await _category_ids(session, list(product.categories or []))
    item_ids = [product.external_id] + [v.get("external_id") for v in variants]
    for item_id in dict.fromkeys(i for i in item_ids if i):
        try:
            await sync_item_categories(client, item_id, target_ids)
        except PosApiError as e:
            logger.warning(f"Category sync failed for POS item {item_id}: {e}")


async def push_product(
    session: AsyncSession,
    product: Product,
    client: Optional[PosClient] = None,
    with_categories: bool = False,
) -> str:
    """
    Mirror one product to the POS and persist the returned remote IDs.

    With `with_categories`, the POS items' category links are also brought
    in line with the product's local categories (used by the full push).

    Returns:
        'created', 'updated', 'skipped' (POS not configured) or 'error'.
        Never raises for POS failures.
    """
    client = client or pos_client
    if not client.is_configured():
        return "skipped"

    product_pk = product.id
    variants = [dict(v) for v in (product.variants or [])]
    action = "error"
    try:
        if product.external_group_id:
            action = await _update_group(client, product, variants)
        elif len(variants) > 1:
            action = await _create_group(client, product, variants)
        else:
            action = await _push_standalone(client, product, variants)
        logger.info(f"Pushed product '{product.name}' to POS: {action}", extra={"product_id": product.id})
        if with_categories:
            await _push_categories(session, client, product, variants)
    except Exception as e:
        logger.error(f"POS push failed for product '{product.name}' ({product.id}): {e}")
        action = "error"

    # Keep any remote IDs obtained before a failure so the next push does not duplicate
    product.variants = variants
    touch(product, "variants")
    try:
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.error(f"Could not save POS ids for product {product_pk}: {e}")
        return "error"
    return action


async def push_all(session: AsyncSession, client: Optional[PosClient] = None) -> Dict[str, int]:
    """Push every local product; returns {created, updated, errors}."""
    client = client or pos_client
    report = {"created": 0, "updated": 0, "errors": 0}
    result = await session.execute(select(Product.id).order_by(Product.created_at, Product.id))
    for product_id in result.scalars().all():
        product = await session.get(Product, product_id)
        if product is None:
            continue
        action = await push_product(session, product, client, with_categories=True)
        if action == "error":
            report["errors"] += 1
        elif action in report:
            report[action] += 1
    logger.info(f"POS push finished: {report}")
    return report


async def delete_remote_product(product: Product, client: Optional[PosClient] = None):
    """Remove a product's POS items, best-effort."""
    client = client or pos_client
    if not client.is_configured():
        return
    item_ids = [product.external_id] + [v.get("external_id") for v in (product.variants or [])]
    for item_id in dict.fromkeys(i for i in item_ids if i):
        try:
            await client.delete_item(item_id)
        except PosApiError as e:
            logger.warning(f"Failed to delete POS item {item_id} for '{product.name}': {e}")

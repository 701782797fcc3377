import logging

import pytest
from sqlalchemy import func, select

from app.models.db_models import Cart, Category, ItemGroup, ModifierGroup, Order, Product
from app.services import order_service
from app.services.pos_client import PosApiError
from app.services.pos_sync_service import (
    CatalogIndex,
    item_to_variant,
    merge_images,
    read_variant_attributes,
    sync_from_pos,
)


class FakePos:
    """In-memory stand-in for the POS client's pull API."""

    def __init__(self, items=(), categories=(), item_groups=(), modifier_groups=(), orders=()):
        self.items = list(items)
        self.categories = list(categories)
        self.item_groups = list(item_groups)
        self.modifier_groups = list(modifier_groups)
        self.orders = list(orders)

    def is_configured(self):
        return True

    async def get_products(self):
        return self.items

    async def get_categories(self):
        return self.categories

    async def get_item_groups(self):
        return self.item_groups

    async def get_modifier_groups(self):
        return self.modifier_groups

    async def get_orders(self):
        return self.orders


def remote_item(item_id, name, price, quantity, sku=None, group=None, size=None, **extra):
    item = {
        "id": item_id,
        "name": name,
        "price": price,
        "sku": sku or f"SKU-{item_id}",
        "itemStock": {"quantity": quantity},
        "hidden": False,
    }
    if group:
        item["itemGroup"] = {"id": group}
    if size:
        item["attributes"] = {"elements": [{"name": "Size", "value": size}]}
    item.update(extra)
    return item


async def count_products(session):
    return (await session.execute(select(func.count()).select_from(Product))).scalar_one()


def test_read_variant_attributes_falls_back_to_name():
    assert read_variant_attributes({"name": "Cola"}) == ("Cola", "Cola")
    item = {
        "name": "Cola 1L",
        "attributes": {"elements": [{"name": "Capacity", "value": "1L"}, {"name": "Flavor", "value": "Cherry"}]},
    }
    assert read_variant_attributes(item) == ("1L", "Cherry")


def test_item_to_variant_converts_minor_units_and_visibility():
    variant = item_to_variant(remote_item("I1", "Mint", 1299, 4, sku="MINT", hidden=True))
    assert variant["price"] == 12.99
    assert variant["quantity"] == 4
    assert variant["external_id"] == "I1"
    assert variant["sku"] == "MINT"
    assert variant["show_on_pos"] is False


def test_merge_images_deduplicates_by_url():
    existing = [{"url": "a.png", "public_id": "p1"}]
    merged = merge_images(existing, ["a.png", "b.png", "b.png"])
    assert [i["url"] for i in merged] == ["a.png", "b.png"]
    assert merged[0]["public_id"] == "p1"


@pytest.mark.asyncio
async def test_group_becomes_one_product_with_min_price_and_summed_stock(session):
    client = FakePos(
        items=[
            remote_item("I1", "Mango Ice 50ml", 500, 3, group="G1", size="50ml"),
            remote_item("I2", "Mango Ice 100ml", 700, 4, group="G1", size="100ml"),
        ],
        item_groups=[{"id": "G1", "name": "Mango Ice"}],
    )

    report = await sync_from_pos(session, client=client, mode="pull")

    products = (await session.execute(select(Product))).scalars().all()
    assert len(products) == 1
    product = products[0]
    assert product.name == "Mango Ice"
    assert product.price == 5.0
    assert product.stock_count == 7
    assert product.in_stock is True
    assert product.external_group_id == "G1"
    assert product.external_id is None
    assert [v["size"] for v in product.variants] == ["50ml", "100ml"]
    assert [v["external_id"] for v in product.variants] == ["I1", "I2"]
    assert report["items"] == {"created": 1, "updated": 0, "errors": 0}
    assert report["itemGroups"]["created"] == 1


@pytest.mark.asyncio
async def test_rerunning_pull_creates_no_duplicates(session):
    client = FakePos(items=[
        remote_item("I1", "Berry 50ml", 500, 3, group="G1", size="50ml"),
        remote_item("I2", "Berry 100ml", 700, 1, group="G1", size="100ml"),
        remote_item("I3", "Lighter", 250, 9),
    ])

    await sync_from_pos(session, client=client, mode="pull", resources=("items",))
    client.items[2]["itemStock"] = {"quantity": 2}
    report = await sync_from_pos(session, client=client, mode="pull", resources=("items",))

    assert await count_products(session) == 2
    assert report["items"] == {"created": 0, "updated": 2, "errors": 0}
    lighter = (await session.execute(select(Product).where(Product.external_id == "I3"))).scalar_one()
    assert lighter.stock_count == 2


@pytest.mark.asyncio
async def test_standalone_item_matches_existing_product_by_sku(session, make_product):
    local = await make_product(product_id="LOCAL-SKU", name="Old Name", bestseller=True)
    client = FakePos(items=[remote_item("I9", "New Name", 1500, 5, sku="LOCAL-SKU")])

    report = await sync_from_pos(session, client=client, mode="pull", resources=("items",))

    assert report["items"]["updated"] == 1
    assert await count_products(session) == 1
    await session.refresh(local)
    assert local.external_id == "I9"
    assert local.name == "New Name"
    assert local.price == 15.0
    assert local.bestseller is True


@pytest.mark.asyncio
async def test_name_only_match_is_logged(session, make_product, caplog):
    await make_product(product_id="P-1", name="Classic Pouch")
    client = FakePos(items=[remote_item("I5", "Classic Pouch", 900, 2, sku="OTHER")])

    with caplog.at_level(logging.WARNING, logger="app.services.pos_sync_service"):
        await sync_from_pos(session, client=client, mode="pull", resources=("items",))

    assert await count_products(session) == 1
    assert "matched local product" in caplog.text


@pytest.mark.asyncio
async def test_products_sharing_a_group_are_collapsed(session, make_product):
    await make_product(product_id="A", name="Dup", external_group_id="G7")
    await make_product(product_id="B", name="Dup", external_group_id="G7")
    client = FakePos(items=[
        remote_item("I1", "Dup S", 100, 1, group="G7", size="S"),
        remote_item("I2", "Dup L", 200, 1, group="G7", size="L"),
    ])

    await sync_from_pos(session, client=client, mode="pull", resources=("items",))

    assert await count_products(session) == 1


@pytest.mark.asyncio
async def test_one_remote_record_cannot_claim_two_products(session):
    client = FakePos(items=[
        remote_item("I1", "Same Name", 100, 1, sku="S1"),
        remote_item("I2", "Same Name", 200, 1, sku="S2"),
    ])

    await sync_from_pos(session, client=client, mode="pull", resources=("items",))

    assert await count_products(session) == 2


@pytest.mark.asyncio
async def test_failing_record_is_reported_and_skipped(session):
    client = FakePos(items=[
        remote_item("BAD", "Broken", 100, "lots"),
        remote_item("OK", "Fine", 100, 1),
    ])

    report = await sync_from_pos(session, client=client, mode="pull", resources=("items",))

    assert report["items"] == {"created": 1, "updated": 0, "errors": 1}
    assert report["errors"][0]["id"] == "BAD"
    assert report["errors"][0]["type"] == "standalone"
    assert await count_products(session) == 1


@pytest.mark.asyncio
async def test_fetch_failure_is_recorded(session):
    client = FakePos()

    async def failing():
        raise PosApiError("POS API error 500", status_code=500)

    client.get_products = failing
    report = await sync_from_pos(session, client=client, mode="pull", resources=("items",))

    assert report["items"]["errors"] == 0
    assert report["errors"][0]["type"] == "fetch"


@pytest.mark.asyncio
async def test_categories_and_modifier_groups_are_upserted(session):
    client = FakePos(
        categories=[{"id": "C1", "name": "Disposables"}],
        modifier_groups=[{"id": "M1", "name": "Extras", "modifiers": {"elements": [{"id": "x", "name": "Ice", "price": 50}]}}],
    )
    await sync_from_pos(session, client=client, mode="pull", resources=("categories", "modifierGroups"))

    client.categories = [{"id": "C1", "name": "Disposable Vapes"}]
    report = await sync_from_pos(session, client=client, mode="pull", resources=("categories",))

    categories = (await session.execute(select(Category))).scalars().all()
    assert [c.name for c in categories] == ["Disposable Vapes"]
    assert report["categories"]["updated"] == 1
    group = (await session.execute(select(ModifierGroup))).scalar_one()
    assert group.modifiers == [{"id": "x", "name": "Ice", "price": 0.5}]


@pytest.mark.asyncio
async def test_remote_orders_are_mirrored_without_touching_stock(session, make_product):
    product = await make_product(product_id="P-ORD", external_id="I1", stock_count=10)
    remote_order = {
        "id": "O1",
        "total": 2500,
        "lineItems": {"elements": [{"item": {"id": "I1"}, "name": "Thing", "price": 1250, "unitQty": 2000}]},
        "customers": {"elements": [{"phoneNumbers": {"elements": [{"phoneNumber": "555-0100"}]}}]},
        "payments": {"elements": [{"id": "pay"}]},
    }
    client = FakePos(orders=[remote_order])

    await sync_from_pos(session, client=client, mode="pull", resources=("orders",))
    report = await sync_from_pos(session, client=client, mode="pull", resources=("orders",))

    orders = (await session.execute(select(Order))).scalars().all()
    assert len(orders) == 1
    order = orders[0]
    assert report["orders"]["updated"] == 1
    assert order.payment_method == "Clover"
    assert order.status == "Pending"
    assert order.payment is True
    assert order.amount == 25.0
    assert order.phone == "555-0100"
    assert order.items[0]["product_id"] == product.id
    assert order.items[0]["quantity"] == 2
    await session.refresh(product)
    assert product.stock_count == 10


@pytest.mark.asyncio
async def test_item_groups_are_stored(session):
    client = FakePos(item_groups=[{"id": "G1", "name": "Mango", "attributes": {"elements": [{"id": "a", "name": "Size"}]}}])

    await sync_from_pos(session, client=client, mode="pull", resources=("itemGroups",))

    group = (await session.execute(select(ItemGroup))).scalar_one()
    assert group.external_id == "G1"
    assert group.attributes == [{"id": "a", "name": "Size"}]


@pytest.mark.asyncio
async def test_catalog_index_resolution_order(session, make_product):
    by_group = await make_product(product_id="G", name="Grouped", external_group_id="G1")
    by_sku = await make_product(product_id="SKU-X", name="Sku Match")
    index = await CatalogIndex.load(session)

    assert index.resolve(group_id="G1", skus=["SKU-X"]) == (by_group, "group")
    assert index.resolve(group_id="NOPE", skus=["SKU-X"]) == (by_sku, "sku")
    assert index.resolve(skus=["SKU-X"], claimed={by_sku.id}) == (None, None)


def remote_order(**extra):
    order = {
        "id": "O1",
        "total": 2500,
        "lineItems": {"elements": [{"id": "L1", "item": {"id": "I1"}, "name": "Thing", "price": 1250, "unitQty": 2000}]},
    }
    order.update(extra)
    return order


@pytest.mark.asyncio
async def test_cancelling_a_mirrored_order_leaves_stock_alone(session, make_product):
    product = await make_product(product_id="P-ORD", external_id="I1", stock_count=10)
    await sync_from_pos(session, client=FakePos(orders=[remote_order()]), mode="pull", resources=("orders",))
    order = (await session.execute(select(Order))).scalar_one()

    cancelled = await order_service.update_status(session, order.id, "Cancelled")

    assert cancelled.status == "Cancelled"
    await session.refresh(product)
    assert product.stock_count == 10


@pytest.mark.asyncio
async def test_resync_keeps_line_ids_and_fulfillment_status(session, make_product):
    await make_product(product_id="P-ORD", external_id="I1", stock_count=10)
    client = FakePos(orders=[remote_order()])
    await sync_from_pos(session, client=client, mode="pull", resources=("orders",))
    order = (await session.execute(select(Order))).scalar_one()
    line_id = order.items[0]["id"]
    await order_service.update_status(session, order.id, "Shipped", item_id=line_id)

    client.orders = [remote_order(total=3000)]
    await sync_from_pos(session, client=client, mode="pull", resources=("orders",))

    await session.refresh(order)
    assert order.amount == 30.0
    assert order.items[0]["id"] == line_id
    assert order.items[0]["status"] == "Shipped"


@pytest.mark.asyncio
async def test_ungrouped_match_drops_stale_group_link(session, make_product):
    product = await make_product(
        product_id="P-OLD",
        external_group_id="G-OLD",
        variants=[{"size": "S", "price": 1.0, "quantity": 1, "external_id": "I5", "sku": "P-OLD-S"}],
    )
    client = FakePos(items=[remote_item("I5", "Solo", 300, 2)])

    await sync_from_pos(session, client=client, mode="pull", resources=("items",))

    await session.refresh(product)
    assert product.external_id == "I5"
    assert product.external_group_id is None


@pytest.mark.asyncio
async def test_collapsed_duplicates_are_removed_from_carts(session, make_product, user):
    first = await make_product(product_id="A", name="Dup", external_group_id="G7")
    second = await make_product(product_id="B", name="Dup", external_group_id="G7")
    cart = Cart(user_id=user.id, items=[
        {"product_id": first.id, "variant_size": "S", "quantity": 1},
        {"product_id": second.id, "variant_size": "S", "quantity": 1},
    ])
    session.add(cart)
    await session.commit()
    client = FakePos(items=[remote_item("I1", "Dup S", 100, 1, group="G7", size="S")])

    await sync_from_pos(session, client=client, mode="pull", resources=("items",))

    survivor = (await session.execute(select(Product))).scalar_one()
    await session.refresh(cart)
    assert [item["product_id"] for item in cart.items] == [survivor.id]

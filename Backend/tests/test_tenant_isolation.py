"""
Multi-Tenant Isolation Tests

These tests verify that tenant isolation is enforced:
1. Products and categories of store A are not visible from store B
2. Writes are tagged with the resolved store and need its own admin
3. Orders are listed by product ownership
4. Edge headers are honoured only from the trusted proxy

Run with: pytest tests/test_tenant_isolation.py -v
"""

from decimal import Decimal

import pytest
from fastapi import Request

from storefront.models import Category, Order, OrderItem, Product
from storefront.tenancy import (
    UNSCOPED,
    CategoryInUseError,
    ResolutionKind,
    ScopedRepository,
    TenantContext,
    get_current_tenant,
)


# ────────────────────────────────────────────────────────────────
# Fixtures
# ────────────────────────────────────────────────────────────────

@pytest.fixture
async def stores(create_admin, session_maker):
    """Two admins, each with one category and one product."""
    admin_a = await create_admin("Alice", "Able")
    admin_b = await create_admin("Bob", "Baker")

    async with session_maker() as session:
        cat_a = Category(name="Shirts", created_by=admin_a.id)
        cat_b = Category(name="Shirts", created_by=admin_b.id)
        session.add_all([cat_a, cat_b])
        await session.flush()
        prod_a = Product(name="Alpha Shirt", price=Decimal("10.00"), stock=5, category_id=cat_a.id, created_by=admin_a.id)
        prod_b = Product(name="Beta Shirt", price=Decimal("20.00"), stock=5, category_id=cat_b.id, created_by=admin_b.id)
        session.add_all([prod_a, prod_b])
        await session.commit()

    return {
        "a": {"admin": admin_a, "category": cat_a, "product": prod_a, "host": "aliceable.codeopx.com"},
        "b": {"admin": admin_b, "category": cat_b, "product": prod_b, "host": "bobbaker.codeopx.com"},
    }


def ctx_for(admin):
    return TenantContext(admin_id=admin.id, kind=ResolutionKind.SUBDOMAIN, domain_identifier=admin.subdomain)


@pytest.fixture
def probe(app):
    """Route echoing the tenant a request was resolved to."""

    @app.get("/_probe")
    async def tenant_probe(request: Request):
        tenant = request.state.tenant
        assert get_current_tenant() == tenant
        return {"admin_id": tenant.admin_id, "kind": tenant.kind.value, "domain": tenant.domain_identifier}

    return "/_probe"


# ────────────────────────────────────────────────────────────────
# Unit Tests - ScopedRepository
# ────────────────────────────────────────────────────────────────

class TestScopedRepository:
    def test_scope_is_mandatory(self, async_session):
        with pytest.raises(TypeError):
            ScopedRepository(async_session, None)
        with pytest.raises(TypeError):
            ScopedRepository(async_session, 1)

    @pytest.mark.asyncio
    async def test_products_isolated(self, async_session, stores):
        a, b = stores["a"], stores["b"]

        page = await ScopedRepository(async_session, ctx_for(a["admin"])).list_products()

        assert [p.name for p in page.items] == ["Alpha Shirt"]
        assert page.total == 1
        assert await ScopedRepository(async_session, ctx_for(a["admin"])).get_product(b["product"].id) is None

    @pytest.mark.asyncio
    async def test_unscoped_sees_everything(self, async_session, stores):
        page = await ScopedRepository(async_session, UNSCOPED).list_products()
        assert page.total == 2

    @pytest.mark.asyncio
    async def test_writes_are_tagged(self, async_session, stores):
        a = stores["a"]
        repo = ScopedRepository(async_session, ctx_for(a["admin"]))

        product = await repo.create_product(
            name="Gamma", price=Decimal("5.00"), category_id=a["category"].id, created_by=999
        )

        assert product.created_by == a["admin"].id

    @pytest.mark.asyncio
    async def test_delete_category_rules(self, async_session, stores):
        a, b = stores["a"], stores["b"]
        repo_a = ScopedRepository(async_session, ctx_for(a["admin"]))

        # Another store's category is invisible
        assert await repo_a.delete_category(b["category"].id) is False

        with pytest.raises(CategoryInUseError):
            await repo_a.delete_category(a["category"].id)

        empty = await repo_a.create_category(name="Empty")
        assert await repo_a.delete_category(empty.id) is True

    @pytest.mark.asyncio
    async def test_orders_by_product_ownership(self, async_session, stores):
        a, b = stores["a"], stores["b"]
        order_a = Order(total=Decimal("10.00"))
        order_b = Order(total=Decimal("20.00"))
        async_session.add_all([order_a, order_b])
        await async_session.flush()
        async_session.add_all([
            OrderItem(order_id=order_a.id, product_id=a["product"].id, quantity=1, price=Decimal("10.00")),
            OrderItem(order_id=order_b.id, product_id=b["product"].id, quantity=1, price=Decimal("20.00")),
        ])
        await async_session.flush()

        orders = await ScopedRepository(async_session, ctx_for(a["admin"])).list_orders()

        assert [o.id for o in orders] == [order_a.id]


# ────────────────────────────────────────────────────────────────
# Integration Tests - HTTP
# ────────────────────────────────────────────────────────────────

class TestCatalogIsolation:
    @pytest.mark.asyncio
    async def test_product_list_follows_host(self, client, stores):
        a, b = stores["a"], stores["b"]

        resp_a = await client.get("/products", headers={"Host": a["host"]})
        resp_b = await client.get("/products", headers={"Host": b["host"]})

        assert [p["name"] for p in resp_a.json()["products"]] == ["Alpha Shirt"]
        assert [p["name"] for p in resp_b.json()["products"]] == ["Beta Shirt"]

    @pytest.mark.asyncio
    async def test_bare_domain_is_global(self, client, stores):
        response = await client.get("/products", headers={"Host": "codeopx.com"})
        assert response.json()["pagination"]["total"] == 2

    @pytest.mark.asyncio
    async def test_cross_store_product_is_not_found(self, client, stores):
        response = await client.get(f"/products/{stores['b']['product'].id}", headers={"Host": stores["a"]["host"]})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_category_detail_lists_only_own_products(self, client, stores):
        a = stores["a"]

        response = await client.get(f"/categories/{a['category'].id}", headers={"Host": a["host"]})

        assert response.status_code == 200
        assert [p["name"] for p in response.json()["products"]] == ["Alpha Shirt"]

    @pytest.mark.asyncio
    async def test_admin_writes_only_on_own_store(self, client, stores, auth_headers):
        a, b = stores["a"], stores["b"]

        own = await client.post(
            "/categories", json={"name": "Hats"}, headers=auth_headers(a["admin"], host=a["host"])
        )
        foreign = await client.post(
            "/categories", json={"name": "Hats"}, headers=auth_headers(a["admin"], host=b["host"])
        )

        assert own.status_code == 201
        assert own.json()["created_by"] == a["admin"].id
        assert foreign.status_code == 403

    @pytest.mark.asyncio
    async def test_create_product_needs_own_category(self, client, stores, auth_headers):
        a, b = stores["a"], stores["b"]
        payload = {"name": "Cap", "price": 9.5, "category_id": b["category"].id}

        response = await client.post("/products", json=payload, headers=auth_headers(a["admin"], host=a["host"]))

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_category_in_use_conflicts(self, client, stores, auth_headers):
        a = stores["a"]

        response = await client.delete(
            f"/categories/{a['category'].id}", headers=auth_headers(a["admin"], host=a["host"])
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_sorting_and_paging(self, client, stores, auth_headers):
        a = stores["a"]
        headers = auth_headers(a["admin"], host=a["host"])
        for name, price in [("Cheap", 1), ("Pricey", 100)]:
            created = await client.post(
                "/products", json={"name": name, "price": price, "category_id": a["category"].id}, headers=headers
            )
            assert created.status_code == 201

        response = await client.get("/products?sortBy=price-low&limit=2", headers={"Host": a["host"]})

        body = response.json()
        assert [p["name"] for p in body["products"]] == ["Cheap", "Alpha Shirt"]
        assert body["pagination"] == {
            "page": 1, "limit": 2, "total": 3, "total_pages": 2, "has_next": True, "has_prev": False,
        }


class TestCatalogWrites:
    @pytest.fixture
    async def orders(self, stores, session_maker):
        """One order per store, each containing only that store's product."""
        created = {}
        async with session_maker() as session:
            for key in ("a", "b"):
                product = stores[key]["product"]
                order = Order(total=product.price)
                session.add(order)
                await session.flush()
                session.add(OrderItem(order_id=order.id, product_id=product.id, quantity=1, price=product.price))
                created[key] = order
            await session.commit()
        return created

    @pytest.mark.asyncio
    async def test_update_own_product(self, client, stores, auth_headers):
        a = stores["a"]

        response = await client.put(
            f"/products/{a['product'].id}",
            json={"name": "Alpha Tee", "price": 12.5, "created_by": stores["b"]["admin"].id},
            headers=auth_headers(a["admin"], host=a["host"]),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["name"] == "Alpha Tee"
        assert body["price"] == 12.5
        assert body["created_by"] == a["admin"].id

    @pytest.mark.asyncio
    async def test_update_other_stores_product_is_not_found(self, client, stores, auth_headers):
        a, b = stores["a"], stores["b"]

        response = await client.put(
            f"/products/{b['product'].id}",
            json={"name": "Hijacked"},
            headers=auth_headers(a["admin"], host=a["host"]),
        )

        assert response.status_code == 404
        unchanged = await client.get(f"/products/{b['product'].id}", headers={"Host": b["host"]})
        assert unchanged.json()["name"] == "Beta Shirt"

    @pytest.mark.asyncio
    async def test_product_cannot_move_to_foreign_category(self, client, stores, auth_headers):
        a, b = stores["a"], stores["b"]

        response = await client.put(
            f"/products/{a['product'].id}",
            json={"category_id": b["category"].id},
            headers=auth_headers(a["admin"], host=a["host"]),
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "Category not found"

    @pytest.mark.asyncio
    async def test_empty_product_update_rejected(self, client, stores, auth_headers):
        a = stores["a"]

        response = await client.put(
            f"/products/{a['product'].id}", json={}, headers=auth_headers(a["admin"], host=a["host"])
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_delete_product_only_by_owner(self, client, stores, auth_headers):
        a, b = stores["a"], stores["b"]
        headers = auth_headers(a["admin"], host=a["host"])

        foreign = await client.delete(f"/products/{b['product'].id}", headers=headers)
        own = await client.delete(f"/products/{a['product'].id}", headers=headers)

        assert foreign.status_code == 404
        assert foreign.json()["detail"] == "Product not found or access denied"
        assert own.status_code == 204
        assert (await client.get(f"/products/{a['product'].id}", headers={"Host": a["host"]})).status_code == 404
        assert (await client.get(f"/products/{b['product'].id}", headers={"Host": b["host"]})).status_code == 200

    @pytest.mark.asyncio
    async def test_ordered_product_cannot_be_deleted(self, client, stores, orders, auth_headers):
        a = stores["a"]

        response = await client.delete(
            f"/products/{a['product'].id}", headers=auth_headers(a["admin"], host=a["host"])
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_update_category_only_by_owner(self, client, stores, auth_headers):
        a, b = stores["a"], stores["b"]
        headers = auth_headers(a["admin"], host=a["host"])

        own = await client.put(f"/categories/{a['category'].id}", json={"name": "Tops"}, headers=headers)
        foreign = await client.put(f"/categories/{b['category'].id}", json={"name": "Tops"}, headers=headers)

        assert own.status_code == 200
        assert own.json()["name"] == "Tops"
        assert foreign.status_code == 404

    @pytest.mark.asyncio
    async def test_category_rename_clash_conflicts(self, client, stores, auth_headers):
        a = stores["a"]
        headers = auth_headers(a["admin"], host=a["host"])
        await client.post("/categories", json={"name": "Hats"}, headers=headers)

        response = await client.put(f"/categories/{a['category'].id}", json={"name": "Hats"}, headers=headers)

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_order_detail_scoped_by_product_ownership(self, client, stores, orders, auth_headers):
        a = stores["a"]
        headers = auth_headers(a["admin"], host=a["host"])

        own = await client.get(f"/admin/orders/{orders['a'].id}", headers=headers)
        foreign = await client.get(f"/admin/orders/{orders['b'].id}", headers=headers)

        assert own.status_code == 200
        assert [i["product_id"] for i in own.json()["items"]] == [a["product"].id]
        assert foreign.status_code == 404

    @pytest.mark.asyncio
    async def test_order_status_update_only_by_owner(self, client, stores, orders, auth_headers):
        a = stores["a"]
        headers = auth_headers(a["admin"], host=a["host"])

        own = await client.put(f"/admin/orders/{orders['a'].id}", json={"status": "SHIPPED"}, headers=headers)
        foreign = await client.put(f"/admin/orders/{orders['b'].id}", json={"status": "SHIPPED"}, headers=headers)
        invalid = await client.put(f"/admin/orders/{orders['a'].id}", json={"status": "LOST"}, headers=headers)

        assert own.status_code == 200
        assert own.json()["status"] == "SHIPPED"
        assert foreign.status_code == 404
        assert invalid.status_code == 422

    @pytest.mark.asyncio
    async def test_orders_touching_both_stores_show_only_own_lines(self, client, stores, auth_headers, session_maker):
        a, b = stores["a"], stores["b"]
        async with session_maker() as session:
            order = Order(total=Decimal("30.00"))
            session.add(order)
            await session.flush()
            session.add_all([
                OrderItem(order_id=order.id, product_id=a["product"].id, quantity=1, price=Decimal("10.00")),
                OrderItem(order_id=order.id, product_id=b["product"].id, quantity=1, price=Decimal("20.00")),
            ])
            await session.commit()

        response = await client.get(f"/admin/orders/{order.id}", headers=auth_headers(b["admin"], host=b["host"]))

        assert [i["product_id"] for i in response.json()["items"]] == [b["product"].id]


class TestEdgeHeaders:
    @pytest.mark.asyncio
    async def test_trusted_edge_headers_win(self, edge_client, probe, stores):
        a = stores["a"]
        headers = ctx_for(a["admin"]).to_headers()
        headers["Host"] = stores["b"]["host"]

        response = await edge_client.get(probe, headers=headers)

        assert response.json() == {"admin_id": a["admin"].id, "kind": "subdomain", "domain": "aliceable"}

    @pytest.mark.asyncio
    async def test_edge_and_in_process_resolution_agree(self, client, edge_client, probe, stores):
        a = stores["a"]

        direct = (await client.get(probe, headers={"Host": a["host"]})).json()
        forwarded = (await edge_client.get(probe, headers=ctx_for(a["admin"]).to_headers())).json()

        assert direct == forwarded

    @pytest.mark.asyncio
    async def test_untrusted_edge_headers_ignored(self, client, probe, stores, caplog):
        a, b = stores["a"], stores["b"]
        headers = ctx_for(a["admin"]).to_headers()
        headers["Host"] = b["host"]

        response = await client.get(probe, headers=headers)

        assert response.json()["admin_id"] == b["admin"].id
        assert "untrusted peer" in caplog.text

    @pytest.mark.asyncio
    async def test_original_host_from_edge(self, edge_client, probe, stores):
        a = stores["a"]

        response = await edge_client.get(probe, headers={"Host": "internal:8000", "X-Original-Host": a["host"]})

        assert response.json()["admin_id"] == a["admin"].id

    @pytest.mark.asyncio
    async def test_original_host_ignored_from_public_client(self, client, probe, stores):
        response = await client.get(
            probe, headers={"Host": "codeopx.com", "X-Original-Host": stores["a"]["host"]}
        )
        assert response.json()["admin_id"] is None

    @pytest.mark.asyncio
    async def test_malformed_edge_headers_fall_back_to_host(self, edge_client, probe, stores):
        b = stores["b"]

        response = await edge_client.get(
            probe,
            headers={"Host": b["host"], "X-Tenant-Kind": "subdomain", "X-Tenant-Admin-Id": "nope"},
        )

        assert response.json()["admin_id"] == b["admin"].id

    @pytest.mark.asyncio
    async def test_context_cleared_after_request(self, client, probe, stores):
        await client.get(probe, headers={"Host": stores["a"]["host"]})
        assert get_current_tenant() == TenantContext.none()

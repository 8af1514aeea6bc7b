"""
Tenant-scoped catalog routes.

Reads are scoped to the store resolved from the request host; with no store
resolved they return the global catalog. Writes require an admin signed in
through their own store, and everything goes through ScopedRepository.

    GET    /products                 -> list (search, category, sort, paging)
    GET    /products/{id}
    POST   /products                 (admin)
    PUT    /products/{id}            (admin, owned only)
    DELETE /products/{id}            (admin, owned and never ordered only)
    GET    /categories
    GET    /categories/{id}          -> category with its products
    POST   /categories               (admin)
    PUT    /categories/{id}          (admin, owned only)
    DELETE /categories/{id}          (admin, owned and empty only)
    GET    /admin/orders             (admin) orders containing the store's products
    GET    /admin/orders/{id}        (admin) order with the store's lines
    PUT    /admin/orders/{id}        (admin) status update
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import require_admin
from .core.db import get_session
from .models import OrderStatus, User
from .tenancy import (
    UNSCOPED,
    CategoryInUseError,
    ProductInUseError,
    Scope,
    ScopedRepository,
    TenantContext,
    get_tenant_context,
    require_tenant_context,
)
from .tenancy.queries import PRODUCT_SORTS

logger = logging.getLogger(__name__)

router = APIRouter(tags=["catalog"])


# ────────────────────────────────────────────────────────────────
# Schemas
# ────────────────────────────────────────────────────────────────

class ProductIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    stock: int = Field(default=0, ge=0)
    featured: bool = False
    category_id: int


class ProductOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: float
    stock: int
    featured: bool
    category_id: int
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class ProductList(BaseModel):
    products: List[ProductOut]
    pagination: Pagination


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None


class CategoryOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    created_by: Optional[int] = None

    model_config = {"from_attributes": True}


class CategoryDetail(CategoryOut):
    products: List[ProductOut] = []


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    stock: Optional[int] = Field(default=None, ge=0)
    featured: Optional[bool] = None
    category_id: Optional[int] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None


class OrderOut(BaseModel):
    id: int
    user_id: Optional[int] = None
    status: OrderStatus
    total: float
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OrderItemOut(BaseModel):
    id: int
    product_id: int
    quantity: int
    price: float

    model_config = {"from_attributes": True}


class OrderDetail(OrderOut):
    items: List[OrderItemOut] = []


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


# ────────────────────────────────────────────────────────────────
# Dependencies
# ────────────────────────────────────────────────────────────────

def read_scope(tenant: TenantContext = Depends(get_tenant_context)) -> Scope:
    """The resolved store, or the global catalog when none resolved."""
    return tenant if tenant.is_resolved else UNSCOPED


async def require_store_admin(
    admin: User = Depends(require_admin),
    tenant: TenantContext = Depends(require_tenant_context),
) -> TenantContext:
    """Signed-in admin acting on their own store."""
    if tenant.admin_id != admin.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: this admin account does not belong to this store",
        )
    return tenant


# ────────────────────────────────────────────────────────────────
# Products
# ────────────────────────────────────────────────────────────────

@router.get("/products", response_model=ProductList)
async def list_products(
    search: Optional[str] = None,
    category: Optional[int] = None,
    sort_by: Optional[str] = Query(default=None, alias="sortBy"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    scope: Scope = Depends(read_scope),
    session: AsyncSession = Depends(get_session),
):
    if sort_by is not None and sort_by not in PRODUCT_SORTS:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown sort: {sort_by}. Use one of {', '.join(PRODUCT_SORTS)}",
        )

    result = await ScopedRepository(session, scope).list_products(
        search=search, category_id=category, sort_by=sort_by, page=page, limit=limit
    )
    return ProductList(
        products=[ProductOut.model_validate(p) for p in result.items],
        pagination=Pagination(
            page=result.page,
            limit=result.limit,
            total=result.total,
            total_pages=result.total_pages,
            has_next=result.has_next,
            has_prev=result.has_prev,
        ),
    )


@router.get("/products/{product_id}", response_model=ProductOut)
async def get_product(
    product_id: int,
    scope: Scope = Depends(read_scope),
    session: AsyncSession = Depends(get_session),
):
    product = await ScopedRepository(session, scope).get_product(product_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product


@router.post("/products", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
async def create_product(
    body: ProductIn,
    tenant: TenantContext = Depends(require_store_admin),
    session: AsyncSession = Depends(get_session),
):
    repo = ScopedRepository(session, tenant)
    if await repo.get_category(body.category_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")

    product = await repo.create_product(**body.model_dump())
    await session.commit()
    await session.refresh(product)
    logger.info(f"Admin {tenant.admin_id} created product {product.id}")
    return product


@router.put("/products/{product_id}", response_model=ProductOut)
async def update_product(
    product_id: int,
    body: ProductUpdate,
    tenant: TenantContext = Depends(require_store_admin),
    session: AsyncSession = Depends(get_session),
):
    fields = body.model_dump(exclude_none=True)
    if not fields:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="No valid fields to update",
        )

    repo = ScopedRepository(session, tenant)
    if "category_id" in fields and await repo.get_category(fields["category_id"]) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")

    product = await repo.update_product(product_id, **fields)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    await session.commit()
    await session.refresh(product)
    return product


@router.delete("/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: int,
    tenant: TenantContext = Depends(require_store_admin),
    session: AsyncSession = Depends(get_session),
):
    try:
        deleted = await ScopedRepository(session, tenant).delete_product(product_id)
    except ProductInUseError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot delete a product that has been ordered",
        )
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found or access denied",
        )
    await session.commit()
    logger.info(f"Admin {tenant.admin_id} deleted product {product_id}")


# ────────────────────────────────────────────────────────────────
# Categories
# ────────────────────────────────────────────────────────────────

@router.get("/categories", response_model=List[CategoryOut])
async def list_categories(
    scope: Scope = Depends(read_scope),
    session: AsyncSession = Depends(get_session),
):
    return await ScopedRepository(session, scope).list_categories()


@router.get("/categories/{category_id}", response_model=CategoryDetail)
async def get_category(
    category_id: int,
    scope: Scope = Depends(read_scope),
    session: AsyncSession = Depends(get_session),
):
    repo = ScopedRepository(session, scope)
    category = await repo.get_category(category_id)
    if category is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")

    products = await repo.list_category_products(category_id)
    return CategoryDetail(
        **CategoryOut.model_validate(category).model_dump(),
        products=[ProductOut.model_validate(p) for p in products],
    )


@router.post("/categories", response_model=CategoryOut, status_code=status.HTTP_201_CREATED)
async def create_category(
    body: CategoryIn,
    tenant: TenantContext = Depends(require_store_admin),
    session: AsyncSession = Depends(get_session),
):
    try:
        category = await ScopedRepository(session, tenant).create_category(**body.model_dump())
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Category {body.name} already exists",
        )
    await session.refresh(category)
    return category


@router.put("/categories/{category_id}", response_model=CategoryOut)
async def update_category(
    category_id: int,
    body: CategoryUpdate,
    tenant: TenantContext = Depends(require_store_admin),
    session: AsyncSession = Depends(get_session),
):
    fields = body.model_dump(exclude_unset=True)
    if fields.get("name", "") is None:
        fields.pop("name")
    try:
        category = await ScopedRepository(session, tenant).update_category(category_id, **fields)
        if category is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Category {body.name} already exists",
        )
    await session.refresh(category)
    return category


@router.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_id: int,
    tenant: TenantContext = Depends(require_store_admin),
    session: AsyncSession = Depends(get_session),
):
    try:
        deleted = await ScopedRepository(session, tenant).delete_category(category_id)
    except CategoryInUseError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot delete category with existing products",
        )
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    await session.commit()


# ────────────────────────────────────────────────────────────────
# Orders
# ────────────────────────────────────────────────────────────────

@router.get("/admin/orders", response_model=List[OrderOut])
async def list_orders(
    tenant: TenantContext = Depends(require_store_admin),
    session: AsyncSession = Depends(get_session),
):
    return await ScopedRepository(session, tenant).list_orders()


@router.get("/admin/orders/{order_id}", response_model=OrderDetail)
async def get_order(
    order_id: int,
    tenant: TenantContext = Depends(require_store_admin),
    session: AsyncSession = Depends(get_session),
):
    repo = ScopedRepository(session, tenant)
    order = await repo.get_order(order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return _order_detail(order, await repo.list_order_items(order_id))


@router.put("/admin/orders/{order_id}", response_model=OrderDetail)
async def update_order_status(
    order_id: int,
    body: OrderStatusUpdate,
    tenant: TenantContext = Depends(require_store_admin),
    session: AsyncSession = Depends(get_session),
):
    repo = ScopedRepository(session, tenant)
    order = await repo.update_order_status(order_id, body.status)
    if order is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Order not found or access denied",
        )
    await session.commit()
    await session.refresh(order)
    logger.info(f"Admin {tenant.admin_id} moved order {order_id} to {body.status.value}")
    return _order_detail(order, await repo.list_order_items(order_id))


def _order_detail(order, items) -> OrderDetail:
    return OrderDetail(
        **OrderOut.model_validate(order).model_dump(),
        items=[OrderItemOut.model_validate(i) for i in items],
    )

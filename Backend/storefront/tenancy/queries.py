"""
Tenant-scoped query helpers.

ALL reads and writes of tenant-owned rows (products, categories, orders by
product ownership) go through ``ScopedRepository``. A repository cannot be
built without declaring its scope: either the request's ``TenantContext`` or
the explicit ``UNSCOPED`` marker for superadmin/global views.

Usage:
    repo = ScopedRepository(session, tenant)
    products, total = await repo.list_products(search="shirt")

    # Or using composable helpers:
    stmt = scoped_select(Product, repo.admin_id).where(Product.featured.is_(True))
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Type, TypeVar, Union

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.db import Base
from ..models import Category, Order, OrderItem, OrderStatus, Product
from .context import TenantContext

T = TypeVar("T", bound=Base)


class _Unscoped:
    """Marker for deliberately unscoped (global) access."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSCOPED"


UNSCOPED = _Unscoped()

Scope = Union[TenantContext, _Unscoped]


class CategoryInUseError(Exception):
    """Category still has products and cannot be deleted."""


class ProductInUseError(Exception):
    """Product appears on orders and cannot be deleted."""


def scope_admin_id(scope: Scope) -> Optional[int]:
    """
    Admin id a scope filters on; None means unscoped.

    Raises:
        TypeError: scope is neither a TenantContext nor UNSCOPED
    """
    if scope is UNSCOPED:
        return None
    if isinstance(scope, TenantContext):
        return scope.admin_id
    raise TypeError(f"A TenantContext or UNSCOPED is required, got {type(scope).__name__}")


# ────────────────────────────────────────────────────────────────
# Composable Query Helpers
# ────────────────────────────────────────────────────────────────

def tenant_filter(model: Type[T], admin_id: int):
    """
    Return a SQLAlchemy filter clause on the owning admin.

    Usage:
        stmt = select(Product).where(tenant_filter(Product, admin_id), Product.stock > 0)
    """
    return model.created_by == admin_id


def scoped_select(model: Type[T], admin_id: Optional[int]) -> Select:
    """
    Create a SELECT pre-filtered by owner. ``admin_id=None`` is unscoped.
    """
    stmt = select(model)
    if admin_id is not None:
        stmt = stmt.where(tenant_filter(model, admin_id))
    return stmt


async def require_owned(
    session: AsyncSession,
    model: Type[T],
    entity_id: int,
    admin_id: Optional[int],
) -> Optional[T]:
    """
    Fetch an entity by ID, validating ownership when scoped.
    Returns None if not found or owned by another admin.
    """
    result = await session.execute(scoped_select(model, admin_id).where(model.id == entity_id))
    return result.scalar_one_or_none()


# ────────────────────────────────────────────────────────────────
# Scoped Repository
# ────────────────────────────────────────────────────────────────

PRODUCT_SORTS = {
    "price-low": (Product.price.asc(),),
    "price-high": (Product.price.desc(),),
    "name": (Product.name.asc(),),
    "featured": (Product.featured.desc(), Product.created_at.desc()),
    "newest": (Product.created_at.desc(),),
}


@dataclass
class ProductPage:
    items: Sequence[Product]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page * self.limit < self.total

    @property
    def has_prev(self) -> bool:
        return self.page > 1


class ScopedRepository:
    """Catalog and order access bound to one declared scope."""

    def __init__(self, session: AsyncSession, scope: Scope):
        self.session = session
        self.scope = scope
        self.admin_id = scope_admin_id(scope)

    def _tag(self, entity: T) -> T:
        if self.admin_id is not None:
            entity.created_by = self.admin_id
        return entity

    # Products

    async def list_products(
        self,
        search: Optional[str] = None,
        category_id: Optional[int] = None,
        sort_by: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> ProductPage:
        stmt = scoped_select(Product, self.admin_id)
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.where(
                func.lower(Product.name).like(pattern) | func.lower(Product.description).like(pattern)
            )
        if category_id is not None:
            stmt = stmt.where(Product.category_id == category_id)

        total = await self.session.scalar(select(func.count()).select_from(stmt.subquery()))

        order_by = PRODUCT_SORTS.get(sort_by or "newest", PRODUCT_SORTS["newest"])
        result = await self.session.execute(
            stmt.order_by(*order_by, Product.id.desc()).offset((page - 1) * limit).limit(limit)
        )
        return ProductPage(items=result.scalars().all(), total=total or 0, page=page, limit=limit)

    async def get_product(self, product_id: int) -> Optional[Product]:
        return await require_owned(self.session, Product, product_id, self.admin_id)

    async def create_product(self, **fields) -> Product:
        product = self._tag(Product(**fields))
        self.session.add(product)
        await self.session.flush()
        return product

    async def update_product(self, product_id: int, **fields) -> Optional[Product]:
        """Returns None when not found or owned by another admin."""
        product = await self.get_product(product_id)
        if product is None:
            return None
        return await self._apply(product, fields)

    async def delete_product(self, product_id: int) -> bool:
        """
        Delete a product the scope owns.

        Returns False when not found or owned by another admin.

        Raises:
            ProductInUseError: the product is on an order
        """
        product = await self.get_product(product_id)
        if product is None:
            return False

        ordered = await self.session.scalar(
            select(func.count()).select_from(OrderItem).where(OrderItem.product_id == product_id)
        )
        if ordered:
            raise ProductInUseError(f"Product {product_id} is on {ordered} orders")

        await self.session.delete(product)
        await self.session.flush()
        return True

    async def _apply(self, entity: T, fields: dict) -> T:
        # Ownership never moves through an update
        fields.pop("created_by", None)
        for name, value in fields.items():
            setattr(entity, name, value)
        await self.session.flush()
        return entity

    # Categories

    async def list_categories(self) -> Sequence[Category]:
        result = await self.session.execute(
            scoped_select(Category, self.admin_id).order_by(Category.name)
        )
        return result.scalars().all()

    async def get_category(self, category_id: int) -> Optional[Category]:
        return await require_owned(self.session, Category, category_id, self.admin_id)

    async def list_category_products(self, category_id: int) -> Sequence[Product]:
        result = await self.session.execute(
            scoped_select(Product, self.admin_id)
            .where(Product.category_id == category_id)
            .order_by(Product.created_at.desc(), Product.id.desc())
        )
        return result.scalars().all()

    async def create_category(self, **fields) -> Category:
        category = self._tag(Category(**fields))
        self.session.add(category)
        await self.session.flush()
        return category

    async def update_category(self, category_id: int, **fields) -> Optional[Category]:
        category = await self.get_category(category_id)
        if category is None:
            return None
        return await self._apply(category, fields)

    async def delete_category(self, category_id: int) -> bool:
        """
        Delete a category the scope owns.

        Returns False when not found or owned by another admin.

        Raises:
            CategoryInUseError: the category still has products
        """
        category = await self.get_category(category_id)
        if category is None:
            return False

        product_count = await self.session.scalar(
            select(func.count()).select_from(Product).where(Product.category_id == category_id)
        )
        if product_count:
            raise CategoryInUseError(f"Category {category_id} has {product_count} products")

        await self.session.delete(category)
        await self.session.flush()
        return True

    # Orders

    def _scoped_orders(self) -> Select:
        stmt = select(Order)
        if self.admin_id is not None:
            owned_order_ids = (
                select(OrderItem.order_id)
                .join(Product, Product.id == OrderItem.product_id)
                .where(tenant_filter(Product, self.admin_id))
            )
            stmt = stmt.where(Order.id.in_(owned_order_ids))
        return stmt

    async def list_orders(self) -> Sequence[Order]:
        """Orders containing at least one product owned by the scope."""
        result = await self.session.execute(
            self._scoped_orders().order_by(Order.created_at.desc(), Order.id.desc())
        )
        return result.scalars().all()

    async def get_order(self, order_id: int) -> Optional[Order]:
        result = await self.session.execute(self._scoped_orders().where(Order.id == order_id))
        return result.scalar_one_or_none()

    async def list_order_items(self, order_id: int) -> Sequence[OrderItem]:
        """Lines of an order, limited to the scope's own products."""
        stmt = select(OrderItem).where(OrderItem.order_id == order_id)
        if self.admin_id is not None:
            stmt = stmt.join(Product, Product.id == OrderItem.product_id).where(
                tenant_filter(Product, self.admin_id)
            )
        result = await self.session.execute(stmt.order_by(OrderItem.id))
        return result.scalars().all()

    async def update_order_status(self, order_id: int, status: OrderStatus) -> Optional[Order]:
        order = await self.get_order(order_id)
        if order is None:
            return None
        order.status = status
        await self.session.flush()
        return order

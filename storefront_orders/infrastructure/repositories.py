import uuid
from typing import Optional, List, Tuple
from datetime import datetime, timezone
from sqlalchemy import select, insert, update, func, or_, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront_orders.domain.models import (
    Order, OrderItem, OrderStatus, PaymentStatus, ProductSnapshot, ShippingAddress,
    Coupon, DiscountType
)
from storefront_orders.domain.exceptions import NumberingConflict, CouponAlreadyExists
from storefront_orders.infrastructure.db_schema import (
    orders_tbl, order_items_tbl, coupons_tbl, order_sequences_tbl, outbox_events_tbl
)
from storefront_orders.application.interfaces import (
    OrderRepository, CouponRepository, SequenceRepository, OutboxRepository
)


def like_pattern(term: str) -> str:
    """Шаблон LIKE по подстроке, % и _ из запроса ищутся буквально"""
    escaped = term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class SQLAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        return await self._get_one(orders_tbl.c.id == order_id)

    async def get_by_order_number(self, order_number: str) -> Optional[Order]:
        return await self._get_one(orders_tbl.c.order_number == order_number)

    async def get_by_gateway_order_id(self, gateway_order_id: str) -> Optional[Order]:
        return await self._get_one(orders_tbl.c.gateway_order_id == gateway_order_id)

    async def get_by_idempotency_key(self, user_id: str, key: str) -> Optional[Order]:
        return await self._get_one(
            orders_tbl.c.user_id == user_id, orders_tbl.c.idempotency_key == key
        )

    async def create(self, order: Order) -> None:
        stmt = insert(orders_tbl).values(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            subtotal=order.subtotal,
            discount_amount=order.discount_amount,
            coupon_code=order.coupon_code,
            total_amount=order.total_amount,
            currency=order.currency,
            status=order.status,
            payment_status=order.payment_status,
            gateway_order_id=order.gateway_order_id,
            gateway_payment_id=order.gateway_payment_id,
            gateway_signature=order.gateway_signature,
            shipping_address=order.shipping_address.model_dump(),
            tracking_number=order.tracking_number,
            estimated_delivery=order.estimated_delivery,
            delivered_at=order.delivered_at,
            notes=order.notes,
            idempotency_key=order.idempotency_key,
            version=order.version,
            created_at=order.created_at,
            updated_at=order.updated_at
        )
        try:
            await self._session.execute(stmt)
        except IntegrityError as e:
            raise NumberingConflict(f"Order {order.order_number} violates a uniqueness constraint") from e

        await self._session.execute(
            insert(order_items_tbl),
            [
                {
                    "order_id": order.id,
                    "position": position,
                    "product_id": item.product_id,
                    "product_name": item.snapshot.name,
                    "product_price": item.snapshot.price,
                    "product_image": item.snapshot.image,
                    "product_brand": item.snapshot.brand,
                    "product_category": item.snapshot.category,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price
                }
                for position, item in enumerate(order.items)
            ]
        )

    async def compare_and_set(self, order_id: str, expected_version: int, **values) -> bool:
        stmt = (
            update(orders_tbl)
            .where(orders_tbl.c.id == order_id, orders_tbl.c.version == expected_version)
            .values(version=expected_version + 1, **values)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def list_for_user(self, user_id: str, offset: int, limit: int) -> Tuple[List[Order], int]:
        return await self._page(orders_tbl.c.user_id == user_id, offset, limit)

    async def search(
        self, status: Optional[OrderStatus], search: Optional[str], offset: int, limit: int
    ) -> Tuple[List[Order], int]:
        conditions = []
        if status:
            conditions.append(orders_tbl.c.status == status)
        if search:
            pattern = like_pattern(search)
            conditions.append(or_(
                func.lower(orders_tbl.c.order_number).like(pattern, escape="\\"),
                func.lower(orders_tbl.c.shipping_address["name"].as_string()).like(pattern, escape="\\"),
                orders_tbl.c.shipping_address["phone"].as_string().like(pattern, escape="\\")
            ))
        return await self._page(and_(*conditions) if conditions else None, offset, limit)

    async def _page(self, condition, offset: int, limit: int) -> Tuple[List[Order], int]:
        count_stmt = select(func.count()).select_from(orders_tbl)
        stmt = select(orders_tbl).order_by(orders_tbl.c.created_at.desc(), orders_tbl.c.order_number.desc())
        if condition is not None:
            count_stmt = count_stmt.where(condition)
            stmt = stmt.where(condition)
        total = (await self._session.execute(count_stmt)).scalar_one()
        rows = (await self._session.execute(stmt.offset(offset).limit(limit))).fetchall()
        items = await self._load_items([row.id for row in rows])
        return [self._to_domain(row, items.get(row.id, [])) for row in rows], total

    async def _get_one(self, *conditions) -> Optional[Order]:
        result = await self._session.execute(select(orders_tbl).where(*conditions))
        row = result.fetchone()
        if not row:
            return None
        items = await self._load_items([row.id])
        return self._to_domain(row, items.get(row.id, []))

    async def _load_items(self, order_ids: List[str]) -> dict:
        if not order_ids:
            return {}
        result = await self._session.execute(
            select(order_items_tbl)
            .where(order_items_tbl.c.order_id.in_(order_ids))
            .order_by(order_items_tbl.c.order_id, order_items_tbl.c.position)
        )
        items = {}
        for row in result.fetchall():
            items.setdefault(row.order_id, []).append(OrderItem(
                product_id=row.product_id,
                snapshot=ProductSnapshot(
                    name=row.product_name,
                    price=row.product_price,
                    image=row.product_image,
                    brand=row.product_brand,
                    category=row.product_category
                ),
                quantity=row.quantity,
                unit_price=row.unit_price
            ))
        return items

    def _to_domain(self, row, items: List[OrderItem]) -> Order:
        """Трансформация DB → Domain"""
        return Order(
            id=row.id,
            order_number=row.order_number,
            user_id=row.user_id,
            items=items,
            subtotal=row.subtotal,
            discount_amount=row.discount_amount,
            coupon_code=row.coupon_code,
            total_amount=row.total_amount,
            currency=row.currency,
            status=OrderStatus(row.status),
            payment_status=PaymentStatus(row.payment_status),
            gateway_order_id=row.gateway_order_id,
            gateway_payment_id=row.gateway_payment_id,
            gateway_signature=row.gateway_signature,
            shipping_address=ShippingAddress(**row.shipping_address),
            tracking_number=row.tracking_number,
            estimated_delivery=row.estimated_delivery,
            delivered_at=row.delivered_at,
            notes=row.notes,
            idempotency_key=row.idempotency_key,
            version=row.version,
            created_at=row.created_at,
            updated_at=row.updated_at
        )


class SQLAlchemyCouponRepository(CouponRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_code(self, code: str) -> Optional[Coupon]:
        result = await self._session.execute(
            select(coupons_tbl).where(coupons_tbl.c.code == code)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def create(self, coupon: Coupon) -> None:
        stmt = insert(coupons_tbl).values(
            id=coupon.id,
            code=coupon.code,
            discount_type=coupon.discount_type,
            value=coupon.value,
            min_cart_value=coupon.min_cart_value,
            is_active=coupon.is_active,
            usage_count=coupon.usage_count,
            max_usage=coupon.max_usage,
            description=coupon.description,
            created_at=coupon.created_at,
            updated_at=coupon.updated_at
        )
        try:
            await self._session.execute(stmt)
        except IntegrityError as e:
            raise CouponAlreadyExists(coupon.code) from e

    async def update(self, code: str, **values) -> Optional[Coupon]:
        stmt = update(coupons_tbl).where(coupons_tbl.c.code == code)
        if values.get("max_usage") is not None:
            # новый лимит не может быть меньше уже выданных использований
            stmt = stmt.where(coupons_tbl.c.usage_count <= values["max_usage"])
        result = await self._session.execute(stmt.values(**values))
        if result.rowcount != 1:
            return None
        return await self.get_by_code(code)

    async def try_increment_usage(self, coupon_id: str) -> bool:
        stmt = (
            update(coupons_tbl)
            .where(
                coupons_tbl.c.id == coupon_id,
                or_(
                    coupons_tbl.c.max_usage.is_(None),
                    coupons_tbl.c.usage_count < coupons_tbl.c.max_usage
                )
            )
            .values(
                usage_count=coupons_tbl.c.usage_count + 1,
                updated_at=datetime.now(timezone.utc)
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def list(
        self,
        search: Optional[str],
        discount_type: Optional[DiscountType],
        is_active: Optional[bool],
        offset: int,
        limit: int
    ) -> Tuple[List[Coupon], int]:
        conditions = []
        if search:
            pattern = like_pattern(search)
            conditions.append(or_(
                func.lower(coupons_tbl.c.code).like(pattern, escape="\\"),
                func.lower(coupons_tbl.c.description).like(pattern, escape="\\")
            ))
        if discount_type:
            conditions.append(coupons_tbl.c.discount_type == discount_type)
        if is_active is not None:
            conditions.append(coupons_tbl.c.is_active == is_active)

        count_stmt = select(func.count()).select_from(coupons_tbl)
        stmt = select(coupons_tbl).order_by(coupons_tbl.c.created_at.desc(), coupons_tbl.c.code)
        if conditions:
            count_stmt = count_stmt.where(*conditions)
            stmt = stmt.where(*conditions)
        total = (await self._session.execute(count_stmt)).scalar_one()
        rows = (await self._session.execute(stmt.offset(offset).limit(limit))).fetchall()
        return [self._to_domain(row) for row in rows], total

    def _to_domain(self, row) -> Coupon:
        return Coupon(
            id=row.id,
            code=row.code,
            discount_type=DiscountType(row.discount_type),
            value=row.value,
            min_cart_value=row.min_cart_value,
            is_active=row.is_active,
            usage_count=row.usage_count,
            max_usage=row.max_usage,
            description=row.description,
            created_at=row.created_at,
            updated_at=row.updated_at
        )


class SQLAlchemySequenceRepository(SequenceRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def next_value(self, name: str) -> int:
        result = await self._session.execute(
            update(order_sequences_tbl)
            .where(order_sequences_tbl.c.name == name)
            .values(value=order_sequences_tbl.c.value + 1)
            .returning(order_sequences_tbl.c.value)
        )
        value = result.scalar_one_or_none()
        if value is not None:
            return value

        # первый заказ: параллельная первая вставка упадет на primary key
        try:
            await self._session.execute(
                insert(order_sequences_tbl).values(name=name, value=1)
            )
        except IntegrityError as e:
            raise NumberingConflict(f"Sequence {name} initialised concurrently") from e
        return 1


class SQLAlchemyOutboxRepository(OutboxRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, event_type: str, event_data: dict, order_id: str) -> str:
        event_id = str(uuid.uuid4())
        stmt = insert(outbox_events_tbl).values(
            id=event_id,
            event_type=event_type,
            event_data=event_data,
            order_id=order_id,
            status="pending",
            created_at=datetime.now(timezone.utc)
        )
        await self._session.execute(stmt)
        return event_id

    async def get_pending(self, limit: int = 10) -> List[dict]:
        result = await self._session.execute(
            select(outbox_events_tbl)
            .where(outbox_events_tbl.c.status == "pending")
            .order_by(outbox_events_tbl.c.created_at.asc())
            .limit(limit)
        )
        rows = result.fetchall()

        return [
            {
                "id": row.id,
                "event_type": row.event_type,
                "event_data": row.event_data,
                "order_id": row.order_id
            }
            for row in rows
        ]

    async def get_for_order(self, order_id: str) -> List[dict]:
        result = await self._session.execute(
            select(outbox_events_tbl)
            .where(outbox_events_tbl.c.order_id == order_id)
            .order_by(outbox_events_tbl.c.created_at.asc())
        )
        return [
            {"id": row.id, "event_type": row.event_type, "event_data": row.event_data, "status": row.status}
            for row in result.fetchall()
        ]

    async def mark_as_published(self, event_id: str) -> None:
        stmt = (
            update(outbox_events_tbl)
            .where(outbox_events_tbl.c.id == event_id)
            .values(status="published")
        )
        await self._session.execute(stmt)

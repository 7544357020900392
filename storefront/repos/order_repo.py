# storefront/repos/order_repo.py
from datetime import datetime, timezone
from typing import List

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from storefront.data.models.order import OrderModel, ORDER_PAID, ORDER_UNPAID
from storefront.data.models.order_item import OrderItemModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_order(self, order: OrderModel, items: List[OrderItemModel]) -> OrderModel:
        # order row and its items go out in the same flush; caller commits
        order.items = items
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(OrderModel.id == order_id)
        ).scalar_one_or_none()

    def list_orders_by_user(self, user_id: str) -> List[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .options(selectinload(OrderModel.items))
                .where(OrderModel.user_id == user_id)
                .order_by(OrderModel.created_at.desc(), OrderModel.id)
            ).scalars().all()
        )

    def set_session_reference(self, order_id: str, session_id: str) -> int:
        res = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == ORDER_UNPAID)
            .values(payment_session_id=session_id, updated_at=datetime.now(timezone.utc))
        )
        return res.rowcount

    def mark_paid(self, order_id: str, session_id: str) -> int:
        # e.g. update orders set status='paid' where id=:id and status='unpaid'
        # only one caller can get rowcount 1
        res = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == ORDER_UNPAID)
            .values(
                status=ORDER_PAID,
                payment_session_id=session_id,
                updated_at=datetime.now(timezone.utc),
            )
        )
        return res.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()

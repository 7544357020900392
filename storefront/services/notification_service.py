# storefront/services/notification_service.py
from storefront.celery_worker import celery_app
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Sends the order-paid confirmation.
    Work happens in Celery; the reconciler calls this once per unpaid -> paid.
    """

    @staticmethod
    def send_order_paid(user_id: str, order_id: str, customer_email: str):
        send_order_paid_task.delay(user_id, order_id, customer_email)


@celery_app.task(name="storefront.services.notification_service.send_order_paid_task")
def send_order_paid_task(user_id: str, order_id: str, customer_email: str):
    """
    Celery task - a real deployment would send the confirmation email here.
    For now it only logs.
    """
    logger.info(f"[NOTIFICATION] {customer_email} (user {user_id}): order {order_id} paid, preparing bouquet")

    return {"user_id": user_id, "order_id": order_id, "status": "sent"}

from app.domain.account_operations import account_ops
from app.domain.event_operations import event_ops
from app.domain.notification_operations import notification_ops

__all__ = [
    "account_ops",
    "event_ops",
    "notification_ops",
]

from app.integrations.notification_client import get_notification_client
from app.services.notification_service import Notifier


def get_notifier() -> Notifier:
    return Notifier(get_notification_client())

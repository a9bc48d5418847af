import logging

logger = logging.getLogger("portal.notifications")


def send_confirmation(name: str, email: str, event_title: str) -> None:
    # Simulated: nothing leaves the process.
    logger.info("notification.simulated to=%s name=%s event=%r", email, name, event_title)

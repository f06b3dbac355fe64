# app/notifications.py

"""Client-facing booking confirmation over WhatsApp."""

import logging
import re
from urllib.parse import quote

from .models import Appointment

logger = logging.getLogger(__name__)


def confirmation_message(appointment: Appointment, service_name: str, professional_name: str) -> str:
    return (
        "Hello! I would like to confirm my appointment:\n\n"
        f"Name: {appointment.client_name}\n"
        f"Phone: {appointment.client_phone}\n"
        f"Service: {service_name}\n"
        f"Professional: {professional_name}\n"
        f"Date: {appointment.appointment_date.strftime('%d %B %Y')}\n"
        f"Time: {appointment.start_time}\n\n"
        "Looking forward to your confirmation!"
    )


def build_whatsapp_link(whatsapp_number: str, message: str) -> str:
    digits = re.sub(r"\D", "", whatsapp_number)
    return f"https://wa.me/{digits}?text={quote(message, safe='')}"


def notify_booking_created(whatsapp_number: str, message: str):
    """Fire-and-forget dispatch; failures are logged, never raised."""
    try:
        link = build_whatsapp_link(whatsapp_number, message)
        logger.info(f"Booking confirmation ready for {whatsapp_number}: {link}")
    except Exception as e:
        logger.error(f"Failed to dispatch booking confirmation: {e}")

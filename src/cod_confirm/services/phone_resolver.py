"""Phone number normalization and WhatsApp chat id resolution."""

import re
from typing import Optional

from cod_confirm.config.constants import CHAT_ID_SUFFIX, LOCAL_NUMBER_LENGTH
from cod_confirm.config.settings import settings
from cod_confirm.core.exceptions import MessagingError
from cod_confirm.core.logger import setup_logger
from cod_confirm.integrations.whatsapp import MessagingClient

logger = setup_logger(__name__)

NON_DIGITS = re.compile(r"\D")


def digits_only(raw: Optional[str]) -> str:
    return NON_DIGITS.sub("", raw or "")


def normalize_phone(raw: Optional[str], country_code: Optional[str] = None) -> str:
    """
    Canonical digits for a raw phone string.

    Local 10-digit numbers get the default country code; anything longer is
    assumed to carry its own.

    >>> normalize_phone("+55 (11) 91234-5678")
    '5511912345678'
    >>> normalize_phone("3001234567", "57")
    '573001234567'
    """
    phone = digits_only(raw)
    if len(phone) == LOCAL_NUMBER_LENGTH:
        phone = (country_code if country_code is not None else settings.default_country_code) + phone
    return phone


async def resolve_chat_id(
    messaging: MessagingClient,
    raw_phone: Optional[str],
    country_code: Optional[str] = None,
) -> Optional[str]:
    """
    Resolve the chat id to message for a raw phone string.

    Returns:
        The chat id, or None when the number is not registered on WhatsApp.
        A failed lookup falls back to "<digits>@c.us" so a send is still
        attempted.
    """
    phone = normalize_phone(raw_phone, country_code)
    if not phone:
        logger.warning("Order has no usable phone number")
        return None

    try:
        chat_id = await messaging.get_number_id(phone)
    except MessagingError as e:
        logger.warning(f"getNumberId failed for {phone}, falling back to manual chat id: {e}")
        return f"{phone}{CHAT_ID_SUFFIX}"

    if not chat_id:
        logger.info(f"Number not registered on WhatsApp: {phone}")
        return None

    logger.debug(f"Resolved chat id {chat_id} for {phone}")
    return chat_id

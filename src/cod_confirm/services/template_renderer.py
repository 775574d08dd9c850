"""Message template rendering.

Templates use named placeholders written either as {name} or {{name}}; both
spellings go through the same pattern. Unknown placeholders stay verbatim.
"""

import random
import re
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cod_confirm.config.constants import ADDRESS_NOT_PROVIDED, DEFAULT_TEMPLATES, GREETINGS
from cod_confirm.config.settings import settings
from cod_confirm.core.logger import setup_logger
from cod_confirm.db.models import LineItem, Order
from cod_confirm.db.repository import TemplateRepository

logger = setup_logger(__name__)

# {name} or {{name}}, never a mix like {name}}
PLACEHOLDER_PATTERN = re.compile(r"\{(\{)?\s*(\w+)\s*(?(1)\})\}")

# Placeholder name -> canonical field
PLACEHOLDER_ALIASES = {
    "greeting": "greeting",
    "nome_cliente": "customer_name",
    "customer_name": "customer_name",
    "numero_pedido": "order_number",
    "orderNumber": "order_number",
    "order_number": "order_number",
    "itens": "items",
    "items": "items",
    "endereco": "address",
    "address": "address",
    "valor_total": "total",
    "total": "total",
    "url_loja": "store_url",
    "store_url": "store_url",
}

# Symbols for currencies whose prices carry no minor units in messages
CURRENCY_SYMBOLS = {
    "COP": "$",
    "MXN": "$",
    "CLP": "$",
    "ARS": "$",
    "BRL": "R$",
    "USD": "US$",
    "EUR": "€",
    "PEN": "S/",
}


def format_currency(value: Optional[float], currency: Optional[str] = None) -> str:
    """
    Format an amount the way es-CO does, without decimals.

    >>> format_currency(150000, "COP")
    '$ 150.000'
    """
    code = (currency or settings.default_currency or "COP").upper()
    amount = f"{round(value or 0):,}".replace(",", ".")
    symbol = CURRENCY_SYMBOLS.get(code, code)
    return f"{symbol} {amount}"


def merge_items(items: Iterable[LineItem]) -> List[Dict]:
    """Group items by name: quantities are summed, the first price wins."""
    merged: Dict[str, Dict] = {}
    for item in items:
        if item.name in merged:
            merged[item.name]["quantity"] += item.quantity
        else:
            merged[item.name] = {
                "name": item.name,
                "quantity": item.quantity,
                "price": item.price,
            }
    return list(merged.values())


def format_items_listing(items: Iterable[LineItem], currency: Optional[str] = None) -> str:
    """One "- 2x Name ($ 10.000)" line per distinct product."""
    return "\n".join(
        f"- {item['quantity']}x {item['name']} ({format_currency(item['price'], currency)})"
        for item in merge_items(items)
    )


def summarize_address(order: Order) -> str:
    """Street line of the delivery address."""
    street = order.address_data.get("address1")
    return street or ADDRESS_NOT_PROVIDED


def render_template(
    template: Optional[str],
    order: Order,
    items_listing: str = "",
    rng: Optional[random.Random] = None,
    store_url: Optional[str] = None,
) -> str:
    """
    Substitute an order's fields into a message template.

    Args:
        template: Template text with {name} / {{name}} placeholders
        order: Order providing customer, number, address and total
        items_listing: Precomputed product listing for the items placeholder
        rng: Random source for the greeting (module random by default)
        store_url: Value for url_loja (settings.store_url by default)

    Returns:
        The rendered text
    """
    if not template:
        return ""

    chooser = rng or random
    values: Dict[str, Callable[[], str]] = {
        "greeting": lambda: chooser.choice(GREETINGS),
        "customer_name": lambda: order.customer_name or "",
        "order_number": lambda: str(order.order_number or ""),
        "items": lambda: items_listing,
        "address": lambda: summarize_address(order),
        "total": lambda: format_currency(order.total_value, order.currency),
        "store_url": lambda: store_url if store_url is not None else settings.store_url,
    }

    def substitute(match: re.Match) -> str:
        field = PLACEHOLDER_ALIASES.get(match.group(2))
        if field is None:
            return match.group(0)
        return values[field]()

    return PLACEHOLDER_PATTERN.sub(substitute, template)


async def load_template(session_factory: async_sessionmaker[AsyncSession], template_id: str) -> str:
    """Stored content of a template, or its built-in default when missing or unreadable."""
    default = DEFAULT_TEMPLATES.get(template_id, {}).get("content", "")
    try:
        async with session_factory() as session:
            template = await TemplateRepository(session).get(template_id)
    except SQLAlchemyError as e:
        logger.warning(f"Could not load template {template_id}, using default: {e}")
        return default

    if template is None or not template.content:
        logger.debug(f"Template {template_id} not stored, using default")
        return default
    return template.content


async def render_order_message(
    session_factory: async_sessionmaker[AsyncSession],
    template_id: str,
    order: Order,
) -> str:
    """Load a template and render it for an order with its merged item listing."""
    template = await load_template(session_factory, template_id)
    listing = format_items_listing(order.items, order.currency)
    return render_template(template, order, items_listing=listing)

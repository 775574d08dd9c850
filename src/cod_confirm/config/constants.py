"""
Centralized application constants.

Single point of truth for the order lifecycle, timing thresholds and the
default message texts shared by the webhook handler, the reply handler and
the reminder sweep.
"""

from datetime import timedelta

# ==============================================================================
# ORDER LIFECYCLE
# ==============================================================================

STATUS_PENDING = "pending"
STATUS_AWAITING_RESPONSE = "awaiting_response"
STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"
STATUS_FAILED = "failed"

ORDER_STATUSES = [
    STATUS_PENDING,
    STATUS_AWAITING_RESPONSE,
    STATUS_CONFIRMED,
    STATUS_CANCELLED,
    STATUS_FAILED,
]

# No automated transition may leave these
TERMINAL_STATUSES = [STATUS_CONFIRMED, STATUS_CANCELLED]

# Customer replies
REPLY_CONFIRM = "1"
REPLY_CANCEL = "2"
REPLY_ADDRESS_UPDATE = "3"
REPLY_OPTIONS = [REPLY_CONFIRM, REPLY_CANCEL, REPLY_ADDRESS_UPDATE]

# Timeline action labels
TIMELINE_CREATED = "Pedido criado"
TIMELINE_MESSAGE_SENT = "Mensagem de confirmação enviada"
TIMELINE_NOT_REGISTERED = "Número sem WhatsApp"
TIMELINE_CONFIRMED = "Pedido confirmado"
TIMELINE_CANCELLED = "Pedido cancelado"
TIMELINE_ADDRESS_UPDATE = "Atualização de endereço solicitada"
TIMELINE_FIRST_REMINDER = "Primeiro lembrete enviado"
TIMELINE_SECOND_REMINDER = "Segundo lembrete enviado"
TIMELINE_AUTO_CANCELLED = "Pedido cancelado automaticamente"

# ==============================================================================
# REMINDER / AUTO-CANCEL THRESHOLDS
# ==============================================================================

FIRST_REMINDER_AFTER = timedelta(hours=2)

# Measured from the first reminder (6 hours after the initial message)
SECOND_REMINDER_AFTER = timedelta(hours=4)

AUTO_CANCEL_AFTER = timedelta(hours=24)

# Sweep lease timeout when Redis guards the sweep (seconds)
SWEEP_LOCK_TIMEOUT_SECONDS = 3600

# ==============================================================================
# PHONE MATCHING
# ==============================================================================

MATCH_SUFFIX_LENGTH = 8

LOCAL_NUMBER_LENGTH = 10

CHAT_ID_SUFFIX = "@c.us"

# ==============================================================================
# MESSAGE TEMPLATES
# ==============================================================================

TEMPLATE_CONFIRMATION = "confirmation"
TEMPLATE_CONFIRMED = "confirmed"
TEMPLATE_CANCELLED = "cancelled"
TEMPLATE_ADDRESS_UPDATE = "address_update"
TEMPLATE_FIRST_REMINDER = "first_reminder"
TEMPLATE_SECOND_REMINDER = "second_reminder"
TEMPLATE_AUTO_CANCELLED = "auto_cancelled"

ADDRESS_NOT_PROVIDED = "Dirección no informada"

GREETINGS = [
    "Hola",
    "Buenos días",
    "Buenas tardes",
    "Buenas noches",
    "Saludos",
    "Hola, ¿cómo estás?",
]

# Used when a template row is missing from the database
DEFAULT_TEMPLATES = {
    TEMPLATE_CONFIRMATION: {
        "name": "Mensagem de Confirmação",
        "content": (
            "Olá {{nome_cliente}}! 👋\n\n"
            "Recebemos seu pedido #{{numero_pedido}} e gostaríamos de confirmar as informações:\n\n"
            "📦 *Itens:*\n{{itens}}\n\n"
            "📍 *Endereço de entrega:*\n{{endereco}}\n\n"
            "💰 *Valor total:* {{valor_total}}\n\n"
            "Por favor, confirme seu pedido respondendo:\n\n"
            "✅ *1* - Confirmar pedido\n"
            "❌ *2* - Cancelar pedido\n"
            "📍 *3* - Atualizar endereço\n\n"
            "Aguardamos sua resposta!"
        ),
        "variables": ["nome_cliente", "numero_pedido", "itens", "endereco", "valor_total"],
    },
    TEMPLATE_CONFIRMED: {
        "name": "Pedido Confirmado",
        "content": "✅ Pedido confirmado com sucesso! Logo enviaremos o rastreio.",
        "variables": [],
    },
    TEMPLATE_CANCELLED: {
        "name": "Pedido Cancelado",
        "content": "❌ Pedido cancelado e estornado na loja com sucesso.",
        "variables": [],
    },
    TEMPLATE_ADDRESS_UPDATE: {
        "name": "Atualização de Endereço",
        "content": "📍 Por favor, envie o novo endereço completo nesta conversa.",
        "variables": [],
    },
    TEMPLATE_FIRST_REMINDER: {
        "name": "Primeiro Lembrete (2h)",
        "content": (
            "👋 *Hola {{nome_cliente}}*\n\n"
            "Te recordamos que aún no has confirmado tu pedido #{{numero_pedido}}.\n\n"
            "Responde *1* para Confirmar, *2* para Cancelar o *3* para Corregir Dirección."
        ),
        "variables": ["nome_cliente", "numero_pedido"],
    },
    TEMPLATE_SECOND_REMINDER: {
        "name": "Segundo Lembrete (6h - Urgente)",
        "content": (
            "⚠️ *Hola {{nome_cliente}}*\n\n"
            "Tu pedido #{{numero_pedido}} aún no ha sido confirmado.\n\n"
            "⏰ *IMPORTANTE:* Si no confirmas tu pedido en las próximas horas, "
            "será cancelado automáticamente.\n\n"
            "Responde *1* para Confirmar, *2* para Cancelar o *3* para Corregir Dirección."
        ),
        "variables": ["nome_cliente", "numero_pedido"],
    },
    TEMPLATE_AUTO_CANCELLED: {
        "name": "Auto-Cancelamento (24h)",
        "content": (
            "❌ *Hola {{nome_cliente}}*\n\n"
            "Tu pedido #{{numero_pedido}} ha sido cancelado automáticamente por falta de confirmación.\n\n"
            "Si deseas realizar un nuevo pedido, visita nuestra tienda:\n{{url_loja}}"
        ),
        "variables": ["nome_cliente", "numero_pedido", "url_loja"],
    },
}

TEMPLATE_IDS = list(DEFAULT_TEMPLATES)

# ==============================================================================
# SHOPIFY
# ==============================================================================

SHOPIFY_ORDER_GID_PREFIX = "gid://shopify/Order/"

# Maximum orders per page (Shopify limit is 250)
ORDER_LIST_PAGE_SIZE = 250

GUEST_CUSTOMER_NAME = "Guest"
SYNC_CUSTOMER_NAME = "Cliente"

from app.db.models.commissions import Commission
from app.db.models.establishments import Establishment
from app.db.models.franchises import Franchise
from app.db.models.gateway_customers import GatewayCustomer
from app.db.models.gift_cards import GiftCard
from app.db.models.outbox_events import OutboxEvent
from app.db.models.processed_payment_events import ProcessedPaymentEvent
from app.db.models.transactions import Transaction

__all__ = [
    "Commission",
    "Establishment",
    "Franchise",
    "GatewayCustomer",
    "GiftCard",
    "OutboxEvent",
    "ProcessedPaymentEvent",
    "Transaction",
]

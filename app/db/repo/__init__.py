from app.db.repo.commissions_repo import CommissionsRepo
from app.db.repo.directory_repo import DirectoryRepo
from app.db.repo.gateway_customers_repo import GatewayCustomersRepo
from app.db.repo.gift_cards_repo import GiftCardsRepo
from app.db.repo.outbox_events_repo import OutboxEventsRepo
from app.db.repo.processed_payment_events_repo import ProcessedPaymentEventsRepo
from app.db.repo.transactions_repo import TransactionsRepo

__all__ = [
    "CommissionsRepo",
    "DirectoryRepo",
    "GatewayCustomersRepo",
    "GiftCardsRepo",
    "OutboxEventsRepo",
    "ProcessedPaymentEventsRepo",
    "TransactionsRepo",
]

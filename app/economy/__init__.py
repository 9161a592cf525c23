from app.economy.commissions import CommissionSettlementService
from app.economy.gift_cards import GiftCardService
from app.economy.ledger import LedgerStore

__all__ = [
    "CommissionSettlementService",
    "GiftCardService",
    "LedgerStore",
]

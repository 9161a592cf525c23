from app.workers.tasks.commission_charges import create_commission_charge, sweep_pending_commissions
from app.workers.tasks.gift_card_maintenance import expire_gift_cards
from app.workers.tasks.payment_webhooks import process_payment_webhook
from app.workers.tasks.retention_cleanup import run_retention_cleanup

__all__ = [
    "create_commission_charge",
    "expire_gift_cards",
    "process_payment_webhook",
    "run_retention_cleanup",
    "sweep_pending_commissions",
]

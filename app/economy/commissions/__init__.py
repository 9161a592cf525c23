from app.economy.commissions.service import CommissionSettlementService

__all__ = ["CommissionSettlementService"]

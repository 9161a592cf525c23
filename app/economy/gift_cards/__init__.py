from app.economy.gift_cards.service import GiftCardService

__all__ = ["GiftCardService"]

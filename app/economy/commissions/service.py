from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.commissions import Commission
from app.db.repo.commissions_repo import CommissionsRepo
from app.db.repo.directory_repo import DirectoryRepo
from app.db.repo.gateway_customers_repo import GatewayCustomersRepo
from app.economy.commissions.events import SettlementEvent, parse_gateway_event
from app.economy.commissions.state_machine import (
    Transition,
    transition_for,
    webhook_transition_for,
)
from app.economy.commissions.types import (
    ChargeRequestResult,
    CommissionStatus,
    Effect,
    FailureReason,
    PaymentMethod,
    WebhookApplyResult,
)
from app.economy.errors import GatewayError, InvalidOperationError, NotFoundError
from app.services.payment_gateway import ChargeRequest, CustomerProfile, PaymentGateway
from app.services.payment_webhooks import extract_external_reference, extract_paid_at

logger = structlog.get_logger(__name__)


def _commission_not_found(**details: str) -> NotFoundError:
    return NotFoundError("Commission not found", code="E_COMMISSION_NOT_FOUND", details=details)


class CommissionSettlementService:
    @staticmethod
    def _apply_transition(
        commission: Commission,
        transition: Transition,
        *,
        payment: dict[str, Any] | None,
        now_utc: datetime,
    ) -> None:
        previous = CommissionStatus(commission.status)
        commission.status = transition.next_status.value
        commission.updated_at = now_utc

        match transition.next_status:
            case CommissionStatus.PAID:
                if previous is not CommissionStatus.PAID:
                    commission.paid_at = (extract_paid_at(payment) if payment else None) or now_utc
            case CommissionStatus.FAILED:
                commission.failure_reason = (
                    transition.failure_reason.value if transition.failure_reason is not None else None
                )
            case CommissionStatus.CHARGED:
                commission.failure_reason = None
                charge_ref = (payment or {}).get("id")
                if commission.charge_ref is None and isinstance(charge_ref, str) and charge_ref:
                    commission.charge_ref = charge_ref
            case CommissionStatus.PENDING:
                pass

    @staticmethod
    async def _ensure_customer_ref(
        session: AsyncSession,
        *,
        establishment_id: int,
        gateway: PaymentGateway,
        now_utc: datetime,
    ) -> str:
        customer_ref = await GatewayCustomersRepo.get_customer_ref(session, establishment_id)
        if customer_ref is not None:
            return customer_ref

        establishment = await DirectoryRepo.get_establishment(session, establishment_id)
        if establishment is None:
            raise NotFoundError(
                "Establishment not found",
                code="E_ESTABLISHMENT_NOT_FOUND",
                details={"establishment_id": establishment_id},
            )

        created_ref = await gateway.create_customer(
            CustomerProfile(
                establishment_id=establishment.id,
                name=establishment.name,
                document=establishment.document,
                email=establishment.email,
            )
        )
        logger.info(
            "payment_gateway_customer_created",
            establishment_id=establishment_id,
            customer_ref=created_ref,
        )
        return await GatewayCustomersRepo.save_customer_ref(
            session,
            establishment_id=establishment_id,
            customer_ref=created_ref,
            now_utc=now_utc,
        )

    @staticmethod
    async def request_charge(
        session: AsyncSession,
        *,
        commission_id: UUID,
        payment_method: PaymentMethod,
        due_date: date,
        extra: dict[str, Any] | None = None,
        gateway: PaymentGateway,
        now_utc: datetime,
    ) -> ChargeRequestResult:
        """Create the gateway charge for a pending or failed commission.

        Gateway failures are recorded on the commission and returned on the result instead of
        being raised, so the caller can commit the failure state first and then call
        ``result.raise_for_gateway_error()``.
        """
        commission = await CommissionsRepo.get_by_id_for_update(session, commission_id)
        if commission is None:
            raise _commission_not_found(commission_id=str(commission_id))

        status = CommissionStatus(commission.status)
        created = transition_for(status, SettlementEvent.CHARGE_CREATED)
        if created.effect is not Effect.APPLY:
            raise InvalidOperationError(
                f"Commission is {status.value}",
                code="E_COMMISSION_NOT_CHARGEABLE",
                details={"status": status.value},
            )
        if commission.amount <= 0:
            raise InvalidOperationError(
                "Commission amount is zero",
                code="E_COMMISSION_ZERO_AMOUNT",
                details={"commission_id": str(commission.id)},
            )

        try:
            customer_ref = await CommissionSettlementService._ensure_customer_ref(
                session,
                establishment_id=commission.establishment_id,
                gateway=gateway,
                now_utc=now_utc,
            )
            charge = await gateway.create_charge(
                ChargeRequest(
                    customer_ref=customer_ref,
                    payment_method=payment_method.value,
                    value=commission.amount,
                    due_date=due_date,
                    description=f"Commission {commission.rate}% on gift card recharge",
                    external_reference=str(commission.id),
                    extra=dict(extra or {}),
                )
            )
        except GatewayError as exc:
            failed = transition_for(status, SettlementEvent.CHARGE_FAILED)
            if failed.effect is Effect.APPLY:
                CommissionSettlementService._apply_transition(
                    commission,
                    failed,
                    payment=None,
                    now_utc=now_utc,
                )
            commission.failure_reason = FailureReason.GATEWAY_ERROR.value
            commission.charge_attempts += 1
            commission.updated_at = now_utc
            await session.flush()
            logger.warning(
                "commission_charge_failed",
                commission_id=str(commission.id),
                charge_attempts=commission.charge_attempts,
                provider_status=exc.provider_status,
                errors=exc.errors,
            )
            return ChargeRequestResult(commission=commission, payment={}, gateway_error=exc)

        CommissionSettlementService._apply_transition(
            commission,
            created,
            payment={"id": charge.charge_ref},
            now_utc=now_utc,
        )
        commission.charge_ref = charge.charge_ref
        commission.payment_method = payment_method.value
        commission.due_date = due_date
        commission.invoice_url = charge.invoice_url
        commission.charge_attempts += 1
        await session.flush()

        logger.info(
            "commission_charged",
            commission_id=str(commission.id),
            charge_ref=charge.charge_ref,
            payment_method=payment_method.value,
            amount=str(commission.amount),
        )
        payment = {
            "charge_ref": charge.charge_ref,
            "status": charge.status,
            "invoice_url": charge.invoice_url,
            **charge.invoice_details,
        }
        return ChargeRequestResult(commission=commission, payment=payment)

    @staticmethod
    async def _find_for_payment_for_update(
        session: AsyncSession,
        payment: dict[str, Any],
    ) -> Commission | None:
        charge_ref = payment.get("id")
        if isinstance(charge_ref, str) and charge_ref:
            commission = await CommissionsRepo.get_by_charge_ref_for_update(session, charge_ref)
            if commission is not None:
                return commission

        external_reference = extract_external_reference(payment)
        if external_reference is None:
            return None
        try:
            commission_id = UUID(external_reference)
        except ValueError:
            return None
        commission = await CommissionsRepo.get_by_id_for_update(session, commission_id)
        if commission is not None and commission.charge_ref not in (None, charge_ref):
            logger.warning(
                "payment_webhook_stale_charge",
                commission_id=str(commission.id),
                charge_ref=charge_ref,
                current_charge_ref=commission.charge_ref,
            )
            return None
        return commission

    @staticmethod
    async def apply_webhook_event(
        session: AsyncSession,
        *,
        event: str,
        payment: dict[str, Any],
        now_utc: datetime,
    ) -> WebhookApplyResult:
        commission = await CommissionSettlementService._find_for_payment_for_update(session, payment)
        if commission is None:
            raise _commission_not_found(
                charge_ref=str(payment.get("id")),
                external_reference=str(payment.get("externalReference")),
            )

        settlement_event = parse_gateway_event(event)
        status = CommissionStatus(commission.status)
        transition = webhook_transition_for(status, settlement_event)
        log = logger.bind(
            commission_id=str(commission.id),
            gateway_event=event,
            settlement_event=settlement_event.value,
            status=status.value,
        )

        match transition.effect:
            case Effect.APPLY:
                CommissionSettlementService._apply_transition(
                    commission,
                    transition,
                    payment=payment,
                    now_utc=now_utc,
                )
                await session.flush()
                log.info("commission_settlement_applied", next_status=transition.next_status.value)
            case Effect.NOOP if settlement_event is SettlementEvent.UNRECOGNIZED:
                log.info("payment_webhook_event_unrecognized")
            case Effect.NOOP if transition.flagged:
                log.warning("commission_settlement_event_flagged")
            case Effect.NOOP:
                log.info("commission_settlement_noop")
            case Effect.REJECT:
                log.warning("commission_settlement_event_rejected")

        return WebhookApplyResult(
            commission_id=commission.id,
            outcome=transition.effect,
            status=CommissionStatus(commission.status),
            event=settlement_event.value,
        )

    @staticmethod
    async def cancel_commission(
        session: AsyncSession,
        *,
        commission_id: UUID,
        now_utc: datetime,
    ) -> Commission:
        commission = await CommissionsRepo.get_by_id_for_update(session, commission_id)
        if commission is None:
            raise _commission_not_found(commission_id=str(commission_id))

        status = CommissionStatus(commission.status)
        transition = transition_for(status, SettlementEvent.OPERATOR_CANCELLED)
        if transition.effect is Effect.REJECT:
            raise InvalidOperationError(
                f"Commission is {status.value}",
                code="E_COMMISSION_NOT_CANCELLABLE",
                details={"status": status.value},
            )
        if transition.effect is Effect.APPLY:
            CommissionSettlementService._apply_transition(
                commission,
                transition,
                payment=None,
                now_utc=now_utc,
            )
            await session.flush()
            logger.info("commission_cancelled", commission_id=str(commission.id))
        return commission

    @staticmethod
    async def get_for_establishment(
        session: AsyncSession,
        *,
        commission_id: UUID,
        establishment_id: int,
    ) -> Commission:
        commission = await CommissionsRepo.get_by_id(session, commission_id)
        if commission is None or commission.establishment_id != establishment_id:
            raise _commission_not_found(commission_id=str(commission_id))
        return commission

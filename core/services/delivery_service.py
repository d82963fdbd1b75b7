"""
Delivery orchestration: debit, render, log, send, then commit or compensate.

A send spans a database and an external provider, so it cannot be one
transaction. Instead each recipient runs a two-step protocol:

1. Reserve: debit the account (metered channels only).
2. Commit or compensate: mark the log sent on transport success, otherwise
   mark it failed and refund the reservation.

Every path after a successful debit ends in either `sent` or a refund
attempt. A refund that itself fails is logged at CRITICAL and published as
RefundFailed, because the account is then short until someone reconciles it.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Mapping, Protocol, Sequence
from uuid import UUID

from core.config import NotifyConfig
from core.event_bus import EventBus
from core.events import RefundFailed
from core.exceptions import (
    InsufficientBalance, RecipientUnreachable, TemplateInactive, TemplateNotFound, TransportFailure,
    UnresolvedContext,
)
from core.models import (
    BulkResult, Channel, DeliveryLog, DeliveryOutcome, DeliveryResult,
    LedgerTransaction, Recipient, Template, TransportResult,
)
from core.repositories.delivery_repository import DeliveryRepository
from core.repositories.directory_repository import DirectoryRepository
from core.repositories.template_repository import TemplateRepository
from core.services.ledger_service import LedgerService
from core.templating import resolve, strip_html, unresolved_placeholders
from core.variables import VariableContext, student_section, system_section

from clients.sms_client import normalize_phone

logger = logging.getLogger(__name__)

# Contact preference value that allows each channel
_PREFERENCE_FOR_CHANNEL = {
    Channel.EMAIL: ("email",),
    Channel.SMS: ("text", "sms"),
}


class Transport(Protocol):
    """Channel transport contract. Only `success` is inspected."""

    def send(self, to: str, subject: str | None, body: str) -> TransportResult:
        ...


class DeliveryService:
    """
    Sends templates to recipients over their channel transport.

    Usage:
        service = DeliveryService(templates, deliveries, directory, ledger,
                                  {Channel.EMAIL: email, Channel.SMS: sms},
                                  config, event_bus)
        result = service.send_one(template_id, student_id, ctx, account_id=instructor_account)
    """

    def __init__(
        self,
        templates: TemplateRepository,
        deliveries: DeliveryRepository,
        directory: DirectoryRepository,
        ledger: LedgerService,
        transports: Mapping[Channel, Transport],
        config: NotifyConfig,
        event_bus: EventBus,
    ):
        self.templates = templates
        self.deliveries = deliveries
        self.directory = directory
        self.ledger = ledger
        self.transports = dict(transports)
        self.config = config
        self.event_bus = event_bus

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def send_one(
        self,
        template_id: UUID,
        recipient_id: UUID,
        ctx: Mapping | None = None,
        account_id: UUID | None = None,
        trigger_event: str | None = None,
    ) -> DeliveryResult:
        """
        Deliver one template to one recipient.

        Args:
            template_id: Template to send
            recipient_id: User to send it to
            ctx: Variable sections; the recipient's own `student` section is
                layered on top
            account_id: Credit account to charge on metered channels
            trigger_event: Label stored on the delivery log

        Returns:
            DeliveryResult describing the outcome. Per-recipient problems
            never raise.

        Raises:
            TemplateNotFound: If the template does not exist
            TemplateInactive: If the template is switched off
        """
        template = self._load_template(template_id)
        return self._deliver_safely(template, recipient_id, ctx, account_id, trigger_event)

    def send_bulk(
        self,
        template_id: UUID,
        recipient_ids: Sequence[UUID],
        ctx: Mapping | None = None,
        account_id: UUID | None = None,
        trigger_event: str | None = None,
    ) -> BulkResult:
        """
        Deliver one template to many recipients, independently.

        Recipients are dispatched on a bounded thread pool. The call returns
        only after every recipient has finished; results keep the input order.

        Raises:
            TemplateNotFound: If the template does not exist
            TemplateInactive: If the template is switched off
        """
        template = self._load_template(template_id)
        return self._fan_out(template, recipient_ids, ctx, account_id, trigger_event)

    def send_bulk_to(
        self,
        template_id: UUID,
        recipients: Sequence[Recipient],
        ctx: Mapping | None = None,
        account_id: UUID | None = None,
        trigger_event: str | None = None,
    ) -> BulkResult:
        """
        send_bulk for recipients that are not users in the directory.

        Course signups only exist as contact rows, so callers pass them
        already mapped onto Recipient. Same protocol and ordering as send_bulk.
        """
        template = self._load_template(template_id)
        return self._fan_out(template, recipients, ctx, account_id, trigger_event)

    def _fan_out(
        self,
        template: Template,
        targets: Sequence[UUID | Recipient],
        ctx: Mapping | None,
        account_id: UUID | None,
        trigger_event: str | None,
    ) -> BulkResult:
        if not targets:
            return BulkResult(sent=0, failed=0, results=[])

        workers = min(self.config.bulk_max_workers, len(targets))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify-bulk") as executor:
            futures = [
                executor.submit(
                    self._deliver_safely, template, target, ctx, account_id, trigger_event
                )
                for target in targets
            ]
            results = [future.result() for future in futures]

        sent = sum(1 for result in results if result.success)
        logger.info(
            f"Bulk send of template {template.id} ({template.channel.value}): "
            f"{sent} sent, {len(results) - sent} failed"
        )
        return BulkResult(sent=sent, failed=len(results) - sent, results=results)

    # -------------------------------------------------------------------------
    # Pre-flight checks
    # -------------------------------------------------------------------------

    def _load_template(self, template_id: UUID) -> Template:
        template = self.templates.get(template_id)
        if template is None:
            raise TemplateNotFound(template_id)
        if not template.is_active:
            raise TemplateInactive(template_id)
        if template.channel not in self.transports:
            raise ValueError(f"No transport configured for channel {template.channel.value}")
        return template

    def _load_recipient(self, recipient_id: UUID) -> Recipient:
        recipient = self.directory.get_recipient(recipient_id)
        if recipient is None:
            raise UnresolvedContext("recipient", recipient_id)
        return recipient

    @staticmethod
    def allows_channel(recipient: Recipient, channel: Channel) -> bool:
        """No stated preference means every channel is fine."""
        if not recipient.preferred_contact_methods:
            return True
        return any(
            preference in recipient.preferred_contact_methods
            for preference in _PREFERENCE_FOR_CHANNEL[channel]
        )

    def _address_for(self, recipient: Recipient, channel: Channel) -> str:
        """
        Raises:
            RecipientUnreachable: If the recipient opted out of the channel or
                has no usable address for it
        """
        if not self.allows_channel(recipient, channel):
            raise RecipientUnreachable(
                f"Recipient {recipient.id} does not accept {channel.value} notifications"
            )

        if channel == Channel.EMAIL:
            email = (recipient.email or "").strip()
            if "@" not in email:
                raise RecipientUnreachable(f"Recipient {recipient.id} has no valid email address")
            return email

        phone = normalize_phone(recipient.phone)
        if phone is None:
            raise RecipientUnreachable(f"Recipient {recipient.id} has no valid phone number")
        return phone

    # -------------------------------------------------------------------------
    # Per-recipient protocol
    # -------------------------------------------------------------------------

    def _deliver_safely(
        self,
        template: Template,
        target: UUID | Recipient,
        ctx: Mapping | None,
        account_id: UUID | None,
        trigger_event: str | None,
    ) -> DeliveryResult:
        """Run one delivery; anything that escapes becomes an ERROR result."""
        recipient_id = target.id if isinstance(target, Recipient) else target
        try:
            return self._deliver(template, target, ctx, account_id, trigger_event)
        except Exception as e:
            logger.exception(f"Delivery of template {template.id} to {recipient_id} failed unexpectedly")
            return DeliveryResult(
                recipient_id=recipient_id,
                success=False,
                outcome=DeliveryOutcome.ERROR,
                error=str(e),
            )

    def _deliver(
        self,
        template: Template,
        target: UUID | Recipient,
        ctx: Mapping | None,
        account_id: UUID | None,
        trigger_event: str | None,
    ) -> DeliveryResult:
        channel = template.channel
        recipient_id = target.id if isinstance(target, Recipient) else target

        try:
            recipient = target if isinstance(target, Recipient) else self._load_recipient(target)
            to_address = self._address_for(recipient, channel)
        except (UnresolvedContext, RecipientUnreachable) as e:
            logger.info(f"Skipping {channel.value} to {recipient_id}: {e}")
            return DeliveryResult(
                recipient_id=recipient_id, success=False, outcome=e.outcome, error=str(e)
            )

        # Reserve
        debit = None
        if account_id is not None and self.config.is_metered(channel):
            try:
                debit = self.ledger.debit(
                    account_id,
                    self.config.cost_for(channel),
                    f"{channel.value} '{template.name}' to {recipient_id}",
                )
            except InsufficientBalance as e:
                logger.warning(f"Not sending {channel.value} to {recipient_id}: {e}")
                return DeliveryResult(
                    recipient_id=recipient_id, success=False, outcome=e.outcome, error=str(e)
                )

        # Commit or compensate
        delivery: DeliveryLog | None = None
        transport_result: TransportResult | None = None
        try:
            subject, body = self._render(template, recipient, ctx)

            delivery = self.deliveries.create_pending(
                template_id=template.id,
                recipient_id=recipient_id,
                channel=channel,
                to_address=to_address,
                resolved_subject=subject,
                resolved_body=body,
                account_id=account_id if debit else None,
                ledger_transaction_id=debit.id if debit else None,
                trigger_event=trigger_event,
            )
            if debit is not None:
                self.ledger.link_delivery(debit.id, delivery.id)

            transport_result = self._call_transport(channel, to_address, subject, body)

            self.deliveries.mark_sent(delivery.id, transport_result.provider_reference)
            logger.info(f"Sent {channel.value} '{template.name}' to {recipient_id} (delivery {delivery.id})")
            return DeliveryResult(
                recipient_id=recipient_id,
                success=True,
                outcome=DeliveryOutcome.SENT,
                delivery_id=delivery.id,
                external_reference=transport_result.provider_reference,
                transaction_id=debit.id if debit else None,
            )

        except TransportFailure as e:
            error = str(e)
            outcome = e.outcome
            logger.warning(f"Transport failed for {channel.value} to {recipient_id}: {error}")
            self._mark_failed_quietly(delivery, error)

        except Exception as e:
            if transport_result is not None and transport_result.success:
                # The provider accepted it; refunding would give away a sent message
                logger.exception(f"Delivery {delivery.id} was sent but could not be marked sent")
                return DeliveryResult(
                    recipient_id=recipient_id,
                    success=True,
                    outcome=DeliveryOutcome.SENT,
                    delivery_id=delivery.id,
                    external_reference=transport_result.provider_reference,
                    transaction_id=debit.id if debit else None,
                    error=f"Sent, but delivery log not updated: {e}",
                )

            logger.exception(f"Delivery of {channel.value} to {recipient_id} failed")
            error = str(e)
            outcome = DeliveryOutcome.ERROR
            if delivery is not None:
                self._mark_failed_quietly(delivery, error)

        result = DeliveryResult(
            recipient_id=recipient_id,
            success=False,
            outcome=outcome,
            delivery_id=delivery.id if delivery else None,
            transaction_id=debit.id if debit else None,
            error=error,
        )
        if debit is not None:
            self._compensate(account_id, debit, delivery, result)
        return result

    def _render(
        self,
        template: Template,
        recipient: Recipient,
        ctx: Mapping | None,
    ) -> tuple[str | None, str]:
        """Resolve subject and body; SMS bodies lose their HTML."""
        variables = (
            VariableContext({"system": system_section(self.config.company, self.config.timezone)})
            .merge(ctx)
            .merge({"student": student_section(recipient)})
        )

        subject = resolve(template.subject, variables) if template.channel == Channel.EMAIL else None
        body = resolve(template.body, variables)
        if template.channel == Channel.SMS:
            body = strip_html(body)

        leftovers = unresolved_placeholders(body)
        if leftovers:
            logger.warning(f"Template {template.id} rendered with unresolved placeholders: {leftovers}")

        return subject, body

    def _call_transport(self, channel: Channel, to: str, subject: str | None, body: str) -> TransportResult:
        """
        Raises:
            TransportFailure: If the transport reports failure, raises or times out
        """
        try:
            result = self.transports[channel].send(to, subject, body)
        except Exception as e:
            logger.error(f"{channel.value} transport raised for {to}: {e}")
            raise TransportFailure(str(e)) from e
        if not result.success:
            raise TransportFailure(result.error or "Transport reported failure")
        return result

    def _mark_failed_quietly(self, delivery: DeliveryLog, error: str) -> None:
        try:
            self.deliveries.mark_failed(delivery.id, error)
        except Exception:
            logger.exception(f"Could not mark delivery {delivery.id} failed")

    def _compensate(
        self,
        account_id: UUID,
        debit: LedgerTransaction,
        delivery: DeliveryLog | None,
        result: DeliveryResult,
    ) -> None:
        """Refund the reservation; record on the result whether that worked."""
        reason = f"Send failed: {result.error}"
        try:
            refund = self.ledger.refund(account_id, debit.id, reason)
            result.refund_transaction_id = refund.id
        except Exception as e:
            result.refund_failed = True
            logger.critical(
                f"REFUND FAILED for debit {debit.id} on account {account_id} "
                f"({debit.amount} unit(s), delivery {delivery.id if delivery else None}): {e}. "
                f"Manual reconciliation required."
            )
            self.event_bus.publish(RefundFailed.create(
                account_id=account_id,
                debit_transaction_id=debit.id,
                delivery_id=delivery.id if delivery else None,
                amount=debit.amount,
                error=str(e),
            ))

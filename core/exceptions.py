"""Typed exceptions for notification dispatch failures."""

from uuid import UUID

from core.models.delivery import DeliveryOutcome


class NotificationError(Exception):
    """Base class for dispatch engine errors."""

    outcome = DeliveryOutcome.ERROR


class TemplateNotFound(NotificationError):
    """Template id does not exist. Configuration error; fails before any debit."""

    def __init__(self, template_id: UUID):
        self.template_id = template_id
        super().__init__(f"Template {template_id} not found")


class TemplateInactive(NotificationError):
    """Template exists but is switched off. Configuration error."""

    def __init__(self, template_id: UUID):
        self.template_id = template_id
        super().__init__(f"Template {template_id} is not active")


class RecipientUnreachable(NotificationError):
    """No usable address for the chosen channel, or the recipient opted out."""

    outcome = DeliveryOutcome.RECIPIENT_UNREACHABLE


class UnresolvedContext(NotificationError):
    """
    A required entity for variable building could not be loaded.

    Optional entities that are simply absent default to empty sections
    and never raise this.
    """

    outcome = DeliveryOutcome.UNRESOLVED_CONTEXT

    def __init__(self, entity: str, entity_id: UUID):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} {entity_id} not found")


class InsufficientBalance(NotificationError):
    """Account cannot cover the debit. Not retryable without a top-up."""

    outcome = DeliveryOutcome.CREDIT_EXHAUSTED

    def __init__(self, account_id: UUID, requested: int):
        self.account_id = account_id
        self.requested = requested
        super().__init__(
            f"Account {account_id} has insufficient balance for {requested} unit(s)"
        )


class TransportFailure(NotificationError):
    """
    Channel transport reported failure or raised.

    Raised and handled inside the delivery protocol, where it triggers the
    refund. Callers only see it as the transport_failure outcome.
    """

    outcome = DeliveryOutcome.TRANSPORT_FAILURE


class LedgerError(NotificationError):
    """
    Ledger call that can never succeed as issued.

    Refunding an unknown transaction, a non-debit, or another account's
    debit. Indicates a caller bug, not a business outcome.
    """

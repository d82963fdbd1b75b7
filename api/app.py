"""FastAPI application factory and service wiring."""

from fastapi import FastAPI

from api.credits import create_credits_router
from api.errors import register_error_handlers
from api.jobs import create_jobs_router
from api.middleware import ApiKeyMiddleware, RequestIDMiddleware
from api.notifications import create_notifications_router
from core.config import NotifyConfig


def build_services(config: NotifyConfig | None = None) -> dict:
    """
    Wire clients, repositories and services from Vault secrets.

    Also subscribes the booking-event trigger handler and the refund
    failure alert on the returned bus.
    """
    from clients import (
        EmailGatewayClient, PostgresClient, TwilioSmsClient, ValkeyClient,
        get_database_url, get_email_config, get_sms_config, get_valkey_url,
    )
    from core.event_bus import EventBus, alert_on_refund_failure
    from core.handlers.event_trigger_handler import handle_event_trigger
    from core.models import Channel
    from core.repositories.delivery_repository import DeliveryRepository
    from core.repositories.directory_repository import DirectoryRepository
    from core.repositories.ledger_repository import LedgerRepository
    from core.repositories.milestone_repository import MilestoneRepository
    from core.repositories.signup_repository import SignupRepository
    from core.repositories.template_repository import TemplateRepository
    from core.repositories.trigger_repository import TriggerRepository
    from core.services.delivery_service import DeliveryService
    from core.services.ledger_service import LedgerService
    from core.services.milestone_scheduler import MilestoneScheduler
    from core.services.signup_service import SignupNotificationService
    from core.variables import VariableContextBuilder

    config = config or NotifyConfig()

    postgres = PostgresClient(get_database_url(), max_connections=config.bulk_max_workers + 4)
    valkey = ValkeyClient(get_valkey_url())
    event_bus = EventBus()
    alert_on_refund_failure(event_bus)

    templates = TemplateRepository(postgres)
    directory = DirectoryRepository(postgres)
    ledger = LedgerService(LedgerRepository(postgres))
    transports = {
        Channel.EMAIL: EmailGatewayClient(**get_email_config(), from_name=config.company.name),
        Channel.SMS: TwilioSmsClient(**get_sms_config(), max_length=config.sms_max_length),
    }
    context_builder = VariableContextBuilder(directory, config.company, config.timezone)

    delivery = DeliveryService(
        templates, DeliveryRepository(postgres), directory, ledger, transports, config, event_bus
    )
    scheduler = MilestoneScheduler(
        directory, MilestoneRepository(postgres), templates, delivery,
        context_builder, valkey, config, event_bus,
    )
    signups = SignupNotificationService(
        SignupRepository(postgres), directory, templates, delivery, context_builder
    )

    trigger_handler = handle_event_trigger(TriggerRepository(postgres), context_builder, delivery)
    event_bus.subscribe("EnrollmentConfirmed", trigger_handler)
    event_bus.subscribe("AppointmentBooked", trigger_handler)

    return {
        "delivery": delivery,
        "context_builder": context_builder,
        "ledger": ledger,
        "milestone_scheduler": scheduler,
        "signups": signups,
        "event_bus": event_bus,
    }


def create_app(services: dict, api_key: str) -> FastAPI:
    """
    Build the HTTP surface over already-wired services.

    Args:
        services: Dict with keys delivery, context_builder, ledger,
            milestone_scheduler, signups
        api_key: Shared key required in X-API-Key
    """
    app = FastAPI(title="Course Notify")
    app.add_middleware(ApiKeyMiddleware, api_key=api_key)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.include_router(create_notifications_router(services), prefix="/api")
    app.include_router(create_credits_router(services), prefix="/api")
    app.include_router(create_jobs_router(services), prefix="/api")

    return app

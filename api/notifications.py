"""POST /api/notifications/*: manual and admin sends."""

from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from api.base import success_response


class SendRequest(BaseModel):
    template_id: UUID
    recipient_id: UUID
    account_id: UUID | None = None
    course_id: UUID | None = None
    schedule_id: UUID | None = None
    enrollment_id: UUID | None = None
    appointment_id: UUID | None = None
    # Extra sections layered over the built context, e.g. {"custom": {"note": "..."}}
    variables: dict[str, dict[str, str | int | float | None]] | None = None


class BulkSendRequest(BaseModel):
    template_id: UUID
    recipient_ids: list[UUID] = Field(..., min_length=1, max_length=1000)
    account_id: UUID | None = None
    course_id: UUID | None = None
    schedule_id: UUID | None = None
    variables: dict[str, dict[str, str | int | float | None]] | None = None


class AnnounceScheduleRequest(BaseModel):
    account_id: UUID | None = None


def create_notifications_router(services: dict) -> APIRouter:
    router = APIRouter()

    delivery_svc = services["delivery"]
    context_builder = services["context_builder"]
    signup_svc = services["signups"]

    @router.post("/notifications/send")
    def send_one(request: Request, body: SendRequest):
        # Sync route: the send blocks on the database and the provider
        ctx = context_builder.build(
            course_id=body.course_id,
            schedule_id=body.schedule_id,
            enrollment_id=body.enrollment_id,
            appointment_id=body.appointment_id,
        ).merge(body.variables)

        result = delivery_svc.send_one(
            body.template_id,
            body.recipient_id,
            ctx,
            account_id=body.account_id,
            trigger_event="manual",
        )
        return success_response(result.model_dump(mode="json")).model_dump(mode="json")

    @router.post("/notifications/send-bulk")
    def send_bulk(request: Request, body: BulkSendRequest):
        ctx = context_builder.build(
            course_id=body.course_id,
            schedule_id=body.schedule_id,
        ).merge(body.variables)

        result = delivery_svc.send_bulk(
            body.template_id,
            body.recipient_ids,
            ctx,
            account_id=body.account_id,
            trigger_event="manual_bulk",
        )
        return success_response(result.model_dump(mode="json")).model_dump(mode="json")

    @router.post("/notifications/schedules/{schedule_id}/notify-signups")
    def notify_signups(request: Request, schedule_id: UUID, body: AnnounceScheduleRequest | None = None):
        result = signup_svc.notify_signups_for_schedule(
            schedule_id, account_id=body.account_id if body else None
        )
        data = result.model_dump(mode="json")
        data["success"] = result.success
        return success_response(data).model_dump(mode="json")

    return router

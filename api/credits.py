"""GET/POST /api/credits: balance lookup and top-ups."""

from uuid import UUID

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field

from api.base import success_response


class GrantRequest(BaseModel):
    amount: int = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=500)


def create_credits_router(services: dict) -> APIRouter:
    router = APIRouter()

    ledger_svc = services["ledger"]

    @router.get("/credits/{account_id}")
    async def get_account(
        request: Request,
        account_id: UUID,
        history: int = Query(0, ge=0, le=500),
    ):
        account = ledger_svc.get_account(account_id)
        if account is None:
            raise ValueError(f"Credit account {account_id} not found")

        data = account.model_dump(mode="json")
        if history:
            data["transactions"] = [
                tx.model_dump(mode="json") for tx in ledger_svc.history(account_id, history)
            ]
        return success_response(data).model_dump(mode="json")

    @router.post("/credits/{account_id}/grant")
    async def grant(request: Request, account_id: UUID, body: GrantRequest):
        transaction = ledger_svc.grant(account_id, body.amount, body.reason)
        return success_response(transaction.model_dump(mode="json")).model_dump(mode="json")

    return router

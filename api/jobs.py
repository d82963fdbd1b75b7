"""POST /api/jobs/*: entry points for the external cron."""

from fastapi import APIRouter, Request

from api.base import success_response


def create_jobs_router(services: dict) -> APIRouter:
    router = APIRouter()

    scheduler = services["milestone_scheduler"]

    @router.post("/jobs/milestones/run")
    def run_milestones(request: Request):
        # Sync route: FastAPI runs it in the threadpool, the run can take a while
        summary = scheduler.run()
        return success_response(summary.model_dump(mode="json")).model_dump(mode="json")

    return router

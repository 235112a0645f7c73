"""
api/routes/v1/records.py -- Applied / Completed test record routes.

Both record kinds expose the same surface, so one factory builds a router per
kind ("applied" or "completed"):

  GET    /{kind}                      -- list (page, limit, sort)
  POST   /{kind}                      -- create; user_id defaults to the caller
  GET    /users/{user_id}/{kind}      -- one user's records
  POST   /users/{user_id}/{kind}      -- create for that user
  GET    /{kind}/{record_id}          -- detail
  PATCH  /{kind}/{record_id}          -- update (owner or admin)
  DELETE /{kind}/{record_id}          -- delete (owner or admin)

Authorization decisions (ownership, team membership) live in the services and
auth/policy.py; the routes only resolve the caller and shape the envelope.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import RecordCreate, RecordUpdate, record_out, success
from auth.dependencies import get_current_user
from auth.models import User
from placement.models import ListQuery
from placement.service import RecordService


def build_record_router(kind: str) -> APIRouter:
    """Return the router for one record kind. The service lives at app.state.<kind>."""

    # All record routes require authentication.
    router = APIRouter(dependencies=[Depends(get_current_user)])

    def service(request: Request) -> RecordService:
        return getattr(request.app.state, kind)

    def list_query(
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=100, ge=1, le=500),
        sort: Optional[str] = Query(default=None, max_length=40),
    ) -> ListQuery:
        return ListQuery(page=page, limit=limit, sort=sort)

    def _list(svc: RecordService, user_id: Optional[int], query: ListQuery) -> dict:
        records = [record_out(r) for r in svc.list(user_id=user_id, query=query)]
        return success({"documents": records}, results=len(records))

    def _create(svc: RecordService, user_id: int, test_id: int, current_user: User) -> dict:
        record = svc.create(user_id, test_id, current_user)
        return success({"document": record_out(record)})

    @router.get(f"/{kind}", name=f"list_{kind}")
    def list_records(
        svc: RecordService = Depends(service),
        query: ListQuery = Depends(list_query),
    ) -> dict:
        return _list(svc, None, query)

    @router.post(f"/{kind}", status_code=201, name=f"create_{kind}")
    def create_record(
        body: RecordCreate,
        svc: RecordService = Depends(service),
        current_user: User = Depends(get_current_user),
    ) -> dict:
        return _create(svc, body.user_id or current_user.id, body.test_id, current_user)

    @router.get(f"/users/{{user_id}}/{kind}", name=f"list_user_{kind}")
    def list_user_records(
        user_id: int,
        svc: RecordService = Depends(service),
        query: ListQuery = Depends(list_query),
    ) -> dict:
        return _list(svc, user_id, query)

    @router.post(f"/users/{{user_id}}/{kind}", status_code=201, name=f"create_user_{kind}")
    def create_user_record(
        user_id: int,
        body: RecordCreate,
        svc: RecordService = Depends(service),
        current_user: User = Depends(get_current_user),
    ) -> dict:
        return _create(svc, user_id, body.test_id, current_user)

    @router.get(f"/{kind}/{{record_id}}", name=f"get_{kind}")
    def get_record(record_id: int, svc: RecordService = Depends(service)) -> dict:
        return success({"document": record_out(svc.get(record_id))})

    @router.patch(f"/{kind}/{{record_id}}", name=f"update_{kind}")
    def update_record(
        record_id: int,
        body: RecordUpdate,
        svc: RecordService = Depends(service),
        current_user: User = Depends(get_current_user),
    ) -> dict:
        record = svc.update(record_id, body.model_dump(exclude_none=True), current_user)
        return success({"document": record_out(record)})

    @router.delete(f"/{kind}/{{record_id}}", status_code=204, name=f"delete_{kind}")
    def delete_record(
        record_id: int,
        svc: RecordService = Depends(service),
        current_user: User = Depends(get_current_user),
    ) -> Response:
        svc.delete(record_id, current_user)
        return Response(status_code=204)

    return router


applied_router = build_record_router("applied")
completed_router = build_record_router("completed")

"""
Tasks Router: the user's actionable task list generated from issue details.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from seller_dashboard.auth import RequestContext, get_request_context
from seller_dashboard.database import get_db
from seller_dashboard.models import TaskStatus
from seller_dashboard.services.task_service import TaskService

logger = logging.getLogger(__name__)

router = APIRouter()


class TaskStatusRequest(BaseModel):
    status: TaskStatus


@router.get("")
async def list_tasks(
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    row = await TaskService(db).get_user_tasks(ctx.user_id)
    if row is None:
        return {"success": True, "data": {"userId": ctx.user_id, "tasks": [], "taskRenewalDate": None}}
    return {"success": True, "data": row.to_dict()}


@router.patch("/{task_id}")
async def update_task(
    task_id: str,
    req: TaskStatusRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        row = await TaskService(db).update_task_status(ctx.user_id, task_id, req.status.value)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    logger.info(f"Task {task_id} for user {ctx.user_id} set to {req.status.value}")
    return {"success": True, "data": row.to_dict()}

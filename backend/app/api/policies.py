import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.orm import Session
from sqlalchemy import or_

from app.core.config import settings
from app.core.database import get_db
from app.core.security import get_current_user, require_admin
from app.models.customer import Client
from app.models.policy import Policy
from app.models.user import User
from app.schemas.policy import (
    BulkUploadResult,
    Policy as PolicySchema,
    PolicyCreate,
    PolicyDetail,
    PolicyUpdate,
)
from app.services.bulk_import import TEMPLATE_CSV, BulkImportService
from app.services.ledger import PolicyLedgerService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/policies", tags=["policies"])


def _is_admin(user: User) -> bool:
    return (user.role or "").lower() == "admin"


@router.get("/", response_model=List[PolicySchema])
def list_policies(
    status_filter: Optional[str] = Query(None, alias="status"),
    company_id: Optional[int] = None,
    policy_type: Optional[str] = None,
    q: str = Query("", description="Search by policy number or customer name"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(Policy)
    if not _is_admin(current_user):
        query = query.filter(Policy.agent_id == current_user.id)
    if status_filter:
        query = query.filter(Policy.status == status_filter)
    if company_id:
        query = query.filter(Policy.company_id == company_id)
    if policy_type:
        query = query.filter(Policy.policy_type.ilike(policy_type))
    if q.strip():
        search = f"%{q.strip()}%"
        query = query.filter(
            or_(Policy.policy_number.ilike(search), Policy.customer_name.ilike(search))
        )
    return (
        query.order_by(Policy.created_at.desc(), Policy.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )


@router.get("/bulk-upload/template")
def download_template(current_user: User = Depends(get_current_user)):
    return Response(
        content=TEMPLATE_CSV,
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=policy_upload_template.csv"},
    )


@router.post("/bulk-upload", response_model=BulkUploadResult)
async def bulk_upload(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Import policies from a CSV. Each row is validated and created on its own;
    the response lists the rows that failed.
    """
    require_admin(current_user)
    if not file.filename or not file.filename.lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="Only CSV files are allowed")

    content = await file.read()
    if len(content) > settings.MAX_UPLOAD_SIZE:
        raise HTTPException(
            status_code=400,
            detail=f"File too large (max {settings.MAX_UPLOAD_SIZE // (1024 * 1024)}MB)",
        )
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="File must be UTF-8 encoded")

    result = BulkImportService(db).import_csv(text)
    logger.info(
        f"Bulk upload {file.filename} by {current_user.username}: "
        f"{result.successful} created, {result.failed} failed"
    )
    return {
        "successful": result.successful,
        "failed": result.failed,
        "errors": [{"row": e.row, "message": e.message} for e in result.errors],
    }


@router.get("/{policy_id}", response_model=PolicyDetail)
def get_policy(
    policy_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    policy = db.query(Policy).filter(Policy.id == policy_id).first()
    if not policy or (not _is_admin(current_user) and policy.agent_id != current_user.id):
        raise HTTPException(status_code=404, detail="Policy not found")
    return policy


@router.post("/", response_model=PolicySchema, status_code=status.HTTP_201_CREATED)
def create_policy(
    data: PolicyCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Record a sale. The new-business commission and first renewal are created with it."""
    if data.client_id:
        client = (
            db.query(Client)
            .filter(Client.id == data.client_id, Client.agent_id == current_user.id)
            .first()
        )
        if not client:
            raise HTTPException(status_code=404, detail="Client not found")

    payload = data.model_dump()
    payload["agent_id"] = current_user.id
    return PolicyLedgerService(db).create_policy(payload)


@router.put("/{policy_id}", response_model=PolicySchema)
def update_policy(
    policy_id: int,
    data: PolicyUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Edit customer details and notes. Financial fields are rejected."""
    agent_id = None if _is_admin(current_user) else current_user.id
    return PolicyLedgerService(db).update_details(
        policy_id, data.model_dump(exclude_unset=True), agent_id=agent_id
    )


@router.post("/{policy_id}/cancel", response_model=PolicySchema)
def cancel_policy(
    policy_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    agent_id = None if _is_admin(current_user) else current_user.id
    return PolicyLedgerService(db).cancel_policy(policy_id, agent_id=agent_id)

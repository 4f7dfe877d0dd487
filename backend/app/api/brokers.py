"""Broker (agent) administration. Admin only."""
import logging
from typing import List
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy import or_

from app.api.deps import get_notifier
from app.core.database import get_db
from app.core.security import get_current_user, get_password_hash, require_admin
from app.models.user import User, UserRole
from app.schemas.user import BrokerCreate, BrokerUpdate, User as UserSchema
from app.services.notifications import Notifier

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/brokers", tags=["brokers"])

AGENT_CODE_PREFIX = "AGT"


def next_agent_code(db: Session) -> str:
    """AGT0001, AGT0002, ... continuing from the highest code issued."""
    codes = [
        code for (code,) in db.query(User.agent_code)
        .filter(User.agent_code.like(f"{AGENT_CODE_PREFIX}%"))
        .all()
    ]
    highest = 0
    for code in codes:
        suffix = code[len(AGENT_CODE_PREFIX):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{AGENT_CODE_PREFIX}{highest + 1:04d}"


def _get_broker(db: Session, broker_id: int) -> User:
    broker = (
        db.query(User)
        .filter(User.id == broker_id, User.role == UserRole.AGENT.value)
        .first()
    )
    if not broker:
        raise HTTPException(status_code=404, detail="Broker not found")
    return broker


@router.get("/", response_model=List[UserSchema])
def list_brokers(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(current_user)
    return (
        db.query(User)
        .filter(User.role == UserRole.AGENT.value)
        .order_by(User.agent_code)
        .all()
    )


@router.post("/", response_model=UserSchema, status_code=status.HTTP_201_CREATED)
def create_broker(
    data: BrokerCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Register a broker with the next agent code and send a welcome SMS."""
    require_admin(current_user)
    existing = (
        db.query(User)
        .filter(or_(User.email == data.email, User.username == data.username))
        .first()
    )
    if existing:
        raise HTTPException(status_code=400, detail="Email or username already registered")

    broker = User(
        email=data.email,
        username=data.username,
        full_name=data.full_name,
        phone=data.phone,
        hashed_password=get_password_hash(data.password),
        role=UserRole.AGENT.value,
        agent_code=next_agent_code(db),
        is_active=True,
    )
    db.add(broker)
    db.commit()
    db.refresh(broker)
    logger.info(f"Broker {broker.username} registered as {broker.agent_code}")

    background_tasks.add_task(notifier.notify_welcome, broker)
    return broker


@router.put("/{broker_id}", response_model=UserSchema)
def update_broker(
    broker_id: int,
    data: BrokerUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(current_user)
    broker = _get_broker(db, broker_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(broker, field, value)
    db.commit()
    db.refresh(broker)
    return broker


@router.delete("/{broker_id}")
def deactivate_broker(
    broker_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(current_user)
    broker = _get_broker(db, broker_id)
    broker.is_active = False
    db.commit()
    return {"status": "deactivated", "id": broker.id}

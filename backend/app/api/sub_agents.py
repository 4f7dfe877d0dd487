from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.security import get_current_user
from app.models.customer import SubAgent
from app.models.user import User
from app.schemas.party import SubAgent as SubAgentSchema, SubAgentCreate, SubAgentUpdate

router = APIRouter(prefix="/api/sub-agents", tags=["sub-agents"])


def next_sub_agent_code(db: Session, agent: User) -> str:
    """<agent_code>-S01, -S02, ... per agent."""
    count = db.query(SubAgent).filter(SubAgent.agent_id == agent.id).count()
    return f"{agent.agent_code or f'U{agent.id}'}-S{count + 1:02d}"


def _get_own_sub_agent(db: Session, sub_agent_id: int, agent: User) -> SubAgent:
    sub_agent = (
        db.query(SubAgent)
        .filter(SubAgent.id == sub_agent_id, SubAgent.agent_id == agent.id)
        .first()
    )
    if not sub_agent:
        raise HTTPException(status_code=404, detail="Sub-agent not found")
    return sub_agent


@router.get("/", response_model=List[SubAgentSchema])
def list_sub_agents(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return (
        db.query(SubAgent)
        .filter(SubAgent.agent_id == current_user.id)
        .order_by(SubAgent.sub_agent_code)
        .all()
    )


@router.post("/", response_model=SubAgentSchema, status_code=status.HTTP_201_CREATED)
def create_sub_agent(
    data: SubAgentCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    percentage = data.commission_percentage
    if percentage is None:
        percentage = settings.DEFAULT_SUB_AGENT_PERCENTAGE

    sub_agent = SubAgent(
        agent_id=current_user.id,
        sub_agent_code=next_sub_agent_code(db, current_user),
        name=data.name,
        phone=data.phone,
        email=data.email,
        commission_percentage=percentage,
        is_active=True,
    )
    db.add(sub_agent)
    db.commit()
    db.refresh(sub_agent)
    return sub_agent


@router.put("/{sub_agent_id}", response_model=SubAgentSchema)
def update_sub_agent(
    sub_agent_id: int,
    data: SubAgentUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Percentage changes apply to future commissions only."""
    sub_agent = _get_own_sub_agent(db, sub_agent_id, current_user)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(sub_agent, field, value)
    db.commit()
    db.refresh(sub_agent)
    return sub_agent


@router.delete("/{sub_agent_id}")
def deactivate_sub_agent(
    sub_agent_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    sub_agent = _get_own_sub_agent(db, sub_agent_id, current_user)
    sub_agent.is_active = False
    db.commit()
    return {"status": "deactivated", "id": sub_agent.id}

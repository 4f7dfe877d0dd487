from typing import List
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from sqlalchemy import or_

from app.core.database import get_db
from app.core.security import get_current_user
from app.models.customer import Client
from app.models.policy import Policy
from app.models.user import User
from app.schemas.party import Client as ClientSchema, ClientCreate, ClientUpdate

router = APIRouter(prefix="/api/clients", tags=["clients"])


def _get_own_client(db: Session, client_id: int, agent: User) -> Client:
    client = (
        db.query(Client)
        .filter(Client.id == client_id, Client.agent_id == agent.id)
        .first()
    )
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


@router.get("/", response_model=List[ClientSchema])
def list_clients(
    q: str = Query("", description="Search by name, email, or phone"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(Client).filter(Client.agent_id == current_user.id)
    if q.strip():
        search = f"%{q.strip()}%"
        query = query.filter(
            or_(
                Client.name.ilike(search),
                Client.email.ilike(search),
                Client.phone.ilike(search),
            )
        )
    return query.order_by(Client.name).offset((page - 1) * page_size).limit(page_size).all()


@router.get("/{client_id}", response_model=ClientSchema)
def get_client(
    client_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _get_own_client(db, client_id, current_user)


@router.post("/", response_model=ClientSchema, status_code=status.HTTP_201_CREATED)
def create_client(
    data: ClientCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    count = db.query(Client).filter(Client.agent_id == current_user.id).count()
    client = Client(
        **data.model_dump(),
        agent_id=current_user.id,
        client_code=f"{current_user.agent_code or f'U{current_user.id}'}-C{count + 1:04d}",
    )
    db.add(client)
    db.commit()
    db.refresh(client)
    return client


@router.put("/{client_id}", response_model=ClientSchema)
def update_client(
    client_id: int,
    data: ClientUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    client = _get_own_client(db, client_id, current_user)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(client, field, value)
    db.commit()
    db.refresh(client)
    return client


@router.delete("/{client_id}")
def delete_client(
    client_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    client = _get_own_client(db, client_id, current_user)
    if db.query(Policy.id).filter(Policy.client_id == client.id).first():
        raise HTTPException(status_code=400, detail="Client has policies and cannot be deleted")
    if client.ledger_entries:
        raise HTTPException(status_code=400, detail="Client has khata entries and cannot be deleted")
    db.delete(client)
    db.commit()
    return {"status": "deleted", "id": client_id}

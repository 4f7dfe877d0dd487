from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.security import get_current_user
from app.models.khata import EntryType
from app.models.user import User
from app.schemas.khata import (
    ClientKhata,
    CollectionCreate,
    DebitCreate,
    LedgerEntry as LedgerEntrySchema,
    LedgerEntryUpdate,
    PendingCollection,
)
from app.services.khata import KhataService

router = APIRouter(prefix="/api/khata", tags=["khata"])


@router.get("/pending", response_model=List[PendingCollection])
def pending_collections(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return KhataService(db, current_user.id).pending_collections()


@router.get("/client/{client_id}", response_model=ClientKhata)
def client_statement(
    client_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return KhataService(db, current_user.id).statement(client_id, start_date, end_date)


@router.post("/debit", response_model=LedgerEntrySchema, status_code=status.HTTP_201_CREATED)
def record_debit(
    data: DebitCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return KhataService(db, current_user.id).record(
        entry_type=EntryType.DEBIT, **data.model_dump()
    )


@router.post("/collection", response_model=LedgerEntrySchema, status_code=status.HTTP_201_CREATED)
def record_collection(
    data: CollectionCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return KhataService(db, current_user.id).record(
        entry_type=EntryType.CREDIT, **data.model_dump()
    )


@router.put("/{entry_id}", response_model=LedgerEntrySchema)
def update_entry(
    entry_id: int,
    data: LedgerEntryUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return KhataService(db, current_user.id).update_entry(entry_id, **data.model_dump())


@router.delete("/{entry_id}")
def delete_entry(
    entry_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    KhataService(db, current_user.id).delete_entry(entry_id)
    return {"status": "deleted", "id": entry_id}

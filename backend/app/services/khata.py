"""Client khata (dues and collections) kept by each agent.

A client's pending amount is the sum of debits minus the sum of credits; it is
always derived from the entries, never stored.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from app.core.errors import AppError, NotFound
from app.models.customer import Client
from app.models.khata import EntryType, LedgerEntry
from app.models.policy import Policy
from app.services.commission import to_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class InvalidLedgerEntry(AppError):
    status_code = 422
    code = "VALIDATION_ERROR"


def signed_amount():
    return case(
        (LedgerEntry.entry_type == EntryType.DEBIT.value, LedgerEntry.amount),
        else_=-LedgerEntry.amount,
    )


class KhataService:

    def __init__(self, db: Session, agent_id: int):
        self.db = db
        self.agent_id = agent_id

    def _client(self, client_id: int) -> Client:
        client = (
            self.db.query(Client)
            .filter(Client.id == client_id, Client.agent_id == self.agent_id)
            .first()
        )
        if not client:
            raise NotFound("Client not found")
        return client

    def _entry(self, entry_id: int) -> LedgerEntry:
        entry = (
            self.db.query(LedgerEntry)
            .filter(LedgerEntry.id == entry_id, LedgerEntry.agent_id == self.agent_id)
            .first()
        )
        if not entry:
            raise NotFound("Ledger entry not found")
        return entry

    def record(
        self,
        client_id: int,
        entry_type: EntryType,
        amount,
        description: Optional[str] = None,
        entry_date: Optional[date] = None,
        policy_id: Optional[int] = None,
        payment_mode: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> LedgerEntry:
        client = self._client(client_id)
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidLedgerEntry("Amount must be positive")
        if policy_id is not None:
            policy = self.db.query(Policy).filter(Policy.id == policy_id).first()
            if not policy or policy.client_id != client.id:
                raise NotFound("Policy not found for this client")

        if not description:
            if entry_type == EntryType.CREDIT:
                description = f"Payment received via {payment_mode or 'cash'}"
            else:
                description = "Manual debit entry"

        entry = LedgerEntry(
            agent_id=self.agent_id,
            client_id=client.id,
            policy_id=policy_id,
            entry_type=entry_type.value,
            amount=amount,
            description=description,
            payment_mode=payment_mode,
            reference=reference,
            entry_date=entry_date or date.today(),
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        logger.info(f"Khata {entry_type.value} of {amount} for client {client.client_code or client.id}")
        return entry

    def pending_amount(self, client_id: int) -> Decimal:
        total = (
            self.db.query(func.coalesce(func.sum(signed_amount()), 0))
            .filter(LedgerEntry.client_id == client_id)
            .scalar()
        )
        return Decimal(str(total))

    def statement(self, client_id: int, start: Optional[date] = None, end: Optional[date] = None) -> dict:
        """Entries in the window with a running balance, newest first."""
        client = self._client(client_id)
        query = self.db.query(LedgerEntry).filter(LedgerEntry.client_id == client.id)
        if start:
            query = query.filter(LedgerEntry.entry_date >= start)
        if end:
            query = query.filter(LedgerEntry.entry_date <= end)
        entries = query.order_by(LedgerEntry.entry_date, LedgerEntry.id).all()

        balance = ZERO
        debit_total = ZERO
        credit_total = ZERO
        lines = []
        for entry in entries:
            amount = Decimal(str(entry.amount))
            if entry.entry_type == EntryType.DEBIT.value:
                balance += amount
                debit_total += amount
            else:
                balance -= amount
                credit_total += amount
            lines.append({"entry": entry, "running_balance": balance})
        lines.reverse()

        return {
            "client": client,
            "statement": lines,
            "total_debit": debit_total,
            "total_collection": credit_total,
            "pending_amount": self.pending_amount(client.id),
        }

    def pending_collections(self) -> List[dict]:
        """Clients that still owe money, largest balance first."""
        pending = func.sum(signed_amount())
        rows = (
            self.db.query(Client, pending)
            .join(LedgerEntry, LedgerEntry.client_id == Client.id)
            .filter(Client.agent_id == self.agent_id)
            .group_by(Client.id)
            .having(pending > 0)
            .order_by(pending.desc())
            .all()
        )
        return [
            {
                "client_id": client.id,
                "client_code": client.client_code,
                "name": client.name,
                "phone": client.phone,
                "pending_amount": Decimal(str(amount)),
            }
            for client, amount in rows
        ]

    def update_entry(self, entry_id: int, description: Optional[str] = None,
                     entry_date: Optional[date] = None) -> LedgerEntry:
        """Only the narrative fields change; amounts are corrected by a new entry."""
        entry = self._entry(entry_id)
        if description is not None:
            entry.description = description
        if entry_date is not None:
            entry.entry_date = entry_date
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def delete_entry(self, entry_id: int):
        entry = self._entry(entry_id)
        self.db.delete(entry)
        self.db.commit()
        logger.info(f"Khata entry {entry_id} deleted")

"""Client khata: dues, collections and the running balance."""
from datetime import date
from decimal import Decimal

import pytest

from app.core.errors import NotFound
from app.models.khata import EntryType
from app.services.khata import InvalidLedgerEntry, KhataService
from app.services.ledger import PolicyLedgerService


@pytest.fixture
def khata(db, agent):
    return KhataService(db, agent.id)


@pytest.fixture
def customer(make_client, agent):
    return make_client(agent)


class TestRecord:
    def test_debit_then_collection(self, khata, customer):
        khata.record(customer.id, EntryType.DEBIT, Decimal("15000"), entry_date=date(2024, 1, 1))
        credit = khata.record(customer.id, EntryType.CREDIT, Decimal("5000"),
                              payment_mode="upi", entry_date=date(2024, 1, 10))

        assert credit.description == "Payment received via upi"
        assert khata.pending_amount(customer.id) == Decimal("10000")

    def test_amount_must_be_positive(self, khata, customer):
        with pytest.raises(InvalidLedgerEntry):
            khata.record(customer.id, EntryType.DEBIT, Decimal("0"))

    def test_other_agents_client(self, db, customer, make_agent):
        other = KhataService(db, make_agent().id)
        with pytest.raises(NotFound):
            other.record(customer.id, EntryType.DEBIT, Decimal("100"))

    def test_policy_must_belong_to_client(self, khata, customer, make_client, agent, motor_rule, icici,
                                          policy_data, db):
        someone_else = make_client(agent, name="Other")
        policy = PolicyLedgerService(db).create_policy(policy_data(icici, agent, client_id=someone_else.id))
        with pytest.raises(NotFound):
            khata.record(customer.id, EntryType.DEBIT, Decimal("15000"), policy_id=policy.id)


class TestStatement:
    def test_running_balance_newest_first(self, khata, customer):
        khata.record(customer.id, EntryType.DEBIT, Decimal("15000"), entry_date=date(2024, 1, 1))
        khata.record(customer.id, EntryType.CREDIT, Decimal("5000"), entry_date=date(2024, 1, 10))
        khata.record(customer.id, EntryType.DEBIT, Decimal("2000"), entry_date=date(2024, 2, 1))

        statement = khata.statement(customer.id)

        assert [line["running_balance"] for line in statement["statement"]] == [
            Decimal("12000"), Decimal("10000"), Decimal("15000"),
        ]
        assert statement["total_debit"] == Decimal("17000")
        assert statement["total_collection"] == Decimal("5000")
        assert statement["pending_amount"] == Decimal("12000")

    def test_date_window(self, khata, customer):
        khata.record(customer.id, EntryType.DEBIT, Decimal("15000"), entry_date=date(2024, 1, 1))
        khata.record(customer.id, EntryType.CREDIT, Decimal("5000"), entry_date=date(2024, 3, 1))

        statement = khata.statement(customer.id, start=date(2024, 2, 1))

        assert len(statement["statement"]) == 1
        assert statement["total_collection"] == Decimal("5000")
        # Pending is always the full balance
        assert statement["pending_amount"] == Decimal("10000")


class TestPendingCollections:
    def test_only_clients_that_owe(self, khata, make_client, agent):
        owes_more = make_client(agent, name="Big")
        owes_less = make_client(agent, name="Small")
        settled = make_client(agent, name="Settled")
        khata.record(owes_more.id, EntryType.DEBIT, Decimal("9000"))
        khata.record(owes_less.id, EntryType.DEBIT, Decimal("3000"))
        khata.record(settled.id, EntryType.DEBIT, Decimal("1000"))
        khata.record(settled.id, EntryType.CREDIT, Decimal("1000"))

        pending = khata.pending_collections()

        assert [p["name"] for p in pending] == ["Big", "Small"]
        assert pending[0]["pending_amount"] == Decimal("9000")


class TestEditing:
    def test_update_changes_narrative_only(self, khata, customer):
        entry = khata.record(customer.id, EntryType.DEBIT, Decimal("500"))
        updated = khata.update_entry(entry.id, description="Late fee", entry_date=date(2024, 5, 1))
        assert updated.description == "Late fee"
        assert updated.entry_date == date(2024, 5, 1)
        assert updated.amount == Decimal("500")

    def test_delete_restores_balance(self, khata, customer):
        khata.record(customer.id, EntryType.DEBIT, Decimal("500"))
        entry = khata.record(customer.id, EntryType.CREDIT, Decimal("200"))
        khata.delete_entry(entry.id)
        assert khata.pending_amount(customer.id) == Decimal("500")

    def test_other_agents_entry(self, db, khata, customer, make_agent):
        entry = khata.record(customer.id, EntryType.DEBIT, Decimal("500"))
        with pytest.raises(NotFound):
            KhataService(db, make_agent().id).delete_entry(entry.id)

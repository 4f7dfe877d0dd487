import csv
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

import pandas as pd
from sqlalchemy.orm import Session

from app.core.errors import AppError, RowValidationError
from app.models.policy import Policy, PolicySource
from app.services.commission import to_decimal
from app.services.ledger import PolicyLedgerService
from app.services.repository import PolicyRepository

logger = logging.getLogger(__name__)

IMPORT_COLUMNS = [
    "policy_number",
    "company_code",
    "broker_code",
    "customer_name",
    "customer_email",
    "customer_phone",
    "policy_type",
    "premium_amount",
    "sum_assured",
    "start_date",
    "end_date",
]

REQUIRED_FIELDS = [
    "policy_number",
    "company_code",
    "broker_code",
    "customer_name",
    "policy_type",
    "premium_amount",
    "start_date",
    "end_date",
]

TEMPLATE_CSV = (
    ",".join(IMPORT_COLUMNS) + "\n"
    "POL001,HDFC,AGT0001,John Doe,john@example.com,9876543210,Health,50000,500000,2024-01-01,2025-01-01\n"
    "POL002,ICICI,AGT0001,Jane Smith,jane@example.com,9876543211,Motor,15000,300000,2024-02-01,2025-02-01\n"
)


class InvalidUpload(AppError):
    """The upload as a whole is unusable (not CSV, missing header columns)."""
    status_code = 400
    code = "INVALID_UPLOAD"


@dataclass
class RowError:
    row: int
    message: str


@dataclass
class ImportResult:
    successful: int = 0
    failed: int = 0
    errors: List[RowError] = field(default_factory=list)
    policies: List[Policy] = field(default_factory=list)


@dataclass
class CsvRow:
    """One data row of an upload. `error` is set when the line itself is malformed."""
    row: int
    values: Dict[str, str]
    error: Optional[str] = None


ISO_DATE = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")


def _parse_iso_date(value: str, column: str, row: int) -> date:
    message = f"Invalid {column} '{value}' (expected YYYY-MM-DD)"
    # strptime alone accepts unpadded 2024-1-5
    if not ISO_DATE.match(value):
        raise RowValidationError(row, message)
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise RowValidationError(row, message)


def _parse_amount(value: str, column: str, row: int) -> Decimal:
    try:
        amount = to_decimal(value.replace(",", ""))
    except ValueError:
        raise RowValidationError(row, f"{column} must be a positive number, got '{value}'")
    if not amount.is_finite() or amount <= 0:
        raise RowValidationError(row, f"{column} must be a positive number, got '{value}'")
    return amount


class BulkImportService:
    """
    Imports policies from an uploaded CSV.

    Rows are validated and created one at a time; a bad row is reported and
    skipped, it never stops the rest of the batch.
    """

    def __init__(self, db: Session, ledger: Optional[PolicyLedgerService] = None):
        self.db = db
        self.repository = PolicyRepository(db)
        self.ledger = ledger or PolicyLedgerService(db, self.repository)

    def parse_csv(self, text: str) -> List[CsvRow]:
        """
        Parse comma-separated UTF-8 text with a header row.

        Rows are numbered from 1, blank lines excluded. Trailing empty fields
        (Excel's trailing commas) are dropped; a line with extra non-empty
        fields comes back with `error` set instead of failing the upload.
        """
        if not text or not text.strip():
            raise InvalidUpload("The uploaded file is empty")

        try:
            lines = [fields for fields in csv.reader(io.StringIO(text)) if any(f.strip() for f in fields)]
        except csv.Error as e:
            raise InvalidUpload(f"Could not parse CSV: {e}")
        if not lines:
            raise InvalidUpload("The uploaded file is empty")

        header = [h.strip().lower() for h in lines[0]]
        while header and not header[-1]:
            header.pop()
        missing = [c for c in IMPORT_COLUMNS if c not in header]
        if missing:
            raise InvalidUpload(f"Missing columns: {', '.join(missing)}")

        width = len(header)
        malformed = {}
        good_rows, good_numbers = [], []
        for number, fields in enumerate(lines[1:], start=1):
            if len(fields) > width:
                if any(f.strip() for f in fields[width:]):
                    malformed[number] = f"Row has {len(fields)} fields, expected {width}"
                    continue
                fields = fields[:width]
            good_rows.append(fields + [""] * (width - len(fields)))
            good_numbers.append(number)

        df = pd.DataFrame(good_rows, columns=header, index=good_numbers, dtype=str)
        df = df.loc[:, ~df.columns.duplicated()][IMPORT_COLUMNS]
        for column in IMPORT_COLUMNS:
            df[column] = df[column].str.strip()

        parsed = [CsvRow(row=number, values=values) for number, values in df.to_dict("index").items()]
        parsed.extend(CsvRow(row=number, values={}, error=message) for number, message in malformed.items())
        return sorted(parsed, key=lambda r: r.row)

    def import_csv(self, text: str) -> ImportResult:
        return self._import(self.parse_csv(text))

    def import_rows(self, rows: List[Dict[str, str]]) -> ImportResult:
        """Import already-split rows, numbered from 1."""
        return self._import([CsvRow(row=index, values=raw) for index, raw in enumerate(rows, start=1)])

    def _import(self, rows: List[CsvRow]) -> ImportResult:
        result = ImportResult()

        for parsed in rows:
            try:
                if parsed.error:
                    raise RowValidationError(parsed.row, parsed.error)
                data = self.validate_row(parsed.values, parsed.row)
                policy = self.ledger.create_policy(data, source=PolicySource.BULK_IMPORT)
            except RowValidationError as e:
                result.failed += 1
                result.errors.append(RowError(row=e.row, message=e.message))
                continue
            except AppError as e:
                # Rule / tier / duplicate errors from the creation path
                result.failed += 1
                result.errors.append(RowError(row=parsed.row, message=e.message))
                continue

            result.successful += 1
            result.policies.append(policy)

        logger.info(f"Bulk import finished: {result.successful} created, {result.failed} failed")
        return result

    def validate_row(self, raw: Dict[str, str], row: int) -> dict:
        """Checks run in order and stop at the first failure."""
        values = {k: (raw.get(k) or "").strip() for k in IMPORT_COLUMNS}

        missing = [f for f in REQUIRED_FIELDS if not values[f]]
        if missing:
            raise RowValidationError(row, f"Missing required fields: {', '.join(missing)}")

        company = self.repository.find_company_by_code(values["company_code"])
        if not company:
            raise RowValidationError(row, f"Unknown company code '{values['company_code']}'")

        agent = self.repository.find_agent_by_code(values["broker_code"])
        if not agent:
            raise RowValidationError(row, f"Unknown broker code '{values['broker_code']}'")

        if self.repository.policy_number_exists(values["policy_number"]):
            raise RowValidationError(row, f"Policy number {values['policy_number']} already exists")

        start_date = _parse_iso_date(values["start_date"], "start_date", row)
        end_date = _parse_iso_date(values["end_date"], "end_date", row)
        if end_date <= start_date:
            raise RowValidationError(row, "end_date must be after start_date")

        premium = _parse_amount(values["premium_amount"], "premium_amount", row)
        sum_assured = None
        if values["sum_assured"]:
            sum_assured = _parse_amount(values["sum_assured"], "sum_assured", row)

        return {
            "policy_number": values["policy_number"],
            "company_id": company.id,
            "agent_id": agent.id,
            "customer_name": values["customer_name"],
            "customer_email": values["customer_email"] or None,
            "customer_phone": values["customer_phone"] or None,
            "policy_type": values["policy_type"],
            "premium_amount": premium,
            "sum_assured": sum_assured,
            "start_date": start_date,
            "end_date": end_date,
        }

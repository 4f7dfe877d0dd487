from decimal import Decimal

import pytest

from app.models.commission import Commission
from app.models.policy import Policy, PolicySource
from app.services.bulk_import import IMPORT_COLUMNS, TEMPLATE_CSV, BulkImportService, InvalidUpload

HEADER = ",".join(IMPORT_COLUMNS)


def _row(number, company="ICICI", broker="AGT0001", premium="15000", start="2024-01-01",
         end="2025-01-01", policy_type="Motor", name="John Doe"):
    return f"{number},{company},{broker},{name},john@example.com,9876543210,{policy_type},{premium},300000,{start},{end}"


def _csv(*rows):
    return "\n".join([HEADER, *rows]) + "\n"


@pytest.fixture
def importer(db, motor_rule, make_agent):
    make_agent(agent_code="AGT0001")
    return BulkImportService(db)


class TestParseCsv:
    def test_header_columns_are_required(self, db):
        with pytest.raises(InvalidUpload, match="broker_code"):
            BulkImportService(db).parse_csv("policy_number,company_code\nPOL1,ICICI\n")

    def test_empty_upload(self, db):
        with pytest.raises(InvalidUpload):
            BulkImportService(db).parse_csv("   ")

    def test_values_are_strings_and_stripped(self, db):
        rows = BulkImportService(db).parse_csv(_csv(" POL1 ,ICICI,AGT0001,Jane,,,Motor,0015000,,2024-01-01,2025-01-01"))
        assert rows[0].row == 1
        assert rows[0].values["policy_number"] == "POL1"
        assert rows[0].values["premium_amount"] == "0015000"
        assert rows[0].values["customer_email"] == ""

    def test_extra_columns_ignored(self, db):
        text = HEADER + ",branch\n" + _row("POL1") + ",Pune\n"
        rows = BulkImportService(db).parse_csv(text)
        assert "branch" not in rows[0].values

    def test_template_parses(self, db):
        rows = BulkImportService(db).parse_csv(TEMPLATE_CSV)
        assert [r.values["policy_number"] for r in rows] == ["POL001", "POL002"]
        assert [r.row for r in rows] == [1, 2]

    def test_trailing_commas_do_not_shift_columns(self, db):
        text = HEADER + ",\n" + _row("POL1") + ",\n" + _row("POL2") + ",,\n"
        rows = BulkImportService(db).parse_csv(text)
        assert [r.error for r in rows] == [None, None]
        assert rows[0].values["policy_number"] == "POL1"
        assert rows[0].values["company_code"] == "ICICI"
        assert rows[1].values["end_date"] == "2025-01-01"

    def test_overlong_line_is_flagged_not_fatal(self, db):
        rows = BulkImportService(db).parse_csv(_csv(_row("POL1"), _row("POL2") + ",surplus", _row("POL3")))
        assert [r.row for r in rows] == [1, 2, 3]
        assert rows[1].error == "Row has 12 fields, expected 11"
        assert rows[2].values["policy_number"] == "POL3"

    def test_blank_lines_are_not_numbered(self, db):
        rows = BulkImportService(db).parse_csv(HEADER + "\n\n" + _row("POL1") + "\n\n" + _row("POL2") + "\n")
        assert [(r.row, r.values["policy_number"]) for r in rows] == [(1, "POL1"), (2, "POL2")]


class TestImportRows:
    def test_bad_company_on_second_row(self, db, importer):
        result = importer.import_csv(_csv(_row("POL1"), _row("POL2", company="NOPE"), _row("POL3")))

        assert result.successful == 2
        assert result.failed == 1
        assert len(result.errors) == 1
        assert result.errors[0].row == 2
        assert "company" in result.errors[0].message.lower()

        numbers = sorted(p.policy_number for p in db.query(Policy).all())
        assert numbers == ["POL1", "POL3"]
        assert {p.policy_source for p in db.query(Policy).all()} == {PolicySource.BULK_IMPORT.value}

    def test_each_imported_policy_gets_commission(self, db, importer):
        importer.import_csv(_csv(_row("POL1")))
        commission = db.query(Commission).one()
        assert commission.total_commission_amount == Decimal("2250")

    def test_errors_in_input_order(self, importer):
        result = importer.import_csv(_csv(
            _row("POL1", broker="AGT9999"),
            _row("POL2"),
            _row("POL3", premium="-5"),
            _row("POL4", start="01/02/2024"),
        ))
        assert result.successful == 1
        assert [e.row for e in result.errors] == [1, 3, 4]
        assert "broker" in result.errors[0].message.lower()
        assert "premium_amount" in result.errors[1].message
        assert "start_date" in result.errors[2].message

    def test_missing_required_fields(self, importer):
        result = importer.import_csv(_csv(_row("POL1", name="")))
        assert result.failed == 1
        assert "customer_name" in result.errors[0].message

    def test_duplicate_within_batch(self, importer):
        result = importer.import_csv(_csv(_row("POL1"), _row("POL1")))
        assert result.successful == 1
        assert result.errors[0].row == 2
        assert "already exists" in result.errors[0].message

    def test_end_before_start(self, importer):
        result = importer.import_csv(_csv(_row("POL1", start="2025-01-01", end="2024-01-01")))
        assert result.failed == 1
        assert "end_date" in result.errors[0].message

    def test_missing_rule_is_row_error(self, importer):
        result = importer.import_csv(_csv(_row("POL1", policy_type="Life"), _row("POL2")))
        assert result.successful == 1
        assert result.errors[0].row == 1
        assert "No commission rule" in result.errors[0].message

    def test_codes_are_case_insensitive(self, importer):
        result = importer.import_csv(_csv(_row("POL1", company="icici", broker="agt0001")))
        assert result.successful == 1

    def test_inactive_company_rejected(self, db, importer, make_company):
        make_company("OLDCO", is_active=False)
        result = importer.import_csv(_csv(_row("POL1", company="OLDCO")))
        assert result.failed == 1

    def test_short_row_reports_missing_fields(self, importer):
        result = importer.import_csv(HEADER + "\nPOL1,ICICI,AGT0001\n")
        assert result.failed == 1
        assert "Missing required fields" in result.errors[0].message

    def test_overlong_row_does_not_block_the_rest(self, db, importer):
        result = importer.import_csv(_csv(_row("POL1"), _row("POL2") + ",extra", _row("POL3")))

        assert result.successful == 2
        assert result.failed == 1
        assert result.errors[0].row == 2
        assert "fields" in result.errors[0].message
        assert sorted(p.policy_number for p in db.query(Policy).all()) == ["POL1", "POL3"]

    def test_excel_trailing_commas_import_cleanly(self, db, importer):
        text = HEADER + ",\n" + _row("POL1") + ",\n" + _row("POL2") + ",\n"
        result = importer.import_csv(text)
        assert result.successful == 2
        assert result.errors == []

    def test_unpadded_dates_rejected(self, importer):
        result = importer.import_csv(_csv(_row("POL1", start="2024-1-5"), _row("POL2", end="2025-1-01")))
        assert result.failed == 2
        assert "start_date" in result.errors[0].message
        assert "end_date" in result.errors[1].message

    def test_import_rows_numbers_from_one(self, importer):
        rows = [
            dict(zip(IMPORT_COLUMNS, _row("POL1").split(","))),
            dict(zip(IMPORT_COLUMNS, _row("POL2", company="NOPE").split(","))),
        ]
        result = importer.import_rows(rows)
        assert result.successful == 1
        assert [e.row for e in result.errors] == [2]

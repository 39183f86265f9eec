from datetime import date
from decimal import Decimal

import pytest

from crud import account_balance_history as balance_history_crud
from crud import chart_of_accounts as coa_crud
from crud import journal_entry as journal_entry_crud
from models.journal_entry import JournalEntry
from schemas.journal_entry import JournalEntryCreate, JournalEntryUpdate
from utils.errors import BadRequest, Conflict, Forbidden, NotFound
from utils.tenancy import with_tenant_schema

from conftest import line


def balance(ctx, account):
    return coa_crud.get_account(ctx, account.id).current_balance


class TestValidation:
    """Double-entry rules checked before anything is stored."""

    def test_totals_come_from_lines(self, cash, revenue, make_entry):
        entry = make_entry(cash, revenue, amount="125.50")
        assert entry.status == "draft"
        assert entry.total_debit == Decimal("125.50")
        assert entry.total_credit == Decimal("125.50")
        assert [l.line_number for l in entry.lines] == [1, 2]

    def test_needs_two_lines(self, ctx, cash):
        entry = JournalEntryCreate(entry_date=date(2024, 1, 1), lines=[line(cash.id, debit="10")])
        with pytest.raises(BadRequest) as exc:
            journal_entry_crud.create_journal_entry(ctx, entry)
        assert exc.value.code == "JOURNAL_ENTRY_INSUFFICIENT_LINES"

    @pytest.mark.parametrize("debit, credit", [("10", "10"), ("0", "0")])
    def test_line_is_debit_xor_credit(self, ctx, cash, revenue, debit, credit):
        entry = JournalEntryCreate(entry_date=date(2024, 1, 1), lines=[
            line(cash.id, debit=debit, credit=credit),
            line(revenue.id, credit="10"),
        ])
        with pytest.raises(BadRequest) as exc:
            journal_entry_crud.create_journal_entry(ctx, entry)
        assert exc.value.code == "JOURNAL_ENTRY_LINE_INVALID"

    def test_unbalanced_entry_is_rejected(self, ctx, cash, revenue):
        entry = JournalEntryCreate(entry_date=date(2024, 1, 1), lines=[
            line(cash.id, debit="100.00"),
            line(revenue.id, credit="99.99"),
        ])
        with pytest.raises(BadRequest) as exc:
            journal_entry_crud.create_journal_entry(ctx, entry)
        assert exc.value.code == "JOURNAL_ENTRY_NOT_BALANCED"
        assert journal_entry_crud.get_journal_entries(ctx)[1] == 0

    def test_validate_lines_tolerance(self):
        class Line:
            def __init__(self, debit, credit):
                self.debit, self.credit = Decimal(debit), Decimal(credit)

        totals = journal_entry_crud.validate_lines([Line("10.005", "0"), Line("0", "10")])
        assert totals == (Decimal("10.005"), Decimal("10"))

    def test_unknown_account(self, ctx, cash):
        entry = JournalEntryCreate(entry_date=date(2024, 1, 1), lines=[
            line(cash.id, debit="5"),
            line(424242, credit="5"),
        ])
        with pytest.raises(NotFound):
            journal_entry_crud.create_journal_entry(ctx, entry)


class TestEntryNumbers:

    def test_sequence_per_year(self, ctx, cash, revenue, make_entry):
        assert journal_entry_crud.generate_entry_number(ctx, year=2024) == "JE-2024-001"
        make_entry(cash, revenue, entry_number="JE-2024-007")
        assert journal_entry_crud.generate_entry_number(ctx, year=2024) == "JE-2024-008"
        assert journal_entry_crud.generate_entry_number(ctx, year=2025) == "JE-2025-001"

    def test_generated_when_omitted(self, cash, revenue, make_entry):
        first = make_entry(cash, revenue)
        second = make_entry(cash, revenue)
        assert first.entry_number.startswith("JE-")
        assert first.entry_number != second.entry_number

    def test_duplicate_number_conflicts(self, cash, revenue, make_entry):
        make_entry(cash, revenue, entry_number="MANUAL-1")
        with pytest.raises(Conflict):
            make_entry(cash, revenue, entry_number="MANUAL-1")


class TestPosting:

    def test_post_moves_balances_and_writes_history(self, ctx, cash, revenue, make_entry):
        entry = make_entry(cash, revenue, amount="100.00")

        posted = journal_entry_crud.post_journal_entry(ctx, entry.id, approved_by="boss")

        assert posted.status == "posted"
        assert posted.posted_by == ctx.user_id
        assert posted.approved_by == "boss"
        assert balance(ctx, cash) == Decimal("100.00")
        assert balance(ctx, revenue) == Decimal("100.00")

        history = balance_history_crud.get_balance_history_by_journal_entry(ctx, entry.id)
        assert len(history) == 2
        by_account = {row.account_id: row for row in history}
        assert by_account[cash.id].change_type == "debit"
        assert by_account[revenue.id].change_type == "credit"
        assert by_account[cash.id].previous_balance == Decimal("0")
        assert by_account[cash.id].new_balance == Decimal("100.00")
        assert by_account[cash.id].description == f"{entry.entry_number}: Cash received"
        assert by_account[cash.id].source_module == "journal_entries"
        assert by_account[cash.id].change_date.date() == entry.entry_date

    def test_posting_twice_conflicts(self, ctx, cash, revenue, make_entry):
        entry = make_entry(cash, revenue)
        journal_entry_crud.post_journal_entry(ctx, entry.id)
        with pytest.raises(Conflict) as exc:
            journal_entry_crud.post_journal_entry(ctx, entry.id)
        assert exc.value.code == "JOURNAL_ENTRY_ALREADY_POSTED"
        assert balance(ctx, cash) == Decimal("100.00")

    def test_lost_race_backs_out(self, ctx, cash, revenue, make_entry):
        """The second of two concurrent posts finds the draft already claimed."""
        entry = make_entry(cash, revenue)

        def post_after_other_writer(db):
            loaded = db.query(JournalEntry).filter(JournalEntry.id == entry.id).one()
            assert loaded.status == "draft"
            # Another transaction flips the row between our read and our claim
            db.query(JournalEntry).filter(JournalEntry.id == entry.id).update(
                {"status": "posted"}, synchronize_session=False
            )
            return journal_entry_crud.post_journal_entry(ctx, entry.id, db=db)

        with pytest.raises(Conflict):
            with_tenant_schema(ctx.schema_name, post_after_other_writer)

        assert balance(ctx, cash) == Decimal("0.00")
        assert balance_history_crud.get_balance_history_by_journal_entry(ctx, entry.id) == []

    def test_posting_voided_is_forbidden(self, ctx, cash, revenue, make_entry):
        entry = make_entry(cash, revenue)
        journal_entry_crud.void_journal_entry(ctx, entry.id)
        with pytest.raises(Forbidden):
            journal_entry_crud.post_journal_entry(ctx, entry.id)

    def test_failure_mid_post_leaves_no_trace(self, ctx, cash, revenue, make_entry, monkeypatch):
        entry = make_entry(cash, revenue)
        calls = []

        def flaky_record(*args, **kwargs):
            calls.append(kwargs["account_id"])
            if len(calls) == 2:
                raise RuntimeError("history write failed")

        monkeypatch.setattr(balance_history_crud, "record_balance_change", flaky_record)

        with pytest.raises(RuntimeError):
            journal_entry_crud.post_journal_entry(ctx, entry.id)

        assert journal_entry_crud.get_journal_entry(ctx, entry.id).status == "draft"
        assert balance(ctx, cash) == Decimal("0.00")


class TestDraftEditing:

    def test_update_replaces_lines_and_totals(self, ctx, cash, revenue, make_entry):
        entry = make_entry(cash, revenue)
        updated = journal_entry_crud.update_journal_entry(ctx, entry.id, JournalEntryUpdate(
            description="Corrected",
            lines=[line(cash.id, debit="80"), line(revenue.id, credit="80")],
        ))
        assert updated.description == "Corrected"
        assert updated.total_debit == Decimal("80")
        assert len(journal_entry_crud.get_journal_entry(ctx, entry.id).lines) == 2

    def test_update_with_unbalanced_lines_changes_nothing(self, ctx, cash, revenue, make_entry):
        entry = make_entry(cash, revenue)
        with pytest.raises(BadRequest):
            journal_entry_crud.update_journal_entry(ctx, entry.id, JournalEntryUpdate(
                lines=[line(cash.id, debit="80"), line(revenue.id, credit="70")],
            ))
        assert journal_entry_crud.get_journal_entry(ctx, entry.id).total_debit == Decimal("100.00")

    def test_posted_entries_are_read_only(self, ctx, cash, revenue, make_entry):
        entry = make_entry(cash, revenue)
        journal_entry_crud.post_journal_entry(ctx, entry.id)

        with pytest.raises(Forbidden):
            journal_entry_crud.update_journal_entry(ctx, entry.id, JournalEntryUpdate(description="x"))
        with pytest.raises(Forbidden):
            journal_entry_crud.void_journal_entry(ctx, entry.id)
        with pytest.raises(Forbidden):
            journal_entry_crud.delete_journal_entry(ctx, entry.id)

    def test_void_twice_conflicts(self, ctx, cash, revenue, make_entry):
        entry = make_entry(cash, revenue)
        assert journal_entry_crud.void_journal_entry(ctx, entry.id).status == "voided"
        with pytest.raises(Conflict):
            journal_entry_crud.void_journal_entry(ctx, entry.id)

    def test_delete_and_restore(self, ctx, cash, revenue, make_entry):
        entry = make_entry(cash, revenue)
        journal_entry_crud.delete_journal_entry(ctx, entry.id)
        with pytest.raises(NotFound):
            journal_entry_crud.get_journal_entry(ctx, entry.id)

        restored = journal_entry_crud.restore_journal_entry(ctx, entry.id)
        assert restored.deleted_at is None
        assert all(l.deleted_at is None for l in restored.lines)

    def test_restore_requires_deleted_entry(self, ctx, cash, revenue, make_entry):
        entry = make_entry(cash, revenue)
        with pytest.raises(NotFound):
            journal_entry_crud.restore_journal_entry(ctx, entry.id)


class TestReversal:

    def test_reversal_swaps_lines_and_nets_to_zero(self, ctx, cash, revenue, make_entry):
        entry = make_entry(cash, revenue, amount="100.00")
        journal_entry_crud.post_journal_entry(ctx, entry.id)

        reversing = journal_entry_crud.reverse_journal_entry(ctx, entry.id, date(2024, 4, 1))

        assert reversing.status == "posted"
        assert reversing.is_reversing
        assert reversing.entry_type == "reversing"
        assert reversing.entry_date == date(2024, 4, 1)
        assert reversing.source_id == entry.id
        swapped = {l.account_id: (l.debit, l.credit) for l in reversing.lines}
        assert swapped[cash.id] == (Decimal("0.00"), Decimal("100.00"))
        assert swapped[revenue.id] == (Decimal("100.00"), Decimal("0.00"))
        assert reversing.lines[0].description == "Reversal: Cash received"

        assert balance(ctx, cash) == Decimal("0.00")
        assert balance(ctx, revenue) == Decimal("0.00")
        original = journal_entry_crud.get_journal_entry(ctx, entry.id)
        assert original.status == "posted"
        assert original.reversal_date == date(2024, 4, 1)

    def test_second_reversal_conflicts(self, ctx, cash, revenue, make_entry):
        entry = make_entry(cash, revenue)
        journal_entry_crud.post_journal_entry(ctx, entry.id)
        journal_entry_crud.reverse_journal_entry(ctx, entry.id, date(2024, 4, 1))
        with pytest.raises(Conflict) as exc:
            journal_entry_crud.reverse_journal_entry(ctx, entry.id, date(2024, 4, 2))
        assert exc.value.code == "JOURNAL_ENTRY_ALREADY_REVERSED"

    def test_reversing_entry_can_itself_be_reversed(self, ctx, cash, revenue, make_entry):
        entry = make_entry(cash, revenue, amount="100.00")
        journal_entry_crud.post_journal_entry(ctx, entry.id)
        reversing = journal_entry_crud.reverse_journal_entry(ctx, entry.id, date(2024, 4, 1))

        restated = journal_entry_crud.reverse_journal_entry(ctx, reversing.id, date(2024, 4, 2))

        assert restated.status == "posted"
        assert restated.source_id == reversing.id
        assert balance(ctx, cash) == Decimal("100.00")
        assert balance(ctx, revenue) == Decimal("100.00")
        with pytest.raises(Conflict):
            journal_entry_crud.reverse_journal_entry(ctx, reversing.id, date(2024, 4, 3))

    def test_only_posted_entries_reverse(self, ctx, cash, revenue, make_entry):
        draft = make_entry(cash, revenue)
        with pytest.raises(Forbidden) as exc:
            journal_entry_crud.reverse_journal_entry(ctx, draft.id, date(2024, 4, 1))
        assert exc.value.code == "JOURNAL_ENTRY_CANNOT_REVERSE_DRAFT"

        journal_entry_crud.void_journal_entry(ctx, draft.id)
        with pytest.raises(Forbidden) as exc:
            journal_entry_crud.reverse_journal_entry(ctx, draft.id, date(2024, 4, 1))
        assert exc.value.code == "JOURNAL_ENTRY_CANNOT_REVERSE_VOIDED"

    def test_reversal_date_required(self, ctx, cash, revenue, make_entry):
        entry = make_entry(cash, revenue)
        with pytest.raises(BadRequest):
            journal_entry_crud.reverse_journal_entry(ctx, entry.id, None)


class TestDuplicate:

    def test_duplicate_is_a_fresh_draft(self, ctx, cash, revenue, make_entry):
        entry = make_entry(cash, revenue)
        journal_entry_crud.post_journal_entry(ctx, entry.id)

        copy = journal_entry_crud.duplicate_journal_entry(ctx, entry.id, entry_date=date(2024, 5, 1))

        assert copy.id != entry.id
        assert copy.status == "draft"
        assert copy.entry_date == date(2024, 5, 1)
        assert copy.entry_number != entry.entry_number
        assert copy.source_module == "journal_entries"
        assert copy.source_id == entry.id
        assert not copy.is_reversing
        assert [(l.account_id, l.debit, l.credit) for l in copy.lines] == \
            [(l.account_id, l.debit, l.credit) for l in entry.lines]
        assert balance(ctx, cash) == Decimal("100.00")

    def test_duplicate_number_conflicts(self, ctx, cash, revenue, make_entry):
        entry = make_entry(cash, revenue, entry_number="JE-2024-001")
        with pytest.raises(Conflict):
            journal_entry_crud.duplicate_journal_entry(ctx, entry.id, entry_number="JE-2024-001")


class TestListing:

    def test_filters_and_pagination(self, ctx, cash, revenue, make_entry):
        first = make_entry(cash, revenue, entry_date=date(2024, 1, 10), description="January rent")
        make_entry(cash, revenue, entry_date=date(2024, 2, 10))
        make_entry(cash, revenue, entry_date=date(2024, 3, 10))
        journal_entry_crud.post_journal_entry(ctx, first.id)

        items, total = journal_entry_crud.get_journal_entries(ctx, status="posted")
        assert total == 1 and items[0].id == first.id

        items, total = journal_entry_crud.get_journal_entries(ctx, start_date=date(2024, 2, 1))
        assert total == 2

        items, total = journal_entry_crud.get_journal_entries(ctx, search_term="rent")
        assert [e.id for e in items] == [first.id]

        items, total = journal_entry_crud.get_journal_entries(ctx, page=2, limit=2)
        assert total == 3 and len(items) == 1
        assert items[0].entry_date == date(2024, 1, 10)

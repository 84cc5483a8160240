from datetime import date
from decimal import Decimal

import pytest

from conftest import make_company
from ledgerlite import db
from ledgerlite.chart_of_accounts import DEFAULT_BUSINESS_ACCOUNTS, seed_accounts
from ledgerlite.exceptions import DuplicatePosting, UnbalancedJournalError, ValidationError
from ledgerlite.ledger import (
    balance_for_code,
    credit,
    debit,
    infer_transaction_type,
    next_reference,
    post_entry,
    posting_account,
    reverse_entries,
)
from ledgerlite.models import Account, Company, JournalEntry, JournalLine, User


def _cash_sale(company, amount="1000", reference="SALE-1"):
    return post_entry(
        company.id,
        reference,
        date(2026, 3, 2),
        "Cash sale",
        [
            debit(posting_account(company.id, "cash"), amount),
            credit(posting_account(company.id, "sales"), amount),
        ],
    )


def test_seed_accounts_is_idempotent(app):
    with app.app_context():
        _user, company = make_company()
        assert Account.query.filter_by(company_id=company.id).count() == len(DEFAULT_BUSINESS_ACCOUNTS)

        assert seed_accounts(company.id) == 0
        assert Account.query.filter_by(company_id=company.id).count() == len(DEFAULT_BUSINESS_ACCOUNTS)

        cash = Account.query.filter_by(company_id=company.id, code="1110").one()
        assert cash.parent.code == "1100"


def test_balanced_entry_is_posted_with_all_lines(app):
    with app.app_context():
        _user, company = make_company()
        entry = _cash_sale(company, "2500.50")
        db.session.commit()

        stored = db.session.get(JournalEntry, entry.id)
        assert stored.status == "posted"
        assert len(stored.lines) == 2
        assert stored.total_debit == stored.total_credit == Decimal("2500.50")
        assert balance_for_code(company.id, "1110") == Decimal("2500.50")
        assert balance_for_code(company.id, "4100") == Decimal("2500.50")


def test_unbalanced_entry_is_rejected_before_anything_is_written(app):
    with app.app_context():
        _user, company = make_company()
        with pytest.raises(UnbalancedJournalError):
            post_entry(
                company.id,
                "BAD-1",
                date(2026, 3, 2),
                "Typo",
                [
                    debit(posting_account(company.id, "cash"), "1000"),
                    credit(posting_account(company.id, "sales"), "999.99"),
                ],
            )
        assert JournalEntry.query.count() == 0
        assert JournalLine.query.count() == 0


@pytest.mark.parametrize(
    "lines_factory, message",
    [
        (lambda cash, sales: [debit(cash, "100")], "at least two"),
        (lambda cash, sales: [debit(cash, "0"), credit(sales, "0")], "at least two"),
        (lambda cash, sales: [debit(cash, "-5"), credit(sales, "-5")], "negative"),
    ],
)
def test_malformed_lines_are_rejected(app, lines_factory, message):
    with app.app_context():
        _user, company = make_company()
        cash = posting_account(company.id, "cash")
        sales = posting_account(company.id, "sales")
        with pytest.raises(ValidationError) as excinfo:
            post_entry(company.id, "X-1", date(2026, 3, 2), None, lines_factory(cash, sales))
        assert message in excinfo.value.message


def test_duplicate_reference_is_rejected(app):
    with app.app_context():
        _user, company = make_company()
        _cash_sale(company, reference="SALE-7")
        with pytest.raises(DuplicatePosting):
            _cash_sale(company, reference="SALE-7")


def test_accounts_of_another_company_are_rejected(app):
    with app.app_context():
        _user, company = make_company()
        _other_user, other = make_company("Other Stores", phone="08050000000")
        with pytest.raises(ValidationError):
            post_entry(
                company.id,
                "X-1",
                date(2026, 3, 2),
                None,
                [
                    debit(posting_account(company.id, "cash"), "10"),
                    credit(posting_account(other.id, "sales"), "10"),
                ],
            )


def test_flush_refuses_an_unbalanced_entry_built_by_hand(app):
    with app.app_context():
        _user, company = make_company()
        cash = posting_account(company.id, "cash")
        sales = posting_account(company.id, "sales")
        db.session.commit()

        # status is left to the column default
        entry = JournalEntry(company_id=company.id, reference="HAND-1", entry_date=date(2026, 3, 2))
        assert entry.status is None
        entry.lines.append(JournalLine(account=cash, debit=Decimal("10")))
        entry.lines.append(JournalLine(account=sales, credit=Decimal("9")))
        db.session.add(entry)
        with pytest.raises(UnbalancedJournalError):
            db.session.flush()
        db.session.rollback()


def test_flush_leaves_draft_entries_alone(app):
    with app.app_context():
        _user, company = make_company()
        entry = JournalEntry(
            company_id=company.id, reference="DRAFT-1", entry_date=date(2026, 3, 2), status="draft"
        )
        entry.lines.append(JournalLine(account=posting_account(company.id, "cash"), debit=Decimal("10")))
        db.session.add(entry)
        db.session.commit()
        assert JournalEntry.query.filter_by(reference="DRAFT-1").one().status == "draft"


def test_a_line_cannot_carry_both_sides(app):
    with app.app_context():
        with pytest.raises(ValueError):
            JournalLine(debit=Decimal("5"), credit=Decimal("5"))


def test_reverse_entries_nets_accounts_before_reversing(app):
    with app.app_context():
        _user, company = make_company()
        cash = posting_account(company.id, "cash")
        receivable = posting_account(company.id, "receivable")
        sales = posting_account(company.id, "sales")
        first = post_entry(
            company.id, "E-1", date(2026, 3, 1), None, [debit(receivable, "500"), credit(sales, "500")]
        )
        second = post_entry(
            company.id, "E-2", date(2026, 3, 2), None, [debit(cash, "500"), credit(receivable, "500")]
        )

        reversal = reverse_entries(company.id, [first, second], "REV-1", date(2026, 3, 3), "Undo")

        codes = {line.account.code: (line.debit, line.credit) for line in reversal.lines}
        assert set(codes) == {"1110", "4100"}
        assert codes["1110"] == (Decimal("0"), Decimal("500.00"))
        assert codes["4100"] == (Decimal("500.00"), Decimal("0"))
        assert balance_for_code(company.id, "1130") == 0
        assert balance_for_code(company.id, "1110") == 0
        assert balance_for_code(company.id, "4100") == 0


def test_reverse_entries_returns_none_when_nothing_is_left(app):
    with app.app_context():
        _user, company = make_company()
        entry = _cash_sale(company)
        undo = reverse_entries(company.id, [entry], "REV-1", date(2026, 3, 3), None)
        assert reverse_entries(company.id, [entry, undo], "REV-2", date(2026, 3, 4), None) is None


def test_next_reference_avoids_collisions(app):
    with app.app_context():
        _user, company = make_company()
        first = next_reference(company.id, "JV")
        _cash_sale(company, reference=first)
        second = next_reference(company.id, "JV")
        assert first.startswith("JV-")
        assert second != first


def test_infer_transaction_type(app):
    with app.app_context():
        _user, company = make_company()
        cash = posting_account(company.id, "cash")
        sales = posting_account(company.id, "sales")
        expense = posting_account(company.id, "expense")
        bank = posting_account(company.id, "bank")

        sale = post_entry(company.id, "S-1", date(2026, 3, 1), None, [debit(cash, "80"), credit(sales, "80")])
        spend = post_entry(company.id, "X-1", date(2026, 3, 1), None, [debit(expense, "30"), credit(cash, "30")])
        transfer = post_entry(company.id, "T-1", date(2026, 3, 1), None, [debit(bank, "20"), credit(cash, "20")])
        refund = post_entry(company.id, "R-1", date(2026, 3, 1), None, [debit(sales, "15"), credit(cash, "15")])

        assert infer_transaction_type(sale.lines) == ("income", Decimal("80.00"))
        assert infer_transaction_type(spend.lines) == ("expense", Decimal("30.00"))
        assert infer_transaction_type(transfer.lines) == ("expense", Decimal("20.00"))
        assert infer_transaction_type(refund.lines)[0] == "other"


def test_user_and_company_reference_each_other(app):
    with app.app_context():
        user, company = make_company()
        db.session.commit()
        assert db.session.get(User, user.id).company.name == "Ade Ventures"
        assert db.session.get(Company, company.id).owner.phone_number == user.phone_number

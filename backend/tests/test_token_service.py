"""Token ledger tests (initialize, debit, refund, grants, monthly reset)"""
import logging
import pytest
from datetime import datetime, timezone, timedelta

from app.core.exceptions import InsufficientBalanceError
from app.models.enums import SubscriptionTier, TransactionType
from app.models.token_transaction import TokenTransaction
from app.models.token_usage import TokenUsage
from app.services.token_service import (
    initialize_tokens, check_balance, debit_tokens, refund_tokens,
    grant_tokens_for_subscription, get_token_usage, get_token_balance,
    get_token_transactions, get_monthly_tokens, first_of_next_month, record_transaction,
    period_already_granted
)
from conftest import TEST_USER_ID, make_subscription, make_balance


def _transaction_types(db_session, user_id=TEST_USER_ID):
    rows = db_session.query(TokenTransaction).filter(TokenTransaction.user_id == user_id).order_by(TokenTransaction.id).all()
    return [row.transaction_type for row in rows]


@pytest.mark.critical
class TestInitializeTokens:
    """Balance creation on first touch"""

    def test_new_user_gets_free_allowance(self, db_session):
        usage, created = initialize_tokens(TEST_USER_ID, db_session)

        assert created is True
        assert usage.tokens_remaining == 50
        assert usage.tokens_used == 0
        assert _transaction_types(db_session) == [TransactionType.ACCOUNT_INITIALIZATION.value]

    def test_paid_tier_gets_its_allowance(self, db_session):
        make_subscription(db_session, tier=SubscriptionTier.ENTERPRISE)

        usage, created = initialize_tokens(TEST_USER_ID, db_session)

        assert created is True
        assert usage.tokens_remaining == 2000

    def test_initialization_is_idempotent(self, db_session):
        initialize_tokens(TEST_USER_ID, db_session)
        debit_tokens(TEST_USER_ID, 10, db_session)

        usage, created = initialize_tokens(TEST_USER_ID, db_session)

        assert created is False
        assert usage.tokens_remaining == 40
        assert db_session.query(TokenUsage).filter(TokenUsage.user_id == TEST_USER_ID).count() == 1

    def test_unknown_tier_falls_back_to_free(self):
        assert get_monthly_tokens("platinum") == 50
        assert get_monthly_tokens("pro") == 500
        assert get_monthly_tokens(None) == 50


@pytest.mark.critical
class TestDebit:
    """Atomic deduction"""

    def test_debit_reduces_balance_and_increases_used(self, db_session):
        make_balance(db_session, remaining=100, used=5)

        remaining = debit_tokens(TEST_USER_ID, 10, db_session)

        usage = db_session.query(TokenUsage).filter(TokenUsage.user_id == TEST_USER_ID).first()
        db_session.refresh(usage)
        assert remaining == 90
        assert usage.tokens_remaining == 90
        assert usage.tokens_used == 15

    def test_debit_of_exact_balance_reaches_zero(self, db_session):
        make_balance(db_session, remaining=10)

        assert debit_tokens(TEST_USER_ID, 10, db_session) == 0

    def test_insufficient_balance_leaves_state_unchanged(self, db_session):
        make_balance(db_session, remaining=5, used=45)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            debit_tokens(TEST_USER_ID, 10, db_session)

        assert exc_info.value.balance == 5
        assert exc_info.value.required == 10
        assert exc_info.value.shortfall == 5
        assert exc_info.value.status_code == 402

        usage = db_session.query(TokenUsage).filter(TokenUsage.user_id == TEST_USER_ID).first()
        db_session.refresh(usage)
        assert usage.tokens_remaining == 5
        assert usage.tokens_used == 45
        assert _transaction_types(db_session) == []

    def test_missing_balance_row_counts_as_zero(self, db_session):
        with pytest.raises(InsufficientBalanceError) as exc_info:
            debit_tokens(TEST_USER_ID, 10, db_session)

        assert exc_info.value.balance == 0

    def test_non_positive_debit_is_rejected(self, db_session):
        make_balance(db_session, remaining=100)

        with pytest.raises(ValueError):
            debit_tokens(TEST_USER_ID, 0, db_session)

    def test_repeated_debits_never_go_negative(self, db_session):
        make_balance(db_session, remaining=25)

        debit_tokens(TEST_USER_ID, 10, db_session)
        debit_tokens(TEST_USER_ID, 10, db_session)
        with pytest.raises(InsufficientBalanceError):
            debit_tokens(TEST_USER_ID, 10, db_session)

        assert check_balance(TEST_USER_ID, 5, db_session) == 5

    def test_check_balance_raises_below_cost(self, db_session):
        make_balance(db_session, remaining=9)

        with pytest.raises(InsufficientBalanceError):
            check_balance(TEST_USER_ID, 10, db_session)


@pytest.mark.critical
class TestRefundAndGrants:
    """Compensating credits and subscription grants"""

    def test_refund_restores_balance_and_records_transaction(self, db_session):
        make_balance(db_session, remaining=100)
        debit_tokens(TEST_USER_ID, 10, db_session)

        remaining = refund_tokens(TEST_USER_ID, 10, db_session, content_id="content-1")

        usage = db_session.query(TokenUsage).filter(TokenUsage.user_id == TEST_USER_ID).first()
        db_session.refresh(usage)
        assert remaining == 100
        assert usage.tokens_used == 0
        refund = db_session.query(TokenTransaction).filter(
            TokenTransaction.transaction_type == TransactionType.IMAGE_GENERATION_REFUND.value
        ).one()
        assert refund.tokens_used == 10
        assert refund.content_id == "content-1"

    def test_refund_never_makes_used_negative(self, db_session):
        make_balance(db_session, remaining=0, used=3)

        refund_tokens(TEST_USER_ID, 10, db_session)

        usage = db_session.query(TokenUsage).filter(TokenUsage.user_id == TEST_USER_ID).first()
        db_session.refresh(usage)
        assert usage.tokens_used == 0
        assert usage.tokens_remaining == 10

    def test_grant_resets_to_tier_allowance(self, db_session):
        make_balance(db_session, remaining=7, used=43)
        period_end = datetime.now(timezone.utc) + timedelta(days=30)

        usage = grant_tokens_for_subscription(TEST_USER_ID, SubscriptionTier.PRO, db_session, reset_date=period_end)

        assert usage.tokens_remaining == 500
        assert usage.tokens_used == 0
        assert _transaction_types(db_session) == [TransactionType.SUBSCRIPTION_GRANT.value]

    def test_grant_creates_missing_balance(self, db_session):
        usage = grant_tokens_for_subscription(
            TEST_USER_ID, "enterprise", db_session, transaction_type=TransactionType.SUBSCRIPTION_RENEWAL
        )

        assert usage.tokens_remaining == 2000
        assert _transaction_types(db_session) == [TransactionType.SUBSCRIPTION_RENEWAL.value]

    def test_grant_log_names_transaction_type(self, db_session, caplog):
        caplog.set_level(logging.INFO, logger="app.services.token_service")

        grant_tokens_for_subscription(
            TEST_USER_ID, "pro", db_session, transaction_type=TransactionType.SUBSCRIPTION_RENEWAL
        )

        assert "(PRO, SUBSCRIPTION_RENEWAL)" in caplog.text
        assert "TransactionType." not in caplog.text

    def test_period_already_granted_matches_reset_date(self, db_session):
        period_end = datetime(2026, 12, 1, tzinfo=timezone.utc)
        make_balance(db_session, remaining=120, reset_date=period_end)

        assert period_already_granted(TEST_USER_ID, period_end, db_session) is True
        assert period_already_granted(TEST_USER_ID, period_end + timedelta(days=31), db_session) is False
        assert period_already_granted(TEST_USER_ID, None, db_session) is False
        assert period_already_granted("no-balance-user", period_end, db_session) is False


@pytest.mark.high
class TestMonthlyReset:
    """Lazy reset when the reset date has passed"""

    def test_balance_resets_after_reset_date(self, db_session):
        make_subscription(db_session, tier=SubscriptionTier.PRO)
        make_balance(db_session, remaining=3, used=497, reset_date=datetime.now(timezone.utc) - timedelta(days=1))

        usage = get_token_usage(TEST_USER_ID, db_session)

        assert usage.tokens_remaining == 500
        assert usage.tokens_used == 0
        assert usage.reset_date.replace(tzinfo=timezone.utc) == first_of_next_month()
        assert _transaction_types(db_session) == [TransactionType.MONTHLY_RESET.value]

    def test_inactive_subscription_resets_to_free(self, db_session):
        make_subscription(db_session, tier=SubscriptionTier.PRO, is_active=False)
        make_balance(db_session, remaining=0, used=500, reset_date=datetime.now(timezone.utc) - timedelta(days=1))

        usage = get_token_usage(TEST_USER_ID, db_session)

        assert usage.tokens_remaining == 50

    def test_no_reset_before_reset_date(self, db_session):
        make_balance(db_session, remaining=3, used=47)

        usage = get_token_usage(TEST_USER_ID, db_session)

        assert usage.tokens_remaining == 3
        assert _transaction_types(db_session) == []

    def test_reset_applies_once(self, db_session):
        make_balance(db_session, remaining=3, used=47, reset_date=datetime.now(timezone.utc) - timedelta(hours=1))

        get_token_usage(TEST_USER_ID, db_session)
        debit_tokens(TEST_USER_ID, 10, db_session)
        usage = get_token_usage(TEST_USER_ID, db_session)

        assert usage.tokens_remaining == 40
        assert _transaction_types(db_session) == [TransactionType.MONTHLY_RESET.value]


@pytest.mark.high
class TestBalanceQueries:
    """Read models for the balance and history endpoints"""

    def test_balance_includes_tier_and_allowance(self, db_session):
        make_subscription(db_session, tier=SubscriptionTier.PRO)
        make_balance(db_session, remaining=120, used=380)

        balance = get_token_balance(TEST_USER_ID, db_session)

        assert balance["tokens_remaining"] == 120
        assert balance["tokens_used"] == 380
        assert balance["monthly_tokens"] == 500
        assert balance["subscription_tier"] == "PRO"
        assert balance["reset_date"] is not None

    def test_transactions_are_newest_first_and_limited(self, db_session):
        for amount in (1, 2, 3):
            record_transaction(TEST_USER_ID, amount, TransactionType.IMAGE_GENERATION, db_session)
        record_transaction("someone-else", 99, TransactionType.IMAGE_GENERATION, db_session)

        transactions = get_token_transactions(TEST_USER_ID, 2, db_session)

        assert [t["tokens_used"] for t in transactions] == [3, 2]

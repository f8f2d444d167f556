"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Amount must be positive
- Required references present (category, account, destination)
- Transfers cannot target their own source account
- A settlement cannot exceed what is owed

STAGE 2 - SEMANTIC VALIDATION:
- Insufficient funds in the source account
- Consistency of a deferred (partly paid) settlement

Stage 2 only runs when stage 1 passes, and is skipped entirely for
future-dated intents: scheduling a payment never checks today's balance.

IMPORTANT: Validation NEVER silently fixes issues.
An insufficient-funds finding is a warning the user must accept; accepting
it means re-submitting the intent with paid_now set.

Confirming a scheduled transaction runs the same checks against the
confirmed amount; there a loan_deficit accepts the shortfall.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from cashflow.config import get_settings
from cashflow.engine.balance import raw_balance
from cashflow.models.ledger import (
    LedgerState,
    LoanRequest,
    LoanType,
    Transaction,
    TransactionIntent,
    TransactionType,
)
from cashflow.models.validation import ValidationIssue, ValidationResult
from cashflow.utils.dates import ensure_aware, utc_now

ZERO = Decimal("0")


class TransactionValidator:
    """
    Validates transaction intents through a two-stage pipeline.

    Stage 1: Schema validation (needs only the intent)
    Stage 2: Semantic validation (needs the ledger state for balances)
    """

    def __init__(self, strict_settlement_amount: Optional[bool] = None, currency: Optional[str] = None):
        """
        Initialize validator.

        Args:
            strict_settlement_amount: Reject settlements above the amount
                owed. Defaults to the configured value.
            currency: Currency label used in messages.
        """
        settings = get_settings().ledger
        self._strict_settlement = (
            settings.strict_settlement_amount
            if strict_settlement_amount is None
            else strict_settlement_amount
        )
        self._currency = currency or settings.currency

    def _money(self, value: Decimal) -> str:
        return f"{self._currency} {value:,.2f}"

    def _validate_schema(
        self,
        intent: TransactionIntent,
        state: LedgerState,
        settlement_due: Optional[Decimal],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if intent.amount is None or intent.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
                suggested_fix="Enter a positive amount",
            ))

        # a settlement inherits the category of the debt it pays
        if (
            intent.type != TransactionType.TRANSFER
            and not intent.category_id
            and settlement_due is None
        ):
            issues.append(ValidationIssue(
                field="category_id",
                issue_type="missing",
                message="Please select a category",
                severity="error",
            ))

        if not intent.account_id:
            issues.append(ValidationIssue(
                field="account_id",
                issue_type="missing",
                message="Please select an account",
                severity="error",
            ))
        elif state.get_account(intent.account_id) is None:
            issues.append(ValidationIssue(
                field="account_id",
                issue_type="unknown_reference",
                message=f"Account {intent.account_id} does not exist",
                severity="error",
            ))

        if intent.type == TransactionType.TRANSFER:
            if not intent.to_account_id:
                issues.append(ValidationIssue(
                    field="to_account_id",
                    issue_type="missing",
                    message="Please select a destination account",
                    severity="error",
                ))
            elif intent.to_account_id == intent.account_id:
                issues.append(ValidationIssue(
                    field="to_account_id",
                    issue_type="invalid_value",
                    message="Cannot transfer to the same account",
                    severity="error",
                    suggested_fix="Choose a different destination account",
                ))
            elif state.get_account(intent.to_account_id) is None:
                issues.append(ValidationIssue(
                    field="to_account_id",
                    issue_type="unknown_reference",
                    message=f"Account {intent.to_account_id} does not exist",
                    severity="error",
                ))

        if (
            settlement_due is not None
            and self._strict_settlement
            and intent.amount is not None
            and intent.amount > settlement_due
        ):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="exceeds_due",
                message=f"Payment cannot exceed the due amount of {self._money(settlement_due)}",
                severity="error",
                suggested_fix=f"Enter at most {self._money(settlement_due)}",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        intent: TransactionIntent,
        state: LedgerState,
    ) -> tuple[bool, list[ValidationIssue], bool]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues, requires_confirmation)
        """
        issues = []
        requires_confirmation = False

        if intent.paid_now is not None and intent.paid_now > intent.amount:
            issues.append(ValidationIssue(
                field="paid_now",
                issue_type="invalid_value",
                message="The amount paid now cannot exceed the transaction amount",
                severity="error",
            ))
            return False, issues, False

        if intent.type == TransactionType.INCOME:
            return True, issues, False

        account = state.get_account(intent.account_id)
        available = raw_balance(account, state.transactions)
        fee = intent.transfer_fee or ZERO
        if intent.amount + fee > available:
            accepted = intent.paid_now is not None
            issues.append(ValidationIssue(
                field="amount",
                issue_type="insufficient_funds",
                message=(
                    f"Insufficient funds in {account.name}: "
                    f"{self._money(available)} available"
                ),
                severity="info" if accepted else "warning",
                suggested_fix="Proceed as a deferred settlement to record the unpaid remainder",
                available_balance=available,
            ))
            requires_confirmation = not accepted

        return True, issues, requires_confirmation

    def validate(
        self,
        intent: TransactionIntent,
        state: LedgerState,
        settlement_due: Optional[Decimal] = None,
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Args:
            intent: What the user asked to record
            state: Current ledger (for account lookups and balances)
            settlement_due: Amount owed when the intent is a settlement
            now: Reference instant; intents dated later skip stage 2

        Returns:
            ValidationResult with all issues found
        """
        now = ensure_aware(now) if now is not None else utc_now()
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(intent, state, settlement_due)
        all_issues.extend(schema_issues)

        semantic_valid = False
        requires_confirmation = False
        if schema_valid:
            if intent.date > now:
                semantic_valid = True
            else:
                semantic_valid, semantic_issues, requires_confirmation = self._validate_semantic(
                    intent, state
                )
                all_issues.extend(semantic_issues)

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            requires_confirmation=requires_confirmation,
            issues=all_issues,
            warnings=[issue.message for issue in all_issues if issue.severity == "warning"],
        )

    def validate_loan(self, request: LoanRequest) -> ValidationResult:
        """Schema checks for a loan facility request."""
        issues = []

        if not request.note:
            issues.append(ValidationIssue(
                field="note",
                issue_type="missing",
                message="Please give the facility a name",
                severity="error",
            ))
        if request.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Facility amount must be greater than zero",
                severity="error",
            ))
        if not request.account_id:
            issues.append(ValidationIssue(
                field="account_id",
                issue_type="missing",
                message="Please select an account",
                severity="error",
            ))
        if request.total_installments < 0:
            issues.append(ValidationIssue(
                field="total_installments",
                issue_type="invalid_value",
                message="Number of installments cannot be negative",
                severity="error",
            ))
        if request.installment_fee < 0:
            issues.append(ValidationIssue(
                field="installment_fee",
                issue_type="invalid_value",
                message="Installment amount cannot be negative",
                severity="error",
            ))
        if request.loan_type == LoanType.ASSET and request.down_payment < 0:
            issues.append(ValidationIssue(
                field="down_payment",
                issue_type="invalid_value",
                message="Down payment cannot be negative",
                severity="error",
            ))
        elif (
            request.loan_type == LoanType.ASSET
            and request.amount > 0
            and request.down_payment >= request.amount
        ):
            issues.append(ValidationIssue(
                field="down_payment",
                issue_type="invalid_value",
                message="Down payment must be less than the facility amount",
                severity="error",
            ))
        if (
            request.first_installment_date is not None
            and request.first_installment_date < request.setup_date
        ):
            issues.append(ValidationIssue(
                field="first_installment_date",
                issue_type="inconsistent",
                message="First installment is dated before the facility was set up",
                severity="warning",
                suggested_fix="Please verify both dates",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return ValidationResult(
            schema_valid=is_valid,
            semantic_valid=is_valid,
            is_valid=is_valid,
            issues=issues,
            warnings=[issue.message for issue in issues if issue.severity == "warning"],
        )

    def validate_realization(
        self,
        tx: Transaction,
        actual_amount: Decimal,
        actual_date: datetime,
        state: LedgerState,
        loan_deficit: Optional[Decimal] = None,
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        """
        Check a confirmation of a scheduled transaction.

        Stage 1 checks the confirmed amount and deficit. Stage 2 checks the
        account can cover the amount when the confirmation is dated now or
        earlier; a loan_deficit accepts the shortfall, as paid_now does for
        new intents.
        """
        now = ensure_aware(now) if now is not None else utc_now()
        issues = []

        actual_amount = Decimal(str(actual_amount))
        if actual_amount <= 0:
            issues.append(ValidationIssue(
                field="actual_amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
                suggested_fix="Enter a positive amount",
            ))
        deficit = Decimal(str(loan_deficit)) if loan_deficit is not None else None
        if deficit is not None and deficit < 0:
            issues.append(ValidationIssue(
                field="loan_deficit",
                issue_type="invalid_value",
                message="The unpaid amount cannot be negative",
                severity="error",
            ))
        account = state.get_account(tx.account_id)
        if account is None:
            issues.append(ValidationIssue(
                field="account_id",
                issue_type="unknown_reference",
                message=f"Account {tx.account_id} does not exist",
                severity="error",
            ))

        schema_valid = not any(issue.severity == "error" for issue in issues)
        requires_confirmation = False
        if (
            schema_valid
            and tx.type != TransactionType.INCOME
            and ensure_aware(actual_date) <= now
        ):
            available = raw_balance(account, state.transactions)
            if actual_amount > available:
                accepted = deficit is not None
                issues.append(ValidationIssue(
                    field="actual_amount",
                    issue_type="insufficient_funds",
                    message=(
                        f"Insufficient funds in {account.name}: "
                        f"{self._money(available)} available"
                    ),
                    severity="info" if accepted else "warning",
                    suggested_fix="Confirm with the unpaid part as a loan deficit",
                    available_balance=available,
                ))
                requires_confirmation = not accepted

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=schema_valid,
            is_valid=schema_valid,
            requires_confirmation=requires_confirmation,
            issues=issues,
            warnings=[issue.message for issue in issues if issue.severity == "warning"],
        )

    def validate_reschedule(self, new_date: datetime, now: Optional[datetime] = None) -> ValidationResult:
        """A rescheduled transaction must land in the future."""
        now = ensure_aware(now) if now is not None else utc_now()
        issues = []
        if ensure_aware(new_date) <= now:
            issues.append(ValidationIssue(
                field="date",
                issue_type="invalid_value",
                message="A rescheduled transaction must be dated in the future",
                severity="error",
                suggested_fix="Pick a later date",
            ))
        is_valid = not issues
        return ValidationResult(
            schema_valid=is_valid,
            semantic_valid=is_valid,
            is_valid=is_valid,
            issues=issues,
        )

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show to non-technical users.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if result.has_errors:
            lines.append("❌ This entry cannot be saved:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please confirm the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        if result.requires_confirmation:
            lines.append("")
            lines.append("You can still proceed; the unpaid part will be recorded as owed.")

        return "\n".join(lines)

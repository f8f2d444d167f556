"""
Core Ledger Models for Cashflow

These models define the schemas for everything the ledger engine consumes
and produces: transactions, accounts, categories, the whole ledger state,
and the intents a presentation layer builds before asking for a mutation.

DESIGN DECISION: Every record is a frozen Pydantic v2 model.
An edit, realization, reschedule or settlement never mutates a record in
place. It produces a new record carrying the same id, and the engine
returns a new collection containing it.

Field names are snake_case in Python. The JSON aliases are the camelCase
names used by the persisted state document (categoryId, isLoanParent,
rescheduledFrom, ...), and both spellings are accepted on input.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from cashflow.utils.dates import ensure_aware


# =============================================================================
# RESERVED IDENTIFIERS
# =============================================================================

OPENING_BALANCE_CATEGORY_ID = "0"
LOAN_CATEGORY_ID = "loan_category"

DOWN_PAYMENT_SUBCATEGORY = "Down Payment"
INSTALLMENT_SUBCATEGORY = "Installment"

UNKNOWN_CATEGORY_NAME = "Unknown"


def new_id() -> str:
    """Generate an opaque, unique transaction/category id."""
    return uuid4().hex


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a ledger entry."""
    INCOME = "Income"
    EXPENSE = "Expense"
    TRANSFER = "Transfer"


class TransactionStatus(str, Enum):
    """
    Realization status.

    PENDING entries are scheduled for a date that was in the future when
    they were created or rescheduled. They never affect balances.
    """
    PENDING = "pending"
    VERIFIED = "verified"


class AccountType(str, Enum):
    """Account kinds. Only CASH balances are clamped at zero."""
    CASH = "Cash"
    SAVINGS = "Savings"
    FIXED_DEPOSIT = "Fixed Deposit"


class LoanType(str, Enum):
    """
    Loan facility kinds.

    CASH: principal is received as income, then repaid in installments.
    ASSET: an asset bought on credit; optional down payment, then installments.
    """
    CASH = "CASH"
    ASSET = "ASSET"


class TransactionRole(str, Enum):
    """
    What a transaction represents inside the ledger.

    Set once at creation time. Consumers read the role instead of
    inspecting id prefixes or category ids.
    """
    PRIMARY = "primary"
    TRANSFER_FEE = "transfer_fee"
    OPENING_BALANCE = "opening_balance"
    LOAN_PARENT = "loan_parent"
    LOAN_INCOME = "loan_income"
    LOAN_DOWN_PAYMENT = "loan_down_payment"
    LOAN_INSTALLMENT = "loan_installment"
    SETTLEMENT = "settlement"


LOAN_CHILD_ROLES = frozenset({
    TransactionRole.LOAN_INCOME,
    TransactionRole.LOAN_DOWN_PAYMENT,
    TransactionRole.LOAN_INSTALLMENT,
})


class CategoryRole(str, Enum):
    """Role of a category, resolved from its id once."""
    ORDINARY = "ordinary"
    OPENING_BALANCE = "opening_balance"
    LOAN_FACILITY = "loan_facility"


def classify_category(category_id: Optional[str]) -> CategoryRole:
    """Resolve the role of a category id."""
    if category_id == OPENING_BALANCE_CATEGORY_ID:
        return CategoryRole.OPENING_BALANCE
    if category_id == LOAN_CATEGORY_ID:
        return CategoryRole.LOAN_FACILITY
    return CategoryRole.ORDINARY


_RECORD_CONFIG = ConfigDict(
    frozen=True,
    alias_generator=to_camel,
    populate_by_name=True,
    str_strip_whitespace=True,
    extra="ignore",
)


# =============================================================================
# CORE LEDGER RECORDS
# =============================================================================

class Transaction(BaseModel):
    """
    The atomic ledger entry.

    Loan facilities are stored as a parent record (is_loan_parent=True)
    plus children pointing back to it through related_transaction_id.
    A settlement record points at the debt it pays down the same way,
    but carries role SETTLEMENT so it is never mistaken for a loan child.
    """
    model_config = _RECORD_CONFIG

    # Identity
    id: str = Field(
        default_factory=new_id,
        min_length=1,
        description="Opaque id, stable for the record's lifetime"
    )

    # Money movement
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Magnitude actually moved"
    )
    type: TransactionType

    # Classification
    category_id: str = Field(
        default="",
        description="Category id; empty for transfers"
    )
    sub_category: Optional[str] = None

    # Accounts
    account_id: str = Field(
        ...,
        description="Source account"
    )
    to_account_id: Optional[str] = Field(
        default=None,
        description="Destination account (transfers only)"
    )

    # Timing
    date: datetime = Field(
        ...,
        description="Effective posting instant; may be in the future"
    )
    status: TransactionStatus = TransactionStatus.VERIFIED
    role: TransactionRole = TransactionRole.PRIMARY

    # Free text
    note: Optional[str] = None
    description: Optional[str] = None

    # Debt tracking
    original_amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Full requested amount when amount was reduced by a partial payment"
    )
    settled_amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Remaining amount owed; 0 or absent means no debt"
    )
    is_settled: Optional[bool] = None
    is_settlement: bool = Field(
        default=False,
        description="Record is a repayment, not a primary economic event"
    )
    related_transaction_id: Optional[str] = None

    # Loan facility fields (parent only)
    is_loan_parent: bool = False
    loan_type: Optional[LoanType] = None
    total_installments: Optional[int] = Field(default=None, ge=0)
    remaining_installments: Optional[int] = Field(default=None, ge=0)
    installment_fee: Optional[Decimal] = Field(default=None, ge=0)
    down_payment: Optional[Decimal] = Field(default=None, ge=0)
    first_installment_date: Optional[datetime] = Field(
        default=None,
        alias="rescheduledFrom",
        description="First installment date of a loan facility"
    )

    @model_validator(mode="before")
    @classmethod
    def derive_settled_flag(cls, data: Any) -> Any:
        """is_settled always mirrors settled_amount when one is present."""
        if not isinstance(data, dict):
            return data
        for key, flag_key in (("settled_amount", "is_settled"), ("settledAmount", "isSettled")):
            value = data.get(key)
            if value is None:
                continue
            try:
                owed = Decimal(str(value))
            except (InvalidOperation, ValueError):
                return data
            data = dict(data)
            data.pop("is_settled", None)
            data.pop("isSettled", None)
            data[flag_key] = owed <= 0
            return data
        return data

    @field_validator("status", mode="before")
    @classmethod
    def default_status(cls, v: Any) -> Any:
        return v or TransactionStatus.VERIFIED

    @field_validator("is_settlement", "is_loan_parent", mode="before")
    @classmethod
    def default_flags(cls, v: Any) -> Any:
        return bool(v)

    @field_validator("category_id", mode="before")
    @classmethod
    def default_category(cls, v: Any) -> Any:
        return v or ""

    @field_validator("date", "first_installment_date")
    @classmethod
    def normalize_instant(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(v) if v is not None else v

    @model_validator(mode="after")
    def validate_references(self) -> "Transaction":
        if self.related_transaction_id is not None and self.related_transaction_id == self.id:
            raise ValueError("A transaction cannot reference itself")
        return self

    @property
    def is_pending(self) -> bool:
        return self.status == TransactionStatus.PENDING

    @property
    def is_loan_child(self) -> bool:
        return self.role in LOAN_CHILD_ROLES

    @property
    def outstanding(self) -> Decimal:
        """Amount still owed on this record."""
        if self.is_settled or not self.settled_amount:
            return Decimal("0")
        return self.settled_amount


class Account(BaseModel):
    """
    A money container.

    balance is the baseline captured when the ledger was onboarded or
    reset. It is NOT the live balance; see engine.balance.
    """
    model_config = _RECORD_CONFIG

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Baseline value at onboarding/reset"
    )


class Category(BaseModel):
    """Income or expense classification with ordered free-text sub-categories."""
    model_config = _RECORD_CONFIG

    id: str = Field(default_factory=new_id, min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    icon: str = "Wallet"
    sub_categories: tuple[str, ...] = ()

    @field_validator("sub_categories", mode="before")
    @classmethod
    def default_sub_categories(cls, v: Any) -> Any:
        return v or ()

    @property
    def role(self) -> CategoryRole:
        return classify_category(self.id)


# =============================================================================
# BUILT-IN DEFAULTS
# =============================================================================

OPENING_BALANCE_CATEGORY = Category(
    id=OPENING_BALANCE_CATEGORY_ID,
    name="Opening Balance",
    type=TransactionType.INCOME,
    icon="Wallet",
)

LOAN_CATEGORY = Category(
    id=LOAN_CATEGORY_ID,
    name="Loans",
    type=TransactionType.INCOME,
    icon="Banknote",
    sub_categories=("Personal Loan", "Credit", "Adjustment"),
)

INITIAL_CATEGORIES: tuple[Category, ...] = (
    OPENING_BALANCE_CATEGORY,
    Category(id="1", name="Salary", type=TransactionType.INCOME, icon="Briefcase",
             sub_categories=("Monthly Salary", "Bonus", "Overtime")),
    Category(id="2", name="Freelance", type=TransactionType.INCOME, icon="Laptop",
             sub_categories=("Project", "Hourly", "Consulting")),
    Category(id="3", name="Gifts", type=TransactionType.INCOME, icon="Gift",
             sub_categories=("Birthday", "Wedding", "Donation")),
    Category(id="4", name="Food", type=TransactionType.EXPENSE, icon="Utensils",
             sub_categories=("Groceries", "Restaurants", "Coffee & Snacks", "Delivery")),
    Category(id="5", name="Transport", type=TransactionType.EXPENSE, icon="Car",
             sub_categories=("Fuel", "Public Transport", "Taxi/Uber", "Maintenance", "Parking")),
    Category(id="6", name="Housing", type=TransactionType.EXPENSE, icon="Home",
             sub_categories=("Rent", "Utilities", "Maintenance", "Internet", "Furniture")),
    Category(id="7", name="Entertainment", type=TransactionType.EXPENSE, icon="Film",
             sub_categories=("Movies", "Games", "Subscriptions", "Hobbies", "Events")),
    Category(id="8", name="Shopping", type=TransactionType.EXPENSE, icon="ShoppingBag",
             sub_categories=("Clothing", "Electronics", "Personal Care", "Health & Beauty")),
    LOAN_CATEGORY,
)

INITIAL_ACCOUNTS: tuple[Account, ...] = (
    Account(id="1", name="Cash in Hand", type=AccountType.CASH),
    Account(id="2", name="Savings Account", type=AccountType.SAVINGS),
    Account(id="3", name="Fixed Deposit", type=AccountType.FIXED_DEPOSIT),
)


def category_name(categories, category_id: Optional[str]) -> str:
    """
    Display name for a category id.

    Orphaned ids (category deleted while transactions still reference it)
    resolve to "Unknown"; the transactions themselves are left alone.
    """
    for category in categories:
        if category.id == category_id:
            return category.name
    return UNKNOWN_CATEGORY_NAME


# =============================================================================
# LEDGER STATE
# =============================================================================

class LedgerState(BaseModel):
    """
    The whole ledger as one immutable value.

    The presentation layer owns the single authoritative copy and replaces
    it with whatever an engine operation returns. Keys the engine does not
    know about (UI settings) are carried through untouched.
    """
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    transactions: tuple[Transaction, ...] = ()
    accounts: tuple[Account, ...] = INITIAL_ACCOUNTS
    categories: tuple[Category, ...] = INITIAL_CATEGORIES

    has_onboarded: bool = False
    notifications_enabled: bool = False
    last_notification_date: Optional[datetime] = None
    theme: str = "dark"

    @field_validator("last_notification_date")
    @classmethod
    def normalize_notification_instant(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(v) if v is not None else v

    def with_transactions(self, transactions) -> "LedgerState":
        return self.model_copy(update={"transactions": tuple(transactions)})

    def get_account(self, account_id: Optional[str]) -> Optional[Account]:
        for account in self.accounts:
            if account.id == account_id:
                return account
        return None

    def get_category(self, category_id: Optional[str]) -> Optional[Category]:
        for category in self.categories:
            if category.id == category_id:
                return category
        return None


# =============================================================================
# INTENTS - What the presentation layer asks for
# =============================================================================

class TransactionIntent(BaseModel):
    """
    A request to record an income, expense or transfer.

    amount is deliberately unconstrained here: the validator reports
    non-positive amounts as issues instead of failing construction.

    paid_now is set when the user accepted the insufficient-funds warning
    and chose to proceed as a deferred settlement: only paid_now leaves
    the account, the rest is recorded as owed.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal
    type: TransactionType
    category_id: str = ""
    sub_category: Optional[str] = None
    account_id: str = ""
    to_account_id: Optional[str] = None
    date: datetime
    note: Optional[str] = None
    description: Optional[str] = None
    transfer_fee: Optional[Decimal] = Field(default=None, ge=0)
    paid_now: Optional[Decimal] = Field(default=None, ge=0)
    related_transaction_id: Optional[str] = None

    @field_validator("date")
    @classmethod
    def normalize_instant(cls, v: datetime) -> datetime:
        return ensure_aware(v)


class LoanRequest(BaseModel):
    """
    A request to set up (or re-create) a loan facility.

    The facility total is expected to equal
    down_payment + total_installments * installment_fee; the caller builds
    it that way and the engine stores whatever it is given.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    loan_type: LoanType
    amount: Decimal
    down_payment: Decimal = Decimal("0")
    total_installments: int = 0
    installment_fee: Decimal = Decimal("0")
    setup_date: datetime
    first_installment_date: Optional[datetime] = None
    account_id: str
    category_id: str = LOAN_CATEGORY_ID
    note: str = ""
    description: Optional[str] = None

    @field_validator("setup_date", "first_installment_date")
    @classmethod
    def normalize_instant(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(v) if v is not None else v

    @property
    def effective_down_payment(self) -> Decimal:
        """CASH loans never carry a down payment."""
        if self.loan_type == LoanType.CASH:
            return Decimal("0")
        return self.down_payment

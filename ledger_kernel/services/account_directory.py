"""
AccountDirectory -- find-or-create for the fixed sales accounts.

Responsibility:
    Returns the Account row for a well-known code, creating it with a zero
    balance and its fixed name, type, category and description the first
    time it is asked for.

Invariants enforced:
    - At most one account per code: the UNIQUE constraint on
      ``accounts.code`` arbitrates concurrent creation, and the loser of
      the race re-reads the winner's row inside a savepoint.

Failure modes:
    - AccountResolutionError when the code has no definition, or the
      account can neither be found nor created.
"""

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ledger_kernel.domain.entries import StandardAccount
from ledger_kernel.exceptions import AccountResolutionError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account_directory")


@dataclass(frozen=True)
class AccountDefinition:
    code: str
    name: str
    account_type: AccountType
    category: str
    description: str


STANDARD_ACCOUNTS: dict[str, AccountDefinition] = {
    StandardAccount.CASH.value: AccountDefinition(
        code="CASH",
        name="Cash",
        account_type=AccountType.ASSET,
        category="Current Assets",
        description="Cash on hand for daily operations",
    ),
    StandardAccount.SALES.value: AccountDefinition(
        code="SALES",
        name="Sales Revenue",
        account_type=AccountType.REVENUE,
        category="Operating Revenue",
        description="Revenue from product sales",
    ),
    StandardAccount.TAX_PAY.value: AccountDefinition(
        code="TAX_PAY",
        name="Tax Payable",
        account_type=AccountType.LIABILITY,
        category="Current Liabilities",
        description="Tax collected from customers",
    ),
    StandardAccount.AR.value: AccountDefinition(
        code="AR",
        name="Accounts Receivable",
        account_type=AccountType.ASSET,
        category="Current Assets",
        description="Amounts owed by customers",
    ),
}


@dataclass(frozen=True)
class SalesAccounts:
    cash: Account
    sales: Account
    tax_payable: Account
    receivable: Account

    def by_code(self) -> dict[str, Account]:
        return {
            a.code: a
            for a in (self.cash, self.sales, self.tax_payable, self.receivable)
        }


class AccountDirectory(BaseService):
    """Get-or-create access to the standard sales accounts."""

    def __init__(self, session, definitions: dict[str, AccountDefinition] | None = None):
        super().__init__(session)
        self._definitions = definitions or STANDARD_ACCOUNTS

    def find(self, code: str) -> Account | None:
        return self.session.execute(
            select(Account).where(Account.code == code)
        ).scalar_one_or_none()

    def get_or_create(self, code: str) -> Account:
        """
        Return the account for ``code``, creating it on first use.

        Raises:
            AccountResolutionError: Unknown code or database failure.
        """
        try:
            account = self.find(code)
            if account is not None:
                return account

            definition = self._definitions.get(code)
            if definition is None:
                raise AccountResolutionError(code)

            savepoint = self.session.begin_nested()
            try:
                account = Account(
                    code=definition.code,
                    name=definition.name,
                    account_type=definition.account_type.value,
                    category=definition.category,
                    description=definition.description,
                    current_balance=Decimal("0"),
                )
                self.session.add(account)
                self.session.flush()
                savepoint.commit()
                logger.info(
                    "account_created",
                    extra={"account_code": code, "account_type": definition.account_type.value},
                )
                return account
            except IntegrityError:
                savepoint.rollback()
                logger.debug("account_create_race_retry", extra={"account_code": code})
                account = self.find(code)
                if account is None:
                    raise AccountResolutionError(code, "lost creation race and row vanished")
                return account
        except SQLAlchemyError as exc:
            raise AccountResolutionError(code, str(exc)) from exc

    def resolve_sales_accounts(self) -> SalesAccounts:
        """Resolve CASH, SALES, TAX_PAY and AR, creating any that are missing."""
        return SalesAccounts(
            cash=self.get_or_create(StandardAccount.CASH.value),
            sales=self.get_or_create(StandardAccount.SALES.value),
            tax_payable=self.get_or_create(StandardAccount.TAX_PAY.value),
            receivable=self.get_or_create(StandardAccount.AR.value),
        )

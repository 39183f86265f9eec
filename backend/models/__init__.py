from models.tenant import Tenant
from models.role import Role
from models.user_role import UserRole
from models.user_tenant import UserTenant
from models.bank_account import BankAccount
from models.tax import Tax
from models.tax_group import TaxGroup, TaxGroupTax
from models.tax_exemption import TaxExemption
from models.chart_of_accounts import ChartOfAccounts
from models.journal_entry import JournalEntry
from models.journal_entry_line import JournalEntryLine
from models.account_balance_history import AccountBalanceHistory

__all__ = ['AccountBalanceHistory', 'BankAccount', 'ChartOfAccounts', 'JournalEntry', 'JournalEntryLine', 'Role', 'Tax', 'TaxExemption', 'TaxGroup', 'TaxGroupTax', 'Tenant', 'UserRole', 'UserTenant',]

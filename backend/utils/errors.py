"""
Typed errors raised by the ledger core.

Every error carries an HTTP-like status code and a stable message key so the
API layer can render it without parsing strings. ``main.py`` registers the
handler that turns an ``ApiError`` into a JSON response.
"""

import enum
from typing import Optional


class ErrorMessages(str, enum.Enum):
    FORBIDDEN = "Forbidden"

    TENANT_NOT_FOUND = "Tenant not found"
    TENANT_NOT_FOUND_OR_NOT_DELETED = "Tenant not found or not deleted"
    TENANT_SCHEMA_ALREADY_EXISTS = "Tenant schema already exists"
    TENANT_SCHEMA_NOT_FOUND = "Tenant schema does not exist"
    INVALID_TENANT_SCHEMA_NAME = "Invalid tenant schema name format"
    TENANT_CONTEXT_REQUIRED = "Tenant context required"
    SUPERADMIN_ROLE_NOT_FOUND = "Superadmin role not found"
    USER_NOT_MEMBER_OF_TENANT = "User is not a member of this tenant"

    ACCOUNT_NOT_FOUND = "Account not found"
    ACCOUNT_NOT_FOUND_OR_NOT_DELETED = "Account not found or not deleted"

    CHART_OF_ACCOUNT_NOT_FOUND = "Chart of account not found"
    CHART_OF_ACCOUNT_NOT_FOUND_OR_NOT_DELETED = "Chart of account not found or not deleted"
    CHART_OF_ACCOUNT_NUMBER_EXISTS = "Account number already exists"
    CHART_OF_ACCOUNT_HAS_CHILDREN = "Cannot delete account with sub-accounts"
    CHART_OF_ACCOUNT_IS_SYSTEM = "Cannot modify system account"
    CHART_OF_ACCOUNT_IN_USE = "Cannot delete account that is in use"
    CHART_OF_ACCOUNT_PARENT_NOT_FOUND = "Parent account not found"
    CHART_OF_ACCOUNT_PARENT_TYPE_MISMATCH = "Parent account type must match child account type"
    CHART_OF_ACCOUNT_PARENT_CYCLE = "An account cannot be its own ancestor"
    CHART_OF_ACCOUNT_NUMBER_RANGE_EXHAUSTED = "No account numbers left in the range for this account type"
    CHART_OF_ACCOUNT_IMPORT_INVALID = "Import file is invalid"

    JOURNAL_ENTRY_NOT_FOUND = "Journal entry not found"
    JOURNAL_ENTRY_NOT_FOUND_OR_NOT_DELETED = "Journal entry not found or not deleted"
    JOURNAL_ENTRY_NUMBER_EXISTS = "Journal entry number already exists"
    JOURNAL_ENTRY_ALREADY_POSTED = "Journal entry is already posted"
    JOURNAL_ENTRY_ALREADY_VOIDED = "Journal entry is already voided"
    JOURNAL_ENTRY_CANNOT_MODIFY_POSTED = "Cannot modify a posted journal entry"
    JOURNAL_ENTRY_CANNOT_DELETE_POSTED = "Cannot delete a posted journal entry"
    JOURNAL_ENTRY_CANNOT_POST_VOIDED = "Cannot post a voided journal entry"
    JOURNAL_ENTRY_NOT_BALANCED = "Journal entry is not balanced (debits must equal credits)"
    JOURNAL_ENTRY_INSUFFICIENT_LINES = "Journal entry must have at least 2 lines"
    JOURNAL_ENTRY_LINE_INVALID = "Journal entry line must have either debit or credit, but not both"
    JOURNAL_ENTRY_LINE_ACCOUNT_NOT_FOUND = "Journal entry line references an unknown account"
    JOURNAL_ENTRY_CANNOT_VOID_POSTED = "Cannot void a posted journal entry. Reverse it instead."
    JOURNAL_ENTRY_CANNOT_REVERSE_DRAFT = "Cannot reverse a draft journal entry. Only posted entries can be reversed."
    JOURNAL_ENTRY_CANNOT_REVERSE_VOIDED = "Cannot reverse a voided journal entry."
    JOURNAL_ENTRY_ALREADY_REVERSED = "Journal entry has already been reversed"
    JOURNAL_ENTRY_REVERSAL_DATE_REQUIRED = "Reversal date is required"

    BALANCE_HISTORY_NOT_FOUND = "Balance history record not found"

    TAX_NOT_FOUND = "Tax not found"
    TAX_NOT_DELETED = "Tax is not deleted and cannot be restored"
    TAX_GROUP_NOT_FOUND = "Tax group not found"
    TAX_GROUP_NOT_DELETED = "Tax group is not deleted and cannot be restored"
    TAX_GROUP_HAS_NO_TAXES = "Tax group must have at least one tax"
    INVALID_TAX_IDS = "One or more tax IDs are invalid or do not belong to this tenant"
    TAX_EXEMPTION_NOT_FOUND = "Tax exemption not found"
    TAX_EXEMPTION_NOT_DELETED = "Tax exemption is not deleted and cannot be restored"


class ApiError(Exception):
    """Base error for business-rule violations, rendered as ``{"detail": message}``."""

    status_code = 500

    def __init__(self, error: ErrorMessages, detail: Optional[str] = None):
        self.error = error
        self.code = error.name
        self.message = detail or error.value
        super().__init__(self.message)

    def __repr__(self):
        return f"{type(self).__name__}({self.code!r})"


class BadRequest(ApiError):
    status_code = 400


class Forbidden(ApiError):
    status_code = 403


class NotFound(ApiError):
    status_code = 404


class Conflict(ApiError):
    status_code = 409

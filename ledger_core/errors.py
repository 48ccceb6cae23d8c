"""
Ledger Error Taxonomy

Every failure the ledger can signal derives from LedgerError. Validation and
business-rule errors are raised before any state change; conversion errors
leave the state as it was handed in; persistence errors never leave the
persistence adapter.
"""


class LedgerError(Exception):
    """Base class for all ledger errors"""
    pass


class InvalidInput(LedgerError):
    """
    Raised when an argument is malformed: a non-positive or non-numeric
    amount, an empty name or purpose, or an unknown currency.
    """
    pass


class LoanAlreadyActive(LedgerError):
    """Raised when a loan is requested while another one is outstanding"""
    pass


class NoActiveLoan(LedgerError):
    """Raised when paying back a loan that does not exist"""
    pass


class NoCustomer(LedgerError):
    """Raised when a banking operation is attempted before a customer exists"""
    pass


class UnknownOperation(LedgerError):
    """Raised when an operation name is not part of the ledger surface"""
    pass


class ConversionFailed(LedgerError):
    """Base class for currency conversion failures"""
    pass


class ConversionUnavailable(ConversionFailed):
    """The conversion service could not be reached or answered with an error"""
    pass


class ConversionMalformed(ConversionFailed):
    """The conversion service answered without a usable rate"""
    pass


class PersistenceUnavailable(LedgerError):
    """Durable storage could not be read or written"""
    pass

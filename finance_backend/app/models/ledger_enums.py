"""
Ledger enumerations.

Values match the column contents of the accounting tables.
"""

import enum


class AccountType(str, enum.Enum):
    """Chart-of-accounts account type."""
    ASSET = "ativo"
    LIABILITY = "passivo"
    REVENUE = "receita"
    EXPENSE = "despesa"
    COST = "custo"


class LedgerLineType(str, enum.Enum):
    """Ledger line side."""
    DEBIT = "debito"
    CREDIT = "credito"


class EntryStatus(str, enum.Enum):
    """Ledger entry status. Reports only consider CONFIRMED entries."""
    PENDING = "pendente"
    CONFIRMED = "confirmado"
    CANCELLED = "cancelado"


class RevenueStatus(str, enum.Enum):
    """Automatic revenue status."""
    PROCESSED = "processado"
    REPROCESSED = "reprocessado"

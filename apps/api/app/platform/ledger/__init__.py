from app.platform.ledger.models import LedgerAccount, LedgerTransaction, Voucher, VoucherEntry
from app.platform.ledger.schemas import (
    AccountStatement,
    LedgerAccountCreate,
    LedgerAccountRead,
    LedgerTransactionRead,
    VoucherCreate,
    VoucherEntryInput,
    VoucherRead,
)
from app.platform.ledger.service import LedgerService, ledger_service

__all__ = [
    "LedgerAccount",
    "LedgerTransaction",
    "Voucher",
    "VoucherEntry",
    "AccountStatement",
    "LedgerAccountCreate",
    "LedgerAccountRead",
    "LedgerTransactionRead",
    "VoucherCreate",
    "VoucherEntryInput",
    "VoucherRead",
    "LedgerService",
    "ledger_service",
]

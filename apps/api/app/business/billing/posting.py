"""Ledger effects of invoice state changes.

An invoice leaving draft gets one posted ``sales`` voucher (debit customer,
credit income). A paid invoice additionally gets a ``receipt`` voucher
(debit cash, credit customer). Both are linked through the voucher source
and cancelled (unposted, never deleted) when the invoice returns to
draft or is cancelled.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from app.business.billing.models import Invoice
from app.metrics import observe_ledger_post_failure
from app.platform.ledger.models import Voucher
from app.platform.ledger.schemas import VoucherCreate, VoucherEntryInput
from app.platform.ledger.service import CASH_CODE, ledger_service
from app.platform.security.context import AuthContext
from app.platform.tenancy.schemas import TenantConfig


logger = logging.getLogger("app.billing.posting")

INVOICE_SOURCE = "invoice"


@dataclass(slots=True)
class InvoicePoster:
    def post_invoice(self, session: Session, ctx: AuthContext, config: TenantConfig, invoice: Invoice) -> Voucher | None:
        existing = self.sales_vouchers(session, invoice)
        if existing:
            return existing[0]
        if invoice.income_account_id is None or invoice.customer_account_id is None:
            observe_ledger_post_failure("account_unresolved")
            logger.info(
                "invoice_posting_skipped",
                extra={"invoice_id": str(invoice.id), "invoice_number": invoice.invoice_number, "reason": "account_unresolved"},
            )
            return None
        if Decimal(invoice.total) <= Decimal("0"):
            logger.info("invoice_posting_skipped", extra={"invoice_id": str(invoice.id), "reason": "zero_total"})
            return None

        dto = VoucherCreate(
            voucher_type="sales",
            voucher_date=invoice.issue_date,
            narration=f"Invoice {invoice.invoice_number}",
            source_type=INVOICE_SOURCE,
            source_id=str(invoice.id),
            post=True,
            entries=[
                VoucherEntryInput(account_id=invoice.customer_account_id, debit_amount=Decimal(invoice.total)),
                VoucherEntryInput(account_id=invoice.income_account_id, credit_amount=Decimal(invoice.total)),
            ],
        )
        return ledger_service.create_voucher(session, ctx, config, dto, commit=False)

    def record_receipt(
        self,
        session: Session,
        ctx: AuthContext,
        config: TenantConfig,
        invoice: Invoice,
        payment_date: date,
    ) -> Voucher | None:
        existing = self.receipt_vouchers(session, invoice)
        if existing:
            return existing[0]
        if not self.sales_vouchers(session, invoice):
            logger.info("receipt_posting_skipped", extra={"invoice_id": str(invoice.id), "reason": "invoice_not_posted"})
            return None
        cash_account_id = self._cash_account_id(session, config)
        if cash_account_id is None or invoice.customer_account_id is None:
            observe_ledger_post_failure("account_unresolved")
            logger.info("receipt_posting_skipped", extra={"invoice_id": str(invoice.id), "reason": "account_unresolved"})
            return None

        dto = VoucherCreate(
            voucher_type="receipt",
            voucher_date=payment_date,
            narration=f"Payment for invoice {invoice.invoice_number}",
            source_type=INVOICE_SOURCE,
            source_id=str(invoice.id),
            post=True,
            entries=[
                VoucherEntryInput(account_id=cash_account_id, debit_amount=Decimal(invoice.total)),
                VoucherEntryInput(account_id=invoice.customer_account_id, credit_amount=Decimal(invoice.total)),
            ],
        )
        return ledger_service.create_voucher(session, ctx, config, dto, commit=False)

    def remove_postings(self, session: Session, ctx: AuthContext, invoice: Invoice, *, receipts_only: bool = False) -> int:
        vouchers = self.receipt_vouchers(session, invoice) if receipts_only else self.all_vouchers(session, invoice)
        for voucher in vouchers:
            ledger_service.void_voucher(session, ctx, voucher)
        if vouchers:
            logger.info(
                "invoice_postings_removed",
                extra={"invoice_id": str(invoice.id), "invoice_number": invoice.invoice_number, "count": len(vouchers)},
            )
        return len(vouchers)

    def all_vouchers(self, session: Session, invoice: Invoice) -> list[Voucher]:
        return ledger_service.find_vouchers_for_source(
            session, invoice.tenant_id, source_type=INVOICE_SOURCE, source_id=str(invoice.id)
        )

    def sales_vouchers(self, session: Session, invoice: Invoice) -> list[Voucher]:
        return ledger_service.find_vouchers_for_source(
            session, invoice.tenant_id, source_type=INVOICE_SOURCE, source_id=str(invoice.id), voucher_type="sales"
        )

    def receipt_vouchers(self, session: Session, invoice: Invoice) -> list[Voucher]:
        return ledger_service.find_vouchers_for_source(
            session, invoice.tenant_id, source_type=INVOICE_SOURCE, source_id=str(invoice.id), voucher_type="receipt"
        )

    @staticmethod
    def _cash_account_id(session: Session, config: TenantConfig) -> uuid.UUID | None:
        if config.default_cash_account_id is not None:
            return config.default_cash_account_id
        account = ledger_service.find_account_by_code(session, config.tenant_id, CASH_CODE)
        return account.id if account is not None else None


invoice_poster = InvoicePoster()

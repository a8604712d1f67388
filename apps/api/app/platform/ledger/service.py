from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import Select, and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app import audit
from app.metrics import observe_ledger_post_failure, observe_voucher_posted
from app.platform.ledger.models import LedgerAccount, LedgerTransaction, Voucher, VoucherEntry
from app.platform.ledger.schemas import (
    AccountStatement,
    LedgerAccountCreate,
    LedgerAccountRead,
    LedgerTransactionRead,
    StatementLine,
    VoucherCreate,
    VoucherEntryInput,
    VoucherEntryRead,
    VoucherRead,
)
from app.platform.numbering import insert_numbered
from app.platform.security.context import AuthContext
from app.platform.tenancy.schemas import NumberFormat, TenantConfig


logger = logging.getLogger("app.ledger")

CASH_CODE = "1000"
BANK_CODE = "1010"
RECEIVABLES_CODE = "1100"
TAX_PAYABLE_CODE = "2300"
SERVICE_INCOME_CODE = "4000"

_CUSTOMER_ACCOUNT_FORMAT = NumberFormat(prefix=RECEIVABLES_CODE, width=4)

DEFAULT_CHART: list[tuple[str, str, str, bool]] = [
    (CASH_CODE, "Cash", "asset", False),
    (BANK_CODE, "Bank", "asset", False),
    (RECEIVABLES_CODE, "Accounts Receivable", "asset", True),
    ("2100", "Accounts Payable", "liability", True),
    (TAX_PAYABLE_CODE, "Tax Payable", "liability", False),
    (SERVICE_INCOME_CODE, "Service Income", "income", False),
    ("5000", "Operating Expenses", "expense", False),
]


@dataclass(slots=True)
class LedgerService:
    def create_account(self, session: Session, ctx: AuthContext, config: TenantConfig, dto: LedgerAccountCreate) -> LedgerAccountRead:
        payload = dto.model_dump(mode="python")
        payload["currency"] = payload.get("currency") or config.currency
        if payload["parent_id"] is not None:
            self._get_account(session, config.tenant_id, payload["parent_id"])

        account = LedgerAccount(tenant_id=config.tenant_id, current_balance=self._q(dto.opening_balance), **payload)
        session.add(account)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="ledger account already exists")
        session.refresh(account)
        return LedgerAccountRead.model_validate(account)

    def list_accounts(self, session: Session, ctx: AuthContext, *, tenant_id: str, account_type: str | None = None) -> list[LedgerAccountRead]:
        stmt: Select[tuple[LedgerAccount]] = select(LedgerAccount).where(LedgerAccount.tenant_id == tenant_id)
        if account_type is not None:
            stmt = stmt.where(LedgerAccount.type == account_type)
        rows = session.scalars(stmt.order_by(LedgerAccount.code.asc())).all()
        return [LedgerAccountRead.model_validate(item) for item in rows]

    def get_account(self, session: Session, ctx: AuthContext, account_id: uuid.UUID) -> LedgerAccountRead:
        return LedgerAccountRead.model_validate(self._get_account(session, ctx.require_tenant(), account_id))

    def seed_chart_of_accounts(self, session: Session, ctx: AuthContext, *, tenant_id: str, currency: str) -> list[LedgerAccountRead]:
        existing_codes = set(
            session.scalars(select(LedgerAccount.code).where(LedgerAccount.tenant_id == tenant_id)).all()
        )

        created: list[LedgerAccount] = []
        for code, name, account_type, is_group in DEFAULT_CHART:
            if code in existing_codes:
                continue
            account = LedgerAccount(
                tenant_id=tenant_id,
                name=name,
                code=code,
                type=account_type,
                currency=currency,
                is_group=is_group,
                is_active=True,
            )
            session.add(account)
            created.append(account)

        session.commit()
        return [LedgerAccountRead.model_validate(item) for item in created]

    def find_account_by_code(self, session: Session, tenant_id: str, code: str) -> LedgerAccount | None:
        return session.scalar(
            select(LedgerAccount).where(
                and_(
                    LedgerAccount.tenant_id == tenant_id,
                    LedgerAccount.code == code,
                    LedgerAccount.is_active.is_(True),
                )
            )
        )

    def ensure_customer_account(self, session: Session, config: TenantConfig, customer_name: str) -> LedgerAccount:
        """Create a receivable sub-account `1100-NNNN` for a customer without one.

        The receivables group is created on demand. The caller writes the new
        account id back to the customer and owns the commit.
        """
        tenant_id = config.tenant_id
        group = self.find_account_by_code(session, tenant_id, RECEIVABLES_CODE)
        if group is None:
            group = LedgerAccount(
                tenant_id=tenant_id,
                name="Accounts Receivable",
                code=RECEIVABLES_CODE,
                type="asset",
                currency=config.currency,
                is_group=True,
            )
            session.add(group)
            session.flush()

        count_stmt = (
            select(func.count())
            .select_from(LedgerAccount)
            .where(LedgerAccount.tenant_id == tenant_id, LedgerAccount.parent_id == group.id)
        )
        return insert_numbered(
            session,
            fmt=_CUSTOMER_ACCOUNT_FORMAT,
            count_stmt=count_stmt,
            build=lambda code: LedgerAccount(
                tenant_id=tenant_id,
                parent_id=group.id,
                name=customer_name,
                code=code,
                type="asset",
                currency=config.currency,
            ),
            document="customer_account",
        )

    def create_voucher(
        self,
        session: Session,
        ctx: AuthContext,
        config: TenantConfig,
        dto: VoucherCreate,
        *,
        commit: bool = True,
    ) -> Voucher:
        tenant_id = config.tenant_id
        account_ids = {entry.account_id for entry in dto.entries}
        accounts = session.scalars(select(LedgerAccount).where(LedgerAccount.id.in_(account_ids))).all()
        account_map = {item.id: item for item in accounts}
        if len(account_map) != len(account_ids):
            observe_ledger_post_failure("account_not_found")
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="one or more accounts not found")
        for account in account_map.values():
            if account.tenant_id != tenant_id or not account.is_active:
                observe_ledger_post_failure("account_scope_invalid")
                raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="invalid account scope")

        debit_total, credit_total = self._totals(dto.entries)
        if debit_total != credit_total:
            observe_ledger_post_failure("unbalanced_voucher")
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="voucher is not balanced")

        count_stmt = (
            select(func.count())
            .select_from(Voucher)
            .where(Voucher.tenant_id == tenant_id, Voucher.voucher_type == dto.voucher_type)
        )

        def build(number: str) -> Voucher:
            voucher = Voucher(
                tenant_id=tenant_id,
                voucher_type=dto.voucher_type,
                voucher_number=number,
                voucher_date=dto.voucher_date,
                status="draft",
                narration=dto.narration,
                source_type=dto.source_type,
                source_id=dto.source_id,
                total_amount=debit_total,
                created_by=ctx.user_id,
            )
            voucher.entries = [
                VoucherEntry(
                    line_no=index,
                    account_id=entry.account_id,
                    debit_amount=self._q(entry.debit_amount),
                    credit_amount=self._q(entry.credit_amount),
                    narration=entry.narration,
                )
                for index, entry in enumerate(dto.entries, start=1)
            ]
            return voucher

        voucher = insert_numbered(
            session,
            fmt=config.voucher_format(dto.voucher_type),
            count_stmt=count_stmt,
            build=build,
            document=f"{dto.voucher_type}_voucher",
        )
        if dto.post:
            self._post(session, ctx, voucher)
        if commit:
            session.commit()
            session.refresh(voucher)
        return voucher

    def post_voucher(self, session: Session, ctx: AuthContext, voucher_id: uuid.UUID, *, commit: bool = True) -> VoucherRead:
        voucher = self._get_voucher(session, ctx.require_tenant(), voucher_id)
        if voucher.status == "posted":
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="voucher already posted")
        if voucher.status == "cancelled":
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="cancelled voucher cannot be posted")
        self._post(session, ctx, voucher)
        if commit:
            session.commit()
            session.refresh(voucher)
        return self.to_voucher_read(voucher)

    def unpost_voucher(self, session: Session, ctx: AuthContext, voucher_id: uuid.UUID, *, commit: bool = True) -> VoucherRead:
        voucher = self._get_voucher(session, ctx.require_tenant(), voucher_id)
        if voucher.status != "posted":
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="voucher is not posted")
        self._unpost(session, ctx, voucher)
        voucher.status = "draft"
        if commit:
            session.commit()
            session.refresh(voucher)
        return self.to_voucher_read(voucher)

    def cancel_voucher(self, session: Session, ctx: AuthContext, voucher_id: uuid.UUID, *, commit: bool = True) -> VoucherRead:
        voucher = self._get_voucher(session, ctx.require_tenant(), voucher_id)
        if voucher.status == "cancelled":
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="voucher already cancelled")
        self._cancel(session, ctx, voucher)
        if commit:
            session.commit()
            session.refresh(voucher)
        return self.to_voucher_read(voucher)

    def find_vouchers_for_source(
        self,
        session: Session,
        tenant_id: str,
        *,
        source_type: str,
        source_id: str,
        voucher_type: str | None = None,
        include_cancelled: bool = False,
    ) -> list[Voucher]:
        stmt = select(Voucher).where(
            Voucher.tenant_id == tenant_id,
            Voucher.source_type == source_type,
            Voucher.source_id == source_id,
        )
        if not include_cancelled:
            stmt = stmt.where(Voucher.status != "cancelled")
        if voucher_type is not None:
            stmt = stmt.where(Voucher.voucher_type == voucher_type)
        return list(session.scalars(stmt.options(selectinload(Voucher.entries)).order_by(Voucher.created_at.asc())).all())

    def void_voucher(self, session: Session, ctx: AuthContext, voucher: Voucher) -> None:
        """Unpost (restoring balances) and cancel a voucher; caller owns the commit.

        Vouchers are never deleted, so per-type numbering keeps counting them.
        """
        if voucher.status != "cancelled":
            self._cancel(session, ctx, voucher)
        session.flush()

    def list_vouchers(
        self,
        session: Session,
        ctx: AuthContext,
        *,
        tenant_id: str,
        voucher_type: str | None = None,
        source_type: str | None = None,
        source_id: str | None = None,
    ) -> list[VoucherRead]:
        stmt: Select[tuple[Voucher]] = (
            select(Voucher).where(Voucher.tenant_id == tenant_id).options(selectinload(Voucher.entries))
        )
        if voucher_type is not None:
            stmt = stmt.where(Voucher.voucher_type == voucher_type)
        if source_type is not None:
            stmt = stmt.where(Voucher.source_type == source_type)
        if source_id is not None:
            stmt = stmt.where(Voucher.source_id == source_id)
        rows = session.scalars(stmt.order_by(Voucher.voucher_date.desc(), Voucher.created_at.desc())).all()
        return [self.to_voucher_read(row) for row in rows]

    def get_voucher(self, session: Session, ctx: AuthContext, voucher_id: uuid.UUID) -> VoucherRead:
        return self.to_voucher_read(self._get_voucher(session, ctx.require_tenant(), voucher_id))

    def list_transactions(self, session: Session, ctx: AuthContext, account_id: uuid.UUID) -> list[LedgerTransactionRead]:
        account = self._get_account(session, ctx.require_tenant(), account_id)
        rows = session.scalars(
            select(LedgerTransaction)
            .where(LedgerTransaction.account_id == account.id)
            .order_by(LedgerTransaction.transaction_date.asc(), LedgerTransaction.created_at.asc())
        ).all()
        return [LedgerTransactionRead.model_validate(row) for row in rows]

    def recalculate_balance(self, session: Session, ctx: AuthContext, account_id: uuid.UUID) -> LedgerAccountRead:
        account = self._get_account(session, ctx.require_tenant(), account_id)
        debit_sum, credit_sum = session.execute(
            select(
                func.coalesce(func.sum(LedgerTransaction.debit), 0),
                func.coalesce(func.sum(LedgerTransaction.credit), 0),
            ).where(LedgerTransaction.account_id == account.id)
        ).one()
        account.current_balance = self._q(Decimal(account.opening_balance) + Decimal(debit_sum) - Decimal(credit_sum))
        session.commit()
        session.refresh(account)
        return LedgerAccountRead.model_validate(account)

    def account_statement(
        self,
        session: Session,
        ctx: AuthContext,
        account_id: uuid.UUID,
        *,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> AccountStatement:
        account = self._get_account(session, ctx.require_tenant(), account_id)
        rows = session.scalars(
            select(LedgerTransaction)
            .where(LedgerTransaction.account_id == account.id)
            .order_by(LedgerTransaction.transaction_date.asc(), LedgerTransaction.created_at.asc())
        ).all()

        balance = Decimal(account.opening_balance)
        lines: list[StatementLine] = []
        opening = balance
        for row in rows:
            movement = Decimal(row.debit) - Decimal(row.credit)
            if start_date is not None and row.transaction_date < start_date:
                balance += movement
                opening = balance
                continue
            if end_date is not None and row.transaction_date > end_date:
                break
            balance += movement
            lines.append(
                StatementLine(
                    transaction_id=row.id,
                    voucher_id=row.voucher_id,
                    transaction_date=row.transaction_date,
                    narration=row.narration,
                    debit=Decimal(row.debit),
                    credit=Decimal(row.credit),
                    running_balance=self._q(balance),
                )
            )
        return AccountStatement(
            account_id=account.id,
            opening_balance=self._q(opening),
            closing_balance=self._q(balance),
            lines=lines,
        )

    def _post(self, session: Session, ctx: AuthContext, voucher: Voucher) -> None:
        debit_total = sum((Decimal(entry.debit_amount) for entry in voucher.entries), start=Decimal("0"))
        credit_total = sum((Decimal(entry.credit_amount) for entry in voucher.entries), start=Decimal("0"))
        if self._q(debit_total) != self._q(credit_total) or not voucher.entries:
            observe_ledger_post_failure("unbalanced_voucher")
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="voucher is not balanced")

        for entry in voucher.entries:
            account = session.get(LedgerAccount, entry.account_id)
            if account is None:
                observe_ledger_post_failure("account_not_found")
                raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="ledger account not found")
            session.add(
                LedgerTransaction(
                    tenant_id=voucher.tenant_id,
                    voucher_id=voucher.id,
                    account_id=entry.account_id,
                    transaction_date=voucher.voucher_date,
                    debit=entry.debit_amount,
                    credit=entry.credit_amount,
                    narration=entry.narration or voucher.narration,
                )
            )
            account.current_balance = self._q(
                Decimal(account.current_balance) + Decimal(entry.debit_amount) - Decimal(entry.credit_amount)
            )

        voucher.status = "posted"
        voucher.posted_at = datetime.now(timezone.utc)
        session.flush()

        observe_voucher_posted(voucher.voucher_type, len(voucher.entries))
        logger.info(
            "voucher_posted",
            extra={"tenant_id": voucher.tenant_id, "voucher_id": str(voucher.id), "document_number": voucher.voucher_number},
        )
        audit.record(
            actor_user_id=ctx.user_id,
            entity_type="ledger.voucher",
            entity_id=str(voucher.id),
            action="ledger.voucher.posted",
            before=None,
            after={
                "voucher_type": voucher.voucher_type,
                "voucher_number": voucher.voucher_number,
                "source_type": voucher.source_type,
                "source_id": voucher.source_id,
                "total_amount": str(voucher.total_amount),
            },
            correlation_id=ctx.correlation_id,
            tenant_id=voucher.tenant_id,
        )

    def _cancel(self, session: Session, ctx: AuthContext, voucher: Voucher) -> None:
        previous = voucher.status
        if previous == "posted":
            self._unpost(session, ctx, voucher)
        voucher.status = "cancelled"
        audit.record(
            actor_user_id=ctx.user_id,
            entity_type="ledger.voucher",
            entity_id=str(voucher.id),
            action="ledger.voucher.cancelled",
            before={"status": previous},
            after={"status": "cancelled"},
            correlation_id=ctx.correlation_id,
            tenant_id=voucher.tenant_id,
        )

    def _unpost(self, session: Session, ctx: AuthContext, voucher: Voucher) -> None:
        transactions = session.scalars(select(LedgerTransaction).where(LedgerTransaction.voucher_id == voucher.id)).all()
        for row in transactions:
            account = session.get(LedgerAccount, row.account_id)
            if account is not None:
                account.current_balance = self._q(Decimal(account.current_balance) - Decimal(row.debit) + Decimal(row.credit))
            session.delete(row)
        voucher.posted_at = None
        session.flush()
        session.expire(voucher, ["transactions"])
        audit.record(
            actor_user_id=ctx.user_id,
            entity_type="ledger.voucher",
            entity_id=str(voucher.id),
            action="ledger.voucher.unposted",
            before={"status": "posted"},
            after={"removed_transactions": len(transactions)},
            correlation_id=ctx.correlation_id,
            tenant_id=voucher.tenant_id,
        )

    @staticmethod
    def _totals(entries: list[VoucherEntryInput]) -> tuple[Decimal, Decimal]:
        debit_total = sum((Decimal(entry.debit_amount) for entry in entries), start=Decimal("0"))
        credit_total = sum((Decimal(entry.credit_amount) for entry in entries), start=Decimal("0"))
        return LedgerService._q(debit_total), LedgerService._q(credit_total)

    @staticmethod
    def _get_account(session: Session, tenant_id: str, account_id: uuid.UUID) -> LedgerAccount:
        account = session.scalar(
            select(LedgerAccount).where(LedgerAccount.id == account_id, LedgerAccount.tenant_id == tenant_id)
        )
        if account is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="ledger account not found")
        return account

    @staticmethod
    def _get_voucher(session: Session, tenant_id: str, voucher_id: uuid.UUID) -> Voucher:
        voucher = session.scalar(
            select(Voucher)
            .where(Voucher.id == voucher_id, Voucher.tenant_id == tenant_id)
            .options(selectinload(Voucher.entries))
        )
        if voucher is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="voucher not found")
        return voucher

    @staticmethod
    def _q(value: Decimal) -> Decimal:
        return Decimal(value).quantize(Decimal("0.000001"))

    @staticmethod
    def to_voucher_read(voucher: Voucher) -> VoucherRead:
        payload = {
            "id": voucher.id,
            "tenant_id": voucher.tenant_id,
            "voucher_type": voucher.voucher_type,
            "voucher_number": voucher.voucher_number,
            "voucher_date": voucher.voucher_date,
            "status": voucher.status,
            "narration": voucher.narration,
            "source_type": voucher.source_type,
            "source_id": voucher.source_id,
            "total_amount": voucher.total_amount,
            "created_by": voucher.created_by,
            "posted_at": voucher.posted_at,
            "created_at": voucher.created_at,
            "entries": [VoucherEntryRead.model_validate(entry) for entry in voucher.entries],
        }
        return VoucherRead.model_validate(payload)


ledger_service = LedgerService()

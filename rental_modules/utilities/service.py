"""
Utility Bill Service (``rental_modules.utilities.service``).

Responsibility
--------------
Owns the utility bill lifecycle: creation, allocation across units,
approval, rejection, invoice generation and posting to the ledger.
Allocation math is delegated to ``rental_engines.allocation``; the ledger
entry to ``rental_kernel.services.journal_service``.

Invariants enforced
-------------------
* Every mutator loads the bill and asserts it is not POSTED before any
  other check.  A POSTED bill yields ``ALREADY_POSTED`` with zero writes.
* Approval requires allocations summing to the total within 0.01.
* Posting writes the journal entry and flips the bill to POSTED (with
  journal_entry_id, posted_at and the allocation audit hash) in one
  transaction; a ledger failure rolls back and leaves the bill APPROVED.
* Invoice generation is idempotent: existing invoices for the bill block it.

Failure modes
-------------
* Expected failures  -> ``BillResult`` with ``is_success == False``,
  session rolled back.
* Unexpected exception  -> session rolled back, exception re-raised.

Audit relevance
---------------
Structured log events at the start and end of every public method carry
bill ids, statuses and amounts.  ``audit_hash`` is reproducible from the
allocation rows with ``compute_allocation_hash``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rental_config.schema import RentalSettings
from rental_engines.allocation import AllocationEngine, AllocationResult, AllocationTarget
from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.domain.money import ZERO, to_decimal, to_money
from rental_kernel.exceptions import (
    BillAlreadyPostedError,
    FinancialEntityNotFoundError,
    LedgerError,
)
from rental_kernel.logging_config import OperationTimer, get_logger
from rental_kernel.models.billing import (
    Invoice,
    InvoiceStatus,
    InvoiceType,
    UtilityAllocation,
    UtilityBill,
    UtilityBillStatus,
    UtilityImportMethod,
    UtilitySplitMethod,
)
from rental_kernel.models.property import Lease, LeaseStatus, MeterReading, Property, Unit
from rental_kernel.services.journal_service import JournalLineInput, JournalService
from rental_kernel.utils.hashing import hash_sorted_parts
from rental_modules._transactions import commit_or_rollback
from rental_modules.utilities.models import (
    AllocationSnapshot,
    BillInput,
    BillResult,
    BillResultStatus,
)
from rental_modules.utilities.validators import validate_bill_input
from rental_modules.utilities.workflows import BILL_WORKFLOW, GUARD_EVALUATORS
from rental_services.workflow_executor import TransitionResult, WorkflowExecutor

logger = get_logger("modules.utilities.service")

SOURCE_TYPE = "utility_bill"

_OCR_IMPORTS = frozenset({UtilityImportMethod.PDF_OCR, UtilityImportMethod.IMAGE_SCAN})


def compute_allocation_hash(allocations: Iterable[UtilityAllocation | AllocationSnapshot]) -> str:
    """SHA-256 over sorted ``unitId:amount:percentage`` strings.

    Amounts and percentages are rendered at two decimals so the hash does
    not depend on the storage scale.
    """
    parts = [
        f"{a.unit_id}:{to_money(a.amount)}:{to_money(a.percentage)}"
        for a in allocations
    ]
    return hash_sorted_parts(parts, separator="|")


def _snapshot(allocations: Iterable[UtilityAllocation]) -> tuple[AllocationSnapshot, ...]:
    return tuple(
        AllocationSnapshot(unit_id=a.unit_id, amount=to_money(a.amount), percentage=to_money(a.percentage))
        for a in allocations
    )


class UtilityBillService:
    """
    Utility bill lifecycle manager.

    Contract:
        Public methods return ``BillResult`` and own the transaction.
        The ``_do_*`` helpers never commit; the bulk coordinator
        calls the public methods one item at a time.
    """

    def __init__(
        self,
        session: Session,
        journal_service: JournalService | None = None,
        settings: RentalSettings | None = None,
        clock: Clock | None = None,
        workflow_executor: WorkflowExecutor | None = None,
        allocation_engine: AllocationEngine | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or RentalSettings()
        self._journal = journal_service or JournalService(session, clock=self._clock)
        self._engine = allocation_engine or AllocationEngine()
        self._workflow_executor = workflow_executor or WorkflowExecutor()
        for name, evaluator in GUARD_EVALUATORS.items():
            self._workflow_executor.guards.register(name, evaluator)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_bill(self, bill_id: UUID) -> UtilityBill | None:
        return self._session.get(UtilityBill, bill_id)

    def is_bill_posted(self, bill_id: UUID) -> bool:
        bill = self.get_bill(bill_id)
        return bill is not None and bill.is_posted

    def get_allocations_for_bill(self, bill_id: UUID) -> list[AllocationSnapshot]:
        rows = self._session.scalars(
            select(UtilityAllocation).where(UtilityAllocation.bill_id == bill_id)
        )
        return list(_snapshot(rows))

    # =========================================================================
    # Preconditions
    # =========================================================================

    def _load_mutable(self, bill_id: UUID) -> UtilityBill | None:
        """Load a bill for mutation.

        Raises:
            BillAlreadyPostedError: the bill is POSTED.
        """
        bill = self.get_bill(bill_id)
        if bill is not None:
            self.assert_not_posted(bill)
        return bill

    @staticmethod
    def assert_not_posted(bill: UtilityBill) -> None:
        if bill.is_posted:
            raise BillAlreadyPostedError(str(bill.id))

    def _already_posted(self, exc: BillAlreadyPostedError, operation: str) -> BillResult:
        logger.warning(
            "bill_mutation_refused_posted",
            extra={"bill_id": exc.bill_id, "operation": operation},
        )
        self._session.rollback()
        return BillResult(
            BillResultStatus.ALREADY_POSTED,
            bill_id=UUID(exc.bill_id),
            bill_status=UtilityBillStatus.POSTED,
            message=str(exc),
        )

    def _fail(self, status: BillResultStatus, bill: UtilityBill | None = None,
              message: str | None = None, **kwargs) -> BillResult:
        result = BillResult(
            status,
            bill_id=bill.id if bill is not None else None,
            bill_status=bill.status if bill is not None else None,
            message=message,
            **kwargs,
        )
        logger.info(
            "bill_operation_refused",
            extra={
                "bill_id": str(result.bill_id) if result.bill_id else None,
                "result": status.value,
                "message": message,
            },
        )
        return result

    def _check_transition(
        self, bill: UtilityBill, target: UtilityBillStatus, context: dict | None = None
    ) -> TransitionResult:
        return self._workflow_executor.execute_transition(
            BILL_WORKFLOW,
            current_state=bill.status.value,
            requested_state=target.value,
            entity_type=SOURCE_TYPE,
            entity_id=bill.id,
            context=context or {},
        )

    # =========================================================================
    # Create
    # =========================================================================

    def create_bill(self, data: BillInput, actor_id: UUID | None = None) -> BillResult:
        """Create a bill in DRAFT.  All validation errors are reported together."""
        try:
            logger.info(
                "utility_bill_create_started",
                extra={
                    "property_id": str(data.property_id) if data.property_id else None,
                    "provider_name": data.provider_name,
                    "total_amount": str(data.total_amount),
                },
            )
            errors = validate_bill_input(data)
            if errors:
                result = self._fail(
                    errors[0][0],
                    message=errors[0][1],
                    errors=tuple(msg for _, msg in errors),
                )
                commit_or_rollback(self._session, result)
                return result

            if self._session.get(Property, data.property_id) is None:
                result = self._fail(BillResultStatus.PROPERTY_NOT_FOUND)
                commit_or_rollback(self._session, result)
                return result

            bill = UtilityBill(
                property_id=data.property_id,
                provider_name=data.provider_name.strip(),
                total_amount=to_money(data.total_amount),
                bill_date=data.bill_date,
                due_date=data.due_date,
                split_method=data.split_method,
                import_method=data.import_method,
                ocr_confidence=data.ocr_confidence,
                file_url=data.file_url,
                status=UtilityBillStatus.DRAFT,
                created_by_id=actor_id,
            )
            self._session.add(bill)
            self._session.flush()

            result = BillResult(BillResultStatus.SUCCESS, bill_id=bill.id, bill_status=bill.status)
            logger.info(
                "utility_bill_created",
                extra={"bill_id": str(bill.id), "total_amount": str(bill.total_amount)},
            )
            commit_or_rollback(self._session, result)
            return result
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Allocation
    # =========================================================================

    def allocate_bill(
        self,
        bill_id: UUID,
        custom_ratios: Mapping[UUID, Decimal] | None = None,
        actor_id: UUID | None = None,
    ) -> BillResult:
        """
        Split the bill across the property's units and move it to PROCESSING.

        Preconditions:
            - Bill is DRAFT with no allocations.
            - The split method has the data it needs (footage, occupants,
              two meter readings per active lease, or ``custom_ratios``).
        Postconditions:
            - Allocation rows sum exactly to the total; bill is PROCESSING.
        """
        try:
            try:
                bill = self._load_mutable(bill_id)
            except BillAlreadyPostedError as exc:
                return self._already_posted(exc, "allocate_bill")

            result = self._do_allocate(bill, bill_id, custom_ratios, actor_id)
            commit_or_rollback(self._session, result)
            return result
        except Exception:
            self._session.rollback()
            raise

    def _do_allocate(
        self,
        bill: UtilityBill | None,
        bill_id: UUID,
        custom_ratios: Mapping[UUID, Decimal] | None,
        actor_id: UUID | None,
    ) -> BillResult:
        if bill is None:
            return self._fail(BillResultStatus.BILL_NOT_FOUND, message=str(bill_id))
        if bill.status != UtilityBillStatus.DRAFT:
            return self._fail(BillResultStatus.INVALID_STATUS, bill)
        if bill.allocations:
            return self._fail(BillResultStatus.ALREADY_ALLOCATED, bill)

        units = list(
            self._session.scalars(
                select(Unit).where(Unit.property_id == bill.property_id).order_by(Unit.unit_number, Unit.id)
            )
        )
        if not units:
            return self._fail(BillResultStatus.NO_UNITS_FOUND, bill)

        transition = self._check_transition(bill, UtilityBillStatus.PROCESSING)
        if not transition.success:
            return self._fail(BillResultStatus.INVALID_STATUS, bill, message=transition.reason)

        with OperationTimer() as timer:
            try:
                allocation = self._split(bill, units, custom_ratios)
            except ValueError as exc:
                return self._fail(BillResultStatus.MISSING_SPLIT_DATA, bill, message=str(exc))

            for share in allocation.shares:
                bill.allocations.append(
                    UtilityAllocation(
                        unit_id=share.unit_id,
                        amount=share.amount,
                        percentage=share.percentage,
                        created_by_id=actor_id,
                    )
                )
            bill.status = UtilityBillStatus.PROCESSING
            bill.updated_by_id = actor_id
            self._session.flush()

        logger.info(
            "utility_bill_allocated",
            extra={
                "bill_id": str(bill.id),
                "split_method": bill.split_method.value,
                "unit_count": len(allocation.shares),
                "rounding_adjustment": str(allocation.rounding_adjustment),
                "duration_ms": timer.duration_ms,
            },
        )
        return BillResult(
            BillResultStatus.SUCCESS,
            bill_id=bill.id,
            bill_status=bill.status,
            allocations=_snapshot(bill.allocations),
        )

    def _split(
        self,
        bill: UtilityBill,
        units: list[Unit],
        custom_ratios: Mapping[UUID, Decimal] | None,
    ) -> AllocationResult:
        """Pick weights for the bill's split method and run the engine.

        Raises ValueError when the method lacks data.
        """
        method = bill.split_method
        total = to_money(bill.total_amount)

        if method == UtilitySplitMethod.EQUAL:
            return self._engine.allocate_equal(total, [u.id for u in units])

        if method == UtilitySplitMethod.CUSTOM_RATIO:
            if not custom_ratios:
                raise ValueError("Custom ratio allocation requires explicit ratios")
            unit_ids = {u.id for u in units}
            unknown = [str(u) for u in custom_ratios if u not in unit_ids]
            if unknown:
                raise ValueError(f"Ratios reference units outside the property: {', '.join(unknown)}")
            ordered = {u.id: to_decimal(custom_ratios[u.id]) for u in units if u.id in custom_ratios}
            return self._engine.allocate_custom_ratio(
                total, ordered, tolerance=self._settings.billing.custom_ratio_tolerance
            )

        if method == UtilitySplitMethod.AI_OPTIMIZED:
            raise ValueError("AI_OPTIMIZED allocation is not supported")

        active = self._active_leases_by_unit([u.id for u in units])

        if method == UtilitySplitMethod.SQ_FOOTAGE:
            weights = {u.id: u.square_footage or Decimal("0") for u in units}
        elif method == UtilitySplitMethod.OCCUPANCY_BASED:
            weights = {
                u.id: Decimal(active[u.id].occupants or 0) if u.id in active else Decimal("0")
                for u in units
            }
        else:
            weights = self._meter_usage(units, active)

        return self._engine.allocate_weighted(
            total, [AllocationTarget(unit_id=u.id, weight=weights[u.id]) for u in units]
        )

    def _active_leases_by_unit(self, unit_ids: list[UUID]) -> dict[UUID, Lease]:
        leases = self._session.scalars(
            select(Lease)
            .where(Lease.unit_id.in_(unit_ids))
            .where(Lease.status == LeaseStatus.ACTIVE)
        )
        return {lease.unit_id: lease for lease in leases}

    def _meter_usage(self, units: list[Unit], active: dict[UUID, Lease]) -> dict[UUID, Decimal]:
        """Usage per unit: latest minus previous reading of its active lease.

        Any active lease without two readings, or with a negative delta,
        fails the whole allocation; partial metering is not allowed.
        """
        usage: dict[UUID, Decimal] = {}
        for unit in units:
            lease = active.get(unit.id)
            if lease is None:
                usage[unit.id] = Decimal("0")
                continue
            readings = list(
                self._session.scalars(
                    select(MeterReading)
                    .where(MeterReading.lease_id == lease.id)
                    .order_by(MeterReading.reading_date.desc(), MeterReading.created_at.desc())
                    .limit(2)
                )
            )
            if len(readings) < 2:
                raise ValueError(f"Lease {lease.id} needs two meter readings")
            delta = readings[0].reading_value - readings[1].reading_value
            if delta < 0:
                raise ValueError(f"Lease {lease.id} has a decreasing meter reading")
            usage[unit.id] = delta
        return usage

    # =========================================================================
    # Status transitions
    # =========================================================================

    def transition_to_processing(self, bill_id: UUID, actor_id: UUID | None = None) -> BillResult:
        """DRAFT -> PROCESSING without allocating (manual allocation flow)."""
        return self._simple_transition(
            bill_id, UtilityBillStatus.PROCESSING, actor_id, "transition_to_processing"
        )

    def request_review(self, bill_id: UUID, actor_id: UUID | None = None) -> BillResult:
        """PROCESSING -> REVIEW_REQUIRED."""
        return self._simple_transition(
            bill_id, UtilityBillStatus.REVIEW_REQUIRED, actor_id, "request_review"
        )

    def _simple_transition(
        self,
        bill_id: UUID,
        target: UtilityBillStatus,
        actor_id: UUID | None,
        operation: str,
    ) -> BillResult:
        try:
            try:
                bill = self._load_mutable(bill_id)
            except BillAlreadyPostedError as exc:
                return self._already_posted(exc, operation)

            if bill is None:
                result = self._fail(BillResultStatus.BILL_NOT_FOUND, message=str(bill_id))
            else:
                transition = self._check_transition(bill, target)
                if not transition.success:
                    result = self._fail(BillResultStatus.INVALID_STATUS, bill, message=transition.reason)
                else:
                    previous = bill.status
                    bill.status = target
                    bill.updated_by_id = actor_id
                    self._session.flush()
                    logger.info(
                        "utility_bill_status_changed",
                        extra={
                            "bill_id": str(bill.id),
                            "from_status": previous.value,
                            "to_status": target.value,
                        },
                    )
                    result = BillResult(BillResultStatus.SUCCESS, bill_id=bill.id, bill_status=target)
            commit_or_rollback(self._session, result)
            return result
        except Exception:
            self._session.rollback()
            raise

    def approve_bill(
        self,
        bill_id: UUID,
        actor_id: UUID | None = None,
        reviewed: bool = False,
    ) -> BillResult:
        """
        Approve a PROCESSING or REVIEW_REQUIRED bill.

        A bill imported by OCR or image scan with confidence under the review
        threshold is moved to REVIEW_REQUIRED instead (result
        ``REVIEW_REQUIRED``, committed) unless ``reviewed`` is True.
        """
        try:
            try:
                bill = self._load_mutable(bill_id)
            except BillAlreadyPostedError as exc:
                return self._already_posted(exc, "approve_bill")

            if bill is None:
                result = self._fail(BillResultStatus.BILL_NOT_FOUND, message=str(bill_id))
                commit_or_rollback(self._session, result)
                return result

            if bill.status not in (UtilityBillStatus.PROCESSING, UtilityBillStatus.REVIEW_REQUIRED):
                result = self._fail(BillResultStatus.INVALID_STATUS, bill)
                commit_or_rollback(self._session, result)
                return result

            allocations = list(bill.allocations)
            if not allocations:
                result = self._fail(BillResultStatus.NO_ALLOCATIONS, bill)
                commit_or_rollback(self._session, result)
                return result

            if (
                bill.status == UtilityBillStatus.PROCESSING
                and not reviewed
                and self._needs_review(bill)
            ):
                bill.status = UtilityBillStatus.REVIEW_REQUIRED
                bill.updated_by_id = actor_id
                self._session.flush()
                logger.info(
                    "utility_bill_review_required",
                    extra={"bill_id": str(bill.id), "ocr_confidence": str(bill.ocr_confidence)},
                )
                # the move to REVIEW_REQUIRED is a real write even though approval did not happen
                self._session.commit()
                return BillResult(
                    BillResultStatus.REVIEW_REQUIRED,
                    bill_id=bill.id,
                    bill_status=bill.status,
                    message="Low OCR confidence; manual review required before approval",
                )

            total = to_money(bill.total_amount)
            allocated = sum((to_money(a.amount) for a in allocations), ZERO)
            transition = self._check_transition(
                bill,
                UtilityBillStatus.APPROVED,
                {
                    "total": total,
                    "allocated": allocated,
                    "allocation_count": len(allocations),
                    "tolerance": self._settings.billing.allocation_tolerance,
                },
            )
            if not transition.success:
                result = self._fail(
                    BillResultStatus.ALLOCATION_SUM_MISMATCH,
                    bill,
                    message=f"Allocations total {allocated}, bill total {total}",
                )
                commit_or_rollback(self._session, result)
                return result

            bill.status = UtilityBillStatus.APPROVED
            bill.approved_at = self._clock.now()
            bill.updated_by_id = actor_id
            self._session.flush()
            logger.info(
                "utility_bill_approved",
                extra={"bill_id": str(bill.id), "total_amount": str(total)},
            )
            result = BillResult(BillResultStatus.SUCCESS, bill_id=bill.id, bill_status=bill.status)
            commit_or_rollback(self._session, result)
            return result
        except Exception:
            self._session.rollback()
            raise

    def _needs_review(self, bill: UtilityBill) -> bool:
        return (
            bill.import_method in _OCR_IMPORTS
            and bill.ocr_confidence is not None
            and bill.ocr_confidence < self._settings.billing.ocr_review_threshold
        )

    def reject_bill(self, bill_id: UUID, reason: str, actor_id: UUID | None = None) -> BillResult:
        """Any non-terminal status -> REJECTED.  No ledger entry."""
        try:
            try:
                bill = self._load_mutable(bill_id)
            except BillAlreadyPostedError as exc:
                return self._already_posted(exc, "reject_bill")

            if bill is None:
                result = self._fail(BillResultStatus.BILL_NOT_FOUND, message=str(bill_id))
            else:
                transition = self._check_transition(bill, UtilityBillStatus.REJECTED)
                if not transition.success:
                    result = self._fail(BillResultStatus.INVALID_STATUS, bill, message=transition.reason)
                else:
                    bill.status = UtilityBillStatus.REJECTED
                    bill.rejected_reason = reason
                    bill.updated_by_id = actor_id
                    self._session.flush()
                    logger.info(
                        "utility_bill_rejected",
                        extra={"bill_id": str(bill.id), "reason": reason},
                    )
                    result = BillResult(BillResultStatus.SUCCESS, bill_id=bill.id, bill_status=bill.status)
            commit_or_rollback(self._session, result)
            return result
        except Exception:
            self._session.rollback()
            raise

    def transition_bill(
        self,
        bill_id: UUID,
        target: UtilityBillStatus,
        actor_id: UUID | None = None,
        reason: str | None = None,
    ) -> BillResult:
        """Dispatch a requested target status to the matching operation."""
        if target == UtilityBillStatus.PROCESSING:
            return self.transition_to_processing(bill_id, actor_id)
        if target == UtilityBillStatus.REVIEW_REQUIRED:
            return self.request_review(bill_id, actor_id)
        if target == UtilityBillStatus.APPROVED:
            return self.approve_bill(bill_id, actor_id)
        if target == UtilityBillStatus.POSTED:
            return self.post_utility_bill(bill_id, actor_id)
        if target == UtilityBillStatus.REJECTED:
            return self.reject_bill(bill_id, reason or "Rejected", actor_id)
        # DRAFT is only ever an initial state
        try:
            try:
                bill = self._load_mutable(bill_id)
            except BillAlreadyPostedError as exc:
                return self._already_posted(exc, "transition_bill")
            if bill is None:
                result = self._fail(BillResultStatus.BILL_NOT_FOUND, message=str(bill_id))
            else:
                result = self._fail(
                    BillResultStatus.INVALID_STATUS,
                    bill,
                    message=f"No transition from '{bill.status.value}' to '{target.value}'",
                )
            commit_or_rollback(self._session, result)
            return result
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Invoices
    # =========================================================================

    def generate_invoices_for_bill(self, bill_id: UUID, actor_id: UUID | None = None) -> BillResult:
        """
        One UTILITY invoice per allocation, against the unit's ACTIVE lease.

        Preconditions:
            - Bill APPROVED with allocations; every allocated unit has an
              ACTIVE lease; no invoices exist for the bill yet.
        Postconditions:
            - Each allocation links to its invoice; all rows commit together.
        """
        try:
            try:
                bill = self._load_mutable(bill_id)
            except BillAlreadyPostedError as exc:
                return self._already_posted(exc, "generate_invoices_for_bill")

            result = self._do_generate_invoices(bill, bill_id, actor_id)
            commit_or_rollback(self._session, result)
            return result
        except Exception:
            self._session.rollback()
            raise

    def _do_generate_invoices(
        self, bill: UtilityBill | None, bill_id: UUID, actor_id: UUID | None
    ) -> BillResult:
        if bill is None:
            return self._fail(BillResultStatus.BILL_NOT_FOUND, message=str(bill_id))
        if bill.status != UtilityBillStatus.APPROVED:
            return self._fail(BillResultStatus.INVALID_STATUS, bill)
        allocations = list(bill.allocations)
        if not allocations:
            return self._fail(BillResultStatus.NO_ALLOCATIONS, bill)

        active = self._active_leases_by_unit([a.unit_id for a in allocations])
        for allocation in allocations:
            if allocation.unit_id not in active:
                return self._fail(
                    BillResultStatus.ALLOCATION_MISSING_LEASE,
                    bill,
                    message=f"Unit {allocation.unit_id} has no active lease",
                )

        existing = self._session.scalar(
            select(func.count(Invoice.id)).where(Invoice.utility_bill_id == bill.id)
        )
        if existing:
            return self._fail(BillResultStatus.ALREADY_EXISTS, bill)

        invoice_ids: list[UUID] = []
        for allocation in allocations:
            amount = to_money(allocation.amount)
            invoice = Invoice(
                lease_id=active[allocation.unit_id].id,
                invoice_type=InvoiceType.UTILITY,
                total_amount=amount,
                amount_paid=ZERO,
                balance=amount,
                due_date=bill.due_date,
                status=InvoiceStatus.PENDING,
                utility_bill_id=bill.id,
                created_by_id=actor_id,
            )
            self._session.add(invoice)
            self._session.flush()
            allocation.invoice_id = invoice.id
            invoice_ids.append(invoice.id)
        self._session.flush()

        logger.info(
            "utility_invoices_generated",
            extra={"bill_id": str(bill.id), "invoice_count": len(invoice_ids)},
        )
        return BillResult(
            BillResultStatus.SUCCESS,
            bill_id=bill.id,
            bill_status=bill.status,
            invoice_ids=tuple(invoice_ids),
        )

    # =========================================================================
    # Posting
    # =========================================================================

    def post_utility_bill(self, bill_id: UUID, actor_id: UUID | None = None) -> BillResult:
        """
        Post an APPROVED bill: Dr Utility Expense / Cr Accounts Payable.

        Preconditions:
            - Bill APPROVED with allocations; organization has a ledger.
        Postconditions:
            - On success: one balanced journal entry, bill POSTED with
              journal_entry_id, posted_at and audit_hash; committed together.
            - On failure: nothing written, bill stays APPROVED.
        """
        try:
            try:
                bill = self._load_mutable(bill_id)
            except BillAlreadyPostedError as exc:
                return self._already_posted(exc, "post_utility_bill")

            result = self._do_post(bill, bill_id, actor_id)
            commit_or_rollback(self._session, result)
            return result
        except Exception:
            self._session.rollback()
            raise

    def _do_post(self, bill: UtilityBill | None, bill_id: UUID, actor_id: UUID | None) -> BillResult:
        if bill is None:
            return self._fail(BillResultStatus.BILL_NOT_FOUND, message=str(bill_id))
        if bill.status != UtilityBillStatus.APPROVED:
            return self._fail(BillResultStatus.NOT_APPROVED, bill)
        allocations = list(bill.allocations)
        if not allocations:
            return self._fail(BillResultStatus.NO_ALLOCATIONS, bill)

        transition = self._check_transition(
            bill, UtilityBillStatus.POSTED, {"allocation_count": len(allocations)}
        )
        if not transition.success:
            return self._fail(BillResultStatus.NOT_APPROVED, bill, message=transition.reason)

        prop = self._session.get(Property, bill.property_id)
        total = to_money(bill.total_amount)
        audit_hash = compute_allocation_hash(allocations)
        ledger = self._settings.ledger

        logger.info(
            "utility_bill_posting_started",
            extra={"bill_id": str(bill.id), "total_amount": str(total), "audit_hash": audit_hash},
        )
        with OperationTimer() as timer:
            try:
                entry = self._journal.post(
                    organization_id=prop.organization_id,
                    transaction_date=bill.bill_date,
                    description=f"Utility Bill: {bill.provider_name}",
                    reference=f"UTIL-{bill.id}",
                    lines=[
                        JournalLineInput(
                            account_code=ledger.utility_expense,
                            debit=total,
                            description=f"Utility expense - {bill.provider_name}",
                            property_id=bill.property_id,
                        ),
                        JournalLineInput(
                            account_code=ledger.accounts_payable,
                            credit=total,
                            description=f"Accounts payable - {bill.provider_name}",
                            property_id=bill.property_id,
                        ),
                    ],
                    source_type=SOURCE_TYPE,
                    source_id=bill.id,
                    actor_id=actor_id,
                )
            except FinancialEntityNotFoundError as exc:
                return self._fail(BillResultStatus.NO_FINANCIAL_ENTITY, bill, message=str(exc))
            except LedgerError as exc:
                logger.error(
                    "utility_bill_posting_failed",
                    extra={"bill_id": str(bill.id), "error_code": exc.code, "error": str(exc)},
                )
                return self._fail(BillResultStatus.JOURNAL_FAILED, bill, message=str(exc))

            bill.status = UtilityBillStatus.POSTED
            bill.journal_entry_id = entry.id
            bill.audit_hash = audit_hash
            bill.posted_at = self._clock.now()
            bill.updated_by_id = actor_id
            self._session.flush()

        logger.info(
            "utility_bill_posted",
            extra={
                "bill_id": str(bill.id),
                "journal_entry_id": str(entry.id),
                "audit_hash": audit_hash,
                "duration_ms": timer.duration_ms,
            },
        )
        return BillResult(
            BillResultStatus.SUCCESS,
            bill_id=bill.id,
            bill_status=bill.status,
            journal_entry_id=entry.id,
            audit_hash=audit_hash,
        )

"""Human review of suggested payment matches.

State machine:

    pending -> matched | ignored
    matched -> pending          (undo)
    ignored -> pending          (undo)

Everything else, including a no-op transition to the current status, is
rejected with InvalidTransitionError. A request that keeps the current status
but carries notes only updates the notes.
"""

from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Union

from core.errors import InvalidTransitionError, NotFoundError
from core.models.receivables import (
    Invoice,
    LifecycleStatus,
    MatchStatus,
    PaymentMatch,
)
from core.observability.logging import get_logger
from core.observability.metrics import get_metrics
from reconciliation.scoring import confidence_level
from reconciliation.selector import MatchCandidate, possible_matches
from reconciliation.status import resolve
from storage.db import ReceivablesStore


logger = get_logger(__name__)


ALLOWED_TRANSITIONS = {
    MatchStatus.PENDING: frozenset({MatchStatus.MATCHED, MatchStatus.IGNORED}),
    MatchStatus.MATCHED: frozenset({MatchStatus.PENDING}),
    MatchStatus.IGNORED: frozenset({MatchStatus.PENDING}),
}

OUTSTANDING_STATUSES = [LifecycleStatus.OPEN, LifecycleStatus.OVERDUE]


def check_transition(current: MatchStatus, requested: MatchStatus) -> None:
    """Raise InvalidTransitionError unless current -> requested is allowed."""
    if requested == current:
        raise InvalidTransitionError(current.value, requested.value, f"match is already {current.value}")
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            current.value,
            requested.value,
            f"a {current.value} match must be reset to pending first",
        )


class PaymentMatchReviewer:
    """Applies reviewer decisions to payment matches.

    Example:
        reviewer = PaymentMatchReviewer(store)
        reviewer.update_match(match_id, "matched", user="anna")
    """

    def __init__(
        self,
        store: ReceivablesStore,
        mark_invoice_paid_on_match: bool = True,
        today: Callable[[], date] = date.today,
        now: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.mark_invoice_paid_on_match = mark_invoice_paid_on_match
        self.today = today
        self.now = now

    # =========================================================================
    # Status changes
    # =========================================================================

    def update_match(
        self,
        match_id: str,
        new_status: Union[MatchStatus, str, None] = None,
        chosen_invoice_id: Optional[str] = None,
        notes: Optional[str] = None,
        user: Optional[str] = None,
    ) -> PaymentMatch:
        """Move a match to a new review status.

        Args:
            match_id: Payment match to change
            new_status: Target status (pending, matched or ignored); omit
                or repeat the current status to change only the notes
            chosen_invoice_id: Invoice to confirm; defaults to the suggestion
            notes: Reviewer notes, replaces existing notes when given
            user: Who made the decision

        Returns:
            The updated match

        Raises:
            NotFoundError: unknown match or chosen invoice
            InvalidTransitionError: transition not allowed, or no invoice
                to confirm
        """
        now = self.now()

        with self.store.transaction() as conn:
            match = self.store.get_payment_match(match_id, conn=conn)
            if match is None:
                raise NotFoundError("Payment match", match_id)

            try:
                requested = match.status if new_status is None else MatchStatus(new_status)
            except ValueError:
                raise InvalidTransitionError(match.status.value, str(new_status), "unknown status")

            if requested == match.status and notes is not None:
                if chosen_invoice_id and chosen_invoice_id != match.matched_invoice_id:
                    raise InvalidTransitionError(
                        match.status.value,
                        requested.value,
                        "reset to pending before choosing another invoice",
                    )
                updated = match.model_copy(update={"notes": notes, "updated_at": now})
                self.store.update_payment_match(updated, conn=conn)
                logger.info(f"Payment match {match_id}: notes updated", extra_fields={"user": user})
                return updated

            check_transition(match.status, requested)

            payment = self.store.get_payment(match.payment_id, conn=conn)
            if payment is None:
                raise NotFoundError("Payment", match.payment_id)

            updates: Dict[str, Any] = {"status": requested, "updated_at": now}

            if requested == MatchStatus.MATCHED:
                invoice_id = chosen_invoice_id or match.suggested_invoice_id
                if not invoice_id:
                    raise InvalidTransitionError(
                        match.status.value,
                        requested.value,
                        "no invoice chosen and no suggestion available",
                    )
                invoice = self.store.get_invoice(invoice_id, conn=conn)
                if invoice is None:
                    raise NotFoundError("Invoice", invoice_id)

                updates.update(matched_invoice_id=invoice.id, matched_by=user, matched_at=now)
                self.store.set_payment_matched_invoice(payment.id, invoice.id, now, conn=conn)

                if self.mark_invoice_paid_on_match and invoice.status != LifecycleStatus.CANCELLED:
                    self.store.update_invoice_status(
                        invoice.id,
                        LifecycleStatus.PAID,
                        now,
                        payment_date=payment.payment_date,
                        conn=conn,
                    )

            elif requested == MatchStatus.IGNORED:
                updates.update(matched_invoice_id=None, matched_by=user, matched_at=now)

            else:
                previous_invoice_id = match.matched_invoice_id
                updates.update(matched_invoice_id=None, matched_by=None, matched_at=None)
                self.store.set_payment_matched_invoice(payment.id, None, now, conn=conn)
                if previous_invoice_id:
                    self._reopen_invoice(previous_invoice_id, match.id, payment.payment_date, now, conn)

            if notes is not None:
                updates["notes"] = notes

            updated = match.model_copy(update=updates)
            self.store.update_payment_match(updated, conn=conn)

        get_metrics().record_review_action(requested.value)
        logger.info(
            f"Payment match {match_id}: {match.status.value} -> {requested.value}",
            extra_fields={"matched_invoice_id": updated.matched_invoice_id, "user": user},
        )
        return updated

    def _reopen_invoice(self, invoice_id: str, match_id: str, payment_date: date, now: datetime, conn) -> None:
        """Undo the paid status a confirmed match put on an invoice."""
        if not self.mark_invoice_paid_on_match:
            return
        if self.store.count_matched_for_invoice(invoice_id, exclude_match_id=match_id, conn=conn):
            return

        invoice = self.store.get_invoice(invoice_id, conn=conn)
        if invoice is None or invoice.status != LifecycleStatus.PAID:
            return
        if invoice.payment_date != payment_date:
            # Paid by something other than this match
            return

        status = resolve(LifecycleStatus.OPEN, invoice.due_date, self.today())
        self.store.update_invoice_status(invoice_id, status, now, payment_date=None, conn=conn)

    # =========================================================================
    # Queries
    # =========================================================================

    def _describe(self, match: PaymentMatch, invoices: Dict[str, Invoice]) -> Dict[str, Any]:
        payment = self.store.get_payment(match.payment_id)
        entry = match.model_dump(mode="json")
        entry["payment"] = payment.model_dump(mode="json") if payment else None

        suggested = invoices.get(match.suggested_invoice_id) if match.suggested_invoice_id else None
        entry["suggested_invoice"] = suggested.model_dump(mode="json") if suggested else None

        matched = invoices.get(match.matched_invoice_id) if match.matched_invoice_id else None
        entry["matched_invoice"] = matched.model_dump(mode="json") if matched else None

        entry["confidence"] = (
            confidence_level(match.confidence_score).value
            if match.confidence_score is not None else None
        )
        return entry

    def list_matches(self) -> Dict[str, Any]:
        """All matches grouped by review status, with counts."""
        invoices = {inv.id: inv for inv in self.store.list_invoices()}
        grouped: Dict[str, List[Dict[str, Any]]] = {s.value: [] for s in MatchStatus}

        for match in self.store.list_payment_matches():
            grouped[match.status.value].append(self._describe(match, invoices))

        return {
            **grouped,
            "counts": {status: len(entries) for status, entries in grouped.items()},
        }

    def candidates(self, match_id: str) -> List[MatchCandidate]:
        """Ranked outstanding invoices that could settle the match's payment."""
        match = self.store.get_payment_match(match_id)
        if match is None:
            raise NotFoundError("Payment match", match_id)
        payment = self.store.get_payment(match.payment_id)
        if payment is None:
            raise NotFoundError("Payment", match.payment_id)

        outstanding = self.store.list_invoices(statuses=OUTSTANDING_STATUSES)
        return possible_matches(payment, outstanding)

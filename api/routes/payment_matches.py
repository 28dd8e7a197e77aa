"""Payment match review endpoints.

Lists suggested matches for review and applies reviewer decisions.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from api.deps import get_reviewer
from core.errors import InvalidTransitionError, NotFoundError
from core.models.receivables import MatchStatus
from reconciliation.review import PaymentMatchReviewer


router = APIRouter()


class MatchUpdateRequest(BaseModel):
    """Reviewer decision on a payment match."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    match_id: str
    status: Optional[MatchStatus] = Field(None, description="Omit to update only the notes")
    invoice_id: Optional[str] = Field(None, description="Invoice to confirm; defaults to the suggestion")
    notes: Optional[str] = None
    matched_by: Optional[str] = None


class MatchUpdateResponse(BaseModel):
    success: bool
    match: Dict[str, Any]


class CandidatesResponse(BaseModel):
    match_id: str
    candidates: List[Dict[str, Any]]


@router.get("")
async def list_payment_matches(
    reviewer: PaymentMatchReviewer = Depends(get_reviewer),
) -> Dict[str, Any]:
    """All matches grouped into pending / matched / ignored, with counts."""
    return reviewer.list_matches()


@router.get("/{match_id}/candidates", response_model=CandidatesResponse)
async def match_candidates(
    match_id: str,
    reviewer: PaymentMatchReviewer = Depends(get_reviewer),
) -> CandidatesResponse:
    """Ranked outstanding invoices for a match's payment."""
    try:
        candidates = reviewer.candidates(match_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return CandidatesResponse(match_id=match_id, candidates=[c.to_dict() for c in candidates])


@router.post("", response_model=MatchUpdateResponse)
async def update_payment_match(
    request: MatchUpdateRequest,
    reviewer: PaymentMatchReviewer = Depends(get_reviewer),
) -> MatchUpdateResponse:
    """Confirm, ignore or reset a payment match, or annotate it."""
    try:
        match = reviewer.update_match(
            request.match_id,
            request.status,
            chosen_invoice_id=request.invoice_id,
            notes=request.notes,
            user=request.matched_by,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return MatchUpdateResponse(success=True, match=match.model_dump(mode="json"))

"""
Retrieval Routes

Hybrid (vector + keyword) retrieval over a tenant's knowledge base. Called
by the conversation layer with the query text and its precomputed
embedding.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from .models import RetrieveRequest, RetrieveResponse
from ..auth.security import require_scopes
from ..auth.models import CallerContext
from ..retrieval.service import HybridRetriever
from .dependencies import get_retriever

router = APIRouter(tags=["retrieval"])


@router.post(
    "/retrieve",
    response_model=RetrieveResponse,
    summary="Hybrid knowledge-base retrieval",
    status_code=status.HTTP_200_OK,
)
async def retrieve(
    req: RetrieveRequest,
    caller: Annotated[CallerContext, Depends(require_scopes("retrieve"))],
    retriever: Annotated[HybridRetriever, Depends(get_retriever)],
) -> RetrieveResponse:
    """
    Return the fused ranking for one query.

    InvalidInput maps to 400, RetrievalUnavailable to 503; anything else
    (including a tenant isolation violation) falls through to the global 500
    handler.
    """
    outcome = await retriever.search(
        tenant_id=caller.tenant_id,
        query_text=req.query_text,
        query_embedding=req.query_embedding,
        top_k=req.top_k,
        min_similarity=req.min_similarity,
    )
    return RetrieveResponse.from_outcome(outcome)

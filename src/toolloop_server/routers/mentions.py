"""Mentions router.

Mentions pin servers or single tools into every model call, bypassing
semantic filtering. Changes apply from the next selection on; a run that
is already going keeps the mentions it started with.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from toolloop_server.dependencies import get_mention_store
from toolloop_server.mentions import MentionStore
from toolloop_server.models.mentions import (
    AddMentionResponse,
    MentionModel,
    MentionsResponse,
    ReplaceMentionsRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/mentions", tags=["mentions"])


def _response(store: MentionStore) -> MentionsResponse:
    return MentionsResponse(
        mentions=[MentionModel.from_mention(m) for m in store.snapshot()]
    )


def _save_failed(e: Exception) -> HTTPException:
    logger.error(f"Failed to save mentions: {e}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to save mentions: {str(e)}",
    )


@router.get("", response_model=MentionsResponse)
async def list_mentions(
    store: Annotated[MentionStore, Depends(get_mention_store)],
) -> MentionsResponse:
    """List the current mentions."""
    return _response(store)


@router.put("", response_model=MentionsResponse)
async def replace_mentions(
    request_body: ReplaceMentionsRequest,
    store: Annotated[MentionStore, Depends(get_mention_store)],
) -> MentionsResponse:
    """Replace all mentions. Duplicates keep their first position."""
    try:
        store.replace([m.to_mention() for m in request_body.mentions])
    except OSError as e:
        raise _save_failed(e)
    logger.info(f"Replaced mentions, {len(store.snapshot())} pinned")
    return _response(store)


@router.post("", response_model=AddMentionResponse)
async def add_mention(
    request_body: MentionModel,
    store: Annotated[MentionStore, Depends(get_mention_store)],
) -> AddMentionResponse:
    """Add one mention. Adding an existing mention is a no-op."""
    try:
        added = store.add(request_body.to_mention())
    except OSError as e:
        raise _save_failed(e)
    return AddMentionResponse(added=added, mentions=_response(store).mentions)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def clear_mentions(
    store: Annotated[MentionStore, Depends(get_mention_store)],
) -> None:
    """Remove all mentions."""
    try:
        store.clear()
    except OSError as e:
        raise _save_failed(e)
    logger.info("Cleared all mentions")


@router.delete("/{index}", response_model=MentionsResponse)
async def remove_mention(
    index: int,
    store: Annotated[MentionStore, Depends(get_mention_store)],
) -> MentionsResponse:
    """Remove the mention at a position.

    Raises:
        HTTPException: 404 if index is out of range
    """
    try:
        removed = store.remove(index)
    except IndexError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except OSError as e:
        raise _save_failed(e)
    logger.info(f"Removed mention {removed.key}")
    return _response(store)

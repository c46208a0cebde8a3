"""Translation of graph errors into HTTP responses."""

import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException, status

from philtree.services.branch_resolution import InvalidBranchRequestError
from philtree.services.concept_store import ConceptNotFoundError, ConceptStoreError
from philtree.services.edge_store import EdgeStoreError
from philtree.services.generation_service import GenerationFailedError
from philtree.services.rate_limiter import RateLimitExceededError

logger = logging.getLogger(__name__)


def rate_limit_exception(exc: RateLimitExceededError) -> HTTPException:
    headers = {}
    retry_after = exc.status.retry_after_seconds
    if retry_after is not None:
        headers["Retry-After"] = str(retry_after)
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={
            "message": "Generation limit reached",
            "remaining": exc.remaining,
            "limit": exc.limit,
            "reset_at": exc.reset_at.isoformat() if exc.reset_at else None,
        },
        headers=headers or None,
    )


@contextmanager
def graph_errors() -> Iterator[None]:
    """Map engine exceptions raised inside the block to HTTP errors."""
    try:
        yield
    except ConceptNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except RateLimitExceededError as e:
        raise rate_limit_exception(e) from e
    except GenerationFailedError as e:
        logger.warning(f"Generation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Generation failed, please try again",
        ) from e
    except InvalidBranchRequestError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except (ConceptStoreError, EdgeStoreError) as e:
        logger.error(f"Graph storage failure: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Graph storage error",
        ) from e

"""
Maintenance commands.

``philtree-backfill`` embeds concepts that were created while the embedding
provider was unavailable, and prunes expired generation-log entries.
"""

import argparse
import asyncio
import logging
from typing import Optional, Sequence

from philtree.api.deps import get_embedding_service, get_generation_service, get_vector_index
from philtree.core.database import async_session_factory, engine
from philtree.core.logging import configure_logging
from philtree.services.branch_resolution import BranchEngine

logger = logging.getLogger(__name__)


async def backfill(batch_size: int, max_batches: Optional[int], prune: bool) -> int:
    total = 0
    batches = 0
    try:
        async with async_session_factory() as session:
            graph = BranchEngine.for_session(
                session,
                vector_index=get_vector_index(),
                embeddings=get_embedding_service(),
                generator=get_generation_service(),
            )
            while max_batches is None or batches < max_batches:
                embedded = await graph.backfill_embeddings(batch_size)
                batches += 1
                total += embedded
                logger.info(f"Backfill batch {batches}: embedded {embedded} concepts")
                # A batch that embedded nothing means the rest are failing too.
                if embedded == 0:
                    break

            if prune:
                await graph.rate_limiter.prune()
    finally:
        await engine.dispose()
    return total


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="philtree-backfill", description=__doc__)
    parser.add_argument("--batch-size", type=int, default=50)
    parser.add_argument("--max-batches", type=int, default=None)
    parser.add_argument(
        "--prune-log",
        action="store_true",
        help="Also delete generation-log entries outside the rate-limit window",
    )
    args = parser.parse_args(argv)

    configure_logging()
    total = asyncio.run(backfill(args.batch_size, args.max_batches, args.prune_log))
    logger.info(f"Backfill complete: {total} concepts embedded")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

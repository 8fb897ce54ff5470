"""Bounded one-by-one resource fetches shared by the returns, backfill and timeline passes."""
from __future__ import annotations

from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from shipmirror.services.provider.errors import (
    ProviderAuthError,
    ProviderError,
    ProviderNotFoundError,
    ProviderRateLimitError,
)
from shipmirror.utils.logger import logger

from .results import StageResult


async def fetch_each(
    name: str,
    entity: str,
    keys: Sequence[Any],
    fetch: Callable[[Any], Awaitable[Any]],
    not_found: Optional[List[Any]] = None,
) -> Tuple[List[Tuple[Any, Any]], StageResult]:
    """Fetch ``keys`` in order, returning ``[(key, payload)]`` and a stage result.

    404 skips the key. 429 stops the loop with a warning; the next scheduled
    run picks up the rest. A rejected credential halts the client; any other
    provider failure stops the loop with an error. Keys answered with 404 are
    appended to ``not_found`` when a list is passed.
    """
    stage = StageResult(name=name, counts={f"{entity}_requested": 0, f"{entity}_not_found": 0})
    fetched: List[Tuple[Any, Any]] = []
    for index, key in enumerate(keys):
        stage.counts[f"{entity}_requested"] += 1
        try:
            payload = await fetch(key)
        except ProviderNotFoundError:
            stage.counts[f"{entity}_not_found"] += 1
            if not_found is not None:
                not_found.append(key)
            continue
        except ProviderRateLimitError:
            left = len(keys) - index
            stage.warnings.append(f"rate limited; {left} {entity} left for the next run")
            logger.warning("[%s] rate limited with %s %s left", name, left, entity)
            break
        except ProviderAuthError as exc:
            stage.errors.append(f"credential rejected: {exc}")
            stage.halt = True
            break
        except ProviderError as exc:
            stage.errors.append(f"stopped at {entity} {key}: {exc}")
            logger.error("[%s] stopped at %s %s: %s", name, entity, key, exc)
            break
        fetched.append((key, payload))
    return fetched, stage

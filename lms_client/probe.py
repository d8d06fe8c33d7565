"""Existence probes: calls whose "not found" answer is data, not a failure."""
from __future__ import annotations

import logging
import typing as t

from lms_client.errors import FetchTimeout, NotFound

logger = logging.getLogger(__name__)

T = t.TypeVar("T")


async def probe(
    call: t.Awaitable[t.Optional[T]],
    absent_on_timeout: bool = False,
) -> t.Optional[T]:
    """Await ``call`` and return its record, or ``None`` if it does not exist.

    Only ``NotFound`` is turned into ``None``. Any other error (server errors,
    decoding problems, auth failures) propagates unchanged. A timeout is treated
    as absence only when ``absent_on_timeout`` is set, for endpoints whose
    contract says a slow answer means there is nothing to return.

    Args:
        call: The pending client call, e.g. ``client.get_assignment_result(7)``
        absent_on_timeout: Whether a ``FetchTimeout`` also means "absent"

    Returns:
        The fetched record, or ``None`` when the resource is absent
    """
    try:
        return await call
    except NotFound as e:
        logger.debug("absent: %s", e.path)
        return None
    except FetchTimeout:
        if not absent_on_timeout:
            raise
        logger.debug("timed out, treating as absent")
        return None

"""Fetches every page of the notification inbox."""

import asyncio
import logging
from typing import List

from .errors import FetchError, OctotermError
from .gateway import GitHubGateway
from .models import NotificationStub

logger = logging.getLogger(__name__)


async def fetch_all_stubs(gateway: GitHubGateway) -> List[NotificationStub]:
    """
    Fetch all notification threads of the authenticated user.

    The first page is requested alone to learn the page count; the remaining
    pages are requested concurrently. Page order is not preserved. Any page
    failure fails the whole call so that a partial inbox is never returned.

    Args:
        gateway: Authenticated GitHub gateway.

    Returns:
        List of NotificationStub objects.

    Raises:
        FetchError: If any page request fails.
    """
    first_items, last_page = await gateway.list_notifications(page=1)
    items = list(first_items)

    if last_page > 1:
        logger.info(f"Fetching {last_page - 1} more notification page(s) concurrently")
        results = await asyncio.gather(
            *(gateway.list_notifications(page=page) for page in range(2, last_page + 1)),
            return_exceptions=True,
        )
        for page, result in enumerate(results, start=2):
            if isinstance(result, OctotermError):
                logger.error(f"Notification page {page} failed: {result}")
                raise result
            if isinstance(result, BaseException):
                raise FetchError(f"notification page {page} failed: {result!r}") from result
            items.extend(result[0])

    try:
        stubs = [NotificationStub.from_api(item) for item in items]
    except (KeyError, TypeError, ValueError) as e:
        raise FetchError(f"malformed notification payload: {e}") from e

    logger.info(f"Fetched {len(stubs)} notification(s) from {last_page} page(s)")
    return stubs

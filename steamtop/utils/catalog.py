import logging
import re
from typing import List

logger = logging.getLogger(__name__)

APP_PAGE_RE = re.compile(r"/steam/apps/([0-9]+)")

# app ids are stored as signed 64-bit integers
MAX_APP_ID = 2**63 - 1
MAX_APP_ID_DIGITS = len(str(MAX_APP_ID))


def extract_app_ids(page: str) -> List[int]:
    """
    Extract application IDs from a store search results page.

    IDs are returned in page order, duplicates included. An empty list means
    the listing has no more pages.
    """
    app_ids: List[int] = []
    for match in APP_PAGE_RE.finditer(page):
        raw = match.group(1)
        digits = raw.lstrip("0") or "0"
        # length first: int() refuses very long digit strings
        if len(digits) > MAX_APP_ID_DIGITS or int(digits) > MAX_APP_ID:
            logger.warning(f"Bad app id: {raw[:32]}")
            continue
        app_id = int(digits)
        app_ids.append(app_id)
    return app_ids

"""Paginated listing of every key in a bucket."""

import logging
from typing import List

from bucket_mirror.filters import ACCEPT_ALL, KeyFilter
from bucket_mirror.store import ObjectStore

logger = logging.getLogger(__name__)


class RemoteLister:
    """Aggregate a bucket listing across all of its pages."""

    def __init__(self, store: ObjectStore, bucket: str):
        self.store = store
        self.bucket = bucket

    def list_all(self, key_filter: KeyFilter = ACCEPT_ALL) -> List[str]:
        """
        List every key in the bucket, then apply ``key_filter``.

        Pages are fetched one after another; the last key of each page is
        the marker for the next request. Duplicate keys are dropped while
        keeping first-seen order.

        Args:
            key_filter: Include filter applied to the aggregated key set

        Returns:
            Ordered, de-duplicated list of accepted keys

        Raises:
            StoreListError: If any page request fails
        """
        keys: List[str] = []
        seen = set()
        marker = None
        pages = 0

        while True:
            page = self.store.list_objects(self.bucket, marker)
            pages += 1
            for key in page.keys:
                if key not in seen:
                    seen.add(key)
                    keys.append(key)
            if not page.is_truncated or not page.keys:
                break
            marker = page.keys[-1]

        logger.debug(f"Listed {len(keys)} key(s) in {pages} page(s) from {self.bucket}")
        return key_filter.apply(keys)

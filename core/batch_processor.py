# core/batch_processor.py

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Sequence
import logging

from tqdm import tqdm

logger = logging.getLogger(__name__)


class BatchProcessor:
    """
    Fan a function out over a batch of independent items
    """

    def __init__(self,
                 n_workers: int = 4,
                 show_progress: bool = False):
        self.n_workers = max(1, n_workers)
        self.show_progress = show_progress

    def process_items_parallel(self,
                               items: Sequence[Any],
                               process_func: Callable[[Any], Any],
                               desc: str = "Processing") -> List[Any]:
        """
        Apply process_func to every item, preserving input order

        Args:
            items: Items to process
            process_func: Function applied to each item; must not share
                          mutable state between calls
            desc: Progress bar label

        Returns:
            List of results in the same order as items
        """
        if not items:
            return []

        if self.n_workers == 1 or len(items) == 1:
            return [process_func(item) for item in self._progress(items, desc)]

        with ThreadPoolExecutor(max_workers=min(self.n_workers, len(items))) as executor:
            results = list(tqdm(
                executor.map(process_func, items),
                total=len(items),
                desc=desc,
                disable=not self.show_progress
            ))

        logger.debug("%s: processed %d items with %d workers",
                     desc, len(items), self.n_workers)
        return results

    def _progress(self, items: Sequence[Any], desc: str):
        return tqdm(items, desc=desc, disable=not self.show_progress)

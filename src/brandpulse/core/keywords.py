"""
Keyword selection and keyword list views.

KeywordSelection tracks which keyword words the user picked per item. The view
helpers filter, sort and format provider-returned keyword lists.
"""

from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple, Union

from .config import KEYWORD_PREVIEW_LIMIT
from .models import BatchItem, ItemStatus, KeywordMetadata, Platform

ALL_PLATFORMS = "All"
SORT_RELEVANCE = "relevance"
SORT_ALPHABETICAL = "alphabetical"


class KeywordSelection:
    """Per-item sets of selected keyword words.

    An entry exists only while the item has at least one selected word.
    """

    def __init__(self):
        self._selected: Dict[str, Set[str]] = {}

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._selected

    def selected(self, item_id: str) -> FrozenSet[str]:
        return frozenset(self._selected.get(item_id, ()))

    def toggle(self, item_id: str, word: str) -> bool:
        """Flip membership of word; returns True if it is now selected."""
        current = self._selected.setdefault(item_id, set())
        if word in current:
            current.discard(word)
            now_selected = False
        else:
            current.add(word)
            now_selected = True
        if not current:
            del self._selected[item_id]
        return now_selected

    def select_all(self, item_id: str, words: Iterable[str]) -> None:
        """Replace the item's selection with exactly ``words``."""
        words = set(words)
        if words:
            self._selected[item_id] = words
        else:
            self._selected.pop(item_id, None)

    def discard(self, item_id: str) -> None:
        self._selected.pop(item_id, None)

    def clear(self) -> None:
        self._selected.clear()


def _as_platform(platform: Union[str, Platform, None]) -> Optional[Platform]:
    if platform is None or platform == ALL_PLATFORMS:
        return None
    return Platform(platform)


def filter_keywords(
    keywords: Sequence[KeywordMetadata],
    platform: Union[str, Platform, None] = ALL_PLATFORMS,
    sort_by: str = SORT_RELEVANCE,
) -> List[KeywordMetadata]:
    """
    Return a filtered, sorted copy of a keyword list.

    Args:
        keywords: Keywords as returned by the provider
        platform: "All" (or None) for no filtering, otherwise a platform name
        sort_by: "relevance" (highest first, ties keep provider order) or "alphabetical"
    """
    wanted = _as_platform(platform)
    kws = [kw for kw in keywords if wanted is None or kw.has_platform(wanted)]
    if sort_by == SORT_RELEVANCE:
        kws.sort(key=lambda kw: kw.relevance, reverse=True)
    elif sort_by == SORT_ALPHABETICAL:
        kws.sort(key=lambda kw: (kw.word.casefold(), kw.word))
    else:
        raise ValueError(f"Unsupported sort order: {sort_by}")
    return kws


def preview_keywords(
    keywords: Sequence[KeywordMetadata], limit: int = KEYWORD_PREVIEW_LIMIT
) -> Tuple[List[KeywordMetadata], int]:
    """Split a keyword list into the first ``limit`` entries and the hidden count."""
    shown = list(keywords[:limit])
    return shown, max(0, len(keywords) - limit)


def format_keywords(words: Iterable[str]) -> str:
    return ", ".join(words)


def combined_keywords(items: Iterable[BatchItem]) -> List[str]:
    """Unique keyword words across all completed items, in first-seen order."""
    seen: Dict[str, None] = {}
    for item in items:
        if item.status is ItemStatus.COMPLETED and item.result:
            for word in item.result.keyword_words:
                seen.setdefault(word, None)
    return list(seen)

"""词语统计与基于模型的类别检索。"""

from .category_search import (
    CategorySearchOptions,
    CategorySearchResult,
    CategorySearchService,
    parse_term_list,
)
from .word_frequency import WordFrequency
from .word_search import TargetStats, WordSearchResult, WordSearchService

__all__ = [
    "CategorySearchOptions",
    "CategorySearchResult",
    "CategorySearchService",
    "TargetStats",
    "WordFrequency",
    "WordSearchResult",
    "WordSearchService",
    "parse_term_list",
]

"""
模糊搜索工具

提供搜索文本规范化和与 PostgreSQL pg_trgm 扩展一致的三元组相似度算法。
PostgreSQL 下相似度由数据库计算，其他数据库（SQLite 开发/测试环境）使用本模块在内存中计算
"""
import re
from dataclasses import dataclass

_WORD_SPLIT_RE = re.compile(r"[^\w]+|_+")

# pg_trgm 默认阈值
DEFAULT_WORD_SIMILARITY_THRESHOLD = 0.6
DEFAULT_SIMILARITY_THRESHOLD = 0.3


def normalize_search_text(text: str | None) -> str:
    """
    规范化搜索文本：转小写，仅保留字母和数字

    Args:
        text: 原始文本

    Returns:
        规范化后的文本，如 "Lord of the Mysteries!" -> "lordofthemysteries"
    """
    if not text:
        return ""
    return "".join(ch for ch in text.lower() if ch.isalnum())


def trigrams(text: str) -> list[str]:
    """
    按 pg_trgm 规则提取有序三元组列表

    每个单词前补两个空格、后补一个空格后切分
    """
    result: list[str] = []
    for word in _WORD_SPLIT_RE.split(text.lower()):
        if not word:
            continue
        padded = f"  {word} "
        result.extend(padded[i : i + 3] for i in range(len(padded) - 2))
    return result


def similarity(a: str, b: str) -> float:
    """两个字符串三元组集合的 Jaccard 相似度（对应 pg_trgm similarity）"""
    set_a, set_b = set(trigrams(a)), set(trigrams(b))
    if not set_a or not set_b:
        return 0.0
    shared = len(set_a & set_b)
    return shared / (len(set_a) + len(set_b) - shared)


def word_similarity(query: str, text: str) -> float:
    """
    查询与目标文本中任意连续片段之间的最大相似度（对应 pg_trgm word_similarity）

    Args:
        query: 查询文本
        text: 目标文本

    Returns:
        0~1 之间的相似度
    """
    query_set = set(trigrams(query))
    ordered = trigrams(text)
    if not query_set or not ordered:
        return 0.0

    best = 0.0
    for start in range(len(ordered)):
        extent: set[str] = set()
        for end in range(start, len(ordered)):
            extent.add(ordered[end])
            shared = len(query_set & extent)
            score = shared / (len(query_set) + len(extent) - shared)
            if score > best:
                best = score
                if best == 1.0:
                    return best
    return best


@dataclass(frozen=True)
class SearchWeights:
    """相关度权重"""

    title: float = 2.5
    title_en: float = 2.0
    author: float = 1.0


def score_candidate(
    query_norm: str,
    title_norm: str,
    title_en_norm: str,
    author_norm: str,
    weights: SearchWeights = SearchWeights(),
    word_threshold: float = DEFAULT_WORD_SIMILARITY_THRESHOLD,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> float | None:
    """
    计算一部小说相对查询的相关度

    Returns:
        相关度；三个字段均未超过阈值时返回 None（不命中）
    """
    title_score = word_similarity(query_norm, title_norm)
    title_en_score = word_similarity(query_norm, title_en_norm)
    author_score = similarity(author_norm, query_norm)

    matched = (
        title_score >= word_threshold
        or title_en_score >= word_threshold
        or author_score >= threshold
    )
    if not matched:
        return None

    return (
        title_score * weights.title
        + title_en_score * weights.title_en
        + author_score * weights.author
    )

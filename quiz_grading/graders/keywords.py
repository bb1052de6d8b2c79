import logging
import re
from typing import List, Tuple

import numpy as np
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity

logger = logging.getLogger('grading')

MATCHING_MODES = ('exact', 'partial', 'fuzzy')


def _word_windows(text: str, size: int) -> List[str]:
    words = re.findall(r'\w+', text)
    if len(words) < size:
        return [' '.join(words)] if words else []
    return [' '.join(words[i:i + size]) for i in range(len(words) - size + 1)]


def fuzzy_similarity(keyword: str, text: str) -> float:
    """Best character n-gram TF-IDF similarity between a keyword and any
    run of words in ``text`` of the same length as the keyword."""
    size = max(1, len(re.findall(r'\w+', keyword)))
    windows = _word_windows(text, size)
    if not windows or not keyword.strip():
        return 0.0

    vectorizer = TfidfVectorizer(analyzer='char_wb', ngram_range=(2, 3), lowercase=False)
    try:
        tfidf_matrix = vectorizer.fit_transform([keyword] + windows)
    except ValueError:
        # empty vocabulary: nothing but punctuation on either side
        return 0.0
    similarities = cosine_similarity(tfidf_matrix[0:1], tfidf_matrix[1:])[0]
    return float(np.max(similarities))


def keyword_present(keyword: str, text: str, mode: str = 'partial',
                    case_sensitive: bool = False, fuzzy_threshold: float = 0.8) -> bool:
    """Check whether ``keyword`` occurs in ``text``.

    Args:
        keyword: Expected key concept
        text: Student answer
        mode: 'partial' (substring), 'exact' (whole words) or 'fuzzy'
            (TF-IDF similarity at or above ``fuzzy_threshold``)
        case_sensitive: Compare case as written
        fuzzy_threshold: Minimum similarity for the fuzzy mode
    """
    if not case_sensitive:
        keyword = keyword.lower()
        text = text.lower()

    if mode == 'exact':
        return re.search(r'(?<!\w)' + re.escape(keyword) + r'(?!\w)', text) is not None
    if mode == 'fuzzy':
        if keyword in text:
            return True
        return fuzzy_similarity(keyword, text) >= fuzzy_threshold
    return keyword in text


def match_keywords(keywords: List[str], text: str, mode: str = 'partial',
                   case_sensitive: bool = False, fuzzy_threshold: float = 0.8) -> Tuple[List[str], List[str]]:
    """Split ``keywords`` into (matched, missing) for ``text``."""
    if mode not in MATCHING_MODES:
        logger.warning(f"Unknown keyword matching mode {mode!r}, using 'partial'")
        mode = 'partial'

    matched_keywords = []
    missing_keywords = []
    for keyword in keywords:
        if keyword_present(keyword, text, mode, case_sensitive, fuzzy_threshold):
            matched_keywords.append(keyword)
        else:
            missing_keywords.append(keyword)
    return matched_keywords, missing_keywords

"""
Image Query Builders
Keyword extraction, strategy-specific search queries, and the image quality gate
"""

from __future__ import annotations

import re
from typing import Callable, Dict, Iterable, List, Sequence, Tuple

from core import ImageCandidate


STOP_WORDS = {
    "이", "그", "저", "것", "들", "의", "가", "에", "을", "를", "과", "와",
    "는", "은", "도", "만", "라", "이나", "나", "부터", "까지", "로", "으로",
    "에서", "에게", "한테", "보다", "처럼", "같이", "함께", "통해", "위해",
    "때문에", "따라", "위해서", "그래서", "하지만", "그러나", "따라서",
    "뉴스", "기사", "보도", "발표", "공개", "밝혀", "전해", "알려",
    "테스트", "AI", "인공지능",
}

ALLOWED_FORMATS = {"jpg", "jpeg", "png", "webp", "gif"}
PREFERRED_FORMATS = {"jpg", "jpeg", "png", "webp"}
MIN_WIDTH, MIN_HEIGHT = 400, 300
FLOOR_WIDTH, FLOOR_HEIGHT = 200, 150
MAX_BYTE_SIZE = 20_000_000

BRANDS: List[Tuple[str, str]] = [
    ("현대", "Hyundai Motor"),
    ("기아", "KIA Motors"),
    ("테슬라", "Tesla"),
    ("삼성", "Samsung"),
    ("애플", "Apple"),
    ("LG", "LG Electronics"),
    ("SK", "SK Group"),
    ("네이버", "Naver"),
    ("카카오", "Kakao"),
]

PRODUCT_KEYWORDS = [
    "아이폰", "갤럭시", "아이패드", "맥북",
    "아이오닉", "모델", "소나타", "EV6",
    "스마트폰", "노트북", "전기차", "태블릿",
]


def _clean(text: str) -> str:
    return re.sub(r"[^\w\s가-힣]", " ", str(text or ""))


def _contains_any(text: str, words: Iterable[str]) -> bool:
    return any(word in text for word in words)


def extract_keywords(title: str, limit: int = 5) -> List[str]:
    """Content words of a title, stop words and single characters removed."""
    words = [word for word in _clean(title).split() if len(word) > 1 and word not in STOP_WORDS]
    return words[:limit]


def generate_search_query(title: str, keywords: Sequence[str]) -> str:
    """Fallback query: up to three unique title/tag keywords."""
    merged: List[str] = []
    for word in list(extract_keywords(title)) + list(keywords):
        if len(word) > 1 and word not in merged:
            merged.append(word)
    return " ".join(merged[:3])


def category_query(title: str, content: str, keywords: Sequence[str]) -> str:
    tail = " ".join(keywords)
    if _contains_any(title, ("자동차", "차", "자율주행")):
        return f"자동차 vehicle car {tail}".strip()
    if _contains_any(title, ("주가", "투자", "경제")):
        return f"stock market chart graph {tail}".strip()
    if _contains_any(title, ("AI", "인공지능", "기술")):
        return f"technology artificial intelligence {tail}".strip()
    return f"{title} {tail}".strip()


def brand_query(title: str, content: str = "", keywords: Sequence[str] = ()) -> str:
    for korean, english in BRANDS:
        if korean in title:
            return f"{english} {korean}"
    return _clean(title).strip()


def object_query(title: str, content: str, keywords: Sequence[str] = ()) -> str:
    for product in PRODUCT_KEYWORDS:
        if product in title or product in content:
            return f"{product} product device"
    if _contains_any(title, ("자동차", "차")):
        return "car automobile vehicle"
    if _contains_any(title, ("건물", "건설")):
        return "building construction architecture"
    if _contains_any(title, ("음식", "요리")):
        return "food cooking restaurant"
    return " ".join(title.split()[:3])


def visual_query(title: str, content: str = "", keywords: Sequence[str] = ()) -> str:
    if _contains_any(title, ("상승", "하락", "증가", "감소")):
        return "chart graph statistics data visualization"
    if _contains_any(title, ("현장", "사고", "공사")):
        return "real scene actual photo documentary"
    if _contains_any(title, ("CEO", "대표", "사장")):
        return "business person executive professional"
    if _contains_any(title, ("출시", "신제품", "새로운")):
        return "product launch new release"
    return "professional photo high quality image"


def industry_query(title: str, content: str, keywords: Sequence[str] = ()) -> str:
    text = f"{title} {content}".lower()
    if _contains_any(text, ("자동차", "자율주행")):
        return "automotive industry car manufacturing"
    if _contains_any(text, ("it", "소프트웨어", "앱")):
        return "technology IT software development"
    if _contains_any(text, ("은행", "금융", "투자")):
        return "finance banking investment"
    if _contains_any(text, ("건설", "부동산")):
        return "construction real estate building"
    return "industry business corporate"


def emotional_query(title: str, content: str, keywords: Sequence[str] = ()) -> str:
    text = f"{title} {content}".lower()
    if _contains_any(text, ("성공", "증가", "상승")):
        return "success growth positive achievement"
    if _contains_any(text, ("위기", "감소", "하락")):
        return "crisis decline negative problem"
    if _contains_any(text, ("혁신", "새로운", "첫")):
        return "innovation breakthrough new revolutionary"
    if _contains_any(text, ("경쟁", "vs", "비교")):
        return "competition comparison rivalry"
    return "business situation modern"


def scene_query(title: str, content: str, keywords: Sequence[str] = ()) -> str:
    text = f"{title} {content}".lower()
    if _contains_any(text, ("회의", "미팅", "논의")):
        return "business meeting conference discussion"
    if _contains_any(text, ("생산", "제조", "공장")):
        return "factory manufacturing production line"
    if _contains_any(text, ("도로", "교통", "운전")):
        return "road traffic driving street"
    if _contains_any(text, ("사무실", "업무", "직장")):
        return "office workplace business environment"
    return "real life scene actual situation"


def advanced_query(title: str, content: str, keywords: Sequence[str]) -> str:
    """Composite of title keywords, the leading brand token and the first tag."""
    parts = extract_keywords(title)[:2] + brand_query(title).split()[:1] + list(keywords)[:1]
    unique: List[str] = []
    for part in parts:
        if part and len(part) > 1 and part not in unique:
            unique.append(part)
    return " ".join(unique[:5])


QueryBuilder = Callable[[str, str, Sequence[str]], str]

# Order matters: strategies run in this order after the keyword and English queries.
STRATEGY_BUILDERS: List[Tuple[str, QueryBuilder]] = [
    ("category", category_query),
    ("brand", brand_query),
    ("object", object_query),
    ("visual", visual_query),
    ("industry", industry_query),
    ("emotional", emotional_query),
    ("scene", scene_query),
    ("advanced", advanced_query),
]


def text_similarity(left: str, right: str) -> float:
    """Jaccard overlap of whitespace tokens."""
    left_words = left.split()
    right_words = right.split()
    union = set(left_words) | set(right_words)
    if not union:
        return 0.0
    shared = [word for word in left_words if word in right_words]
    return len(shared) / len(union)


def heuristic_image_score(candidate: ImageCandidate, query: str) -> float:
    score = 50.0
    score += text_similarity(candidate.title.lower(), query.lower()) * 30

    width, height = candidate.width, candidate.height
    if 300 <= width <= 1200 and 200 <= height <= 800:
        score += 10
    elif width < FLOOR_WIDTH or height < FLOOR_HEIGHT:
        score -= 20

    if candidate.format in PREFERRED_FORMATS:
        score += 5
    return max(0.0, min(100.0, score))


def passes_quality_gate(candidate: ImageCandidate) -> bool:
    """Size, byte-size and format gate every collected image must pass."""
    if candidate.width < MIN_WIDTH or candidate.height < MIN_HEIGHT:
        return False
    if candidate.byte_size > MAX_BYTE_SIZE:
        return False
    return candidate.format in ALLOWED_FORMATS


def source_distribution(candidates: Sequence[ImageCandidate]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for candidate in candidates:
        counts[candidate.strategy_source] = counts.get(candidate.strategy_source, 0) + 1
    return counts

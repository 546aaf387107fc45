"""Prompt text for candidate scoring, article rewriting, and image sourcing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence


# -- candidate scoring --------------------------------------------------------

SCORING_SYSTEM_PROMPT = "당신은 뉴스 품질 분석 전문가입니다. 기사의 뉴스가치, 인기도, 품질을 정확하게 평가합니다."

SCORING_RUBRIC = """다음 뉴스 기사들을 분석하여 각각의 품질과 인기도를 0-100점으로 평가해주세요.

평가 기준:
1. 뉴스가치 (30점): 독창성, 시의성, 사회적 영향력
2. 인기도 예상 (25점): 독자 관심도, 화제성, 검색량 예상
3. 제목 품질 (20점): 명확성, 매력도, 클릭베이트 여부
4. 내용 품질 (15점): 정보성, 구체성, 신뢰성
5. 시급성 (10점): 실시간성, 속보성, 트렌드 연관성

기사 목록:
{items}

기사 목록과 같은 순서로, 기사마다 하나씩 JSON 형식으로 응답해주세요:
{{
  "analyses": [
    {{
      "index": 1,
      "score": 85,
      "newsValue": 27,
      "popularity": 22,
      "titleQuality": 18,
      "contentQuality": 13,
      "urgency": 5,
      "reason": "구체적인 평가 이유",
      "category": "경제/자동차/기술/정치/사회",
      "expectedEngagement": "high/medium/low"
    }}
  ]
}}"""

SCORING_ITEM = """[기사 {index}]
제목: {title}
요약: {summary}...
출처: {source}
발행: {age}"""


# -- article rewriting --------------------------------------------------------

COMPOSE_SYSTEM_PROMPT = "당신은 전문 기자입니다. 뉴스를 재작성하여 더 흥미롭고 이해하기 쉬운 기사를 만들어주세요."

PLACEHOLDER_THUMBNAIL = "IMG_THUMBNAIL"
PLACEHOLDER_BODY = ("IMG_URL_1", "IMG_URL_2", "IMG_URL_3")
PLACEHOLDERS = (PLACEHOLDER_THUMBNAIL,) + PLACEHOLDER_BODY

IMAGE_TAGS = (
    '<img src="IMG_THUMBNAIL" alt="썸네일 이미지"/>',
    '<img src="IMG_URL_1" alt="본문 이미지 1"/>',
    '<img src="IMG_URL_2" alt="본문 이미지 2"/>',
    '<img src="IMG_URL_3" alt="본문 이미지 3"/>',
)

ARTICLE_TEMPLATE = f"""1) <h1>제목</h1>
2) <div class="vertical-bar-text">소제목1<br>소제목2</div>
3) {IMAGE_TAGS[0]}
4) <p>단락1 (3~4문장)</p>
5) <p>단락2 (3~4문장)</p>
6) <h2>요약 소제목 (간결하게)</h2>
7) {IMAGE_TAGS[1]}
8) <p>단락3 (3~4문장)</p>
9) <p>단락4 (3~4문장)</p>
10) <h2>요약 소제목 (간결하게)</h2>
11) {IMAGE_TAGS[2]}
12) <p>단락5 (3~4문장)</p>
13) <p>단락6 (3~4문장)</p>
14) <h2>요약 소제목 (간결하게)</h2>
15) {IMAGE_TAGS[3]}
16) <p>단락7 (3~4문장)</p>
17) <p>단락8 (3~4문장)</p>"""

CATEGORY_ECONOMY = "경제 뉴스"
CATEGORY_AUTOMOTIVE = "자동차 뉴스"
CATEGORY_GENERAL = "일반"

# feed labels used by the aggregator
FEED_CATEGORIES = {
    "economy": CATEGORY_ECONOMY,
    "automotive": CATEGORY_AUTOMOTIVE,
    "general": CATEGORY_GENERAL,
}

EMOTIONAL_KEYWORDS = {
    CATEGORY_ECONOMY: [
        "충격", "깜짝", "돌파", "폭등", "폭락", "대박", "급등", "급락", "흔들", "뒤집힌",
        "주목", "열풍", "비상", "파란불", "빨간불", "불안한", "역대급", "격변", "요동", "쏟아진",
    ],
    CATEGORY_AUTOMOTIVE: [
        "파격", "역대급", "신차", "놀라운", "혁신", "전격", "출시", "완판", "돌풍", "대기록",
        "돌파", "신기록", "반전", "기대", "논란", "대반전", "대변신", "완벽", "압도적", "화제의",
    ],
    CATEGORY_GENERAL: [
        "놀라운", "주목", "화제", "특별한", "새로운", "혁신적", "중요한", "흥미로운", "독특한", "의미있는",
    ],
}

PUBLISHER_NAME = "Hyperion-Press"
PUBLISHER_URL = "https://hyperion-press.com"

COMPOSE_PROMPT = """다음 기사를 {publisher} 스타일로 재작성해 주세요. 반드시 아래 HTML 구조를 따릅니다.

{template}

원본 정보:
제목: {source_title}
내용: {source_text}
출처: {source_name}
카테고리: {category}

필수 작성 규칙:
- 제목은 '"감성어+핵심사항"…보충설명' 형태로 작성 (예: "깜짝 실적 발표"…현대차 3분기 영업이익 2조 돌파)
- 감성 키워드는 {emotional_keywords} 등을 활용
- 큰따옴표 안에 짧고 강렬한 문구, 문장 끝 말줄임표(…) 필수
- 수직 막대 텍스트는 기사의 핵심을 짧게 2줄로 요약
- 문단은 3-4문장으로, 마지막 문장은 흥미/호기심을 유발하는 질문이나 흥미로운 사실로 마무리
- 각 소제목(h2)은 '어떻게', '왜', '얼마나' 등의 의문형이나 감탄형으로 작성
- 일반 독자도 이해하기 쉽게 전문용어는 풀어서 설명
- 각 단락 내 핵심 문구는 <strong> 태그로 강조
- 통계, 수치 등 구체적 정보를 포함하여 신뢰성 확보
- 맨 마지막 단락은 향후 전망이나 소비자/독자에게 유용한 조언으로 마무리
- <img> 태그의 src 값은 IMG_THUMBNAIL, IMG_URL_1~3 플레이스홀더를 그대로 사용하고 수정·삭제하지 마세요
- 태그 섹션, 관련 기사 섹션, SNS 공유 버튼을 포함하지 마세요

또한, 아래 한글 제목을 SEO 최적화된 영어 슬러그로 변환해 주세요:
- 최대 5-6단어 이내 (짧을수록 좋음)
- 주요 키워드를 맨 앞에 배치
- 특수문자·따옴표 제거, 소문자, 띄어쓰기→하이픈, 중복 하이픈 제거
- 영문 슬러그 예시: hyundai-motor-record-profit, stock-market-crash, new-ev-revolution

응답 형식(JSON 객체만):
{{
  "title": "<h1>...</h1>",
  "content": "<div class='vertical-bar-text'>...</div><img>...",
  "slug": "seo-friendly-slug",
  "structuredData": {structured_data},
  "category": "{category}",
  "tags": ["태그1", "태그2", "태그3"]
}}"""


# -- image sourcing -----------------------------------------------------------

@dataclass(frozen=True)
class SlotProfile:
    """What an image slot is for."""

    index: int
    slot_type: str
    label: str
    purpose: str
    focus: str
    requirements: str


SLOT_PROFILES: Sequence[SlotProfile] = (
    SlotProfile(
        index=0,
        slot_type="thumbnail",
        label="썸네일",
        purpose="기사 전체를 대표하는 주요 이미지",
        focus="제목 핵심 키워드",
        requirements=(
            "- 기사 전체를 대표하는 강력한 첫인상\n"
            "- 독자의 관심을 즉시 끌 수 있는 시각적 임팩트\n"
            "- 제목의 핵심 키워드를 시각적으로 표현\n"
            "- 뉴스 썸네일에 적합한 전문적 품질"
        ),
    ),
    SlotProfile(
        index=1,
        slot_type="body1",
        label="본문1",
        purpose="기사 도입부를 설명하는 이미지",
        focus="상황 설명",
        requirements=(
            "- 기사 도입부 내용을 구체적으로 설명\n"
            "- 상황이나 배경을 명확히 보여주는 이미지\n"
            "- 독자의 이해를 돕는 설명적 역할"
        ),
    ),
    SlotProfile(
        index=2,
        slot_type="body2",
        label="본문2",
        purpose="기사 핵심 내용을 보여주는 이미지",
        focus="핵심 내용",
        requirements=(
            "- 기사의 핵심 내용을 시각적으로 증명\n"
            "- 가장 중요한 포인트를 강조하는 이미지\n"
            "- 실질적 증거나 구체적 사례를 보여줌"
        ),
    ),
    SlotProfile(
        index=3,
        slot_type="body3",
        label="본문3",
        purpose="기사 결론이나 전망을 나타내는 이미지",
        focus="결과/전망",
        requirements=(
            "- 기사 결론이나 미래 전망을 암시\n"
            "- 희망적이거나 발전적인 방향성 표현\n"
            "- 마무리에 적합한 완성도 높은 이미지"
        ),
    ),
)

SLOT_QUERY_SYSTEM_PROMPT = (
    "당신은 뉴스 이미지 전문가입니다. 각 이미지 위치의 목적에 맞는 최적의 검색어를 생성합니다. "
    "독자의 관점에서 생각하고, 해당 위치에서 가장 효과적인 이미지를 찾을 수 있는 구체적인 검색어를 만듭니다."
)

SLOT_QUERY_PROMPT = """다음 기사의 {label}에 가장 적합한 구글 이미지 검색어를 생성해주세요.

기사 제목: {title}
기사 내용: {content}...
키워드: {keywords}

이미지 위치: {label}
이미지 목적: {purpose}
이미지 초점: {focus}

[{label} 이미지 요구사항]
{requirements}

검색어 생성 원칙:
- 구체적이고 명확한 키워드 사용
- 모호한 단어 배제
- 영어와 한국어 조합 가능
- 실제 사물/장면/개념 중심
- 3-6개 단어로 구성

최적의 검색어만 답변해주세요:"""

QUERY_NOISE_PHRASES: List[str] = [
    "검색어:", "최적의 검색어:", "답변:", "키워드:", "이미지 검색어:",
    "구글 검색어:", "추천 검색어:", "최적화된 검색어:", "맞춤 검색어:",
]

TRANSLATE_SYSTEM_PROMPT = "당신은 전문 번역가입니다. 이미지 검색에 적합한 간단하고 정확한 영어 키워드로 번역합니다."

TRANSLATE_PROMPT = """다음 한국어 텍스트를 자연스러운 영어로 번역해주세요.
이미지 검색에 최적화된 간단하고 명확한 영어 키워드로 변환하세요.

한국어: {text}

영어 번역 (3-6단어):"""

JUDGE_SYSTEM_PROMPT = (
    "당신은 경험 많은 뉴스 에디터입니다. 독자의 관점에서 생각하며, "
    "기사와 이미지의 실질적 연관성을 중요하게 평가합니다."
)

JUDGE_PROMPT = """당신은 뉴스 기사 편집자입니다. 다음 기사의 {label} 위치({purpose})에 가장 적합한 이미지를 선택해야 합니다.

기사 정보:
{context}

인간적 사고 과정으로 이 이미지를 평가해주세요:

1단계: 독자 관점 생각하기
- 이 기사를 읽는 독자가 이 이미지를 보면 어떤 느낌일까?
- 기사 이해에 도움이 될까?

2단계: 이미지-기사 연관성 분석
- 이미지가 기사의 핵심 내용을 시각적으로 표현하는가?
- 단순한 키워드 매칭이 아닌 실질적 관련성이 있는가?

3단계: 품질 및 적합성 평가
- 뉴스 기사에 적합한 전문적인 이미지인가?
- 스크린샷, 텍스트 이미지, 로고만 있는 이미지는 부적절

다음 형식으로 답변:
이미지 설명: [무엇이 보이는지 구체적으로]
독자 관점: [독자가 어떻게 느낄지]
연관성 분석: [기사와의 실질적 관련성]
적합성 평가: [뉴스 이미지로서의 품질]
관련성 점수: [0-100점]
추천 여부: [YES/NO]
선택 이유: [점수 근거]"""

"""
Book Grounding Agent: 제목(+저자) → BookFacts

흐름:
1. 카탈로그(Google Books) 검색
2. 후보 랭킹 (제목 유사도, 저자, 설명 품질, 인기도, 언어/연령 보너스)
3. 최고 후보로부터 BookFacts 구성 (LLM 추출, 실패 시 후보 정보만 사용)
4. 후보 없음 / 요청 실패 → 오프라인 테이블 → 최소 BookFacts

이 단계는 치명적 실패 경로가 없습니다. 항상 사용 가능한 BookFacts 를 반환합니다.
"""

import asyncio
import math
import os
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp
from pydantic import ValidationError

from schemas import (
    BookCandidate,
    BookFacts,
    Character,
    GroundingResult,
    PlotBeat,
    RankedCandidate,
)
from utils.constants import CATALOG_MAX_RESULTS, CATALOG_TIMEOUT_SEC, GOOGLE_BOOKS_API_URL
from utils.errors import CatalogError
from utils.llm_utils import parse_llm_json
from utils.logger import get_logger

logger = get_logger("grounding")

RANKING_WEIGHTS = {
    "title_match": 0.4,
    "author_match": 0.2,
    "description_quality": 0.25,
    "popularity": 0.15,
    "language_bonus": 0.1,
    "audience_bonus": 0.1,
}

DEFAULT_PLOT_BEATS = (
    PlotBeat(order=1, abstract_event="이야기의 시작", emotional_tone="호기심"),
    PlotBeat(order=2, abstract_event="도전과 성장", emotional_tone="긴장감"),
    PlotBeat(order=3, abstract_event="의미있는 결말", emotional_tone="감동"),
)

DEFAULT_PROTAGONIST = Character(
    name="주인공",
    role="protagonist",
    appearance="Main character with distinctive features",
    personality="이야기의 중심 인물",
)


# =============================================================================
# Catalog
# =============================================================================

class BookCatalog(ABC):
    """도서 카탈로그 검색 인터페이스"""

    @abstractmethod
    async def search(self, title: str, author: Optional[str] = None) -> List[BookCandidate]:
        ...


def _search_term(value: str) -> str:
    """여러 단어는 구문 검색이 되도록 따옴표로 묶음 (URL 인코딩은 aiohttp params 가 담당)"""
    value = " ".join(value.replace('"', " ").split())
    return f'"{value}"' if " " in value else value


def build_catalog_query(title: str, author: Optional[str] = None) -> str:
    """Google Books q 파라미터: intitle:"어린 왕자" inauthor:"생텍쥐페리" """
    query = f"intitle:{_search_term(title)}"
    if author and author.strip():
        query += f" inauthor:{_search_term(author)}"
    return query


class GoogleBooksCatalog(BookCatalog):
    """Google Books volumes API 클라이언트 (aiohttp)"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = GOOGLE_BOOKS_API_URL,
        timeout_sec: float = CATALOG_TIMEOUT_SEC,
        max_results: int = CATALOG_MAX_RESULTS,
        rate_limit_retries: int = 2,
    ):
        self.api_key = api_key or os.getenv("GOOGLE_BOOKS_API_KEY")
        self.base_url = base_url
        self.timeout_sec = timeout_sec
        self.max_results = max_results
        self.rate_limit_retries = rate_limit_retries

    async def search(self, title: str, author: Optional[str] = None) -> List[BookCandidate]:
        query = build_catalog_query(title, author)

        logger.info(f"[Grounding] Searching catalog: {query}")
        candidates = await self._query(query)

        if not candidates and author:
            logger.info("[Grounding] No results with author, trying title only...")
            candidates = await self._query(build_catalog_query(title))

        logger.info(f"[Grounding] Found {len(candidates)} candidates")
        return candidates

    async def _query(self, query: str) -> List[BookCandidate]:
        params = {
            "q": query,
            "maxResults": str(self.max_results),
            "printType": "books",
        }
        if self.api_key:
            params["key"] = self.api_key

        timeout = aiohttp.ClientTimeout(total=self.timeout_sec)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                for attempt in range(self.rate_limit_retries + 1):
                    async with session.get(self.base_url, params=params) as response:
                        if response.status == 429 and attempt < self.rate_limit_retries:
                            delay = 2 * (2 ** attempt)
                            logger.warning(f"[Grounding] Rate limited (429), retrying in {delay}s...")
                            await asyncio.sleep(delay)
                            continue
                        if response.status != 200:
                            raise CatalogError(f"Google Books API error: HTTP {response.status}")
                        data = await response.json()
                        return [_volume_to_candidate(item) for item in data.get("items") or []]
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CatalogError(f"Google Books request failed: {e}") from e
        raise CatalogError("Google Books API rate limit exceeded")


def _volume_to_candidate(item: Dict[str, Any]) -> BookCandidate:
    info = item.get("volumeInfo") or {}
    return BookCandidate(
        id=item.get("id", ""),
        title=info.get("title") or "Unknown Title",
        authors=info.get("authors") or ["Unknown Author"],
        published_date=info.get("publishedDate"),
        description=info.get("description"),
        categories=info.get("categories") or [],
        language=info.get("language"),
        average_rating=info.get("averageRating"),
        ratings_count=info.get("ratingsCount"),
        thumbnail=(info.get("imageLinks") or {}).get("thumbnail"),
    )


# =============================================================================
# Ranking
# =============================================================================

def normalize_title(text: str) -> str:
    """소문자화, 영숫자/한글/공백 외 제거, 공백 정리"""
    text = re.sub(r"[^\w\s가-힣]", "", text.lower())
    return re.sub(r"\s+", " ", text).strip()


def levenshtein_distance(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def _similarity(a: str, b: str) -> float:
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return max(1 - levenshtein_distance(a, b) / longest, 0.0)


def title_match_score(candidate_title: str, search_title: str) -> float:
    cand = normalize_title(candidate_title)
    search = normalize_title(search_title)
    if cand == search:
        return 1.0
    if cand and search and (search in cand or cand in search):
        return 0.9
    return _similarity(cand, search)


def author_match_score(authors: List[str], preferred_author: Optional[str]) -> float:
    if not preferred_author:
        return 0.5
    preferred = normalize_title(preferred_author)
    normalized = [normalize_title(a) for a in authors]
    for author in normalized:
        if author and (preferred in author or author in preferred):
            return 1.0
    return max((_similarity(author, preferred) for author in normalized), default=0.0)


def description_quality_score(candidate: BookCandidate) -> float:
    if not candidate.description:
        return 0.0
    length = len(candidate.description)
    if length < 50:
        return 0.2
    if 200 <= length <= 500:
        return 1.0
    if length < 200:
        return 0.5 + (length - 50) / 300
    return 0.9


def popularity_score(candidate: BookCandidate) -> float:
    if not candidate.average_rating and not candidate.ratings_count:
        return 0.3
    score = 0.0
    if candidate.average_rating:
        score += (candidate.average_rating / 5) * 0.5
    if candidate.ratings_count:
        score += min(math.log10(candidate.ratings_count + 1) / 5, 0.5)
    return min(score, 1.0)


def language_bonus(candidate: BookCandidate, preferred_language: Optional[str]) -> float:
    if preferred_language and candidate.language == preferred_language:
        return 0.5
    return 0.0


def audience_bonus(candidate: BookCandidate, target_audience: Optional[str]) -> float:
    if not target_audience or not candidate.categories:
        return 0.0
    categories = " ".join(candidate.categories).lower()
    if target_audience == "children" and ("children" in categories or "juvenile" in categories):
        return 0.5
    if target_audience == "young_adult" and ("young adult" in categories or "teen" in categories):
        return 0.5
    if target_audience == "adult" and "children" not in categories and "juvenile" not in categories:
        return 0.3
    return 0.0


def rank_candidates(
    candidates: List[BookCandidate],
    search_title: str,
    preferred_author: Optional[str] = None,
    preferred_language: Optional[str] = "ko",
    target_audience: Optional[str] = "children",
) -> List[RankedCandidate]:
    """
    후보 점수 계산 후 내림차순 정렬 (동점이면 원래 순서 유지).

    Returns:
        RankedCandidate 목록 (score 는 1.0 으로 상한)
    """
    ranked = []
    for candidate in candidates:
        breakdown = {
            "title_match": title_match_score(candidate.title, search_title),
            "author_match": author_match_score(candidate.authors, preferred_author),
            "description_quality": description_quality_score(candidate),
            "popularity": popularity_score(candidate),
            "language_bonus": language_bonus(candidate, preferred_language),
            "audience_bonus": audience_bonus(candidate, target_audience),
        }
        total = sum(breakdown[k] * w for k, w in RANKING_WEIGHTS.items())
        ranked.append(RankedCandidate(candidate=candidate, score=min(total, 1.0), breakdown=breakdown))

    ranked.sort(key=lambda r: r.score, reverse=True)

    for i, item in enumerate(ranked[:3], 1):
        logger.info(
            f"[Grounding]   {i}. \"{item.candidate.title}\" by {', '.join(item.candidate.authors)} "
            f"(score: {item.score:.2f})"
        )
    return ranked


def select_best_candidate(candidates: List[BookCandidate], search_title: str, **config) -> Optional[BookCandidate]:
    ranked = rank_candidates(candidates, search_title, **config)
    return ranked[0].candidate if ranked else None


# =============================================================================
# Offline table
# =============================================================================

_LITTLE_PRINCE_APPEARANCE = (
    "Young boy with curly golden blonde hair, bright blue eyes, rosy cheeks, wearing a light "
    "blue princely outfit with a flowing golden-yellow scarf, brown boots, innocent and curious expression"
)

FALLBACK_BOOKS: Dict[str, GroundingResult] = {
    "어린왕자": GroundingResult(
        source="fallback",
        candidate=BookCandidate(
            id="fallback-little-prince-ko",
            title="어린 왕자",
            authors=["앙투안 드 생텍쥐페리"],
            published_date="1943",
            description=(
                "사막에 불시착한 비행사가 작은 별에서 온 어린 왕자를 만나 그의 여행 이야기를 듣는다. "
                "어린 왕자는 자신의 별에 있는 장미꽃을 떠나 여러 별을 여행하며 다양한 어른들을 만나고, "
                "마침내 지구에 도착해 여우와 친구가 되어 길들임의 의미를 배운다."
            ),
            categories=["Fiction", "Children's Literature", "Fantasy"],
            language="ko",
            average_rating=4.5,
            ratings_count=10000,
        ),
        book_facts=BookFacts(
            canonical_title="어린 왕자",
            author="앙투안 드 생텍쥐페리",
            logline=(
                "사막에 불시착한 조종사가 작은 별에서 온 신비로운 소년을 만나요. "
                "어린 왕자는 자신의 별에 있는 장미꽃을 떠나 여러 별을 여행하며, "
                "진정한 우정과 사랑의 의미를 찾아가는 감동적인 여정을 떠나요."
            ),
            main_characters=(
                Character(
                    name="어린 왕자",
                    role="protagonist",
                    appearance=_LITTLE_PRINCE_APPEARANCE,
                    personality="순수하고 호기심 많은 소년, 진실된 것을 볼 수 있는 눈을 가짐",
                ),
                Character(
                    name="조종사",
                    role="supporting",
                    appearance="Adult man with brown hair, wearing a brown leather aviator jacket and goggles, gentle expression",
                    personality="어른이 되었지만 아이의 마음을 간직한 화자",
                ),
                Character(
                    name="여우",
                    role="supporting",
                    appearance="Small orange fox with fluffy tail, warm brown eyes, friendly demeanor",
                    personality="지혜롭고 따뜻한 친구, 길들임의 의미를 가르쳐줌",
                ),
            ),
            plot_beats=(
                PlotBeat(order=1, abstract_event="신비로운 만남", emotional_tone="호기심과 경이로움"),
                PlotBeat(order=2, abstract_event="별들의 여행과 깨달음", emotional_tone="성찰과 배움"),
                PlotBeat(order=3, abstract_event="진정한 우정의 발견", emotional_tone="따뜻함과 감동"),
            ),
            setting="사막과 우주의 작은 별들",
            themes=("우정", "사랑", "순수함", "본질의 소중함"),
            target_audience="전 연령 (어린이부터 어른까지)",
            source_confidence=0.95,
            source_id="fallback-little-prince-ko",
        ),
    ),
    "the little prince": GroundingResult(
        source="fallback",
        candidate=BookCandidate(
            id="fallback-little-prince-en",
            title="The Little Prince",
            authors=["Antoine de Saint-Exupéry"],
            published_date="1943",
            description=(
                "A pilot stranded in the desert meets a young prince who has traveled from a tiny asteroid. "
                "The prince shares stories of his journey through the universe and the lessons he learned "
                "about love and what truly matters in life."
            ),
            categories=["Fiction", "Children's Literature", "Fantasy"],
            language="en",
            average_rating=4.5,
            ratings_count=10000,
        ),
        book_facts=BookFacts(
            canonical_title="The Little Prince",
            author="Antoine de Saint-Exupéry",
            logline=(
                "A pilot lands in the Sahara desert and meets a mysterious young prince from a tiny asteroid. "
                "Through their conversations, the prince shares his journey across the universe and "
                "gentle lessons about love and friendship."
            ),
            main_characters=(
                Character(
                    name="The Little Prince",
                    role="protagonist",
                    appearance=_LITTLE_PRINCE_APPEARANCE,
                    personality="Pure and curious boy who can see what is truly important",
                ),
            ),
            plot_beats=(
                PlotBeat(order=1, abstract_event="A mysterious encounter", emotional_tone="Wonder and curiosity"),
                PlotBeat(order=2, abstract_event="Journey through the stars", emotional_tone="Reflection and learning"),
                PlotBeat(order=3, abstract_event="Discovery of true friendship", emotional_tone="Warmth and emotion"),
            ),
            setting="The Sahara desert and tiny asteroids in space",
            themes=("Friendship", "Love", "Innocence", "Essential truths"),
            target_audience="All ages",
            source_confidence=0.95,
            source_id="fallback-little-prince-en",
        ),
    ),
}


def find_fallback(title: str) -> Optional[GroundingResult]:
    """오프라인 테이블 조회: 정확 일치 → 부분 일치"""
    normalized = title.lower().strip()
    if not normalized:
        return None
    if normalized in FALLBACK_BOOKS:
        return FALLBACK_BOOKS[normalized]
    for key, result in FALLBACK_BOOKS.items():
        if key in normalized or normalized in key:
            return result
    return None


def build_minimal_facts(title: str, author: Optional[str] = None) -> GroundingResult:
    """카탈로그/오프라인 테이블 모두 실패 시 제목+저자만으로 최소 BookFacts 생성"""
    title = title.strip()
    author_name = (author or "").strip() or "알 수 없음"
    source_id = f"minimal-{quote(title)}"
    candidate = BookCandidate(
        id=source_id,
        title=title,
        authors=[author_name],
        description=f"{title}에 대한 도서입니다.",
        language="ko",
    )
    facts = BookFacts(
        canonical_title=title,
        author=author_name,
        logline=f"{title}를 소개하는 영상입니다.",
        main_characters=(
            Character(
                name="주인공",
                role="protagonist",
                appearance="Child-friendly character, warm and engaging",
                personality="친근하고 호기심 많은",
            ),
        ),
        plot_beats=(
            PlotBeat(order=1, abstract_event="도입", emotional_tone="호기심"),
            PlotBeat(order=2, abstract_event="전개", emotional_tone="몰입"),
            PlotBeat(order=3, abstract_event="마무리", emotional_tone="여운"),
        ),
        setting="책의 세계",
        themes=("독서", "상상력"),
        target_audience="어린이·가족",
        source_confidence=0.5,
        source_id=source_id,
    )
    return GroundingResult(book_facts=facts, candidate=candidate, source="minimal")


# =============================================================================
# Facts building
# =============================================================================

def detect_target_audience(candidate: BookCandidate) -> str:
    if not candidate.categories:
        return "전 연령"
    categories = " ".join(candidate.categories).lower()
    if any(k in categories for k in ("children", "juvenile", "아동")):
        return "어린이 (초등학생)"
    if any(k in categories for k in ("young adult", "teen", "청소년")):
        return "청소년"
    if any(k in categories for k in ("adult", "성인")):
        return "성인"
    return "전 연령"


def calculate_confidence(candidate: BookCandidate, logline: str, has_characters: bool) -> float:
    score = 0.5
    if candidate.description and len(candidate.description) > 100:
        score += 0.15
    if candidate.authors and candidate.authors[0] != "Unknown Author":
        score += 0.1
    if logline and len(logline) > 20:
        score += 0.1
    if has_characters:
        score += 0.1
    if candidate.ratings_count and candidate.ratings_count > 10:
        score += 0.05
    return min(score, 1.0)


def default_logline(candidate: BookCandidate) -> str:
    if candidate.description:
        cleaned = re.sub(r"<[^>]*>", "", candidate.description)
        return cleaned[:100] + "..."
    return f"{candidate.title}은(는) {', '.join(candidate.authors)}의 작품입니다."


def _text(value: Any, default: str = "") -> str:
    """LLM 값을 문자열로 정리 (리스트는 쉼표로 합침, 그 외 비문자열은 str())"""
    if value is None or isinstance(value, (dict, bool)):
        return default
    if isinstance(value, (list, tuple)):
        value = ", ".join(str(v) for v in value if v is not None and not isinstance(v, (dict, list)))
    return str(value).strip() or default


def normalize_plot_beats(raw_beats: Optional[List[Dict[str, Any]]]) -> tuple:
    """추출된 비트를 정확히 3개로 맞춤 (부족하면 기본 비트로 채움)"""
    if not isinstance(raw_beats, list):
        raw_beats = []
    beats = []
    for i, default in enumerate(DEFAULT_PLOT_BEATS):
        raw = raw_beats[i] if i < len(raw_beats) and isinstance(raw_beats[i], dict) else {}
        beats.append(PlotBeat(
            order=i + 1,
            abstract_event=_text(raw.get("abstractEvent") or raw.get("abstract_event"), default.abstract_event),
            emotional_tone=_text(raw.get("emotionalTone") or raw.get("emotional_tone"), default.emotional_tone),
        ))
    return tuple(beats)


def normalize_characters(raw_characters: Optional[List[Dict[str, Any]]]) -> tuple:
    """추출된 인물을 최대 3명으로 자르고 빈 필드를 채움"""
    if isinstance(raw_characters, dict):
        raw_characters = [raw_characters]
    if not isinstance(raw_characters, list):
        raw_characters = []
    characters = []
    for raw in raw_characters[:3]:
        if not isinstance(raw, dict):
            continue
        characters.append(Character(
            name=_text(raw.get("name"), "이름 없음"),
            role=_text(raw.get("role"), "supporting"),
            appearance=_text(raw.get("appearance"), "Character with neutral appearance"),
            personality=_text(raw.get("personality")),
        ))
    return tuple(characters) or (DEFAULT_PROTAGONIST,)


def build_candidate_facts(candidate: BookCandidate) -> BookFacts:
    """LLM 없이 후보 정보만으로 BookFacts 구성 (신뢰도 0.3)"""
    return BookFacts(
        canonical_title=candidate.title,
        author=", ".join(candidate.authors),
        logline=default_logline(candidate),
        main_characters=(DEFAULT_PROTAGONIST,),
        plot_beats=DEFAULT_PLOT_BEATS,
        setting="",
        themes=tuple(candidate.categories),
        target_audience=detect_target_audience(candidate),
        source_confidence=0.3,
        source_id=candidate.id,
    )


def build_extraction_prompt(candidate: BookCandidate) -> str:
    return f"""당신은 도서 정보 추출 전문가입니다. 아래 책 정보를 기반으로 구조화된 정보를 추출하세요.

## 책 정보
- 제목: {candidate.title}
- 저자: {', '.join(candidate.authors)}
- 설명: {candidate.description or '설명 없음'}
- 카테고리: {', '.join(candidate.categories) or '없음'}
- 출판일: {candidate.published_date or '알 수 없음'}

## 추출 규칙
1. 주어진 정보에 없는 내용을 만들어내지 마세요
2. 결말이나 반전을 직접 언급하지 마세요 (스포일러 금지)
3. 구체적 사건 대신 감정/분위기 중심으로 추상화하세요
4. appearance 는 영어, 나머지는 한국어로 작성하세요

## 출력 형식 (JSON)
{{
  "logline": "2-3문장의 줄거리 요약 (스포일러 없이)",
  "mainCharacters": [
    {{"name": "이름", "role": "protagonist | supporting", "appearance": "English appearance", "personality": "성격"}}
  ],
  "plotBeats": [
    {{"order": 1, "abstractEvent": "추상화된 사건", "emotionalTone": "감정 톤"}}
  ],
  "setting": "배경 (시대, 장소)",
  "themes": ["주제1", "주제2"]
}}

- mainCharacters: 최소 1명, 최대 3명
- plotBeats: 정확히 3개 (시작, 전개, 결말 암시)

JSON만 반환하세요:"""


async def extract_book_facts(candidate: BookCandidate, text_provider) -> BookFacts:
    """
    LLM 으로 후보 설명에서 BookFacts 추출.

    실패하면 후보 정보만으로 구성한 BookFacts 를 반환합니다.
    """
    logger.info(f"[Grounding] Building book facts for: \"{candidate.title}\"")
    try:
        raw = await text_provider.generate_text(build_extraction_prompt(candidate))
        extracted = parse_llm_json(raw)
        if not isinstance(extracted, dict):
            raise ValueError("extraction result is not an object")
    except Exception as e:
        logger.warning(f"[Grounding] Fact extraction failed, using candidate data: {e}")
        return build_candidate_facts(candidate)

    try:
        logline = _text(extracted.get("logline")) or default_logline(candidate)
        raw_characters = extracted.get("mainCharacters") or extracted.get("main_characters")
        characters = normalize_characters(raw_characters)
        themes = extracted.get("themes") or []

        facts = BookFacts(
            canonical_title=candidate.title,
            author=", ".join(candidate.authors),
            logline=logline,
            main_characters=characters,
            plot_beats=normalize_plot_beats(extracted.get("plotBeats") or extracted.get("plot_beats")),
            setting=_text(extracted.get("setting")),
            themes=tuple(_text(t) for t in themes if _text(t)) if isinstance(themes, list) else (),
            target_audience=detect_target_audience(candidate),
            source_confidence=calculate_confidence(candidate, logline, characters != (DEFAULT_PROTAGONIST,)),
            source_id=candidate.id,
        )
    except (TypeError, ValueError, ValidationError) as e:
        logger.warning(f"[Grounding] Malformed extraction result, using candidate data: {e}")
        return build_candidate_facts(candidate)
    logger.info(
        f"[Grounding] Book facts extracted (confidence: {facts.source_confidence:.0%}, "
        f"characters: {len(facts.main_characters)})"
    )
    return facts


# =============================================================================
# Grounder
# =============================================================================

class BookGrounder:
    """
    카탈로그 + 오프라인 테이블 + 최소 생성으로 구성된 그라운딩 단계.

    Args:
        catalog: BookCatalog 구현 (None 이면 카탈로그 검색 생략)
        text_provider: generate_text 를 가진 프로바이더 (None 이면 LLM 추출 생략)
        preferred_language: 랭킹 언어 보너스 기준
    """

    def __init__(self, catalog: Optional[BookCatalog] = None, text_provider=None, preferred_language: str = "ko"):
        self.catalog = catalog
        self.text_provider = text_provider
        self.preferred_language = preferred_language

    async def ground(self, title: str, author: Optional[str] = None) -> GroundingResult:
        logger.info(f"[Grounding] Title: \"{title}\"" + (f" by {author}" if author else ""))

        candidates: List[BookCandidate] = []
        if self.catalog is not None:
            try:
                candidates = await self.catalog.search(title, author)
            except CatalogError as e:
                logger.warning(f"[Grounding] Catalog error: {e}")
            except Exception as e:
                logger.warning(f"[Grounding] Unexpected catalog failure: {e}")

        if candidates:
            best = select_best_candidate(
                candidates,
                title,
                preferred_author=author,
                preferred_language=self.preferred_language,
                target_audience="children",
            )
            if best is not None:
                if self.text_provider is not None:
                    facts = await extract_book_facts(best, self.text_provider)
                else:
                    facts = build_candidate_facts(best)
                logger.info(f"[Grounding] Selected: \"{best.title}\" by {', '.join(best.authors)}")
                return GroundingResult(book_facts=facts, candidate=best, source="catalog")

        fallback = find_fallback(title)
        if fallback is not None:
            logger.info(f"[Grounding] Using offline data for known book: {fallback.book_facts.canonical_title}")
            return fallback

        logger.info("[Grounding] Using minimal book facts (title + author)")
        return build_minimal_facts(title, author)


async def ground_book(title: str, author: Optional[str] = None, catalog: Optional[BookCatalog] = None,
                      text_provider=None) -> GroundingResult:
    """BookGrounder 단축 함수"""
    return await BookGrounder(catalog=catalog, text_provider=text_provider).ground(title, author)

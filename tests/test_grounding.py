"""
Book grounding tests: catalog ranking, LLM extraction, offline table, minimal facts.
"""
import asyncio
import json
import sys
import os

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from agents.grounding_agent import (
    BookGrounder,
    build_catalog_query,
    build_minimal_facts,
    extract_book_facts,
    find_fallback,
    GoogleBooksCatalog,
    normalize_title,
    rank_candidates,
    select_best_candidate,
    title_match_score,
)
from schemas import BookCandidate
from utils.errors import CatalogError, ScriptGenerationError
from conftest import EmptyCatalog


LONG_DESCRIPTION = (
    "작은 여우가 숲속 친구들을 만나 우정을 배우는 따뜻한 그림책이에요. "
    "계절이 바뀌는 동안 여우는 다람쥐, 토끼, 부엉이와 함께 작은 모험을 떠나고, "
    "서로 돕는 마음이 얼마나 소중한지 알게 돼요. 아이들과 함께 읽기 좋은 이야기입니다. "
    "부드러운 그림과 리듬감 있는 문장이 어우러져 잠자리 독서에도 잘 어울려요."
)


def candidate(id, title, **kwargs):
    data = dict(authors=["김작가"], language="ko", categories=["Juvenile Fiction"])
    data.update(kwargs)
    return BookCandidate(id=id, title=title, **data)


class StaticCatalog:
    def __init__(self, candidates):
        self.candidates = candidates

    async def search(self, title, author=None):
        return list(self.candidates)


class BrokenCatalog:
    async def search(self, title, author=None):
        raise CatalogError("Google Books API error: HTTP 503")


class ScriptedTextProvider:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.prompts = []

    async def generate_text(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.response


class RecordingBooksCatalog(GoogleBooksCatalog):
    """_query 를 가로채 q 파라미터만 기록"""

    def __init__(self, results=None):
        super().__init__(api_key="test")
        self.results = list(results or [])
        self.queries = []

    async def _query(self, query):
        self.queries.append(query)
        return self.results.pop(0) if self.results else []


# ==========================================================================
# Catalog query
# ==========================================================================

class TestCatalogQuery:

    def test_multi_word_terms_are_phrases(self):
        assert build_catalog_query("어린 왕자") == 'intitle:"어린 왕자"'
        assert build_catalog_query("구름빵", "백희나") == "intitle:구름빵 inauthor:백희나"
        assert build_catalog_query("The  Little Prince", "Antoine de Saint-Exupéry") == (
            'intitle:"The Little Prince" inauthor:"Antoine de Saint-Exupéry"'
        )

    def test_embedded_quotes_and_blank_author(self):
        assert build_catalog_query('Say "hi"', "  ") == 'intitle:"Say hi"'

    def test_search_retries_without_author(self):
        catalog = RecordingBooksCatalog()
        assert asyncio.run(catalog.search("어린 왕자", "생텍쥐페리")) == []
        assert catalog.queries == ['intitle:"어린 왕자" inauthor:생텍쥐페리', 'intitle:"어린 왕자"']

    def test_search_with_results_queries_once(self):
        catalog = RecordingBooksCatalog(results=[[candidate("vol-1", "어린 왕자")]])
        found = asyncio.run(catalog.search("어린 왕자", "생텍쥐페리"))
        assert [c.id for c in found] == ["vol-1"]
        assert len(catalog.queries) == 1


# ==========================================================================
# Fallback chain
# ==========================================================================

class TestFallbackChain:

    def test_known_title_without_catalog_hits(self):
        """Scenario A: 카탈로그 결과 없음 → 오프라인 테이블"""
        catalog = EmptyCatalog()
        result = asyncio.run(BookGrounder(catalog=catalog).ground("어린왕자"))
        assert catalog.calls == 1
        assert result.source == "fallback"
        assert result.book_facts.canonical_title == "어린 왕자"
        assert result.book_facts.source_confidence == pytest.approx(0.95)
        assert result.book_facts.protagonist.name == "어린 왕자"

    def test_catalog_error_falls_back(self):
        result = asyncio.run(BookGrounder(catalog=BrokenCatalog()).ground("The Little Prince"))
        assert result.source == "fallback"
        assert result.book_facts.canonical_title == "The Little Prince"

    def test_unknown_title_gets_minimal_facts(self):
        result = asyncio.run(BookGrounder(catalog=EmptyCatalog()).ground("  구름 빵  ", "백희나"))
        facts = result.book_facts
        assert result.source == "minimal"
        assert facts.canonical_title == "구름 빵"
        assert facts.author == "백희나"
        assert len(facts.plot_beats) == 3
        assert len(facts.main_characters) == 1
        assert facts.source_id.startswith("minimal-")

    def test_minimal_facts_without_author(self):
        facts = build_minimal_facts("무지개 물고기").book_facts
        assert facts.author == "알 수 없음"
        assert facts.source_confidence == pytest.approx(0.5)

    def test_find_fallback_partial_match(self):
        assert find_fallback("어린왕자 (개정판)") is not None
        assert find_fallback("THE LITTLE PRINCE") is not None
        assert find_fallback("") is None
        assert find_fallback("전혀 다른 책") is None

    def test_no_catalog_configured(self):
        result = asyncio.run(BookGrounder().ground("어린왕자"))
        assert result.source == "fallback"


# ==========================================================================
# Ranking
# ==========================================================================

class TestRanking:

    def test_normalize_title(self):
        assert normalize_title("  The Little   Prince! ") == "the little prince"
        assert normalize_title("어린 왕자?") == "어린 왕자"

    def test_title_match_levels(self):
        assert title_match_score("여우의 숲", "여우의 숲") == 1.0
        assert title_match_score("여우의 숲 (양장)", "여우의 숲") == 0.9
        assert 0.0 <= title_match_score("전혀 다름", "여우의 숲") < 0.9

    def test_exact_title_with_description_wins(self):
        ranked = rank_candidates(
            [
                candidate("b", "여우 이야기 모음"),
                candidate("a", "여우의 숲", description=LONG_DESCRIPTION, average_rating=4.5, ratings_count=120),
            ],
            "여우의 숲",
            preferred_author="김작가",
        )
        assert ranked[0].candidate.id == "a"
        assert ranked[0].score <= 1.0
        assert set(ranked[0].breakdown) == {
            "title_match", "author_match", "description_quality", "popularity", "language_bonus", "audience_bonus",
        }

    def test_ties_keep_catalog_order(self):
        twins = [candidate(str(i), "여우의 숲") for i in range(4)]
        ranked = rank_candidates(twins, "여우의 숲")
        assert [r.candidate.id for r in ranked] == ["0", "1", "2", "3"]

    def test_select_best_on_empty(self):
        assert select_best_candidate([], "여우의 숲") is None


# ==========================================================================
# Extraction
# ==========================================================================

class TestExtraction:

    def test_catalog_result_without_text_provider(self):
        best = candidate("vol-1", "여우의 숲", description=LONG_DESCRIPTION)
        result = asyncio.run(BookGrounder(catalog=StaticCatalog([best])).ground("여우의 숲"))
        assert result.source == "catalog"
        assert result.candidate.id == "vol-1"
        assert result.book_facts.source_confidence == pytest.approx(0.3)
        assert result.book_facts.target_audience == "어린이 (초등학생)"

    def test_extraction_normalizes_characters_and_beats(self):
        response = json.dumps({
            "logline": "작은 여우가 숲속 친구들과 우정을 배워요.",
            "mainCharacters": [
                {"name": f"인물{i}", "role": "protagonist" if i == 0 else "supporting", "appearance": "a fox"}
                for i in range(5)
            ],
            "plotBeats": [{"order": 1, "abstractEvent": "숲속의 아침", "emotionalTone": "호기심"}],
            "setting": "햇살 가득한 숲",
            "themes": ["우정", "", "용기"],
        }, ensure_ascii=False)
        provider = ScriptedTextProvider(response=f"```json\n{response}\n```")
        best = candidate("vol-1", "여우의 숲", description=LONG_DESCRIPTION, ratings_count=50)

        facts = asyncio.run(extract_book_facts(best, provider))
        assert len(facts.main_characters) == 3
        assert [b.order for b in facts.plot_beats] == [1, 2, 3]
        assert facts.plot_beats[0].abstract_event == "숲속의 아침"
        assert facts.themes == ("우정", "용기")
        assert facts.source_confidence > 0.3
        assert "스포일러" in provider.prompts[0]

    def test_extraction_failure_uses_candidate_data(self):
        provider = ScriptedTextProvider(error=ScriptGenerationError("quota exceeded"))
        best = candidate("vol-1", "여우의 숲", description="<b>짧은</b> 소개")
        facts = asyncio.run(extract_book_facts(best, provider))
        assert facts.source_confidence == pytest.approx(0.3)
        assert facts.logline.startswith("짧은 소개")
        assert len(facts.plot_beats) == 3

    def test_malformed_json_uses_candidate_data(self):
        provider = ScriptedTextProvider(response="not json at all")
        facts = asyncio.run(extract_book_facts(candidate("vol-1", "여우의 숲"), provider))
        assert facts.source_confidence == pytest.approx(0.3)
        assert facts.canonical_title == "여우의 숲"

    def test_character_object_instead_of_list(self):
        response = json.dumps({"logline": "작은 여우의 하루", "mainCharacters": {"name": "여우", "role": "protagonist"}},
                              ensure_ascii=False)
        best = candidate("vol-1", "작은 여우", description=LONG_DESCRIPTION)
        grounder = BookGrounder(catalog=StaticCatalog([best]), text_provider=ScriptedTextProvider(response=response))

        result = asyncio.run(grounder.ground("작은 여우"))
        assert result.source == "catalog"
        assert [c.name for c in result.book_facts.main_characters] == ["여우"]

    @pytest.mark.parametrize("extracted", [
        {"setting": ["숲", "바다"]},
        {"mainCharacters": [{"name": 7, "role": ["protagonist"]}]},
        {"mainCharacters": "여우", "plotBeats": {"order": 1}, "themes": "우정"},
        {"logline": {"text": "?"}, "plotBeats": [{"abstractEvent": 3}]},
    ])
    def test_odd_field_types_still_ground(self, extracted):
        response = json.dumps(extracted, ensure_ascii=False)
        best = candidate("vol-1", "작은 여우", description=LONG_DESCRIPTION)
        grounder = BookGrounder(catalog=StaticCatalog([best]), text_provider=ScriptedTextProvider(response=response))

        facts = asyncio.run(grounder.ground("작은 여우")).book_facts
        assert facts.canonical_title == "작은 여우"
        assert len(facts.plot_beats) == 3
        assert all(isinstance(c.name, str) and isinstance(c.role, str) for c in facts.main_characters)
        assert isinstance(facts.setting, str)

    def test_list_setting_is_joined(self):
        response = json.dumps({"setting": ["숲", "바다"]}, ensure_ascii=False)
        facts = asyncio.run(extract_book_facts(candidate("vol-1", "작은 여우"), ScriptedTextProvider(response=response)))
        assert facts.setting == "숲, 바다"

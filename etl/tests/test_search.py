#!/usr/bin/env python3
"""
Tests for the search engine: local tiers, remote fan-out, scoring and dedup
"""
import pytest

from conftest import FakeNetworkProvider, make_record
from pantry.errors import ProviderError
from pantry.search import SearchEngine, score_candidate
from pantry.search.engine import SearchCandidate, dedup
from pantry.search.scoring import name_score

def _names(results):
    return [r.name for r in results]

class TestScoring:
    def test_tiers(self):
        assert name_score("apple", "Apple") == 1.0
        assert name_score("apple", "Apple pie") == 0.9
        assert name_score("apple", "Pineapple") == 0.8
        assert name_score("brown rice", "Rice, brown, cooked") == 0.7
        assert name_score("brown rice", "Rice, white") == 0.35
        assert name_score("brown rice", "Rice, brown", word_cap=0.6) == 0.6

    def test_bonus_and_clamp(self):
        full = make_record("Apple pie")
        assert score_candidate("apple", full) == 0.95
        assert score_candidate("apple", make_record("Apple")) == 1.0
        bare = make_record("Apple pie", fat=0)
        assert score_candidate("apple", bare) == 0.9
        assert score_candidate("zzz", full) == 0.0

    def test_short_words_ignored(self):
        assert name_score("of", "Cup of tea") == 0.8
        assert name_score("a b", "Bread") == 0.0

class TestDedup:
    def test_higher_priority_keeps_slot_within_margin(self):
        local = SearchCandidate(make_record("Oats"), "local", 0.7)
        usda = SearchCandidate(make_record("OATS", source="USDA"), "usda", 0.8)
        assert [c.path for c in dedup([local, usda])] == ["local"]
        assert [c.path for c in dedup([usda, local])] == ["local"]

    def test_margin_exceeded_replaces(self):
        local = SearchCandidate(make_record("Oats"), "local", 0.6)
        usda = SearchCandidate(make_record("oats", source="USDA"), "usda", 0.8)
        assert [c.path for c in dedup([local, usda])] == ["usda"]

    def test_same_path_highest_wins(self):
        a = SearchCandidate(make_record("Tea", source="OpenFoodFacts"), "off", 0.5)
        b = SearchCandidate(make_record("tea", source="OpenFoodFacts"), "off", 0.9)
        assert dedup([a, b])[0].relevance == 0.9

class TestSearchEngine:
    def test_ordering_by_relevance(self):
        usda = FakeNetworkProvider([make_record(n, source="USDA") for n in ("Pineapple", "Apple pie", "Apple")])
        results = SearchEngine(None, [usda]).search("apple")
        assert _names(results) == ["Apple", "Apple pie", "Pineapple"]
        assert [r.relevance for r in results] == sorted((r.relevance for r in results), reverse=True)
        assert all(r.path == "usda" for r in results)

    def test_local_exact_then_pattern_then_words(self, store):
        store.bulk_insert([make_record("Masala dosa"), make_record("Dosa"), make_record("Rava dosa")])
        engine = SearchEngine(store)
        assert _names(engine.search("dosa", "local")) == ["Dosa"]
        assert _names(engine.search("rava dos", "local")) == ["Rava dosa"]
        results = engine.search("dosa masala", "local")
        assert _names(results)[0] == "Masala dosa"
        assert results[0].relevance == 0.75

    def test_weak_local_matches_dropped(self, store):
        store.upsert(make_record("Masala dosa"))
        assert SearchEngine(store).search("masala chai latte", "local") == []

    def test_cross_path_duplicate_collapses_to_local(self, store):
        store.upsert(make_record("Banana"))
        usda = FakeNetworkProvider([make_record("banana", source="USDA")])
        results = SearchEngine(store, [usda]).search("banana")
        assert len(results) == 1
        assert results[0].path == "local" and results[0].source == "IFCT"

    def test_deadline_cancels_slow_provider(self, store):
        store.upsert(make_record("Idli"))
        slow = FakeNetworkProvider([make_record("Idli mix", source="USDA")], name="slow", hang_s=5)
        fast = FakeNetworkProvider([make_record("Idli batter", source="OpenFoodFacts")], path="off", name="fast")
        results = SearchEngine(store, [slow, fast], deadline_s=0.2).search("idli")
        assert _names(results) == ["Idli", "Idli batter"]
        assert slow.cancelled

    def test_failing_provider_contributes_nothing(self, store):
        store.upsert(make_record("Poha"))
        bad = FakeNetworkProvider(exc=ProviderError("HTTP 503"))
        results = SearchEngine(store, [bad]).search("poha")
        assert _names(results) == ["Poha"]
        assert bad.calls == 1

    def test_scope_filters_paths(self, store):
        store.upsert(make_record("Upma"))
        usda = FakeNetworkProvider([make_record("Upma", source="USDA")])
        off = FakeNetworkProvider([make_record("Upma mix", source="OpenFoodFacts")], path="off")
        engine = SearchEngine(store, [usda, off])
        assert [r.path for r in engine.search("upma", "local")] == ["local"]
        assert usda.calls == 0 and off.calls == 0
        assert _names(engine.search("upma", "off")) == ["Upma mix"]
        assert usda.calls == 0 and off.calls == 1

    def test_limit(self):
        usda = FakeNetworkProvider([make_record(f"Rice {i}", source="USDA") for i in range(10)])
        assert len(SearchEngine(None, [usda]).search("rice", limit=3)) == 3

    def test_invalid_arguments(self, store):
        engine = SearchEngine(store)
        with pytest.raises(ValueError):
            engine.search("  !! ")
        with pytest.raises(ValueError):
            engine.search("rice", "web")
        with pytest.raises(ValueError):
            engine.search("rice", limit=0)

    def test_result_dict(self, store):
        store.upsert(make_record("Khichdi", external_id="k-1"))
        d = SearchEngine(store).search("khichdi")[0].to_dict()
        assert d["name"] == "Khichdi" and d["path"] == "local"
        assert d["external_id"] == "k-1"
        assert d["nutrients"]["energy_kcal"] == 170

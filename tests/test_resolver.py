"""Tests for the hive match cascade and advisory suggestions."""

from __future__ import annotations

import pytest

from hivelog.hives.registry import HiveRegistry
from hivelog.hives.resolver import MATCH_RULES, match_hive, resolve_hive, suggest_hives
from hivelog.models import Hive


def _hives(*names: str) -> list[Hive]:
    return [Hive(id=f"hive-{i}", name=name) for i, name in enumerate(names, start=1)]


class TestExactRule:
    def test_case_insensitive_exact(self):
        hives = _hives("Main Hive", "North Hive")
        match = match_hive("main hive", hives)
        assert match.hive.name == "Main Hive"
        assert match.rule == "exact"

    def test_input_is_trimmed(self):
        hives = _hives("Main Hive", "North Hive")
        assert resolve_hive("  MAIN HIVE \n", hives).name == "Main Hive"

    def test_exact_beats_earlier_contains(self):
        hives = _hives("Hive Two", "Two")
        match = match_hive("two", hives)
        assert match.hive.name == "Two"
        assert match.rule == "exact"

    def test_exact_beats_positional(self):
        hives = _hives("Main Hive", "Hive 1")
        assert resolve_hive("hive 1", hives).name == "Hive 1"

    def test_swedish_letters_fold(self):
        hives = _hives("Östra Kupan")
        assert resolve_hive("östra kupan", hives).name == "Östra Kupan"


class TestContainsRule:
    def test_substring_of_name(self):
        hives = _hives("Main Hive", "North Hive")
        match = match_hive("north", hives)
        assert match.hive.name == "North Hive"
        assert match.rule == "contains"

    def test_first_in_registry_order_wins(self):
        hives = _hives("Main Hive", "Main Hive Annex")
        assert resolve_hive("main", hives).name == "Main Hive"

    def test_contains_beats_positional(self):
        hives = _hives("Main Hive", "Hive 1 North")
        match = match_hive("hive 1", hives)
        assert match.hive.name == "Hive 1 North"
        assert match.rule == "contains"

    def test_name_inside_reference_is_not_contains(self):
        hives = _hives("Main")
        assert resolve_hive("the main hive", hives) is None


class TestPositionalRule:
    def test_number_indexes_registry(self):
        hives = _hives("Main Hive", "North Hive", "East Hive")
        match = match_hive("bikupa 2", hives)
        assert match.hive.name == "North Hive"
        assert match.rule == "positional"

    def test_number_without_space(self):
        hives = _hives("Main Hive", "North Hive", "East Hive")
        assert resolve_hive("kupa3", hives).name == "East Hive"

    @pytest.mark.parametrize("reference", ["bikupa 9", "bikupa 0", "bikupa 12"])
    def test_out_of_range_unresolved(self, reference):
        hives = _hives("Main Hive")
        assert resolve_hive(reference, hives) is None

    def test_very_long_digit_run_unresolved(self):
        hives = _hives("Main Hive")
        assert resolve_hive("bikupa " + "9" * 5000, hives) is None

    def test_leading_zeros(self):
        hives = _hives("Main Hive", "North Hive")
        assert resolve_hive("bikupa 02", hives).name == "North Hive"
        assert resolve_hive("bikupa " + "0" * 5000 + "1", hives).name == "Main Hive"

    def test_first_number_is_used(self):
        hives = _hives("Main Hive", "North Hive", "East Hive")
        assert resolve_hive("bikupa 1 eller 3", hives).name == "Main Hive"

    def test_position_follows_current_order(self):
        first = _hives("Main Hive", "North Hive")
        reordered = list(reversed(first))
        assert resolve_hive("bikupa 1", first).name == "Main Hive"
        assert resolve_hive("bikupa 1", reordered).name == "North Hive"


class TestUnresolved:
    @pytest.mark.parametrize("reference", [None, "", "   "])
    def test_empty_reference(self, reference):
        assert match_hive(reference, _hives("Main Hive")) is None

    def test_empty_registry(self):
        assert resolve_hive("bikupa 1", []) is None

    def test_unknown_name(self):
        assert resolve_hive("south hive", _hives("Main Hive", "North Hive")) is None


class TestCascade:
    def test_rule_priority_order(self):
        assert [name for name, _ in MATCH_RULES] == ["exact", "contains", "positional"]

    def test_deterministic(self):
        hives = _hives("Main Hive", "North Hive", "East Hive")
        results = {resolve_hive("bikupa 2", hives).id for _ in range(5)}
        assert results == {"hive-2"}

    def test_accepts_registry_snapshot(self):
        registry = HiveRegistry(_hives("Main Hive", "North Hive"))
        assert resolve_hive("bikupa 2", registry.hives).id == "hive-2"


class TestSuggestions:
    def test_closest_name_first(self):
        hives = _hives("North Hive", "Main Hive", "East Hive")
        suggestions = suggest_hives("main hiv", hives)
        assert suggestions[0][0].name == "Main Hive"
        assert suggestions[0][1] >= 90

    def test_limit(self):
        hives = _hives("Main Hive", "North Hive", "East Hive")
        assert len(suggest_hives("hive", hives, limit=2)) == 2

    def test_no_similar_names(self):
        assert suggest_hives("qqq", _hives("Main Hive", "North Hive")) == []

    @pytest.mark.parametrize("reference", [None, "", "  "])
    def test_empty_reference(self, reference):
        assert suggest_hives(reference, _hives("Main Hive")) == []

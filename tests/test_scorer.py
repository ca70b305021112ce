import pytest

from apps.engine.scorer import QueryPreferences, cosine_similarity, haversine_km, score


def test_overlap_is_fraction_of_seekers_list():
    # interests 1/2 of 40, traits 1/1 of 40 -> 60 / 80
    assert score(None, None, ["hiking", "books"], ["creative"], ["hiking", "music"], ["creative", "curious"]) == 75


def test_seeker_without_data_gets_baseline_not_zero():
    assert score(None, None, [], [], ["hiking"], ["creative"]) == 50


def test_empty_query_earns_keyword_baseline():
    assert score("", None, [], [], [], []) == 50


def test_keyword_match_counts_long_tokens_against_all_tokens():
    # 40 (interests) + 20 (traits baseline) + 1/3 of 20 (only "hiking" matches)
    result = score("love hiking outdoors", None, ["hiking"], [], ["hiking", "music"], [])
    assert result == 67


def test_short_tokens_never_match_and_score_floors_at_one():
    assert score("art", None, None, None, ["art"], []) == 1


def test_perfect_match_is_capped_at_99():
    assert score(None, None, ["a"], ["b"], ["a"], ["b"]) == 99


def test_no_active_factor_returns_minimum():
    assert score(None, None, None, None, None, None) == 1


def test_rounds_half_up():
    # 1 of 8 interests -> exactly 12.5%
    interests = ["a", "b", "c", "d", "e", "f", "g", "h"]
    assert score(None, None, interests, None, ["a"], None) == 13


def test_inferred_preferences_only_count_when_present():
    prefs = QueryPreferences(interests=["Hiking"], personality_traits=["funny"])
    # interest bonus earned (5 of 5), trait bonus missed (0 of 5)
    assert score(None, prefs, None, None, ["hiking"], ["shy"]) == 50


def test_lifestyle_preference_is_flat_bonus():
    prefs = QueryPreferences(lifestyle=["active"], values=["family"])
    # 2 flat, values missed: 2 / 5
    assert score(None, prefs, None, None, ["hiking"], ["shy"]) == 40


def test_embedding_similarity_adds_weight_only_when_both_present():
    assert score(None, None, ["a", "b"], None, ["a"], None) == 50
    assert score(None, None, ["a", "b"], None, ["a"], None, [1.0, 0.0], []) == 50
    # 20 + 15 over 55
    assert score(None, None, ["a", "b"], None, ["a"], None, [1.0, 0.0], [1.0, 0.0]) == 64


def test_negative_similarity_contributes_nothing():
    # 40 + 0 over 55
    assert score(None, None, ["a"], None, ["a"], None, [1.0, 0.0], [-1.0, 0.0]) == 73


def test_mismatched_embedding_lengths_are_ignored():
    assert score(None, None, ["a", "b"], None, ["a"], None, [1.0, 0.0], [1.0, 0.0, 0.0]) == 50


@pytest.mark.parametrize(
    "args",
    [
        ("tall funny hiker", None, ["hiking"], ["funny"], ["hiking", "cooking"], ["funny", "kind"]),
        ("", QueryPreferences(values=["honesty"]), [], [], [], []),
        (None, None, ["x"] * 3, ["y"], [], []),
    ],
)
def test_score_is_deterministic_and_bounded(args):
    first = score(*args)
    assert first == score(*args)
    assert isinstance(first, int)
    assert 1 <= first <= 99


def test_cosine_similarity_edges():
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0
    assert cosine_similarity([], []) == 0.0
    assert cosine_similarity([2.0, 2.0], [1.0, 1.0]) == pytest.approx(1.0)


def test_haversine_one_degree_on_equator():
    assert haversine_km(0.0, 0.0, 0.0, 1.0) == pytest.approx(111.19, abs=0.01)


def test_haversine_missing_coordinate_is_unknown():
    assert haversine_km(30.0, -97.0, None, -96.0) is None


def test_query_preferences_from_dict_ignores_malformed_values():
    prefs = QueryPreferences.from_dict({"interests": ["hiking", None], "values": "honesty", "lifestyle": None})
    assert prefs.interests == ["hiking"]
    assert prefs.values == []
    assert prefs.lifestyle == []
    assert QueryPreferences.from_dict(None).to_dict()["personality_traits"] == []

import pytest

from adaptive_cache.behavior import BehaviorTracker
from adaptive_cache.config import BehaviorConfig


@pytest.fixture
def tracker(clock):
    return BehaviorTracker(BehaviorConfig(), clock=clock)


def full_history():
    return {
        "search_queries": [f"q{i}" for i in range(10)],
        "popular_categories": [f"c{i}" for i in range(5)],
        "time_patterns": list(range(20)),
    }


def test_record_creates_session(tracker, clock):
    assert tracker.record_behavior("s1", {"search_queries": ["iphone"]})

    session = tracker.get_session("s1")
    assert session.session_id == "s1"
    assert session.patterns.search_queries == ["iphone"]
    assert session.last_activity == clock.now


def test_prediction_score_saturates_at_one(tracker):
    tracker.record_behavior("s1", full_history())
    assert tracker.get_session("s1").prediction_score == pytest.approx(1.0)


def test_prediction_score_weights(tracker):
    tracker.record_behavior("s1", {
        "search_queries": ["a", "b", "c", "d", "e"],
        "popular_categories": ["x"],
        "time_patterns": [1, 2, 3, 4, 5, 6, 7, 8, 9, 10],
    })
    expected = 0.4 * 0.5 + 0.3 * 0.2 + 0.3 * 0.5
    assert tracker.get_session("s1").prediction_score == pytest.approx(expected)


def test_prediction_score_never_decreases_while_filling(tracker):
    previous = 0.0
    for i in range(15):
        tracker.record_behavior("s1", {"search_queries": [f"q{i}"], "time_patterns": [i]})
        score = tracker.get_session("s1").prediction_score
        assert 0.0 <= score <= 1.0
        assert score >= previous
        previous = score


def test_history_caps_keep_most_recent(tracker):
    for i in range(15):
        tracker.record_behavior("s1", {
            "search_queries": [f"q{i}"],
            "popular_categories": [f"c{i}"],
            "time_patterns": [i, i],
            "frequency_patterns": [i, i],
        })

    patterns = tracker.get_session("s1").patterns
    assert patterns.search_queries == [f"q{i}" for i in range(5, 15)]
    assert patterns.popular_categories == [f"c{i}" for i in range(10, 15)]
    assert len(patterns.time_patterns) == 20
    assert len(patterns.frequency_patterns) == 20


def test_caps_apply_on_session_creation(tracker):
    tracker.record_behavior("s1", {"search_queries": [f"q{i}" for i in range(12)]})
    assert tracker.get_session("s1").patterns.search_queries == [f"q{i}" for i in range(2, 12)]


def test_bare_string_and_missing_fields(tracker):
    assert tracker.record_behavior("s1", {"search_queries": "iphone", "popular_categories": None})

    patterns = tracker.get_session("s1").patterns
    assert patterns.search_queries == ["iphone"]
    assert patterns.popular_categories == []
    assert patterns.time_patterns == []


def test_camel_case_fields_are_accepted(tracker):
    tracker.record_behavior("s1", {"searchQueries": ["tv"], "popularCategories": ["elektronik"]})

    patterns = tracker.get_session("s1").patterns
    assert patterns.search_queries == ["tv"]
    assert patterns.popular_categories == ["elektronik"]


def test_malformed_event_is_ignored(tracker):
    assert not tracker.record_behavior("", {"search_queries": ["x"]})
    assert not tracker.record_behavior("s1", {"search_queries": 5.0j})
    assert tracker.session_count() == 0
    assert tracker.get_behavior_stats()["events_failed"] == 1


def test_non_numeric_points_are_dropped(tracker):
    assert tracker.record_behavior("s1", {
        "search_queries": ["iphone"],
        "time_patterns": ["not-a-number", 9, "14.5", None],
        "frequency_patterns": [{}, 2],
    })

    patterns = tracker.get_session("s1").patterns
    assert patterns.search_queries == ["iphone"]
    assert patterns.time_patterns == [9.0, 14.5]
    assert patterns.frequency_patterns == [2.0]


def test_query_and_category_probability(tracker):
    tracker.record_behavior("s1", {
        "search_queries": ["iphone", "iphone", "samsung"],
        "popular_categories": ["phones"],
    })

    assert tracker.query_probability("iphone", "s1") == pytest.approx(2 / 3)
    assert tracker.query_probability("samsung", "s1") == pytest.approx(1 / 3)
    assert tracker.query_probability("nokia", "s1") == 0.0
    assert tracker.category_probability("phones", "s1") == pytest.approx(1.0)


def test_probability_of_empty_window_is_zero(tracker):
    tracker.record_behavior("s1", {"search_queries": []})

    assert tracker.query_probability("iphone", "s1") == 0.0
    assert tracker.category_probability("phones", "unknown") == 0.0
    assert BehaviorTracker.item_probability("x", []) == 0.0


def test_cleanup_expires_idle_sessions(tracker, clock):
    tracker.record_behavior("old", {"search_queries": ["a"]})
    clock.advance(25 * 3600)
    tracker.record_behavior("fresh", {"search_queries": ["b"]})

    assert tracker.cleanup() == 1
    assert tracker.get_session("old") is None
    assert tracker.get_session("fresh") is not None


def test_cleanup_evicts_oldest_above_cap(clock):
    tracker = BehaviorTracker(BehaviorConfig(max_sessions=3), clock=clock)
    for i in range(5):
        tracker.record_behavior(f"s{i}", {"search_queries": ["q"]})
        clock.advance(1)

    assert tracker.cleanup() == 2
    assert tracker.session_count() == 3
    assert tracker.get_session("s0") is None
    assert tracker.get_session("s1") is None
    assert tracker.get_session("s4") is not None


def test_behavior_stats(tracker, clock):
    tracker.record_behavior("s1", full_history())
    clock.advance(2 * 3600)
    tracker.record_behavior("s2", {})

    stats = tracker.get_behavior_stats()
    assert stats["total_sessions"] == 2
    assert stats["active_sessions"] == 1
    assert stats["average_prediction_score"] == pytest.approx(0.5)


def test_get_session_returns_copy(tracker):
    tracker.record_behavior("s1", {"search_queries": ["a"]})
    tracker.get_session("s1").patterns.search_queries.append("mutated")

    assert tracker.get_session("s1").patterns.search_queries == ["a"]

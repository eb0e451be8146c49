import pytest
from iterators import EXHAUSTED, from_, repeat


class TestLazyEvaluation:
    """Nothing runs until a caller pulls"""

    def test_deferred_execution(self):
        """Building a pipeline calls no user function"""
        call_count = 0

        def track_calls(x):
            nonlocal call_count
            call_count += 1
            return x * 2

        pipeline = from_(range(10)).map(track_calls).filter(lambda x: True).take(3)
        assert call_count == 0, "Operations should not execute during definition"

        assert pipeline.to_list() == [0, 2, 4]
        assert call_count == 3, f"Expected exactly 3 calls, got {call_count}"

    def test_one_pull_per_next(self):
        """map over take pulls exactly as many elements as requested"""
        side_effects = []

        def side_effect_map(x):
            side_effects.append(x)
            return x

        pipeline = from_([1, 2, 3, 4, 5]).map(side_effect_map)
        pipeline.next()
        pipeline.next()
        assert side_effects == [1, 2]

    def test_take_before_map_limits_work(self):
        calls = []
        result = from_(range(1000)).take(2).map(lambda x: calls.append(x) or x).to_list()
        assert result == [0, 1]
        assert calls == [0, 1]

    def test_infinite_source_is_fine_when_bounded(self):
        result = repeat(3).map(lambda x: x * x).take(4).to_list()
        assert result == [9, 9, 9, 9]

    def test_producers_are_single_pass(self):
        """Unlike a re-iterable collection, a producer is consumed by pulling"""
        pipeline = from_(range(5)).map(lambda x: x * 2)
        assert pipeline.to_list() == [0, 2, 4, 6, 8]
        assert pipeline.to_list() == []
        assert pipeline.next() is EXHAUSTED

    def test_independent_chains_do_not_share_state(self):
        data = [1, 2, 3]
        a = from_(data).map(lambda x: x + 1)
        b = from_(data).map(lambda x: x + 1)
        a.next()
        assert b.next() == 2
        assert a.next() == 3

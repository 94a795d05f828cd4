"""Unit tests for helper functions."""

import json
import warnings
import pytest
from ramen.utils.helpers import (
    canonicalize_dict,
    deep_compare_dict,
    namespaced_name,
    remove_string,
    scheduling_interval_to_cron,
    split_namespaced_name,
)


class TestDeepCompareDict:
    """Tests for deep_compare_dict()."""

    def test_key_order_is_ignored(self):
        assert deep_compare_dict({"a": 1, "b": {"c": 2, "d": 3}}, {"b": {"d": 3, "c": 2}, "a": 1})

    def test_list_order_matters(self):
        assert not deep_compare_dict({"a": [1, 2]}, {"a": [2, 1]})

    def test_none(self):
        assert deep_compare_dict(None, None)
        assert not deep_compare_dict({}, None)


class TestCanonicalizeDict:
    """Tests for canonicalize_dict()."""

    def test_plain_sorted_json(self):
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            encoded = canonicalize_dict({"b": {"d": 1, "c": [2]}, "a": None})
        assert list(json.loads(encoded)) == ["a", "b"]
        assert json.loads(encoded) == {"a": None, "b": {"c": [2], "d": 1}}


class TestNamespacedName:
    """Tests for namespaced_name() and split_namespaced_name()."""

    def test_round_trip(self):
        assert split_namespaced_name(namespaced_name("ns", "vrg")) == ("ns", "vrg")

    def test_no_namespace(self):
        assert namespaced_name(None, "vrg") == "vrg"
        assert split_namespaced_name("vrg") == (None, "vrg")


class TestSchedulingIntervalToCron:
    """Tests for scheduling_interval_to_cron()."""

    @pytest.mark.parametrize(
        "interval,cron",
        [("5m", "*/5 * * * *"), ("2h", "0 */2 * * *"), ("1d", "0 0 */1 * *")],
    )
    def test_valid(self, interval, cron):
        assert scheduling_interval_to_cron(interval) == cron

    @pytest.mark.parametrize("interval", ["", "5", "5x", "0m", "m5", None])
    def test_invalid(self, interval):
        with pytest.raises(ValueError):
            scheduling_interval_to_cron(interval)


def test_remove_string():
    assert remove_string(["a", "b", "a"], "a") == ["b"]
    assert remove_string(None, "a") == []

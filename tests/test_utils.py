"""
Tests for the common utilities
"""

# Standard
from datetime import datetime, timedelta

# Third Party
import pytest

# Local
from example_operator import utils


def test_merge_configs_nested():
    """Make sure nested dicts are merged and other values replaced"""
    base = {"a": 1, "b": {"c": 2, "d": [1]}, "e": {"f": 1}}
    merged = utils.merge_configs(base, {"b": {"c": 3, "d": [2]}, "e": 5, "g": 6})
    assert merged is base
    assert merged == {"a": 1, "b": {"c": 3, "d": [2]}, "e": 5, "g": 6}


def test_nested_set_and_get():
    """Make sure dotted keys read and write nested dicts"""
    dct = {}
    utils.nested_set(dct, "foo.bar.baz", 1)
    assert dct == {"foo": {"bar": {"baz": 1}}}
    assert utils.nested_get(dct, "foo.bar.baz") == 1
    assert utils.nested_get(dct, "foo.missing.baz", "default") == "default"
    assert utils.nested_get(dct, "foo.bar.missing") is None


def test_nested_set_non_dict_intermediate():
    """Make sure a non-dict intermediate value raises"""
    with pytest.raises(TypeError):
        utils.nested_set({"foo": 1}, "foo.bar", 2)
    with pytest.raises(TypeError):
        utils.nested_get({"foo": 1}, "foo.bar")


@pytest.mark.parametrize(
    ["time_str", "expected"],
    [
        ("10s", timedelta(seconds=10)),
        ("0.5s", timedelta(seconds=0.5)),
        ("5m", timedelta(minutes=5)),
        ("1hr", timedelta(hours=1)),
        ("1m30s", timedelta(minutes=1, seconds=30)),
        ("", None),
        ("forever", None),
        (None, None),
    ],
)
def test_parse_time_delta(time_str, expected):
    """Make sure the time delta strings parse"""
    assert utils.parse_time_delta(time_str) == expected


def test_now_timestamp_format():
    """Make sure timestamps use the kubernetes RFC3339 form"""
    stamp = utils.now_timestamp()
    assert stamp.endswith("Z")
    datetime.strptime(stamp, utils.TIMESTAMP_FORMAT)


def test_classproperty():
    """Make sure classproperty works on the class itself"""

    class Foo:
        @utils.classproperty
        def bar(cls):  # pylint: disable=no-self-argument
            return cls.__name__

    assert Foo.bar == "Foo"
    assert Foo().bar == "Foo"


def test_abstractclassproperty():
    """Make sure an unimplemented abstractclassproperty raises on access"""

    class Base:
        @utils.abstractclassproperty
        def bar(cls):  # pylint: disable=no-self-argument
            """Must be set"""

    class Child(Base):
        bar = 1

    assert Child.bar == 1
    with pytest.raises(NotImplementedError):
        Base.bar  # pylint: disable=pointless-statement

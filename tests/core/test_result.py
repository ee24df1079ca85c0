"""Tests for quotesync.core.result module."""

import json

from quotesync.core.errors import NotFoundError, ServerError
from quotesync.core.result import Err, Ok, Result, try_result_with


class TestOk:
    """Test Ok class."""

    def test_create_ok(self):
        result = Ok(42)
        assert result.value == 42
        assert result.is_ok() is True
        assert result.is_err() is False

    def test_unwrap(self):
        assert Ok("hello").unwrap() == "hello"

    def test_map_chaining(self):
        assert Ok(3).map(lambda x: x * 2).map(lambda x: x + 1).unwrap() == 7

    def test_flat_map(self):
        def half(x: int) -> Result[int]:
            if x % 2:
                return Err(ValueError("odd"))
            return Ok(x // 2)

        assert Ok(4).flat_map(half).unwrap() == 2
        assert Ok(3).flat_map(half).is_err()

    def test_to_dict(self):
        assert Ok([1]).to_dict() == {"ok": True, "value": [1]}


class TestErr:
    """Test Err class."""

    def test_unwrap_raises(self):
        error = NotFoundError("missing")
        try:
            Err(error).unwrap()
        except NotFoundError as raised:
            assert raised is error
        else:
            raise AssertionError("unwrap did not raise")

    def test_map_passes_error_through(self):
        error = ValueError("x")
        result = Err(error).map(lambda v: v + 1)
        assert result.is_err()
        assert result.error is error

    def test_to_dict_for_domain_error(self):
        data = Err(NotFoundError("missing")).to_dict()
        assert data["ok"] is False
        assert data["error"]["category"] == "NOT_FOUND"

    def test_to_dict_for_plain_exception(self):
        assert Err(KeyError("k")).to_dict()["error"]["error_type"] == "KeyError"


class TestPatternMatching:
    def test_match(self):
        def describe(result: Result[int]) -> str:
            match result:
                case Ok(value):
                    return f"ok {value}"
                case Err(NotFoundError()):
                    return "missing"
                case Err(error):
                    return f"error {error}"

        assert describe(Ok(1)) == "ok 1"
        assert describe(Err(NotFoundError("x"))) == "missing"
        assert describe(Err(ValueError("v"))) == "error v"


class TestTryResultWith:
    def test_success(self):
        assert try_result_with(lambda: json.loads('{"a": 1}')).unwrap() == {"a": 1}

    def test_maps_exception(self):
        result = try_result_with(lambda: json.loads("<html>"), lambda e: ServerError("malformed"))
        assert isinstance(result.error, ServerError)

    def test_without_mapper_keeps_exception(self):
        result = try_result_with(lambda: 1 / 0)
        assert isinstance(result.error, ZeroDivisionError)

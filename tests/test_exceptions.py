"""Tests for the sstrend exception hierarchy."""

from __future__ import annotations

import pytest

from sstrend.exceptions import (
    ConfigurationError,
    DataFileError,
    MalformedInputError,
    SingularFitError,
    SSTrendError,
)

ALL_EXCEPTION_CLASSES = [
    SSTrendError,
    ConfigurationError,
    DataFileError,
    MalformedInputError,
    SingularFitError,
]

SUBCLASS_EXCEPTION_CLASSES = ALL_EXCEPTION_CLASSES[1:]


@pytest.mark.unit
class TestExceptionInheritance:
    """Verify the exception inheritance chain."""

    def test_base_inherits_from_exception(self) -> None:
        assert issubclass(SSTrendError, Exception)

    @pytest.mark.parametrize(
        "exc_cls",
        SUBCLASS_EXCEPTION_CLASSES,
        ids=lambda c: c.__name__,
    )
    def test_subclass_inherits_from_base(self, exc_cls: type[SSTrendError]) -> None:
        assert issubclass(exc_cls, SSTrendError)


@pytest.mark.unit
class TestThreePartMessage:
    """Verify the three-part message pattern (what, cause, fix)."""

    @pytest.mark.parametrize(
        "exc_cls",
        ALL_EXCEPTION_CLASSES,
        ids=lambda c: c.__name__,
    )
    def test_full_message(self, exc_cls: type[SSTrendError]) -> None:
        exc = exc_cls(what="Operation failed", cause="Bad input", fix="Check your data")
        assert str(exc) == "Operation failed\nCause: Bad input\nFix: Check your data"

    def test_what_only_message(self) -> None:
        assert str(SSTrendError(what="Something broke")) == "Something broke"

    def test_message_omits_empty_cause(self) -> None:
        exc = SSTrendError(what="Failed", fix="Retry")
        assert str(exc) == "Failed\nFix: Retry"

    def test_attributes_preserved(self) -> None:
        exc = MalformedInputError(what="w", cause="c", fix="f")
        assert (exc.what, exc.cause, exc.fix) == ("w", "c", "f")

    def test_catchable_as_base(self) -> None:
        with pytest.raises(SSTrendError):
            raise DataFileError(what="Cannot open SST dataset")

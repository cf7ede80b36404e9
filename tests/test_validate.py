"""
Tests for validate.py - submission validation.
"""

import pytest
from dataclasses import replace

from hs.core.errors import ValidationError
from hs.core.models import Category, Location
from hs.domain.validate import (
    validate_sub_report, require_valid, validate_comment_text, validate_user_id,
)


class TestValidateSubReport:
    """Tests for sub-report validation reasons."""

    def test_valid(self, taxonomy, make_sub):
        assert validate_sub_report(make_sub(), taxonomy) is None

    def test_out_of_range_coordinates(self, taxonomy, make_sub):
        sub = make_sub(lat=95.0)
        assert validate_sub_report(sub, taxonomy) == "missing_coordinates"

    def test_null_island(self, taxonomy, make_sub):
        sub = make_sub(lat=0.0, lon=0.0)
        assert validate_sub_report(sub, taxonomy) == "missing_coordinates"

    def test_unknown_category(self, taxonomy, make_sub):
        sub = replace(make_sub(), category=Category("X", "Y", "Z"))
        assert validate_sub_report(sub, taxonomy) == "unknown_category"

    def test_missing_category(self, taxonomy, make_sub):
        sub = replace(make_sub(), category=None)
        assert validate_sub_report(sub, taxonomy) == "missing_category"

    def test_blank_description(self, taxonomy, make_sub):
        assert validate_sub_report(make_sub(description="   "), taxonomy) == "missing_description"

    def test_description_too_long(self, taxonomy, make_sub):
        assert validate_sub_report(make_sub(description="x" * 2001), taxonomy) == "description_too_long"

    def test_missing_reporter(self, taxonomy, make_sub):
        assert validate_sub_report(make_sub(user=""), taxonomy) == "missing_reporter"

    def test_missing_timestamp(self, taxonomy, make_sub):
        assert validate_sub_report(make_sub(at=None), taxonomy) == "missing_timestamp"

    def test_noise_level_range(self, taxonomy, make_sub):
        assert validate_sub_report(make_sub(noise_level=11), taxonomy) == "invalid_noise_level"
        assert validate_sub_report(make_sub(noise_level=7), taxonomy) is None

    def test_too_many_media(self, taxonomy, make_sub):
        sub = make_sub(media=[f"m{i}.jpg" for i in range(11)])
        assert validate_sub_report(sub, taxonomy) == "too_many_media_files"

    def test_require_valid_raises(self, taxonomy, make_sub):
        with pytest.raises(ValidationError) as exc:
            require_valid(replace(make_sub(), location=Location(0.0, 0.0)), taxonomy)
        assert exc.value.reason == "missing_coordinates"


class TestCommentAndUser:
    """Tests for comment text and user id checks."""

    def test_comment_is_stripped(self):
        assert validate_comment_text("  still going  ") == "still going"

    def test_empty_comment(self):
        with pytest.raises(ValidationError):
            validate_comment_text("   ")

    def test_comment_too_long(self):
        with pytest.raises(ValidationError) as exc:
            validate_comment_text("x" * 1001)
        assert exc.value.reason == "comment_too_long"

    def test_missing_user(self):
        with pytest.raises(ValidationError):
            validate_user_id(None)
        assert validate_user_id(" u1 ") == "u1"

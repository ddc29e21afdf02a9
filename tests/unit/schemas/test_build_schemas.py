"""
Unit tests for start request validation
"""
import pytest

from whiteninja.core.exceptions import ValidationError
from whiteninja.schemas.build import BuildOptions, validate_brief, validate_options, validate_start_request


class TestValidateBrief:
    """Test brief bounds"""

    def test_strips_whitespace(self):
        assert validate_brief("   a portfolio for a potter   ") == "a portfolio for a potter"

    @pytest.mark.parametrize("brief", [None, 42, "", "short", "          x"])
    def test_rejects_missing_or_short(self, brief):
        with pytest.raises(ValidationError) as exc_info:
            validate_brief(brief)
        assert exc_info.value.details["field"] == "brief"

    def test_rejects_too_long(self):
        with pytest.raises(ValidationError):
            validate_brief("x" * 5001)

    def test_accepts_bounds(self):
        assert validate_brief("x" * 10)
        assert validate_brief("x" * 5000)


class TestBuildOptions:
    """Test the option bag"""

    def test_defaults(self):
        options = validate_options(None)
        assert options.site_type is None
        assert options.animations is True
        assert options.responsive is True

    def test_camel_case_keys(self):
        options = validate_options({
            "siteType": "portfolio",
            "stylePreset": "retro",
            "primaryColor": "#abc",
            "darkMode": True,
        })
        assert options.site_type == "portfolio"
        assert options.style_preset == "retro"
        assert options.dark_mode is True
        assert options.to_wire()["primaryColor"] == "#abc"

    def test_unknown_keys_are_kept(self):
        options = validate_options({"targetAudience": "students"})
        assert options.to_wire()["targetAudience"] == "students"

    def test_empty_enum_is_unset(self):
        assert validate_options({"siteType": ""}).site_type is None

    @pytest.mark.parametrize("options", [
        {"siteType": "wiki"},
        {"primaryColor": "red"},
        {"primaryColor": "#12345"},
        {"animations": "yes"},
        {"darkMode": 1},
        {"codeQuality": "sloppy"},
    ])
    def test_invalid_values_rejected(self, options):
        with pytest.raises(ValidationError):
            validate_options(options)

    @pytest.mark.parametrize("options", ["dark", ["landing"], 3])
    def test_non_object_rejected(self, options):
        with pytest.raises(ValidationError) as exc_info:
            validate_options(options)
        assert exc_info.value.details["field"] == "options"


class TestValidateStartRequest:
    """Test the full start_build payload"""

    def test_options_and_config_alias(self, brief):
        _, from_options = validate_start_request({"brief": brief, "options": {"siteType": "blog"}})
        _, from_config = validate_start_request({"brief": brief, "config": {"siteType": "blog"}})
        assert from_options.site_type == from_config.site_type == "blog"

    def test_options_win_over_config(self, brief):
        _, options = validate_start_request({
            "brief": brief,
            "options": {"siteType": "blog"},
            "config": {"siteType": "dashboard"},
        })
        assert options.site_type == "blog"

    def test_missing_options_are_defaults(self, brief):
        trimmed, options = validate_start_request({"brief": f"  {brief}  "})
        assert trimmed == brief
        assert isinstance(options, BuildOptions)

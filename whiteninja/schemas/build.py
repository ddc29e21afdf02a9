"""
Build Schemas - request models for starting builds and the REST endpoints
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator
from pydantic import ValidationError as PydanticValidationError

from whiteninja.core.config import settings
from whiteninja.core.exceptions import ValidationError


# ============== Enums ==============

class SiteType(str, Enum):
    LANDING = "landing"
    PORTFOLIO = "portfolio"
    BLOG = "blog"
    ECOMMERCE = "ecommerce"
    DASHBOARD = "dashboard"
    CUSTOM = "custom"


class StylePreset(str, Enum):
    MODERN_DARK = "modern-dark"
    CLEAN_MINIMAL = "clean-minimal"
    BOLD_COLORFUL = "bold-colorful"
    CORPORATE = "corporate"
    RETRO = "retro"


class CodeQuality(str, Enum):
    SPEED = "speed"
    BALANCED = "balanced"
    PERFECTIONIST = "perfectionist"


HEX_COLOR_PATTERN = r'^#([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$'


def validate_brief(brief: Any) -> str:
    """Return the stripped brief or raise ValidationError"""
    if not isinstance(brief, str):
        raise ValidationError("Brief must be a string", field="brief")
    trimmed = brief.strip()
    if len(trimmed) < settings.BRIEF_MIN_LENGTH:
        raise ValidationError(
            f"Brief must be at least {settings.BRIEF_MIN_LENGTH} characters (got {len(trimmed)})",
            field="brief"
        )
    if len(trimmed) > settings.BRIEF_MAX_LENGTH:
        raise ValidationError(
            f"Brief must be at most {settings.BRIEF_MAX_LENGTH} characters (got {len(trimmed)})",
            field="brief"
        )
    return trimmed


# ============== Build Options ==============

class BuildOptions(BaseModel):
    """Option bag sent with start_build; unknown keys are kept as-is"""
    model_config = ConfigDict(populate_by_name=True, extra="allow", use_enum_values=True)

    site_type: Optional[SiteType] = Field(None, alias="siteType")
    style_preset: Optional[StylePreset] = Field(None, alias="stylePreset")
    code_quality: Optional[CodeQuality] = Field(None, alias="codeQuality")
    primary_color: Optional[str] = Field(None, alias="primaryColor", pattern=HEX_COLOR_PATTERN)
    font_preference: Optional[str] = Field(None, alias="fontPreference", max_length=200)
    animations: Optional[StrictBool] = True
    responsive: Optional[StrictBool] = True
    dark_mode: Optional[StrictBool] = Field(None, alias="darkMode")

    @field_validator('site_type', 'style_preset', 'code_quality', 'primary_color', mode='before')
    @classmethod
    def empty_as_unset(cls, v):
        return None if v == "" else v

    def to_wire(self) -> Dict[str, Any]:
        """camelCase dict without unset options"""
        return self.model_dump(by_alias=True, exclude_none=True)


def _first_error(exc: PydanticValidationError) -> ValidationError:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    value = error.get("input")
    message = f"Invalid {location or 'options'}"
    if value is not None and not isinstance(value, (dict, list)):
        message += f" {value!r}"
    return ValidationError(f"{message}: {error.get('msg', 'invalid value')}", field=location or None)


def validate_options(options: Any) -> BuildOptions:
    """Validate the option bag; None means all defaults"""
    if options is None:
        return BuildOptions()
    if not isinstance(options, dict):
        raise ValidationError("Config must be a plain object", field="options")
    try:
        return BuildOptions.model_validate(options)
    except PydanticValidationError as e:
        raise _first_error(e) from e


def validate_start_request(payload: Dict[str, Any]):
    """
    Validate a start_build payload before any session exists.

    "config" is accepted as an alias of "options".

    Returns:
        (brief, BuildOptions)
    """
    brief = validate_brief(payload.get("brief"))
    options = payload.get("options", payload.get("config"))
    return brief, validate_options(options)


# ============== REST Schemas ==============

class SuggestConfigRequest(BaseModel):
    brief: Any = None


class SuggestConfigResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    suggested_config: Dict[str, Any] = Field(default_factory=dict, alias="suggestedConfig")
    reasoning: str = ""
    custom_questions: List[Dict[str, Any]] = Field(default_factory=list, alias="customQuestions")


class DownloadFile(BaseModel):
    path: str
    content: str = ""


class DownloadRequest(BaseModel):
    files: List[DownloadFile]

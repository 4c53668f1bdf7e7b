"""Request validation for report configs and input blocks."""
from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator
from pydantic import ValidationError as SchemaError

from .constants import OUTPUT_FORMATS
from .errors import ValidationError


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Branding(_CamelModel):
    primary_color: str = Field(default="#1a365d", alias="primaryColor")
    secondary_color: str = Field(default="#2b6cb0", alias="secondaryColor")
    accent_color: str = Field(default="#ed8936", alias="accentColor")
    font_family: Optional[str] = Field(default=None, alias="fontFamily")
    logo_url: Optional[str] = Field(default=None, alias="logoUrl")
    company_name: Optional[str] = Field(default=None, alias="companyName")


class ReportConfig(_CamelModel):
    title: str = Field(min_length=1, max_length=200)
    style: Optional[Literal["business", "research", "technical"]] = None
    output_formats: Optional[List[str]] = Field(default=None, alias="outputFormats")
    branding: Optional[Branding] = None
    sections_to_include: Optional[List[str]] = Field(default=None, alias="sectionsToInclude")
    sections_to_exclude: Optional[List[str]] = Field(default=None, alias="sectionsToExclude")
    author_name: Optional[str] = Field(default=None, alias="authorName")
    custom_prompt_instructions: Optional[str] = Field(default=None, alias="customPromptInstructions", max_length=1000)

    @field_validator("output_formats")
    @classmethod
    def _normalize_formats(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        if not value:
            raise ValueError("at least one output format is required")
        seen: List[str] = []
        for item in value:
            fmt = str(item).strip().upper()
            if fmt not in OUTPUT_FORMATS:
                raise ValueError(f"unsupported output format {item!r}")
            if fmt not in seen:
                seen.append(fmt)
        return seen


class StructuredInput(_CamelModel):
    type: Literal["structured"]
    format: Literal["json", "csv", "xlsx"]
    data: Union[str, List[Dict[str, Any]]]
    sheet_name: Optional[str] = Field(default=None, alias="sheetName")

    @model_validator(mode="after")
    def _check_payload(self) -> "StructuredInput":
        if self.format in {"csv", "xlsx"} and not isinstance(self.data, str):
            raise ValueError(f"{self.format} data must be a string")
        return self


class UnstructuredInput(_CamelModel):
    type: Literal["unstructured"]
    format: Literal["text", "markdown"] = "text"
    content: str = Field(max_length=100000)


InputBlock = Annotated[Union[StructuredInput, UnstructuredInput], Field(discriminator="type")]
_BLOCKS = TypeAdapter(List[InputBlock])


def _describe(exc: SchemaError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


def validate_input_blocks(input_data: Sequence[Any]) -> List[Dict[str, Any]]:
    try:
        blocks = _BLOCKS.validate_python(list(input_data))
    except SchemaError as exc:
        raise ValidationError(f"Invalid input data: {_describe(exc)}") from exc
    except TypeError as exc:
        raise ValidationError(f"Invalid input data: {exc}") from exc
    if not blocks:
        raise ValidationError("Invalid input data: at least one input block is required")
    return [block.model_dump(by_alias=True, exclude_none=True) for block in blocks]


def validate_report_config(
    config: Any,
    *,
    default_style: str = "business",
    default_output_format: str = "PDF",
) -> Dict[str, Any]:
    try:
        parsed = ReportConfig.model_validate(config)
    except SchemaError as exc:
        raise ValidationError(f"Invalid report config: {_describe(exc)}") from exc
    if parsed.style is None:
        parsed.style = default_style  # type: ignore[assignment]
    if parsed.output_formats is None:
        parsed.output_formats = [default_output_format]
    if parsed.branding is None:
        parsed.branding = Branding()
    return parsed.model_dump(by_alias=True, exclude_none=True)


def validate_request(
    input_data: Sequence[Any],
    config: Any,
    *,
    default_style: str = "business",
    default_output_format: str = "PDF",
) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    blocks = validate_input_blocks(input_data)
    report_config = validate_report_config(
        config,
        default_style=default_style,
        default_output_format=default_output_format,
    )
    return blocks, report_config

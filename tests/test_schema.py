import pytest

from reportflow.config import load_settings
from reportflow.workers.graph.core.errors import ValidationError
from reportflow.workers.graph.core.schema import validate_input_blocks, validate_report_config, validate_request


def test_config_defaults_are_applied():
    config = validate_report_config({"title": "Weekly"}, default_style="research", default_output_format="DOCX")
    assert config["style"] == "research"
    assert config["outputFormats"] == ["DOCX"]
    assert config["branding"]["primaryColor"] == "#1a365d"


def test_output_formats_are_normalised():
    config = validate_report_config({"title": "Weekly", "outputFormats": ["pdf", " Html ", "PDF"]})
    assert config["outputFormats"] == ["PDF", "HTML"]


@pytest.mark.parametrize(
    "config",
    [
        {"title": ""},
        {"title": "x" * 201},
        {"title": "Weekly", "style": "casual"},
        {"title": "Weekly", "outputFormats": []},
        {"title": "Weekly", "outputFormats": ["PPTX"]},
        {"title": "Weekly", "customPromptInstructions": "x" * 1001},
    ],
)
def test_invalid_configs_are_rejected(config):
    with pytest.raises(ValidationError) as excinfo:
        validate_report_config(config)
    assert str(excinfo.value).startswith("Invalid report config:")


def test_camel_case_fields_survive_validation():
    config = validate_report_config(
        {
            "title": "Weekly",
            "authorName": "Data Team",
            "sectionsToExclude": ["risks"],
            "branding": {"primaryColor": "#000000", "companyName": "Acme"},
        }
    )
    assert config["authorName"] == "Data Team"
    assert config["sectionsToExclude"] == ["risks"]
    assert config["branding"]["companyName"] == "Acme"
    assert config["branding"]["secondaryColor"] == "#2b6cb0"


def test_input_blocks_are_validated():
    blocks = validate_input_blocks(
        [
            {"type": "structured", "format": "json", "data": [{"a": 1}]},
            {"type": "unstructured", "content": "notes"},
        ]
    )
    assert [block["type"] for block in blocks] == ["structured", "unstructured"]


def test_unknown_block_fields_are_dropped():
    blocks = validate_input_blocks(
        [{"type": "structured", "format": "csv", "data": "a\n1\n", "sheetName": "S1", "schemaHints": {"a": "int"}}]
    )
    assert blocks == [{"type": "structured", "format": "csv", "data": "a\n1\n", "sheetName": "S1"}]


@pytest.mark.parametrize(
    "blocks",
    [
        [],
        [{"type": "structured", "format": "parquet", "data": "..."}],
        [{"type": "structured", "format": "csv", "data": [{"a": 1}]}],
        [{"type": "unstructured", "content": "x" * 100001}],
        [{"type": "image", "content": "x"}],
    ],
)
def test_invalid_input_blocks_are_rejected(blocks):
    with pytest.raises(ValidationError) as excinfo:
        validate_input_blocks(blocks)
    assert str(excinfo.value).startswith("Invalid input data:")


def test_validate_request_returns_both_parts():
    blocks, config = validate_request([{"type": "unstructured", "content": "hi"}], {"title": "T"})
    assert blocks == [{"type": "unstructured", "format": "text", "content": "hi"}]
    assert config["title"] == "T"


def test_settings_come_from_environment():
    settings = load_settings(
        environ={
            "STORAGE_TYPE": "MinIO",
            "MAX_CONCURRENT_INSTANCES": "4",
            "DISABLE_CHECKPOINT": "true",
            "DEFAULT_OUTPUT_FORMAT": "html",
        }
    )
    assert settings.storage_type == "s3"
    assert settings.max_concurrent_instances == 4
    assert settings.disable_checkpoint is True
    assert settings.default_output_format == "HTML"
    assert settings.max_concurrent_activities == 20


def test_invalid_environment_is_reported():
    with pytest.raises(ValueError) as excinfo:
        load_settings(environ={"RETRY_MAXIMUM_ATTEMPTS": "0"})
    assert "Invalid environment variables" in str(excinfo.value)

import pytest

from libs.core.primitive_types import (
    BUILTIN_PRIMITIVES,
    PrimitiveType,
    PrimitiveTypeCatalog,
    TextConstraints,
)


def test_catalog_lists_builtin_names_in_order():
    catalog = PrimitiveTypeCatalog()
    assert catalog.list_primitive_type_names() == [
        "Text",
        "LongText",
        "Number",
        "Decimal",
        "Boolean",
        "Date",
        "Json",
    ]
    assert catalog.free_form_type_names() == ["LongText", "Json"]
    assert catalog.has("Decimal")
    assert catalog.get("Missing") is None


def test_duplicate_primitive_names_are_rejected():
    with pytest.raises(ValueError):
        PrimitiveTypeCatalog(BUILTIN_PRIMITIVES + (BUILTIN_PRIMITIVES[0],))


def test_text_constraints():
    catalog = PrimitiveTypeCatalog()
    assert catalog.validate_value("Text", "hello") == []
    assert catalog.validate_value("Text", 3) == ["Text value must be a string"]
    assert catalog.validate_value("Text", "x" * 256) == ["Text cannot exceed 255 characters"]

    slug = PrimitiveType(
        name="Slug",
        description="URL slug",
        constraints=TextConstraints(min_length=2, pattern=r"^[a-z-]+$"),
    )
    assert slug.validate_value("a") == ["Slug must be at least 2 characters"]
    assert slug.validate_value("Not A Slug") == [
        "Slug does not match required pattern: ^[a-z-]+$"
    ]


def test_number_and_decimal_values():
    catalog = PrimitiveTypeCatalog()
    assert catalog.validate_value("Number", 4) == []
    assert catalog.validate_value("Number", True) == ["Number value must be a number"]
    assert catalog.validate_value("Decimal", "19.99") == []
    assert catalog.validate_value("Decimal", "1.234") == [
        "Decimal value allows at most 2 decimal places"
    ]
    assert catalog.validate_value("Decimal", "abc") == ["Decimal value must be a decimal number"]


def test_boolean_date_and_json_values():
    catalog = PrimitiveTypeCatalog()
    assert catalog.validate_value("Boolean", False) == []
    assert catalog.validate_value("Boolean", "yes") == ["Boolean value must be true or false"]
    assert catalog.validate_value("Date", "2024-05-01T10:00:00Z") == []
    assert catalog.validate_value("Date", "yesterday") == ["Date value must be an ISO 8601 date"]
    assert catalog.validate_value("Json", {"a": 1}) == []
    assert catalog.validate_value("Json", [1, 2]) == []
    assert catalog.validate_value("Json", "text") == ["Json value must be an object or array"]


def test_unknown_primitive_is_reported():
    assert PrimitiveTypeCatalog().validate_value("Color", "#fff") == ["Unknown primitive type: Color"]


def test_describe_lists_every_primitive():
    described = PrimitiveTypeCatalog().describe()
    assert described.splitlines()[0] == "- Text: Short text field for titles, names, and brief content"
    assert len(described.splitlines()) == 7

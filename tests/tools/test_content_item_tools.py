import asyncio

import pytest

from libs.core.errors import ToolValidationError
from libs.core.store import SqlStore
from libs.core.tool_registry import default_executor

RECIPE_FIELDS = [
    {"name": "title", "type": "Text", "required": True, "label": "Title"},
    {"name": "servings", "type": "Number", "validation": {"min": 1, "max": 12}},
    {"name": "summary", "type": "Text", "validation": {"maxLength": 20}},
    {"name": "ingredients", "type": "Json"},
]


def _run(executor, name, params):
    return asyncio.run(executor.execute_tool(name, params))


def _setup(category="general"):
    store = SqlStore()
    executor = default_executor(store)
    website = _run(executor, "create_website", {"name": "Acme", "category": category}).data["website"]
    content_type = _run(
        executor,
        "create_content_type",
        {"websiteId": website["id"], "name": "Recipe", "fields": RECIPE_FIELDS},
    )
    assert content_type.success, content_type.error
    return store, executor, website["id"], content_type.data["contentType"]["id"]


def _item_count(store):
    return asyncio.run(store.read(lambda handle: handle.count("content_item")))


def test_create_valid_item():
    store, executor, website_id, type_id = _setup()
    result = _run(
        executor,
        "create_content_item",
        {
            "websiteId": website_id,
            "contentTypeId": type_id,
            "slug": "tomato-soup",
            "data": {"title": "Tomato soup", "servings": 4, "ingredients": ["tomato"]},
        },
    )
    assert result.success, result.error
    item = result.data["item"]
    assert item["status"] == "draft"
    assert item["publishedAt"] is None
    assert item["contentType"] == {"id": type_id, "name": "Recipe"}
    assert item["data"]["servings"] == 4
    assert _item_count(store) == 1


def test_invalid_item_lists_every_problem():
    store, executor, website_id, type_id = _setup()
    result = _run(
        executor,
        "create_content_item",
        {
            "websiteId": website_id,
            "contentTypeId": type_id,
            "data": {"servings": 0, "summary": "x" * 25, "ingredients": "tomato"},
        },
    )
    assert not result.success
    assert result.error == "Validation failed"
    assert result.error_code == "contract.content_invalid"
    assert result.data["validationErrors"] == [
        {"field": "title", "message": "Required field 'Title' is missing"},
        {"field": "servings", "message": "Field 'servings' must be at least 1"},
        {"field": "summary", "message": "Field 'summary' must not exceed 20 characters"},
        {"field": "ingredients", "message": "Field 'ingredients': Json value must be an object or array"},
    ]
    assert _item_count(store) == 0


def test_content_type_must_belong_to_website():
    _, executor, _, type_id = _setup()
    other = _run(executor, "create_website", {"name": "Other"}).data["website"]
    result = _run(
        executor,
        "create_content_item",
        {"websiteId": other["id"], "contentTypeId": type_id, "data": {"title": "Soup"}},
    )
    assert result.error_code == "contract.not_found"


def test_published_items_get_a_publish_date():
    _, executor, website_id, type_id = _setup()
    result = _run(
        executor,
        "create_content_item",
        {"websiteId": website_id, "contentTypeId": type_id, "status": "published", "data": {"title": "Soup"}},
    )
    assert result.data["item"]["publishedAt"] is not None

    explicit = _run(
        executor,
        "create_content_item",
        {
            "websiteId": website_id,
            "contentTypeId": type_id,
            "data": {"title": "Stew"},
            "publishedAt": "2024-02-01T08:00:00Z",
        },
    )
    assert explicit.data["item"]["publishedAt"].startswith("2024-02-01T08:00:00")


def test_category_rules_apply_to_items():
    _, executor, website_id, type_id = _setup(category="ecommerce")
    result = _run(
        executor,
        "create_content_item",
        {"websiteId": website_id, "contentTypeId": type_id, "data": {"title": "Mug"}},
    )
    fields = [error["field"] for error in result.data["validationErrors"]]
    assert "price" in fields
    assert "sku" in fields


def test_update_merges_data_and_validates_changes():
    _, executor, website_id, type_id = _setup()
    created = _run(
        executor,
        "create_content_item",
        {
            "websiteId": website_id,
            "contentTypeId": type_id,
            "data": {"title": "Soup", "servings": 2},
            "metadata": {"source": "import"},
        },
    )
    item_id = created.data["item"]["id"]

    rejected = _run(executor, "update_content_item", {"id": item_id, "data": {"servings": 40}})
    assert rejected.data["validationErrors"] == [
        {"field": "servings", "message": "Field 'servings' must not exceed 12"}
    ]

    updated = _run(
        executor,
        "update_content_item",
        {"id": item_id, "data": {"servings": 6}, "metadata": {"reviewed": True}, "status": "published"},
    )
    item = updated.data["item"]
    assert item["data"] == {"title": "Soup", "servings": 6}
    assert item["metadata"] == {"source": "import", "reviewed": True}
    assert item["status"] == "published"
    assert item["publishedAt"] is not None
    assert updated.data["changes"] == ["data", "metadata", "status"]


def test_update_missing_item():
    _, executor, _, _ = _setup()
    result = _run(executor, "update_content_item", {"id": "missing", "status": "archived"})
    assert result.error == "Content item with ID 'missing' not found"


def test_list_paginates_and_filters():
    _, executor, website_id, type_id = _setup()
    for slug, status in (("b-soup", "draft"), ("a-stew", "published"), ("c-salad", "draft")):
        _run(
            executor,
            "create_content_item",
            {
                "websiteId": website_id,
                "contentTypeId": type_id,
                "slug": slug,
                "status": status,
                "data": {"title": slug},
            },
        )

    first = _run(
        executor,
        "list_content_items",
        {"websiteId": website_id, "limit": 2, "sortBy": "slug", "sortOrder": "asc"},
    ).data
    assert [item["slug"] for item in first["items"]] == ["a-stew", "b-soup"]
    assert first["pagination"] == {
        "page": 1,
        "limit": 2,
        "total": 3,
        "totalPages": 2,
        "hasNext": True,
        "hasPrev": False,
    }

    second = _run(
        executor,
        "list_content_items",
        {"websiteId": website_id, "limit": 2, "page": 2, "sortBy": "slug", "sortOrder": "asc"},
    ).data
    assert [item["slug"] for item in second["items"]] == ["c-salad"]
    assert second["pagination"]["hasPrev"] is True

    drafts = _run(executor, "list_content_items", {"websiteId": website_id, "status": "draft"}).data
    assert drafts["pagination"]["total"] == 2
    assert drafts["pagination"]["limit"] == 20


def test_list_limit_is_capped():
    _, executor, website_id, _ = _setup()
    with pytest.raises(ToolValidationError):
        _run(executor, "list_content_items", {"websiteId": website_id, "limit": 21})


def test_delete_item():
    store, executor, website_id, type_id = _setup()
    created = _run(
        executor,
        "create_content_item",
        {"websiteId": website_id, "contentTypeId": type_id, "slug": "soup", "data": {"title": "Soup"}},
    )
    item_id = created.data["item"]["id"]
    assert _run(executor, "delete_content_item", {"id": item_id}).data == {
        "deleted": True,
        "id": item_id,
        "slug": "soup",
    }
    assert _item_count(store) == 0
    assert _run(executor, "delete_content_item", {"id": item_id}).error_code == "contract.not_found"

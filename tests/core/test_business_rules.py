from libs.core.business_rules import BusinessRulesEngine

VALID_POST = {
    "title": "Launch notes",
    "metaDescription": "What shipped this week",
    "tags": ["release"],
    "author": "Sam",
    "publishDate": "2024-03-01T09:00:00Z",
    "content": "Body",
}


def test_valid_blog_post_only_gets_suggestion_warnings():
    result = BusinessRulesEngine().validate_for_category(VALID_POST, "Blog")
    assert result.valid
    assert result.errors == []
    assert result.warnings[0].field == "canonicalUrl"
    assert result.warnings[0].message == "Consider adding 'canonicalUrl' for better content quality"


def test_missing_blog_fields_use_category_messages():
    data = {key: value for key, value in VALID_POST.items() if key not in ("metaDescription", "author")}
    data["tags"] = []
    result = BusinessRulesEngine().validate_for_category(data, "blog")
    messages = {error.field: error.message for error in result.errors}
    assert not result.valid
    assert messages == {
        "metaDescription": "Meta description is required for SEO",
        "tags": "At least one tag is required",
        "author": "Author is required",
    }


def test_ecommerce_rules():
    result = BusinessRulesEngine().validate_for_category(
        {
            "title": "Mug",
            "price": 0,
            "sku": "MUG-1",
            "inventory": 3,
            "productImages": ["mug.png"],
            "shippingInfo": {"weight": 0.4},
            "description": "A mug",
        },
        "ecommerce",
    )
    assert [(error.field, error.message) for error in result.errors] == [
        ("price", "Price must be positive")
    ]


def test_portfolio_requires_a_link():
    result = BusinessRulesEngine().validate_for_category(
        {
            "projectTitle": "Site",
            "description": "Rebuild",
            "technologies": ["python"],
            "images": ["shot.png"],
            "links": {},
        },
        "portfolio",
    )
    assert [error.field for error in result.errors] == ["links"]


def test_unknown_category():
    result = BusinessRulesEngine().validate_for_category({}, "recipes")
    assert not result.valid
    assert result.errors[0].message == "Unknown category: recipes"


def test_custom_rules_fire_when_condition_holds():
    engine = BusinessRulesEngine.from_config(
        [
            {
                "name": "noFreeProducts",
                "condition": {"lt": {"field": "price", "value": 1}},
                "message": "Products under 1.00 need approval",
            },
            {
                "name": "draftNotice",
                "condition": {"equals": {"field": "status", "value": "draft"}},
                "action": "warning",
                "message": "Item is still a draft",
            },
        ]
    )
    errors, warnings = engine.check_custom_rules({"price": 0.5, "status": "draft"})
    assert [(error.field, error.message) for error in errors] == [
        ("noFreeProducts", "Products under 1.00 need approval")
    ]
    assert [warning.field for warning in warnings] == ["draftNotice"]
    assert engine.check_custom_rules({"price": 5, "status": "published"}) == ([], [])


def test_custom_rules_are_part_of_category_validation():
    engine = BusinessRulesEngine.from_config(
        [{"name": "noAnonymous", "condition": {"equals": {"field": "author", "value": "anon"}}, "message": "Named authors only"}]
    )
    result = engine.validate_for_category({**VALID_POST, "author": "anon"}, "blog")
    assert not result.valid
    assert result.errors[-1].field == "noAnonymous"


def test_required_fields_prefer_content_type_fields():
    engine = BusinessRulesEngine()
    assert engine.get_required_fields("ecommerce", "Product")[:3] == ["title", "price", "sku"]
    assert engine.get_required_fields("blog") == [
        "title",
        "metaDescription",
        "tags",
        "author",
        "publishDate",
        "content",
    ]
    assert engine.get_required_fields("blog", "podcast") == engine.get_required_fields("blog")
    assert engine.get_required_fields("recipes") == []


def test_suggest_fields_puts_purpose_first():
    suggestions = BusinessRulesEngine().suggest_fields("portfolio", "results")
    assert suggestions[:5] == ["metrics", "roi", "userGrowth", "revenue", "efficiency"]
    assert "clientTestimonial" in suggestions
    assert len(suggestions) == len(set(suggestions))

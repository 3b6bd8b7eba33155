from __future__ import annotations

import pytest

from docsynth.errors import UnresolvedCriticalField
from docsynth.models.interfaces import DataRecord, ImageConfig, LineItemColumn, LineItemConfig
from docsynth.template_core.extract.service import PlaceholderExtractor
from docsynth.template_core.substitute.formatting import format_value
from docsynth.template_core.substitute.service import SubstitutionEngine

LOGO = {"url": "https://cdn.example.com/logo.png", "filename": "logo.png", "type": "image/png"}
CONTRACT = {"url": "https://cdn.example.com/contract.pdf", "filename": "contract.pdf", "type": "application/pdf"}


def _line_items(enabled: bool = True) -> LineItemConfig:
    return LineItemConfig(
        enabled=enabled,
        collection_field="Items",
        columns=[
            LineItemColumn(label="Description", source_field="Description"),
            LineItemColumn(label="Qty", source_field="Qty"),
        ],
    )


def test_basic_substitution_of_scalars():
    engine = SubstitutionEngine()
    out = engine.substitute(
        "<p>Hello {{customer_name}}, total: {{total}}</p>",
        {"customer_name": "Name", "total": "Total"},
        {"fields": {"Name": "Alice", "Total": 42}},
    )
    assert out == "<p>Hello Alice, total: 42</p>"


def test_matching_is_case_and_whitespace_tolerant_across_styles():
    engine = SubstitutionEngine()
    content = "<p>{{ Customer Name }} / [[customer name]] / &#123;&#123;CUSTOMER NAME&#125;&#125;</p>"
    out = engine.substitute(content, {"customer name": "Name"}, {"Name": "Bob"})
    assert out == "<p>Bob / Bob / Bob</p>"


def test_unmapped_placeholders_are_left_untouched():
    engine = SubstitutionEngine()
    out = engine.substitute("<p>{{known}} {{unknown}}</p>", {"known": "K"}, {"K": "v"})
    assert out == "<p>v {{unknown}}</p>"


def test_missing_values_become_empty_strings():
    engine = SubstitutionEngine()
    result = engine.apply("<p>[{{missing}}]</p>", {"missing": "Nope"}, DataRecord(fields={}))
    assert result.content == "<p>[]</p>"
    assert result.unresolved == ["missing"]


def test_scalar_values_are_escaped_for_html_but_not_text():
    engine = SubstitutionEngine()
    record = {"Note": "<b>bold</b> & co"}
    assert engine.substitute("<p>{{note}}</p>", {"note": "Note"}, record) == "<p>&lt;b&gt;bold&lt;/b&gt; &amp; co</p>"
    assert engine.substitute("Note: {{note}}", {"note": "Note"}, record) == "Note: <b>bold</b> & co"


def test_inserted_values_are_never_substituted_again():
    engine = SubstitutionEngine()
    out = engine.substitute(
        "Greeting: {{a_field}} {b_field}",
        {"a_field": "A", "b_field": "B"},
        {"A": "{b_field}", "B": "done"},
    )
    assert out == "Greeting: {b_field} done"


@pytest.mark.parametrize(
    "template",
    [
        "Icon \ue0007\ue001 then {{name}}",
        "Icon \ue0000\ue001 then {{name}}",
        "Stray \ue001\ue000 marks {{name}}",
    ],
)
def test_private_use_characters_in_template_survive(template):
    engine = SubstitutionEngine()
    out = engine.substitute(template, {"name": "Name"}, {"Name": "Alice"})
    assert out == template.replace("{{name}}", "Alice")


def test_private_use_characters_in_values_are_inserted_verbatim():
    engine = SubstitutionEngine()
    out = engine.substitute("A {{one}} B {{two}}", {"one": "One", "two": "Two"}, {"One": "\ue0001\ue001", "Two": "x"})
    assert out == "A \ue0001\ue001 B x"


def test_array_and_attachment_formatting():
    assert format_value(["red", "green", None, 3]) == "red, green, 3"
    assert format_value([CONTRACT, "extra"]) == "contract.pdf, extra"
    assert format_value({"url": "https://x.example/file"}) == "https://x.example/file"
    assert format_value(None) == ""
    assert format_value(3.0) == "3"
    assert format_value(True) == "true"

    engine = SubstitutionEngine(separator=" | ")
    assert engine.substitute("Tags: {{tags}}", {"tags": "Tags"}, {"Tags": ["a", "b"]}) == "Tags: a | b"


def test_empty_line_items_degrade_to_marker():
    engine = SubstitutionEngine()
    out = engine.substitute(
        "<div>{{line_items}}</div>",
        {},
        {"fields": {"Items": []}},
        _line_items(),
    )
    assert out == "<div>No items available</div>"


def test_absent_line_item_collection_degrades_to_marker_in_text():
    engine = SubstitutionEngine()
    out = engine.substitute("Items: {{ line_items }}", {}, {"Other": 1}, _line_items())
    assert out == "Items: No items available"


def test_line_items_render_escaped_table():
    engine = SubstitutionEngine()
    record = {
        "Items": [
            {"Description": "Widget <large>", "Qty": 2},
            {"Description": "Gadget"},
            {"fields": {"Description": "Nested", "Qty": 5}},
        ]
    }
    result = engine.apply("<body><p>{{line_items}}</p></body>", {}, record, _line_items())
    html = result.content
    assert html.count("<table") == 1
    assert "<th" in html and "Description</th>" in html and "Qty</th>" in html
    assert html.count("<tr style=") == 4  # header + 3 rows
    assert "Widget &lt;large&gt;" in html
    assert "Nested" in html
    assert "background-color: #f8f9fa;\">" in html
    # Missing Qty on the second row renders an empty cell.
    assert 'vertical-align: top;"></td>' in html
    assert "{{line_items}}" not in html
    assert result.line_items_rendered == 3


def test_line_items_table_is_appended_before_body_when_placeholder_missing():
    engine = SubstitutionEngine()
    out = engine.substitute(
        "<html><body><p>Invoice</p></body></html>",
        {},
        {"Items": [{"Description": "Widget", "Qty": 1}]},
        _line_items(),
    )
    assert out.index("<table") > out.index("Invoice")
    assert out.endswith("</table></body></html>")


def test_disabled_line_items_leave_placeholder_alone():
    engine = SubstitutionEngine()
    out = engine.substitute("<p>{{line_items}}</p>", {}, {"Items": [{"Qty": 1}]}, _line_items(enabled=False))
    assert out == "<p>{{line_items}}</p>"


def test_text_target_line_items_are_tab_separated():
    engine = SubstitutionEngine()
    out = engine.substitute(
        "Items:\n{{line_items}}",
        {},
        {"Items": [{"Description": "Widget", "Qty": 2}]},
        _line_items(),
    )
    assert out == "Items:\nDescription\tQty\nWidget\t2"


def test_image_attachments_render_as_img_with_config():
    engine = SubstitutionEngine()
    content = "<p>{{logo}}</p><p>{{contract}}</p>"
    mapping = {"logo": "Logo", "contract": "Contract"}
    record = {"Logo": [LOGO], "Contract": [CONTRACT]}

    out = engine.substitute(content, mapping, record)
    assert '<img src="https://cdn.example.com/logo.png"' in out
    assert "max-width: 200px; height: auto;" in out
    assert "<p>contract.pdf</p>" in out

    sized = engine.substitute(content, mapping, record, image_config=ImageConfig(width=320, height=90))
    assert "max-width: 320px; height: 90px;" in sized


def test_round_trip_leaves_no_mapped_placeholders_and_reextraction_is_empty():
    extractor = PlaceholderExtractor()
    engine = SubstitutionEngine()
    content = (
        "<html><body><h1>{{title}}</h1><p>[[customer]]</p>"
        "<p>&#123;&#123;amount&#125;&#125;</p>"
        '<p><span>{</span><span>{due date}</span><span>}</span></p>'
        "<p>{reference}</p></body></html>"
    )
    names = extractor.extract(content)
    mapping = {name: name.upper() for name in names}
    record = {name.upper(): f"value {i}" for i, name in enumerate(names)}

    out = engine.substitute(content, mapping, record)
    assert extractor.extract(out) == []
    for token in ("{{", "}}", "[[", "]]", "&#123;"):
        assert token not in out


def test_strict_mode_raises_for_missing_mapped_values():
    engine = SubstitutionEngine(strict=True)
    with pytest.raises(UnresolvedCriticalField) as exc_info:
        engine.substitute("<p>{{a_field}} {{b_field}}</p>", {"a_field": "A", "b_field": "B"}, {"A": "x"})
    assert exc_info.value.placeholders == ["b_field"]


def test_strict_mode_ignores_mapped_fields_absent_from_content():
    engine = SubstitutionEngine(strict=True)
    out = engine.substitute("<p>{{a_field}}</p>", {"a_field": "A", "b_field": "B"}, {"A": "x"})
    assert out == "<p>x</p>"


def test_replace_requests_for_structured_edits():
    engine = SubstitutionEngine()
    requests = engine.build_replace_requests(
        {"customer_name": "Name", "{{ total }}": "Total"},
        {"Name": "Alice", "Total": 42, "Items": []},
        _line_items(),
    )
    texts = [r["replaceAllText"]["containsText"]["text"] for r in requests]
    assert texts == ["{{customer_name}}", "{{ total }}", "{{line_items}}"]
    assert requests[0]["replaceAllText"]["replaceText"] == "Alice"
    assert requests[0]["replaceAllText"]["containsText"]["matchCase"] is False
    assert requests[-1]["replaceAllText"]["replaceText"] == "No items available"


@pytest.mark.parametrize(
    "mapping,record",
    [
        ({}, {}),
        ({"x_one": "Missing"}, {"Other": [1, 2]}),
        ({"x_one": "F"}, {"F": {"nested": True}}),
        ({"x_one": "F", "y_two": "F"}, {"F": ["{{x_one}}", None]}),
    ],
)
def test_arbitrary_mappings_never_raise(mapping, record):
    engine = SubstitutionEngine()
    out = engine.substitute("<p>{{x_one}} [[y_two]] {z}</p>", mapping, record, _line_items())
    assert out.startswith("<p>")

from __future__ import annotations

import logging

from download_renamer.placeholders import (
    CustomPlaceholder,
    assemble_filename,
    derive_custom_values,
    extract_placeholders,
    load_custom_placeholders,
    process_pattern,
    validate_custom_placeholders,
)


def test_extract_placeholders_keeps_order_and_drops_ext() -> None:
    assert extract_placeholders("{date}_{originalFilename}{ext}") == ["date", "originalFilename"]


def test_extract_placeholders_keeps_duplicates() -> None:
    assert extract_placeholders("{ext}{date}{domain}{date}") == ["date", "domain", "date"]


def test_extract_placeholders_empty_pattern() -> None:
    assert extract_placeholders("") == []
    assert extract_placeholders("no placeholders here") == []


def test_assemble_skips_empty_values_without_double_separators() -> None:
    values = {"a": "x", "b": "", "c": "y", "ext": ".txt"}
    assert assemble_filename(["b", "a", "b", "missing", "c", "b"], values, "_") == "x_y.txt"


def test_assemble_with_empty_separator_concatenates() -> None:
    values = {"date": "20240115", "originalFilename": "report", "category": "", "ext": ".pdf"}
    assert assemble_filename(["date", "category", "originalFilename"], values, "") == "20240115report.pdf"


def test_assemble_without_extension() -> None:
    assert assemble_filename(["a"], {"a": "x"}, "-") == "x"


def test_assemble_all_values_empty_leaves_only_extension() -> None:
    assert assemble_filename(["a", "b"], {"a": "", "b": None, "ext": ".zip"}, "_") == ".zip"


def test_process_pattern_ignores_literal_text() -> None:
    values = {"date": "20240115", "originalFilename": "a", "ext": ".pdf"}
    assert process_pattern("{date}---{originalFilename}{ext}", values, ".") == "20240115.a.pdf"


def test_derive_keyword_gate_pass_and_fail() -> None:
    values = {"tabUrl": "https://jira.example.com/browse/ABC-123"}
    gated = CustomPlaceholder(name="ticket", base="tabUrl", regex=r"([A-Z]+-\d+)", keywords="browse,jira")
    blocked = CustomPlaceholder(name="ticket", base="tabUrl", regex=r"([A-Z]+-\d+)", keywords="nomatch")

    assert derive_custom_values([gated], values)["ticket"] == "ABC-123"
    assert derive_custom_values([blocked], values)["ticket"] == ""


def test_derive_keyword_gate_is_case_insensitive_and_ignores_blank_tokens() -> None:
    values = {"sourceUrl": "https://Example.com/Products/42"}
    definition = CustomPlaceholder(name="pid", base="sourceUrl", regex=r"/Products/(\d+)", keywords=" , PRODUCTS ,")
    assert derive_custom_values([definition], values)["pid"] == "42"


def test_derive_regex_is_case_sensitive() -> None:
    values = {"originalFilename": "invoice-abc"}
    definition = CustomPlaceholder(name="code", base="originalFilename", regex=r"([A-Z]+)")
    assert derive_custom_values([definition], values)["code"] == ""


def test_derive_skips_incomplete_definitions() -> None:
    values = {"domain": "example.com"}
    result = derive_custom_values(
        [
            CustomPlaceholder(name="", base="domain", regex="(.*)"),
            CustomPlaceholder(name="x", base="", regex="(.*)"),
            CustomPlaceholder(name="y", base="domain", regex=""),
        ],
        values,
    )
    assert result == {"domain": "example.com"}


def test_derive_empty_source_writes_empty_value() -> None:
    result = derive_custom_values([CustomPlaceholder(name="x", base="tabUrl", regex="(.*)")], {"tabUrl": ""})
    assert result["x"] == ""
    result = derive_custom_values([CustomPlaceholder(name="x", base="nothing", regex="(.*)")], {})
    assert result["x"] == ""


def test_derive_malformed_regex_does_not_stop_later_definitions(caplog) -> None:
    values = {"domain": "files.example.com"}
    definitions = [
        CustomPlaceholder(name="broken", base="domain", regex="([a-z"),
        CustomPlaceholder(name="sub", base="domain", regex=r"^([^.]+)\."),
    ]
    with caplog.at_level(logging.WARNING):
        result = derive_custom_values(definitions, values)
    assert result["broken"] == ""
    assert result["sub"] == "files"
    assert "Invalid custom placeholder regex" in caplog.text


def test_derive_regex_rejected_by_compiler_limits_degrades_to_empty(caplog) -> None:
    values = {"domain": "abc"}
    definitions = [
        CustomPlaceholder(name="huge", base="domain", regex="(a{4294967296})"),
        CustomPlaceholder(name="first", base="domain", regex="(.)"),
    ]
    with caplog.at_level(logging.WARNING):
        result = derive_custom_values(definitions, values)
    assert result["huge"] == ""
    assert result["first"] == "a"
    assert "Invalid custom placeholder regex" in caplog.text


def test_derive_without_capture_group_or_empty_group() -> None:
    values = {"domain": "example.com"}
    no_group = CustomPlaceholder(name="a", base="domain", regex=r"example")
    empty_group = CustomPlaceholder(name="b", base="domain", regex=r"(x?)example")
    optional_group = CustomPlaceholder(name="c", base="domain", regex=r"(zzz)?example")
    result = derive_custom_values([no_group, empty_group, optional_group], values)
    assert result["a"] == ""
    assert result["b"] == ""
    assert result["c"] == ""


def test_derive_uses_first_group_of_first_match() -> None:
    values = {"originalFilename": "a1-b2-c3"}
    definition = CustomPlaceholder(name="n", base="originalFilename", regex=r"([a-z])(\d)")
    assert derive_custom_values([definition], values)["n"] == "a"


def test_derive_chains_definitions_in_order() -> None:
    values = {"tabUrl": "https://jira.example.com/browse/ABC-123"}
    definitions = [
        CustomPlaceholder(name="ticket", base="tabUrl", regex=r"([A-Z]+-\d+)"),
        CustomPlaceholder(name="project", base="ticket", regex=r"^([A-Z]+)-"),
    ]
    result = derive_custom_values(definitions, values)
    assert result["ticket"] == "ABC-123"
    assert result["project"] == "ABC"


def test_derive_forward_and_self_references_see_unpopulated_values() -> None:
    values = {"domain": "example.com"}
    definitions = [
        CustomPlaceholder(name="early", base="late", regex="(.*)"),
        CustomPlaceholder(name="late", base="domain", regex=r"^(\w+)"),
        CustomPlaceholder(name="self", base="self", regex="(.*)"),
    ]
    result = derive_custom_values(definitions, values)
    assert result["early"] == ""
    assert result["late"] == "example"
    assert result["self"] == ""


def test_derive_does_not_mutate_input() -> None:
    values = {"domain": "example.com"}
    derive_custom_values([CustomPlaceholder(name="d", base="domain", regex="(.*)")], values)
    assert values == {"domain": "example.com"}


def test_load_custom_placeholders_drops_incomplete_rows() -> None:
    definitions = load_custom_placeholders(
        [
            {"name": " ticket ", "base": "tabUrl", "regex": r"([A-Z]+-\d+)", "keywords": "jira"},
            {"name": "x", "base": "tabUrl"},
            "not-a-dict",
        ]
    )
    assert definitions == [CustomPlaceholder(name="ticket", base="tabUrl", regex=r"([A-Z]+-\d+)", keywords="jira")]
    assert load_custom_placeholders(None) == []
    assert load_custom_placeholders({"name": "x"}) == []


def test_validate_custom_placeholders_reports_but_resolution_stays_permissive() -> None:
    definitions = [
        CustomPlaceholder(name="date", base="domain", regex="(a)(b)"),
        CustomPlaceholder(name="x", base="unknownBase", regex="([a-z"),
        CustomPlaceholder(name="y", base="x", regex="(.)"),
    ]
    problems = validate_custom_placeholders(definitions)
    assert any("shadows" in p for p in problems)
    assert any("exactly one capture group" in p for p in problems)
    assert any("invalid regex" in p for p in problems)
    assert any("'unknownBase'" in p for p in problems)
    assert not any("'y' is based on" in p for p in problems)

    # Two groups: group 1 still wins.
    result = derive_custom_values([definitions[0]], {"domain": "ab"})
    assert result["date"] == "a"


def test_validate_reports_regex_with_oversized_repeat() -> None:
    problems = validate_custom_placeholders([CustomPlaceholder(name="n", base="domain", regex="(a{4294967296})")])
    assert len(problems) == 1
    assert "invalid regex" in problems[0]

from __future__ import annotations

import json

import pytest

from src.agent.extractor import (
    FreeText,
    RawToolCall,
    StructuredCalls,
    coerce_attribute,
    extract,
    parse_arguments,
    strip_tool_tags,
)
from tests.fakes import make_registry


def test_structured_calls_parse_json_arguments() -> None:
    turn = StructuredCalls(calls=[RawToolCall("call_1", "search_web", '{"query": "shoes"}')])

    extraction = extract(turn, make_registry())

    assert extraction.structured is True
    assert len(extraction.invocations) == 1
    invocation = extraction.invocations[0]
    assert (invocation.id, invocation.name, invocation.arguments) == ("call_1", "search_web", {"query": "shoes"})


@pytest.mark.parametrize("raw", ["{not json", "[1, 2]", "", None, "42"])
def test_malformed_structured_arguments_become_empty(raw: str | None) -> None:
    turn = StructuredCalls(calls=[RawToolCall("call_1", "read_page", raw)])

    extraction = extract(turn, make_registry())

    assert extraction.invocations[0].arguments == {}


def test_structured_turn_does_not_parse_tags() -> None:
    turn = StructuredCalls(
        calls=[RawToolCall("call_1", "read_page", "{}")],
        content='Reading first. <search_web query="shoes" />',
    )

    extraction = extract(turn, make_registry())

    assert [inv.name for inv in extraction.invocations] == ["read_page"]


def test_structured_unknown_tool_is_kept_for_an_error_reply() -> None:
    turn = StructuredCalls(calls=[RawToolCall("call_9", "launch_rockets", "{}")])

    extraction = extract(turn, make_registry())

    assert [inv.name for inv in extraction.invocations] == ["launch_rockets"]


def test_self_closing_tag() -> None:
    extraction = extract(FreeText('<search_web query="shoes" />'), make_registry())

    assert len(extraction.invocations) == 1
    assert extraction.invocations[0].name == "search_web"
    assert extraction.invocations[0].arguments == {"query": "shoes"}
    assert extraction.structured is False


def test_attribute_coercion_applies_to_every_value() -> None:
    extraction = extract(
        FreeText('<fill_form selector="q" text="42" submit="true" />'),
        make_registry(),
    )

    assert extraction.invocations[0].arguments == {"selector": "q", "text": 42, "submit": True}


def test_self_closing_tag_name_is_case_insensitive() -> None:
    extraction = extract(FreeText("<Search_Web query='boots'/>"), make_registry())

    assert extraction.invocations[0].name == "search_web"
    assert extraction.invocations[0].arguments == {"query": "boots"}


def test_paired_tag_merges_json_body_over_attributes() -> None:
    extraction = extract(
        FreeText('<fill_form selector="q" text="old">{"text": "new", "submit": false}</fill_form>'),
        make_registry(),
    )

    assert extraction.invocations[0].arguments == {"selector": "q", "text": "new", "submit": False}


def test_paired_tag_ignores_non_json_body() -> None:
    extraction = extract(FreeText('<search_web query="hats">please search</search_web>'), make_registry())

    assert extraction.invocations[0].arguments == {"query": "hats"}


def test_paired_tag_needs_exact_name() -> None:
    source = '<SEARCH_WEB query="hats">{}</SEARCH_WEB>'

    extraction = extract(FreeText(source), make_registry())

    assert extraction.invocations == []
    assert extraction.clean_text == source


def test_paired_tag_inside_unknown_wrapper_is_found() -> None:
    extraction = extract(
        FreeText('<tool_call><search_web query="shoes"></search_web></tool_call>'),
        make_registry(),
    )

    assert [(i.name, i.arguments) for i in extraction.invocations] == [("search_web", {"query": "shoes"})]
    assert not extraction.is_final


def test_unregistered_tag_is_ignored_and_text_returned_verbatim() -> None:
    source = '  Here you go: <launch_rockets count="3" />  '

    extraction = extract(FreeText(source), make_registry())

    assert extraction.is_final
    assert extraction.clean_text == source


def test_duplicate_tags_are_deduplicated() -> None:
    extraction = extract(
        FreeText('<search_web query="shoes" /> and again <search_web query="shoes"/>'),
        make_registry(),
    )

    assert len(extraction.invocations) == 1


def test_same_tool_with_different_arguments_is_kept() -> None:
    extraction = extract(
        FreeText('<search_web query="shoes" /><search_web query="boots" />'),
        make_registry(),
    )

    assert [inv.arguments["query"] for inv in extraction.invocations] == ["shoes", "boots"]


def test_invocations_follow_text_order() -> None:
    extraction = extract(
        FreeText('<search_web query="x">{}</search_web> then <read_page />'),
        make_registry(),
    )

    assert [inv.name for inv in extraction.invocations] == ["search_web", "read_page"]


def test_tag_invocations_get_distinct_ids() -> None:
    extraction = extract(FreeText('<read_page /><search_web query="x" />'), make_registry())

    ids = [inv.id for inv in extraction.invocations]
    assert len(set(ids)) == 2


def test_strip_removes_recognized_tags_and_keeps_prose() -> None:
    registry = make_registry()
    source = 'Let me look that up.\n<search_web query="shoes" />\nOne moment.'

    extraction = extract(FreeText(source), registry)

    assert extraction.clean_text == "Let me look that up.\n\nOne moment."
    assert strip_tool_tags(source, registry) == extraction.clean_text


def test_strip_leaves_unregistered_markup_visible() -> None:
    cleaned = strip_tool_tags("<b>Deal</b> <read_page /> <br/>", make_registry())

    assert cleaned == "<b>Deal</b>  <br/>"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("true", True),
        ("false", False),
        ("42", 42),
        ("-7", -7),
        ("-1.5", -1.5),
        ("1e3", 1000.0),
        ("0", 0),
        ("0042", 42),
        ("+1", 1),
        (".5", 0.5),
        ("inf", "inf"),
        ("1_000", "1_000"),
        ("True", "True"),
        ("12 items", "12 items"),
        ("", ""),
    ],
)
def test_coerce_attribute(raw: str, expected: object) -> None:
    value = coerce_attribute(raw)

    assert value == expected
    assert type(value) is type(expected)


def test_arguments_survive_json_round_trip() -> None:
    extraction = extract(
        FreeText('<fill_form selector="#q" text="3.25" submit="false" />'),
        make_registry(),
    )
    args = extraction.invocations[0].arguments

    assert parse_arguments(json.dumps(args)) == args

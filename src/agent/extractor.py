"""
Tool Invocation Extractor
=========================

Turns one model reply into the tool invocations it asks for, plus the
prose left over for the user.

Models ask for tools in one of two shapes:

1. Structured calls (native function calling):

       {"id": "call_1", "function": {"name": "read_page", "arguments": "{}"}}

   Arguments arrive as a JSON string. A string that does not parse to a
   JSON object becomes {} so one malformed call never aborts the turn.

2. Inline tags, for models without function calling:

       <search_web query="running shoes" />
       <fill_form selector="q" text="42" submit="true" />
       <navigate url="https://example.com">{"newTab": true}</navigate>

   - Only tags naming a registered tool count. Self-closing tags match
     the registry case-insensitively; paired tags need the exact name
     and are found even inside an unknown wrapper tag.
   - Attribute values are coerced: "true"/"false" become booleans and
     numeric strings become numbers. Everything else stays a string.
   - A paired tag's body is merged over its attributes when it is a JSON
     object. Any other body is ignored.
   - Duplicate invocations (same name and arguments) are dropped.

A reply is classified once as a RawModelTurn (StructuredCalls or
FreeText). Each variant knows how to extract itself, so the two paths
never mix within one turn.
"""

import json
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Union

from src.tools import ToolRegistry
from src.utils.logger import Logger

logger = Logger("Extractor")


# Attribute lists: name="value" or name='value'
_ATTRS = r"""((?:\s+[A-Za-z_][\w\-]*\s*=\s*(?:"[^"]*"|'[^']*'))*)"""

SELF_CLOSING_TAG = re.compile(r"<([A-Za-z_][\w\-]*)" + _ATTRS + r"\s*/>")
ATTRIBUTE = re.compile(r"""([A-Za-z_][\w\-]*)\s*=\s*(?:"([^"]*)"|'([^']*)')""")

# Decimal numerals only; "inf", "nan" and "1_000" stay strings
NUMBER = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")


def paired_tag_pattern(names: list[str]) -> re.Pattern | None:
    """
    Pattern for paired tags of the given tool names only.

    Matching registered names directly lets a tag inside an unknown
    wrapper (<tool_call><search_web ...></search_web></tool_call>) be found.
    """
    if not names:
        return None
    alternatives = "|".join(re.escape(name) for name in sorted(names, key=len, reverse=True))
    return re.compile(r"<(" + alternatives + r")" + _ATTRS + r"\s*>(.*?)</\1\s*>", re.DOTALL)


@dataclass(frozen=True)
class ToolInvocation:
    """
    One requested tool call.

    Attributes:
        id: Call id (the provider's for structured calls, generated for tags)
        name: Tool name
        arguments: Parsed argument map
    """
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def dedupe_key(self) -> tuple[str, str]:
        return self.name, json.dumps(self.arguments, sort_keys=True, default=str)


@dataclass(frozen=True)
class Extraction:
    """
    What a reply asked for.

    Attributes:
        invocations: Tool calls in reply order
        clean_text: Reply text with tool markup removed
        structured: Whether the calls came from native function calling
    """
    invocations: list[ToolInvocation]
    clean_text: str
    structured: bool = False

    @property
    def is_final(self) -> bool:
        """True when the reply asked for no tools and is the answer."""
        return not self.invocations


@dataclass(frozen=True)
class RawToolCall:
    """A structured call exactly as the provider sent it."""
    id: str
    name: str
    arguments: str | None


def new_call_id(prefix: str = "call") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def parse_arguments(raw: Any) -> dict[str, Any]:
    """
    Parse a structured call's argument string.

    Never raises: anything that is not a JSON object becomes {}.
    """
    if isinstance(raw, dict):
        return dict(raw)
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning(f"Unparseable tool arguments, using {{}}: {e}")
        return {}
    if not isinstance(parsed, dict):
        logger.warning(f"Tool arguments are not an object, using {{}}: {type(parsed).__name__}")
        return {}
    return parsed


def coerce_attribute(value: str) -> Any:
    """
    Coerce an inline-tag attribute value.

    Examples:
        coerce_attribute("true")    # True
        coerce_attribute("42")      # 42
        coerce_attribute("-1.5")    # -1.5
        coerce_attribute("shoes")   # "shoes"
    """
    if value == "true":
        return True
    if value == "false":
        return False
    if NUMBER.match(value):
        if any(ch in value for ch in ".eE"):
            return float(value)
        return int(value)
    return value


def parse_attributes(raw: str) -> dict[str, Any]:
    attrs: dict[str, Any] = {}
    for match in ATTRIBUTE.finditer(raw or ""):
        name, double_quoted, single_quoted = match.groups()
        value = double_quoted if double_quoted is not None else single_quoted
        attrs[name] = coerce_attribute(value)
    return attrs


def _parse_body(body: str) -> dict[str, Any]:
    body = body.strip()
    if not body.startswith("{"):
        return {}
    try:
        parsed = json.loads(body)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _find_tags(text: str, registry: ToolRegistry) -> list[tuple[int, int, str, dict[str, Any]]]:
    """Recognized tags as (start, end, canonical name, arguments)."""
    found = []

    paired = paired_tag_pattern(registry.list_names())
    for match in (paired.finditer(text) if paired is not None else ()):
        name = match.group(1)
        args = parse_attributes(match.group(2))
        args.update(_parse_body(match.group(3)))
        found.append((match.start(), match.end(), name, args))

    for match in SELF_CLOSING_TAG.finditer(text):
        name = registry.resolve_name(match.group(1), case_sensitive=False)
        if name is None:
            continue
        found.append((match.start(), match.end(), name, parse_attributes(match.group(2))))

    found.sort(key=lambda tag: tag[0])
    return found


def extract_tag_invocations(text: str, registry: ToolRegistry) -> list[ToolInvocation]:
    """Inline-tag invocations in text order, duplicates removed."""
    invocations: list[ToolInvocation] = []
    seen: set[tuple[str, str]] = set()

    for _, _, name, args in _find_tags(text, registry):
        invocation = ToolInvocation(id=new_call_id("tag"), name=name, arguments=args)
        key = invocation.dedupe_key()
        if key in seen:
            continue
        seen.add(key)
        invocations.append(invocation)

    return invocations


def strip_tool_tags(text: str, registry: ToolRegistry) -> str:
    """
    Remove recognized tool tags from text.

    Tags that do not name a registered tool are left in place.
    """
    spans = [(start, end) for start, end, _, _ in _find_tags(text, registry)]
    if not spans:
        return text.strip()

    pieces = []
    cursor = 0
    for start, end in spans:
        if start < cursor:
            # Nested inside a span already removed
            continue
        pieces.append(text[cursor:start])
        cursor = end
    pieces.append(text[cursor:])

    cleaned = "".join(pieces)
    cleaned = re.sub(r"[ \t]+\n", "\n", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


# =============================================================================
# Raw model turns
# =============================================================================

@dataclass(frozen=True)
class StructuredCalls:
    """A reply carrying native tool calls (and possibly some text)."""
    calls: list[RawToolCall]
    content: str | None = None

    def extract(self, registry: ToolRegistry) -> Extraction:
        # Unknown names are kept: every call id must get an answer
        invocations = [
            ToolInvocation(
                id=call.id or new_call_id(),
                name=call.name,
                arguments=parse_arguments(call.arguments),
            )
            for call in self.calls
        ]
        return Extraction(
            invocations=invocations,
            clean_text=(self.content or "").strip(),
            structured=True,
        )


@dataclass(frozen=True)
class FreeText:
    """A plain-text reply, possibly containing inline tool tags."""
    text: str

    def extract(self, registry: ToolRegistry) -> Extraction:
        invocations = extract_tag_invocations(self.text, registry)
        if not invocations:
            # Final answers are returned exactly as written
            return Extraction(invocations=[], clean_text=self.text)
        return Extraction(invocations=invocations, clean_text=strip_tool_tags(self.text, registry))


RawModelTurn = Union[StructuredCalls, FreeText]


def extract(turn: RawModelTurn, registry: ToolRegistry) -> Extraction:
    """
    Extract the tool invocations from one model turn.

    Example:
        extraction = extract(FreeText('<search_web query="shoes" />'), registry)
        extraction.invocations[0].arguments   # {"query": "shoes"}
    """
    extraction = turn.extract(registry)
    if extraction.invocations:
        logger.debug(
            f"Extracted {len(extraction.invocations)} invocation(s) "
            f"({'structured' if extraction.structured else 'tags'})",
            {"tools": [inv.name for inv in extraction.invocations]}
        )
    return extraction

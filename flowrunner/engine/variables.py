"""
Variable Resolution.

Templates reference earlier node outputs with {NODE_ID.field.subfield}.
A template is parsed once into literal text and references; resolving it
against the output store substitutes every reference that can be found and
leaves the others verbatim.

Grammar:
    reference  := "{" identifier ("." identifier)* "}"
    identifier := one or more word characters (Unicode) or "-"

Braces that do not form a reference (JSON examples in prompts, for
instance) are plain text.
"""

from typing import Any, List, Mapping, Sequence, Tuple, Union
from dataclasses import dataclass, field
from functools import lru_cache
import json
import logging
import re


logger = logging.getLogger(__name__)

_REFERENCE = re.compile(r"\{([\w\-]+(?:\.[\w\-]+)*)\}")


@dataclass(frozen=True)
class VariableRef:
    """A parsed {node.path} reference."""
    token: str
    node_id: str
    path: Tuple[str, ...]


@dataclass(frozen=True)
class Template:
    """A template split into literal strings and references."""
    source: str
    segments: Tuple[Union[str, VariableRef], ...]

    @property
    def references(self) -> List[VariableRef]:
        return [s for s in self.segments if isinstance(s, VariableRef)]


@dataclass
class Resolution:
    """Result of resolving a template."""
    text: str
    unresolved: List[str] = field(default_factory=list)


class _Missing(Exception):
    pass


@lru_cache(maxsize=1024)
def parse_template(source: str) -> Template:
    """Parse a template into literal and reference segments."""
    segments: List[Union[str, VariableRef]] = []
    position = 0
    for match in _REFERENCE.finditer(source):
        if match.start() > position:
            segments.append(source[position:match.start()])
        parts = match.group(1).split(".")
        segments.append(VariableRef(match.group(0), parts[0], tuple(parts[1:])))
        position = match.end()
    if position < len(source):
        segments.append(source[position:])
    return Template(source, tuple(segments))


def _walk(value: Any, path: Sequence[str]) -> Any:
    for segment in path:
        if isinstance(value, Mapping) and segment in value:
            value = value[segment]
        elif isinstance(value, list) and segment.isdigit() and int(segment) < len(value):
            value = value[int(segment)]
        else:
            raise _Missing(segment)
    return value


def format_value(value: Any) -> str:
    """
    Render a resolved value for substitution.

    Strings are wrapped in double quotes so they compose as operands of an
    equality condition; integral floats drop the fractional part (1.0
    renders as 1); everything else uses its JSON form.
    """
    if isinstance(value, str):
        return f'"{value}"'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return json.dumps(value, ensure_ascii=False, default=str)


def lookup(ref: VariableRef, outputs: Mapping[str, Any]) -> Any:
    """
    Find the value a reference points at.

    Raises:
        KeyError: if the node has no output or the path does not exist
    """
    if ref.node_id not in outputs or not ref.path:
        raise KeyError(ref.token)
    try:
        return _walk(outputs[ref.node_id], ref.path)
    except _Missing as e:
        raise KeyError(ref.token) from e


def resolve(source: str, outputs: Mapping[str, Any]) -> Resolution:
    """
    Substitute every resolvable reference in a template.

    Args:
        source: Template text
        outputs: Node id -> node output (never modified)

    Returns:
        Resolution with the final text and the tokens left unresolved
    """
    if not source:
        return Resolution(text=source or "")

    parts: List[str] = []
    unresolved: List[str] = []
    for segment in parse_template(source).segments:
        if isinstance(segment, str):
            parts.append(segment)
            continue
        try:
            parts.append(format_value(lookup(segment, outputs)))
        except KeyError:
            logger.debug(f"Variable not found: {segment.token} (outputs: {list(outputs.keys())})")
            unresolved.append(segment.token)
            parts.append(segment.token)

    return Resolution(text="".join(parts), unresolved=unresolved)

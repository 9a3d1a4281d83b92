"""
An HTML builder: calls named after HTML tags build tags, keyword arguments
become attributes and everything else becomes children.

    with_html('body(p(b("Bold")), "Text", h1("Heading"))')
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from quasi.quasi_datatypes import Node
from quasi.quasi_interpreter import LENIENT
from quasi.quasi_runtime import resolve
from quasi.quasi_tables import load_table

_TEXT_ESCAPES = (('&', '&amp;'), ('<', '&lt;'), ('>', '&gt;'))
_ATTR_ESCAPES = _TEXT_ESCAPES + (("'", '&#39;'), ('"', '&quot;'), ('\r', '&#13;'), ('\n', '&#10;'))


def html_escape(text: str, attribute: bool = True) -> str:
    for char, entity in (_ATTR_ESCAPES if attribute else _TEXT_ESCAPES):
        text = text.replace(char, entity)
    return text


@dataclass
class Tag:
    name: str
    attribs: Dict[str, Any] = field(default_factory=dict)
    children: List[Any] = field(default_factory=list)
    void: bool = False

    def __str__(self) -> str:
        return render(self)


def collapse_children(children) -> List[Any]:
    """Flatten nested lists of children; strings and tags pass through."""
    out: List[Any] = []
    for child in children:
        if child is None:
            continue
        if isinstance(child, (Tag, str)):
            out.append(child)
        elif isinstance(child, (list, tuple)):
            out.extend(collapse_children(child))
        elif isinstance(child, bool):
            out.append('TRUE' if child else 'FALSE')
        else:
            out.append(str(child))
    return out


def tag(name: str, /, *children, **attribs) -> Tag:
    return Tag(name, dict(attribs), collapse_children(children))


def void_tag(name: str, /, *children, **attribs) -> Tag:
    if children:
        raise ValueError(f"{name} can not have children")
    return Tag(name, dict(attribs), [], void=True)


def tag_f(name: str, void: bool = False) -> Callable:
    def build(*children, **attribs):
        if void:
            return void_tag(name, *children, **attribs)
        return tag(name, *children, **attribs)
    build.__name__ = name
    return build


def html_tags() -> Dict[str, Callable]:
    table = load_table("html")
    voids = set(table["void"])
    return {name: tag_f(name, name in voids) for name in table["tags"]}


# =================================================================
# Rendering
# =================================================================

def html_attribute(name: str, value: Any) -> str:
    if value is None:
        return name
    if isinstance(value, bool):
        value = 'true' if value else 'false'
    elif isinstance(value, (list, tuple)):
        raise ValueError("value must be NULL or of length 1")
    else:
        value = html_escape(str(value), attribute=True)
    return f"{name} = '{value}'"


def html_attributes(attribs: Dict[str, Any]) -> str:
    if not attribs:
        return ""
    return "".join(" " + html_attribute(k, v) for k, v in attribs.items())


def _indent_text(level: int) -> str:
    return "  " * level


def render(node: Any, indent: int = 0) -> str:
    """Render a Tag (or text) as HTML.

    A tag with more than one child puts each child on its own line, one
    level deeper than the tag itself.
    """
    if isinstance(node, (list, tuple)):
        return "\n".join(render(child, indent) for child in node)
    if not isinstance(node, Tag):
        return _indent_text(indent) + html_escape(str(node), attribute=False)

    pad = _indent_text(indent)
    attribs = html_attributes(node.attribs)
    if node.void:
        return f"{pad}<{node.name}{attribs}/>"

    if len(node.children) > 1:
        inner = render(node.children, indent + 1)
        return f"{pad}<{node.name}{attribs}>\n{inner}\n{pad}</{node.name}>"
    inner = render(node.children, 0)
    return f"{pad}<{node.name}{attribs}>{inner}</{node.name}>"


# =================================================================
# Entry points
# =================================================================

def with_html(expr: Union[str, Node], strict: str = LENIENT,
              side_effects: Optional[List[Dict[str, Any]]] = None) -> Any:
    """Evaluate `expr` with every HTML tag name bound to a tag builder.

    Unknown functions build a tag of the same name unless `strict` says otherwise.
    """
    return resolve(expr, html_tags(), {}, fallback=tag_f,
                   strict=strict, side_effects=side_effects)


def run(source, *, side_effects=None, strict: str = LENIENT) -> str:
    return render(with_html(source, strict=strict, side_effects=side_effects))

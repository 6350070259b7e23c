"""ChameleonQA Locator Grammar — the fixed vocabulary of element references.

Every phase speaks in ``LocatorDescriptor`` values: the parser derives them
from raw script text, reconnaissance derives them from page-object source,
the mapper compares them and the synthesizer renders them back to source.
Keeping parse and render in one module is what lets a rendered property be
re-read by reconnaissance into the same descriptor.
"""

from __future__ import annotations

import dataclasses
import re
from typing import Any

# Descriptor kinds. ``css`` and ``xpath`` are the raw structural selectors.
LOCATOR_KINDS = ("testid", "role", "label", "placeholder", "text", "css", "xpath")

# Playwright constructor name -> descriptor kind
CONSTRUCTOR_KINDS = {
    "getByTestId": "testid",
    "getByRole": "role",
    "getByLabel": "label",
    "getByPlaceholder": "placeholder",
    "getByText": "text",
    "locator": "css",
}

KIND_CONSTRUCTORS = {
    "testid": "getByTestId",
    "role": "getByRole",
    "label": "getByLabel",
    "placeholder": "getByPlaceholder",
    "text": "getByText",
    "css": "locator",
    "xpath": "locator",
}


def quoted_pattern(group: str) -> str:
    """Regex for a quoted JS string literal (any quote style) captured as ``group``."""
    return rf"""(?P<{group}_q>['"`])(?P<{group}>(?:\\.|(?!(?P={group}_q)).)*)(?P={group}_q)"""


CONSTRUCTOR_NAMES = r"getByTestId|getByRole|getByLabel|getByPlaceholder|getByText|locator"

# constructor('value'[, { options }])
_CONSTRUCTOR_RE = re.compile(
    rf"\b(?P<ctor>{CONSTRUCTOR_NAMES})\s*\(\s*"
    + quoted_pattern("value")
    + r"\s*(?:,\s*\{(?P<opts>[^}]*)\})?\s*\)"
)

_BARE_LITERAL_RE = re.compile(r"^" + quoted_pattern("value") + r"$")
_IDENTIFIER_LIKE_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_NAME_OPTION_RE = re.compile(r"\bname\s*:\s*" + quoted_pattern("name"))
_EXACT_OPTION_RE = re.compile(r"\bexact\s*:\s*(true|false)")


@dataclasses.dataclass(frozen=True)
class LocatorDescriptor:
    """A parsed element reference.

    Equality (and hashing) covers ``kind``, ``value`` and ``options`` only,
    so two references written differently in source still deduplicate.
    """

    kind: str  # one of LOCATOR_KINDS
    value: str
    options: tuple[tuple[str, Any], ...] = ()
    original_text: str = dataclasses.field(default="", compare=False)

    def option(self, key: str, default: Any = None) -> Any:
        for k, v in self.options:
            if k == key:
                return v
        return default

    @property
    def name(self) -> str | None:
        return self.option("name")

    @property
    def key(self) -> str:
        """Stable textual identity, used in logs and reports."""
        opts = ",".join(f"{k}={v}" for k, v in self.options)
        return f"{self.kind}:{self.value}:{opts}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "value": self.value,
            "options": dict(self.options),
            "original_text": self.original_text,
        }


def make_descriptor(
    kind: str,
    value: str,
    options: dict[str, Any] | None = None,
    original_text: str = "",
) -> LocatorDescriptor:
    """Build a descriptor with options normalised into a sorted tuple."""
    if kind not in LOCATOR_KINDS:
        raise ValueError(f"Unknown locator kind: {kind!r}")
    normalised = tuple(sorted((options or {}).items()))
    return LocatorDescriptor(kind=kind, value=value, options=normalised, original_text=original_text)


def _unescape(text: str) -> str:
    return re.sub(r"\\(.)", r"\1", text)


def _parse_options(raw: str | None) -> dict[str, Any]:
    options: dict[str, Any] = {}
    if not raw:
        return options
    name_match = _NAME_OPTION_RE.search(raw)
    if name_match:
        options["name"] = _unescape(name_match.group("name"))
    exact_match = _EXACT_OPTION_RE.search(raw)
    if exact_match:
        options["exact"] = exact_match.group(1) == "true"
    return options


def _raw_selector(value: str, original_text: str) -> LocatorDescriptor:
    if value.startswith("xpath="):
        return make_descriptor("xpath", value[len("xpath="):], original_text=original_text)
    if value.startswith("//") or value.startswith("(//"):
        return make_descriptor("xpath", value, original_text=original_text)
    return make_descriptor("css", value, original_text=original_text)


def parse_locator(expression: str | None) -> LocatorDescriptor | None:
    """Parse a locator expression (or a bare quoted selector) into a descriptor.

    Returns None when the expression is not part of the grammar.
    """
    if not expression:
        return None
    trimmed = expression.strip()

    match = _CONSTRUCTOR_RE.search(trimmed)
    if match:
        value = _unescape(match.group("value"))
        raw_options = match.group("opts")
        kind = CONSTRUCTOR_KINDS[match.group("ctor")]
        if kind == "css":
            return _raw_selector(value, trimmed)
        options = _parse_options(raw_options)
        if kind != "role":
            # only role locators carry an accessible-name qualifier
            options.pop("name", None)
        return make_descriptor(kind, value, options, original_text=trimmed)

    bare = _BARE_LITERAL_RE.match(trimmed)
    if bare:
        value = _unescape(bare.group("value"))
        if _IDENTIFIER_LIKE_RE.match(value):
            return make_descriptor("testid", value, original_text=trimmed)
        return _raw_selector(value, trimmed)

    return None


def find_locator(text: str) -> LocatorDescriptor | None:
    """Find the first grammar constructor call anywhere in ``text``."""
    match = _CONSTRUCTOR_RE.search(text)
    if not match:
        return None
    return parse_locator(match.group(0))


def contains_constructor(text: str) -> bool:
    return _CONSTRUCTOR_RE.search(text) is not None


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def quote(value: str) -> str:
    """Render a single-quoted JS string literal."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def _render_option_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return quote(str(value))


def render_locator(descriptor: LocatorDescriptor) -> str:
    """Render a descriptor as a constructor call, e.g. ``getByRole('button', { name: 'Go' })``."""
    constructor = KIND_CONSTRUCTORS.get(descriptor.kind, "locator")
    value = descriptor.value
    if descriptor.kind == "xpath" and not value.startswith("//") and not value.startswith("(//"):
        value = f"xpath={value}"
    rendered_options = ", ".join(f"{k}: {_render_option_value(v)}" for k, v in descriptor.options)
    if rendered_options:
        return f"{constructor}({quote(value)}, {{ {rendered_options} }})"
    return f"{constructor}({quote(value)})"


# ---------------------------------------------------------------------------
# Naming helpers
# ---------------------------------------------------------------------------


def _words(text: str) -> list[str]:
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", text)
    return [w for w in re.split(r"[^A-Za-z0-9]+", spaced.lower()) if w]


def generate_property_name(descriptor: LocatorDescriptor) -> str:
    """camelCase property name from the selector (role selectors use their name)."""
    base = descriptor.value
    if descriptor.kind == "role" and descriptor.name:
        base = descriptor.name
    words = _words(base)
    if not words:
        return "element"
    name = words[0] + "".join(w.capitalize() for w in words[1:])
    if name[0].isdigit():
        name = f"el{name[0].upper()}{name[1:]}"
    return name


def to_title_case(text: str) -> str:
    """Human-readable label for wrapper-class declarations."""
    return " ".join(w.capitalize() for w in re.split(r"[-_\s]+", text) if w)


def human_label(descriptor: LocatorDescriptor) -> str:
    if descriptor.kind == "role" and descriptor.name:
        return to_title_case(descriptor.name)
    return to_title_case(descriptor.value)


def descriptor_matches_keywords(descriptor: LocatorDescriptor | None, keywords: tuple[str, ...]) -> bool:
    """Substring match of any keyword against the value or the role name (case-insensitive)."""
    if descriptor is None:
        return False
    value = descriptor.value.lower()
    name = (descriptor.name or "").lower()
    return any(kw in value or kw in name for kw in keywords)

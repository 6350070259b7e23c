"""ChameleonQA Mapping Engine — decide which page object owns each selector.

Three ordered strategies per distinct selector:

1. Direct hit against an indexed locator entry (confidence 1.0).
2. Anchor inference from the immediately preceding token, fed into scoring.
3. Semantic scoring by keyword overlap, then deterministic tie-breakers.
"""

from __future__ import annotations

import dataclasses
import logging
import re

from chameleonqa.config import ChameleonConfig, ScoringWeights
from chameleonqa.engine.knowledge import ActionToken, LocatorEntry, PageObjectIndex, PageObjectRecord, SelectorMapping
from chameleonqa.engine.locators import LocatorDescriptor, generate_property_name
from chameleonqa.models import DEFAULT_UNMATCHED_CONFIDENCE

logger = logging.getLogger("chameleonqa.engine.mapper")

_SUFFIX_NORMALISATION = (
    (re.compile(r"Page$"), ""),
    (re.compile(r"Btn$"), "Button"),
    (re.compile(r"Txtbx$"), "Textbox"),
    (re.compile(r"Lbl$"), "Label"),
)


@dataclasses.dataclass
class Candidate:
    class_name: str
    score: float
    reasoning: str


# ---------------------------------------------------------------------------
# Direct hit
# ---------------------------------------------------------------------------


def _is_bare_literal(descriptor: LocatorDescriptor) -> bool:
    return descriptor.original_text[:1] in ("'", '"', "`")


def entry_matches(descriptor: LocatorDescriptor, entry: LocatorEntry) -> bool:
    """Kind-compatible value equality between a selector and an indexed entry."""
    if descriptor.value != entry.selector_value:
        return False
    if descriptor.kind == "role":
        return entry.selector_type == "role" and descriptor.name == entry.selector_options.get("name")
    if descriptor.kind == entry.selector_type:
        return True
    if descriptor.kind == "css":
        return entry.selector_type in ("css", "xpath")
    # a bare 'some-id' literal may be any kind of reference to the same value
    return descriptor.kind == "testid" and _is_bare_literal(descriptor)


def direct_hit_search(descriptor: LocatorDescriptor, index: PageObjectIndex) -> SelectorMapping | None:
    for class_name, record in index.items():
        for entry in record.locators:
            if entry_matches(descriptor, entry):
                return SelectorMapping(
                    selector=descriptor,
                    target_class=class_name,
                    target_property=entry.property_name,
                    is_new_property=False,
                    confidence=1.0,
                    reasoning=f"Direct hit: {descriptor.key} found in {class_name}.{entry.property_name}",
                )
    return None


# ---------------------------------------------------------------------------
# Anchor inference
# ---------------------------------------------------------------------------


def anchor_inference(anchor: ActionToken | None, index: PageObjectIndex) -> str | None:
    """Class that owns the preceding token's locator, if any."""
    if anchor is None or anchor.locator is None:
        return None
    hit = direct_hit_search(anchor.locator, index)
    return hit.target_class if hit else None


# ---------------------------------------------------------------------------
# Semantic scoring
# ---------------------------------------------------------------------------


def camel_to_words(text: str) -> list[str]:
    cleaned = text
    for pattern, replacement in _SUFFIX_NORMALISATION:
        cleaned = pattern.sub(replacement, cleaned)
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", cleaned)
    return [w for w in re.split(r"[\s\-_]+", spaced.lower()) if w]


def generate_responsibility_profile(record: PageObjectRecord) -> set[str]:
    keywords = set(camel_to_words(record.class_name))
    for entry in record.locators:
        keywords.update(camel_to_words(entry.property_name))
        keywords.update(w for w in re.split(r"[-_\s]+", entry.selector_value.lower()) if w)
    for method in record.methods:
        keywords.update(camel_to_words(method.method_name))
    return keywords


def extract_selector_keywords(descriptor: LocatorDescriptor) -> set[str]:
    words = {w for w in re.split(r"[-_\s]+", descriptor.value.lower()) if w}
    if descriptor.kind == "role" and descriptor.name:
        words.update(w for w in descriptor.name.lower().split() if w)
    return words


def calculate_overlap_score(left: set[str], right: set[str]) -> float:
    """Intersection over union; 0.0 for two empty sets."""
    union = left | right
    if not union:
        return 0.0
    return len(left & right) / len(union)


def _is_layout(class_name: str) -> bool:
    lowered = class_name.lower()
    return "layout" in lowered or "base" in lowered


def semantic_scoring(
    descriptor: LocatorDescriptor,
    index: PageObjectIndex,
    anchor_class: str | None,
    weights: ScoringWeights,
    global_keywords: tuple[str, ...],
) -> list[Candidate]:
    """Score every indexed class; ranked descending, ties in class-name order."""
    selector_words = extract_selector_keywords(descriptor)
    is_global = bool(selector_words & set(global_keywords))

    candidates: list[Candidate] = []
    for class_name in sorted(index):
        score = calculate_overlap_score(selector_words, generate_responsibility_profile(index[class_name]))
        reasoning = f"Base score: {score:.2f} (keyword overlap)"
        if anchor_class == class_name:
            score += weights.anchor_bonus
            reasoning += f" + {weights.anchor_bonus} anchor boost"
        if is_global and _is_layout(class_name):
            score += weights.global_bonus
            reasoning += f" + {weights.global_bonus} global element boost"
        candidates.append(Candidate(class_name, score, reasoning))

    candidates.sort(key=lambda c: c.score, reverse=True)
    return candidates


def apply_tie_breakers(
    candidates: list[Candidate],
    descriptor: LocatorDescriptor,
    index: PageObjectIndex,
    weights: ScoringWeights,
    global_keywords: tuple[str, ...],
) -> Candidate | None:
    """Pick the winner; None when there are no candidates at all."""
    if not candidates:
        return None
    top = candidates[0]
    if len(candidates) == 1 or top.score - candidates[1].score > weights.tie_margin:
        return top

    second = candidates[1]
    if extract_selector_keywords(descriptor) & set(global_keywords):
        for candidate in candidates:
            if "layout" in candidate.class_name.lower():
                return candidate

    top_count = len(index[top.class_name].locators)
    second_count = len(index[second.class_name].locators)
    if second_count > top_count:
        return second
    return top


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------


def unique_property_name(base: str, taken: set[str]) -> str:
    if base not in taken:
        return base
    suffix = 2
    while f"{base}{suffix}" in taken:
        suffix += 1
    return f"{base}{suffix}"


def map_selector(
    descriptor: LocatorDescriptor,
    anchor: ActionToken | None,
    index: PageObjectIndex,
    config: ChameleonConfig,
    taken: dict[str, set[str]] | None = None,
) -> SelectorMapping:
    """Map one selector. ``taken`` tracks property names already assigned per class."""
    hit = direct_hit_search(descriptor, index)
    if hit is not None:
        return hit

    weights = config.scoring
    anchor_class = anchor_inference(anchor, index)
    candidates = semantic_scoring(descriptor, index, anchor_class, weights, config.global_keywords)
    winner = apply_tie_breakers(candidates, descriptor, index, weights, config.global_keywords)

    if winner is None:
        target_class = weights.unknown_class
        confidence = DEFAULT_UNMATCHED_CONFIDENCE
        reasoning = "Default mapping (no page objects indexed)"
    else:
        target_class = winner.class_name
        confidence = min(winner.score, 1.0)
        reasoning = winner.reasoning

    taken = taken if taken is not None else {}
    existing = taken.setdefault(
        target_class,
        index[target_class].property_names() if target_class in index else set(),
    )
    property_name = unique_property_name(generate_property_name(descriptor), existing)
    existing.add(property_name)

    return SelectorMapping(
        selector=descriptor,
        target_class=target_class,
        target_property=property_name,
        is_new_property=True,
        confidence=confidence,
        reasoning=reasoning,
    )


def map_all_selectors(
    tokens: list[ActionToken],
    index: PageObjectIndex,
    config: ChameleonConfig | None = None,
) -> list[SelectorMapping]:
    """One mapping per distinct selector, in first-seen order."""
    config = config or ChameleonConfig()
    mappings: list[SelectorMapping] = []
    seen: set[LocatorDescriptor] = set()
    taken: dict[str, set[str]] = {}

    for i, token in enumerate(tokens):
        if token.locator is None or token.locator in seen:
            continue
        seen.add(token.locator)
        anchor = tokens[i - 1] if i > 0 else None
        mapping = map_selector(token.locator, anchor, index, config, taken)
        logger.debug(
            "%s -> %s.%s (%.2f, %s)",
            token.locator.key,
            mapping.target_class,
            mapping.target_property,
            mapping.confidence,
            "new" if mapping.is_new_property else "existing",
        )
        mappings.append(mapping)

    logger.info(
        "Mapped %d selector(s): %d existing, %d new",
        len(mappings),
        sum(1 for m in mappings if not m.is_new_property),
        sum(1 for m in mappings if m.is_new_property),
    )
    return mappings


def mapping_for(descriptor: LocatorDescriptor | None, mappings: list[SelectorMapping]) -> SelectorMapping | None:
    if descriptor is None:
        return None
    for mapping in mappings:
        if mapping.selector == descriptor:
            return mapping
    return None

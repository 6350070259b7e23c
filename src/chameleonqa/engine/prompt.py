"""ChameleonQA hand-off prompt — page-object context for free-form rewriting.

The mechanical pipeline never needs a language model.  This module only
packages what reconnaissance learned into a prompt a user can hand to one:
the page objects whose locators the raw script already references, their
public methods, and the raw script itself.
"""

from __future__ import annotations

import dataclasses
import re

from chameleonqa.engine.knowledge import PageObjectIndex, PageObjectRecord

_STRING_LITERAL = re.compile(r"""(['"`])(.*?)\1""")
_NON_SELECTOR_PREFIXES = ("http", "https", "GET", "POST", "text/css")
_SELECTOR_CHARS = re.compile(r"[.#\[\]>]")


@dataclasses.dataclass
class RelevantContext:
    """Page objects a raw script touches, and which literal led to each."""

    relevant_pages: list[PageObjectRecord]
    matched_selectors: dict[str, str]  # selector literal -> class name


class ContextMatcher:
    """Matches raw code against the page-object index by selector literal."""

    def match(self, raw_code: str, index: PageObjectIndex) -> RelevantContext:
        relevant: dict[str, PageObjectRecord] = {}
        matched: dict[str, str] = {}
        for selector in self.extract_selectors(raw_code):
            for class_name, record in index.items():
                if any(entry.selector_value == selector for entry in record.locators):
                    relevant.setdefault(class_name, record)
                    matched.setdefault(selector, class_name)
        return RelevantContext(relevant_pages=list(relevant.values()), matched_selectors=matched)

    def extract_selectors(self, code: str) -> list[str]:
        """String literals that look like selectors, first-seen order."""
        selectors: list[str] = []
        for match in _STRING_LITERAL.finditer(code):
            text = match.group(2)
            if self.is_valid_selector(text) and text not in selectors:
                selectors.append(text)
        return selectors

    @staticmethod
    def is_valid_selector(text: str) -> bool:
        if len(text) < 2 or len(text) > 100:
            return False
        if text.startswith(_NON_SELECTOR_PREFIXES):
            return False
        if " " in text:
            # multi-word strings are labels unless they carry selector syntax
            return bool(_SELECTOR_CHARS.search(text)) or any(
                marker in text for marker in ("text=", "data-testid", "role=")
            )
        return True


def format_context(pages: list[PageObjectRecord]) -> str:
    if not pages:
        return "No relevant Page Objects found. Please create new ones if needed."
    blocks = []
    for page in pages:
        methods = [f"  - {m.method_name}({', '.join(m.parameters)}): {m.return_type}" for m in page.methods]
        properties = [f"  - {loc.property_name}" for loc in page.locators]
        blocks.append(
            "\n".join(
                [
                    f"Class: {page.class_name}",
                    f"File: {page.file_path}",
                    "Locators:",
                    *(properties or ["  (none)"]),
                    "Methods:",
                    *(methods or ["  (none)"]),
                ]
            )
        )
    return "\n---\n".join(blocks)


def generate_refactor_prompt(raw_code: str, context: RelevantContext) -> str:
    """Render the hand-off prompt for one raw script."""
    lines = [
        "You are an expert Playwright Test Engineer specializing in the Page Object Model (POM) pattern.",
        "Your goal is to refactor raw, recorded Playwright code into clean, maintainable code "
        "that strictly follows this project's existing structure.",
        "",
        "### 1. THE CONTEXT (Existing Page Objects)",
        "The following Page Objects are relevant based on the selectors used in the raw code.",
        "ONLY use the methods listed below. Do NOT invent new methods unless absolutely necessary.",
        "",
        format_context(context.relevant_pages),
        "",
        "### 2. THE RAW INPUT",
        raw_code.strip(),
        "",
        "### 3. THE REQUIREMENTS",
        "- Pattern Matching: replace raw `page.click()` or `page.fill()` calls with the matching Page Object members.",
        "- Fixtures: request Page Objects through the project's test fixtures where they exist.",
        "- Missing Methods: if an action has NO matching method, either add a NEW method to the Page Object "
        "(marked with a `// NEW METHOD` comment) or use its existing public locators.",
        "- Assertions: use Playwright's `expect()` pattern.",
        "",
        "### 4. OUTPUT FORMAT",
        "Return ONLY the code blocks.",
        "- Block 1: The Refactored Test Code.",
        "- Block 2: (Optional) Updates to Page Object files (if new methods were added).",
    ]
    return "\n".join(lines) + "\n"

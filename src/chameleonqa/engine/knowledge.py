"""Knowledge Graph records shared by every pipeline phase.

Phase I  (reconnaissance): RepositoryContext, StyleProfile, PageObjectRecord, FixtureEntry
Phase II (parser):         ActionToken, SemanticCluster, TestDataItem
Phase III (mapper):        SelectorMapping
Phase IV (synthesizer):    PageObjectModification, GeneratedTestFile, ProposedPageObject
Phase V  (verifier):       ExecutionResult, ClassifiedError, FixAction, VerificationOutcome
"""

from __future__ import annotations

import dataclasses
from typing import Any

from chameleonqa.engine.locators import LocatorDescriptor

# ---------------------------------------------------------------------------
# Phase I: reconnaissance
# ---------------------------------------------------------------------------


@dataclasses.dataclass
class RepositoryContext:
    """Structural facts discovered about the target repository."""

    repo_root: str
    repo_type: str = "UNKNOWN"  # STANDARD_POM, COMPONENT_BASED, UNKNOWN
    page_object_dir: str | None = None
    test_dir: str | None = None
    uses_fixtures: bool = False
    fixture_file: str | None = None
    config_file: str | None = None
    base_class: str | None = None


@dataclasses.dataclass
class StyleProfile:
    """Coding conventions detected from a sample of page-object files.

    Best-effort by construction: ``confidence`` is the share of sampled
    files that carried any locator evidence.
    """

    locator_style: str = "Native"  # WrapperClass, Native, Getter
    wrapper_class_name: str | None = None
    base_class_name: str | None = None
    property_visibility: str = "public"  # public, readonly, private
    method_style: str = "Atomic"  # Atomic, Fluent
    import_statements: list[str] = dataclasses.field(default_factory=list)
    confidence: float = 0.0
    reasoning: str = "No page-object files sampled"


@dataclasses.dataclass
class LocatorEntry:
    """A locator property declared on a page object."""

    property_name: str
    selector_type: str
    selector_value: str
    selector_options: dict[str, Any] = dataclasses.field(default_factory=dict)
    raw_code: str = ""
    line_number: int = 0

    @property
    def descriptor(self) -> LocatorDescriptor:
        return LocatorDescriptor(
            kind=self.selector_type,
            value=self.selector_value,
            options=tuple(sorted(self.selector_options.items())),
            original_text=self.raw_code,
        )


@dataclasses.dataclass
class MethodSignature:
    method_name: str
    parameters: list[str]
    return_type: str
    line_number: int


@dataclasses.dataclass
class PageObjectRecord:
    """One indexed page-object class."""

    class_name: str
    file_path: str  # relative to the repository root
    base_class: str | None = None
    locators: list[LocatorEntry] = dataclasses.field(default_factory=list)
    methods: list[MethodSignature] = dataclasses.field(default_factory=list)
    imports: list[str] = dataclasses.field(default_factory=list)

    def property_names(self) -> set[str]:
        return {loc.property_name for loc in self.locators} | {m.method_name for m in self.methods}


@dataclasses.dataclass
class FixtureEntry:
    class_name: str
    file_path: str
    instantiation: str


PageObjectIndex = dict[str, PageObjectRecord]
FixtureRegistry = dict[str, FixtureEntry]


# ---------------------------------------------------------------------------
# Phase II: parsing
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class ActionToken:
    """One parsed statement of the raw script."""

    position: int  # ordinal in the statement stream
    line_number: int
    raw_code: str
    actor: str  # "page" or a stored-locator name
    operation: str  # goto, waitForURL, assign, expect, click, fill, ...
    locator: LocatorDescriptor | None = None
    value: str | None = None
    value_is_reference: bool = False  # value is an identifier, not a literal
    is_assertion: bool = False
    variable_name: str | None = None  # declared name: a stored locator or an extracted value
    assertion: str | None = None  # matcher name for expect tokens
    negated: bool = False  # expect(...).not.<matcher>
    raw_target: str | None = None  # expect() argument when no locator was derived


@dataclasses.dataclass
class SemanticCluster:
    """A contiguous run of tokens sharing one inferred intent."""

    id: str
    type: str  # NAVIGATION, AUTHENTICATION, FORM_SUBMISSION, MENU_INTERACTION, VERIFICATION, GENERIC
    intent: str
    tokens: list[ActionToken] = dataclasses.field(default_factory=list)
    assertions: list[ActionToken] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class TestDataItem:
    __test__ = False  # not a pytest test class

    variable_name: str
    value: str
    type: str = "string"  # string, number, boolean
    usage: str = "other"  # fill, assertion, other


# ---------------------------------------------------------------------------
# Phase III: mapping
# ---------------------------------------------------------------------------


@dataclasses.dataclass
class SelectorMapping:
    """Ownership decision for one distinct selector."""

    selector: LocatorDescriptor
    target_class: str
    target_property: str
    is_new_property: bool
    confidence: float
    reasoning: str = ""


# ---------------------------------------------------------------------------
# Phase IV: synthesis
# ---------------------------------------------------------------------------


@dataclasses.dataclass
class PageObjectModification:
    """A staged edit to an existing page-object file (not yet on disk)."""

    file_path: str
    class_name: str
    new_properties: list[str]
    new_methods: list[str]
    insertion_point: int  # 1-based line number


@dataclasses.dataclass
class GeneratedTestFile:
    file_path: str
    content: str
    fixtures: list[str]
    imports: list[str]


@dataclasses.dataclass
class ProposedPageObject:
    """A complete new page-object source for a class absent from the index."""

    class_name: str
    file_path: str
    content: str


# ---------------------------------------------------------------------------
# Phase V: verification
# ---------------------------------------------------------------------------


@dataclasses.dataclass
class ExecutionResult:
    """Outcome of one out-of-process test execution."""

    passed: bool
    stdout: str
    stderr: str
    exit_code: int | None = None
    duration_seconds: float = 0.0


@dataclasses.dataclass
class ClassifiedError:
    type: str  # ElementNotFound, ElementIntercepted, StaleElement, AssertionFailed, Timeout, Unknown
    message: str
    locator: str | None = None
    suggestion: str | None = None
    line: int | None = None  # failing line of the generated test, when the runner reports one


@dataclasses.dataclass
class FixAction:
    type: str  # ADD_WAIT, MODIFY_CLICK, RE_QUERY, ADD_POLL, ADD_COMMENT
    code: str
    target_file: str
    target_line: int | None = None
    locator: str | None = None  # locator text that scopes the edit
    source_line: int | None = None


@dataclasses.dataclass
class VerificationOutcome:
    state: str  # PASSED, UNFIXABLE, EXHAUSTED
    attempts: int
    errors: list[ClassifiedError] = dataclasses.field(default_factory=list)
    fixes: list[FixAction] = dataclasses.field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.state == "PASSED"


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------


@dataclasses.dataclass
class KnowledgeGraph:
    """Everything one pipeline run produced, phase by phase."""

    repo_context: RepositoryContext
    style_profile: StyleProfile
    page_object_index: PageObjectIndex
    fixture_registry: FixtureRegistry

    raw_code: str = ""
    tokens: list[ActionToken] = dataclasses.field(default_factory=list)
    clusters: list[SemanticCluster] = dataclasses.field(default_factory=list)
    test_data: list[TestDataItem] = dataclasses.field(default_factory=list)

    mappings: list[SelectorMapping] = dataclasses.field(default_factory=list)

    modifications: list[PageObjectModification] = dataclasses.field(default_factory=list)
    generated_test: GeneratedTestFile | None = None
    proposed_page_objects: list[ProposedPageObject] = dataclasses.field(default_factory=list)

    verification: VerificationOutcome | None = None

    def summary(self) -> dict[str, Any]:
        return {
            "repo_type": self.repo_context.repo_type,
            "locator_style": self.style_profile.locator_style,
            "page_objects_found": len(self.page_object_index),
            "tokens_extracted": len(self.tokens),
            "clusters_identified": len(self.clusters),
            "total_mappings": len(self.mappings),
            "orphan_selectors": sum(1 for m in self.mappings if m.is_new_property),
        }


@dataclasses.dataclass
class RefactorResult:
    """Structured, inspectable outcome of one pipeline run."""

    success: bool
    modified_files: list[str] = dataclasses.field(default_factory=list)
    generated_test_path: str | None = None
    errors: list[str] = dataclasses.field(default_factory=list)
    warnings: list[str] = dataclasses.field(default_factory=list)
    knowledge: KnowledgeGraph | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "modified_files": list(self.modified_files),
            "generated_test_path": self.generated_test_path,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "knowledge": self.knowledge.summary() if self.knowledge else None,
        }
        if self.knowledge is not None:
            data["mappings"] = [
                {
                    "selector": m.selector.to_dict(),
                    "target_class": m.target_class,
                    "target_property": m.target_property,
                    "is_new_property": m.is_new_property,
                    "confidence": round(m.confidence, 4),
                    "reasoning": m.reasoning,
                }
                for m in self.knowledge.mappings
            ]
            if self.knowledge.verification is not None:
                data["verification"] = {
                    "state": self.knowledge.verification.state,
                    "attempts": self.knowledge.verification.attempts,
                    "fixes": [f.type for f in self.knowledge.verification.fixes],
                }
        return data

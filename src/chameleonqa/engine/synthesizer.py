"""ChameleonQA Code Synthesizer — style-matched page-object edits and a test file.

Nothing here touches the filesystem: modifications, proposals and the test
file are returned as staged values and written by the orchestrator.
"""

from __future__ import annotations

import logging
import posixpath
import re

from chameleonqa.config import ChameleonConfig
from chameleonqa.engine.knowledge import (
    ActionToken,
    FixtureRegistry,
    GeneratedTestFile,
    KnowledgeGraph,
    PageObjectIndex,
    PageObjectModification,
    PageObjectRecord,
    ProposedPageObject,
    RepositoryContext,
    SelectorMapping,
    SemanticCluster,
    StyleProfile,
)
from chameleonqa.engine.locators import LocatorDescriptor, generate_property_name, human_label, quote, render_locator
from chameleonqa.engine.mapper import mapping_for, unique_property_name
from chameleonqa.engine.parser import TEXT_EXTRACTION
from chameleonqa.models import DEFAULT_TEST_DIR, DEFAULT_WRAPPER_CLASS, FALLBACK_INSERTION_LINE, TEST_FILE_SUFFIX

logger = logging.getLogger("chameleonqa.engine.synthesizer")

_INDENT = "  "
_IMPORT_FROM = re.compile(r"from\s+['\"]([^'\"]+)['\"]")


# ---------------------------------------------------------------------------
# Shared rendering helpers
# ---------------------------------------------------------------------------


def render_value(token: ActionToken) -> str:
    """Argument text for a token's value: identifiers pass through, literals are quoted."""
    if token.value is None:
        return ""
    return token.value if token.value_is_reference else quote(token.value)


def locator_ref(prop_ref: str, style: StyleProfile, config: ChameleonConfig) -> str:
    if style.locator_style == "WrapperClass":
        return f"{prop_ref}.{config.wrapper_locator_attribute}"
    return prop_ref


def render_action(ref: str, token: ActionToken) -> str:
    """One awaited statement for an interaction on ``ref``."""
    if token.operation in ("fill", "type"):
        return f"await {ref}.fill({render_value(token)});"
    return f"await {ref}.{token.operation}({render_value(token)});"


# ---------------------------------------------------------------------------
# Properties and methods
# ---------------------------------------------------------------------------


def generate_property(mapping: SelectorMapping, style: StyleProfile) -> str:
    """Render one property declaration in the detected locator style."""
    name = mapping.target_property
    expr = render_locator(mapping.selector)
    if style.locator_style == "WrapperClass":
        wrapper = style.wrapper_class_name or DEFAULT_WRAPPER_CLASS
        label = quote(human_label(mapping.selector))
        return f"{_INDENT}{style.property_visibility} {name} = new {wrapper}(this.page.{expr}, {label});"
    if style.locator_style == "Getter":
        return f"{_INDENT}get {name}() {{ return this.page.{expr}; }}"
    return f"{_INDENT}{style.property_visibility} {name} = this.page.{expr};"


def method_name_for(
    cluster: SemanticCluster,
    mappings: list[SelectorMapping] | None = None,
    taken: set[str] | None = None,
) -> str:
    """Menu methods are named ``select<Target>`` after the closing click target.

    The name is made unique against ``taken`` (the class's property and
    method names), so a method never shadows the property it clicks.
    """
    clicks = [t for t in cluster.tokens if t.operation == "click" and t.locator is not None]
    if clicks:
        mapping = mapping_for(clicks[-1].locator, mappings or [])
        target = mapping.target_property if mapping else generate_property_name(clicks[-1].locator)
        base = f"select{target[:1].upper()}{target[1:]}"
    else:
        base = "performMenuAction"
    return unique_property_name(base, taken or set())


def generate_method(
    cluster: SemanticCluster,
    mappings: list[SelectorMapping],
    style: StyleProfile,
    config: ChameleonConfig,
    name: str | None = None,
) -> str:
    lines = [f"{_INDENT}public async {name or method_name_for(cluster, mappings)}() {{"]
    returns_value = False
    for token in cluster.tokens:
        if token.is_assertion or token.operation == "assign":
            continue
        mapping = mapping_for(token.locator, mappings)
        if mapping is None:
            continue
        ref = locator_ref(f"this.{mapping.target_property}", style, config)
        if token.operation in TEXT_EXTRACTION:
            lines.append(f"{_INDENT * 2}return await {ref}.{token.operation}();")
            returns_value = True
        else:
            lines.append(f"{_INDENT * 2}{render_action(ref, token)}")
    if style.method_style == "Fluent" and not returns_value:
        lines.append(f"{_INDENT * 2}return this;")
    lines.append(f"{_INDENT}}}")
    return "\n".join(lines)


def group_mappings_by_class(mappings: list[SelectorMapping]) -> dict[str, list[SelectorMapping]]:
    """New-property mappings per target class, in first-seen order."""
    groups: dict[str, list[SelectorMapping]] = {}
    for mapping in mappings:
        if mapping.is_new_property:
            groups.setdefault(mapping.target_class, []).append(mapping)
    return groups


def cluster_maps_to_class(cluster: SemanticCluster, class_name: str, mappings: list[SelectorMapping]) -> bool:
    """True when every locator-bearing action in the cluster maps into ``class_name``."""
    targets = [
        mapping_for(t.locator, mappings)
        for t in cluster.tokens
        if t.locator is not None and not t.is_assertion
    ]
    return bool(targets) and all(m is not None and m.target_class == class_name for m in targets)


def _menu_methods(
    class_name: str,
    clusters: list[SemanticCluster],
    mappings: list[SelectorMapping],
    style: StyleProfile,
    config: ChameleonConfig,
    taken: set[str],
) -> list[str]:
    methods = []
    taken = set(taken) | {m.target_property for m in mappings if m.target_class == class_name}
    for cluster in clusters:
        if cluster.type != "MENU_INTERACTION" or not cluster_maps_to_class(cluster, class_name, mappings):
            continue
        name = method_name_for(cluster, mappings, taken)
        taken.add(name)
        methods.append(generate_method(cluster, mappings, style, config, name))
    return methods


def find_insertion_point(record: PageObjectRecord) -> int:
    """Line after the last locator, else the first method line, else a fixed offset."""
    if record.locators:
        return max(loc.line_number for loc in record.locators) + 1
    if record.methods:
        return min(m.line_number for m in record.methods)
    return FALLBACK_INSERTION_LINE


def generate_page_object_mods(
    mappings: list[SelectorMapping],
    clusters: list[SemanticCluster],
    index: PageObjectIndex,
    style: StyleProfile,
    config: ChameleonConfig | None = None,
) -> list[PageObjectModification]:
    """Staged edits for indexed classes that gain new properties."""
    config = config or ChameleonConfig()
    mods: list[PageObjectModification] = []
    for class_name, class_mappings in group_mappings_by_class(mappings).items():
        record = index.get(class_name)
        if record is None:
            continue
        mods.append(
            PageObjectModification(
                file_path=record.file_path,
                class_name=class_name,
                new_properties=[generate_property(m, style) for m in class_mappings],
                new_methods=_menu_methods(class_name, clusters, mappings, style, config, record.property_names()),
                insertion_point=find_insertion_point(record),
            )
        )
    return mods


def propose_page_object(
    class_name: str,
    mappings: list[SelectorMapping],
    clusters: list[SemanticCluster],
    style: StyleProfile,
    context: RepositoryContext,
    config: ChameleonConfig | None = None,
) -> ProposedPageObject:
    """Complete source for a class the index does not know."""
    config = config or ChameleonConfig()
    base = style.base_class_name
    wrapper = style.wrapper_class_name if style.locator_style == "WrapperClass" else None

    imports = ["import { Page } from '@playwright/test';"]
    for line in style.import_statements:
        if any(name and re.search(rf"\b{re.escape(name)}\b", line) for name in (base, wrapper)):
            imports.append(line if line.endswith(";") else f"{line};")

    lines = [*imports, ""]
    lines.append(f"export class {class_name}{f' extends {base}' if base else ''} {{")
    if base:
        lines += [f"{_INDENT}constructor(page: Page) {{", f"{_INDENT * 2}super(page);", f"{_INDENT}}}"]
    else:
        lines += [
            f"{_INDENT}readonly page: Page;",
            "",
            f"{_INDENT}constructor(page: Page) {{",
            f"{_INDENT * 2}this.page = page;",
            f"{_INDENT}}}",
        ]
    lines.append("")
    lines += [generate_property(m, style) for m in mappings]
    for method in _menu_methods(class_name, clusters, mappings, style, config, {"page"}):
        lines += ["", method]
    lines += ["}", ""]

    directory = context.page_object_dir or "pages"
    return ProposedPageObject(
        class_name=class_name,
        file_path=f"{directory}/{class_name}.ts",
        content="\n".join(lines),
    )


# ---------------------------------------------------------------------------
# Test file
# ---------------------------------------------------------------------------


def slugify_instruction(instruction: str) -> str:
    text = re.sub(r"[^\w\s-]", "", instruction[:50]).strip().lower()
    slug = re.sub(r"[\s_]+", "-", text)[:30].strip("-")
    return slug or "refactored-test"


def generated_test_path(instruction: str, context: RepositoryContext) -> str:
    """Repository-relative path of the generated test."""
    return f"{context.test_dir or DEFAULT_TEST_DIR}/{slugify_instruction(instruction)}{TEST_FILE_SUFFIX}"


def find_fixture_for_class(class_name: str, registry: FixtureRegistry) -> str:
    for name, entry in registry.items():
        if entry.class_name == class_name:
            return name
    return class_name[:1].lower() + class_name[1:]


def _relative_module(target: str, from_dir: str) -> str:
    """Module specifier for ``target`` (repository-relative, extension dropped) seen from ``from_dir``."""
    stem = re.sub(r"\.(ts|js)$", "", target)
    rel = posixpath.relpath(stem, from_dir or ".")
    return rel if rel.startswith(".") else f"./{rel}"


def generate_imports(context: RepositoryContext, style: StyleProfile, test_path: str) -> tuple[list[str], bool]:
    """Import lines for the test file, plus whether TestTags is available."""
    test_dir = posixpath.dirname(test_path)
    imports: list[str] = []
    if context.uses_fixtures and context.fixture_file:
        imports.append(f"import {{ test }} from '{_relative_module(context.fixture_file, test_dir)}';")
        imports.append("import { expect } from '@playwright/test';")
    else:
        imports.append("import { test, expect } from '@playwright/test';")

    has_tags = False
    for line in style.import_statements:
        if "testTags" not in line:
            continue
        source = _IMPORT_FROM.search(line)
        if source and source.group(1).startswith(".") and context.page_object_dir:
            resolved = posixpath.normpath(posixpath.join(context.page_object_dir, source.group(1)))
            imports.append(f"import {{ TestTags }} from '{_relative_module(resolved, test_dir)}';")
        elif source:
            imports.append(f"import {{ TestTags }} from '{source.group(1)}';")
        has_tags = source is not None
        break
    return imports, has_tags


def _render_test_data(knowledge: KnowledgeGraph) -> list[str]:
    lines = []
    for item in knowledge.test_data:
        if item.variable_name in ("EMAIL", "PASSWORD"):
            continue
        value = quote(item.value) if item.type == "string" else item.value
        lines.append(f"const {item.variable_name} = {value};")
    return lines


def generate_test_line(
    token: ActionToken,
    mappings: list[SelectorMapping],
    registry: FixtureRegistry,
    style: StyleProfile,
    config: ChameleonConfig,
) -> str | None:
    """One statement of the generated test for ``token`` (None for declarations)."""
    if token.operation == "goto":
        return f"await page.goto({quote(token.value or '')});"
    if token.operation == "waitForURL":
        return f"await page.waitForURL({render_value(token)});"
    if token.operation == "assign":
        return None

    if token.is_assertion:
        target = f"page.{render_locator(token.locator)}" if token.locator else (token.raw_target or "page")
        negation = ".not" if token.negated else ""
        return f"await expect({target}){negation}.{token.assertion}({render_value(token)});"

    mapping = mapping_for(token.locator, mappings)
    if mapping is not None:
        fixture = find_fixture_for_class(mapping.target_class, registry)
        ref = locator_ref(f"{fixture}.{mapping.target_property}", style, config)
        if token.operation in TEXT_EXTRACTION:
            call = f"await {ref}.{token.operation}();"
            return f"const {token.variable_name} = {call}" if token.variable_name else call
        return render_action(ref, token)

    raw = token.raw_code.rstrip(";")
    return f"{raw};"


def locator_references(
    knowledge: KnowledgeGraph, config: ChameleonConfig | None = None
) -> dict[LocatorDescriptor, str]:
    """Each mapped locator and the fixture property the generated test reaches it through."""
    config = config or ChameleonConfig()
    references: dict[LocatorDescriptor, str] = {}
    for mapping in knowledge.mappings:
        fixture = find_fixture_for_class(mapping.target_class, knowledge.fixture_registry)
        references[mapping.selector] = locator_ref(f"{fixture}.{mapping.target_property}", knowledge.style_profile, config)
    return references


def generate_test_file(
    knowledge: KnowledgeGraph,
    test_name: str,
    output_path: str,
    config: ChameleonConfig | None = None,
) -> GeneratedTestFile:
    """Render the test file that drives the page objects through fixtures."""
    config = config or ChameleonConfig()
    style = knowledge.style_profile
    registry = knowledge.fixture_registry

    fixtures: list[str] = []
    for mapping in knowledge.mappings:
        name = find_fixture_for_class(mapping.target_class, registry)
        if name not in fixtures:
            fixtures.append(name)

    imports, has_tags = generate_imports(knowledge.repo_context, style, output_path)
    tag_part = ", { tag: [TestTags.UI_SMOKE_TEST] }" if has_tags else ""
    params = ", ".join(["page", *fixtures])
    data = config.test_data

    body = [
        f"const EMAIL = process.env.{data['email_env']} || {quote(data['email_default'])};",
        f"const PASSWORD = process.env.{data['password_env']} || {quote(data['password_default'])};",
        *_render_test_data(knowledge),
        "",
    ]
    for cluster in knowledge.clusters:
        body.append(f"// {cluster.intent}")
        for token in cluster.tokens:
            line = generate_test_line(token, knowledge.mappings, registry, style, config)
            if line:
                body.append(line)
        body.append("")
    while body and not body[-1]:
        body.pop()

    lines = [*imports, "", f"test.describe({quote(test_name)}, () => {{"]
    lines.append(f"{_INDENT}test({quote(f'QA Test: {test_name}')}{tag_part}, async ({{ {params} }}) => {{")
    lines += [f"{_INDENT * 2}{line}" if line else "" for line in body]
    lines += [f"{_INDENT}}});", "});", ""]

    return GeneratedTestFile(file_path=output_path, content="\n".join(lines), fixtures=fixtures, imports=imports)


# ---------------------------------------------------------------------------
# Applying modifications
# ---------------------------------------------------------------------------


def apply_page_object_mod(content: str, mod: PageObjectModification) -> str:
    """Splice the labelled property and method blocks in at the insertion point."""
    lines = content.split("\n")
    index = min(max(mod.insertion_point - 1, 0), len(lines))
    skipped_blank = False
    while index < len(lines) and not lines[index].strip():
        index += 1
        skipped_blank = True

    block: list[str] = []
    if mod.new_properties:
        block += ["", f"{_INDENT}// Auto-generated properties", *mod.new_properties]
    if mod.new_methods:
        block += ["", f"{_INDENT}// Auto-generated methods"]
        for method in mod.new_methods:
            block += [*method.split("\n"), ""]
        block.pop()
    if skipped_blank and block:
        # the skipped blank run already separates the block from the code above
        block.pop(0)
    if block and index < len(lines) and lines[index].strip():
        block.append("")

    lines[index:index] = block
    return "\n".join(lines)


def synthesize(knowledge: KnowledgeGraph, instruction: str, config: ChameleonConfig | None = None) -> None:
    """Fill Phase IV of ``knowledge``: modifications, proposals and the test file."""
    config = config or ChameleonConfig()
    style = knowledge.style_profile
    knowledge.modifications = generate_page_object_mods(
        knowledge.mappings, knowledge.clusters, knowledge.page_object_index, style, config
    )
    knowledge.proposed_page_objects = [
        propose_page_object(class_name, class_mappings, knowledge.clusters, style, knowledge.repo_context, config)
        for class_name, class_mappings in group_mappings_by_class(knowledge.mappings).items()
        if class_name not in knowledge.page_object_index
    ]
    knowledge.generated_test = generate_test_file(
        knowledge,
        test_name=instruction,
        output_path=generated_test_path(instruction, knowledge.repo_context),
        config=config,
    )
    logger.info(
        "Synthesized %d modification(s), %d proposal(s), test %s",
        len(knowledge.modifications),
        len(knowledge.proposed_page_objects),
        knowledge.generated_test.file_path,
    )

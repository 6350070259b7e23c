"""ChameleonQA Reconnaissance — learns the target repository with zero prior configuration.

Discovers where page objects, tests and fixtures live, samples page-object
files for coding style, indexes every page-object class (locators and
method signatures), and reads the fixture file into a name -> class
registry.  Only a missing repository root is fatal; every other gap
degrades to an ``UNKNOWN`` context with empty indexes so later phases can
still propose new page objects.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from pathlib import Path

from chameleonqa.config import ChameleonConfig, ChameleonConfigError
from chameleonqa.engine.knowledge import (
    FixtureEntry,
    FixtureRegistry,
    LocatorEntry,
    MethodSignature,
    PageObjectIndex,
    PageObjectRecord,
    RepositoryContext,
    StyleProfile,
)
from chameleonqa.engine.locators import CONSTRUCTOR_NAMES, contains_constructor, find_locator
from chameleonqa.models import (
    COMPONENT_DIR_CANDIDATES,
    FIXTURE_FILE_CANDIDATES,
    FRAMEWORK_CONFIG_CANDIDATES,
    PAGE_OBJECT_DIR_CANDIDATES,
    SOURCE_EXTENSIONS,
    TEST_DIR_CANDIDATES,
)

logger = logging.getLogger("chameleonqa.engine.reconnaissance")

# ---------------------------------------------------------------------------
# Source patterns
# ---------------------------------------------------------------------------

# name = new Wrapper(this.page.getBy...(
WRAPPER_PATTERN = re.compile(rf"(\w+)\s*=\s*new\s+(\w+)\s*\(\s*this\.page\.(?:{CONSTRUCTOR_NAMES})\s*\(")

# public|readonly|private name = this.page.getBy...(
NATIVE_PATTERN = re.compile(
    r"((?:public|private|protected)\s+readonly|readonly|public|private|protected)\s+"
    rf"(\w+)\s*(?::\s*[\w<>\[\]]+\s*)?=\s*this\.page\.(?:{CONSTRUCTOR_NAMES})\s*\("
)

# get name() { return this.page.getBy...(
GETTER_PATTERN = re.compile(
    rf"get\s+(\w+)\s*\(\)\s*(?::\s*[\w<>]+\s*)?\{{\s*return\s+this\.page\.(?:{CONSTRUCTOR_NAMES})\s*\("
)

# this.name = page.getBy...( inside a constructor
CONSTRUCTOR_ASSIGN_PATTERN = re.compile(rf"this\.(\w+)\s*=\s*(?:this\.)?page\.(?:{CONSTRUCTOR_NAMES})\s*\(")

CLASS_PATTERN = re.compile(r"\bclass\s+(\w+)(?:\s+extends\s+(\w+))?")
FLUENT_PATTERN = re.compile(r"return\s+this\s*;")
IMPORT_PATTERN = re.compile(r"^import\s+.*$", re.MULTILINE)

METHOD_PATTERN = re.compile(
    r"^\s*(?:public\s+|private\s+|protected\s+)?(?:static\s+)?(?:async\s+)?(\w+)\s*\(([^)]*)\)\s*(?::\s*([^{]+))?\s*\{"
)
_NOT_METHODS = {"constructor", "if", "for", "while", "switch", "catch", "function", "return", "with"}

_PROPERTY_NAME_PATTERN = re.compile(r"(\w+)\s*(?::\s*[\w<>\[\]]+\s*)?=")
_GETTER_NAME_PATTERN = re.compile(r"\bget\s+(\w+)\s*\(")

# fixtureName: async ({ page }, use) => { await use(new ClassName(page)); }
FIXTURE_PATTERN = re.compile(
    r"(\w+)\s*:\s*async\s*\(\s*\{[^}]*\}\s*,\s*use\s*\)\s*=>\s*\{[^}]*?use\s*\(\s*new\s+(\w+)\s*\(([^)]*)\)\s*\)"
)
FIXTURE_TYPE_PATTERNS = (
    re.compile(r"type\s+\w+\s*=\s*\{([^}]+)\}"),
    re.compile(r"extend\s*<\s*\{([^}]+)\}\s*>"),
)
_TYPE_ENTRY_PATTERN = re.compile(r"(\w+)\s*:\s*(\w+)")


@dataclasses.dataclass
class ReconnaissanceResult:
    repo_context: RepositoryContext
    style_profile: StyleProfile
    page_object_index: PageObjectIndex
    fixture_registry: FixtureRegistry


# ---------------------------------------------------------------------------
# Structure discovery
# ---------------------------------------------------------------------------


def _first_dir(root: Path, candidates: tuple[str, ...] | list[str]) -> str | None:
    for candidate in candidates:
        if (root / candidate).is_dir():
            return candidate
    return None


def _source_files(directory: Path) -> list[Path]:
    """Page-object source files under ``directory``, fixture files excluded, sorted."""
    files = [
        p
        for p in directory.rglob("*")
        if p.is_file()
        and p.suffix in SOURCE_EXTENSIONS
        and not p.name.endswith(".d.ts")
        and p.name not in FIXTURE_FILE_CANDIDATES
        and "node_modules" not in p.parts
    ]
    return sorted(files, key=lambda p: p.relative_to(directory).as_posix())


def _has_page_classes(directory: Path) -> bool:
    for path in _source_files(directory):
        content = path.read_text(encoding="utf-8", errors="replace")
        if CLASS_PATTERN.search(content) and "page." in content and contains_constructor(content):
            return True
    return False


def discover_structure(repo_root: Path, config: ChameleonConfig | None = None) -> RepositoryContext:
    """Probe conventional directories; first existing candidate wins."""
    config = config or ChameleonConfig()
    if not repo_root.is_dir():
        raise ChameleonConfigError(
            f"Repository not found: {repo_root}\n\nTo fix: pass --repo pointing at the target repository root"
        )

    context = RepositoryContext(repo_root=str(repo_root))

    if config.page_object_dir and (repo_root / config.page_object_dir).is_dir():
        context.page_object_dir = config.page_object_dir
        context.repo_type = "STANDARD_POM"
    else:
        if config.page_object_dir:
            logger.warning("Configured page_object_dir %s does not exist; probing candidates", config.page_object_dir)
        po_dir = _first_dir(repo_root, PAGE_OBJECT_DIR_CANDIDATES)
        if po_dir:
            context.page_object_dir = po_dir
            context.repo_type = "STANDARD_POM"
        else:
            for candidate in COMPONENT_DIR_CANDIDATES:
                candidate_path = repo_root / candidate
                if candidate_path.is_dir() and _has_page_classes(candidate_path):
                    context.page_object_dir = candidate
                    context.repo_type = "COMPONENT_BASED"
                    break

    if config.test_dir and (repo_root / config.test_dir).is_dir():
        context.test_dir = config.test_dir
    else:
        context.test_dir = _first_dir(repo_root, TEST_DIR_CANDIDATES)

    if config.fixture_file and (repo_root / config.fixture_file).is_file():
        context.uses_fixtures = True
        context.fixture_file = config.fixture_file
    elif context.page_object_dir:
        po_path = repo_root / context.page_object_dir
        for name in FIXTURE_FILE_CANDIDATES:
            if (po_path / name).is_file():
                context.uses_fixtures = True
                context.fixture_file = f"{context.page_object_dir}/{name}"
                break

    for name in FRAMEWORK_CONFIG_CANDIDATES:
        if (repo_root / name).is_file():
            context.config_file = name
            break

    logger.debug(
        "Structure: type=%s pages=%s tests=%s fixtures=%s",
        context.repo_type,
        context.page_object_dir,
        context.test_dir,
        context.fixture_file,
    )
    return context


# ---------------------------------------------------------------------------
# Style detection
# ---------------------------------------------------------------------------


def detect_style(repo_root: Path, context: RepositoryContext, sample_size: int = 3) -> StyleProfile:
    """Detect coding style from a bounded sample of page-object files.

    Attributes are merged last-write-wins per attribute across the sample;
    this is an approximation, not a vote.
    """
    style = StyleProfile()
    if not context.page_object_dir:
        return style

    files = _source_files(repo_root / context.page_object_dir)[:sample_size]
    if not files:
        style.reasoning = f"No source files in {context.page_object_dir}"
        return style

    evidence = 0
    notes: list[str] = []
    for path in files:
        content = path.read_text(encoding="utf-8", errors="replace")
        found = False

        wrapper = WRAPPER_PATTERN.search(content)
        if wrapper:
            style.locator_style = "WrapperClass"
            style.wrapper_class_name = wrapper.group(2)
            found = True

        if GETTER_PATTERN.search(content):
            style.locator_style = "Getter"
            found = True

        native = NATIVE_PATTERN.search(content)
        if native:
            style.property_visibility = native.group(1)
            found = True
            if not wrapper and style.locator_style != "Getter":
                style.locator_style = "Native"

        class_match = CLASS_PATTERN.search(content)
        if class_match and class_match.group(2):
            style.base_class_name = class_match.group(2)

        if FLUENT_PATTERN.search(content):
            style.method_style = "Fluent"

        for imp in IMPORT_PATTERN.findall(content):
            if imp not in style.import_statements:
                style.import_statements.append(imp)

        if found:
            evidence += 1
        notes.append(f"{path.name}:{'locators' if found else 'no-locators'}")

    style.confidence = evidence / len(files)
    style.reasoning = f"Sampled {len(files)} file(s) [{', '.join(notes)}]; last-write-wins per attribute"
    return style


# ---------------------------------------------------------------------------
# Page-object indexing
# ---------------------------------------------------------------------------


def parse_locator_line(line: str, line_number: int) -> LocatorEntry | None:
    """Read one page-object source line into a LocatorEntry (None if it declares no locator)."""
    if "this.page." in line:
        segment = line.split("this.page.", 1)[1]
    elif CONSTRUCTOR_ASSIGN_PATTERN.search(line):
        segment = line.split("page.", 1)[1]
    else:
        return None

    descriptor = find_locator(segment)
    if descriptor is None:
        return None

    getter = _GETTER_NAME_PATTERN.search(line)
    assign = CONSTRUCTOR_ASSIGN_PATTERN.search(line)
    if getter:
        prop_name = getter.group(1)
    elif assign:
        prop_name = assign.group(1)
    else:
        prop_match = _PROPERTY_NAME_PATTERN.search(line)
        prop_name = prop_match.group(1) if prop_match else "unknown"

    return LocatorEntry(
        property_name=prop_name,
        selector_type=descriptor.kind,
        selector_value=descriptor.value,
        selector_options=dict(descriptor.options),
        raw_code=line.strip(),
        line_number=line_number,
    )


def extract_methods(content: str) -> list[MethodSignature]:
    methods: list[MethodSignature] = []
    for i, line in enumerate(content.split("\n"), 1):
        match = METHOD_PATTERN.match(line)
        if not match or match.group(1) in _NOT_METHODS:
            continue
        params = [p.strip() for p in match.group(2).split(",") if p.strip()]
        methods.append(
            MethodSignature(
                method_name=match.group(1),
                parameters=params,
                return_type=(match.group(3) or "void").strip(),
                line_number=i,
            )
        )
    return methods


def index_page_object_file(path: Path, repo_root: Path) -> PageObjectRecord | None:
    """Index one file; None when it declares no class."""
    content = path.read_text(encoding="utf-8", errors="replace")
    class_match = CLASS_PATTERN.search(content)
    if not class_match:
        logger.debug("Skipping %s: no class declaration", path)
        return None

    lines = content.split("\n")
    locators: list[LocatorEntry] = []
    for i, line in enumerate(lines, 1):
        entry = parse_locator_line(line, i)
        if entry is None:
            continue
        if entry.property_name == "unknown" and i >= 2:
            # multi-line getter: the name sits on the previous line
            getter = _GETTER_NAME_PATTERN.search(lines[i - 2])
            if getter:
                entry.property_name = getter.group(1)
        locators.append(entry)

    return PageObjectRecord(
        class_name=class_match.group(1),
        file_path=path.relative_to(repo_root).as_posix(),
        base_class=class_match.group(2),
        locators=locators,
        methods=extract_methods(content),
        imports=IMPORT_PATTERN.findall(content),
    )


def index_page_objects(repo_root: Path, context: RepositoryContext) -> PageObjectIndex:
    index: PageObjectIndex = {}
    if not context.page_object_dir:
        return index

    for path in _source_files(repo_root / context.page_object_dir):
        record = index_page_object_file(path, repo_root)
        if record is None:
            continue
        if record.class_name in index:
            logger.warning(
                "Duplicate page-object class %s in %s (keeping %s)",
                record.class_name,
                record.file_path,
                index[record.class_name].file_path,
            )
            continue
        index[record.class_name] = record
    return index


# ---------------------------------------------------------------------------
# Fixture registry
# ---------------------------------------------------------------------------


def parse_fixture_registry(repo_root: Path, context: RepositoryContext) -> FixtureRegistry:
    registry: FixtureRegistry = {}
    if not context.uses_fixtures or not context.fixture_file:
        return registry

    fixture_path = repo_root / context.fixture_file
    if not fixture_path.is_file():
        return registry
    content = fixture_path.read_text(encoding="utf-8", errors="replace")

    for match in FIXTURE_PATTERN.finditer(content):
        name, class_name, args = match.groups()
        registry[name] = FixtureEntry(
            class_name=class_name,
            file_path=context.fixture_file,
            instantiation=f"new {class_name}({args.strip()})",
        )

    # Fallback: the fixture type declaration, for names the first pass missed
    for pattern in FIXTURE_TYPE_PATTERNS:
        type_match = pattern.search(content)
        if not type_match:
            continue
        for name, class_name in _TYPE_ENTRY_PATTERN.findall(type_match.group(1)):
            if name in registry or not class_name[:1].isupper():
                continue
            registry[name] = FixtureEntry(
                class_name=class_name,
                file_path=context.fixture_file,
                instantiation=f"new {class_name}(page)",
            )

    return registry


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def perform_reconnaissance(repo_root: Path | str, config: ChameleonConfig | None = None) -> ReconnaissanceResult:
    """Run all of Phase I. Raises ChameleonConfigError only for a missing root."""
    config = config or ChameleonConfig()
    root = Path(repo_root)

    context = discover_structure(root, config)
    style = detect_style(root, context, config.style_sample_size)
    index = index_page_objects(root, context)
    registry = parse_fixture_registry(root, context)

    if style.base_class_name:
        context.base_class = style.base_class_name

    logger.info(
        "Reconnaissance: %s, %d page object(s), %d fixture(s), style=%s",
        context.repo_type,
        len(index),
        len(registry),
        style.locator_style,
    )
    return ReconnaissanceResult(
        repo_context=context,
        style_profile=style,
        page_object_index=index,
        fixture_registry=registry,
    )

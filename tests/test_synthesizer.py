"""Unit tests for chameleonqa.engine.synthesizer — properties, methods, proposals, test files."""

from __future__ import annotations

from pathlib import Path

import pytest

from chameleonqa.config import ChameleonConfig
from chameleonqa.engine.knowledge import (
    PageObjectModification,
    RepositoryContext,
    SelectorMapping,
    StyleProfile,
)
from chameleonqa.engine.locators import make_descriptor, parse_locator
from chameleonqa.engine.orchestrator import RefactorOrchestrator
from chameleonqa.engine.parser import parse_raw_code
from chameleonqa.engine.reconnaissance import index_page_object_file, parse_locator_line, perform_reconnaissance
from chameleonqa.engine.synthesizer import (
    apply_page_object_mod,
    find_fixture_for_class,
    generate_imports,
    generate_method,
    generate_property,
    generated_test_path,
    method_name_for,
    propose_page_object,
    slugify_instruction,
)


# ---------------------------------------------------------------------------
# Helpers: factory functions for test data
# ---------------------------------------------------------------------------

def _make_mapping(selector: str = "getByTestId('welcome-banner')", **overrides) -> SelectorMapping:
    defaults = {
        "selector": parse_locator(selector),
        "target_class": "LoginPage",
        "target_property": "welcomeBanner",
        "is_new_property": True,
        "confidence": 0.5,
    }
    defaults.update(overrides)
    return SelectorMapping(**defaults)


def _make_style(**overrides) -> StyleProfile:
    defaults = {"locator_style": "Native", "property_visibility": "readonly"}
    defaults.update(overrides)
    return StyleProfile(**defaults)


def _make_context(**overrides) -> RepositoryContext:
    defaults = {
        "repo_root": "/repo",
        "repo_type": "STANDARD_POM",
        "page_object_dir": "pages",
        "test_dir": "tests",
    }
    defaults.update(overrides)
    return RepositoryContext(**defaults)


# ---------------------------------------------------------------------------
# 1. Properties
# ---------------------------------------------------------------------------

class TestGenerateProperty:
    """Each locator style renders a declaration reconnaissance can read back."""

    @pytest.mark.parametrize(
        "selector",
        [
            "getByTestId('welcome-banner')",
            "getByRole('button', { name: 'Submit' })",
            "getByLabel('Email')",
            "locator('#submit')",
        ],
    )
    def test_native_round_trip(self, selector: str):
        mapping = _make_mapping(selector)
        line = generate_property(mapping, _make_style())
        entry = parse_locator_line(line, 1)
        assert entry.property_name == "welcomeBanner"
        assert entry.descriptor == mapping.selector

    def test_native_text(self):
        line = generate_property(_make_mapping(), _make_style(property_visibility="public"))
        assert line == "  public welcomeBanner = this.page.getByTestId('welcome-banner');"

    def test_wrapper(self):
        style = _make_style(locator_style="WrapperClass", wrapper_class_name="WebControl", property_visibility="public")
        line = generate_property(_make_mapping(), style)
        assert line == "  public welcomeBanner = new WebControl(this.page.getByTestId('welcome-banner'), 'Welcome Banner');"
        entry = parse_locator_line(line, 1)
        assert entry.property_name == "welcomeBanner"
        assert entry.selector_value == "welcome-banner"

    def test_wrapper_default_class(self):
        style = _make_style(locator_style="WrapperClass", wrapper_class_name=None)
        assert "new WebControl(" in generate_property(_make_mapping(), style)

    def test_getter(self):
        line = generate_property(_make_mapping(), _make_style(locator_style="Getter"))
        assert line == "  get welcomeBanner() { return this.page.getByTestId('welcome-banner'); }"
        assert parse_locator_line(line, 1).property_name == "welcomeBanner"


# ---------------------------------------------------------------------------
# 2. Methods
# ---------------------------------------------------------------------------

MENU_SCRIPT = (
    "await page.getByTestId('profile-menu').click();\n"
    "await page.getByRole('menuitem', { name: 'Settings' }).click();"
)


def _menu_setup():
    parsed = parse_raw_code(MENU_SCRIPT)
    cluster = parsed.clusters[0]
    mappings = [
        _make_mapping("getByTestId('profile-menu')", target_class="LayoutPage", target_property="profileMenu",
                      is_new_property=False, confidence=1.0),
        _make_mapping("getByRole('menuitem', { name: 'Settings' })", target_class="LayoutPage",
                      target_property="settings"),
    ]
    return cluster, mappings


class TestGenerateMethod:
    """Menu clusters become page-object methods."""

    def test_atomic(self):
        cluster, mappings = _menu_setup()
        assert cluster.type == "MENU_INTERACTION"
        method = generate_method(cluster, mappings, _make_style(), ChameleonConfig())
        assert method.splitlines() == [
            "  public async selectSettings() {",
            "    await this.profileMenu.click();",
            "    await this.settings.click();",
            "  }",
        ]

    def test_name_made_unique_against_taken(self):
        cluster, mappings = _menu_setup()
        assert method_name_for(cluster, mappings) == "selectSettings"
        assert method_name_for(cluster, mappings, {"settings", "selectSettings"}) == "selectSettings2"

    def test_method_never_shares_a_property_name(self, sample_repo: Path):
        knowledge = RefactorOrchestrator().build_knowledge(
            "await page.getByTestId('profile-menu').click();\nawait page.getByTestId('sign-out').click();",
            "Sign out",
            sample_repo,
        )
        [mod] = knowledge.modifications
        assert mod.class_name == "LayoutPage"
        assert mod.new_properties == ["  readonly signOut = this.page.getByTestId('sign-out');"]
        [method] = mod.new_methods
        assert method.splitlines()[0] == "  public async selectSignOut() {"
        record = knowledge.page_object_index["LayoutPage"]
        assert "selectSignOut" not in record.property_names() | {"signOut"}

    def test_fluent_returns_this(self):
        cluster, mappings = _menu_setup()
        method = generate_method(cluster, mappings, _make_style(method_style="Fluent"), ChameleonConfig())
        assert "    return this;" in method.splitlines()

    def test_wrapper_uses_control_locator(self):
        cluster, mappings = _menu_setup()
        style = _make_style(locator_style="WrapperClass", wrapper_class_name="WebControl")
        method = generate_method(cluster, mappings, style, ChameleonConfig())
        assert "await this.profileMenu.controlLocator.click();" in method


# ---------------------------------------------------------------------------
# 3. Modifications and proposals
# ---------------------------------------------------------------------------

class TestModifications:
    """Staged edits splice into existing sources."""

    def test_apply_mod_after_last_locator(self, sample_repo: Path):
        path = sample_repo / "pages" / "LoginPage.ts"
        record = index_page_object_file(path, sample_repo)
        mod = PageObjectModification(
            file_path=record.file_path,
            class_name="LoginPage",
            new_properties=["  readonly welcomeBanner = this.page.getByTestId('welcome-banner');"],
            new_methods=[],
            insertion_point=max(loc.line_number for loc in record.locators) + 1,
        )
        updated = apply_page_object_mod(path.read_text(encoding="utf-8"), mod)
        lines = updated.splitlines()
        marker = lines.index("  // Auto-generated properties")
        assert lines[marker - 2].strip().startswith("readonly passwordInput")
        assert lines[marker + 1].strip() == "readonly welcomeBanner = this.page.getByTestId('welcome-banner');"
        assert "constructor(page: Page)" in updated
        path.write_text(updated, encoding="utf-8")
        reindexed = index_page_object_file(path, sample_repo)
        assert "welcomeBanner" in reindexed.property_names()

    def test_apply_mod_skips_blank_run(self):
        content = "class A {\n  readonly a = 1;\n\n\n  async go() {}\n}"
        mod = PageObjectModification(
            file_path="a.ts",
            class_name="A",
            new_properties=["  readonly b = 1;"],
            new_methods=[],
            insertion_point=3,
        )
        assert apply_page_object_mod(content, mod).split("\n") == [
            "class A {",
            "  readonly a = 1;",
            "",
            "",
            "  // Auto-generated properties",
            "  readonly b = 1;",
            "",
            "  async go() {}",
            "}",
        ]

    def test_proposal_without_base_class(self):
        proposal = propose_page_object(
            "UnknownPage", [_make_mapping(target_class="UnknownPage")], [], _make_style(), _make_context()
        )
        assert proposal.file_path == "pages/UnknownPage.ts"
        assert "export class UnknownPage {" in proposal.content
        assert "  readonly page: Page;" in proposal.content
        assert "this.page = page;" in proposal.content
        assert "readonly welcomeBanner = this.page.getByTestId('welcome-banner');" in proposal.content

    def test_proposal_with_base_class_imports_it(self):
        style = _make_style(
            base_class_name="BasePage",
            import_statements=["import { BasePage } from './BasePage';", "import { Locator } from '@playwright/test';"],
        )
        proposal = propose_page_object("UnknownPage", [_make_mapping()], [], style, _make_context(page_object_dir=None))
        assert proposal.file_path == "pages/UnknownPage.ts"
        assert "export class UnknownPage extends BasePage {" in proposal.content
        assert "super(page);" in proposal.content
        assert "import { BasePage } from './BasePage';" in proposal.content
        assert "Locator" not in proposal.content


# ---------------------------------------------------------------------------
# 4. Test file
# ---------------------------------------------------------------------------

class TestTestFile:
    """Generated tests drive page objects through fixtures."""

    def test_slugify(self):
        assert slugify_instruction("Submit contact form!") == "submit-contact-form"
        assert slugify_instruction("!!!") == "refactored-test"
        assert len(slugify_instruction("x" * 80)) <= 30

    def test_generated_path(self):
        assert generated_test_path("Sign in", _make_context()) == "tests/sign-in.spec.ts"
        assert generated_test_path("Sign in", _make_context(test_dir=None)) == "tests/sign-in.spec.ts"

    def test_fixture_lookup(self, sample_repo: Path):
        registry = perform_reconnaissance(sample_repo).fixture_registry
        assert find_fixture_for_class("LoginPage", registry) == "loginPage"
        assert find_fixture_for_class("UnknownPage", registry) == "unknownPage"

    def test_imports_with_fixture_file(self):
        ctx = _make_context(uses_fixtures=True, fixture_file="pages/fixture.ts")
        imports, has_tags = generate_imports(ctx, _make_style(), "tests/sign-in.spec.ts")
        assert imports == [
            "import { test } from '../pages/fixture';",
            "import { expect } from '@playwright/test';",
        ]
        assert has_tags is False

    def test_imports_without_fixtures(self):
        imports, _ = generate_imports(_make_context(), _make_style(), "tests/a.spec.ts")
        assert imports == ["import { test, expect } from '@playwright/test';"]

    def test_test_tags_resolved_from_test_dir(self):
        style = _make_style(import_statements=["import { TestTags } from '../utils/testTags';"])
        imports, has_tags = generate_imports(_make_context(), style, "tests/a.spec.ts")
        assert has_tags is True
        assert "import { TestTags } from '../utils/testTags';" in imports

    def test_generated_file_content(self, sample_repo: Path, login_script: str):
        knowledge = RefactorOrchestrator().build_knowledge(login_script, "Sign in", sample_repo)
        test = knowledge.generated_test
        assert test.file_path == "tests/sign-in.spec.ts"
        assert test.fixtures == ["loginPage"]
        content = test.content
        assert "import { test } from '../pages/fixture';" in content
        assert "test.describe('Sign in', () => {" in content
        assert "test('QA Test: Sign in', async ({ page, loginPage }) => {" in content
        assert "const EMAIL = process.env.TEST_EMAIL || 'test@example.com';" in content
        assert "await page.goto('https://app.example.com/login');" in content
        assert "await loginPage.signInBtn.click();" in content
        assert "await loginPage.welcomeBanner.click();" in content
        assert "await expect(page.getByTestId('welcome-banner')).toBeVisible();" in content
        assert "// Navigate to https://app.example.com/login" in content

    def test_extracted_value_keeps_its_variable(self, sample_repo: Path):
        knowledge = RefactorOrchestrator().build_knowledge(
            "await page.goto('https://app.example.com/login');\n"
            "const label = await page.getByTestId('sign-in-button').textContent();\n"
            "expect(label).toBe('Sign in');",
            "Label",
            sample_repo,
        )
        content = knowledge.generated_test.content
        assert "const label = await loginPage.signInBtn.textContent();" in content
        assert "await expect(label).toBe('Sign in');" in content
        assert content.index("const label") < content.index("expect(label)")

    def test_synthesize_stages_modification(self, sample_repo: Path, login_script: str):
        knowledge = RefactorOrchestrator().build_knowledge(login_script, "Sign in", sample_repo)
        [mod] = knowledge.modifications
        assert mod.class_name == "LoginPage"
        assert mod.new_properties == ["  readonly welcomeBanner = this.page.getByTestId('welcome-banner');"]
        assert knowledge.proposed_page_objects == []

    def test_synthesize_proposes_for_unknown_class(self, empty_repo: Path, form_script: str):
        knowledge = RefactorOrchestrator().build_knowledge(form_script, "Contact", empty_repo)
        assert knowledge.modifications == []
        [proposal] = knowledge.proposed_page_objects
        assert proposal.class_name == "UnknownPage"
        assert "const email = 'a@b.com';" in knowledge.generated_test.content
        assert "await unknownPage.email.fill(email);" in knowledge.generated_test.content
        assert "import { test, expect } from '@playwright/test';" in knowledge.generated_test.content

    def test_unresolved_selector_passes_through(self, empty_repo: Path):
        knowledge = RefactorOrchestrator().build_knowledge(
            "await page.waitForURL('**/done');\nawait page.click(target);\nawait page.press('body', 'Escape');",
            "Keys",
            empty_repo,
        )
        content = knowledge.generated_test.content
        assert "await page.waitForURL('**/done');" in content
        assert "await page.click(target);" in content
        assert "await unknownPage.body.press('Escape');" in content

    def test_descriptor_round_trip_of_special_kinds(self):
        mapping = _make_mapping("locator('//div[@id=\"main\"]')")
        entry = parse_locator_line(generate_property(mapping, _make_style()), 1)
        assert entry.descriptor == make_descriptor("xpath", '//div[@id="main"]')

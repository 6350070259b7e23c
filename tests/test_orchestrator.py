"""Unit tests for chameleonqa.engine.orchestrator — the full pipeline with a fake runner."""

from __future__ import annotations

from pathlib import Path

from conftest import FakeExecutor, failing

from chameleonqa.config import ChameleonConfig
from chameleonqa.engine.orchestrator import RefactorOrchestrator


def _snapshot(root: Path) -> dict[str, str]:
    return {
        p.relative_to(root).as_posix(): p.read_text(encoding="utf-8")
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


# ---------------------------------------------------------------------------
# 1. Dry run
# ---------------------------------------------------------------------------

class TestDryRun:
    """Dry runs stage everything and write nothing."""

    def test_no_writes(self, sample_repo: Path, login_script: str):
        before = _snapshot(sample_repo)
        executor = FakeExecutor()
        result = RefactorOrchestrator(executor=executor).run(login_script, "Sign in", sample_repo, dry_run=True)
        assert result.success is True
        assert _snapshot(sample_repo) == before
        assert executor.calls == []
        assert result.modified_files == []
        assert result.generated_test_path == str(sample_repo / "tests" / "sign-in.spec.ts")
        assert result.knowledge.generated_test is not None
        assert result.warnings == []

    def test_warns_when_test_has_no_assertions(self, sample_repo: Path):
        result = RefactorOrchestrator(executor=FakeExecutor()).run(
            "await page.getByTestId('sign-in-button').click();", "Click", sample_repo, dry_run=True
        )
        assert "No assertions (expect) found in test" in result.warnings

    def test_default_instruction(self, sample_repo: Path, login_script: str):
        result = RefactorOrchestrator(executor=FakeExecutor()).run(login_script, repo_path=sample_repo, dry_run=True)
        assert result.generated_test_path.endswith("refactored-test.spec.ts")

    def test_unknown_repo_is_reported(self, empty_repo: Path, form_script: str):
        result = RefactorOrchestrator(executor=FakeExecutor()).run(form_script, "Contact", empty_repo, dry_run=True)
        assert result.success is True
        assert any("Could not detect repository structure" in e for e in result.errors)
        assert result.knowledge.proposed_page_objects[0].class_name == "UnknownPage"


# ---------------------------------------------------------------------------
# 2. Apply mode
# ---------------------------------------------------------------------------

class TestApply:
    """Apply mode writes staged changes, then verifies."""

    def test_success(self, sample_repo: Path, login_script: str):
        executor = FakeExecutor()
        result = RefactorOrchestrator(executor=executor).run(login_script, "Sign in", sample_repo)
        assert result.success is True
        assert result.errors == []
        assert result.modified_files == [str(sample_repo / "pages" / "LoginPage.ts")]
        login_source = (sample_repo / "pages" / "LoginPage.ts").read_text(encoding="utf-8")
        assert "// Auto-generated properties" in login_source
        assert "readonly welcomeBanner = this.page.getByTestId('welcome-banner');" in login_source
        test_file = sample_repo / "tests" / "sign-in.spec.ts"
        assert test_file.is_file()
        assert executor.calls == ["tests/sign-in.spec.ts"]
        assert result.knowledge.verification.state == "PASSED"

    def test_verification_failure(self, sample_repo: Path, login_script: str):
        executor = FakeExecutor(failing("mysterious crash"))
        result = RefactorOrchestrator(executor=executor).run(login_script, "Sign in", sample_repo)
        assert result.success is False
        assert "Unknown: mysterious crash" in result.errors
        assert result.errors[-1] == "Verification UNFIXABLE after 1 attempt(s)"

    def test_exhausted_respects_config_budget(self, sample_repo: Path, login_script: str):
        executor = FakeExecutor(failing("Test timeout of 30000ms exceeded."))
        config = ChameleonConfig(max_retries=2)
        result = RefactorOrchestrator(config, executor).run(login_script, "Sign in", sample_repo)
        assert len(executor.calls) == 2
        assert result.knowledge.verification.state == "EXHAUSTED"
        content = (sample_repo / "tests" / "sign-in.spec.ts").read_text(encoding="utf-8")
        assert "// Consider breaking down the test or increasing timeout" in content

    def test_wait_repair_lands_on_fixture_statement(self, sample_repo: Path):
        script = "await page.goto('https://x.test/login');\nawait page.getByTestId('sign-in-button').click();"
        executor = FakeExecutor(
            failing("Error: locator.click: Timeout 30000ms exceeded.\n  - waiting for getByTestId('sign-in-button')\n"),
            FakeExecutor().results[0],
        )
        result = RefactorOrchestrator(executor=executor).run(script, "Sign in", sample_repo)
        assert result.success is True
        lines = (sample_repo / "tests" / "sign-in.spec.ts").read_text(encoding="utf-8").splitlines()
        wait = next(i for i, line in enumerate(lines) if ".waitFor({" in line)
        goto = next(i for i, line in enumerate(lines) if "page.goto(" in line)
        assert goto < wait
        assert lines[wait + 1].strip() == "await loginPage.signInBtn.click();"

    def test_proposals_not_written_by_default(self, empty_repo: Path, form_script: str):
        RefactorOrchestrator(executor=FakeExecutor()).run(form_script, "Contact", empty_repo)
        assert not (empty_repo / "pages").exists()
        assert (empty_repo / "tests" / "contact.spec.ts").is_file()

    def test_proposals_written_when_enabled(self, empty_repo: Path, form_script: str):
        config = ChameleonConfig(create_missing_page_objects=True)
        result = RefactorOrchestrator(config, FakeExecutor()).run(form_script, "Contact", empty_repo)
        proposal = empty_repo / "pages" / "UnknownPage.ts"
        assert proposal.is_file()
        assert str(proposal) in result.modified_files

    def test_existing_file_not_overwritten_by_proposal(self, empty_repo: Path, form_script: str):
        existing = empty_repo / "pages" / "UnknownPage.ts"
        existing.parent.mkdir()
        existing.write_text("// hand written\n", encoding="utf-8")
        config = ChameleonConfig(create_missing_page_objects=True, page_object_dir="pages")
        RefactorOrchestrator(config, FakeExecutor()).run(form_script, "Contact", empty_repo)
        assert existing.read_text(encoding="utf-8") == "// hand written\n"


# ---------------------------------------------------------------------------
# 3. Failures
# ---------------------------------------------------------------------------

class TestFailures:
    """Nothing escapes run(); failures are aggregated."""

    def test_missing_repo(self, tmp_path: Path, login_script: str):
        result = RefactorOrchestrator(executor=FakeExecutor()).run(login_script, "x", tmp_path / "missing")
        assert result.success is False
        assert result.errors[0].startswith("Pipeline error: Repository not found")
        assert result.knowledge is None

    def test_expired_deadline_writes_nothing(self, sample_repo: Path, login_script: str):
        before = _snapshot(sample_repo)
        result = RefactorOrchestrator(executor=FakeExecutor()).run(login_script, "x", sample_repo, timeout=0)
        assert result.success is False
        assert "deadline" in result.errors[0]
        assert _snapshot(sample_repo) == before

    def test_executor_crash_is_caught(self, sample_repo: Path, login_script: str):
        class ExplodingExecutor:
            def run(self, test_file, repo_root, timeout=None):
                raise RuntimeError("runner exploded")

        result = RefactorOrchestrator(executor=ExplodingExecutor()).run(login_script, "x", sample_repo)
        assert result.success is False
        assert result.errors == ["Pipeline error: runner exploded"]

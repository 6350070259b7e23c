"""Shared fixtures for ChameleonQA unit tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from chameleonqa.engine.knowledge import ExecutionResult


LOGIN_PAGE = """\
import { Page } from '@playwright/test';
import { LayoutPage } from './LayoutPage';

export class LoginPage extends LayoutPage {
  readonly signInBtn = this.page.getByTestId('sign-in-button');
  readonly emailInput = this.page.getByLabel('Email');
  readonly passwordInput = this.page.getByLabel('Password');

  constructor(page: Page) {
    super(page);
  }

  async signIn(email: string, password: string): Promise<void> {
    await this.emailInput.fill(email);
    await this.passwordInput.fill(password);
    await this.signInBtn.click();
  }
}
"""

LAYOUT_PAGE = """\
import { Page } from '@playwright/test';

export class LayoutPage {
  readonly page: Page;
  readonly profileMenu = this.page.getByTestId('profile-menu');
  readonly logoutButton = this.page.getByRole('button', { name: 'Logout' });

  constructor(page: Page) {
    this.page = page;
  }
}
"""

FIXTURE_FILE = """\
import { test as base } from '@playwright/test';
import { LoginPage } from './LoginPage';
import { LayoutPage } from './LayoutPage';

type Pages = {
  loginPage: LoginPage;
  layoutPage: LayoutPage;
};

export const test = base.extend<Pages>({
  loginPage: async ({ page }, use) => {
    await use(new LoginPage(page));
  },
  layoutPage: async ({ page }, use) => {
    await use(new LayoutPage(page));
  },
});
"""


# ---------------------------------------------------------------------------
# Fixture: a small Playwright repository with page objects and fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_repo(tmp_path: Path) -> Path:
    """Create a target repository: pages/, a fixture file, tests/ and a Playwright config."""
    repo = tmp_path / "webapp"
    pages = repo / "pages"
    pages.mkdir(parents=True)
    (pages / "LoginPage.ts").write_text(LOGIN_PAGE, encoding="utf-8")
    (pages / "LayoutPage.ts").write_text(LAYOUT_PAGE, encoding="utf-8")
    (pages / "fixture.ts").write_text(FIXTURE_FILE, encoding="utf-8")
    (repo / "tests").mkdir()
    (repo / "tests" / "smoke.spec.ts").write_text(
        "import { test } from '../pages/fixture';\n", encoding="utf-8"
    )
    (repo / "playwright.config.ts").write_text("export default {};\n", encoding="utf-8")
    return repo


@pytest.fixture
def empty_repo(tmp_path: Path) -> Path:
    """A repository root with no recognisable structure."""
    repo = tmp_path / "bare"
    repo.mkdir()
    return repo


# ---------------------------------------------------------------------------
# Fixture: recorded scripts
# ---------------------------------------------------------------------------

@pytest.fixture
def form_script() -> str:
    return (
        "const email = 'a@b.com'; "
        "await page.getByLabel('Email').fill(email); "
        "await page.getByRole('button', {name:'Submit'}).click();"
    )


@pytest.fixture
def login_script() -> str:
    return """\
import { test, expect } from '@playwright/test';

test('recorded', async ({ page }) => {
  await page.goto('https://app.example.com/login');
  await page.getByTestId('sign-in-button').click();
  await page.getByTestId('welcome-banner').click();
  await expect(page.getByTestId('welcome-banner')).toBeVisible();
});
"""


# ---------------------------------------------------------------------------
# Fake test runner
# ---------------------------------------------------------------------------

class FakeExecutor:
    """Replays canned ExecutionResults; repeats the last one when exhausted."""

    def __init__(self, *results: ExecutionResult) -> None:
        self.results = list(results) or [ExecutionResult(passed=True, stdout="1 passed", stderr="", exit_code=0)]
        self.calls: list[str] = []

    def run(self, test_file: str, repo_root: Path, timeout: float | None = None) -> ExecutionResult:
        self.calls.append(test_file)
        index = min(len(self.calls) - 1, len(self.results) - 1)
        return self.results[index]


def failing(stderr: str) -> ExecutionResult:
    return ExecutionResult(passed=False, stdout="", stderr=stderr, exit_code=1)


@pytest.fixture
def passing_executor() -> FakeExecutor:
    return FakeExecutor()

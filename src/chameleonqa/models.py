"""Centralized defaults: discovery candidates, keyword sets, scoring weights."""

# Directory discovery: probed in order, first existing match wins
PAGE_OBJECT_DIR_CANDIDATES = (
    "pages",
    "page-objects",
    "po",
    "src/pages",
    "lib/pages",
    "src/page-objects",
)

COMPONENT_DIR_CANDIDATES = (
    "components",
    "src/components",
)

TEST_DIR_CANDIDATES = (
    "tests",
    "test",
    "e2e",
    "spec",
    "src/tests",
    "__tests__",
)

# Looked up inside the page-object directory
FIXTURE_FILE_CANDIDATES = (
    "fixture.ts",
    "fixtures.ts",
    "test.extend.ts",
    "base.ts",
)

FRAMEWORK_CONFIG_CANDIDATES = (
    "playwright.config.ts",
    "playwright.config.js",
)

SOURCE_EXTENSIONS = (".ts", ".js")

# Repository configuration file names (searched in the target repo root)
CONFIG_FILE_NAMES = ("chameleonqa.yaml", ".chameleonqa.yaml")

# Enumerations (plain strings, as stored on the dataclasses)
REPO_TYPES = ("STANDARD_POM", "COMPONENT_BASED", "UNKNOWN")
LOCATOR_STYLES = ("WrapperClass", "Native", "Getter")
METHOD_STYLES = ("Atomic", "Fluent")
CLUSTER_TYPES = (
    "NAVIGATION",
    "AUTHENTICATION",
    "FORM_SUBMISSION",
    "MENU_INTERACTION",
    "VERIFICATION",
    "GENERIC",
)
ERROR_TYPES = (
    "ElementNotFound",
    "ElementIntercepted",
    "StaleElement",
    "AssertionFailed",
    "Timeout",
    "Unknown",
)

# Heuristic keyword sets
AUTH_KEYWORDS = (
    "password",
    "login",
    "log in",
    "signin",
    "sign-in",
    "sign in",
    "username",
    "auth",
    "credential",
)

CONTAINER_KEYWORDS = (
    "menu",
    "dropdown",
    "modal",
    "dialog",
    "popup",
    "profile",
    "nav",
    "sidebar",
)

GLOBAL_KEYWORDS = (
    "header",
    "nav",
    "footer",
    "sidebar",
    "theme",
    "profile",
    "menu",
    "logout",
)

# Mapping engine scoring
DEFAULT_ANCHOR_BONUS = 0.5
DEFAULT_GLOBAL_BONUS = 0.2
DEFAULT_TIE_MARGIN = 0.1
UNKNOWN_PAGE_CLASS = "UnknownPage"
DEFAULT_UNMATCHED_CONFIDENCE = 0.5

# Code synthesis
DEFAULT_WRAPPER_CLASS = "WebControl"
DEFAULT_WRAPPER_LOCATOR_ATTRIBUTE = "controlLocator"
FALLBACK_INSERTION_LINE = 10
TEST_FILE_SUFFIX = ".spec.ts"
DEFAULT_TEST_DIR = "tests"

TEST_DATA_DEFAULTS = {
    "email_env": "TEST_EMAIL",
    "password_env": "TEST_PASSWORD",
    "email_default": "test@example.com",
    "password_default": "password123",
}

# Verification loop
DEFAULT_MAX_RETRIES = 3
DEFAULT_PLAYWRIGHT_PROJECT = "chromium"
DEFAULT_STYLE_SAMPLE_SIZE = 3
ERROR_MESSAGE_LIMIT = 200
POLL_TIMEOUT_MS = 15000
KNOWN_OVERLAY_SELECTOR = ".MuiBackdrop-root"

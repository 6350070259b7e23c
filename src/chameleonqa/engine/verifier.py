"""ChameleonQA Verification Loop — run, classify, repair, retry.

State machine::

    ATTEMPTING -> PASSED
    ATTEMPTING -> CLASSIFYING -> FIXING -> ATTEMPTING
                              -> UNFIXABLE   (no repair for the failure)
                              -> EXHAUSTED   (attempt budget spent)

The test runner sits behind the ``TestExecutor`` protocol so the loop can
be driven without Node installed.  Repairs are text edits scoped to the
failing statement and accumulate across attempts.
"""

from __future__ import annotations

import dataclasses
import logging
import re
import shlex
import subprocess
import time
from pathlib import Path
from typing import Callable, Protocol, runtime_checkable

from chameleonqa.config import PipelineTimeoutError
from chameleonqa.engine.knowledge import ClassifiedError, ExecutionResult, FixAction, VerificationOutcome
from chameleonqa.engine.locators import LocatorDescriptor, parse_locator
from chameleonqa.models import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_PLAYWRIGHT_PROJECT,
    ERROR_MESSAGE_LIMIT,
    KNOWN_OVERLAY_SELECTOR,
    POLL_TIMEOUT_MS,
)

logger = logging.getLogger("chameleonqa.engine.verifier")


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


@runtime_checkable
class TestExecutor(Protocol):
    """Runs one generated test file inside the target repository."""

    def run(self, test_file: str, repo_root: Path, timeout: float | None = None) -> ExecutionResult: ...


class PlaywrightTestExecutor:
    """Runs ``npx playwright test`` (or a configured command) as a child process.

    ``subprocess.run`` kills the child when ``timeout`` expires; the expiry is
    surfaced as ``PipelineTimeoutError`` so the whole run aborts.
    """

    def __init__(self, project: str = DEFAULT_PLAYWRIGHT_PROJECT, test_command: str | None = None) -> None:
        self._project = project
        self._test_command = test_command

    def command(self, test_file: str) -> list[str]:
        if self._test_command:
            return [*shlex.split(self._test_command), test_file]
        return ["npx", "playwright", "test", test_file, f"--project={self._project}", "--reporter=line"]

    def run(self, test_file: str, repo_root: Path, timeout: float | None = None) -> ExecutionResult:
        cmd = self.command(test_file)
        logger.debug("Executing: %s (cwd=%s, timeout=%s)", " ".join(cmd), repo_root, timeout)
        start = time.monotonic()
        try:
            proc = subprocess.run(cmd, cwd=repo_root, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            raise PipelineTimeoutError(
                f"Test execution exceeded the run deadline ({timeout:.1f}s): {test_file}\n\n"
                "To fix: raise --timeout or the timeout key in chameleonqa.yaml"
            ) from exc
        except FileNotFoundError as exc:
            return ExecutionResult(
                passed=False,
                stdout="",
                stderr=f"Test runner not found: {cmd[0]} ({exc})",
                exit_code=None,
                duration_seconds=round(time.monotonic() - start, 2),
            )
        return ExecutionResult(
            passed=proc.returncode == 0,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            exit_code=proc.returncode,
            duration_seconds=round(time.monotonic() - start, 2),
        )


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def locator_expression(text: str) -> str | None:
    """Leading locator call chain of ``text`` (e.g. ``locator('#submit')``), or None."""
    text = text.strip()
    if not re.match(r"(?:page\.)?(?:locator|getBy\w+)\s*\(", text):
        return None
    depth = 0
    quote_char: str | None = None
    end = None
    for i, ch in enumerate(text):
        if quote_char:
            if ch == quote_char and text[i - 1] != "\\":
                quote_char = None
            continue
        if ch in "'\"`":
            quote_char = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                end = i + 1
                if not text.startswith(".", end):
                    break
    return text[:end] if end else None


@dataclasses.dataclass(frozen=True)
class ErrorSignature:
    type: str
    pattern: re.Pattern
    extract: Callable[[re.Match], dict] | None = None


def _waiting_for(match: re.Match) -> dict:
    return {"locator": locator_expression(match.group("target"))}


def _backdrop(match: re.Match) -> dict:
    return {"suggestion": "Wait for backdrop to disappear"}


def _assertion(match: re.Match) -> dict:
    return {"message": f"Assertion failed: {match.group(1)}"}


# Ordered: first match wins.
ERROR_SIGNATURES: tuple[ErrorSignature, ...] = (
    ErrorSignature("ElementNotFound", re.compile(r"Timeout \d+ms exceeded.*?waiting for (?P<target>[^\n]+)", re.S), _waiting_for),
    ErrorSignature("ElementNotFound", re.compile(r"locator\.(?:click|fill|type): Timeout.*waiting for element", re.S)),
    ErrorSignature("ElementIntercepted", re.compile(r"MuiBackdrop-root", re.S), _backdrop),
    ErrorSignature("ElementIntercepted", re.compile(r"locator\.(?:click|fill): Element is (?:intercepted|overlapped)", re.S)),
    ErrorSignature("ElementIntercepted", re.compile(r"intercepts pointer events|intercepting pointer events", re.S)),
    ErrorSignature("StaleElement", re.compile(r"Element is (?:stale|detached)|not attached to the DOM", re.S)),
    ErrorSignature(
        "AssertionFailed",
        re.compile(r"expect\(received\)\.(toBe|toEqual|toContain|toBeVisible|toHaveText)\((.*)\)", re.S),
        _assertion,
    ),
    ErrorSignature("AssertionFailed", re.compile(r"Expected:.*Received:", re.S)),
    ErrorSignature("Timeout", re.compile(r"Test timeout of \d+ms exceeded", re.S)),
)


def reported_line(output: str, test_file: str | None) -> int | None:
    """Line of ``test_file`` named in a runner stack frame (``sign-in.spec.ts:12:5``)."""
    if not test_file:
        return None
    match = re.search(rf"\b{re.escape(Path(test_file).name)}:(\d+):\d+", output)
    return int(match.group(1)) if match else None


def classify_error(stderr: str, stdout: str = "", test_file: str | None = None) -> ClassifiedError:
    """Match diagnostics against ``ERROR_SIGNATURES`` (stderr first, then stdout)."""
    error = _match_signature(stderr, stdout)
    error.line = reported_line(f"{stderr}\n{stdout}", test_file)
    return error


def _match_signature(stderr: str, stdout: str) -> ClassifiedError:
    for stream in (stderr, stdout):
        if not stream:
            continue
        for signature in ERROR_SIGNATURES:
            match = signature.pattern.search(stream)
            if not match:
                continue
            fields = {"message": match.group(0)}
            if signature.extract:
                fields.update(signature.extract(match))
            fields["message"] = fields["message"][:ERROR_MESSAGE_LIMIT]
            return ClassifiedError(type=signature.type, **fields)
    return ClassifiedError(type="Unknown", message=(stderr or stdout)[:ERROR_MESSAGE_LIMIT])


# ---------------------------------------------------------------------------
# Repairs
# ---------------------------------------------------------------------------


def _page_scoped(locator: str) -> str:
    return locator if locator.startswith("page.") else f"page.{locator}"


def determine_fix(error: ClassifiedError, test_file: str) -> FixAction | None:
    """At most one deterministic repair per classification; None for Unknown."""
    fix = _repair_for(error, test_file)
    if fix is not None and error.line is not None:
        fix = dataclasses.replace(fix, source_line=error.line)
    return fix


def _repair_for(error: ClassifiedError, test_file: str) -> FixAction | None:
    if error.type == "ElementNotFound":
        if error.locator:
            return FixAction(
                type="ADD_WAIT",
                code=f"await {_page_scoped(error.locator)}.waitFor({{ state: 'visible' }});",
                target_file=test_file,
                locator=error.locator,
            )
        return FixAction(type="ADD_WAIT", code="await page.waitForLoadState('networkidle');", target_file=test_file)

    if error.type == "ElementIntercepted":
        if "backdrop" in (error.suggestion or "").lower() or "MuiBackdrop" in error.message:
            return FixAction(
                type="ADD_WAIT",
                code=f"await page.waitForSelector('{KNOWN_OVERLAY_SELECTOR}', {{ state: 'hidden' }});",
                target_file=test_file,
            )
        return FixAction(type="MODIFY_CLICK", code=".click({ force: true })", target_file=test_file, locator=error.locator)

    if error.type == "StaleElement":
        return FixAction(type="RE_QUERY", code="// Re-query the element before interacting", target_file=test_file)

    if error.type == "AssertionFailed":
        return FixAction(type="ADD_POLL", code=f"expect.poll(..., {{ timeout: {POLL_TIMEOUT_MS} }})", target_file=test_file)

    if error.type == "Timeout":
        return FixAction(
            type="ADD_COMMENT",
            code="// Consider breaking down the test or increasing timeout",
            target_file=test_file,
        )
    return None


_ACTION_LINE = re.compile(r"^\s*await\s+(?!expect\b)")
_NAVIGATION = re.compile(r"\bpage\.(?:goto|waitForURL|waitForLoadState)\(")
_POLL_TARGET = re.compile(r"await expect\((?P<target>.*?)\)\.(?P<matcher>toBeVisible|toHaveText)\((?P<args>.*?)\);?\s*$")


def _body_start(lines: list[str]) -> int:
    for i, line in enumerate(lines):
        if re.search(r"\btest\(", line):
            return i + 1
    return 0


def _first_action(lines: list[str]) -> int | None:
    """First interaction of the body; navigation never counts."""
    for i in range(_body_start(lines), len(lines)):
        if _ACTION_LINE.match(lines[i]) and "waitFor" not in lines[i] and not _NAVIGATION.search(lines[i]):
            return i
    return None


def _needles(locator: str | None, references: dict[LocatorDescriptor, str] | None) -> list[str]:
    """Texts that denote ``locator`` in a generated test: the raw call and its fixture property."""
    if not locator:
        return []
    bare = locator[len("page."):] if locator.startswith("page.") else locator
    needles = [bare]
    descriptor = parse_locator(bare)
    if references and descriptor is not None and descriptor in references:
        needles.append(references[descriptor])
    return needles


def _mentions(line: str, needles: list[str]) -> bool:
    return any(re.search(rf"{re.escape(needle)}(?![\w$])", line) for needle in needles)


def _first_reference(
    lines: list[str], locator: str | None, references: dict[LocatorDescriptor, str] | None = None
) -> int | None:
    needles = _needles(locator, references)
    if not needles:
        return None
    for i in range(_body_start(lines), len(lines)):
        if _mentions(lines[i], needles) and "waitFor" not in lines[i]:
            return i
    return None


def _reported_statement(lines: list[str], line: int | None) -> int | None:
    """Index of the runner-reported failing statement, if it is an awaited non-navigation line."""
    if line is None:
        return None
    index = line - 1
    if not _body_start(lines) <= index < len(lines):
        return None
    text = lines[index]
    if not text.strip().startswith("await ") or "waitFor" in text or _NAVIGATION.search(text):
        return None
    return index


def _insert_before(lines: list[str], index: int | None, code: str) -> int | None:
    if index is None:
        return None
    if index > 0 and lines[index - 1].strip() == code:
        return index - 1
    indent = re.match(r"\s*", lines[index]).group(0)
    lines.insert(index, f"{indent}{code}")
    return index


def _poll_rewrite(line: str) -> str | None:
    match = _POLL_TARGET.search(line)
    if not match:
        return None
    indent = line[: match.start()]
    target = match.group("target")
    timeout = f"{{ timeout: {POLL_TIMEOUT_MS} }}"
    if match.group("matcher") == "toBeVisible":
        return f"{indent}await expect.poll(async () => await {target}.isVisible(), {timeout}).toBeTruthy();"
    return f"{indent}await expect.poll(async () => await {target}.textContent(), {timeout}).toBe({match.group('args')});"


def apply_fix(
    fix: FixAction, content: str, references: dict[LocatorDescriptor, str] | None = None
) -> tuple[str, int | None]:
    """Apply one repair to ``content``; returns (new content, 1-based line touched).

    The failing statement is, in order: the line the runner reported, the
    first line naming the locator (raw, or through the fixture property
    ``references`` maps it to), the first interaction after navigation.
    """
    lines = content.split("\n")
    touched: int | None = None

    if fix.type in ("ADD_WAIT", "RE_QUERY", "ADD_COMMENT"):
        target = _reported_statement(lines, fix.source_line)
        if target is None:
            target = _first_reference(lines, fix.locator, references)
        if target is None:
            target = _first_action(lines)
        touched = _insert_before(lines, target, fix.code)

    elif fix.type == "MODIFY_CLICK":
        candidates = range(_body_start(lines), len(lines))
        needles = _needles(fix.locator, references)
        target = next((i for i in candidates if _mentions(lines[i], needles) and ".click()" in lines[i]), None)
        if target is None:
            target = next((i for i in candidates if ".click()" in lines[i]), None)
        if target is not None:
            lines[target] = lines[target].replace(".click()", fix.code, 1)
            touched = target

    elif fix.type == "ADD_POLL":
        for i in range(_body_start(lines), len(lines)):
            rewritten = _poll_rewrite(lines[i])
            if rewritten is not None:
                lines[i] = rewritten
                touched = i
                break

    if touched is None:
        logger.warning("Repair %s found no statement to edit", fix.type)
        return content, None
    return "\n".join(lines), touched + 1


# ---------------------------------------------------------------------------
# Loop
# ---------------------------------------------------------------------------


def _remaining(deadline: float | None) -> float | None:
    if deadline is None:
        return None
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise PipelineTimeoutError("Run deadline expired before verification finished")
    return remaining


def verify_and_fix(
    test_path: Path,
    repo_root: Path,
    executor: TestExecutor,
    max_retries: int = DEFAULT_MAX_RETRIES,
    deadline: float | None = None,
    references: dict[LocatorDescriptor, str] | None = None,
) -> VerificationOutcome:
    """Run the generated test, repairing between attempts, for at most ``max_retries`` attempts.

    ``references`` maps locators to the fixture properties the test reaches
    them through, so repairs can find statements that never spell the locator.
    """
    test_file = test_path.relative_to(repo_root).as_posix() if test_path.is_relative_to(repo_root) else str(test_path)
    errors: list[ClassifiedError] = []
    fixes: list[FixAction] = []
    attempt = 0
    state = "ATTEMPTING"
    result: ExecutionResult | None = None
    fix: FixAction | None = None

    while True:
        if state == "ATTEMPTING":
            attempt += 1
            logger.info("Verification attempt %d/%d", attempt, max_retries)
            result = executor.run(test_file, repo_root, _remaining(deadline))
            state = "PASSED" if result.passed else "CLASSIFYING"

        elif state == "CLASSIFYING":
            error = classify_error(result.stderr, result.stdout, test_file)
            errors.append(error)
            logger.info("Failure classified as %s: %s", error.type, error.message[:100])
            fix = determine_fix(error, test_file)
            if fix is None:
                state = "UNFIXABLE"
            elif attempt >= max_retries:
                state = "EXHAUSTED"
            else:
                state = "FIXING"

        elif state == "FIXING":
            content, line = apply_fix(fix, test_path.read_text(encoding="utf-8"), references)
            test_path.write_text(content, encoding="utf-8")
            fixes.append(dataclasses.replace(fix, target_line=line))
            logger.info("Applied %s at line %s", fix.type, line)
            state = "ATTEMPTING"

        else:
            logger.info("Verification finished: %s after %d attempt(s)", state, attempt)
            return VerificationOutcome(state=state, attempts=attempt, errors=errors, fixes=fixes)


# ---------------------------------------------------------------------------
# Dry run
# ---------------------------------------------------------------------------


def analyze_test_content(content: str) -> list[str]:
    """Static structure checks used instead of execution in dry-run mode."""
    warnings: list[str] = []
    if "import { test" not in content:
        warnings.append("Missing test import statement")
    if "test(" not in content and "test.describe(" not in content:
        warnings.append("No test() or test.describe() found")
    if "expect(" not in content:
        warnings.append("No assertions (expect) found in test")
    if "async ({" not in content:
        warnings.append("Test handler should be async")
    return warnings

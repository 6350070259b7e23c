"""ChameleonQA Orchestrator — sequences the five phases of one refactor run.

Reconnaissance, parsing, mapping, synthesis and verification run strictly in
order and feed one ``KnowledgeGraph``.  Every edit is staged in memory
before anything is written, so a failure before the write step leaves the
target repository untouched.  All failures end up in the returned
``RefactorResult``; nothing escapes ``run()``.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from chameleonqa.config import ChameleonConfig, ChameleonConfigError, PipelineTimeoutError
from chameleonqa.engine.knowledge import KnowledgeGraph, RefactorResult
from chameleonqa.engine.mapper import map_all_selectors
from chameleonqa.engine.parser import parse_raw_code
from chameleonqa.engine.reconnaissance import perform_reconnaissance
from chameleonqa.engine.synthesizer import apply_page_object_mod, locator_references, synthesize
from chameleonqa.engine.verifier import PlaywrightTestExecutor, TestExecutor, analyze_test_content, verify_and_fix

logger = logging.getLogger("chameleonqa.engine.orchestrator")

DEFAULT_INSTRUCTION = "Refactored test"


class RefactorOrchestrator:
    """Coordinates a complete refactor run against one target repository."""

    def __init__(self, config: ChameleonConfig | None = None, executor: TestExecutor | None = None) -> None:
        """
        Args:
            config: Run configuration; defaults apply when omitted.
            executor: Test runner for verification. Defaults to ``npx playwright test``.
        """
        self._config = config or ChameleonConfig()
        self._executor = executor or PlaywrightTestExecutor(
            project=self._config.playwright_project,
            test_command=self._config.test_command,
        )

    # ── Deadline ───────────────────────────────────────────────────────

    @staticmethod
    def _check_deadline(deadline: float | None, phase: str) -> None:
        if deadline is not None and time.monotonic() >= deadline:
            raise PipelineTimeoutError(f"Run deadline expired before {phase}")

    # ── Public API ─────────────────────────────────────────────────────

    def build_knowledge(
        self,
        raw_code: str,
        instruction: str,
        repo_path: Path,
        deadline: float | None = None,
    ) -> KnowledgeGraph:
        """Phases I to IV: everything up to, but excluding, any write."""
        self._check_deadline(deadline, "reconnaissance")
        recon = perform_reconnaissance(repo_path, self._config)
        knowledge = KnowledgeGraph(
            repo_context=recon.repo_context,
            style_profile=recon.style_profile,
            page_object_index=recon.page_object_index,
            fixture_registry=recon.fixture_registry,
            raw_code=raw_code,
        )

        self._check_deadline(deadline, "parsing")
        parsed = parse_raw_code(raw_code, self._config)
        knowledge.tokens = parsed.tokens
        knowledge.clusters = parsed.clusters
        knowledge.test_data = parsed.test_data

        self._check_deadline(deadline, "mapping")
        knowledge.mappings = map_all_selectors(knowledge.tokens, knowledge.page_object_index, self._config)

        self._check_deadline(deadline, "synthesis")
        synthesize(knowledge, instruction, self._config)
        return knowledge

    def run(
        self,
        raw_code: str,
        instruction: str | None = None,
        repo_path: Path | str = ".",
        dry_run: bool = False,
        timeout: float | None = None,
    ) -> RefactorResult:
        """Execute a refactor run.

        Args:
            raw_code: Recorded Playwright script text.
            instruction: Human description; names the generated test and its file.
            repo_path: Root of the target repository.
            dry_run: Stage and statically check everything, but write and run nothing.
            timeout: Overall deadline in seconds (falls back to the configured timeout).

        Returns:
            RefactorResult with every error aggregated; never raises.
        """
        instruction = instruction or DEFAULT_INSTRUCTION
        repo_root = Path(repo_path)
        timeout = timeout if timeout is not None else self._config.timeout
        deadline = time.monotonic() + timeout if timeout is not None else None
        result = RefactorResult(success=False)

        logger.info("Refactor run starting: repo=%s dry_run=%s", repo_root, dry_run)
        try:
            knowledge = self.build_knowledge(raw_code, instruction, repo_root, deadline)
            result.knowledge = knowledge

            if knowledge.repo_context.repo_type == "UNKNOWN":
                result.errors.append(
                    "Could not detect repository structure. Page objects will be proposed, not modified."
                )

            test_file = knowledge.generated_test
            result.generated_test_path = str(repo_root / test_file.file_path)

            if dry_run:
                result.warnings.extend(analyze_test_content(test_file.content))
                result.success = True
                logger.info("Dry run complete: %d warning(s)", len(result.warnings))
                return result

            self._check_deadline(deadline, "writing")
            result.modified_files.extend(self._write_changes(knowledge, repo_root))

            self._check_deadline(deadline, "verification")
            outcome = verify_and_fix(
                repo_root / test_file.file_path,
                repo_root,
                self._executor,
                max_retries=self._config.max_retries,
                deadline=deadline,
                references=locator_references(knowledge, self._config),
            )
            knowledge.verification = outcome
            if outcome.passed:
                result.success = True
            else:
                result.errors.extend(f"{e.type}: {e.message}" for e in outcome.errors)
                result.errors.append(f"Verification {outcome.state} after {outcome.attempts} attempt(s)")

        except ChameleonConfigError as exc:
            logger.error("Refactor run aborted: %s", exc)
            result.errors.append(f"Pipeline error: {exc}")
            result.success = False
        except Exception as exc:
            logger.exception("Refactor run failed")
            result.errors.append(f"Pipeline error: {exc}")
            result.success = False

        logger.info("Refactor run finished: success=%s errors=%d", result.success, len(result.errors))
        return result

    # ── Writing ────────────────────────────────────────────────────────

    def _write_changes(self, knowledge: KnowledgeGraph, repo_root: Path) -> list[str]:
        """Compute every new file body first, then write them all."""
        staged: list[tuple[Path, str]] = []

        for mod in knowledge.modifications:
            target = repo_root / mod.file_path
            if not target.is_file():
                logger.debug("Skipping modification of missing file %s", target)
                continue
            staged.append((target, apply_page_object_mod(target.read_text(encoding="utf-8"), mod)))

        if self._config.create_missing_page_objects:
            for proposal in knowledge.proposed_page_objects:
                target = repo_root / proposal.file_path
                if target.exists():
                    logger.warning("Not overwriting existing %s with proposed %s", target, proposal.class_name)
                    continue
                staged.append((target, proposal.content))

        test_file = knowledge.generated_test
        test_target = repo_root / test_file.file_path
        staged.append((test_target, test_file.content))

        modified: list[str] = []
        for path, content in staged:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
            if path != test_target:
                modified.append(str(path))
            logger.info("Wrote %s", path)
        return modified

"""ChameleonQA Report Generator — markdown run report.

Summarises one refactor run from its ``KnowledgeGraph`` and
``RefactorResult``: what was learned about the repository, how the script
was clustered, where each selector was mapped, what was changed and how
verification ended.
"""

from __future__ import annotations

import datetime as dt

from chameleonqa.engine.knowledge import KnowledgeGraph, RefactorResult


def _truncate(text: str, limit: int = 80) -> str:
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def _cell(text: str) -> str:
    return text.replace("|", "\\|")


class ReportGenerator:
    """Generates markdown reports from refactor results."""

    def generate(self, knowledge: KnowledgeGraph | None, result: RefactorResult) -> str:
        """Generate a complete report in markdown format.

        Args:
            knowledge: Knowledge graph of the run (None when the run failed early).
            result: The RefactorResult to report on.

        Returns:
            Complete markdown report as a string.
        """
        sections = [self._header(result), self._summary(knowledge, result)]
        if knowledge is not None:
            sections += [
                self._repository(knowledge),
                self._clusters(knowledge),
                self._mappings_table(knowledge),
                self._modifications(knowledge),
                self._verification(knowledge),
            ]
        sections.append(self._errors(result))
        return "\n\n".join(s for s in sections if s) + "\n"

    def _header(self, r: RefactorResult) -> str:
        verdict = "SUCCESS" if r.success else "FAILED"
        date = dt.datetime.now(dt.timezone.utc).isoformat(timespec="seconds")
        return (
            f"# ChameleonQA Refactor Report\n"
            f"\n"
            f"**Date:** {date}\n"
            f"**Generated test:** {r.generated_test_path or '-'}\n"
            f"**Verdict:** {verdict}"
        )

    def _summary(self, k: KnowledgeGraph | None, r: RefactorResult) -> str:
        lines = ["## Summary"]
        if k is not None:
            for key, value in k.summary().items():
                lines.append(f"- {key.replace('_', ' ').capitalize()}: {value}")
        lines.append(f"- Modified files: {len(r.modified_files)}")
        lines.append(f"- Warnings: {len(r.warnings)}")
        return "\n".join(lines)

    def _repository(self, k: KnowledgeGraph) -> str:
        ctx = k.repo_context
        style = k.style_profile
        return (
            f"## Repository\n"
            f"- **Type:** {ctx.repo_type}\n"
            f"- **Page objects:** {ctx.page_object_dir or '-'}\n"
            f"- **Tests:** {ctx.test_dir or '-'}\n"
            f"- **Fixtures:** {ctx.fixture_file or '-'}\n"
            f"- **Locator style:** {style.locator_style}"
            f"{f' ({style.wrapper_class_name})' if style.wrapper_class_name else ''}\n"
            f"- **Method style:** {style.method_style}\n"
            f"- **Style confidence:** {style.confidence:.0%} ({style.reasoning})"
        )

    def _clusters(self, k: KnowledgeGraph) -> str:
        if not k.clusters:
            return "## Clusters\n\nNo actions recognised in the script."
        lines = ["## Clusters", ""]
        for cluster in k.clusters:
            assertions = f", {len(cluster.assertions)} assertion(s)" if cluster.assertions else ""
            lines.append(f"- **{cluster.type}** {cluster.intent} ({len(cluster.tokens)} step(s){assertions})")
        return "\n".join(lines)

    def _mappings_table(self, k: KnowledgeGraph) -> str:
        if not k.mappings:
            return "## Mappings\n\nNo selectors to map."
        lines = [
            "## Mappings",
            "| Selector | Class | Property | New | Confidence | Reasoning |",
            "|----------|-------|----------|-----|------------|-----------|",
        ]
        for m in k.mappings:
            selector = _cell(m.selector.original_text or m.selector.key)
            new = "yes" if m.is_new_property else "no"
            lines.append(
                f"| `{selector}` | {m.target_class} | {m.target_property} | {new} "
                f"| {m.confidence:.2f} | {_cell(_truncate(m.reasoning))} |"
            )
        return "\n".join(lines)

    def _modifications(self, k: KnowledgeGraph) -> str:
        if not k.modifications and not k.proposed_page_objects:
            return "## Modifications\n\nNo page-object changes."
        lines = ["## Modifications", ""]
        for mod in k.modifications:
            lines.append(
                f"- `{mod.file_path}` ({mod.class_name}): {len(mod.new_properties)} propert"
                f"{'y' if len(mod.new_properties) == 1 else 'ies'}, {len(mod.new_methods)} method(s) "
                f"at line {mod.insertion_point}"
            )
        for proposal in k.proposed_page_objects:
            lines.append(f"- `{proposal.file_path}` ({proposal.class_name}): proposed new page object")
        return "\n".join(lines)

    def _verification(self, k: KnowledgeGraph) -> str:
        outcome = k.verification
        if outcome is None:
            return "## Verification\n\nNot run (dry run or aborted)."
        lines = [
            "## Verification",
            f"- **State:** {outcome.state}",
            f"- **Attempts:** {outcome.attempts}",
        ]
        for error in outcome.errors:
            locator = f" `{error.locator}`" if error.locator else ""
            lines.append(f"- Error: {error.type}{locator}: {_truncate(error.message)}")
        for fix in outcome.fixes:
            where = f" (line {fix.target_line})" if fix.target_line else ""
            lines.append(f"- Fix: {fix.type}{where}: `{fix.code}`")
        return "\n".join(lines)

    def _errors(self, r: RefactorResult) -> str:
        if not r.errors and not r.warnings:
            return "## Errors\n\nNo errors."
        lines = ["## Errors", ""]
        lines += [f"- {error}" for error in r.errors]
        lines += [f"- Warning: {warning}" for warning in r.warnings]
        return "\n".join(lines)

"""ChameleonQA engine — the refactor pipeline.

Provides the five phases and their coordinator:
- perform_reconnaissance: repository structure, style, page-object index, fixtures
- parse_raw_code: raw script to tokens, semantic clusters and test data
- map_all_selectors: selector ownership (direct hit, anchor, semantic scoring)
- synthesize: style-matched page-object edits, proposals and a test file
- verify_and_fix: run, classify, repair, retry
- RefactorOrchestrator: runs all phases and stages every write
- ReportGenerator: markdown run report
- ContextMatcher: page-object context for the hand-off prompt
"""

from chameleonqa.engine.knowledge import KnowledgeGraph, RefactorResult
from chameleonqa.engine.mapper import map_all_selectors
from chameleonqa.engine.orchestrator import RefactorOrchestrator
from chameleonqa.engine.parser import ParseResult, parse_raw_code
from chameleonqa.engine.prompt import ContextMatcher, generate_refactor_prompt
from chameleonqa.engine.reconnaissance import ReconnaissanceResult, perform_reconnaissance
from chameleonqa.engine.report_generator import ReportGenerator
from chameleonqa.engine.synthesizer import synthesize
from chameleonqa.engine.verifier import PlaywrightTestExecutor, verify_and_fix

__all__ = [
    "ContextMatcher",
    "KnowledgeGraph",
    "ParseResult",
    "PlaywrightTestExecutor",
    "ReconnaissanceResult",
    "RefactorOrchestrator",
    "RefactorResult",
    "ReportGenerator",
    "generate_refactor_prompt",
    "map_all_selectors",
    "parse_raw_code",
    "perform_reconnaissance",
    "synthesize",
    "verify_and_fix",
]

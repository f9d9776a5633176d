"""
Extraction strategies over rendered upstream pages.
"""

from app.scraping.extraction.base import CandidateRecord, RenderedPage
from app.scraping.extraction.diagnostics import SelectorReport, probe_selectors, render_report_markdown
from app.scraping.extraction.ladder import ExtractionOutcome, MultiStrategyExtractor, default_strategies

__all__ = [
    "CandidateRecord",
    "ExtractionOutcome",
    "MultiStrategyExtractor",
    "RenderedPage",
    "SelectorReport",
    "default_strategies",
    "probe_selectors",
    "render_report_markdown",
]

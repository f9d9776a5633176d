"""
Render the upstream page for a few domains and write a selector diagnostics report.

The report is for a human operator; apply its suggested selectors through
TRAFFIC_SELECTOR_CONFIG_PATH.
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from app.scraping.browser import BrowserSessionManager
from app.scraping.domains import normalize_domains
from app.scraping.errors import TrafficScrapeError
from app.scraping.extraction import MultiStrategyExtractor, probe_selectors, render_report_markdown


async def _diagnose(domains: list[str]) -> str:
    async with BrowserSessionManager() as sessions:
        selectors = sessions.settings.selectors
        try:
            page = await sessions.render(domains)
        except TrafficScrapeError as exc:
            return f"# Selector Diagnostics\n\n**Error:** {exc}\n"

    outcome = MultiStrategyExtractor(selectors=selectors).extract(page, domains)
    report = outcome.diagnostics or probe_selectors(
        page,
        domains,
        configured_selectors=(*selectors.rows, *selectors.cards),
    )
    summary = f"strategy={outcome.strategy or 'none'} missing={', '.join(outcome.missing) or '-'}"
    return render_report_markdown(report, error=None if outcome.strategy else summary)


def main() -> int:
    parser = argparse.ArgumentParser(description="Probe upstream selectors and report what still matches.")
    parser.add_argument(
        "domains",
        nargs="*",
        default=["google.com", "facebook.com", "amazon.com"],
        help="Up to ten well-known domains to render.",
    )
    parser.add_argument("--output", default=None, help="Write the Markdown report to this path.")
    args = parser.parse_args()

    domains = normalize_domains(args.domains)[:10]
    if not domains:
        parser.error("Provide at least one valid domain.")

    markdown = asyncio.run(_diagnose(domains))
    if args.output:
        Path(args.output).write_text(markdown, encoding="utf-8")
    else:
        print(markdown)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

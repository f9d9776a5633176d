"""
Selector diagnostics for pages where every extraction strategy came up empty.

Produces a report for a human operator; nothing here edits selectors or code.
Working selectors can be fed back through ``TRAFFIC_SELECTOR_CONFIG_PATH``.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, field

from app.scraping.domains import find_domain_mention
from app.scraping.extraction.base import RenderedPage, clean_text

PROBE_SELECTORS = (
    "[class*='card']",
    "article",
    "[class*='result']",
    "[data-domain]",
    "[class*='domain']",
    ".card",
    "[role='article']",
    "[class*='traffic']",
    "table tbody tr",
    ".table tbody tr",
    "table tr",
    "[role='row']",
    "tbody > tr",
)
ROW_PROBES = {"table tbody tr", ".table tbody tr", "table tr", "[role='row']", "tbody > tr"}
SAMPLE_CHARS = 200
MIN_SAMPLE_CHARS = 20

FAILURE_NOT_RENDERED = "not_rendered"
FAILURE_DOMAINS_ABSENT = "domains_absent"
FAILURE_SELECTORS_STALE = "selectors_stale"
FAILURE_PATTERNS_STALE = "patterns_stale"


@dataclass(frozen=True)
class SelectorProbe:
    selector: str
    found: int
    has_data: bool
    sample_text: str = ""


@dataclass(frozen=True)
class SelectorReport:
    """
    Outcome of probing a rendered page with candidate selectors.
    """

    failure_class: str
    probes: list[SelectorProbe]
    page_structure: dict[str, object]
    recommendations: list[str] = field(default_factory=list)

    @property
    def working_selectors(self) -> list[str]:
        return [probe.selector for probe in self.probes if probe.has_data]


def probe_selectors(
    page: RenderedPage,
    domains: Sequence[str],
    *,
    configured_selectors: Sequence[str] = (),
) -> SelectorReport:
    soup = page.soup()
    probes: list[SelectorProbe] = []
    for selector in PROBE_SELECTORS:
        elements = soup.select(selector)
        sample = clean_text(elements[0].get_text(" "))[:SAMPLE_CHARS] if elements else ""
        probes.append(
            SelectorProbe(
                selector=selector,
                found=len(elements),
                has_data=len(sample) > MIN_SAMPLE_CHARS,
                sample_text=sample,
            )
        )

    cards = soup.select("[class*='card'], article, [class*='result']")
    card_classes: list[str] = []
    for card in cards[:5]:
        for class_name in card.get("class") or []:
            if class_name not in card_classes:
                card_classes.append(class_name)
    structure = {
        "card_count": len(cards),
        "table_count": len(soup.find_all("table")),
        "card_classes": card_classes,
        "domains_in_text": [domain for domain in domains if find_domain_mention(page.text, domain) >= 0],
        "ready": page.ready,
    }

    failure_class = classify_failure(page, domains, probes)
    return SelectorReport(
        failure_class=failure_class,
        probes=probes,
        page_structure=structure,
        recommendations=_recommendations(failure_class, probes, configured_selectors),
    )


def classify_failure(
    page: RenderedPage,
    domains: Sequence[str],
    probes: Sequence[SelectorProbe],
) -> str:
    """
    Name the most likely reason no strategy produced a record.
    """

    has_structure = any(probe.has_data for probe in probes)
    if not page.ready and not has_structure:
        return FAILURE_NOT_RENDERED
    if not any(find_domain_mention(page.text, domain) >= 0 for domain in domains):
        return FAILURE_DOMAINS_ABSENT
    if not has_structure:
        return FAILURE_SELECTORS_STALE
    return FAILURE_PATTERNS_STALE


def _recommendations(
    failure_class: str,
    probes: Sequence[SelectorProbe],
    configured_selectors: Sequence[str],
) -> list[str]:
    working = [probe.selector for probe in probes if probe.has_data]
    unused = [selector for selector in working if selector not in configured_selectors]

    if failure_class == FAILURE_NOT_RENDERED:
        return [
            "The page never reached a ready state; raise TRAFFIC_READINESS_TIMEOUT_SECONDS "
            "or check that the upstream is reachable.",
        ]
    if failure_class == FAILURE_DOMAINS_ABSENT:
        return [
            "None of the requested domains appear in the page text; the upstream may not "
            "track them or may be serving an error page.",
        ]
    if not working:
        return [
            "No probe selector matched content; the page structure changed significantly.",
            "Inspect the page manually and add selectors through TRAFFIC_SELECTOR_CONFIG_PATH.",
        ]

    recommendations = [f"Working selectors: {', '.join(working)}"]
    if unused:
        recommendations.append(
            "Add these selectors through TRAFFIC_SELECTOR_CONFIG_PATH: " + ", ".join(unused)
        )
    if failure_class == FAILURE_PATTERNS_STALE:
        recommendations.append(
            "Selectors match content but no metric label matched; compare the sample text "
            "with the card label patterns."
        )
    return recommendations


def suggested_selector_config(report: SelectorReport) -> dict[str, list[str]]:
    rows = [selector for selector in report.working_selectors if selector in ROW_PROBES]
    cards = [selector for selector in report.working_selectors if selector not in ROW_PROBES]
    config: dict[str, list[str]] = {}
    if rows:
        config["rows"] = rows
    if cards:
        config["cards"] = cards
    return config


def render_report_markdown(report: SelectorReport, *, error: str | None = None) -> str:
    lines = ["# Selector Diagnostics", ""]
    if error:
        lines.extend([f"**Error:** {error}", ""])
    lines.extend([f"**Failure class:** `{report.failure_class}`", ""])

    lines.extend(["## Probes", "", "| Selector | Found | Has data |", "|---|---|---|"])
    for probe in report.probes:
        lines.append(f"| `{probe.selector}` | {probe.found} | {'yes' if probe.has_data else 'no'} |")
    lines.append("")

    lines.extend(["## Page Structure", "", "```json", json.dumps(report.page_structure, indent=2), "```", ""])

    suggested = suggested_selector_config(report)
    if suggested:
        lines.extend(["## Suggested Selector Config", "", "```json", json.dumps(suggested, indent=2), "```", ""])

    lines.extend(["## Recommendations", ""])
    lines.extend(f"- {item}" for item in report.recommendations)
    return "\n".join(lines) + "\n"

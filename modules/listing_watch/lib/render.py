from __future__ import annotations

from .models import CycleReport, Outcome


def report_lines(report: CycleReport) -> list[str]:
    """
    Operator-facing text for one cycle.

    Zero new listings is always stated explicitly. Deal hits carry price and
    title beside the URL.
    """
    head = f"[{report.ts}] {report.search_url}"
    if report.outcome is Outcome.HARD_BLOCKED:
        lines = [head, "BLOCKED: remote service rejected the request (401/403/429)."]
        if report.excerpt:
            lines.append(f"HTML snippet: {report.excerpt}")
        return lines
    if report.outcome is Outcome.TRANSIENT:
        lines = [head, "FAILED: no usable page after retries; giving up for this run."]
        if report.excerpt:
            lines.append(f"HTML snippet: {report.excerpt}")
        return lines

    lines = [head, f"Found item URLs: {report.found}", f"NEW: {len(report.new_urls)}"]
    if report.bootstrap:
        lines.append(f"Bootstrap: {report.observed} listing(s) recorded as seen, none reported.")
    elif not report.new_urls:
        lines.append("No new listings since last run.")
    elif report.deals:
        for d in report.deals:
            price = "" if d.price is None else f"  {d.price:.2f}"
            title = f"  {d.title}" if d.title else ""
            lines.append(f"{d.url}{price}{title}")
    else:
        lines.extend(report.new_urls)
    return lines


def format_report(report: CycleReport) -> str:
    return "\n".join(report_lines(report))

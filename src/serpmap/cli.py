# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SERP Map CLI: run, outline commands.

Usage:
    serpmap run QUERY --location LOC [--country C] [--config FILE] [--format json|table] [-o PATH]
    serpmap outline URL [--format json|table] [-o PATH]
    serpmap outline --html FILE [--format json|table] [-o PATH]
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from tabulate import tabulate

from . import PageOutline, SerpReport
from .config import RunConfig, load_config
from .errors import SerpMapError

_TABLE_FORMAT = "github"


def _validate_output_path(path_str: str | None) -> Path | None:
    """Return the output file path, creating its parent directory."""
    if not path_str:
        return None
    p = Path(path_str)
    p.parent.mkdir(parents=True, exist_ok=True)
    return p


def _page_table(pages: list[PageOutline]) -> str:
    from .serializer import heading_table

    header, rows = heading_table(pages)
    return tabulate(rows, headers=header, tablefmt=_TABLE_FORMAT)


def _feature_table(report: SerpReport) -> str:
    rows = []
    for feature, status in report.statuses.items():
        obs = report.observations[feature]
        rows.append(
            [
                feature.value,
                status.label,
                status.confidence,
                obs.from_structured_source,
                obs.from_rendered_page,
                ", ".join(sorted(obs.supporting_signals)) or "-",
            ]
        )
    return tabulate(
        rows,
        headers=["Feature", "Status", "Confidence", "API", "Rendered", "Signals"],
        tablefmt=_TABLE_FORMAT,
    )


def render_report(report: SerpReport, fmt: str) -> str:
    from .serializer import to_json

    if fmt == "json":
        return to_json(report)
    summary = [
        f"Query: {report.query} ({report.location}, {report.google_domain}, gl={report.gl}, hl={report.hl})",
        f"Policy: {report.policy.value}   Intent: {report.intent}",
        f"Top themes: {', '.join(report.top_themes) or '-'}",
        "",
        _feature_table(report),
        "",
        _page_table(report.pages),
    ]
    if report.skipped_urls:
        summary += ["", "Skipped: " + ", ".join(report.skipped_urls)]
    return "\n".join(summary)


def render_outline(page: PageOutline, fmt: str) -> str:
    from .serializer import to_json

    if fmt == "json":
        return to_json(page)
    rows = [[f"H{record.level}", record.text] for record in page.outline.records()]
    return tabulate(rows, headers=["Level", "Text"], tablefmt=_TABLE_FORMAT)


def _emit(text: str, output: Path | None) -> None:
    from ._progress import print_step

    if output is None:
        print(text)
        return
    output.write_text(text + "\n", encoding="utf-8")
    print_step(f"Saved to {output}")


def _base_config(args: argparse.Namespace) -> RunConfig:
    return load_config(args.config) if args.config else RunConfig()


def _extraction_overrides(args: argparse.Namespace) -> dict:
    return {
        "include_hidden": False if args.visible_only else None,
        "heading_like": False if args.no_heading_like else None,
        "respect_noindex": True if getattr(args, "respect_noindex", False) else None,
    }


def cmd_run(args: argparse.Namespace) -> None:
    """Run the full pipeline for one query."""
    from ._progress import print_step, status_spinner
    from .pipeline import run_query

    config = _base_config(args).with_overrides(
        search={
            "query": args.query,
            "location": args.location,
            "country": args.country,
            "google_domain": args.google_domain,
            "gl": args.gl,
            "hl": args.hl,
            "num": args.num,
            "max_pages": args.max_pages,
            "safe": args.safe,
            "lr": args.lr,
        },
        extraction=_extraction_overrides(args),
        probe={
            "policy": args.policy,
            "render_serp": True if args.render_serp else None,
            "aio_probe_always": True if args.aio_probe_always else None,
            "promote_weak_signals": True if args.promote_weak_signals else None,
        },
        concurrency=args.concurrency,
    )
    output = _validate_output_path(args.output)

    with status_spinner(f"Running '{config.search.query}' in {config.search.location or '?'}..."):
        report = asyncio.run(run_query(config))

    _emit(render_report(report, args.format), output)
    print_step(f"Pages: {len(report.pages)}/{len(report.urls)}  Intent: {report.intent}")


def cmd_outline(args: argparse.Namespace) -> None:
    """Extract the outline of one page (live URL or saved HTML)."""
    from ._progress import print_step, status_spinner

    if bool(args.url) == bool(args.html):
        print("Error: give either a URL or --html FILE.", file=sys.stderr)
        sys.exit(2)

    config = _base_config(args).with_overrides(extraction=_extraction_overrides(args))
    output = _validate_output_path(args.output)

    if args.html:
        from .pipeline import outline_from_html

        path = Path(args.html)
        try:
            raw_html = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            print(f"Error: cannot read {path}: {e}", file=sys.stderr)
            sys.exit(1)
        page = outline_from_html(raw_html, config.extraction, url=str(path))
    else:
        from .browser_session import BrowserConfig
        from .frame_aggregator import render_and_extract

        browser_config = BrowserConfig(hl=args.hl or config.search.hl)
        with status_spinner(f"Extracting outline for {args.url}..."):
            page = asyncio.run(render_and_extract(args.url, config.extraction, browser_config=browser_config))
        if page is None:
            print(f"Error: could not extract {args.url} (see log for details).", file=sys.stderr)
            sys.exit(1)

    _emit(render_outline(page, args.format), output)
    print_step(f"Headings: {page.total_headings}")


def _add_common_output(p: argparse.ArgumentParser) -> None:
    p.add_argument("-o", "--output", type=str, metavar="PATH", help="Write output to a file instead of stdout")
    p.add_argument(
        "--format",
        type=str,
        choices=["json", "table"],
        default="json",
        help="Output format (default: json)",
    )
    p.add_argument("--config", type=str, metavar="FILE", help="YAML run configuration")
    p.add_argument("--visible-only", action="store_true", help="Skip hidden and zero-size headings")
    p.add_argument("--no-heading-like", action="store_true", help="Disable styled (non-semantic) heading detection")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    from . import ReconciliationPolicy
    from .logging_config import configure

    parser = argparse.ArgumentParser(
        description="SERP Map: page outlines and search feature confidence for a query",
        prog="serpmap",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--log-json", action="store_true", help="Log JSON lines to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_run = subparsers.add_parser(
        "run",
        help="Search a query, extract ranking page outlines, rate search features",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
examples:
  %(prog)s "3d secure" --location "Sydney, Australia" --country Australia
  %(prog)s "3d secure" --location "Paris, France" --country France --render-serp --format table
  %(prog)s "3d secure" --location "Austin, Texas" --config run.yaml -o report.json""",
    )
    p_run.add_argument("query", type=str, help="Search query")
    p_run.add_argument("--location", type=str, help="Search location (SerpAPI location string)")
    p_run.add_argument("--country", type=str, help="Country preset for google_domain/gl/hl")
    p_run.add_argument("--google-domain", type=str)
    p_run.add_argument("--gl", type=str)
    p_run.add_argument("--hl", type=str)
    p_run.add_argument("--num", type=int, help="Organic results requested (max 100)")
    p_run.add_argument("--max-pages", type=int, help="Pages to extract (default: num)")
    p_run.add_argument("--safe", type=str, choices=["active", "off"])
    p_run.add_argument("--lr", type=str, help="Language restriction, e.g. lang_fr")
    p_run.add_argument("--policy", type=str, choices=[p.value for p in ReconciliationPolicy])
    p_run.add_argument("--render-serp", action="store_true", help="Verify features on the rendered results page")
    p_run.add_argument("--aio-probe-always", action="store_true", help="Always run the secondary AI overview query")
    p_run.add_argument("--promote-weak-signals", action="store_true", help="Treat weak signals as confirmation")
    p_run.add_argument("--respect-noindex", action="store_true", help="Skip pages marked noindex")
    p_run.add_argument("--concurrency", type=int, help="Pages rendered in parallel (default: 1)")
    _add_common_output(p_run)

    p_outline = subparsers.add_parser("outline", help="Extract the heading outline of one page")
    p_outline.add_argument("url", type=str, nargs="?", help="Page URL")
    p_outline.add_argument("--html", type=str, metavar="FILE", help="Parse a saved HTML file offline")
    p_outline.add_argument("--hl", type=str, help="Browser language (default: en)")
    _add_common_output(p_outline)

    commands = {"run": cmd_run, "outline": cmd_outline}

    args = parser.parse_args(argv)
    configure(json_output=args.log_json, level="DEBUG" if args.verbose else "INFO")

    try:
        commands[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    except SerpMapError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

#!/usr/bin/env python
"""
Build a performance report and write it as JSON.

Usage:
    python scripts/build_report.py --start 2025-03-01 --end 2025-03-31
    python scripts/build_report.py --start 2025-03-01 --end 2025-03-31 --as-of 2025-03-15 \
        --client C1,C2 --role CFO --include-submitted --output report.json
    python scripts/build_report.py --capacity --as-of 2025-03-15
"""
import argparse
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from attribution.config import config, configure_logging
from attribution.data.loader import FrameDataSource
from attribution.engine.context import ReportRequest
from attribution.engine.errors import ReportError
from attribution.engine.report import build_capacity_plan, build_performance_report
from attribution.exports import export_report_excel


def main():
    parser = argparse.ArgumentParser(description="Build a performance report")
    parser.add_argument("--start", type=str, help="Period start (YYYY-MM-DD)")
    parser.add_argument("--end", type=str, help="Period end (YYYY-MM-DD)")
    parser.add_argument("--as-of", type=str, default=None, help="As-of date (default: end)")
    parser.add_argument("--client", type=str, default="", help="Comma-separated client ids")
    parser.add_argument("--consultant", type=str, default="", help="Comma-separated consultant ids")
    parser.add_argument("--role", type=str, default=None, help="Role filter")
    parser.add_argument("--include-submitted", action="store_true", help="Count submitted timecards too")
    parser.add_argument("--calendar-days", action="store_true", help="Spread expectations over every day")
    parser.add_argument("--capacity", action="store_true", help="Build next month's capacity plan instead")
    parser.add_argument("--data-dir", type=str, default=None, help="Override data directory")
    parser.add_argument("--output", "-o", type=str, default=None, help="Output file (.json or .xlsx)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    args = parser.parse_args()
    configure_logging("DEBUG" if args.verbose else None)

    data_dir = Path(args.data_dir) if args.data_dir else config.data_dir
    source = FrameDataSource.from_directory(data_dir)

    try:
        if args.capacity:
            payload = json.dumps(build_capacity_plan(source, args.as_of), indent=2)
            report = None
        else:
            request = ReportRequest(
                start_date=args.start,
                end_date=args.end,
                as_of_date=args.as_of,
                client_ids=args.client,
                consultant_ids=args.consultant,
                role=args.role,
                include_submitted=args.include_submitted,
                business_days_only=not args.calendar_days,
            )
            report = build_performance_report(source, request, timeout=config.report_timeout_seconds)
            payload = report.to_json()
    except ReportError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    if args.output is None:
        print(payload)
        return

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    if output.suffix == ".xlsx" and report is not None:
        data, _ = export_report_excel(report)
        output.write_bytes(data)
    else:
        output.write_text(payload)
    print(f"✓ Wrote {output}", file=sys.stderr)


if __name__ == "__main__":
    main()

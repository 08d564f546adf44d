#!/usr/bin/env python
"""Generate SchoolDiff comparison reports from the command line."""

import argparse
import sys
from pathlib import Path

from schooldiff import ReportRunner, SchoolDiffError
from schooldiff.log import configure_logging
from schooldiff.models import LogLevel


def main():
    parser = argparse.ArgumentParser(
        description="Compare the configuration of two schools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_report.py --main main.yaml --baseline baseline.yaml --output reports/
  python run_report.py -m main.json -b baseline.json -c config.yaml -o reports/ --json-logs
        """
    )

    parser.add_argument("-m", "--main", required=True, help="Snapshot file of the school under review")
    parser.add_argument("-b", "--baseline", required=True, help="Snapshot file of the reference school")
    parser.add_argument("-c", "--config", help="YAML/JSON engine config file")
    parser.add_argument("-o", "--output", default="reports", help="Output directory (default: reports)")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress console output")

    args = parser.parse_args()

    for label, path in (("Main", args.main), ("Baseline", args.baseline)):
        if not Path(path).exists():
            print(f"Error: {label} snapshot not found: {path}", file=sys.stderr)
            return 1

    runner = ReportRunner(args.main, args.baseline, args.config)
    try:
        config = runner.config
    except SchoolDiffError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    configure_logging(
        LogLevel.WARNING if args.quiet else config.log_level,
        json_output=args.json_logs or config.log_json
    )

    if not args.quiet:
        print(f"Main: {args.main}")
        print(f"Baseline: {args.baseline}")
        print(f"Output: {args.output}\n")

    try:
        report = runner.run(args.output)
    except SchoolDiffError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not args.quiet:
        summary = report.summary
        print(f"Entities compared: {summary.entities_compared}")
        print(f"Field exception mismatches: {summary.field_exception_mismatches}")
        print(f"Default method mismatches: {summary.default_method_mismatches}")
        print(f"stepsToExecute differences: {summary.steps_to_execute_mismatches}")
        print(f"Template differences: {summary.template_differences}")
        print(f"Attribute mapping differences: {summary.attribute_mapping_differences}")
        print(f"Integration filter differences: {summary.integration_filter_differences}")
        print(f"\nReports saved to: {args.output}")

    return 0


if __name__ == "__main__":
    sys.exit(main())

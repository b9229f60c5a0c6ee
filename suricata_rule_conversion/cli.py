"""Command line entry point: detect, convert and profile rule files."""

import argparse
import contextlib
import json
import sys
from pathlib import Path
from typing import List, Optional

from .analysis import ConversionReportGenerator
from .converter import AUTO, RuleConverter
from .dialect import DialectClassifier, SNORT, SURICATA
from .features import analyze_rules


def _read_input(path: Optional[str]) -> str:
    if not path or path == '-':
        return sys.stdin.read()
    return Path(path).read_text(encoding='utf-8', errors='replace')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='suricata-rule-conversion',
        description='Detect, convert and profile Snort/Suricata rules',
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    detect = subparsers.add_parser('detect', help='guess the dialect of a rule file')
    detect.add_argument('input', nargs='?', default='-', help='rule file (default: stdin)')

    convert = subparsers.add_parser('convert', help='convert rules to the other dialect')
    convert.add_argument('input', nargs='?', default='-', help='rule file (default: stdin)')
    convert.add_argument(
        '--to',
        choices=(SNORT, SURICATA, AUTO),
        default=AUTO,
        help='target dialect (default: auto, the opposite of the detected one)',
    )
    convert.add_argument('--output', help='write converted rules to this file instead of stdout')
    convert.add_argument('--log', action='store_true', help='print the conversion log to stderr')
    convert.add_argument(
        '--report',
        help='write a conversion analysis report (.md, .csv or .json)',
    )

    analyze = subparsers.add_parser('analyze', help='profile a rule file')
    analyze.add_argument('input', nargs='?', default='-', help='rule file (default: stdin)')

    return parser


def _write_report(result, report_path: str) -> None:
    generator = ConversionReportGenerator()
    analyzed = result.analyze()
    suffix = Path(report_path).suffix.lower()
    if suffix == '.csv':
        generator.export_to_csv(analyzed, report_path)
    elif suffix == '.json':
        generator.export_to_json(analyzed, report_path)
    else:
        generator.export_to_markdown(analyzed, report_path)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    text = _read_input(args.input)

    if args.command == 'detect':
        classifier = DialectClassifier()
        scores = classifier.score(text)
        print(classifier.detect(text))
        print(f"snort={scores[SNORT]} suricata={scores[SURICATA]}", file=sys.stderr)
        return 0

    if args.command == 'analyze':
        print(json.dumps(analyze_rules(text), indent=2))
        return 0

    try:
        result = RuleConverter().convert_rules(text, args.to)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    if args.output:
        output_file = Path(args.output)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        output_file.write_text(result.text + '\n' if result.text else '', encoding='utf-8')
    elif result.text:
        print(result.text)

    if args.log:
        for entry in result.log:
            print(f"[{entry.timestamp}] {entry.severity.value.upper():7} {entry.message}", file=sys.stderr)

    if args.report:
        # Status lines go to stderr so stdout stays pure rule text
        with contextlib.redirect_stdout(sys.stderr):
            _write_report(result, args.report)

    return 1 if result.log.has_errors else 0

"""
Rule Conversion Module

This module rewrites parsed rules from one dialect into the other. Every
decision that changes rule semantics is recorded in a ConversionLog, and a
rule that fails to convert is emitted unchanged so one bad rule never
aborts a batch.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import pandas as pd
from tqdm import tqdm

from . import heuristics
from .conversion_log import ConversionLog, Severity
from .dialect import DIALECTS, SNORT, SURICATA, UNKNOWN, DialectClassifier, opposite_dialect
from .parser import FLAG_VALUE, Rule, ParseError, format_rule, is_valid_rule, load_rule_files, parse_rule


AUTO = 'auto'

DEFAULT_SID_OFFSET = 1000000
DEFAULT_METADATA_MARKER = 'converted_from_snort'
DEFAULT_MALWARE_REFERENCE = 'url,virustotal.com'

# Application-layer protocols Snort only expresses as transport rules
TRANSPORT_PROTOCOLS = {
    'http': 'tcp',
    'tls': 'tcp',
    'smtp': 'tcp',
    'ftp': 'tcp',
    'dns': 'udp',
}

TLS_OPTIONS = ('tls.cert_subject', 'tls.fingerprint', 'tls.version', 'tls.subject', 'tls.issuerdn')
FILE_OPTIONS = (
    'file_data', 'file_ext', 'filestore', 'fileext',
    'filemagic', 'filemd5', 'filesha1', 'filesha256',
)
APPID_OPTIONS = ('openappid', 'appid')
HEADER_BUFFERS = (('http.user_agent', 'User-Agent'), ('http.cookie', 'Cookie'))

KNOWN_USER_AGENTS = ('mozilla/5.0',)


def _has(options: List[List[str]], key: str) -> bool:
    return any(name == key for name, _ in options)


def _first(options: List[List[str]], key: str, default: str = '') -> str:
    for name, value in options:
        if name == key:
            return value
    return default


def _drop(options: List[List[str]], keys: Sequence[str]) -> List[str]:
    """Remove every occurrence of ``keys``; return the distinct keys removed."""
    removed = []
    kept = []
    for pair in options:
        if pair[0] in keys:
            if pair[0] not in removed:
                removed.append(pair[0])
        else:
            kept.append(pair)
    options[:] = kept
    return removed


def _rename(options: List[List[str]], old: str, new: str) -> int:
    """Rename every occurrence of ``old`` in place; return how many changed."""
    renamed = 0
    for pair in options:
        if pair[0] == old:
            pair[0] = new
            renamed += 1
    return renamed


def _is_sticky_buffer(pair: List[str]) -> bool:
    return pair[1] == FLAG_VALUE and ('.' in pair[0] or pair[0] in ('file_data', 'pkt_data'))


def _insert_buffer(options: List[List[str]], key: str) -> None:
    """Insert a sticky buffer ahead of the first content match.

    Buffers already selecting that content stay closest to it, so the new
    buffer goes before them. Without any content the buffer is appended.
    """
    index = next((i for i, pair in enumerate(options) if pair[0] == 'content'), None)
    if index is None:
        options.append([key, FLAG_VALUE])
        return
    while index > 0 and _is_sticky_buffer(options[index - 1]):
        index -= 1
    options.insert(index, [key, FLAG_VALUE])


def _content_near(options: List[List[str]], index: int) -> Optional[int]:
    """Index of the content payload a buffer at ``index`` applies to.

    A sticky buffer applies to the content after it; Snort 2 style
    modifiers follow their content, hence the fallback to the one before.
    """
    for i in range(index + 1, len(options)):
        if options[i][0] == 'content':
            return i
    for i in range(index - 1, -1, -1):
        if options[i][0] == 'content':
            return i
    return None


@dataclass
class ConversionResult:
    """Output of one conversion run."""

    text: str
    log: ConversionLog
    target: str
    pairs: List[Tuple[Optional[Rule], Optional[Rule]]] = field(default_factory=list)

    @property
    def lines(self) -> List[str]:
        return self.text.split('\n') if self.text else []

    @property
    def errors(self):
        return self.log.by_severity(Severity.ERROR)

    def analyze(self):
        """Analyze every successfully converted (original, converted) pair."""
        from .analysis import ConversionAnalyzer

        analyzer = ConversionAnalyzer()
        return [
            (original, converted, analyzer.analyze(original, converted))
            for original, converted in self.pairs
            if original is not None and converted is not None
        ]


class RuleConverter:
    """Convert rules between the Snort and Suricata dialects."""

    def __init__(self, **kwargs):
        """
        Initialize converter.

        Args:
            **kwargs: Optional settings: sid_offset, metadata_marker,
                malware_reference, show_progress, classifier, and
                replacement traffic predicates is_web_traffic,
                is_tls_traffic, is_dns_traffic, is_file_content
        """
        self.params = kwargs
        self.sid_offset = kwargs.get('sid_offset', DEFAULT_SID_OFFSET)
        self.metadata_marker = kwargs.get('metadata_marker', DEFAULT_METADATA_MARKER)
        self.malware_reference = kwargs.get('malware_reference', DEFAULT_MALWARE_REFERENCE)
        self.show_progress = kwargs.get('show_progress', False)
        self.classifier = kwargs.get('classifier') or DialectClassifier()

        self.is_web_traffic = kwargs.get('is_web_traffic', heuristics.is_web_traffic)
        self.is_tls_traffic = kwargs.get('is_tls_traffic', heuristics.is_tls_traffic)
        self.is_dns_traffic = kwargs.get('is_dns_traffic', heuristics.is_dns_traffic)
        self.is_file_content = kwargs.get('is_file_content', heuristics.is_file_content)

    def resolve_target(self, rules_text: str, target: str, log: ConversionLog) -> str:
        """
        Normalize a target dialect name, detecting the source dialect for 'auto'.

        Raises:
            ValueError: For unknown target names, or 'auto' on undecidable input
        """
        target = (target or AUTO).lower()
        if target == AUTO:
            source = self.classifier.detect(rules_text)
            if source == UNKNOWN:
                raise ValueError(
                    "Cannot infer the source dialect of the rules; pass an explicit target"
                )
            target = opposite_dialect(source)
            log.info(f"Detected {source.title()} rules, converting to {target.title()}")
        elif target not in DIALECTS:
            raise ValueError(f"Unknown target dialect: {target}")
        return target

    def convert_rule(self, rule: Rule, target: str, log: ConversionLog) -> Rule:
        """
        Convert one rule, raising on failure.

        Args:
            rule: Parsed rule
            target: 'snort' or 'suricata'
            log: Log receiving the conversion decisions

        Returns:
            A new Rule in the target dialect
        """
        if target == SNORT:
            return self._convert_to_snort(rule, log)
        if target == SURICATA:
            return self._convert_to_suricata(rule, log)
        raise ValueError(f"Unknown target dialect: {target}")

    def convert(self, rule: Rule, target: str, log: Optional[ConversionLog] = None) -> str:
        """
        Convert one rule to text without ever raising.

        On failure the error is logged and the original rule is returned in
        canonical format.
        """
        if log is None:
            log = ConversionLog()
        text, _ = self._convert_isolated(rule, target, log)
        return text

    def _convert_isolated(self, rule: Rule, target: str, log: ConversionLog) -> Tuple[str, Optional[Rule]]:
        try:
            converted = self.convert_rule(rule, target, log)
        except Exception as e:
            log.error(f"Error converting rule SID {rule.sid or 'unknown'}: {e}")
            return format_rule(rule), None
        return format_rule(converted), converted

    def convert_rules(self, rules_text: str, target: str = AUTO) -> ConversionResult:
        """
        Convert every rule line of a text blob.

        Each valid rule line produces exactly one output line. Lines that
        fail to parse are reproduced verbatim and rules that fail to
        convert are reproduced in canonical format, both logged as errors.

        Args:
            rules_text: Multi-line rule text
            target: 'snort', 'suricata' or 'auto'

        Returns:
            ConversionResult with output text, log and rule pairs
        """
        log = ConversionLog()
        target = self.resolve_target(rules_text, target, log)
        log.info(f"Starting conversion to {target.title()} format...")

        output = []
        pairs = []
        for line in rules_text.splitlines():
            if not is_valid_rule(line):
                continue
            try:
                rule = parse_rule(line)
            except ParseError as e:
                log.error(f"Error parsing rule: {e}")
                output.append(line.strip())
                pairs.append((None, None))
                continue

            text, converted = self._convert_isolated(rule, target, log)
            output.append(text)
            pairs.append((rule, converted))
            if converted is not None:
                log.success(f"Converted rule SID {rule.sid or 'unknown'}")

        log.info(f"Conversion complete. {len(output)} rules processed.")
        return ConversionResult(text='\n'.join(output), log=log, target=target, pairs=pairs)

    def to_snort(self, rules_text: str) -> ConversionResult:
        return self.convert_rules(rules_text, SNORT)

    def to_suricata(self, rules_text: str) -> ConversionResult:
        return self.convert_rules(rules_text, SURICATA)

    def convert_rule_file(
            self,
            file_path: str,
            target: str = AUTO,
            output_path: Optional[str] = None
    ) -> ConversionResult:
        """
        Convert a rule file, optionally writing the converted rules to disk.

        Args:
            file_path: Path to the rule file
            target: 'snort', 'suricata' or 'auto'
            output_path: Optional output file path

        Returns:
            ConversionResult for the file
        """
        text = Path(file_path).read_text(encoding='utf-8', errors='replace')
        result = self.convert_rules(text, target)

        if output_path:
            output_file = Path(output_path)
            output_file.parent.mkdir(parents=True, exist_ok=True)
            output_file.write_text(result.text + '\n' if result.text else '', encoding='utf-8')
            print(f"Converted rules saved to: {output_file}")

        return result

    def convert_rule_files(
            self,
            rules_dir: str,
            target: str = AUTO,
            output_dir: str = "converted"
    ) -> pd.DataFrame:
        """
        Convert every .rules file under a directory.

        Args:
            rules_dir: Directory containing rule files
            target: 'snort', 'suricata' or 'auto' (detected per file)
            output_dir: Directory receiving converted files, mirroring the input tree

        Returns:
            DataFrame with one summary row per file
        """
        rule_files = load_rule_files(rules_dir)
        iterator = tqdm(rule_files, desc="Converting rule files") if self.show_progress else rule_files

        rows = []
        for rule_file in iterator:
            output_path = Path(output_dir) / rule_file.relative_to(rules_dir)
            try:
                result = self.convert_rule_file(rule_file, target, output_path)
            except ValueError as e:
                print(f"  Skipping {rule_file.name}: {e}")
                rows.append({
                    'file_name': rule_file.name,
                    'target': None,
                    'rules': 0,
                    'errors': 0,
                    'warnings': 0,
                    'output_path': None,
                })
                continue

            counts = result.log.counts()
            rows.append({
                'file_name': rule_file.name,
                'target': result.target,
                'rules': len(result.lines),
                'errors': counts['error'],
                'warnings': counts['warning'],
                'output_path': str(output_path),
            })

        return pd.DataFrame(
            rows,
            columns=['file_name', 'target', 'rules', 'errors', 'warnings', 'output_path'],
        )

    def _renumber_sid(self, options: List[List[str]], target: str, log: ConversionLog) -> None:
        for pair in options:
            if pair[0] != 'sid':
                continue
            if not pair[1].strip().isdigit():
                log.warning(f"Keeping non-numeric SID {pair[1]!r} unchanged")
                continue
            sid = int(pair[1])
            if target == SNORT and sid < self.sid_offset:
                new_sid = sid + self.sid_offset
            elif target == SURICATA and sid > self.sid_offset:
                new_sid = sid - self.sid_offset
            else:
                continue
            log.warning(f"Adjusting SID from {sid} to {new_sid} for {target.title()} compatibility")
            pair[1] = str(new_sid)

    def _swap_isdataat(self, options: List[List[str]], old: str, new: str, log: ConversionLog) -> None:
        source = 'Snort' if old == '!0,relative' else 'Suricata'
        target = 'Suricata' if source == 'Snort' else 'Snort'
        for pair in options:
            if pair[0] == 'isdataat' and old in pair[1]:
                pair[1] = pair[1].replace(old, new)
                log.warning(f"Converting isdataat from {source} ({old}) to {target} ({new})")

    def _convert_to_snort(self, rule: Rule, log: ConversionLog) -> Rule:
        options = [list(pair) for pair in rule.options]
        protocol = rule.protocol

        if _has(options, 'http.uri'):
            log.info('Keeping http.uri buffer (compatible with Snort)')

        has_content = _has(options, 'content')
        for buffer, header in HEADER_BUFFERS:
            if not _has(options, buffer):
                continue
            if has_content:
                _rename(options, buffer, 'http.header')
                log.warning(
                    f"Converting {buffer} to http.header with {header} pattern "
                    f"(broader match, manual review recommended)"
                )
            else:
                _drop(options, [buffer])
                log.warning(f"Removing {buffer}: no content match to carry into http.header")

        if _rename(options, 'http.request_body', 'http.content'):
            log.info('Converting http.request_body to http.content')

        dropped = _drop(options, TLS_OPTIONS)
        if dropped:
            log.warning(f"Removing Suricata TLS options not supported by Snort: {', '.join(dropped)}")

        dropped = _drop(options, FILE_OPTIONS)
        if dropped:
            log.warning(f"Removing Suricata file extraction options: {', '.join(dropped)}")

        transport = TRANSPORT_PROTOCOLS.get(protocol.lower())
        if transport:
            log.warning(f"Converting {protocol.upper()} protocol to {transport.upper()} for Snort")
            protocol = transport

        if _drop(options, ['dns.query']):
            log.warning('Removing dns.query (no Snort equivalent, name matching relies on content)')

        self._renumber_sid(options, SNORT, log)

        if not _has(options, 'reference') and 'malware' in _first(options, 'msg').lower():
            options.append(['reference', self.malware_reference])
            log.info('Added reference URL for malware detection rule')

        if _has(options, 'urilen'):
            log.warning(
                'urilen range boundaries differ (Suricata exclusive, Snort inclusive); '
                'value kept as-is, manual review recommended'
            )

        self._swap_isdataat(options, '!1,relative', '!0,relative', log)

        return rule.with_changes(protocol=protocol, options=options)

    def _convert_to_suricata(self, rule: Rule, log: ConversionLog) -> Rule:
        options = [list(pair) for pair in rule.options]
        protocol = rule.protocol

        if _drop(options, ['fast_pattern']):
            log.info('Removing fast_pattern (not needed in Suricata)')

        dropped = _drop(options, APPID_OPTIONS)
        if dropped:
            log.info(f"Removing {', '.join(dropped)} (Suricata relies on protocol detection)")

        if _has(options, 'flowbits'):
            log.info('Preserving flowbits (compatible with Suricata)')
        if _has(options, 'pcre'):
            log.info('Preserving PCRE pattern (compatible with Suricata)')

        if _rename(options, 'http.content', 'http.request_body'):
            log.info('Converting http.content to http.request_body')

        if protocol.lower() == 'tcp':
            if self.is_tls_traffic(rule):
                protocol = 'tls'
                log.info('Converting TCP to TLS protocol for better detection')
            elif self.is_web_traffic(rule):
                protocol = 'http'
                log.info('Converting TCP to HTTP protocol for better detection')
        elif protocol.lower() == 'udp' and self.is_dns_traffic(rule):
            protocol = 'dns'
            log.info('Converting UDP to DNS protocol for better detection')
            if _has(options, 'content') and not _has(options, 'dns.query'):
                _insert_buffer(options, 'dns.query')
                log.info('Added dns.query buffer for DNS name matching')

        self._specialize_http_headers(options, log)

        self._renumber_sid(options, SURICATA, log)

        if _has(options, 'content') and not _has(options, 'file_data') and self.is_file_content(rule):
            _insert_buffer(options, 'file_data')
            log.info('Adding file detection capabilities for Suricata')

        if _has(options, 'urilen'):
            log.warning(
                'urilen range boundaries differ (Snort inclusive, Suricata exclusive); '
                'value kept as-is, manual review recommended'
            )

        self._swap_isdataat(options, '!0,relative', '!1,relative', log)

        if not _has(options, 'metadata'):
            options.append(['metadata', self.metadata_marker])
            log.info(f"Added metadata:{self.metadata_marker} marker")

        return rule.with_changes(protocol=protocol, options=options)

    def _specialize_http_headers(self, options: List[List[str]], log: ConversionLog) -> None:
        """Narrow each generic http.header buffer by sniffing its content payload."""
        i = 0
        while i < len(options):
            if options[i][0] != 'http.header':
                i += 1
                continue

            content_idx = _content_near(options, i)
            if content_idx is None:
                i += 1
                continue

            payload = options[content_idx][1].lower()
            if 'user-agent' in payload or 'mozilla' in payload:
                options[i][0] = 'http.user_agent'
                log.info('Converting generic http.header to specific http.user_agent')
                if payload in KNOWN_USER_AGENTS and not _has(options, 'bsize'):
                    options.insert(content_idx + 1, ['bsize', str(len(payload))])
                    log.info(f"Added bsize:{len(payload)} optimization for User-Agent matching")
                    if content_idx < i:
                        i += 1
            elif 'cookie' in payload:
                options[i][0] = 'http.cookie'
                log.info('Converting generic http.header to specific http.cookie')
            i += 1


def convert_to_snort(rules_text: str, **kwargs) -> ConversionResult:
    """Convert rule text to Snort with a default-configured converter."""
    return RuleConverter(**kwargs).to_snort(rules_text)


def convert_to_suricata(rules_text: str, **kwargs) -> ConversionResult:
    """Convert rule text to Suricata with a default-configured converter."""
    return RuleConverter(**kwargs).to_suricata(rules_text)

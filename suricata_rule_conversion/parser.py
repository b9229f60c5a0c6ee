"""
Rule Parser Module

This module tokenizes Snort/Suricata rule text into structured Rule objects,
formats them back into canonical rule text, and loads whole rule files into
pandas DataFrames.
"""

import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List, Dict, Any, FrozenSet, Optional, Tuple, Iterable

import pandas as pd


ACTIONS = ('alert', 'log', 'pass', 'drop', 'reject', 'sdrop')

# Options whose payload is a quoted string in both dialects
QUOTED_OPTIONS = {'msg', 'content', 'uricontent', 'pcre', 'protected_content'}

FLAG_VALUE = 'true'

DATAFRAME_COLUMNS = [
    'raw_rule', 'file_path', 'file_name', 'line_number',
    'action', 'protocol', 'source', 'direction', 'destination', 'options',
    'msg', 'sid', 'rev', 'classtype', 'priority', 'dialect',
]

RULE_PATTERN = re.compile(
    r'^(alert|log|pass|drop|reject|sdrop)\s+\w+\s+.*(->|<>).*\(.*\)$'
)
HEADER_PATTERN = re.compile(
    r'^(alert|log|pass|drop|reject|sdrop)\s+(\S+)\s+(.+)$', re.DOTALL
)
DIRECTION_PATTERN = re.compile(r'->|<>')


class ParseError(ValueError):
    """Raised when a rule line has the rule shape but cannot be decomposed."""


@dataclass(frozen=True)
class Rule:
    """One parsed detection rule.

    Options are kept as an ordered sequence of (key, value) pairs so that
    repeated keys such as several ``content`` matches all survive.
    ``quoted_keys`` names the options whose values were quoted in the
    source text, so formatting can quote them again.
    """

    action: str
    protocol: str
    source: str
    direction: str
    destination: str
    options: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    raw: str = ''
    quoted_keys: FrozenSet[str] = frozenset()

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Return the value of the first occurrence of ``key``."""
        for name, value in self.options:
            if name == key:
                return value
        return default

    def get_all(self, key: str) -> List[str]:
        """Return the values of every occurrence of ``key``, in order."""
        return [value for name, value in self.options if name == key]

    def has(self, key: str) -> bool:
        return any(name == key for name, _ in self.options)

    def option_keys(self) -> List[str]:
        """Distinct option keys in first-seen order."""
        keys = []
        for name, _ in self.options:
            if name not in keys:
                keys.append(name)
        return keys

    @property
    def msg(self) -> str:
        return self.get('msg', '') or ''

    @property
    def sid(self) -> Optional[str]:
        return self.get('sid')

    def with_changes(self, **changes) -> 'Rule':
        """Return a copy of the rule with the given fields replaced."""
        if 'options' in changes:
            changes['options'] = tuple(tuple(pair) for pair in changes['options'])
        return replace(self, **changes)


def is_valid_rule(line: str) -> bool:
    """
    Check whether a line looks like a rule.

    Blank lines and ``#`` comments are never rules.

    Args:
        line: One line of rule text

    Returns:
        True if the line matches the rule shape
    """
    trimmed = line.strip()
    if not trimmed or trimmed.startswith('#'):
        return False
    return RULE_PATTERN.match(trimmed) is not None


def split_options(options_string: str) -> List[str]:
    """
    Split an options block on semicolons that are not inside quotes.

    A backslash inside a quoted payload escapes the following character,
    so ``\\"`` never terminates the quote.

    Args:
        options_string: Text between the outer parentheses of a rule

    Returns:
        List of trimmed, non-empty option fields
    """
    parts = []
    current = []
    in_quotes = False
    quote_char = ''
    escaped = False

    for char in options_string:
        if escaped:
            current.append(char)
            escaped = False
        elif char == '\\' and in_quotes:
            current.append(char)
            escaped = True
        elif char in ('"', "'") and not in_quotes:
            in_quotes = True
            quote_char = char
            current.append(char)
        elif char == quote_char and in_quotes:
            in_quotes = False
            quote_char = ''
            current.append(char)
        elif char == ';' and not in_quotes:
            part = ''.join(current).strip()
            if part:
                parts.append(part)
            current = []
        else:
            current.append(char)

    part = ''.join(current).strip()
    if part:
        parts.append(part)

    return parts


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] in ('"', "'") and value[-1] == value[0]:
        return value[1:-1]
    return value


def _parse_fields(options_string: str) -> List[Tuple[str, str, bool]]:
    fields = []
    for part in split_options(options_string):
        if ':' in part:
            key, value = part.split(':', 1)
            key = key.strip().lower()
            value = value.strip()
            stripped = _strip_quotes(value)
            if key:
                fields.append((key, stripped, stripped != value))
        else:
            key = part.strip().lower()
            if key:
                fields.append((key, FLAG_VALUE, False))
    return fields


def parse_options(options_string: str) -> Tuple[Tuple[str, str], ...]:
    """
    Parse an options block into ordered (key, value) pairs.

    Args:
        options_string: Text between the outer parentheses of a rule

    Returns:
        Tuple of (lower-cased key, value) pairs; flag options get "true"
    """
    return tuple((key, value) for key, value, _ in _parse_fields(options_string))


def parse_rule(line: str) -> Rule:
    """
    Parse a single rule line.

    Args:
        line: Rule text

    Returns:
        Parsed Rule

    Raises:
        ParseError: If the header, direction or options block is missing
    """
    trimmed = line.strip()

    header_match = HEADER_PATTERN.match(trimmed)
    if not header_match:
        raise ParseError(f"Rule header not found: {trimmed[:80]}")
    action, protocol, rest = header_match.groups()

    open_idx = rest.find('(')
    if open_idx == -1 or not rest.endswith(')'):
        raise ParseError(f"Options block not found: {trimmed[:80]}")

    addresses = rest[:open_idx]
    options_string = rest[open_idx + 1:-1]
    if not options_string.strip():
        raise ParseError(f"Empty options block: {trimmed[:80]}")

    direction_match = DIRECTION_PATTERN.search(addresses)
    if not direction_match:
        raise ParseError(f"Direction marker not found: {trimmed[:80]}")

    source = addresses[:direction_match.start()].strip()
    destination = addresses[direction_match.end():].strip()
    if not source or not destination:
        raise ParseError(f"Source or destination missing: {trimmed[:80]}")

    fields = _parse_fields(options_string)
    return Rule(
        action=action,
        protocol=protocol,
        source=source,
        direction=direction_match.group(0),
        destination=destination,
        options=tuple((key, value) for key, value, _ in fields),
        raw=trimmed,
        quoted_keys=frozenset(key for key, _, quoted in fields if quoted),
    )


def parse_rules(rules_text: str) -> List[Rule]:
    """
    Parse every valid rule in a block of text.

    Comments, blank lines and lines that cannot be decomposed are skipped.

    Args:
        rules_text: Multi-line rule text

    Returns:
        List of parsed rules, in input order
    """
    parsed_rules = []
    for line in rules_text.splitlines():
        if not is_valid_rule(line):
            continue
        try:
            parsed_rules.append(parse_rule(line))
        except ParseError:
            continue
    return parsed_rules


def _format_option(key: str, value: str, quoted_keys: FrozenSet[str] = frozenset()) -> str:
    if value == FLAG_VALUE and key not in quoted_keys:
        return key
    if value.startswith('"') or value.startswith('!"'):
        return f"{key}:{value}"
    if key in QUOTED_OPTIONS or key in quoted_keys or ';' in value:
        return f'{key}:"{value}"'
    return f"{key}:{value}"


def format_rule(rule: Rule) -> str:
    """
    Format a Rule as canonical rule text.

    Args:
        rule: Rule to format

    Returns:
        Single-line rule string
    """
    options_string = '; '.join(
        _format_option(key, value, rule.quoted_keys) for key, value in rule.options
    )
    return (
        f"{rule.action} {rule.protocol} {rule.source} {rule.direction} "
        f"{rule.destination} ({options_string};)"
    )


def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def rule_to_dict(rule: Rule) -> Dict[str, Any]:
    """Flatten a Rule into a dictionary row."""
    return {
        'raw_rule': rule.raw,
        'action': rule.action,
        'protocol': rule.protocol,
        'source': rule.source,
        'direction': rule.direction,
        'destination': rule.destination,
        'options': list(rule.options),
        'msg': rule.get('msg'),
        'sid': _to_int(rule.get('sid')),
        'rev': _to_int(rule.get('rev')),
        'classtype': rule.get('classtype'),
        'priority': _to_int(rule.get('priority')),
    }


def rules_to_dataframe(rules: Iterable[Rule]) -> pd.DataFrame:
    """
    Convert parsed rules to a DataFrame with one row per rule.

    Args:
        rules: Parsed rules

    Returns:
        pandas DataFrame with flattened rule fields and a dialect column
    """
    from .dialect import DialectClassifier

    classifier = DialectClassifier()
    rows = []
    for rule in rules:
        row = rule_to_dict(rule)
        row['dialect'] = classifier.detect(rule.raw or format_rule(rule))
        rows.append(row)
    return pd.DataFrame(rows)


def load_rule_files(rules_dir: str = "rules") -> List[Path]:
    """
    Load all .rules files from the specified directory.

    Args:
        rules_dir: Path to the directory containing rule files

    Returns:
        List of Path objects for all .rules files found
    """
    rules_path = Path(rules_dir)
    if not rules_path.exists():
        raise FileNotFoundError(f"Rules directory not found: {rules_dir}")

    rule_files = sorted(rules_path.rglob("*.rules"))
    print(f"Found {len(rule_files)} rule files in {rules_dir}")
    return rule_files


def parse_rule_file(file_path: Path) -> List[Dict[str, Any]]:
    """
    Parse all rules from a single rule file.

    Args:
        file_path: Path to the rule file

    Returns:
        List of parsed rule dictionaries
    """
    from .dialect import DialectClassifier

    file_path = Path(file_path)
    classifier = DialectClassifier()
    parsed_rules = []
    errors = 0

    text = file_path.read_text(encoding='utf-8', errors='replace')
    for line_number, line in enumerate(text.splitlines(), 1):
        if not is_valid_rule(line):
            continue
        try:
            rule = parse_rule(line)
        except ParseError as e:
            errors += 1
            if errors <= 3:  # Only print first few errors
                print(f"  Error parsing line {line_number} in {file_path.name}: {e}")
            continue

        rule_dict = rule_to_dict(rule)
        rule_dict['file_path'] = str(file_path)
        rule_dict['file_name'] = file_path.name
        rule_dict['line_number'] = line_number
        rule_dict['dialect'] = classifier.detect(rule.raw)
        parsed_rules.append(rule_dict)

    if errors > 3:
        print(f"  ... and {errors - 3} more errors in {file_path.name}")

    return parsed_rules


def parse_all_rules(rules_dir: str = "rules", max_files: Optional[int] = None) -> pd.DataFrame:
    """
    Parse all rules from the rules directory and return as DataFrame.

    Args:
        rules_dir: Path to the directory containing rule files
        max_files: Optional limit on number of files to process (for testing)

    Returns:
        pandas DataFrame with all parsed rules
    """
    rule_files = load_rule_files(rules_dir)

    if max_files:
        rule_files = rule_files[:max_files]
        print(f"Processing only first {max_files} files for testing")

    all_rules = []
    for i, rule_file in enumerate(rule_files, 1):
        print(f"Processing {i}/{len(rule_files)}: {rule_file.name}", end='\r')
        all_rules.extend(parse_rule_file(rule_file))

    print(f"\nSuccessfully parsed {len(all_rules)} rules from {len(rule_files)} files")

    return pd.DataFrame(all_rules, columns=DATAFRAME_COLUMNS)


def _option_pairs(options: Any) -> List[Tuple[str, str]]:
    if not isinstance(options, (list, tuple)):
        return []
    return [(str(pair[0]), str(pair[1])) for pair in options]


def save_parsed_rules(df: pd.DataFrame, output_path: str = "data/parsed_rules.pkl"):
    """
    Save a parsed rules DataFrame as a pickle.

    The options column is normalized to lists of (key, value) tuples so a
    reloaded frame can be turned back into Rule objects.

    Args:
        df: DataFrame with parsed rules
        output_path: Path of the pickle file
    """
    output_file = Path(output_path)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    df = df.copy()
    if 'options' in df.columns:
        df['options'] = df['options'].apply(_option_pairs)

    df.to_pickle(output_file)
    print(f"Saved {len(df)} parsed rules to {output_file}")


def load_parsed_rules(input_path: str = "data/parsed_rules.pkl") -> pd.DataFrame:
    """
    Load a parsed rules DataFrame written by save_parsed_rules.

    Raises:
        FileNotFoundError: If the pickle file does not exist
        ValueError: If the frame lacks the rule header or options columns
    """
    input_file = Path(input_path)
    if not input_file.exists():
        raise FileNotFoundError(f"Parsed rules file not found: {input_path}")

    df = pd.read_pickle(input_file)
    missing = [c for c in ('action', 'protocol', 'options') if c not in df.columns]
    if missing:
        raise ValueError(f"Not a parsed rules file, missing columns: {', '.join(missing)}")

    print(f"Loaded {len(df)} parsed rules from {input_file}")
    return df


def dataframe_to_rules(df: pd.DataFrame) -> List[Rule]:
    """
    Rebuild Rule objects from a parsed rules DataFrame.

    Rows carrying their raw rule text are re-parsed, which also restores
    option quoting; other rows are assembled from their columns.

    Raises:
        ParseError: If a raw rule text no longer parses
    """
    rules = []
    for row in df.to_dict('records'):
        raw = row.get('raw_rule')
        if isinstance(raw, str) and raw:
            rules.append(parse_rule(raw))
            continue
        rules.append(Rule(
            action=row['action'],
            protocol=row['protocol'],
            source=row.get('source') or 'any any',
            direction=row.get('direction') or '->',
            destination=row.get('destination') or 'any any',
            options=tuple(_option_pairs(row['options'])),
            raw='',
        ))
    return rules

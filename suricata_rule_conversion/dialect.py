"""
Dialect Detection Module

This module guesses whether rule text is written for Snort or Suricata by
additive keyword scoring. Signatures live in a table so new dialect markers
can be added without touching the parser or the converter.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .parser import is_valid_rule


SNORT = 'snort'
SURICATA = 'suricata'
UNKNOWN = 'unknown'

DIALECTS = (SNORT, SURICATA)


def opposite_dialect(dialect: str) -> str:
    """Return the other supported dialect."""
    if dialect == SNORT:
        return SURICATA
    if dialect == SURICATA:
        return SNORT
    raise ValueError(f"Unknown dialect: {dialect}")


@dataclass(frozen=True)
class Signature:
    """A weighted keyword group voting for one dialect."""

    name: str
    dialect: str
    weight: int
    tokens: Tuple[str, ...] = ()
    excludes: Tuple[str, ...] = ()
    pattern: Optional[Pattern] = None

    def matches(self, line: str) -> bool:
        if any(token in line for token in self.excludes):
            return False
        if any(token in line for token in self.tokens):
            return True
        return bool(self.pattern and self.pattern.search(line))


DEFAULT_SIGNATURES = (
    Signature('snort_native_options', SNORT, 3,
              tokens=('fast_pattern', 'openappid', 'appid:')),
    Signature('snort_http_buffers', SNORT, 2,
              tokens=('http.content', 'http.method')),
    Signature('snort_plain_metadata', SNORT, 2,
              tokens=('metadata:',), excludes=('http.', 'tls.')),
    Signature('snort_relative_markers', SNORT, 1,
              tokens=('urilen:', '!0,relative')),
    Signature('suricata_app_buffers', SURICATA, 3,
              tokens=('http.request_body', 'http.user_agent', 'dns.query')),
    Signature('suricata_buffers', SURICATA, 2,
              tokens=('bsize:', 'tls.', 'file_')),
    Signature('suricata_file_extraction', SURICATA, 3,
              tokens=('filestore', 'fileext', 'filemagic',
                      'filemd5', 'filesha1', 'filesha256')),
    Signature('suricata_secondary_markers', SURICATA, 1,
              tokens=('!1,relative', 'tls.subject', 'tls.issuerdn')),
    Signature('suricata_app_layer_protocol', SURICATA, 2,
              pattern=re.compile(
                  r'^\s*(alert|log|pass|drop|reject|sdrop)\s+(http|tls|dns|smtp|ftp)\s+',
                  re.IGNORECASE)),
)


def _valid_lines(rules: Union[str, Iterable[str]]) -> List[str]:
    lines = rules.splitlines() if isinstance(rules, str) else list(rules)
    return [line.strip() for line in lines if is_valid_rule(line)]


class DialectClassifier:
    """Linear keyword classifier over a signature table."""

    def __init__(self, signatures: Sequence[Signature] = DEFAULT_SIGNATURES):
        """
        Initialize classifier.

        Args:
            signatures: Signature table; each entry votes for one dialect
        """
        for signature in signatures:
            if signature.dialect not in DIALECTS:
                raise ValueError(
                    f"Signature {signature.name} votes for unknown dialect: {signature.dialect}"
                )
        self.signatures = tuple(signatures)

    def signature_matrix(self, rules: Union[str, Iterable[str]]) -> np.ndarray:
        """
        Build the hit matrix of valid rule lines against the signature table.

        Args:
            rules: Rule text or an iterable of lines

        Returns:
            Integer array of shape (n_valid_lines, n_signatures)
        """
        lines = _valid_lines(rules)
        matrix = np.zeros((len(lines), len(self.signatures)), dtype=int)
        for i, line in enumerate(lines):
            for j, signature in enumerate(self.signatures):
                if signature.matches(line):
                    matrix[i, j] = 1
        return matrix

    def weights(self) -> np.ndarray:
        """Weight matrix of shape (n_signatures, 2), columns (snort, suricata)."""
        weights = np.zeros((len(self.signatures), len(DIALECTS)), dtype=int)
        for j, signature in enumerate(self.signatures):
            weights[j, DIALECTS.index(signature.dialect)] = signature.weight
        return weights

    def line_scores(self, rules: Union[str, Iterable[str]]) -> np.ndarray:
        """Per-line scores of shape (n_valid_lines, 2)."""
        return self.signature_matrix(rules) @ self.weights()

    def score(self, rules: Union[str, Iterable[str]]) -> Dict[str, int]:
        """
        Accumulate dialect scores over every valid rule line.

        Args:
            rules: Rule text or an iterable of lines

        Returns:
            Dictionary mapping dialect name to total score
        """
        totals = self.line_scores(rules).sum(axis=0)
        return {dialect: int(totals[i]) for i, dialect in enumerate(DIALECTS)}

    def detect(self, rules: Union[str, Iterable[str]]) -> str:
        """
        Guess the dialect of rule text.

        Returns:
            'snort' or 'suricata' when one side scores strictly higher,
            otherwise 'unknown'
        """
        return _verdict(self.score(rules))

    def classify_lines(self, rules: Union[str, Iterable[str]]) -> pd.DataFrame:
        """
        Score and classify every valid rule line independently.

        Args:
            rules: Rule text or an iterable of lines

        Returns:
            DataFrame with columns rule, snort_score, suricata_score, dialect
        """
        lines = _valid_lines(rules)
        scores = self.line_scores(lines)
        rows = []
        for line, (snort_score, suricata_score) in zip(lines, scores):
            rows.append({
                'rule': line,
                'snort_score': int(snort_score),
                'suricata_score': int(suricata_score),
                'dialect': _verdict({SNORT: snort_score, SURICATA: suricata_score}),
            })
        return pd.DataFrame(rows, columns=['rule', 'snort_score', 'suricata_score', 'dialect'])


def _verdict(scores: Dict[str, int]) -> str:
    if scores[SNORT] > scores[SURICATA]:
        return SNORT
    if scores[SURICATA] > scores[SNORT]:
        return SURICATA
    return UNKNOWN


def detect_dialect(
        rules: Union[str, Iterable[str]],
        signatures: Optional[Sequence[Signature]] = None
) -> str:
    """
    Guess the dialect of rule text with the default or a custom signature table.

    Args:
        rules: Rule text or an iterable of lines
        signatures: Optional replacement signature table

    Returns:
        'snort', 'suricata' or 'unknown'
    """
    classifier = DialectClassifier(signatures) if signatures is not None else DialectClassifier()
    return classifier.detect(rules)

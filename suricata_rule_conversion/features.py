"""
Rule Set Profiling Module

This module extracts per-rule option features from parsed rules and
summarizes a rule set: protocol and action distribution, option usage, and
how many rules rely on dialect-specific options.
"""

from collections import Counter
from typing import Any, Dict, List

import numpy as np
import pandas as pd

from .parser import parse_rules, rules_to_dataframe


SNORT_SPECIFIC_OPTIONS = ('fast_pattern', 'openappid', 'appid')
SURICATA_SPECIFIC_OPTIONS = ('http.uri', 'file_data')

OPTION_TYPES = [
    'content', 'pcre', 'flow', 'flowbits', 'fast_pattern', 'openappid', 'appid',
    'http.uri', 'http.header', 'http.user_agent', 'http.cookie', 'http.content',
    'http.request_body', 'http.method', 'dns.query', 'file_data', 'bsize',
    'urilen', 'isdataat', 'reference', 'metadata', 'classtype',
]


def _option_keys(options: Any) -> List[str]:
    if not isinstance(options, (list, tuple)):
        return []
    return [pair[0] for pair in options]


def _is_snort_specific(options: Any) -> bool:
    return any(key in SNORT_SPECIFIC_OPTIONS for key in _option_keys(options))


def _is_suricata_specific(options: Any) -> bool:
    return any(
        key in SURICATA_SPECIFIC_OPTIONS or key.startswith('tls.')
        for key in _option_keys(options)
    )


class RuleSetProfiler:
    """Extract option features and summary statistics from parsed rules."""

    def extract_option_features(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Extract features from rule options.

        Args:
            df: DataFrame with parsed rules (options as lists of key/value pairs)

        Returns:
            DataFrame with option features added
        """
        features_df = df.copy()

        if 'options' not in features_df.columns:
            return features_df

        features_df['num_options'] = features_df['options'].apply(
            lambda x: len(x) if isinstance(x, (list, tuple)) else 0
        )

        for opt_type in OPTION_TYPES:
            features_df[f'has_{opt_type}'] = features_df['options'].apply(
                lambda x: int(opt_type in _option_keys(x))
            )

        features_df['num_content'] = features_df['options'].apply(
            lambda x: _option_keys(x).count('content')
        )
        features_df['num_pcre'] = features_df['options'].apply(
            lambda x: _option_keys(x).count('pcre')
        )

        features_df['snort_specific'] = features_df['options'].apply(
            lambda x: int(_is_snort_specific(x))
        )
        features_df['suricata_specific'] = features_df['options'].apply(
            lambda x: int(_is_suricata_specific(x))
        )

        return features_df

    def summarize(self, df: pd.DataFrame) -> Dict[str, Any]:
        """
        Summarize a parsed rule set.

        Args:
            df: DataFrame with parsed rules

        Returns:
            Dictionary with totals and distributions
        """
        if len(df) == 0:
            return {
                'total_rules': 0,
                'protocols': {},
                'actions': {},
                'common_options': {},
                'snort_specific': 0,
                'suricata_specific': 0,
                'dialects': {},
            }

        features_df = self.extract_option_features(df)

        option_counts = Counter()
        for options in features_df['options']:
            option_counts.update(set(_option_keys(options)))

        dialects = {}
        if 'dialect' in features_df.columns:
            dialects = {k: int(v) for k, v in features_df['dialect'].value_counts().items()}

        return {
            'total_rules': int(len(features_df)),
            'protocols': {k: int(v) for k, v in features_df['protocol'].value_counts().items()},
            'actions': {k: int(v) for k, v in features_df['action'].value_counts().items()},
            'common_options': dict(option_counts.most_common()),
            'snort_specific': int(np.sum(features_df['snort_specific'])),
            'suricata_specific': int(np.sum(features_df['suricata_specific'])),
            'dialects': dialects,
        }

    def feature_matrix(self, df: pd.DataFrame) -> np.ndarray:
        """
        Numeric option feature matrix, one row per rule.

        Returns:
            numpy array of the has_/num_ feature columns
        """
        features_df = self.extract_option_features(df)
        columns = [c for c in features_df.columns if c.startswith('has_') or c.startswith('num_')]
        return features_df[columns].fillna(0).values.astype(int)


def analyze_rules(rules_text: str) -> Dict[str, Any]:
    """
    Profile a block of rule text.

    Args:
        rules_text: Multi-line rule text

    Returns:
        Summary dictionary (see RuleSetProfiler.summarize)
    """
    df = rules_to_dataframe(parse_rules(rules_text))
    return RuleSetProfiler().summarize(df)

"""
Suricata Rule Conversion Package

Parse Snort/Suricata IDS rules, detect which dialect they are written in,
and convert them to the other dialect with a full log of every decision.
"""

__version__ = "0.1.0"

from . import parser
from . import dialect
from . import heuristics
from . import conversion_log
from . import converter
from . import analysis
from . import features

from .parser import Rule, ParseError, is_valid_rule, parse_rule, parse_rules, format_rule
from .dialect import DialectClassifier, detect_dialect
from .converter import RuleConverter, ConversionResult, convert_to_snort, convert_to_suricata
from .conversion_log import ConversionLog, ConversionLogEntry, Severity
from .analysis import ConversionAnalyzer, analyze_conversion

__all__ = [
    "parser", "dialect", "heuristics", "conversion_log", "converter", "analysis", "features",
    "Rule", "ParseError", "is_valid_rule", "parse_rule", "parse_rules", "format_rule",
    "DialectClassifier", "detect_dialect",
    "RuleConverter", "ConversionResult", "convert_to_snort", "convert_to_suricata",
    "ConversionLog", "ConversionLogEntry", "Severity",
    "ConversionAnalyzer", "analyze_conversion",
]

"""
Conversion Analysis Module

This module compares an original rule with its converted counterpart and
describes what changed, what was optimized, what risks the conversion
introduced, and what a reviewer should consider next. Analyses can be
exported as Markdown, CSV or JSON reports.
"""

import json
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, List, Any, Optional, Tuple

import pandas as pd

from .converter import FILE_OPTIONS, TLS_OPTIONS
from .parser import Rule, format_rule


TRANSPORT_PROTOCOLS = ('tcp', 'udp')
APP_LAYER_PROTOCOLS = ('http', 'tls', 'dns', 'smtp', 'ftp')

LONG_CONTENT_LENGTH = 50


@dataclass
class ChangeRecord:
    type: str
    description: str
    impact: str
    option: Optional[str] = None
    from_value: Optional[str] = None
    to_value: Optional[str] = None


@dataclass
class OptimizationRecord:
    type: str
    description: str
    benefit: str


@dataclass
class RiskRecord:
    type: str
    severity: str
    description: str
    mitigation: str


@dataclass
class Recommendation:
    type: str
    priority: str
    message: str
    action: str


@dataclass
class ConversionAnalysis:
    changes: List[ChangeRecord] = field(default_factory=list)
    optimizations: List[OptimizationRecord] = field(default_factory=list)
    risks: List[RiskRecord] = field(default_factory=list)
    recommendations: List[Recommendation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            'changes': [asdict(c) for c in self.changes],
            'optimizations': [asdict(o) for o in self.optimizations],
            'risks': [asdict(r) for r in self.risks],
            'recommendations': [asdict(r) for r in self.recommendations],
        }


class ConversionAnalyzer:
    """Derive change, optimization, risk and recommendation records for a rule pair."""

    def analyze(self, original: Rule, converted: Rule) -> ConversionAnalysis:
        """
        Analyze one conversion.

        Args:
            original: Rule before conversion
            converted: Rule after conversion

        Returns:
            ConversionAnalysis with all four record lists
        """
        return ConversionAnalysis(
            changes=self.identify_changes(original, converted),
            optimizations=self.identify_optimizations(original, converted),
            risks=self.identify_risks(original, converted),
            recommendations=self.generate_recommendations(original, converted),
        )

    def identify_changes(self, original: Rule, converted: Rule) -> List[ChangeRecord]:
        changes = []

        if original.protocol != converted.protocol:
            changes.append(ChangeRecord(
                type='protocol',
                description=f"Protocol changed from {original.protocol} to {converted.protocol}",
                impact='medium',
                from_value=original.protocol,
                to_value=converted.protocol,
            ))

        original_keys = original.option_keys()
        converted_keys = converted.option_keys()

        for option in converted_keys:
            if option not in original_keys:
                changes.append(ChangeRecord(
                    type='option_added',
                    description=f"Added {option} option for target system compatibility",
                    impact='low',
                    option=option,
                ))

        for option in original_keys:
            if option not in converted_keys:
                changes.append(ChangeRecord(
                    type='option_removed',
                    description=f"Removed {option} option (not supported in target system)",
                    impact='medium',
                    option=option,
                ))

        return changes

    def identify_optimizations(self, original: Rule, converted: Rule) -> List[OptimizationRecord]:
        optimizations = []

        if converted.has('bsize') and not original.has('bsize'):
            optimizations.append(OptimizationRecord(
                type='performance',
                description='Added bsize optimization for better performance',
                benefit='Reduces search space and improves matching speed',
            ))

        for buffer in ('http.user_agent', 'http.cookie'):
            if converted.has(buffer) and not original.has(buffer) and original.has('http.header'):
                optimizations.append(OptimizationRecord(
                    type='accuracy',
                    description=f"Converted generic http.header to specific {buffer}",
                    benefit='More precise matching and reduced false positives',
                ))

        if (original.protocol.lower() in TRANSPORT_PROTOCOLS
                and converted.protocol.lower() in APP_LAYER_PROTOCOLS):
            optimizations.append(OptimizationRecord(
                type='accuracy',
                description=f"Promoted {original.protocol} to application-layer protocol {converted.protocol}",
                benefit='Lets the engine apply protocol parsing before content matching',
            ))

        return optimizations

    def identify_risks(self, original: Rule, converted: Rule) -> List[RiskRecord]:
        risks = []

        if original.has('fast_pattern') and not converted.has('fast_pattern'):
            risks.append(RiskRecord(
                type='functionality',
                severity='medium',
                description='fast_pattern removed - may impact performance in high-traffic environments',
                mitigation='Monitor rule performance and consider alternative optimizations',
            ))

        if original.has('urilen') and converted.has('urilen'):
            risks.append(RiskRecord(
                type='behavioral',
                severity='high',
                description='urilen range interpretation differs between systems',
                mitigation='Test rule behavior in target environment',
            ))

        lost_tls = [o for o in TLS_OPTIONS if original.has(o) and not converted.has(o)]
        if lost_tls:
            risks.append(RiskRecord(
                type='functionality',
                severity='high',
                description=f"TLS inspection options removed: {', '.join(lost_tls)}",
                mitigation='Re-express the TLS match with content on the handshake or keep the rule on Suricata',
            ))

        lost_files = [o for o in FILE_OPTIONS if original.has(o) and not converted.has(o)]
        if lost_files:
            risks.append(RiskRecord(
                type='functionality',
                severity='medium',
                description=f"File inspection options removed: {', '.join(lost_files)}",
                mitigation='Confirm the rule still matches without file extraction support',
            ))

        if (original.protocol.lower() in APP_LAYER_PROTOCOLS
                and converted.protocol.lower() in TRANSPORT_PROTOCOLS):
            risks.append(RiskRecord(
                type='behavioral',
                severity='medium',
                description=f"Protocol downgraded from {original.protocol} to {converted.protocol}",
                mitigation='Add port or flow constraints so the rule does not match unrelated traffic',
            ))

        return risks

    def generate_recommendations(self, original: Rule, converted: Rule) -> List[Recommendation]:
        recommendations = []

        has_long_content = any(len(c) > LONG_CONTENT_LENGTH for c in converted.get_all('content'))
        if has_long_content and not converted.has('fast_pattern'):
            recommendations.append(Recommendation(
                type='performance',
                priority='medium',
                message='Consider adding fast_pattern for long content strings',
                action='Add fast_pattern to improve matching performance',
            ))

        if not converted.has('reference') and 'malware' in original.msg.lower():
            recommendations.append(Recommendation(
                type='best_practice',
                priority='low',
                message='Consider adding reference URL for malware rule',
                action='Add reference:url,virustotal.com; for additional context',
            ))

        return recommendations


def analyze_conversion(original: Rule, converted: Rule) -> ConversionAnalysis:
    """Analyze one (original, converted) rule pair."""
    return ConversionAnalyzer().analyze(original, converted)


AnalyzedPair = Tuple[Rule, Rule, ConversionAnalysis]


class ConversionReportGenerator:
    """Export conversion analyses as Markdown, CSV or JSON."""

    def export_to_markdown(self, analyzed: List[AnalyzedPair], output_path: str) -> None:
        """
        Export conversion analyses to a markdown file.

        Args:
            analyzed: List of (original, converted, analysis) tuples
            output_path: Output file path
        """
        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        with open(output_file, 'w') as f:
            f.write("# Rule Conversion Report\n\n")
            f.write(f"Total Rules: {len(analyzed)}\n\n")
            f.write("---\n\n")

            for original, converted, analysis in analyzed:
                self._write_rule_markdown(f, original, converted, analysis)

        print(f"Markdown report saved to: {output_file}")

    def _write_rule_markdown(self, file, original: Rule, converted: Rule, analysis: ConversionAnalysis) -> None:
        """Write a single rule analysis in markdown format."""
        file.write(f"## SID {original.sid or 'unknown'}: {original.msg or 'N/A'}\n\n")
        file.write(f"**Original**: `{format_rule(original)}`\n\n")
        file.write(f"**Converted**: `{format_rule(converted)}`\n\n")

        if analysis.changes:
            file.write("**Changes**:\n")
            for change in analysis.changes:
                file.write(f"- [{change.impact}] {change.description}\n")
            file.write("\n")

        if analysis.optimizations:
            file.write("**Optimizations**:\n")
            for optimization in analysis.optimizations:
                file.write(f"- {optimization.description}: {optimization.benefit}\n")
            file.write("\n")

        if analysis.risks:
            file.write("**Risks**:\n")
            for risk in analysis.risks:
                file.write(f"- [{risk.severity}] {risk.description} (mitigation: {risk.mitigation})\n")
            file.write("\n")

        if analysis.recommendations:
            file.write("**Recommendations**:\n")
            for rec in analysis.recommendations:
                file.write(f"- [{rec.priority}] {rec.message}\n")
            file.write("\n")

        file.write("---\n\n")

    def export_to_csv(self, analyzed: List[AnalyzedPair], output_path: str) -> None:
        """
        Export one summary row per converted rule to a CSV file.

        Args:
            analyzed: List of (original, converted, analysis) tuples
            output_path: Output file path
        """
        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        rows = []
        for original, converted, analysis in analyzed:
            highest_risk = 'none'
            for level in ('low', 'medium', 'high'):
                if any(r.severity == level for r in analysis.risks):
                    highest_risk = level

            rows.append({
                'sid': original.sid,
                'msg': original.msg,
                'original_protocol': original.protocol,
                'converted_protocol': converted.protocol,
                'changes': len(analysis.changes),
                'optimizations': len(analysis.optimizations),
                'risks': len(analysis.risks),
                'highest_risk': highest_risk,
                'recommendations': len(analysis.recommendations),
                'converted_rule': format_rule(converted),
            })

        df = pd.DataFrame(rows, columns=[
            'sid', 'msg', 'original_protocol', 'converted_protocol', 'changes',
            'optimizations', 'risks', 'highest_risk', 'recommendations', 'converted_rule',
        ])
        df.to_csv(output_file, index=False)
        print(f"CSV report saved to: {output_file}")

    def export_to_json(self, analyzed: List[AnalyzedPair], output_path: str) -> None:
        """
        Export conversion analyses to a JSON file.

        Args:
            analyzed: List of (original, converted, analysis) tuples
            output_path: Output file path
        """
        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        payload = [
            {
                'sid': original.sid,
                'original': format_rule(original),
                'converted': format_rule(converted),
                **analysis.to_dict(),
            }
            for original, converted, analysis in analyzed
        ]

        with open(output_file, 'w') as f:
            json.dump(payload, f, indent=2)

        print(f"JSON report saved to: {output_file}")


def format_conversion_analysis(original: Rule, converted: Rule, analysis: ConversionAnalysis) -> str:
    """
    Format a conversion analysis as readable text.

    Returns:
        Formatted string
    """
    lines = []
    lines.append(f"\nRULE SID {original.sid or 'unknown'}: {original.msg or 'N/A'}")
    lines.append("=" * (len(lines[0]) - 1))
    lines.append(f"Original:  {format_rule(original)}")
    lines.append(f"Converted: {format_rule(converted)}")

    if analysis.changes:
        lines.append("\nChanges:")
        for change in analysis.changes:
            lines.append(f"  • {change.description} ({change.impact} impact)")

    if analysis.optimizations:
        lines.append("\nOptimizations:")
        for optimization in analysis.optimizations:
            lines.append(f"  • {optimization.description}")

    if analysis.risks:
        lines.append("\nRisks:")
        for risk in analysis.risks:
            lines.append(f"  • [{risk.severity}] {risk.description}")
            lines.append(f"    Mitigation: {risk.mitigation}")

    if analysis.recommendations:
        lines.append("\nRecommendations:")
        for rec in analysis.recommendations:
            lines.append(f"  • [{rec.priority}] {rec.message}")

    return "\n".join(lines)

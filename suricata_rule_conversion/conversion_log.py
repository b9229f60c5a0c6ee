"""
Conversion Log Module

An ordered, append-only record of every decision made while converting a
batch of rules. Each conversion run owns its own log.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Dict, Iterator, List

import pandas as pd


class Severity(str, Enum):
    INFO = 'info'
    SUCCESS = 'success'
    WARNING = 'warning'
    ERROR = 'error'


@dataclass(frozen=True)
class ConversionLogEntry:
    timestamp: str
    message: str
    severity: Severity

    def to_dict(self) -> Dict[str, str]:
        entry = asdict(self)
        entry['severity'] = self.severity.value
        return entry


class ConversionLog:
    """Ordered conversion narrative."""

    def __init__(self):
        self._entries: List[ConversionLogEntry] = []

    def log(self, message: str, severity: Severity = Severity.INFO) -> ConversionLogEntry:
        """
        Append an entry stamped with the current wall-clock time.

        Args:
            message: Human-readable description of the decision
            severity: Entry severity

        Returns:
            The appended entry
        """
        entry = ConversionLogEntry(
            timestamp=datetime.now().strftime('%H:%M:%S'),
            message=message,
            severity=Severity(severity),
        )
        self._entries.append(entry)
        return entry

    def info(self, message: str) -> ConversionLogEntry:
        return self.log(message, Severity.INFO)

    def success(self, message: str) -> ConversionLogEntry:
        return self.log(message, Severity.SUCCESS)

    def warning(self, message: str) -> ConversionLogEntry:
        return self.log(message, Severity.WARNING)

    def error(self, message: str) -> ConversionLogEntry:
        return self.log(message, Severity.ERROR)

    def clear(self) -> None:
        self._entries = []

    @property
    def entries(self) -> List[ConversionLogEntry]:
        return list(self._entries)

    def by_severity(self, severity: Severity) -> List[ConversionLogEntry]:
        severity = Severity(severity)
        return [entry for entry in self._entries if entry.severity == severity]

    @property
    def has_errors(self) -> bool:
        return any(entry.severity == Severity.ERROR for entry in self._entries)

    def counts(self) -> Dict[str, int]:
        """Number of entries per severity, including zero counts."""
        counts = {severity.value: 0 for severity in Severity}
        for entry in self._entries:
            counts[entry.severity.value] += 1
        return counts

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            [entry.to_dict() for entry in self._entries],
            columns=['timestamp', 'message', 'severity'],
        )

    def __iter__(self) -> Iterator[ConversionLogEntry]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"ConversionLog({len(self._entries)} entries)"

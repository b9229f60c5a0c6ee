"""
Traffic heuristics used to promote generic protocols to application-layer
protocols during conversion.

These are keyword and substring checks over a rule's content payloads,
message and destination port, not protocol parsing. Each predicate is pure
and takes a parsed Rule.
"""

import re
from typing import List, Set

from .parser import Rule


WEB_PORTS = {80, 8080, 443}
TLS_PORTS = {443}
DNS_PORTS = {53}

_PORT_NUMBER = re.compile(r'\d+')


def destination_ports(rule: Rule) -> Set[int]:
    """
    Numeric ports named in the destination port expression.

    The port expression is the last whitespace-separated token of the
    destination; ranges and lists contribute every number they spell out.
    """
    tokens = rule.destination.split()
    if len(tokens) < 2:
        return set()
    return {int(number) for number in _PORT_NUMBER.findall(tokens[-1])}


def _contents(rule: Rule) -> List[str]:
    return rule.get_all('content')


def _msg(rule: Rule) -> str:
    return rule.msg.lower()


def is_web_traffic(rule: Rule) -> bool:
    msg = _msg(rule)
    return (
        any('http' in content or '/' in content for content in _contents(rule))
        or 'web' in msg
        or 'http' in msg
        or bool(destination_ports(rule) & WEB_PORTS)
    )


def is_tls_traffic(rule: Rule) -> bool:
    msg = _msg(rule)
    return (
        any('tls' in content.lower() or 'ssl' in content.lower() for content in _contents(rule))
        or 'tls' in msg
        or 'ssl' in msg
        or bool(destination_ports(rule) & TLS_PORTS)
    )


def is_dns_traffic(rule: Rule) -> bool:
    msg = _msg(rule)
    return (
        any(tld in content for content in _contents(rule) for tld in ('.com', '.org', '.net'))
        or 'dns' in msg
        or 'query' in msg
        or bool(destination_ports(rule) & DNS_PORTS)
    )


def is_file_content(rule: Rule) -> bool:
    """True when the rule looks like it inspects a transferred file.

    ``MZ`` (PE header) and ``PK`` (ZIP header) are matched case-sensitively.
    """
    msg = _msg(rule)
    for content in _contents(rule):
        lowered = content.lower()
        if '.exe' in lowered or '.pdf' in lowered or '.doc' in lowered:
            return True
        if 'MZ' in content or 'PK' in content:
            return True
    return 'file' in msg or 'upload' in msg or 'malware' in msg

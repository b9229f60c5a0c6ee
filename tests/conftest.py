"""
Pytest configuration and shared fixtures for testing.
"""

import pytest
import pandas as pd
from pathlib import Path
import shutil


@pytest.fixture
def snort_rule_lines():
    """Sample Snort rule lines for testing."""
    return [
        'alert tcp $EXTERNAL_NET any -> $HOME_NET 80 (msg:"X"; content:"POST"; fast_pattern; sid:1000001; rev:3;)',
        'alert tcp any any -> any 22 (msg:"SSH brute force"; flow:to_server,established; content:"SSH-"; sid:42; rev:1;)',
        'alert udp any any -> any 53 (msg:"Suspicious DNS query"; content:"evil"; appid:dns; sid:1000005; rev:1;)',
        'drop tcp $EXTERNAL_NET any -> $HOME_NET 445 (msg:"SMB Attack"; content:"|ff|SMB"; fast_pattern; sid:1000004; rev:3; priority:1;)',
    ]


@pytest.fixture
def suricata_rule_lines():
    """Sample Suricata rule lines for testing."""
    return [
        'alert http $EXTERNAL_NET any -> $HOME_NET any (msg:"Bad UA"; http.user_agent; content:"EvilBot"; sid:2001; rev:1;)',
        'alert tls any any -> any 443 (msg:"Bad cert"; tls.cert_subject; content:"CN=evil"; sid:2002; rev:1;)',
        'alert dns any any -> any any (msg:"DNS Query"; dns.query; content:"evil.com"; sid:2003; rev:1;)',
        'alert http any any -> any any (msg:"Upload"; http.request_body; content:"MZ"; filestore; sid:2004; rev:2;)',
    ]


@pytest.fixture
def snort_rules_text(snort_rule_lines):
    """Snort rules with comments and blank lines mixed in."""
    return "# Snort test rules\n\n" + "\n".join(snort_rule_lines) + "\n"


@pytest.fixture
def suricata_rules_text(suricata_rule_lines):
    """Suricata rules with comments and blank lines mixed in."""
    return "# Suricata test rules\n# Comment line\n\n" + "\n".join(suricata_rule_lines) + "\n"


@pytest.fixture
def sample_rules_file(tmp_path, snort_rule_lines):
    """Create a temporary rule file for testing."""
    rules_file = tmp_path / "test.rules"

    with open(rules_file, 'w') as f:
        f.write("# Test rule file\n")
        f.write("# Comment line\n\n")
        for rule in snort_rule_lines:
            f.write(rule + "\n")

    return rules_file


@pytest.fixture
def sample_rules_dir(tmp_path, snort_rule_lines):
    """Create a temporary directory with multiple rule files."""
    rules_dir = tmp_path / "rules"
    rules_dir.mkdir()

    for i in range(3):
        rules_file = rules_dir / f"test_{i}.rules"
        with open(rules_file, 'w') as f:
            for j, rule in enumerate(snort_rule_lines):
                # Rewrite the SID so it is unique across files
                rule = rule.replace('sid:', f'sid:{i + 1}{j}', 1)
                f.write(rule + "\n")

    yield rules_dir

    shutil.rmtree(rules_dir)


@pytest.fixture
def sample_parsed_df():
    """Sample parsed rules DataFrame."""
    data = {
        'raw_rule': [
            'alert tcp any any -> any any (msg:"Rule 1"; content:"a"; fast_pattern; sid:1;)',
            'alert http any any -> any any (msg:"Rule 2"; http.uri; content:"/x"; sid:2;)',
            'alert tls any any -> any any (msg:"Rule 3"; tls.sni; content:"a.com"; sid:3;)',
            'drop tcp any any -> any 445 (msg:"Rule 4"; content:"a"; content:"b"; pcre:"/c/"; sid:4;)',
            'alert dns any any -> any any (msg:"Rule 5"; dns.query; content:"x"; file_data; sid:5;)',
        ],
        'action': ['alert', 'alert', 'alert', 'drop', 'alert'],
        'protocol': ['tcp', 'http', 'tls', 'tcp', 'dns'],
        'options': [
            [('msg', 'Rule 1'), ('content', 'a'), ('fast_pattern', 'true'), ('sid', '1')],
            [('msg', 'Rule 2'), ('http.uri', 'true'), ('content', '/x'), ('sid', '2')],
            [('msg', 'Rule 3'), ('tls.sni', 'true'), ('content', 'a.com'), ('sid', '3')],
            [('msg', 'Rule 4'), ('content', 'a'), ('content', 'b'), ('pcre', '/c/'), ('sid', '4')],
            [('msg', 'Rule 5'), ('dns.query', 'true'), ('content', 'x'), ('file_data', 'true'), ('sid', '5')],
        ],
        'msg': ['Rule 1', 'Rule 2', 'Rule 3', 'Rule 4', 'Rule 5'],
        'sid': [1, 2, 3, 4, 5],
        'dialect': ['snort', 'suricata', 'suricata', 'unknown', 'suricata'],
    }
    return pd.DataFrame(data)


@pytest.fixture
def real_rules_dir():
    """Path to real rules directory (if available)."""
    rules_path = Path("rules")
    if rules_path.exists():
        return rules_path
    return None

"""
Unit tests for the converter module.
"""

import pytest
import pandas as pd
from suricata_rule_conversion import converter
from suricata_rule_conversion.conversion_log import ConversionLog, Severity
from suricata_rule_conversion.converter import RuleConverter, ConversionResult
from suricata_rule_conversion.parser import parse_rule, parse_rules, format_rule


EXAMPLE_RULE = (
    'alert tcp $EXTERNAL_NET any -> $HOME_NET 80 '
    '(msg:"X"; content:"POST"; fast_pattern; sid:1000001; rev:3;)'
)


def convert_one(line: str, target: str, **kwargs):
    log = ConversionLog()
    rule = RuleConverter(**kwargs).convert_rule(parse_rule(line), target, log)
    return rule, log


def messages(log, severity=None):
    entries = log.entries if severity is None else log.by_severity(severity)
    return [entry.message for entry in entries]


def failing_check(rule):
    if rule.msg in ('bad', 'two'):
        raise ValueError(f'cannot classify rule "{rule.msg}"')
    return False


class TestRuleConverterInit:
    """Tests for RuleConverter configuration."""

    def test_defaults(self):
        """Test default settings."""
        rule_converter = RuleConverter()

        assert rule_converter.sid_offset == 1000000
        assert rule_converter.metadata_marker == 'converted_from_snort'
        assert rule_converter.malware_reference == 'url,virustotal.com'
        assert rule_converter.show_progress is False

    def test_custom_params(self):
        """Test overriding settings through keyword arguments."""
        rule_converter = RuleConverter(sid_offset=2000000, metadata_marker='migrated')

        assert rule_converter.params['sid_offset'] == 2000000
        assert rule_converter.sid_offset == 2000000
        assert rule_converter.metadata_marker == 'migrated'


class TestConvertToSuricata:
    """Tests for Snort to Suricata rewrites."""

    def test_worked_example(self):
        """Test the documented POST rule example."""
        rule, log = convert_one(EXAMPLE_RULE, 'suricata')

        assert not rule.has('fast_pattern')
        assert rule.get('sid') == '1'
        assert rule.protocol == 'http'
        assert rule.get('metadata') == 'converted_from_snort'
        assert format_rule(rule) == (
            'alert http $EXTERNAL_NET any -> $HOME_NET 80 '
            '(msg:"X"; content:"POST"; sid:1; rev:3; metadata:converted_from_snort;)'
        )
        assert 'Removing fast_pattern (not needed in Suricata)' in messages(log, Severity.INFO)

    def test_original_rule_untouched(self):
        """Test that conversion returns a new rule."""
        original = parse_rule(EXAMPLE_RULE)
        RuleConverter().convert_rule(original, 'suricata', ConversionLog())

        assert original.protocol == 'tcp'
        assert original.has('fast_pattern')

    def test_every_fast_pattern_removed(self):
        """Test that each repeated fast_pattern is dropped and content kept."""
        rule, _ = convert_one(
            'alert tcp any any -> any 22 (content:"a"; fast_pattern; content:"b"; fast_pattern; sid:5;)',
            'suricata',
        )

        assert not rule.has('fast_pattern')
        assert rule.get_all('content') == ['a', 'b']

    def test_appid_removed(self):
        """Test that OpenAppID options are dropped with an info entry."""
        rule, log = convert_one(
            'alert tcp any any -> any 22 (appid:ssh; content:"x"; sid:5;)', 'suricata'
        )

        assert not rule.has('appid')
        assert any('appid' in m for m in messages(log, Severity.INFO))

    def test_http_content_renamed(self):
        """Test http.content becomes http.request_body in place."""
        rule, _ = convert_one(
            'alert tcp any any -> any 22 (msg:"m"; http.content; content:"x"; sid:5;)', 'suricata'
        )

        assert [k for k, _ in rule.options][:3] == ['msg', 'http.request_body', 'content']

    def test_tls_promotion_wins_over_web(self):
        """Test that port 443 promotes to tls."""
        rule, _ = convert_one('alert tcp any any -> any 443 (msg:"m"; sid:5;)', 'suricata')

        assert rule.protocol == 'tls'

    def test_tcp_without_heuristics_stays(self):
        """Test that a non-web tcp rule keeps its protocol."""
        rule, _ = convert_one(
            'alert tcp any any -> any 22 (msg:"SSH"; content:"SSH-"; sid:5;)', 'suricata'
        )

        assert rule.protocol == 'tcp'

    def test_udp_promoted_to_dns(self):
        """Test udp to dns promotion with dns.query added."""
        rule, log = convert_one(
            'alert udp any any -> any 53 (msg:"Lookup"; content:"evil"; sid:5;)', 'suricata'
        )

        assert rule.protocol == 'dns'
        assert [k for k, _ in rule.options][:3] == ['msg', 'dns.query', 'content']
        assert 'Converting UDP to DNS protocol for better detection' in messages(log)

    def test_http_header_to_user_agent_with_bsize(self):
        """Test narrowing http.header on an exact User-Agent literal."""
        rule, _ = convert_one(
            'alert http any any -> any any (msg:"ua"; http.header; content:"Mozilla/5.0"; sid:5;)',
            'suricata',
        )

        assert [k for k, _ in rule.options][:4] == ['msg', 'http.user_agent', 'content', 'bsize']
        assert rule.get('bsize') == '11'

    def test_http_header_user_agent_without_bsize(self):
        """Test that only an exact known literal adds bsize."""
        rule, _ = convert_one(
            'alert http any any -> any any (msg:"ua"; http.header; content:"User-Agent: curl"; sid:5;)',
            'suricata',
        )

        assert rule.has('http.user_agent')
        assert not rule.has('bsize')

    def test_http_header_to_cookie(self):
        """Test narrowing http.header on cookie content."""
        rule, _ = convert_one(
            'alert http any any -> any any (msg:"c"; http.header; content:"Cookie: a=b"; sid:5;)',
            'suricata',
        )

        assert rule.has('http.cookie')
        assert not rule.has('http.header')

    def test_http_header_occurrences_independent(self):
        """Test that each http.header buffer sniffs its own content."""
        rule, _ = convert_one(
            'alert http any any -> any any (msg:"m"; http.header; content:"Cookie: a"; '
            'http.header; content:"Host: x"; sid:5;)',
            'suricata',
        )

        assert [k for k, _ in rule.options][1:5] == ['http.cookie', 'content', 'http.header', 'content']

    def test_http_header_after_content(self):
        """Test a Snort 2 style buffer that follows its content."""
        rule, _ = convert_one(
            'alert http any any -> any any (content:"Mozilla/5.0"; http.header; sid:5;)',
            'suricata',
        )

        assert [k for k, _ in rule.options][:3] == ['content', 'bsize', 'http.user_agent']

    def test_file_data_added(self):
        """Test file_data added for file-like content."""
        rule, log = convert_one(
            'alert tcp any any -> any 22 (msg:"Payload"; content:"MZ"; sid:5;)', 'suricata'
        )

        assert [k for k, _ in rule.options][:3] == ['msg', 'file_data', 'content']
        assert 'Adding file detection capabilities for Suricata' in messages(log)

    def test_file_data_does_not_take_over_existing_buffer(self):
        """Test that a new buffer goes ahead of a buffer already selecting the content."""
        rule, _ = convert_one(
            'alert tcp any any -> any 22 (msg:"Payload"; http.uri; content:"MZ"; sid:5;)', 'suricata'
        )

        assert [k for k, _ in rule.options][:4] == ['msg', 'file_data', 'http.uri', 'content']

    def test_quoted_option_survives_conversion(self):
        """Test that options quoted in the input stay quoted in the output."""
        result = RuleConverter().convert_rules(
            'alert tcp any any -> any 22 (msg:"m"; regex:"/ab c/i"; sid:1000001;)', 'suricata'
        )

        assert 'regex:"/ab c/i";' in result.lines[0]
        assert 'sid:1;' in result.lines[0]

    def test_isdataat_swapped(self):
        """Test the relative isdataat marker swap."""
        rule, log = convert_one(
            'alert tcp any any -> any 22 (content:"a"; isdataat:!0,relative; sid:5;)', 'suricata'
        )

        assert rule.get('isdataat') == '!1,relative'
        assert any('isdataat' in m for m in messages(log, Severity.WARNING))

    def test_urilen_warned_not_adjusted(self):
        """Test that urilen is kept verbatim with a warning."""
        rule, log = convert_one(
            'alert tcp any any -> any 22 (urilen:5<>10; content:"a"; sid:5;)', 'suricata'
        )

        assert rule.get('urilen') == '5<>10'
        assert any('urilen' in m for m in messages(log, Severity.WARNING))

    def test_existing_metadata_kept(self):
        """Test that existing metadata is not replaced."""
        rule, _ = convert_one(
            'alert tcp any any -> any 22 (content:"a"; metadata:policy security; sid:5;)', 'suricata'
        )

        assert rule.get_all('metadata') == ['policy security']

    def test_sid_at_offset_unchanged(self):
        """Test that a SID equal to the offset is left alone."""
        rule, _ = convert_one('alert tcp any any -> any 22 (sid:1000000;)', 'suricata')

        assert rule.get('sid') == '1000000'

    def test_injected_heuristic(self):
        """Test replacing a traffic predicate."""
        rule, _ = convert_one(
            EXAMPLE_RULE, 'suricata', is_web_traffic=lambda rule: False
        )

        assert rule.protocol == 'tcp'


class TestConvertToSnort:
    """Tests for Suricata to Snort rewrites."""

    def test_user_agent_folded(self):
        """Test http.user_agent folding into http.header."""
        rule, log = convert_one(
            'alert http any any -> any any (msg:"Bad UA"; http.user_agent; content:"EvilBot"; sid:2001;)',
            'snort',
        )

        assert [k for k, _ in rule.options][:3] == ['msg', 'http.header', 'content']
        assert any('http.user_agent' in m for m in messages(log, Severity.WARNING))

    def test_cookie_without_content_dropped(self):
        """Test that a header buffer without content is dropped."""
        rule, _ = convert_one('alert http any any -> any any (http.cookie; sid:2001;)', 'snort')

        assert not rule.has('http.cookie')
        assert not rule.has('http.header')

    def test_request_body_renamed(self):
        """Test http.request_body becomes http.content."""
        rule, _ = convert_one(
            'alert http any any -> any any (http.request_body; content:"x"; sid:2001;)', 'snort'
        )

        assert rule.has('http.content')
        assert not rule.has('http.request_body')

    def test_tls_options_dropped(self):
        """Test TLS options removal and protocol downgrade."""
        rule, log = convert_one(
            'alert tls any any -> any 443 (msg:"Bad cert"; tls.cert_subject; content:"CN=evil"; '
            'tls.version:1.0; sid:2002;)',
            'snort',
        )

        assert not any(k.startswith('tls.') for k in rule.option_keys())
        assert rule.protocol == 'tcp'
        warnings = messages(log, Severity.WARNING)
        assert any('tls.cert_subject, tls.version' in m for m in warnings)
        assert 'Converting TLS protocol to TCP for Snort' in warnings

    def test_file_options_dropped(self):
        """Test file extraction option removal."""
        rule, _ = convert_one(
            'alert http any any -> any any (file_data; content:"MZ"; filestore; filemd5:list.txt; sid:2004;)',
            'snort',
        )

        assert rule.option_keys() == ['content', 'sid']

    def test_quoted_option_kept_quoted(self):
        """Test that a kept quoted option is quoted in the Snort output."""
        rule, _ = convert_one(
            'alert http any any -> any any (msg:"m"; filename:"setup file.exe"; sid:2001;)', 'snort'
        )

        assert format_rule(rule) == (
            'alert tcp any any -> any any (msg:"m"; filename:"setup file.exe"; sid:1002001;)'
        )

    @pytest.mark.parametrize('protocol,expected', [
        ('http', 'tcp'), ('tls', 'tcp'), ('smtp', 'tcp'), ('ftp', 'tcp'), ('dns', 'udp'), ('icmp', 'icmp'),
    ])
    def test_protocol_rewrite(self, protocol, expected):
        """Test application-layer protocol rewrites."""
        rule, _ = convert_one(f'alert {protocol} any any -> any any (sid:1000009;)', 'snort')

        assert rule.protocol == expected

    def test_dns_query_dropped(self):
        """Test dns.query removal."""
        rule, _ = convert_one(
            'alert dns any any -> any any (dns.query; content:"evil.com"; sid:2003;)', 'snort'
        )

        assert not rule.has('dns.query')
        assert rule.protocol == 'udp'

    def test_sid_raised(self):
        """Test SID renumbering into the user range."""
        rule, log = convert_one('alert tcp any any -> any any (sid:2001;)', 'snort')

        assert rule.get('sid') == '1002001'
        assert 'Adjusting SID from 2001 to 1002001 for Snort compatibility' in messages(log)

    def test_malware_reference_added(self):
        """Test reference injection for malware rules."""
        rule, log = convert_one(
            'alert tcp any any -> any any (msg:"MALWARE beacon"; sid:1000002;)', 'snort'
        )

        assert rule.get('reference') == 'url,virustotal.com'
        assert 'Added reference URL for malware detection rule' in messages(log, Severity.INFO)

    def test_existing_reference_kept(self):
        """Test that an existing reference prevents injection."""
        rule, _ = convert_one(
            'alert tcp any any -> any any (msg:"malware"; reference:cve,2020-1; sid:1000002;)', 'snort'
        )

        assert rule.get_all('reference') == ['cve,2020-1']

    def test_isdataat_swapped(self):
        """Test the reverse relative isdataat marker swap."""
        rule, _ = convert_one(
            'alert tcp any any -> any any (content:"a"; isdataat:!1,relative; sid:1000002;)', 'snort'
        )

        assert rule.get('isdataat') == '!0,relative'

    def test_metadata_not_added(self):
        """Test that Snort-bound conversion does not add metadata."""
        rule, _ = convert_one('alert tcp any any -> any any (sid:1000002;)', 'snort')

        assert not rule.has('metadata')


class TestSidRoundTrip:
    """Tests for SID renumbering symmetry."""

    def test_snort_suricata_snort(self):
        """Test that sid:42 survives a round trip."""
        rule_converter = RuleConverter()
        to_suricata = rule_converter.convert_rules(
            'alert tcp any any -> any 22 (msg:"m"; sid:42; rev:1;)', 'suricata'
        )
        to_snort = rule_converter.convert_rules(to_suricata.text, 'snort')
        back = rule_converter.convert_rules(to_snort.text, 'suricata')

        assert parse_rules(to_snort.text)[0].get('sid') == '1000042'
        assert parse_rules(back.text)[0].get('sid') == '42'


class TestConvertIsolation:
    """Tests for per-rule failure isolation."""

    def test_convert_never_raises(self):
        """Test that a failing rule returns its canonical text."""
        rule = parse_rule('alert tcp any any -> any any (msg:"bad"; sid:7;)')
        log = ConversionLog()

        text = RuleConverter(is_tls_traffic=failing_check).convert(rule, 'suricata', log)

        assert text == format_rule(rule)
        assert log.has_errors
        assert log.by_severity(Severity.ERROR)[0].message == (
            'Error converting rule SID 7: cannot classify rule "bad"'
        )

    def test_batch_with_failing_middle_rule(self):
        """Test that a failing rule neither aborts nor drops output lines."""
        text = "\n".join([
            'alert tcp any any -> any 22 (msg:"one"; content:"a"; fast_pattern; sid:1000011;)',
            'alert tcp any any -> any 22 (msg:"two"; fast_pattern; sid:1000012;)',
            'alert tcp any any -> any 22 (msg:"three"; content:"c"; fast_pattern; sid:1000013;)',
        ])

        result = RuleConverter(is_tls_traffic=failing_check).convert_rules(text, 'suricata')
        lines = result.lines

        assert len(lines) == 3
        assert len(result.errors) == 1
        assert 'fast_pattern' not in lines[0] and 'sid:11;' in lines[0]
        assert lines[1] == 'alert tcp any any -> any 22 (msg:"two"; fast_pattern; sid:1000012;)'
        assert 'fast_pattern' not in lines[2] and 'sid:13;' in lines[2]
        assert result.pairs[1][1] is None

    def test_non_numeric_sid_kept(self):
        """Test that a non-numeric SID is left alone and the rule still converts."""
        result = RuleConverter().convert_rules(
            'alert tcp any any -> any 22 (msg:"m"; content:"a"; fast_pattern; sid:abc;)', 'suricata'
        )

        assert not result.errors
        assert result.lines[0] == (
            'alert tcp any any -> any 22 (msg:"m"; content:"a"; sid:abc; metadata:converted_from_snort;)'
        )
        assert "Keeping non-numeric SID 'abc' unchanged" in messages(result.log, Severity.WARNING)

    def test_unparseable_line_reproduced(self):
        """Test that a shape-matching but unparseable line is kept verbatim."""
        broken = 'alert tcp any any (msg:"a->b"; content:"(x)";)'
        text = "\n".join(['alert tcp any any -> any 22 (sid:1;)', broken])

        result = RuleConverter().convert_rules(text, 'snort')

        assert result.lines[1] == broken
        assert result.pairs[1] == (None, None)
        assert any('Error parsing rule' in m for m in messages(result.log, Severity.ERROR))


class TestConvertRules:
    """Tests for batch conversion."""

    def test_log_narrative(self, snort_rules_text):
        """Test start, success and completion entries."""
        result = RuleConverter().convert_rules(snort_rules_text, 'suricata')
        entries = result.log.entries

        assert entries[0].message == 'Starting conversion to Suricata format...'
        assert entries[-1].message == 'Conversion complete. 4 rules processed.'
        assert len(result.log.by_severity(Severity.SUCCESS)) == 4

    def test_comments_and_blanks_skipped(self, snort_rules_text):
        """Test that output has one line per rule."""
        result = RuleConverter().convert_rules(snort_rules_text, 'suricata')

        assert len(result.lines) == 4
        assert result.target == 'suricata'

    def test_auto_target(self, suricata_rules_text):
        """Test that auto converts to the opposite of the detected dialect."""
        result = RuleConverter().convert_rules(suricata_rules_text, 'auto')

        assert result.target == 'snort'
        assert result.log.entries[0].message == 'Detected Suricata rules, converting to Snort'

    def test_auto_target_undecidable(self):
        """Test that auto on ambiguous input raises."""
        with pytest.raises(ValueError):
            RuleConverter().convert_rules('alert tcp any any -> any any (sid:1;)', 'auto')

    def test_unknown_target(self, snort_rules_text):
        """Test that an unknown target raises."""
        with pytest.raises(ValueError):
            RuleConverter().convert_rules(snort_rules_text, 'zeek')

    def test_target_case_insensitive(self, snort_rules_text):
        """Test target names ignore case."""
        assert RuleConverter().convert_rules(snort_rules_text, 'SURICATA').target == 'suricata'

    def test_fresh_log_per_run(self, snort_rules_text):
        """Test that each run owns its own log."""
        rule_converter = RuleConverter()
        first = rule_converter.convert_rules(snort_rules_text, 'suricata')
        second = rule_converter.convert_rules(snort_rules_text, 'suricata')

        assert first.log is not second.log
        assert len(first.log) == len(second.log)

    def test_empty_input(self):
        """Test converting text without rules."""
        result = RuleConverter().convert_rules('# nothing here\n', 'snort')

        assert result.text == ''
        assert result.lines == []

    def test_module_shortcuts(self, snort_rules_text, suricata_rules_text):
        """Test convert_to_snort and convert_to_suricata."""
        assert isinstance(converter.convert_to_suricata(snort_rules_text), ConversionResult)
        assert converter.convert_to_snort(suricata_rules_text).target == 'snort'

    def test_analyze_pairs(self, snort_rules_text):
        """Test analyzing every converted pair."""
        analyzed = RuleConverter().convert_rules(snort_rules_text, 'suricata').analyze()

        assert len(analyzed) == 4
        original, converted, analysis = analyzed[0]
        assert any(r.description.startswith('fast_pattern removed') for r in analysis.risks)


class TestConvertFiles:
    """Tests for file-level conversion."""

    def test_convert_rule_file(self, sample_rules_file, tmp_path):
        """Test converting and writing one file."""
        output_path = tmp_path / "out" / "converted.rules"

        result = RuleConverter().convert_rule_file(sample_rules_file, 'suricata', output_path)

        assert output_path.exists()
        assert output_path.read_text().splitlines() == result.lines
        assert len(result.lines) == 4

    def test_convert_rule_files(self, sample_rules_dir, tmp_path):
        """Test converting a directory with progress enabled."""
        output_dir = tmp_path / "converted"

        summary = RuleConverter(show_progress=True).convert_rule_files(
            str(sample_rules_dir), 'auto', str(output_dir)
        )

        assert isinstance(summary, pd.DataFrame)
        assert len(summary) == 3
        assert summary['rules'].tolist() == [4, 4, 4]
        assert set(summary['target']) == {'suricata'}
        assert len(list(output_dir.glob('*.rules'))) == 3

    def test_convert_rule_files_skips_undecidable(self, tmp_path):
        """Test that a file with no dialect markers is skipped under auto."""
        rules_dir = tmp_path / "rules"
        rules_dir.mkdir()
        (rules_dir / "plain.rules").write_text('alert tcp any any -> any any (sid:1;)\n')

        summary = RuleConverter().convert_rule_files(str(rules_dir), 'auto', str(tmp_path / "out"))

        assert summary.iloc[0]['output_path'] is None
        assert summary.iloc[0]['rules'] == 0

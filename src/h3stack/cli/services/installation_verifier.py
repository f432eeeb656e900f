"""
Black-box verification of the installed HTTP/3 toolchain.

Trusts the installed tools' own self-report: the OpenSSL version line and
curl's ``--version`` Features/Protocols listing. Capability markers are
matched against a rule table (capability -> acceptable patterns) loaded
from capability_rules.yml, so new upstream output formats are supported by
adding a pattern rather than changing this module.
"""

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from importlib.resources import files
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import yaml
from rich.markup import escape

from h3stack.build.context import BuildContext
from h3stack.build.results import CapabilityCheck, VerificationReport
from h3stack.core.exceptions import ConfigurationError, FinalCapabilityMissing

from ..console import Console
from .base import BaseService
from .command_runner import CommandResult, CommandRunner, SubprocessRunner

logger = logging.getLogger(__name__)

OPENSSL_CHECK = "openssl"
CURL_CHECK = "curl"
HTTP3 = "http3"
WEBSOCKET = "websocket"

REQUIRED_CAPABILITIES = (HTTP3, WEBSOCKET)

CURL_VERSION_RE = re.compile(r"^curl (\S+)", re.MULTILINE)
OPENSSL_VERSION_RE = re.compile(r"^OpenSSL (\S+)", re.MULTILINE)

# Rule patterns are also run by `grep -E` in setup-env.sh, so they must stay
# within the syntax both engines share.
NON_ERE_SYNTAX = re.compile(r"\(\?|\\[dDAZ]|[*+?}]\?")


@lru_cache(maxsize=1)
def _load_rule_data() -> Dict[str, Any]:
    text = (files("h3stack.resources") / "capability_rules.yml").read_text(encoding="utf-8")
    return yaml.safe_load(text) or {}


@dataclass(frozen=True)
class CapabilityRule:
    """A capability and the textual forms accepted as evidence for it."""
    capability: str
    patterns: Tuple[str, ...]
    description: str = ""

    def match(self, output: str) -> Optional[str]:
        """Return the first matching line, or None."""
        for pattern in self.patterns:
            found = re.search(pattern, output, re.MULTILINE)
            if found:
                start = output.rfind("\n", 0, found.start()) + 1
                end = output.find("\n", found.end())
                return output[start:end if end != -1 else len(output)].strip()
        return None


@dataclass
class CapabilityRuleTable:
    """Ordered mapping of capability name to CapabilityRule."""
    rules: Dict[str, CapabilityRule] = field(default_factory=dict)

    @staticmethod
    def check_pattern(capability: str, pattern: str) -> None:
        """Reject patterns Python cannot compile or `grep -E` would misread."""
        try:
            re.compile(pattern)
        except re.error as e:
            raise ConfigurationError(
                f"Invalid pattern for capability '{capability}': {pattern!r} ({e})"
            ) from e
        found = NON_ERE_SYNTAX.search(pattern)
        if found:
            raise ConfigurationError(
                f"Pattern for capability '{capability}' uses {found.group(0)!r}, "
                f"which POSIX extended regular expressions do not support: {pattern!r}"
            )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CapabilityRuleTable":
        rules: Dict[str, CapabilityRule] = {}
        for name, info in (data.get("capabilities") or {}).items():
            patterns = tuple(info.get("patterns") or ())
            if not patterns:
                raise ConfigurationError(f"Capability rule '{name}' has no patterns")
            for pattern in patterns:
                cls.check_pattern(name, pattern)
            rules[name] = CapabilityRule(name, patterns, info.get("description", ""))
        return cls(rules)

    @classmethod
    def load(cls, extra: Optional[Mapping[str, Iterable[str]]] = None) -> "CapabilityRuleTable":
        """
        Load the bundled rule table, optionally extended with extra patterns.

        Args:
            extra: capability -> additional patterns; unknown capabilities
                become new rules
        """
        table = cls.from_mapping(_load_rule_data())
        for capability, patterns in (extra or {}).items():
            table = table.with_patterns(capability, patterns)
        return table

    def with_patterns(self, capability: str, patterns: Iterable[str]) -> "CapabilityRuleTable":
        """Return a table where ``capability`` also accepts ``patterns``."""
        new_patterns = tuple(patterns)
        for pattern in new_patterns:
            self.check_pattern(capability, pattern)
        rules = dict(self.rules)
        existing = rules.get(capability)
        if existing:
            rules[capability] = CapabilityRule(
                capability, existing.patterns + new_patterns, existing.description
            )
        else:
            rules[capability] = CapabilityRule(capability, new_patterns)
        return CapabilityRuleTable(rules)

    def evaluate(self, output: str) -> List[CapabilityCheck]:
        checks = []
        for rule in self.rules.values():
            line = rule.match(output)
            checks.append(CapabilityCheck(
                capability=rule.capability,
                present=line is not None,
                detail=line or f"no line matches any of {list(rule.patterns)}",
            ))
        return checks

    def __contains__(self, capability: str) -> bool:
        return capability in self.rules


class InstallationVerifier(BaseService):
    """
    Confirm the finished prefix provides HTTP/3 and WebSocket support.

    Checks, each independent:
    - ``openssl version`` reports the requested major line
    - ``curl --version`` runs and reports a version
    - every capability in the rule table matches curl's self-report
    """

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        console: Optional[Console] = None,
        rules: Optional[CapabilityRuleTable] = None,
        openssl_major: str = "3",
    ):
        super().__init__(console=console)
        self.runner = runner or SubprocessRunner()
        self.rules = rules or CapabilityRuleTable.load()
        self.openssl_major = openssl_major
        for capability in REQUIRED_CAPABILITIES:
            if capability not in self.rules:
                raise ConfigurationError(f"No capability rule defined for '{capability}'")

    def evaluate(
        self,
        curl_output: str,
        openssl_output: Optional[str] = None,
        curl_ok: bool = True,
    ) -> VerificationReport:
        """
        Build a VerificationReport from captured tool output.

        Args:
            curl_output: Output of ``curl --version``
            openssl_output: Output of ``openssl version``; the OpenSSL
                check is omitted when None
            curl_ok: Whether curl exited successfully
        """
        checks: List[CapabilityCheck] = []
        report = VerificationReport(
            checks=checks, curl_output=curl_output, openssl_output=openssl_output or ""
        )

        if openssl_output is not None:
            found = OPENSSL_VERSION_RE.search(openssl_output)
            report.openssl_version = found.group(1) if found else None
            pattern = rf"^OpenSSL {re.escape(self.openssl_major)}\." if self.openssl_major else r"^OpenSSL \d+\."
            ok = bool(re.search(pattern, openssl_output, re.MULTILINE))
            checks.append(CapabilityCheck(
                OPENSSL_CHECK, ok,
                openssl_output.strip().splitlines()[0] if openssl_output.strip() else "no output",
            ))

        found = CURL_VERSION_RE.search(curl_output)
        report.curl_version = found.group(1) if found else None
        checks.append(CapabilityCheck(
            CURL_CHECK, curl_ok and found is not None,
            found.group(0) if found else "curl did not report a version",
        ))
        checks.extend(self.rules.evaluate(curl_output))
        return report

    def _run_tool(self, context: BuildContext, *args: str) -> CommandResult:
        argv = [str(context.install_prefix / "bin" / args[0])] + list(args[1:])
        return self.runner.run(argv, env=context.env)

    def verify(self, context: BuildContext) -> VerificationReport:
        """Run the installed binaries and evaluate their self-report."""
        openssl = self._run_tool(context, "openssl", "version")
        curl = self._run_tool(context, "curl", "--version")
        logger.debug(f"openssl version: {openssl.output.strip()}")
        logger.debug(f"curl --version:\n{curl.output}")

        report = self.evaluate(
            curl.stdout if curl.ok else curl.output,
            openssl_output=openssl.output if openssl.ok else "",
            curl_ok=curl.ok,
        )
        self._print_report(report)
        return report

    def verify_or_raise(self, context: BuildContext) -> VerificationReport:
        """
        Verify and raise FinalCapabilityMissing naming every failed check.

        Raises:
            FinalCapabilityMissing: When any check fails
        """
        report = self.verify(context)
        self.raise_for_missing(report)
        return report

    @staticmethod
    def raise_for_missing(report: VerificationReport) -> None:
        """Raise FinalCapabilityMissing carrying the failed checks and the tools' own output."""
        if report.missing:
            details = [
                f"{c.capability}: {c.detail}" for c in report.checks if not c.present
            ]
            details.extend(report.tool_output())
            raise FinalCapabilityMissing(report.missing, details)

    def _print_report(self, report: VerificationReport) -> None:
        for check in report.checks:
            status = "[green]OK[/green]" if check.present else "[red]MISSING[/red]"
            self._console.indent(f"{check.capability:<10} {status}  [dim]{escape(check.detail)}[/dim]")


def format_capability_summary(report: VerificationReport) -> str:
    """One-line summary, e.g. ``HTTP/3: ENABLED | WebSocket: ENABLED``."""
    def state(capability: str) -> str:
        return "ENABLED" if report.is_present(capability) else "NOT FOUND"

    return f"HTTP/3: {state(HTTP3)} | WebSocket: {state(WEBSOCKET)}"

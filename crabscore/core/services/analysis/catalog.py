"""
Pattern catalog: the fixed, versioned vocabulary the detectors match.

Bump ``CATALOG_VERSION`` whenever any entry changes; cached findings
from another catalog version are discarded.

Matching is purely syntactic. A name is recognized by what it is
called, not by what it resolves to, so aliases and re-exports are
missed by design of a pattern matcher and look-alike user functions
are reported.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from crabscore.core.models.findings import Severity

CATALOG_VERSION = "2024.2"


@dataclass(frozen=True)
class CallRule:
    """A risky call recognized by the tail of its path (``a::b::c``)."""

    rule: str
    path: tuple[str, ...]
    severity: Severity
    message: str

    def matches(self, segments: tuple[str, ...]) -> bool:
        n = len(self.path)
        return len(segments) >= n and segments[-n:] == self.path


@dataclass(frozen=True)
class CredentialPattern:
    rule: str
    regex: re.Pattern[str]
    message: str


@dataclass(frozen=True)
class PatternCatalog:
    version: str

    # Methods that abort on None / Err
    unwrap_methods: frozenset[str]
    # Types whose associated unwrap functions count (Option::unwrap(x))
    unwrap_types: frozenset[str]

    # Panic macros and their base severity
    panic_macros: dict[str, Severity]
    abort_calls: tuple[CallRule, ...]

    # Vulnerability shapes
    unchecked_calls: tuple[CallRule, ...]
    command_constructors: tuple[tuple[str, ...], ...]
    shell_programs: frozenset[str]
    credential_patterns: tuple[CredentialPattern, ...]
    credential_name: re.Pattern[str]
    min_credential_length: int

    # Calls whose closure argument is an error path
    error_handler_methods: frozenset[str] = field(default_factory=frozenset)


# ═══════════════════════════════════════════════════════════════════
#  Default catalog
# ═══════════════════════════════════════════════════════════════════

_UNCHECKED_CALLS = (
    CallRule("transmute", ("transmute",), Severity.HIGH,
             "mem::transmute reinterprets bytes without checks"),
    CallRule("transmute-copy", ("transmute_copy",), Severity.HIGH,
             "mem::transmute_copy reinterprets bytes without checks"),
    CallRule("utf8-unchecked", ("from_utf8_unchecked",), Severity.HIGH,
             "from_utf8_unchecked skips UTF-8 validation"),
    CallRule("raw-parts", ("from_raw_parts",), Severity.HIGH,
             "from_raw_parts builds a value from an unchecked pointer"),
    CallRule("raw-parts", ("from_raw_parts_mut",), Severity.HIGH,
             "from_raw_parts_mut builds a value from an unchecked pointer"),
    CallRule("unchecked-deserialize", ("bincode", "deserialize"), Severity.HIGH,
             "bincode::deserialize on untrusted bytes can allocate without bound"),
    CallRule("unchecked-deserialize", ("bincode", "deserialize_from"), Severity.HIGH,
             "bincode::deserialize_from on untrusted input can allocate without bound"),
    CallRule("unchecked-deserialize", ("rmp_serde", "from_slice"), Severity.HIGH,
             "rmp_serde::from_slice on untrusted bytes"),
    CallRule("unchecked-deserialize", ("rmp_serde", "from_read"), Severity.HIGH,
             "rmp_serde::from_read on untrusted input"),
    CallRule("unchecked-deserialize", ("serde_pickle", "from_slice"), Severity.HIGH,
             "serde_pickle::from_slice on untrusted bytes"),
)

_ABORT_CALLS = (
    CallRule("abort", ("process", "abort"), Severity.HIGH, "process::abort terminates immediately"),
)

# Adapted from the secret scanner patterns: only shapes that are
# unambiguous inside a single string literal.
_CREDENTIAL_PATTERNS = (
    CredentialPattern("aws-access-key", re.compile(r"AKIA[0-9A-Z]{16}"), "AWS access key id in literal"),
    CredentialPattern("github-token", re.compile(r"gh[pousr]_[A-Za-z0-9]{36}|github_pat_[A-Za-z0-9_]{82}"),
                      "GitHub token in literal"),
    CredentialPattern("google-api-key", re.compile(r"AIza[0-9A-Za-z\-_]{35}"), "Google API key in literal"),
    CredentialPattern("slack-token", re.compile(r"xox[abpr]-[0-9]{10,13}-[0-9A-Za-z-]{10,}"),
                      "Slack token in literal"),
    CredentialPattern("stripe-live-key", re.compile(r"[sr]k_live_[0-9a-zA-Z]{24,}"), "Stripe live key in literal"),
    CredentialPattern("private-key", re.compile(r"-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----"),
                      "private key embedded in literal"),
    CredentialPattern("jwt", re.compile(r"eyJ[A-Za-z0-9_-]{10,}\.eyJ[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}"),
                      "JWT embedded in literal"),
    CredentialPattern("url-credentials",
                      re.compile(r"(?:postgres(?:ql)?|mysql|mongodb(?:\+srv)?|redis|amqp)://[^\s:@/'\"]+:[^\s@/'\"]+@"),
                      "connection string with embedded password"),
)

DEFAULT_CATALOG = PatternCatalog(
    version=CATALOG_VERSION,
    unwrap_methods=frozenset({
        "unwrap", "expect", "unwrap_err", "expect_err",
        "unwrap_unchecked", "unwrap_err_unchecked",
    }),
    unwrap_types=frozenset({"Option", "Result"}),
    panic_macros={
        "panic": Severity.HIGH,
        "unreachable": Severity.HIGH,
        "todo": Severity.HIGH,
        "unimplemented": Severity.HIGH,
        "assert": Severity.MEDIUM,
        "assert_eq": Severity.MEDIUM,
        "assert_ne": Severity.MEDIUM,
        "debug_assert": Severity.LOW,
        "debug_assert_eq": Severity.LOW,
        "debug_assert_ne": Severity.LOW,
    },
    abort_calls=_ABORT_CALLS,
    unchecked_calls=_UNCHECKED_CALLS,
    command_constructors=(("Command", "new"),),
    shell_programs=frozenset({"sh", "bash", "zsh", "dash", "cmd", "cmd.exe", "powershell", "pwsh"}),
    credential_patterns=_CREDENTIAL_PATTERNS,
    credential_name=re.compile(r"(?i)(?:^|_)(?:password|passwd|pwd|secret|api_?key|token|private_?key|credentials?)(?:_|$)"),
    min_credential_length=6,
    error_handler_methods=frozenset({
        "unwrap_or_else", "map_err", "or_else", "ok_or_else", "unwrap_or_default", "map_or_else",
    }),
)

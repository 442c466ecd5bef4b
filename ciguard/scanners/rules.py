"""
ciguard Secret Rules

The built-in pattern table. Rules are compiled once when the table is
loaded and the resulting RuleSet is immutable; it is passed to the scanner
explicitly rather than shared through module state.

A pattern may define a named group ``secret`` marking the credential inside
a larger match (``password = "..."``). Without it the whole match is the
secret span.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, Optional

from ciguard.core.errors import ConfigError
from ciguard.core.finding import Severity

CLOUD_KEY = "cloud-key"
TOKEN = "token"
PRIVATE_KEY = "private-key"
CONNECTION_STRING = "connection-string"
PASSWORD = "password"
GENERIC_CREDENTIAL = "generic-credential"
GENERIC_HIGH_ENTROPY = "generic-high-entropy"

HIGH_ENTROPY_RULE_ID = "CG-SEC-999"

# Substrings (lower case) that mark documentation examples and placeholders
PLACEHOLDER_MARKERS = (
    "example",
    "your_",
    "your-",
    "yourkey",
    "placeholder",
    "<insert",
    "replace_me",
    "replace-me",
    "replaceme",
    "changeme",
    "change_me",
    "xxxxxxxx",
    "***",
    "redacted",
    "dummy",
    "process.env",
    "os.environ",
    "getenv(",
    "${",
    "{{",
)


@dataclass(frozen=True)
class SecretRule:
    id: str
    title: str
    category: str
    pattern: re.Pattern
    severity: Severity
    description: str
    fix: str

    def finditer(self, line: str) -> Iterator[tuple[int, int]]:
        """Yield the (start, end) secret span of every match on a line."""
        for match in self.pattern.finditer(line):
            if "secret" in self.pattern.groupindex and match.group("secret") is not None:
                start, end = match.span("secret")
            else:
                start, end = match.span()
            if end > start:
                yield start, end


# (rule_id, title, category, pattern, severity, description, fix)
_RULE_TABLE: list[tuple[str, str, str, str, Severity, str, str]] = [
    # ── Cloud Providers ──
    ("CG-SEC-001", "AWS Access Key ID", CLOUD_KEY,
     r"(?<![A-Za-z0-9/+=])(?:AKIA|ASIA|AGPA|AIDA|AROA|ANPA|ANVA|AIPA)[0-9A-Z]{16}(?![A-Za-z0-9/+=])",
     Severity.CRITICAL,
     "AWS Access Key ID detected. This can provide access to AWS services.",
     "Remove the hardcoded key and use IAM roles or environment variables."),

    ("CG-SEC-002", "AWS Secret Access Key", CLOUD_KEY,
     r"(?i)aws_?secret_?(?:access_?)?key\s*[=:]\s*['\"]?(?P<secret>[A-Za-z0-9/+=]{40,64})['\"]?",
     Severity.CRITICAL,
     "AWS Secret Access Key detected. This provides full access to the AWS account.",
     "Remove the hardcoded secret and use secure secret management."),

    ("CG-SEC-003", "GCP API Key", CLOUD_KEY,
     r"AIza[0-9A-Za-z_-]{35}",
     Severity.HIGH,
     "Google Cloud Platform API Key detected.",
     "Use GCP service accounts or restrict the API key."),

    ("CG-SEC-004", "GCP Service Account Key", CLOUD_KEY,
     r"\"type\"\s*:\s*\"service_account\"",
     Severity.CRITICAL,
     "GCP Service Account key file detected.",
     "Use Workload Identity Federation instead of service account keys."),

    ("CG-SEC-005", "Azure Storage Account Key", CLOUD_KEY,
     r"(?i)(?:AccountKey|storage_account_key)\s*[=:]\s*['\"]?(?P<secret>[A-Za-z0-9+/=]{88})['\"]?",
     Severity.CRITICAL,
     "Azure Storage Account Key detected.",
     "Use Azure Managed Identity or Azure Key Vault."),

    ("CG-SEC-006", "Alibaba Cloud AccessKey ID", CLOUD_KEY,
     r"\bLTAI[A-Za-z0-9]{20}\b",
     Severity.CRITICAL,
     "Alibaba Cloud AccessKey ID detected.",
     "Rotate the key and use RAM role-based access."),

    ("CG-SEC-007", "DigitalOcean Token", CLOUD_KEY,
     r"dop_v1_[a-f0-9]{64}",
     Severity.CRITICAL,
     "DigitalOcean personal access token detected.",
     "Revoke and regenerate with minimal permissions."),

    # ── Version Control & Registries ──
    ("CG-SEC-010", "GitHub Personal Access Token", TOKEN,
     r"\bghp_[A-Za-z0-9]{36,}",
     Severity.CRITICAL,
     "GitHub Personal Access Token detected.",
     "Revoke this token and use fine-grained tokens with minimal permissions."),

    ("CG-SEC-011", "GitHub OAuth/App Token", TOKEN,
     r"\b(?:gho|ghu|ghs|ghr)_[A-Za-z0-9]{36,}",
     Severity.CRITICAL,
     "GitHub OAuth or App token detected.",
     "Revoke and rotate this token."),

    ("CG-SEC-012", "GitHub Fine-Grained Token", TOKEN,
     r"\bgithub_pat_[A-Za-z0-9_]{22,}",
     Severity.CRITICAL,
     "GitHub Fine-Grained Personal Access Token detected.",
     "Revoke and regenerate with minimal required permissions."),

    ("CG-SEC-013", "GitLab Personal Access Token", TOKEN,
     r"\bglpat-[A-Za-z0-9_-]{20,}",
     Severity.CRITICAL,
     "GitLab Personal Access Token detected.",
     "Revoke this token and use deploy tokens with limited scope."),

    ("CG-SEC-014", "Docker Hub Token", TOKEN,
     r"\bdckr_pat_[A-Za-z0-9_-]{27,}",
     Severity.HIGH,
     "Docker Hub Personal Access Token detected.",
     "Revoke and regenerate with minimal permissions."),

    ("CG-SEC-015", "npm Token", TOKEN,
     r"\bnpm_[A-Za-z0-9]{36}\b",
     Severity.CRITICAL,
     "npm authentication token detected.",
     "Revoke the token on npmjs.com and use .npmrc with env vars."),

    ("CG-SEC-016", "PyPI Token", TOKEN,
     r"\bpypi-[A-Za-z0-9_-]{50,}",
     Severity.CRITICAL,
     "PyPI API token detected.",
     "Revoke the token on pypi.org and use trusted publishers."),

    # ── AI Providers ──
    ("CG-SEC-020", "OpenAI API Key", TOKEN,
     r"\bsk-(?:proj-)?[A-Za-z0-9_-]{32,}",
     Severity.CRITICAL,
     "OpenAI API key detected.",
     "Revoke the key in the OpenAI dashboard and load it from the environment."),

    ("CG-SEC-021", "Anthropic API Key", TOKEN,
     r"\bsk-ant-[A-Za-z0-9_-]{32,}",
     Severity.CRITICAL,
     "Anthropic API key detected.",
     "Revoke the key in the console and load it from the environment."),

    # ── Payment ──
    ("CG-SEC-030", "Stripe Secret Key", TOKEN,
     r"\b(?:sk|rk)_live_[A-Za-z0-9]{24,}",
     Severity.CRITICAL,
     "Stripe live secret or restricted key detected. This can process real payments.",
     "Revoke immediately and use restricted API keys."),

    ("CG-SEC-031", "Square Access Token", TOKEN,
     r"\bsq0atp-[A-Za-z0-9_-]{22,}",
     Severity.CRITICAL,
     "Square Access Token detected.",
     "Revoke and rotate this token."),

    # ── Communication ──
    ("CG-SEC-040", "Slack Token", TOKEN,
     r"\bxox[baprs]-[A-Za-z0-9-]{10,}",
     Severity.HIGH,
     "Slack token detected.",
     "Revoke and rotate the token; use environment variables."),

    ("CG-SEC-041", "Slack Webhook URL", TOKEN,
     r"https://hooks\.slack\.com/services/T[A-Za-z0-9]{6,}/B[A-Za-z0-9]{6,}/[A-Za-z0-9]{20,}",
     Severity.MEDIUM,
     "Slack Webhook URL detected.",
     "Use environment variables to store webhook URLs."),

    ("CG-SEC-042", "Discord Webhook URL", TOKEN,
     r"https://discord(?:app)?\.com/api/webhooks/[0-9]+/[A-Za-z0-9_-]+",
     Severity.MEDIUM,
     "Discord Webhook URL detected.",
     "Store webhook URLs in environment variables."),

    ("CG-SEC-043", "Telegram Bot Token", TOKEN,
     r"\b[0-9]{8,10}:AA[A-Za-z0-9_-]{33}\b",
     Severity.HIGH,
     "Telegram Bot Token detected.",
     "Revoke via @BotFather and use environment variables."),

    ("CG-SEC-044", "SendGrid API Key", TOKEN,
     r"\bSG\.[A-Za-z0-9_-]{22}\.[A-Za-z0-9_-]{43}\b",
     Severity.HIGH,
     "SendGrid API Key detected.",
     "Revoke and create a new key with minimal permissions."),

    ("CG-SEC-045", "Twilio API Key", TOKEN,
     r"\bSK[0-9a-f]{32}\b",
     Severity.HIGH,
     "Twilio API Key detected.",
     "Rotate the key and use environment variables."),

    # ── SaaS / Infrastructure ──
    ("CG-SEC-050", "HashiCorp Vault Token", TOKEN,
     r"\bhvs\.[A-Za-z0-9_-]{24,}",
     Severity.CRITICAL,
     "HashiCorp Vault token detected.",
     "Revoke the token and use short-lived tokens or AppRole auth."),

    ("CG-SEC-051", "Shopify Access Token", TOKEN,
     r"\bshpat_[a-fA-F0-9]{32}\b",
     Severity.HIGH,
     "Shopify Access Token detected.",
     "Rotate the token via the Shopify Partner Dashboard."),

    ("CG-SEC-052", "New Relic API Key", TOKEN,
     r"\bNRAK-[A-Z0-9]{27}\b",
     Severity.HIGH,
     "New Relic API Key detected.",
     "Rotate the key and use environment variables."),

    ("CG-SEC-053", "JSON Web Token", TOKEN,
     r"\beyJ[A-Za-z0-9_-]{10,}\.eyJ[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}",
     Severity.HIGH,
     "JSON Web Token detected. Signed tokens often carry live session claims.",
     "Do not commit tokens; issue them at runtime."),

    ("CG-SEC-054", "Bearer Token", TOKEN,
     r"(?i)\bbearer\s+(?P<secret>[A-Za-z0-9._~+/-]{20,}=*)",
     Severity.HIGH,
     "Bearer token detected in source code.",
     "Never hardcode bearer tokens; use secure token storage."),

    # ── Private Keys ──
    ("CG-SEC-060", "Private Key", PRIVATE_KEY,
     r"-----BEGIN (?:[A-Z]+ )*PRIVATE KEY(?: BLOCK)?-----",
     Severity.CRITICAL,
     "Private key material detected in source code.",
     "Remove the key from source and use a key management system."),

    # ── Databases ──
    ("CG-SEC-070", "Database Connection String", CONNECTION_STRING,
     r"(?i)\b(?:mysql|postgres(?:ql)?|mongodb(?:\+srv)?|redis|mssql|amqp)://[^\s:/@'\"]+:(?P<secret>[^\s@'\"]{3,})@",
     Severity.CRITICAL,
     "Database connection string with embedded credentials detected.",
     "Use environment variables or a secrets manager for DB connections."),

    # ── Passwords & generic assignments ──
    ("CG-SEC-080", "Hardcoded Password", PASSWORD,
     r"(?i)(?:password|passwd|pwd)\b[^=:\n]{0,20}[=:]\s*['\"](?P<secret>[^\s'\"]{6,})['\"]",
     Severity.MEDIUM,
     "Hardcoded password detected.",
     "Use environment variables or a secrets manager for passwords."),

    ("CG-SEC-081", "Generic Credential Assignment", GENERIC_CREDENTIAL,
     r"(?i)(?:secret|api[_-]?key|token|credential)[A-Za-z0-9_-]{0,20}['\"]?\s*[=:]\s*['\"]?(?P<secret>[^\s'\",;]{8,})",
     Severity.HIGH,
     "Credential-like value assigned to a secret, key or token variable.",
     "Load credentials from the environment or a secrets manager."),
]


class RuleSet:
    """An immutable, ordered collection of secret rules with unique ids."""

    def __init__(self, rules: list[SecretRule]) -> None:
        by_id: dict[str, SecretRule] = {}
        for rule in rules:
            if rule.id in by_id:
                raise ConfigError(f"duplicate secret rule id {rule.id}")
            by_id[rule.id] = rule
        self._rules = tuple(rules)
        self._by_id = by_id

    def __iter__(self) -> Iterator[SecretRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._by_id

    def get(self, rule_id: str) -> Optional[SecretRule]:
        return self._by_id.get(rule_id)

    @property
    def categories(self) -> set[str]:
        return {rule.category for rule in self._rules}


HIGH_ENTROPY_RULE = SecretRule(
    id=HIGH_ENTROPY_RULE_ID,
    title="High-Entropy String",
    category=GENERIC_HIGH_ENTROPY,
    pattern=re.compile(r"(?!)"),
    severity=Severity.LOW,
    description="Random-looking string that may be a credential.",
    fix="If this is a secret, move it to a secrets manager; otherwise add it to the allowlist.",
)


def compile_rule(
    rule_id: str,
    title: str,
    category: str,
    pattern: str,
    severity: Severity,
    description: str,
    fix: str,
) -> SecretRule:
    try:
        compiled = re.compile(pattern)
    except re.error as exc:
        raise ConfigError(f"rule {rule_id}: invalid pattern: {exc}") from exc
    return SecretRule(rule_id, title, category, compiled, severity, description, fix)


def load_rules() -> RuleSet:
    """Compile the built-in rule table."""
    return RuleSet([compile_rule(*entry) for entry in _RULE_TABLE])


def is_placeholder(value: str) -> bool:
    """True if a matched value looks like a documentation placeholder."""
    lowered = value.lower()
    return any(marker in lowered for marker in PLACEHOLDER_MARKERS)

"""
Configuration module for the M365 public group remediation job.
Defines all tunable parameters, API endpoints, and operational settings.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class ConfigError(Exception):
    """Raised when the job configuration is incomplete or invalid."""
    pass


# ─── Tenant Authentication ───────────────────────────────────────────────────

@dataclass(frozen=True)
class CertificateAuth:
    """Certificate-based app-only authentication configuration."""
    tenant_id: str
    client_id: str
    certificate_path: str          # Path to base64-encoded PFX
    certificate_password: str = "" # Falls back to M365_CERT_PASSWORD / prompt


@dataclass(frozen=True)
class SecretAuth:
    """Client-secret app-only authentication (unattended schedulers)."""
    tenant_id: str
    client_id: str
    client_secret: str = ""        # Falls back to M365_CLIENT_SECRET


@dataclass(frozen=True)
class DelegatedAuth:
    """Delegated (interactive) authentication configuration."""
    tenant_id: str
    client_id: str
    scopes: tuple[str, ...] = (
        "Group.ReadWrite.All",
        "Sites.ReadWrite.All",
    )


AUTH_MODES = ("certificate", "secret", "delegated")


@dataclass(frozen=True)
class AuthConfig:
    """Authentication configuration — one of the three modes."""
    mode: str = "certificate"
    certificate: Optional[CertificateAuth] = None
    secret: Optional[SecretAuth] = None
    delegated: Optional[DelegatedAuth] = None


# ─── Graph API Settings ─────────────────────────────────────────────────────

GRAPH_BASE_URL = "https://graph.microsoft.com"
GRAPH_API_VERSION = "v1.0"
GRAPH_BETA_VERSION = "beta"

# Rate limiting / throttling
MAX_RETRIES = 5                   # Retry count for throttled requests
INITIAL_BACKOFF_SECONDS = 2.0     # First retry delay
MAX_BACKOFF_SECONDS = 120.0       # Cap on exponential backoff
BACKOFF_MULTIPLIER = 2.0          # Exponential factor

# Pagination
DEFAULT_PAGE_SIZE = 999           # Maximum items per page ($top)
MAX_PAGES_PER_ENDPOINT = 10000    # Safety cap on pagination loops

# Timeouts (seconds)
REQUEST_TIMEOUT = 60.0
CONNECT_TIMEOUT = 30.0


# ─── Remediation Settings ───────────────────────────────────────────────────

@dataclass(frozen=True)
class RemediationConfig:
    """What gets applied to every public group found."""
    label_id: str = ""
    dry_run: bool = False


# ─── Evidence Publishing ────────────────────────────────────────────────────

PUBLISH_MODES = ("blob", "directory", "none")


@dataclass(frozen=True)
class PublishConfig:
    """
    Where the ledger artifacts go at job end.

    blob:      destination is a container URL; the SAS token comes from
               ``sas_token`` or M365_PUBLISH_SAS.
    directory: destination is a local or UNC folder.
    none:      artifacts stay in the output directory only.
    """
    mode: str = "none"
    destination: str = ""
    sas_token: str = ""


# ─── Output Configuration ───────────────────────────────────────────────────

LOG_PREFIX = "GroupRemediation_Log_"
REPORT_PREFIX = "GroupRemediation_Report_"
SUMMARY_PREFIX = "GroupRemediation_Summary_"
ARTIFACT_SUFFIX = ".txt"


def make_run_timestamp(now: Optional[datetime] = None) -> str:
    """Run-start stamp embedded in every artifact name."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y%m%dT%H%M%SZ")


@dataclass(frozen=True)
class OutputConfig:
    """Output directory and artifact naming."""
    base_dir: str = ""
    timestamp: str = ""

    def __post_init__(self):
        # frozen dataclass: defaults are filled through object.__setattr__
        if not self.timestamp:
            object.__setattr__(self, "timestamp", make_run_timestamp())
        if not self.base_dir:
            object.__setattr__(
                self, "base_dir", os.path.join(os.getcwd(), "remediation_output")
            )

    @property
    def output_dir(self) -> Path:
        return Path(self.base_dir)

    @property
    def log_path(self) -> Path:
        return self.output_dir / f"{LOG_PREFIX}{self.timestamp}{ARTIFACT_SUFFIX}"

    @property
    def report_path(self) -> Path:
        return self.output_dir / f"{REPORT_PREFIX}{self.timestamp}{ARTIFACT_SUFFIX}"

    @property
    def summary_path(self) -> Path:
        return self.output_dir / f"{SUMMARY_PREFIX}{self.timestamp}.json"

    def create_directories(self):
        self.output_dir.mkdir(parents=True, exist_ok=True)


# ─── Master Configuration ───────────────────────────────────────────────────

@dataclass(frozen=True)
class JobConfig:
    """
    Top-level configuration for one run.
    Built once at start-up and handed to each component; never mutated.
    """
    auth: AuthConfig = field(default_factory=AuthConfig)
    remediation: RemediationConfig = field(default_factory=RemediationConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    verbose: bool = False

    def validate(self) -> "JobConfig":
        """Raise ConfigError if the run cannot start."""
        if not self.remediation.label_id:
            raise ConfigError("No corrective label id configured (--label-id).")
        if self.auth.mode not in AUTH_MODES:
            raise ConfigError(f"Unknown auth mode: {self.auth.mode}")
        if getattr(self.auth, self.auth.mode) is None:
            raise ConfigError(f"Auth mode '{self.auth.mode}' selected but not configured.")
        if self.publish.mode not in PUBLISH_MODES:
            raise ConfigError(f"Unknown publish mode: {self.publish.mode}")
        if self.publish.mode != "none" and not self.publish.destination:
            raise ConfigError(f"Publish mode '{self.publish.mode}' requires a destination.")
        return self

    @classmethod
    def from_file(cls, path: str | Path) -> "JobConfig":
        """Load configuration from a JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> "JobConfig":
        auth_data = data.get("auth", {})
        certificate = secret = delegated = None
        if "certificate" in auth_data:
            c = auth_data["certificate"]
            certificate = CertificateAuth(
                tenant_id=c["tenant_id"],
                client_id=c["client_id"],
                certificate_path=c.get("certificate_path", "./base64.txt"),
                certificate_password=c.get("certificate_password", ""),
            )
        if "secret" in auth_data:
            s = auth_data["secret"]
            secret = SecretAuth(
                tenant_id=s["tenant_id"],
                client_id=s["client_id"],
                client_secret=s.get("client_secret", ""),
            )
        if "delegated" in auth_data:
            d = auth_data["delegated"]
            delegated = DelegatedAuth(
                tenant_id=d["tenant_id"],
                client_id=d["client_id"],
            )
        auth = AuthConfig(
            mode=auth_data.get("mode", "certificate"),
            certificate=certificate,
            secret=secret,
            delegated=delegated,
        )

        rem = data.get("remediation", {})
        pub = data.get("publish", {})
        out = data.get("output", {})
        return cls(
            auth=auth,
            remediation=RemediationConfig(
                label_id=rem.get("label_id", ""),
                dry_run=rem.get("dry_run", False),
            ),
            publish=PublishConfig(
                mode=pub.get("mode", "none"),
                destination=pub.get("destination", ""),
                sas_token=pub.get("sas_token", ""),
            ),
            output=OutputConfig(
                base_dir=out.get("base_dir", ""),
                timestamp=out.get("timestamp", ""),
            ),
            verbose=data.get("verbose", False),
        )


# ─── Required Graph API Permissions (Least Privilege) ───────────────────────

REQUIRED_PERMISSIONS = {
    "Group.Read.All": "Enumerate unified groups and their visibility",
    "Group.ReadWrite.All": "Assign sensitivity labels to groups",
    "Sites.Read.All": "Resolve the SharePoint site backing each group",
    "Sites.ReadWrite.All": "Assign sensitivity labels to group sites",
    "InformationProtectionPolicy.Read": "Validate the corrective label id",
}

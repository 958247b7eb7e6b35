"""
Tenant Profiles — per-tenant defaults for scheduled remediation runs.

Stored in ~/.m365_group_remediation/profiles.json as:

    {
      "default_profile": "contoso-prod",
      "profiles": {
        "contoso-prod": {"tenant_id": ..., "client_id": ..., "label_id": ..., ...}
      }
    }

A profile carries the app registration, the corrective label and the
evidence destination, so a scheduled task only needs `--profile <name>`.
Names are matched case-insensitively.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Optional

from .config import PUBLISH_MODES

logger = logging.getLogger("m365_group_remediation.profiles")

_PROFILES_FILE = Path.home() / ".m365_group_remediation" / "profiles.json"


@dataclass
class TenantProfile:
    name: str
    tenant_id: str
    client_id: str
    cert_path: str = "./base64.txt"
    label_id: str = ""
    publish_mode: str = "none"          # blob | directory | none
    publish_destination: str = ""
    tenant_display_name: str = ""
    notes: str = ""

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "TenantProfile":
        """Build from a stored entry. Unknown keys are ignored; ids are required."""
        known = {f.name for f in fields(cls)} - {"name"}
        values = {k: v for k, v in data.items() if k in known}
        for required in ("tenant_id", "client_id"):
            if required not in values:
                raise KeyError(required)
        profile = cls(name=name, **values)
        if profile.publish_mode not in PUBLISH_MODES:
            logger.warning(
                f"Profile '{name}' has unknown publish mode '{profile.publish_mode}'; "
                f"publishing disabled for it"
            )
            profile.publish_mode = "none"
        return profile

    def resolve_cert_path(self) -> str:
        """Absolute certificate path; `~` and relative paths are expanded."""
        p = Path(self.cert_path).expanduser()
        if not p.is_absolute():
            p = Path.cwd() / p
        return str(p)

    @property
    def publishes(self) -> bool:
        return self.publish_mode != "none" and bool(self.publish_destination)

    def to_dict(self) -> dict:
        data = asdict(self)
        del data["name"]
        return data


@dataclass
class ProfileStore:
    profiles: dict[str, TenantProfile] = field(default_factory=dict)
    default_profile: str = ""

    @classmethod
    def load(cls) -> "ProfileStore":
        """Read the profile file. A missing or unreadable file gives an empty store."""
        if not _PROFILES_FILE.exists():
            return cls()
        try:
            data = json.loads(_PROFILES_FILE.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to read {_PROFILES_FILE}: {e}")
            return cls()

        store = cls(default_profile=data.get("default_profile", ""))
        for name, entry in data.get("profiles", {}).items():
            try:
                store.profiles[name] = TenantProfile.from_dict(name, entry)
            except (KeyError, TypeError) as e:
                logger.warning(f"Skipping profile '{name}' in {_PROFILES_FILE}: missing {e}")
        if store.default_profile not in store.profiles:
            store.default_profile = next(iter(store.profiles), "")
        return store

    def save(self) -> None:
        _PROFILES_FILE.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "default_profile": self.default_profile,
            "profiles": {name: p.to_dict() for name, p in self.profiles.items()},
        }
        _PROFILES_FILE.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")

    def _key(self, name: str) -> Optional[str]:
        wanted = name.lower()
        return next((k for k in self.profiles if k.lower() == wanted), None)

    def add(self, profile: TenantProfile, set_default: bool = False) -> None:
        """Add or replace a profile (a differently-cased duplicate is replaced)."""
        existing = self._key(profile.name)
        if existing:
            del self.profiles[existing]
            if self.default_profile == existing:
                self.default_profile = profile.name
        self.profiles[profile.name] = profile
        if set_default or not self.default_profile:
            self.default_profile = profile.name
        self.save()

    def remove(self, name: str) -> bool:
        key = self._key(name)
        if key is None:
            return False
        del self.profiles[key]
        if self.default_profile == key:
            self.default_profile = next(iter(self.profiles), "")
        self.save()
        return True

    def get(self, name: str) -> Optional[TenantProfile]:
        key = self._key(name)
        return self.profiles[key] if key else None

    def get_default(self) -> Optional[TenantProfile]:
        return self.profiles.get(self.default_profile)

    def set_default(self, name: str) -> bool:
        key = self._key(name)
        if key is None:
            return False
        self.default_profile = key
        self.save()
        return True

    def list_profiles(self) -> list[TenantProfile]:
        return sorted(self.profiles.values(), key=lambda p: p.name.lower())


def resolve_profile(profile_name: Optional[str] = None) -> Optional[TenantProfile]:
    """The named profile, or the default one when no name is given."""
    store = ProfileStore.load()
    if profile_name:
        return store.get(profile_name)
    return store.get_default()

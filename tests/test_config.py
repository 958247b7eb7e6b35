"""Tests for configuration loading and CLI-to-config resolution."""

from __future__ import annotations

import json

import pytest

from m365_group_remediation.__main__ import build_config, parse_args
from m365_group_remediation.config import (
    ConfigError,
    JobConfig,
    OutputConfig,
    make_run_timestamp,
)
from m365_group_remediation.profiles import TenantProfile

from conftest import FIXED_NOW, LABEL_ID


class TestOutputConfig:

    def test_artifact_names_embed_timestamp(self, tmp_path):
        out = OutputConfig(base_dir=str(tmp_path), timestamp="20240501T060000Z")
        assert out.log_path.name == "GroupRemediation_Log_20240501T060000Z.txt"
        assert out.report_path.name == "GroupRemediation_Report_20240501T060000Z.txt"
        assert out.summary_path.name == "GroupRemediation_Summary_20240501T060000Z.json"

    def test_defaults_filled(self):
        out = OutputConfig()
        assert out.timestamp
        assert out.base_dir

    def test_run_timestamp_format(self):
        assert make_run_timestamp(FIXED_NOW) == "20240501T060003Z"


class TestJobConfig:

    def test_from_file(self, tmp_path):
        path = tmp_path / "job.json"
        path.write_text(json.dumps({
            "auth": {
                "mode": "secret",
                "secret": {"tenant_id": "t", "client_id": "c", "client_secret": "s"},
            },
            "remediation": {"label_id": LABEL_ID, "dry_run": True},
            "publish": {"mode": "directory", "destination": str(tmp_path / "share")},
            "output": {"base_dir": str(tmp_path)},
        }))
        config = JobConfig.from_file(path).validate()
        assert config.auth.mode == "secret"
        assert config.auth.secret.client_secret == "s"
        assert config.remediation.dry_run is True
        assert config.publish.mode == "directory"

    def test_is_immutable(self):
        config = JobConfig()
        with pytest.raises(AttributeError):
            config.verbose = True

    def test_missing_label_rejected(self):
        with pytest.raises(ConfigError, match="label"):
            JobConfig().validate()

    def test_publish_needs_destination(self):
        data = {
            "auth": {"certificate": {"tenant_id": "t", "client_id": "c"}},
            "remediation": {"label_id": LABEL_ID},
            "publish": {"mode": "blob"},
        }
        with pytest.raises(ConfigError, match="destination"):
            JobConfig.from_dict(data).validate()


class TestBuildConfig:

    def test_cli_flags(self, tmp_path):
        args = parse_args([
            "--tenant-id", "t", "--client-id", "c", "--label-id", LABEL_ID,
            "--auth-mode", "secret", "--dry-run", "--output-dir", str(tmp_path),
        ])
        config = build_config(args)
        assert config.auth.mode == "secret"
        assert config.auth.secret.tenant_id == "t"
        assert config.remediation.label_id == LABEL_ID
        assert config.remediation.dry_run
        assert config.output.base_dir == str(tmp_path)

    def test_profile_supplies_values_and_cli_overrides(self, tmp_path):
        profile = TenantProfile(
            name="contoso",
            tenant_id="t-prof",
            client_id="c-prof",
            cert_path=str(tmp_path / "cert.txt"),
            label_id="label-prof",
            publish_mode="directory",
            publish_destination=str(tmp_path / "share"),
        )
        args = parse_args(["--label-id", LABEL_ID])
        config = build_config(args, profile)
        assert config.auth.certificate.tenant_id == "t-prof"
        assert config.auth.certificate.certificate_path == str(tmp_path / "cert.txt")
        assert config.remediation.label_id == LABEL_ID
        assert config.publish.mode == "directory"

    def test_no_credentials(self):
        with pytest.raises(ConfigError, match="credentials"):
            build_config(parse_args(["--label-id", LABEL_ID]))

    def test_sas_from_environment(self, monkeypatch):
        monkeypatch.setenv("M365_PUBLISH_SAS", "sv=1&sig=x")
        args = parse_args([
            "--tenant-id", "t", "--client-id", "c", "--label-id", LABEL_ID,
            "--publish-mode", "blob", "--publish-destination", "https://a.blob.core.windows.net/c",
        ])
        assert build_config(args).publish.sas_token == "sv=1&sig=x"

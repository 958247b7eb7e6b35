"""
M365 Public Group Remediation — Main entry point

Usage:
    python -m m365_group_remediation --label-id <GUID>                 # default profile
    python -m m365_group_remediation --profile contoso-prod            # named profile
    python -m m365_group_remediation --config job.json                 # JSON config file
    python -m m365_group_remediation --auth-mode secret --tenant-id ... --client-id ...
    python -m m365_group_remediation --dry-run                         # report only

Profile management:
    python -m m365_group_remediation profile add <name> --tenant-id ... --client-id ... --label-id ...
    python -m m365_group_remediation profile list
    python -m m365_group_remediation profile remove <name>
    python -m m365_group_remediation profile set-default <name>

Exit status: 0 success, 1 fatal (auth or enumeration), 2 configuration error,
3 completed with one or more failed groups.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
import uuid
from pathlib import Path
from typing import Optional

from . import __version__
from .config import (
    AUTH_MODES,
    PUBLISH_MODES,
    AuthConfig,
    CertificateAuth,
    ConfigError,
    DelegatedAuth,
    JobConfig,
    OutputConfig,
    PublishConfig,
    RemediationConfig,
    SecretAuth,
)
from .auth.authenticator import AuthenticationError, connect
from .directory import DirectoryClient, EnumerationError
from .graph.client import GraphClient
from .graph.labels import LabelClient
from .labels import LabelApplicator
from .ledger import ActionLedger
from .orchestrator import RemediationOrchestrator
from .profiles import ProfileStore, TenantProfile, resolve_profile
from .publishing import build_publisher
from .reporting import export_json
from .resolver import TargetResolver
from .safety.guardian import SafetyGuardian

logger = logging.getLogger("m365_group_remediation")

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CONFIG = 2
EXIT_ITEM_FAILURES = 3


# ---------------------------------------------------------------------------
# Profile management sub-commands
# ---------------------------------------------------------------------------

def _cmd_profile(args: argparse.Namespace) -> int:
    """Handle `profile add|list|remove|set-default` sub-commands."""
    action = args.profile_action

    if action == "list":
        return _profile_list()
    elif action == "add":
        return _profile_add(args)
    elif action == "remove":
        return _profile_remove(args)
    elif action == "set-default":
        return _profile_set_default(args)
    return 0


def _profile_list() -> int:
    store = ProfileStore.load()
    profiles = store.list_profiles()
    if not profiles:
        print("No profiles configured. Add one with:\n")
        print("  python -m m365_group_remediation profile add <name> \\")
        print("    --tenant-id <GUID> --client-id <GUID> --label-id <GUID>")
        return 0

    print(f"\n  {'Name':<20s} {'Tenant ID':<38s} {'Label ID':<38s} {'Publish':<10s} {'Default'}")
    print(f"  {'─'*20} {'─'*38} {'─'*38} {'─'*10} {'─'*7}")
    for p in profiles:
        default_marker = "  ✓" if p.name == store.default_profile else ""
        display = p.tenant_display_name or ""
        name_col = f"{p.name}" + (f" ({display})" if display else "")
        print(f"  {name_col:<20s} {p.tenant_id:<38s} {p.label_id:<38s} {p.publish_mode:<10s}{default_marker}")
    print()
    return 0


def _profile_add(args: argparse.Namespace) -> int:
    store = ProfileStore.load()
    name = args.profile_name
    if store.get(name):
        print(f"  Profile '{name}' already exists. It will be overwritten.")

    profile = TenantProfile(
        name=name,
        tenant_id=args.tenant_id,
        client_id=args.client_id,
        cert_path=args.cert_path or "./base64.txt",
        label_id=args.label_id or "",
        publish_mode=args.publish_mode or "none",
        publish_destination=args.publish_destination or "",
        tenant_display_name=args.display_name or "",
        notes=args.notes or "",
    )
    set_as_default = args.set_default or not store.profiles
    store.add(profile, set_default=set_as_default)
    print(f"  ✅ Profile '{name}' saved.")
    if set_as_default:
        print(f"  ✅ Set as default profile.")
    return 0


def _profile_remove(args: argparse.Namespace) -> int:
    store = ProfileStore.load()
    if store.remove(args.profile_name):
        print(f"  ✅ Profile '{args.profile_name}' removed.")
        return 0
    print(f"  ❌ Profile '{args.profile_name}' not found.")
    return 1


def _profile_set_default(args: argparse.Namespace) -> int:
    store = ProfileStore.load()
    if store.set_default(args.profile_name):
        print(f"  ✅ Default profile set to '{args.profile_name}'.")
        return 0
    print(f"  ❌ Profile '{args.profile_name}' not found.")
    return 1


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="m365_group_remediation",
        description="Label public Microsoft 365 groups with a corrective sensitivity label",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    # --- Sub-commands: profile management ---
    subparsers = parser.add_subparsers(dest="command", help="Management commands")

    prof_parser = subparsers.add_parser("profile", help="Manage tenant profiles")
    prof_sub = prof_parser.add_subparsers(dest="profile_action", help="Profile actions")

    # profile add
    add_p = prof_sub.add_parser("add", help="Add or update a tenant profile")
    add_p.add_argument("profile_name", help="Short name for the profile (e.g. 'contoso-prod')")
    add_p.add_argument("--tenant-id", required=True, help="Entra tenant ID (GUID)")
    add_p.add_argument("--client-id", required=True, help="App registration client ID (GUID)")
    add_p.add_argument("--cert-path", default="./base64.txt", help="Path to base64-encoded PFX (default: ./base64.txt)")
    add_p.add_argument("--label-id", help="Corrective sensitivity label ID (GUID)")
    add_p.add_argument("--publish-mode", choices=PUBLISH_MODES, default="none", help="Where evidence is published")
    add_p.add_argument("--publish-destination", help="Blob container URL or directory")
    add_p.add_argument("--display-name", help="Friendly tenant display name")
    add_p.add_argument("--notes", help="Optional admin notes")
    add_p.add_argument("--set-default", action="store_true", help="Set as default profile")

    # profile list
    prof_sub.add_parser("list", help="List all configured profiles")

    # profile remove
    rm_p = prof_sub.add_parser("remove", help="Remove a profile")
    rm_p.add_argument("profile_name", help="Name of the profile to remove")

    # profile set-default
    sd_p = prof_sub.add_parser("set-default", help="Set the default profile")
    sd_p.add_argument("profile_name", help="Name of the profile to set as default")

    # --- Run options ---
    parser.add_argument("--profile", "-p", type=str, default=None,
                        help="Tenant profile name to use (run 'profile list' to see available)")
    parser.add_argument("--config", "-c", type=Path, help="Path to JSON configuration file")
    parser.add_argument("--auth-mode", choices=AUTH_MODES, default=None,
                        help="certificate (default), secret (M365_CLIENT_SECRET) or delegated")
    parser.add_argument("--cert-path", type=Path, help="Path to base64-encoded certificate file (overrides profile)")
    parser.add_argument("--tenant-id", type=str, default=None, help="Tenant ID (overrides profile)")
    parser.add_argument("--client-id", type=str, default=None, help="Client ID (overrides profile)")
    parser.add_argument("--label-id", type=str, default=None, help="Corrective sensitivity label ID (overrides profile)")
    parser.add_argument("--dry-run", action="store_true", help="Report and log, but send no label writes")
    parser.add_argument("--output-dir", "-o", type=Path, default=None,
                        help="Directory for the log, report and summary (default: ./remediation_output)")
    parser.add_argument("--publish-mode", choices=PUBLISH_MODES, default=None, help="Where evidence is published")
    parser.add_argument("--publish-destination", type=str, default=None, help="Blob container URL or directory")
    parser.add_argument("--non-interactive", action="store_true",
                        help="Never prompt (scheduled runs); missing secrets are fatal")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace, profile: Optional[TenantProfile] = None) -> JobConfig:
    """
    Build the job configuration from config file, profile and CLI flags
    (later sources win). The result is frozen and validated.
    """
    base = JobConfig.from_file(args.config) if args.config else JobConfig()

    file_ids = base.auth.certificate or base.auth.secret or base.auth.delegated
    tenant_id = args.tenant_id or (profile.tenant_id if profile else "") or (file_ids.tenant_id if file_ids else "")
    client_id = args.client_id or (profile.client_id if profile else "") or (file_ids.client_id if file_ids else "")
    if not tenant_id or not client_id:
        raise ConfigError(
            "No tenant credentials found. Use --profile <name>, "
            "--tenant-id/--client-id, or --config job.json."
        )

    if args.cert_path:
        cert_path = str(args.cert_path)
    elif profile:
        cert_path = profile.resolve_cert_path()
    elif base.auth.certificate:
        cert_path = base.auth.certificate.certificate_path
    else:
        cert_path = "./base64.txt"

    mode = args.auth_mode or base.auth.mode
    auth = AuthConfig(
        mode=mode,
        certificate=CertificateAuth(
            tenant_id=tenant_id,
            client_id=client_id,
            certificate_path=cert_path,
            certificate_password=base.auth.certificate.certificate_password if base.auth.certificate else "",
        ),
        secret=SecretAuth(
            tenant_id=tenant_id,
            client_id=client_id,
            client_secret=base.auth.secret.client_secret if base.auth.secret else "",
        ),
        delegated=DelegatedAuth(tenant_id=tenant_id, client_id=client_id),
    )

    label_id = args.label_id or (profile.label_id if profile else "") or base.remediation.label_id
    remediation = RemediationConfig(
        label_id=label_id,
        dry_run=args.dry_run or base.remediation.dry_run,
    )

    publish_mode = args.publish_mode or (profile.publish_mode if profile and profile.publishes else "") or base.publish.mode
    publish = PublishConfig(
        mode=publish_mode,
        destination=args.publish_destination
        or (profile.publish_destination if profile else "")
        or base.publish.destination,
        sas_token=os.environ.get("M365_PUBLISH_SAS", "") or base.publish.sas_token,
    )

    output = OutputConfig(
        base_dir=str(args.output_dir) if args.output_dir else base.output.base_dir,
        timestamp=base.output.timestamp,
    )

    return JobConfig(
        auth=auth,
        remediation=remediation,
        publish=publish,
        output=output,
        verbose=args.verbose or base.verbose,
    ).validate()


async def run_job(config: JobConfig, run_id: str, interactive: bool = True) -> int:
    """Authenticate, sweep, publish. Returns the process exit status."""
    guardian = SafetyGuardian(dry_run=config.remediation.dry_run)
    guardian.print_banner()

    config.output.create_directories()
    graph: Optional[GraphClient] = None

    with ActionLedger(config.output.log_path, config.output.report_path) as ledger:
        print(f"\n📋 Run ID:  {run_id}")
        print(f"📂 Output:  {config.output.output_dir.resolve()}")
        print(f"🏷  Label:   {config.remediation.label_id}")

        # --- Authentication ---
        print("\n🔐 Authenticating...")
        try:
            graph = await connect(config.auth, guardian, interactive=interactive)
        except AuthenticationError as e:
            ledger.log_action(f"FATAL: authentication failed: {e}")
            print(f"❌ Authentication failed: {e}")
            return EXIT_FATAL
        print("✅ Authentication successful.")

        labels = LabelClient(graph)
        orchestrator = RemediationOrchestrator(
            directory=DirectoryClient(graph),
            resolver=TargetResolver(labels, ledger),
            applicator=LabelApplicator(labels, ledger),
            ledger=ledger,
            publisher=build_publisher(config.publish),
            label_id=config.remediation.label_id,
            run_id=run_id,
            dry_run=config.remediation.dry_run,
        )

        print("\n" + "=" * 70)
        print(" REMEDIATION SWEEP")
        print("=" * 70)
        try:
            summary = await orchestrator.run()
        except EnumerationError as e:
            print(f"❌ {e}")
            return EXIT_FATAL
        finally:
            await graph.__aexit__(None, None, None)

    summary_path = export_json(
        summary,
        config.output.summary_path,
        guardian_audit=guardian.get_audit_record(),
        graph_stats=graph.get_stats(),
    )

    counters = summary.counters
    print("\n" + "=" * 70)
    print(" RUN COMPLETE")
    print("=" * 70)
    print(f"\n  Scanned:     {counters.scanned}")
    print(f"  Public:      {counters.public}")
    print(f"  Remediated:  {counters.remediated}{' (dry-run)' if summary.dry_run else ''}")
    print(f"  Failed:      {counters.failed}")
    if summary.publish and summary.publish.errors:
        print(f"  ⚠  Evidence publish failed: {len(summary.publish.errors)} artifact(s)")
    print(f"  Summary:     {summary_path}")
    print()

    return EXIT_ITEM_FAILURES if summary.has_failures else EXIT_OK


async def main_async(argv: Optional[list[str]] = None) -> int:
    """Async entry point."""
    args = parse_args(argv)

    # --- Handle profile management sub-commands ---
    if getattr(args, "command", None) == "profile":
        if not getattr(args, "profile_action", None):
            print("Usage: python -m m365_group_remediation profile {add|list|remove|set-default}")
            return EXIT_OK
        return _cmd_profile(args)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    print("=" * 70)
    print(f" M365 Public Group Remediation v{__version__}")
    print("=" * 70)

    # --- Configuration ---
    profile = None
    if args.profile:
        profile = resolve_profile(args.profile)
        if not profile:
            print(f"\n❌ Profile '{args.profile}' not found. Use 'profile list' to see available profiles.")
            return EXIT_CONFIG
    elif not args.config and not args.tenant_id:
        profile = resolve_profile()

    try:
        config = build_config(args, profile)
    except (ConfigError, OSError, ValueError, KeyError) as e:
        print(f"\n❌ Configuration error: {e}")
        return EXIT_CONFIG

    if config.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if profile:
        label = profile.tenant_display_name or profile.name
        print(f"🏢 Tenant:  {label} (profile: {profile.name})")

    run_id = f"{config.output.timestamp}_{uuid.uuid4().hex[:8]}"
    return await run_job(config, run_id, interactive=not args.non_interactive)


def main():
    """Synchronous entry point for `python -m m365_group_remediation`."""
    sys.exit(asyncio.run(main_async()))


if __name__ == "__main__":
    main()

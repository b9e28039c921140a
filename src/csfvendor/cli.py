"""
Command-line interface for csfvendor.

Provides commands for initializing the portal, serving the HTTP API,
issuing and revoking vendor invitations, and comparing answers.

Uses Python's argparse module (no external CLI libraries).
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, NoReturn

from csfvendor import __version__
from csfvendor.app import PortalServices
from csfvendor.config.settings import (
    ConfigurationError,
    Settings,
    get_config_path,
    load_config,
    save_config,
)
from csfvendor.errors import PortalError
from csfvendor.storage.database import StorageError

# Set up logging
logger = logging.getLogger(__name__)

# Global verbosity settings (set during main() based on args)
_quiet_mode = False
_verbose_level = 0


def set_output_mode(quiet: bool = False, verbose: int = 0) -> None:
    """
    Set the output mode for the CLI.

    Args:
        quiet: If True, suppress non-essential output.
        verbose: Verbosity level (0=normal, 1+=verbose).
    """
    global _quiet_mode, _verbose_level
    _quiet_mode = quiet
    _verbose_level = verbose


def output(message: str = "", force: bool = False) -> None:
    """
    Print a message to stdout, respecting quiet mode.

    Args:
        message: The message to print.
        force: If True, print even in quiet mode (for essential output like JSON).
    """
    if force or not _quiet_mode:
        print(message)


def output_verbose(message: str, level: int = 1) -> None:
    """Print a verbose message only if verbosity is high enough."""
    if _verbose_level >= level and not _quiet_mode:
        print(message)


def output_error(message: str) -> None:
    """Print an error message (always shown, even in quiet mode)."""
    print(message, file=sys.stderr)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the csfvendor CLI."""
    parser = argparse.ArgumentParser(
        prog="csfvendor",
        description="Vendor self-assessment invitations for NIST CSF 2.0 assessments",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"csfvendor {__version__}",
    )

    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Override config file location (default: ~/.csfvendor/config.yaml)",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase output verbosity (can be repeated)",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress non-essential output",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        metavar="<command>",
    )

    # init command
    init_parser = subparsers.add_parser(
        "init",
        help="Initialize csfvendor configuration",
        description="Create the config file and data directory.",
    )
    init_parser.set_defaults(func=cmd_init)

    # serve command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Start the portal HTTP API",
        description="Serve the organization and vendor endpoints until interrupted.",
    )
    serve_parser.add_argument(
        "--host",
        help="Host to bind to (default: from config, 127.0.0.1)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        help="Port to bind to (default: from config, 8787)",
    )
    serve_parser.set_defaults(func=cmd_serve)

    # issue command
    issue_parser = subparsers.add_parser(
        "issue",
        help="Issue a vendor invitation",
        description="Create a shadow assessment and print the vendor's magic link.",
    )
    issue_parser.add_argument(
        "assessment_id",
        help="Organization vendor assessment ID",
    )
    issue_parser.add_argument(
        "--email",
        required=True,
        help="Vendor contact email",
    )
    issue_parser.add_argument(
        "--name",
        help="Vendor contact name",
    )
    issue_parser.add_argument(
        "--expiry-days",
        type=int,
        help="Days until the link expires (default: from config, 7)",
    )
    issue_parser.add_argument(
        "--message",
        help="Note shown to the vendor",
    )
    issue_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )
    issue_parser.set_defaults(func=cmd_issue)

    # revoke command
    revoke_parser = subparsers.add_parser(
        "revoke",
        help="Revoke a vendor invitation",
        description="Invalidate an open invitation so its link stops working.",
    )
    revoke_parser.add_argument(
        "invitation_id",
        help="Invitation ID",
    )
    revoke_parser.add_argument(
        "--by",
        dest="revoked_by",
        help="Who is revoking the invitation",
    )
    revoke_parser.set_defaults(func=cmd_revoke)

    # status command
    status_parser = subparsers.add_parser(
        "status",
        help="Show storage and invitation status",
        description="Display row counts and invitation counts by status.",
    )
    status_parser.add_argument(
        "--assessment",
        metavar="ID",
        help="Show the invitations of one assessment",
    )
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )
    status_parser.set_defaults(func=cmd_status)

    # compare command
    compare_parser = subparsers.add_parser(
        "compare",
        help="Compare organization and vendor answers",
        description="Show matches and differences per CSF function.",
    )
    compare_parser.add_argument(
        "assessment_id",
        help="Organization vendor assessment ID",
    )
    compare_parser.add_argument(
        "--differences-only",
        action="store_true",
        help="List only controls where the answers differ",
    )
    compare_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )
    compare_parser.set_defaults(func=cmd_compare)

    # demo command
    demo_parser = subparsers.add_parser(
        "demo",
        help="Generate a demo vendor assessment",
        description="Seed an assessment with answered controls for evaluation.",
    )
    demo_parser.add_argument(
        "--profile",
        choices=["startup", "growing", "mature"],
        default="growing",
        help="Vendor security posture (default: growing)",
    )
    demo_parser.add_argument(
        "--vendor-name",
        help="Vendor name (default: based on profile)",
    )
    demo_parser.add_argument(
        "--email",
        help="Also issue an invitation to this vendor email",
    )
    demo_parser.add_argument(
        "--seed",
        type=int,
        help="Random seed for reproducible answers",
    )
    demo_parser.set_defaults(func=cmd_demo)

    return parser


def setup_logging(verbose: int, quiet: bool) -> None:
    """Configure logging based on verbosity level."""
    if quiet:
        level = logging.WARNING
    elif verbose == 0:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _config_path(args: argparse.Namespace) -> Path:
    return Path(args.config) if args.config else get_config_path()


def _load_services(args: argparse.Namespace) -> PortalServices:
    settings = load_config(_config_path(args))
    return PortalServices.from_settings(settings)


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize csfvendor configuration."""
    output("csfvendor Initialization")
    output("=" * 50)
    output()

    config_path = _config_path(args)
    if config_path.exists():
        output(f"csfvendor is already initialized: {config_path}")
        output()
        output("To reset, delete the config file and run init again.")
        return 0

    settings = Settings()
    save_config(settings, config_path)
    output(f"Configuration file created: {config_path}")

    data_dir = Path(settings.data_dir).expanduser()
    data_dir.mkdir(parents=True, exist_ok=True)
    output(f"Data directory: {data_dir}")

    output()
    output("Initialization complete.")
    output()
    output("Next steps:")
    output(f"  1. Edit {config_path} to set portal.base_url and portal.org_api_key")
    output("  2. Run 'csfvendor demo --email you@example.com' to try the flow")
    output("  3. Run 'csfvendor serve' to start the portal API")
    output()
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the portal HTTP server."""
    from csfvendor.portal import PortalServer, find_available_port

    services = _load_services(args)
    portal = services.settings.portal
    host = args.host or portal.host
    port = args.port if args.port is not None else portal.port

    if not portal.org_api_key:
        logger.warning(
            "portal.org_api_key is not set; organization endpoints are unauthenticated"
        )

    if port:
        try:
            free_port = find_available_port(port, host=host)
        except RuntimeError as e:
            output_error(f"Error: {e}")
            return 1
        if free_port != port:
            output(f"Port {port} is in use, using port {free_port}")
            port = free_port

    server = PortalServer(services, host=host, port=port)

    output("csfvendor Portal")
    output("=" * 50)
    output(f"Listening on: http://{host}:{port}")
    output(f"Magic links point at: {portal.base_url}")
    output("Press Ctrl+C to stop")
    output()

    try:
        if not server.start(blocking=True):
            output_error(f"Error: could not bind to {host}:{port}")
            return 1
    except KeyboardInterrupt:
        output()
        output("Shutting down...")
    finally:
        server.stop()
    return 0


def cmd_issue(args: argparse.Namespace) -> int:
    """Issue a vendor invitation."""
    services = _load_services(args)
    issued = services.issuer.issue(
        args.assessment_id,
        args.email,
        vendor_contact_name=args.name,
        expiry_days=args.expiry_days,
        message=args.message,
    )

    if args.json:
        output(json.dumps(issued.to_dict(), indent=2, default=str), force=True)
        return 0

    output("Invitation issued")
    output("=" * 50)
    output(f"Invitation ID: {issued.invitation_id}")
    output(f"Vendor email:  {issued.vendor_email}")
    output(f"Expires:       {issued.expires_at.isoformat()}")
    output()
    output("Magic link (shown once, send it to the vendor):")
    output(f"  {issued.magic_link}", force=True)
    return 0


def cmd_revoke(args: argparse.Namespace) -> int:
    """Revoke a vendor invitation."""
    services = _load_services(args)
    invitation = services.issuer.revoke(args.invitation_id, revoked_by=args.revoked_by)
    output(f"Invitation {invitation.id} revoked")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show storage statistics and invitation counts."""
    services = _load_services(args)
    now = services.invitations.now()

    info: dict[str, Any] = {
        "version": __version__,
        "data_dir": str(services.database.data_dir),
        "assessment_service": services.settings.assessment_service.url or "local",
        "storage": services.database.get_statistics(),
        "invitations": services.invitations.count_by_status(now),
    }
    if args.assessment:
        info["assessment_invitations"] = [
            invitation.to_dict(now)
            for invitation in services.invitations.list_for_assessment(args.assessment)
        ]

    if args.json:
        output(json.dumps(info, indent=2, default=str), force=True)
        return 0

    output("csfvendor Status")
    output("=" * 50)
    output(f"Version:            {info['version']}")
    output(f"Data directory:     {info['data_dir']}")
    output(f"Assessment service: {info['assessment_service']}")
    output()
    output("Storage:")
    for table, count in info["storage"].items():
        output(f"  {table:<20} {count}")
    output()
    output("Invitations:")
    for status, count in info["invitations"].items():
        output(f"  {status:<20} {count}")

    if args.assessment:
        output()
        output(f"Invitations for {args.assessment}:")
        if not info["assessment_invitations"]:
            output("  (none)")
        for invitation in info["assessment_invitations"]:
            output(
                f"  {invitation['id']}  {invitation['status']:<10} "
                f"{invitation['vendor_contact_email']}  "
                f"expires {invitation['token_expires_at']}"
            )
    return 0


def cmd_compare(args: argparse.Namespace) -> int:
    """Compare organization and vendor answers."""
    services = _load_services(args)
    result = services.comparison.compare(args.assessment_id)

    if args.json:
        output(json.dumps(result.to_dict(), indent=2, default=str), force=True)
        return 0

    status = result.invitation_status.value if result.invitation_status else "no invitation"
    output("Assessment Comparison")
    output("=" * 50)
    output(f"Assessment: {result.organization_assessment_id}")
    output(f"Vendor:     {status}{'' if result.is_final else ' (provisional)'}")
    output()
    output(f"Controls:      {result.counts.total}")
    output(f"Matches:       {result.counts.matches}")
    output(f"Differences:   {result.counts.differences}")
    if result.counts.applicability_differences:
        output(f"Applicability: {result.counts.applicability_differences}")
    output(f"Not assessed:  {result.counts.not_assessed}")
    output(f"Match rate:    {result.counts.match_rate}%")

    for group in result.by_function:
        output()
        output(
            f"{group.function_id} {group.function_name} "
            f"({group.counts.matches}/{group.counts.answered} match)"
        )
        output("-" * 50)
        for control in group.controls:
            if control.matches:
                if args.differences_only:
                    continue
                marker = "="
            elif not control.vendor_answered:
                if args.differences_only:
                    continue
                marker = "?"
            else:
                marker = "!"
            detail = control.difference or control.org_item.status.value
            output(f"  {marker} {control.subcategory_id:<12} {detail}")
    return 0


def cmd_demo(args: argparse.Namespace) -> int:
    """Generate demo data for quick evaluation."""
    from csfvendor.demo import generate_demo_data

    output("csfvendor Demo Data Generator")
    output("=" * 50)
    output()

    services = _load_services(args)
    summary = generate_demo_data(
        services,
        profile=args.profile,
        vendor_name=args.vendor_name,
        vendor_email=args.email,
        seed=args.seed,
    )

    output("Demo data generated successfully!")
    output()
    output("Summary:")
    output(f"  Vendor: {summary['vendor_name']}")
    output(f"  Profile: {summary['profile']}")
    output(f"  Assessment ID: {summary['assessment_id']}")
    output(f"  Items: {summary['items']}")
    for status, count in sorted(summary["status_counts"].items()):
        output_verbose(f"    {status}: {count}")
    output()

    invitation = summary["invitation"]
    if invitation:
        output(f"  Invitation ID: {invitation['invitation_id']}")
        output(f"  Magic link: {invitation['magic_link']}", force=True)
        output()

    output("Next steps:")
    output("  1. Run 'csfvendor serve' to start the portal API")
    if not invitation:
        output(f"  2. Run 'csfvendor issue {summary['assessment_id']} --email <vendor>'")
    output(f"  Then 'csfvendor compare {summary['assessment_id']}' to view results")
    return 0


def main() -> NoReturn:
    """Main entry point for the csfvendor CLI."""
    parser = create_parser()
    args = parser.parse_args()

    # Set up logging and output mode
    setup_logging(args.verbose, args.quiet)
    set_output_mode(args.quiet, args.verbose)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    try:
        exit_code = args.func(args)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        output("\nOperation cancelled.")
        sys.exit(130)
    except ConfigurationError as e:
        output_error(f"Configuration error: {e}")
        sys.exit(2)
    except PortalError as e:
        output_error(f"Error: {e}")
        sys.exit(1)
    except StorageError as e:
        output_error(f"Storage error: {e}")
        sys.exit(1)
    except Exception as e:
        if args.verbose > 0:
            raise
        output_error(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

"""
Command-line front-end.

Parses flags, validates them, checks prerequisites and hands the run to
the RunController. Maps the result to the process exit status.
"""

import argparse
import os
import signal
import sys
from contextlib import contextmanager
from typing import Iterator, List, Optional

from . import __version__
from .certbot import CertbotClient
from .config_loader import (
    DNS_PROVIDERS,
    RunParameters,
    Settings,
    load_settings,
    validate_parameters,
)
from .controller import RunController, RunResult
from .errors import (
    ConfigurationError,
    ParameterValidationError,
    PrerequisiteMissingError,
)
from .filemaker import FileMakerServer
from .logger import setup_logger, get_logger
from .state import StateStore


EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_VALIDATION = 2

TERMINATION_SIGNALS = (signal.SIGTERM, signal.SIGHUP)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="fms-cert-manager",
        description="Let's Encrypt certificate manager for FileMaker Server (DNS-01)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Request a staging certificate (default environment)
  %(prog)s --hostname fms.example.com --email admin@example.com --do-token dop_v1_xxx

  # Production certificate, imported into FileMaker Server and restarted
  %(prog)s --hostname fms.example.com --email admin@example.com --do-token dop_v1_xxx \\
           --fms-username admin --fms-password secret --live --import-cert --restart-fms

Secrets may also be supplied through DO_TOKEN, LINODE_TOKEN, AWS_ACCESS_KEY_ID,
AWS_SECRET_ACCESS_KEY, FMS_USERNAME and FMS_PASSWORD.
        """,
    )

    parser.add_argument("--hostname", type=str, help="Domain name for the certificate")
    parser.add_argument("--email", type=str, help="Email for Let's Encrypt notifications")
    parser.add_argument(
        "--dns-provider",
        type=str,
        choices=sorted(DNS_PROVIDERS),
        default="digitalocean",
        help="DNS provider used for the DNS-01 challenge (default: digitalocean)",
    )

    creds = parser.add_argument_group("DNS provider credentials")
    creds.add_argument("--do-token", type=str, help="DigitalOcean API token")
    creds.add_argument("--linode-token", type=str, help="Linode API token")
    creds.add_argument("--aws-access-key-id", type=str, help="AWS access key id (Route53)")
    creds.add_argument("--aws-secret-access-key", type=str, help="AWS secret access key (Route53)")

    fms = parser.add_argument_group("FileMaker Server")
    fms.add_argument("--fms-username", type=str, help="FileMaker Admin Console username")
    fms.add_argument("--fms-password", type=str, help="FileMaker Admin Console password")
    fms.add_argument(
        "--import-cert",
        action="store_true",
        help="Import the certificate into FileMaker Server",
    )
    fms.add_argument(
        "--restart-fms",
        action="store_true",
        help="Restart FileMaker Server after a successful import",
    )

    parser.add_argument(
        "--live", "--use-production-environment",
        dest="live",
        action="store_true",
        help="Use Let's Encrypt production environment (default: staging)",
    )
    parser.add_argument(
        "--force-renew",
        action="store_true",
        help="Force renewal even if not needed",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a YAML settings file (default: built-in FileMaker Server paths)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument(
        "--json-summary",
        action="store_true",
        help="Output machine-readable JSON summary at the end of execution",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


def _arg_or_env(value: Optional[str], env_var: str) -> Optional[str]:
    """Command-line value first, then environment variable."""
    if value:
        return value
    return os.environ.get(env_var)


def build_parameters(args: argparse.Namespace) -> RunParameters:
    """Turn parsed arguments into RunParameters."""
    if args.dns_provider == "route53":
        credentials = {
            "access_key_id": _arg_or_env(args.aws_access_key_id, "AWS_ACCESS_KEY_ID"),
            "secret_access_key": _arg_or_env(args.aws_secret_access_key, "AWS_SECRET_ACCESS_KEY"),
        }
    elif args.dns_provider == "linode":
        credentials = {"token": _arg_or_env(args.linode_token, "LINODE_TOKEN")}
    else:
        credentials = {"token": _arg_or_env(args.do_token, "DO_TOKEN")}

    return RunParameters(
        hostname=(args.hostname or "").strip().lower(),
        email=(args.email or "").strip(),
        dns_provider=args.dns_provider,
        dns_credentials={k: v for k, v in credentials.items() if v},
        use_production_environment=args.live,
        force_renew=args.force_renew,
        import_certificate=args.import_cert,
        restart_after_import=args.restart_fms,
        debug=args.debug,
        fms_username=_arg_or_env(args.fms_username, "FMS_USERNAME"),
        fms_password=_arg_or_env(args.fms_password, "FMS_PASSWORD"),
    )


def check_prerequisites(
    params: RunParameters,
    settings: Settings,
    issuer: CertbotClient,
    server: FileMakerServer,
) -> None:
    """
    Check the host can run this tool.

    Raises:
        PrerequisiteMissingError: If a requirement is not met
    """
    logger = get_logger()

    if settings.require_root and os.geteuid() != 0:
        raise PrerequisiteMissingError("This tool must be run as root or with sudo")

    issuer.check_prerequisites(params.dns_provider)

    if params.import_certificate:
        server.check_prerequisites()

    logger.success("All dependencies are available")


def _shutdown_handler(signum, frame):
    get_logger().warning(f"Received {signal.Signals(signum).name}, stopping")
    sys.exit(128 + signum)


@contextmanager
def termination_handled() -> Iterator[None]:
    """
    Turn SIGTERM and SIGHUP into SystemExit while the block runs.

    The exception unwinds the lock and credentials context managers, so
    the credentials file is removed when a scheduler or systemd stops the
    process. Previous handlers are restored on exit.
    """
    previous = {sig: signal.signal(sig, _shutdown_handler) for sig in TERMINATION_SIGNALS}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def print_summary(result: RunResult, output_json: bool = False) -> None:
    """
    Print the run summary.

    Args:
        result: Result of the run
        output_json: Also print the machine-readable JSON summary
    """
    logger = get_logger()

    logger.section("RUN SUMMARY")
    logger.info(f"  Hostname: {result.hostname}")
    logger.info(f"  Environment: {result.environment}")
    logger.info(f"  Action: {result.action.value if result.action else 'none'}")
    if result.stage:
        logger.info(f"  Failed stage: {result.stage}")
    logger.info(f"  Result: {'SUCCESS' if result.success else 'FAILED'}")
    if result.message:
        logger.info(f"  {result.message}")

    if output_json:
        print(result.to_json())


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the certificate manager.

    Returns:
        Process exit status: 0 on success or nothing to do, 1 on failure,
        2 on invalid parameters or configuration
    """
    args = parse_arguments(argv)

    try:
        settings = load_settings(args.config)
    except ConfigurationError as e:
        setup_logger(verbose=args.debug, use_colors=not args.no_color)
        get_logger().error(f"Configuration error: {e}")
        return EXIT_VALIDATION

    logger = setup_logger(verbose=args.debug, use_colors=not args.no_color)

    params = build_parameters(args)

    logger.info(f"Starting fms-cert-manager v{__version__}")
    logger.debug(f"Debug mode: {params.debug}")
    logger.info(f"Hostname: {params.hostname}")
    logger.info(f"Email: {params.email}")
    logger.info(f"Environment: {params.environment_name}")

    try:
        validate_parameters(params)
    except ParameterValidationError as e:
        logger.error(f"{e}")
        return EXIT_VALIDATION

    # File logging starts only once parameters are valid
    logger = setup_logger(
        verbose=args.debug,
        use_colors=not args.no_color,
        log_file=settings.log_file,
    )

    issuer = CertbotClient(settings)
    server = FileMakerServer(settings, params.fms_username, params.fms_password)

    try:
        check_prerequisites(params, settings, issuer, server)
    except PrerequisiteMissingError as e:
        logger.failure(f"{params.hostname}: {e.stage} failed: {e}")
        return EXIT_FAILURE

    controller = RunController(
        settings=settings,
        state_store=StateStore(
            settings.state_dir, settings.service_user, settings.service_group
        ),
        issuer=issuer,
        server=server,
    )

    with termination_handled():
        result = controller.run(params)
    print_summary(result, output_json=args.json_summary)

    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())

"""sslagent command line entry point."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

from sslagent import __version__
from sslagent.exceptions import SSLAgentError, UnknownActionError
from sslagent.models.config import AgentConfig, SSLSettings
from sslagent.services.config_service import DEFAULT_CONFIG_PATH, load_config, resolve_ca_server, resolve_settings
from sslagent.services.host_service import Host
from sslagent.services.http_service import CAClient
from sslagent.services.registry import ServiceFactory, ServiceRegistry
from sslagent.services.safety_service import SafetyGuard
from sslagent.services.ssl_service import SSLService
from sslagent.services.trust_service import X509TrustVerifier
from sslagent.utils.logger import setup_logger

logger = logging.getLogger("sslagent")

ACTIONS = ("submit_request", "download_cert", "verify", "clean")

DESCRIPTION = "Manage SSL keys and certificates for SSL clients that must be trusted by a CA."

EPILOG = """\
actions:
  submit_request  Generate a certificate signing request (CSR) and submit it to
                  the CA. An existing key pair is reused, otherwise a new one is
                  generated. Fails if a CSR for the certname is already pending.
                  A certificate download is attempted right after submitting.
  download_cert   Download the certificate for this host. It is saved only if it
                  matches the current private key, overwriting any existing one.
  verify          Verify the private key and certificate are present and match,
                  the certificate is issued by a trusted CA, and it is not revoked.
  clean           Remove the private key and certificate related files for this
                  host. With --localca, also remove the local CA bundle and CRL.
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sslagent",
        description=DESCRIPTION,
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("action", nargs="?", help="one of: " + ", ".join(ACTIONS))
    parser.add_argument("--certname", metavar="NAME", help="certname to act on (overrides the configured one)")
    parser.add_argument("--localca", action="store_true", help="clean also removes the local CA bundle and CRL")
    parser.add_argument("--show-chain", action="store_true", help="verify also prints the issuer chain")
    parser.add_argument(
        "--config", type=Path, default=DEFAULT_CONFIG_PATH, help="path to config.yaml (default: %(default)s)"
    )
    parser.add_argument("--debug", action="store_true", help="log debug output to the console")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def default_services(settings: SSLSettings) -> Dict[str, ServiceFactory]:
    """
    Default service factories.

    Args:
        settings: Resolved settings the services are built from

    Returns:
        Factories keyed by service name
    """
    return {"http": lambda: CAClient.from_settings(settings)}


def build_ssl_service(
    config: AgentConfig,
    settings: SSLSettings,
    registry: ServiceRegistry,
    show_chain: bool = False,
    echo: Callable[[str], None] = print,
) -> SSLService:
    """
    Wire the lifecycle service from its collaborators.

    Args:
        config: Agent configuration
        settings: Resolved settings for this invocation
        registry: Service registry providing the CA transport
        show_chain: Print the issuer chain after a successful verify
        echo: Sink for user-facing output

    Returns:
        Ready-to-use SSL service
    """
    transport = registry.get("http")
    return SSLService(
        host=Host(settings, transport),
        verifier=X509TrustVerifier(),
        guard=SafetyGuard(resolve_ca_server(config), transport),
        settings=settings,
        show_chain=show_chain,
        echo=echo,
    )


def run(
    argv: Optional[List[str]] = None,
    registry: Optional[ServiceRegistry] = None,
    echo: Callable[[str], None] = print,
) -> int:
    """
    Run one action.

    Args:
        argv: Command line arguments (defaults to sys.argv)
        registry: Service registry; built from the settings when omitted
        echo: Sink for user-facing output

    Returns:
        Process exit status
    """
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
        setup_logger(config, debug=args.debug)

        if not args.action:
            raise UnknownActionError(f"An action must be specified. Choose one of: {', '.join(ACTIONS)}")
        if args.action not in ACTIONS:
            raise UnknownActionError(f"Unknown action '{args.action}'")

        settings = resolve_settings(config, certname=args.certname)
        if registry is None:
            registry = ServiceRegistry(default_services(settings))

        service = build_ssl_service(config, settings, registry, show_chain=args.show_chain, echo=echo)
        try:
            if args.action == "submit_request":
                service.submit_and_download()
            elif args.action == "download_cert":
                service.download_cert()
            elif args.action == "verify":
                service.verify()
            elif args.action == "clean":
                service.clean(localca=args.localca)
        finally:
            transport = registry.get("http")
            if isinstance(transport, CAClient):
                transport.close()

    except SSLAgentError as e:
        logger.debug(f"{args.action or 'sslagent'} failed ({e.kind.value})", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()

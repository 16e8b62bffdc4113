"""dovecot-client-ip CLI — resolve client IPs and check trusted proxy configuration."""

import argparse
import logging
import sys

from dovecot_client_ip.cidr import validate_network_specs
from dovecot_client_ip.config import ClientIpConfig, ConfigError, load_config
from dovecot_client_ip.resolver import resolve_client_ip


def main(argv: list[str] | None = None) -> None:
    """Entry point for the ``dovecot-client-ip`` console script."""
    parser = argparse.ArgumentParser(prog="dovecot-client-ip", description="Dovecot client IP CLI")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    resolve_cmd = sub.add_parser("resolve", help="Resolve the client IP of a request")
    resolve_cmd.add_argument("--peer", required=True, help="Peer address (REMOTE_ADDR)")
    resolve_cmd.add_argument(
        "--trusted-proxy",
        action="append",
        default=None,
        metavar="SPEC",
        help="Trusted proxy IP or CIDR (repeatable; default: from environment)",
    )
    resolve_cmd.add_argument(
        "--allow-private",
        action="store_true",
        default=None,
        help="Accept private, loopback and link-local client IPs from headers",
    )
    resolve_cmd.add_argument(
        "--header",
        action="append",
        default=[],
        metavar="'NAME: VALUE'",
        help='Forwarding header, e.g. "X-Forwarded-For: 203.0.113.9" (repeatable)',
    )

    check_cmd = sub.add_parser("check-config", help="Validate trusted proxy entries")
    check_cmd.add_argument(
        "--trusted-proxy",
        action="append",
        default=None,
        metavar="SPEC",
        help="Trusted proxy IP or CIDR (repeatable; default: from environment)",
    )

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    try:
        config = _build_config(args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    if args.command == "resolve":
        sys.exit(_resolve(args, config))
    if args.command == "check-config":
        sys.exit(_check_config(config))


def _build_config(args: argparse.Namespace) -> ClientIpConfig:
    """Environment config, with command-line values taking precedence."""
    config = load_config()
    trusted_proxies = config.trusted_proxies
    allow_private = config.allow_private_client_ip

    if args.trusted_proxy is not None:
        trusted_proxies = tuple(args.trusted_proxy)
    if getattr(args, "allow_private", None):
        allow_private = True

    return ClientIpConfig(trusted_proxies=trusted_proxies, allow_private_client_ip=allow_private)


def _parse_headers(raw_headers: list[str]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for raw in raw_headers:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            raise ValueError(f"Invalid header '{raw}'. Expected 'Name: value'.")
        name = name.strip()
        value = value.strip()
        headers[name] = f"{headers[name]}, {value}" if name in headers else value
    return headers


def _resolve(args: argparse.Namespace, config: ClientIpConfig) -> int:
    try:
        headers = _parse_headers(args.header)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 2

    client_ip = resolve_client_ip(
        args.peer, config.trusted_proxies, config.allow_private_client_ip, headers,
    )
    if client_ip is None:
        print("Client IP could not be determined.", file=sys.stderr)
        return 1

    print(client_ip)
    return 0


def _check_config(config: ClientIpConfig) -> int:
    if not config.trusted_proxies:
        print("No trusted proxies configured; forwarding headers are never read.")
        return 0

    invalid = validate_network_specs(config.trusted_proxies)
    for spec, reason in invalid:
        print(f"invalid: {spec} ({reason})")

    valid_count = len(config.trusted_proxies) - len(invalid)
    print(f"{valid_count} of {len(config.trusted_proxies)} trusted proxy entries are valid.")
    return 1 if invalid else 0

import argparse
import ipaddress
import logging
import os
from urllib.parse import urlparse

import uvicorn

DEFAULT_HOST = "localhost"
DEFAULT_SERVE_PORT = 4401
DEFAULT_DEV_PORT = 4402

EPILOG = """\
Example:
  sabzzi serve :4401 --rp-id sabzzi.example.com --invite-code 4452
"""


def parse_endpoint(
    value: str | None, default_port: int
) -> tuple[str | None, int | None, str | None]:
    """Parse an endpoint using stdlib (urllib.parse, ipaddress).

    Returns (host, port, uds_path). If uds_path is not None, host/port are None.

    Supported forms:
    - host[:port]
    - :port (binds all interfaces)
    - [ipv6][:port] (bracketed for port usage)
    - unix:/path/to/socket.sock
    - None -> defaults (localhost:4401)
    """
    if not value:
        return DEFAULT_HOST, default_port, None

    # Port only (numeric) -> localhost:port
    if value.isdigit():
        return DEFAULT_HOST, int(value), None

    # Leading colon :port -> bind all interfaces
    if value.startswith(":") and value != ":":
        port_part = value[1:]
        if not port_part.isdigit():
            raise SystemExit(f"Invalid port in '{value}'")
        return "::", int(port_part), None

    # UNIX domain socket
    if value.startswith("unix:"):
        uds_path = value[5:] or None
        if uds_path is None:
            raise SystemExit("unix: path must not be empty")
        return None, None, uds_path

    # Unbracketed IPv6 (cannot safely contain a port) -> detect by multiple colons
    if value.count(":") > 1 and not value.startswith("["):
        try:
            ipaddress.IPv6Address(value)
        except ValueError as e:
            raise SystemExit(f"Invalid IPv6 address '{value}': {e}")
        return value, default_port, None

    parsed = urlparse(f"//{value}")  # // prefix lets urlparse treat it as netloc
    try:
        port = parsed.port
    except ValueError as e:
        raise SystemExit(f"Invalid endpoint '{value}': {e}")
    return parsed.hostname or DEFAULT_HOST, port or default_port, None


def add_common_options(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "hostport",
        nargs="?",
        help="Endpoint. Forms: host[:port] | :port | [ipv6][:port] | unix:/path.sock",
    )
    p.add_argument(
        "--rp-id", default="localhost", help="Relying Party ID (default: localhost)"
    )
    p.add_argument("--rp-name", help="Relying Party name shown by authenticators")
    p.add_argument(
        "--origin",
        help="Origin URL (default: https://<rp-id>, http://localhost:3000 for localhost)",
    )
    p.add_argument("--db", help="SQLAlchemy async database URL")
    p.add_argument(
        "--invite-code",
        action="append",
        dest="invite_codes",
        metavar="CODE",
        help="Code required to register a new account. May be given multiple times.",
    )


def main():
    # Configure logging to remove the "ERROR:root:" prefix
    logging.basicConfig(level=logging.INFO, format="%(message)s", force=True)

    parser = argparse.ArgumentParser(
        prog="sabzzi",
        description="Sabzzi passkey authentication server",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)
    serve = sub.add_parser(
        "serve", help="Run the server (production style, no auto-reload)"
    )
    add_common_options(serve)
    dev = sub.add_parser(
        "dev", help="Run the server in development (auto-reload, dev login enabled)"
    )
    add_common_options(dev)

    args = parser.parse_args()
    devmode = args.command == "dev"
    default_port = DEFAULT_DEV_PORT if devmode else DEFAULT_SERVE_PORT
    host, port, uds = parse_endpoint(args.hostport, default_port)

    # Export configuration via environment for lifespan initialization in each process
    os.environ["SABZZI_RP_ID"] = args.rp_id
    if args.rp_name:
        os.environ["SABZZI_RP_NAME"] = args.rp_name
    if args.origin:
        os.environ["SABZZI_ORIGIN"] = args.origin
    if args.db:
        os.environ["SABZZI_DB"] = args.db
    if args.invite_codes:
        os.environ["SABZZI_INVITE_CODES"] = ",".join(args.invite_codes)
    if devmode:
        os.environ["SABZZI_DEV"] = "1"

    run_kwargs: dict = {"reload": devmode, "log_level": "info", "access_log": False}
    if uds:
        run_kwargs["uds"] = uds
    else:
        run_kwargs["host"] = host
        run_kwargs["port"] = port
    uvicorn.run("sabzzi.fastapi.mainapp:app", **run_kwargs)


if __name__ == "__main__":
    main()

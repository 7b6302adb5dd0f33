"""CLI for running and checking the Microsoft auth demo."""

import argparse
import asyncio
import sys
from urllib.parse import parse_qs, urlparse

import httpx

from msauth_demo.config import ConfigurationError, get_settings
from msauth_demo.auth.flows import FLOW_TYPES, get_flow
from msauth_demo.auth.pkce import generate_code_challenge, generate_code_verifier


def serve(host: str | None, port: int | None, reload: bool) -> bool:
    """Run the web application with uvicorn."""
    import uvicorn

    try:
        settings = get_settings()
    except ConfigurationError as e:
        print(f"✗ {e}")
        return False

    uvicorn.run(
        "msauth_demo.main:app",
        host=host or settings.server_host,
        port=port or settings.server_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )
    return True


def check_config() -> bool:
    """Report which parts of the configuration are complete."""
    try:
        settings = get_settings()
    except ConfigurationError as e:
        print(f"✗ Settings: {e}")
        return False

    print(f"✓ Settings: environment={settings.server_env}, secure cookies={settings.is_production}")

    configured = 0
    for name in FLOW_TYPES:
        try:
            flow = get_flow(name)
        except ConfigurationError as e:
            print(f"✗ {name}: {e}")
            continue
        configured += 1
        print(f"✓ {name}: {flow.config.authorization_endpoint}")
        print(f"    redirect_uri: {flow.config.redirect_uri}")

    print(f"\n  {configured}/{len(FLOW_TYPES)} flows configured")
    return configured > 0


def print_pkce_pair(verifier: str | None = None) -> bool:
    """Print a PKCE verifier and its S256 challenge."""
    verifier = verifier or generate_code_verifier()
    print(f"code_verifier:  {verifier}")
    print(f"code_challenge: {generate_code_challenge(verifier)}")
    return True


async def test_connection(server_url: str = "http://localhost:8000") -> bool:
    """Check a running server: health, then each login redirect."""
    ok = True
    try:
        async with httpx.AsyncClient(base_url=server_url, timeout=10) as client:
            resp = await client.get("/health")
            if resp.status_code != 200:
                print(f"✗ Health check returned {resp.status_code}")
                return False
            print("✓ Health check OK")

            for name in FLOW_TYPES:
                resp = await client.get(f"/auth/{name}/login")
                if resp.status_code != 302:
                    print(f"✗ {name}: expected redirect, got {resp.status_code}")
                    ok = False
                    continue

                location = resp.headers.get("location", "")
                params = parse_qs(urlparse(location).query)
                has_state = "state" in params
                print(f"{'✓' if has_state else '✗'} {name}: redirects to {urlparse(location).netloc}")
                print(f"    state: {'present' if has_state else 'MISSING'}")
                print(f"    session cookie: {'set' if 'set-cookie' in resp.headers else 'MISSING'}")
                ok = ok and has_state

    except httpx.ConnectError:
        print(f"✗ Cannot connect to server at {server_url}")
        print("  Is the server running?")
        return False

    return ok


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Microsoft auth demo CLI",
        prog="msauth-demo",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the web application")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: SERVER_HOST)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default: SERVER_PORT)")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    subparsers.add_parser("check-config", help="Show which sign-in flows are configured")

    pkce_parser = subparsers.add_parser("pkce", help="Print a PKCE verifier/challenge pair")
    pkce_parser.add_argument("--verifier", default=None, help="Use this verifier instead of a random one")

    # Test connection command
    test_parser = subparsers.add_parser("test-connection", help="Test a running server's login redirects")
    test_parser.add_argument(
        "--server",
        default="http://localhost:8000",
        help="Server URL (default: http://localhost:8000)",
    )

    args = parser.parse_args()

    if args.command == "serve":
        success = serve(args.host, args.port, args.reload)
    elif args.command == "check-config":
        success = check_config()
    elif args.command == "pkce":
        success = print_pkce_pair(args.verifier)
    elif args.command == "test-connection":
        success = asyncio.run(test_connection(args.server))
    else:
        parser.print_help()
        sys.exit(1)

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""Flight Status Oracle.

Registers a pool of oracle identities with the FlightSuretyApp contract,
listens for OracleRequest events and submits signed flight status responses
from every eligible oracle.

Start with env vars or CLI arguments. See README.md for configuration.
"""

import argparse
import asyncio
import logging
import os
import sys
from decimal import Decimal, InvalidOperation

from web3 import Web3

from .src.errors import OracleError
from .src.FlightOracle import KEY_SOURCES, FlightOracle
from .src.FlightStatus import StatusCode
from .src.KeyProviderLocalnet import DEFAULT_FIRST_ACCOUNT, DEFAULT_LOCALNET_MNEMONIC
from .src.StatusPolicy import get_available_policies, get_policy

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def parse_stake(stake_str: str) -> int:
    """Parse a stake amount in ether into wei.

    :param stake_str: Amount in ether (e.g., "1", "0.5").
    :returns: Amount in wei.
    :raises ValueError: If the amount is not a positive number.
    """
    try:
        amount = Decimal(stake_str)
    except InvalidOperation as e:
        raise ValueError(f"Invalid stake amount '{stake_str}'") from e
    if amount <= 0:
        raise ValueError("Stake must be positive")
    return int(Web3.to_wei(amount, "ether"))


def parse_optional_int(value: str | None) -> int | None:
    """Parse an optional integer from an environment variable."""
    if value is None or value.strip() == "":
        return None
    return int(value)


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser, with defaults taken from the environment."""
    available_policies = get_available_policies()
    status_codes = ", ".join(f"{c.name}={int(c)}" for c in StatusCode)

    parser = argparse.ArgumentParser(
        description="Flight Status Oracle: oracle pool for FlightSuretyApp status requests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Status policies:
  {', '.join(available_policies)}

Status codes:
  {status_codes}

Examples:
  # Local development chain, 20 oracles from accounts 11..30
  python -m flight_oracle.main --app-address 0x... --pool-size 20

  # Always report LATE_AIRLINE from every oracle
  python -m flight_oracle.main --app-address 0x... --status-code 20

  # Report a random status code per response
  python -m flight_oracle.main --app-address 0x... --status-policy random

  # Keys generated inside a ROFL TEE
  python -m flight_oracle.main --network https://rpc.example.org \\
      --app-address 0x... --key-source appd

Environment variables (CLI args take precedence):
  NETWORK, RPC_URL, APP_ADDRESS, CONTRACT_BUILD_DIR, POOL_SIZE, ORACLE_STAKE,
  KEY_SOURCE, MNEMONIC, FIRST_ACCOUNT, APPD_URL, STATUS_POLICY, STATUS_CODE,
  SUBMIT_TIMEOUT, MAX_CONCURRENCY, POLL_INTERVAL, FROM_BLOCK, SHUTDOWN_GRACE,
  STATUS_HOST, STATUS_PORT
""",
    )

    parser.add_argument(
        "--network",
        type=str,
        help="Network name (localhost, development, ganache) or RPC URL",
        default=os.environ.get("NETWORK") or "localhost",
    )

    parser.add_argument(
        "--app-address",
        dest="app_address",
        type=str,
        help="Address of the FlightSuretyApp contract",
        default=os.environ.get("APP_ADDRESS"),
    )

    parser.add_argument(
        "--contract-build-dir",
        dest="build_dir",
        type=str,
        help="Directory with truffle build artifacts (default: build/contracts)",
        default=os.environ.get("CONTRACT_BUILD_DIR"),
    )

    parser.add_argument(
        "--pool-size",
        dest="pool_size",
        type=int,
        help="Number of oracle identities to register (default: 20)",
        default=int(os.environ.get("POOL_SIZE") or "20"),
    )

    parser.add_argument(
        "--stake",
        type=str,
        help="Registration fee per oracle in ether (default: 1)",
        default=os.environ.get("ORACLE_STAKE") or "1",
    )

    parser.add_argument(
        "--key-source",
        dest="key_source",
        type=str,
        choices=KEY_SOURCES,
        help="Where oracle keys come from (default: localnet)",
        default=os.environ.get("KEY_SOURCE") or "localnet",
    )

    parser.add_argument(
        "--mnemonic",
        type=str,
        help="HD-wallet mnemonic for the localnet key source",
        default=os.environ.get("MNEMONIC") or DEFAULT_LOCALNET_MNEMONIC,
    )

    parser.add_argument(
        "--first-account",
        dest="first_account",
        type=int,
        help=f"Account index of the first oracle for localnet (default: {DEFAULT_FIRST_ACCOUNT})",
        default=int(os.environ.get("FIRST_ACCOUNT") or str(DEFAULT_FIRST_ACCOUNT)),
    )

    parser.add_argument(
        "--appd-url",
        dest="appd_url",
        type=str,
        help="ROFL appd URL or socket path (default: /run/rofl-appd.sock)",
        default=os.environ.get("APPD_URL") or "",
    )

    parser.add_argument(
        "--status-policy",
        dest="status_policy",
        type=str,
        help=f"Status code policy. Available: {', '.join(available_policies)}",
        default=os.environ.get("STATUS_POLICY") or "fixed",
    )

    parser.add_argument(
        "--status-code",
        dest="status_code",
        type=int,
        help="Status code reported by the fixed policy (default: 10, ON_TIME)",
        default=int(os.environ.get("STATUS_CODE") or "10"),
    )

    parser.add_argument(
        "--submit-timeout",
        dest="submit_timeout",
        type=float,
        help="Timeout per response submission in seconds (default: 60.0)",
        default=float(os.environ.get("SUBMIT_TIMEOUT") or "60.0"),
    )

    parser.add_argument(
        "--max-concurrency",
        dest="max_concurrency",
        type=int,
        help="Maximum response submissions in flight (default: 10)",
        default=int(os.environ.get("MAX_CONCURRENCY") or "10"),
    )

    parser.add_argument(
        "--poll-interval",
        dest="poll_interval",
        type=float,
        help="Seconds between event polls when idle (default: 2.0)",
        default=float(os.environ.get("POLL_INTERVAL") or "2.0"),
    )

    parser.add_argument(
        "--from-block",
        dest="from_block",
        type=int,
        help="First block to scan for requests (default: chain head)",
        default=parse_optional_int(os.environ.get("FROM_BLOCK")),
    )

    parser.add_argument(
        "--shutdown-grace",
        dest="shutdown_grace",
        type=float,
        help="Seconds to let in-flight submissions finish on shutdown (default: 30.0)",
        default=float(os.environ.get("SHUTDOWN_GRACE") or "30.0"),
    )

    parser.add_argument(
        "--status-host",
        dest="status_host",
        type=str,
        help="Status endpoint bind address (default: 127.0.0.1)",
        default=os.environ.get("STATUS_HOST") or "127.0.0.1",
    )

    parser.add_argument(
        "--status-port",
        dest="status_port",
        type=int,
        help="Status endpoint port, 0 to disable (default: 3000)",
        default=int(os.environ.get("STATUS_PORT") or "3000"),
    )

    parser.add_argument(
        "--no-reuse-registered",
        dest="reuse_registered",
        action="store_false",
        help="Register every oracle again even if already registered",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    return parser


def main() -> None:
    """Main entry point for the Flight Status Oracle CLI."""
    parser = build_parser()
    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Validate arguments
    if not args.app_address:
        parser.error("--app-address (or APP_ADDRESS) is required")

    if not Web3.is_address(args.app_address):
        parser.error(f"Invalid FlightSuretyApp address: {args.app_address}")

    if args.pool_size < 1:
        parser.error("--pool-size must be at least 1")

    if args.first_account < 0:
        parser.error("--first-account must not be negative")

    if args.submit_timeout <= 0:
        parser.error("--submit-timeout must be positive")

    if args.max_concurrency < 1:
        parser.error("--max-concurrency must be at least 1")

    if args.poll_interval <= 0:
        parser.error("--poll-interval must be positive")

    if args.from_block is not None and args.from_block < 0:
        parser.error("--from-block must not be negative")

    if args.shutdown_grace < 0:
        parser.error("--shutdown-grace must not be negative")

    if not 0 <= args.status_port <= 65535:
        parser.error("--status-port must be between 0 and 65535")

    try:
        stake_wei = parse_stake(args.stake)
    except ValueError as e:
        parser.error(str(e))

    try:
        status_policy = get_policy(args.status_policy, args.status_code)
    except ValueError as e:
        parser.error(str(e))

    # Log configuration
    logger.info("=" * 60)
    logger.info("Flight Status Oracle")
    logger.info("=" * 60)
    logger.info(f"Network:           {args.network}")
    logger.info(f"FlightSuretyApp:   {args.app_address}")
    logger.info(f"Pool Size:         {args.pool_size}")
    logger.info(f"Stake:             {args.stake} ether")
    logger.info(f"Key Source:        {args.key_source}")
    if args.key_source == "localnet":
        logger.info(f"First Account:     {args.first_account}")
    logger.info(f"Status Policy:     {args.status_policy}")
    logger.info(f"Submit Timeout:    {args.submit_timeout}s")
    logger.info(f"Max Concurrency:   {args.max_concurrency}")
    logger.info(f"Poll Interval:     {args.poll_interval}s")
    logger.info(
        f"From Block:        {args.from_block}" if args.from_block is not None
        else "From Block:        chain head"
    )
    logger.info(
        f"Status Endpoint:   {args.status_host}:{args.status_port}" if args.status_port
        else "Status Endpoint:   disabled"
    )
    logger.info("=" * 60)

    try:
        flight_oracle = FlightOracle.from_network(
            network_name=args.network,
            app_address=args.app_address,
            status_policy=status_policy,
            build_dir=args.build_dir,
            key_source=args.key_source,
            mnemonic=args.mnemonic,
            first_account=args.first_account,
            appd_url=args.appd_url,
            pool_size=args.pool_size,
            stake_wei=stake_wei,
            reuse_registered=args.reuse_registered,
            submit_timeout=args.submit_timeout,
            max_concurrency=args.max_concurrency,
            from_block=args.from_block,
            poll_interval=args.poll_interval,
            shutdown_grace=args.shutdown_grace,
            status_host=args.status_host,
            status_port=args.status_port or None,
        )
        asyncio.run(flight_oracle.run(install_signal_handlers=True))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except OracleError as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)
    except Exception:
        logger.exception("Fatal unexpected error")
        sys.exit(1)


if __name__ == "__main__":
    main()

"""Blockunlocker CLI entry point."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

env_file = Path(__file__).parent.parent / ".env"
load_dotenv(env_file)

from blockunlocker import __version__
from blockunlocker.config import get_settings
from blockunlocker.engine import run_unlocker
from blockunlocker.scheduler import create_guard, start_scheduler
from blockunlocker.storage import BlockStore, YamlBackend, atomic_write_yaml, load_status

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)

CONFIG_TEMPLATE = """# Blockunlocker Configuration
# Operational parameters for block confirmation and reward settlement.
# Secrets (LOGFIRE_TOKEN) belong in .env, not here.

unlocker:
  enabled: true
  interval_seconds: 60
  depth: 60
  pool_fee: "1.0"
  pool_fee_address: ""
  call_timeout_seconds: 30
  tick_timeout_seconds: 600
  max_transient_failures: 3

node:
  url: http://127.0.0.1:20206/json_rpc
  timeout_seconds: 10
  max_retries: 3
"""


def _init_logfire() -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        from blockunlocker.observability import initialize_logfire

        initialize_logfire(get_settings())
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize data directory, configuration and an empty block store."""
    data_dir = Path("data").resolve()

    try:
        data_dir.mkdir(exist_ok=True)
        logger.info(f"Created data directory: {data_dir}")

        config_path = data_dir / "config.yaml"
        if not config_path.exists():
            config_path.write_text(CONFIG_TEMPLATE)
            logger.info(f"Created config template: {config_path}")
        else:
            logger.info(f"Config file already exists: {config_path}")

        store_path = data_dir / "blocks.yaml"
        if not store_path.exists():
            atomic_write_yaml(store_path, BlockStore().model_dump(mode="json"))
            logger.info(f"Created empty block store: {store_path}")
        else:
            logger.info(f"Block store already exists: {store_path}")

        print(f"\n✓ Data directory initialized at {data_dir}")
        print("\nNext steps:")
        print("1. Point node.url in data/config.yaml at your daemon's JSON-RPC endpoint")
        print("2. Set unlocker.pool_fee and unlocker.pool_fee_address")
        print("3. Run 'python -m blockunlocker config' to verify configuration")
        print("4. Run 'python -m blockunlocker run' to start unlocking\n")

        return 0

    except Exception as e:
        logger.error(f"Failed to initialize: {e}")
        print(f"\n❌ Initialization failed: {e}\n")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    try:
        settings = get_settings()
        unlocker = settings.unlocker

        print("\n=== Blockunlocker Configuration ===\n")
        print(f"Data Directory: {settings.data_dir}\n")

        print("Unlocker:")
        print(f"  Enabled: {unlocker.enabled}")
        print(f"  Interval: {unlocker.interval_seconds}s")
        print(f"  Depth: {unlocker.depth} blocks")
        print(f"  Pool Fee: {unlocker.pool_fee}%")
        print(f"  Pool Fee Address: {unlocker.pool_fee_address or '(none)'}")
        print(f"  Call Timeout: {unlocker.call_timeout_seconds}s")
        print(f"  Tick Timeout: {unlocker.tick_timeout_seconds}s")
        print(f"  Max Transient Failures: {unlocker.max_transient_failures}\n")

        print("Node:")
        print(f"  URL: {settings.node.url}")
        print(f"  Timeout: {settings.node.timeout_seconds}s")
        print(f"  Max Retries: {settings.node.max_retries}\n")

        print("API Keys:")
        print(f"  Logfire: {'✓ Set' if settings.logfire_token else '✗ Not set'}\n")

        return 0

    except ValidationError as e:
        print("\n❌ Configuration Error:\n")
        for error in e.errors():
            print(f"  • {'.'.join(str(x) for x in error['loc'])}: {error['msg']}")
        print()
        return 1
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        print(f"\n❌ Failed to load configuration: {e}\n")
        return 1


def cmd_status(args: argparse.Namespace) -> int:
    """Display halt state and block store summary."""
    try:
        settings = get_settings()
        status = load_status(settings.state_path)

        print("\n=== Blockunlocker Status ===\n")
        print(f"State: {status.state.value.upper()}")
        if status.halted:
            print(f"  Halted At: {status.halted_at}")
            print(f"  Context: {status.context}")
            print(f"  Error: {status.error_type}: {status.reason}")
            print("  Run 'python -m blockunlocker resume' once the cause is fixed.")
        print(f"  Consecutive Transient Failures: {status.consecutive_transient_failures}\n")

        backend = YamlBackend(settings.store_path)
        counts = backend.counts()
        print("Blocks:")
        for name, count in counts.items():
            print(f"  {name.capitalize()}: {count}")
        print()

        balances = backend.get_balances()
        print(f"Balances: {len(balances)}")
        for login in sorted(balances)[:10]:
            balance = balances[login]
            print(f"  {login}: balance {balance.balance}, immature {balance.immature}")
        if len(balances) > 10:
            print(f"  ... and {len(balances) - 10} more")
        print()

        return 0

    except Exception as e:
        logger.error(f"Failed to read status: {e}")
        print(f"\n❌ Failed to read status: {e}\n")
        return 1


def cmd_resume(args: argparse.Namespace) -> int:
    """Clear a halted unlocker so the next tick runs again."""
    try:
        guard = create_guard(get_settings())
        previous = guard.status()

        if not guard.resume():
            print("\nUnlocker is not halted, nothing to resume.\n")
            return 0

        print(f"\n✓ Unlocker resumed (was halted by {previous.error_type}: {previous.reason})\n")
        return 0

    except Exception as e:
        logger.error(f"Failed to resume: {e}")
        print(f"\n❌ Failed to resume: {e}\n")
        return 1


def cmd_run(args: argparse.Namespace) -> int:
    """Start the block unlocker."""
    try:
        _init_logfire()

        if args.debug:
            logging.getLogger().setLevel(logging.DEBUG)

        settings = get_settings()

        print("\n=== Blockunlocker ===\n")
        print(f"Version: {__version__}")
        print(f"Node: {settings.node.url}")
        print(f"Data Directory: {settings.data_dir}\n")

        if not settings.unlocker.enabled:
            print("Unlocker is disabled in configuration.\n")
            return 0

        guard = create_guard(settings)

        if args.once:
            print("Running one unlock tick...\n")
            asyncio.run(run_unlocker(settings, guard))
            status = guard.status()
            print(f"\nTick complete (state: {status.state.value}).\n")
            return 1 if status.halted else 0

        print("Starting scheduler...\n")
        start_scheduler(settings, guard)

        return 0

    except KeyboardInterrupt:
        print("\n\nReceived interrupt signal. Shutting down...\n")
        return 0
    except Exception as e:
        logger.error(f"Failed to start unlocker: {e}", exc_info=True)
        print(f"\nFailed to start: {e}\n")
        return 1


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Blockunlocker: mining pool block confirmation and reward settlement",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Blockunlocker {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_init = subparsers.add_parser(
        "init",
        help="Initialize data directory, configuration and block store",
    )
    parser_init.set_defaults(func=cmd_init)

    parser_config = subparsers.add_parser(
        "config",
        help="Display merged configuration",
    )
    parser_config.set_defaults(func=cmd_config)

    parser_status = subparsers.add_parser(
        "status",
        help="Display halt state and block store summary",
    )
    parser_status.set_defaults(func=cmd_status)

    parser_resume = subparsers.add_parser(
        "resume",
        help="Resume unlocking after a halt",
    )
    parser_resume.set_defaults(func=cmd_resume)

    parser_run = subparsers.add_parser(
        "run",
        help="Start the block unlocker",
    )
    parser_run.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser_run.add_argument(
        "--once",
        action="store_true",
        help="Run a single unlock tick then exit",
    )
    parser_run.set_defaults(func=cmd_run)

    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

"""Command-line interface for running deployments."""

import argparse
import asyncio
import json
import sys
from typing import Callable

from pydantic import BaseModel

from shipwright.config import settings
from shipwright.core.deployment import DeploymentManager
from shipwright.core.exceptions import ShipwrightError
from shipwright.models.deployment import ENVIRONMENTS, DeploymentConfig, RollbackOptions
from shipwright.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def _print_result(result: BaseModel) -> None:
    print(json.dumps(result.model_dump(mode="json"), indent=2))


def _confirm(prompt: str, input_func: Callable[[str], str] = input) -> bool:
    try:
        response = input_func(prompt)
    except EOFError:
        return False
    return response.strip().lower() == "y"


def build_config(args: argparse.Namespace) -> DeploymentConfig:
    """Deployment options from command-line flags. Unset flags keep environment defaults."""
    return DeploymentConfig(
        environment=args.env,
        dry_run=True if args.dry_run else None,
        skip_migrations=True if args.skip_migrations else None,
        timeout=args.timeout,
        backup_enabled=False if args.no_backup else None,
        auto_rollback=False if args.no_rollback else None,
    )


async def run_deploy(args: argparse.Namespace, input_func: Callable[[str], str] = input) -> int:
    """Run the full pipeline."""
    manager = DeploymentManager(build_config(args))
    config = manager.get_config()

    if config.require_confirmation and not args.yes:
        prompt = f"Deploy to {config.environment}"
        if config.dry_run:
            prompt += " (dry run)"
        if not _confirm(f"{prompt}? (y/N): ", input_func):
            print("Deployment cancelled")
            return 1

    result = await manager.deploy()
    await manager.wait_for_notifications()

    _print_result(result)
    return 0 if result.success else 1


async def run_validate(args: argparse.Namespace) -> int:
    """Run pre-deployment validation only."""
    manager = DeploymentManager(DeploymentConfig(environment=args.env))
    result = await manager.validate_pre_deployment()

    _print_result(result)
    return 0 if result.is_valid else 1


async def run_rollback(args: argparse.Namespace) -> int:
    """Roll back the application, migrations, or data."""
    manager = DeploymentManager(DeploymentConfig(environment=args.env))

    if args.backup_path:
        options = RollbackOptions(restore_backup=True, backup_path=args.backup_path)
    elif args.steps:
        options = RollbackOptions(steps=args.steps)
    else:
        options = None

    result = await manager.rollback(options)

    _print_result(result)
    return 0 if result.success else 1


def run_serve(args: argparse.Namespace) -> int:
    """Serve the monitoring API."""
    import uvicorn

    uvicorn.run(
        "shipwright.main:app",
        host=args.host or settings.api_host,
        port=args.port or settings.api_port,
        reload=args.reload,
    )
    return 0


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer: {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shipwright",
        description="Deploy the application with schema migrations, backups and auto-rollback",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging and tracebacks on errors")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Deploy command
    deploy_parser = subparsers.add_parser("deploy", help="Run the deployment pipeline")
    deploy_parser.add_argument("--env", required=True, choices=ENVIRONMENTS, help="Target environment")
    deploy_parser.add_argument("--dry-run", action="store_true", help="Validate and simulate migrations only")
    deploy_parser.add_argument("--skip-migrations", action="store_true", help="Do not apply migrations")
    deploy_parser.add_argument("--timeout", type=_positive_int, metavar="MS", help="Migration timeout in milliseconds")
    deploy_parser.add_argument("--no-backup", action="store_true", help="Skip the datastore backup")
    deploy_parser.add_argument("--no-rollback", action="store_true", help="Disable auto-rollback")
    deploy_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation")

    # Validate command
    validate_parser = subparsers.add_parser("validate", help="Run pre-deployment checks")
    validate_parser.add_argument("--env", required=True, choices=ENVIRONMENTS, help="Target environment")

    # Rollback command
    rollback_parser = subparsers.add_parser("rollback", help="Roll back a deployment")
    rollback_parser.add_argument("--env", required=True, choices=ENVIRONMENTS, help="Target environment")
    strategy = rollback_parser.add_mutually_exclusive_group()
    strategy.add_argument("--steps", type=_positive_int, metavar="N", help="Revert N migrations")
    strategy.add_argument("--backup-path", help="Restore the datastore from this archive")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the monitoring API")
    serve_parser.add_argument("--host", help="Bind address")
    serve_parser.add_argument("--port", type=int, help="Bind port")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    configure_logging("DEBUG" if args.verbose else None)

    try:
        if args.command == "deploy":
            return asyncio.run(run_deploy(args))
        elif args.command == "validate":
            return asyncio.run(run_validate(args))
        elif args.command == "rollback":
            return asyncio.run(run_rollback(args))
        elif args.command == "serve":
            return run_serve(args)
        else:
            print(f"Unknown command: {args.command}", file=sys.stderr)
            return 1

    except ShipwrightError as e:
        logger.error("cli.command.failed", command=args.command, error=e.message, exc_info=args.verbose)
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

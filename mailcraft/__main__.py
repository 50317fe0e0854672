"""Mailcraft CLI entry point."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

env_file = Path.cwd() / ".env"
load_dotenv(env_file)

from mailcraft import __version__
from mailcraft.config import get_settings
from mailcraft.pipeline import (
    PipelineOptions,
    SpecialistLoadError,
    load_specialists,
    run_pipeline,
    to_generation_response,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)

CONFIG_TEMPLATE = """# Mailcraft Configuration
# Operational parameters for the campaign pipeline.
# Secrets (LOGFIRE_TOKEN) belong in the .env file, not here.

retry:
  max_retries: 2
  retry_delay_ms: 1000
  backoff_ceiling_ms: 10000

pipeline:
  stage_timeout_seconds: 30
  quality_score_threshold: 70
  max_handoff_size_bytes: 10485760  # warn above 10 MB

# Import path ("package.module:attribute") of each stage's specialist.
specialists:
  content: ""
  design: ""
  quality: ""
  delivery: ""
"""


def _init_logfire() -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        from mailcraft.observability import initialize_logfire

        initialize_logfire(get_settings())
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize data directory and configuration file."""
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

        print(f"\n✓ Data directory initialized at {data_dir}")
        print("\nNext steps:")
        print("1. Set the specialist import paths in data/config.yaml")
        print("2. Run 'python -m mailcraft config' to verify configuration")
        print("3. Run 'python -m mailcraft run --brief \"...\"' to generate a campaign\n")

        return 0

    except OSError as e:
        logger.error(f"Failed to initialize: {e}")
        print(f"\n❌ Initialization failed: {e}\n")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    try:
        settings = get_settings()

        print("\n=== Mailcraft Configuration ===\n")
        print(f"Data Directory: {settings.data_dir}\n")

        print("Retry:")
        print(f"  Max Retries: {settings.retry.max_retries}")
        print(f"  Retry Delay: {settings.retry.retry_delay_ms}ms")
        print(f"  Backoff Ceiling: {settings.retry.backoff_ceiling_ms}ms\n")

        print("Pipeline:")
        print(f"  Stage Timeout: {settings.pipeline.stage_timeout_seconds}s")
        print(f"  Quality Threshold: {settings.pipeline.quality_score_threshold}")
        print(f"  Handoff Size Warning: {settings.pipeline.max_handoff_size_bytes / 1024 / 1024:.1f} MB\n")

        print("Specialists:")
        for stage, path in settings.specialists.model_dump().items():
            print(f"  {stage.capitalize()}: {path or '✗ Not set'}")
        print()

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


def cmd_run(args: argparse.Namespace) -> int:
    """Run one campaign through the pipeline and print the response as JSON."""
    _init_logfire()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        settings = get_settings()
        specialists = load_specialists(settings.specialists)
        options = PipelineOptions(
            campaign_type=args.campaign_type,
            tone=args.tone,
            destination=args.destination,
            origin=args.origin,
            max_retries=args.max_retries,
        )
    except ValidationError as e:
        print("\n❌ Configuration Error:\n")
        for error in e.errors():
            print(f"  • {'.'.join(str(x) for x in error['loc'])}: {error['msg']}")
        print()
        return 1
    except SpecialistLoadError as e:
        logger.error(str(e))
        print(f"\n❌ {e}\n")
        return 1
    except yaml.YAMLError as e:
        logger.error(f"Failed to load config: {e}")
        print(f"\n❌ Failed to load configuration: {e}\n")
        return 1

    try:
        result = asyncio.run(run_pipeline(args.brief, specialists, options, settings=settings))
    except KeyboardInterrupt:
        print("\n\nReceived interrupt signal. Shutting down...\n")
        return 1

    response = to_generation_response(result, settings.pipeline.quality_score_threshold)
    print(response.model_dump_json(indent=2))
    return 0 if result.success else 1


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Mailcraft: staged email campaign generation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Mailcraft {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_init = subparsers.add_parser(
        "init",
        help="Initialize data directory and configuration file",
    )
    parser_init.set_defaults(func=cmd_init)

    parser_config = subparsers.add_parser(
        "config",
        help="Display merged configuration",
    )
    parser_config.set_defaults(func=cmd_config)

    parser_run = subparsers.add_parser(
        "run",
        help="Generate one campaign (Content -> Design -> Quality -> Delivery)",
    )
    parser_run.add_argument(
        "--brief",
        required=True,
        help="Free-text campaign brief",
    )
    parser_run.add_argument(
        "--campaign-type",
        default=None,
        help="promotional, informational, seasonal, urgent or newsletter",
    )
    parser_run.add_argument(
        "--tone",
        default=None,
        help="Tone of voice (e.g. friendly, professional, luxury)",
    )
    parser_run.add_argument("--destination", default=None, help="Destination city")
    parser_run.add_argument("--origin", default=None, help="Origin city")
    parser_run.add_argument(
        "--max-retries",
        type=int,
        default=None,
        help="Override the configured retry count for this run",
    )
    parser_run.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser_run.set_defaults(func=cmd_run)

    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

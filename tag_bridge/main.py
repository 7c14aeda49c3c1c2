"""
Main entry point for the Player Tag Bridge.
"""

import argparse
import json
import sys
from typing import List, Optional
from .processor import QueueDrainer, ProcessorError
from .proxy import GeminiProxy, ProxyError
from .tag_validator import TagValidator
from .config import settings
from .logging import setup_logging, get_logger


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Player Tag Bridge - drain the player tag queue with a local vision model"
    )

    parser.add_argument(
        "--test-connection",
        action="store_true",
        help="Test connection to the queue API and exit"
    )

    parser.add_argument(
        "--check-tag",
        metavar="TEXT",
        help="Validate TEXT as if it were a vision model answer and exit"
    )

    parser.add_argument(
        "--generate",
        metavar="FILE",
        nargs="?",
        const="-",
        help="Answer a Gemini request read from FILE (or stdin) and print the Gemini response"
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override log level from configuration"
    )

    return parser.parse_args(argv)


def run_check_tag(text: str) -> int:
    """Print the validator outcome for a piece of model output."""
    logger = get_logger("main")
    extraction = TagValidator().validate(text)

    if extraction.found:
        logger.info(f"✅ Found tag: {extraction.tag}")
        print(extraction.tag)
        return 0

    detail = f" (candidate {extraction.candidate})" if extraction.candidate else ""
    logger.info(f"❌ No tag found: {extraction.reason}{detail}")
    return 1


def run_generate(source: str) -> int:
    """Answer a single Gemini request from a file or stdin."""
    logger = get_logger("main")

    try:
        if source == "-":
            gemini_request = json.load(sys.stdin)
        else:
            with open(source, "r", encoding="utf-8") as f:
                gemini_request = json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"❌ Could not read Gemini request: {e}")
        return 1

    proxy = GeminiProxy()
    try:
        response = proxy.generate(gemini_request)
    except ProxyError as e:
        logger.error(f"❌ Proxy error: {e}")
        return 1
    finally:
        proxy.close()

    print(json.dumps(response, ensure_ascii=False))
    return 0


def run_drain(test_connection: bool = False) -> int:
    """Drain the queue once, or just check the connection."""
    logger = get_logger("main")

    missing = settings.get_missing_worker_settings()
    if missing:
        logger.error(f"❌ Missing required configuration: {', '.join(missing)}")
        return 1

    logger.info("🚀 Starting queue worker")
    logger.info(f"   Remote API: {settings.remote_api_url}")
    logger.info(f"   Inference endpoint: {settings.inference_endpoint}")

    with QueueDrainer() as drainer:
        if test_connection:
            logger.info("🔍 Testing connection to the queue API")
            return 0 if drainer.test_connection() else 1

        try:
            drainer.run()
        except ProcessorError as e:
            logger.error(f"❌ Processor error: {e}")
            return 1

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)
    setup_logging(args.log_level)
    logger = get_logger("main")

    try:
        if args.check_tag is not None:
            return run_check_tag(args.check_tag)

        if args.generate is not None:
            return run_generate(args.generate)

        return run_drain(test_connection=args.test_connection)

    except KeyboardInterrupt:
        logger.info("⏹️  Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
WhatsApp Lead Agent - Main Entry Point
======================================

This is the main entry point for the WhatsApp Lead Agent.
It provides a command-line interface for running the web API
and for account and rule maintenance.

Usage:
    python main.py --web                          # Start web API
    python main.py --status                       # Check system status
    python main.py --setup                        # Create default configuration
    python main.py --create-account EMAIL         # Create an account
    python main.py --test MESSAGE --account ID    # Evaluate a message
    python main.py --help                         # Show help
"""

import sys
import argparse
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from core.config import load_config, create_default_config, Config
from core.database import init_database
from core.logging import setup_logging, get_logger
from core.exceptions import LeadAgentError

logger = get_logger("main")


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="WhatsApp Lead Agent - lead capture, campaigns and keyword auto-replies",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --web                            Start web API on default port
  python main.py --web --port 9000                Start web API on port 9000
  python main.py --create-account me@example.com  Create an account and print its API key
  python main.py --test "Hi there" wpforms --account jane-3f9a1c
  python main.py --send +15551234567 "Hello"      Send a WhatsApp message
  python main.py --run-campaign spring-sale-3f9a --account jane-3f9a1c
  python main.py --status                         Check system status
        """
    )

    # Mode selection (mutually exclusive)
    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--web",
        action="store_true",
        help="Start web API server"
    )
    mode_group.add_argument(
        "--status",
        action="store_true",
        help="Check system status"
    )
    mode_group.add_argument(
        "--setup",
        action="store_true",
        help="Create default configuration"
    )
    mode_group.add_argument(
        "--create-account",
        type=str,
        metavar="EMAIL",
        help="Create an account and print its API key"
    )
    mode_group.add_argument(
        "--test",
        nargs="+",
        metavar=("MESSAGE", "PLATFORM"),
        help="Evaluate a message against an account's rules (usage: --test 'Hi' [PLATFORM])"
    )
    mode_group.add_argument(
        "--send",
        nargs=2,
        metavar=("NUMBER", "MESSAGE"),
        help="Send a WhatsApp message (usage: --send +1234567890 'Hello')"
    )
    mode_group.add_argument(
        "--run-campaign",
        type=str,
        metavar="CAMPAIGN_ID",
        help="Send a campaign to its leads"
    )

    # Optional arguments
    parser.add_argument(
        "--account",
        type=str,
        metavar="UNIQUE_ID",
        help="Account for --test and --run-campaign"
    )
    parser.add_argument(
        "--package",
        type=str,
        help="Package for --create-account"
    )
    parser.add_argument(
        "--config",
        type=str,
        metavar="PATH",
        help="Path to configuration file"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for web API (default: from config, 8080)"
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host for web API (default: from config, 127.0.0.1)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode"
    )

    return parser.parse_args(argv)


def check_dependencies() -> bool:
    """
    Check if all required dependencies are installed.

    Returns:
        True if all dependencies are available
    """
    missing = []

    try:
        import yaml  # noqa: F401
    except ImportError:
        missing.append("pyyaml")

    try:
        import fastapi  # noqa: F401
    except ImportError:
        missing.append("fastapi")

    try:
        import uvicorn  # noqa: F401
    except ImportError:
        missing.append("uvicorn")

    try:
        import httpx  # noqa: F401
    except ImportError:
        missing.append("httpx")

    if missing:
        print(f"Missing dependencies: {', '.join(missing)}")
        print("Install with: pip install " + " ".join(missing))
        return False

    return True


def run_setup() -> None:
    """Create the default configuration."""
    print("\n" + "=" * 50)
    print("WhatsApp Lead Agent Setup")
    print("=" * 50 + "\n")

    config = create_default_config()

    print(f"✓ Configuration written to {config.config_dir}/config.yaml")
    print(f"  Data directory: {config.data_dir}")
    print("\nWhatsApp credentials are read from the environment or")
    print(f"{config.config_dir}/.env:")
    print("  WHATSAPP_PHONE_NUMBER_ID=...")
    print("  WHATSAPP_ACCESS_TOKEN=...")
    print("\nNext steps:")
    print("  python main.py --create-account you@example.com")
    print("  python main.py --web")


def run_status_check(config: Config) -> None:
    """Check and display system status."""
    print("\n" + "=" * 50)
    print("WhatsApp Lead Agent - System Status")
    print("=" * 50 + "\n")

    database = init_database(config.db_path)

    print("WhatsApp Business API")
    print("-" * 30)
    if config.whatsapp.is_configured:
        print("  Credentials: ✓ Configured")
        print(f"  API Version: {config.whatsapp.api_version}")
    else:
        print("  Credentials: ✗ Not Set")
        print("  Note: set WHATSAPP_PHONE_NUMBER_ID and WHATSAPP_ACCESS_TOKEN")

    print("\nDatabase")
    print("-" * 30)
    stats = database.get_statistics()
    print(f"  Accounts: {stats.get('accounts', 0)}")
    print(f"  Leads: {stats.get('leads', 0)}")
    print(f"  Campaigns: {stats['campaigns']['completed']} completed, {stats['campaigns']['pending']} pending")
    for direction, counts in stats.get("messages", {}).items():
        print(f"  Messages ({direction}): {sum(counts.values())}")

    print("\nChatbot")
    print("-" * 30)
    print(f"  Case Sensitive: {'Yes' if config.chatbot.case_sensitive else 'No'}")
    print(f"  Minimum Delay: {config.chatbot.min_delay_seconds}s ({config.chatbot.delay_policy})")
    print(f"  Admins: {len(config.auth.admin_emails)}")

    print("\n" + "=" * 50 + "\n")


def run_create_account(config: Config, email: str, package=None) -> None:
    """Create an account and print its API key."""
    from services.account_service import AccountService

    database = init_database(config.db_path)
    accounts = AccountService(database, config.chatbot.auto_reply_default)
    account, api_key = accounts.create(email, package=package)

    print(f"\n✓ Account created for {account['email']}")
    print(f"  Unique ID: {account['unique_id']}")
    print(f"  API Key:   {api_key}")
    print("  Store the API key now; it cannot be shown again.")


def run_test_message(config: Config, unique_id: str, message: str, platform: str) -> None:
    """Evaluate a message against an account's effective tactic."""
    from rules.models import InboundMessage
    from services.auto_reply import AutoReplyService
    from services.reply_scheduler import ReplyScheduler

    database = init_database(config.db_path)
    service = AutoReplyService.from_config(config.chatbot, database, ReplyScheduler())

    print(f"\nTest Message: {message}")
    print(f"Platform: {platform}")
    print("-" * 50)

    result = service.test_message(
        unique_id,
        InboundMessage(body=message, platform=platform, sender_phone="+10000000000")
    )

    if result.matched:
        print(f"  Matched rule #{result.index} ({result.rule.to_dict()['type']} '{result.rule.search_term}')")
        print(f"  Reply: {result.rule.reply_text}")
        print(f"  Delay: {result.delay_seconds}s")
    else:
        print(f"  No match ({result.reason.value})")

    for warning in result.warnings:
        print(f"  ⚠ Rule {warning.index}: {warning.code.value} {warning.detail}")


def run_send(config: Config, phone_number: str, message: str) -> None:
    """Send a WhatsApp message."""
    from services.whatsapp_client import create_whatsapp_service

    print(f"\nSending WhatsApp message to {phone_number}...")
    print(f"Message: {message}")
    print("-" * 50)

    service = create_whatsapp_service(config)
    try:
        response = service.send_message(phone_number, message)
    finally:
        service.close()

    ids = [m.get("id") for m in response.get("messages", [])]
    print(f"✓ Message sent {', '.join(filter(None, ids))}")


def run_campaign(config: Config, unique_id: str, campaign_id: str) -> None:
    """Send a campaign to its leads."""
    from services.account_service import AccountService
    from services.campaign_service import CampaignService, MediaStorage
    from services.whatsapp_client import create_whatsapp_service

    database = init_database(config.db_path)
    account = AccountService(database).get(unique_id)
    sender = create_whatsapp_service(config)
    storage = MediaStorage(config.media_dir, config.campaign.public_base_url)

    try:
        result = CampaignService(database, storage, sender, config.campaign.time_zone).run(account, campaign_id)
    finally:
        sender.close()

    print(f"\n✓ Campaign {campaign_id}: {result.sent} sent, {len(result.failed)} failed")
    for failure in result.failed:
        print(f"  ✗ {failure['lead']}: {failure['error']}")


def run_web_ui(config: Config, host: str, port: int, debug: bool) -> None:
    """Run the web API server."""
    from ui.web.app import run_app

    print(f"\nStarting Web API on http://{host}:{port}")
    print("Press Ctrl+C to stop\n")

    run_app(host=host, port=port, debug=debug, config=config)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    if not check_dependencies():
        return 1

    try:
        if args.setup:
            run_setup()
            return 0

        config = load_config(args.config)

        if args.debug:
            config.debug = True

        setup_logging(
            log_dir=config.log_dir,
            log_level="DEBUG" if args.debug else "INFO",
            console_output=True
        )

        if (args.test or args.run_campaign) and not args.account:
            print("Error: --account UNIQUE_ID is required")
            return 2

        # Route to appropriate mode
        if args.web:
            run_web_ui(
                config,
                args.host or config.ui.web_host,
                args.port or config.ui.web_port,
                args.debug or config.ui.web_debug
            )
        elif args.status:
            run_status_check(config)
        elif args.create_account:
            run_create_account(config, args.create_account, args.package)
        elif args.test:
            platform = args.test[1] if len(args.test) > 1 else config.chatbot.default_platform
            run_test_message(config, args.account, args.test[0], platform)
        elif args.send:
            run_send(config, args.send[0], args.send[1])
        elif args.run_campaign:
            run_campaign(config, args.account, args.run_campaign)
        else:
            run_status_check(config)
            print("No mode specified. Use --web or --help")

        return 0

    except LeadAgentError as e:
        print(f"\nError: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 0
    except Exception as e:
        print(f"\nUnexpected error: {e}")
        if args.debug:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())

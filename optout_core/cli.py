#!/usr/bin/env python3
"""
optout - remove your personal information from data broker websites

    optout                       # interactive: profile, broker picker, confirm
    optout --broker Spokeo --yes
    optout --all --dry-run       # exercise the workflow without a browser
"""
import argparse
import asyncio
import dataclasses
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from optout_logs import create_run_logger

from .config import config as default_config
from .diagnostics import get_logger, set_debug
from .error_handler import should_retry_error
from .exceptions import SetupError
from .models import USER_FIELDS, BrokerDefinition, RemovalResult, RemovalSession, UserProfile, validate_user_field
from .session import run_session, summarize
from .stores import BrokerCatalog, UserStore

logger = get_logger(__name__)

PROMPTS = {
    "first_name": "First Name",
    "last_name": "Last Name",
    "email": "Email Address",
    "address": "Street Address",
    "city": "City",
    "state": "State (2-letter code)",
    "zip": "ZIP Code",
    "phone": "Phone Number",
    "date_of_birth": "Date of Birth (YYYY-MM-DD)",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="optout",
        description="Remove your personal information from data broker websites",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--brokers", help="Broker catalog JSON (default: %(default)s)",
                        default=str(default_config.brokers_file))
    parser.add_argument("--user", help="Saved user profile JSON (default: %(default)s)",
                        default=str(default_config.user_file))
    parser.add_argument("--session", help="Session log JSON (default: %(default)s)",
                        default=str(default_config.session_file))
    parser.add_argument("--evidence-dir", help="Screenshot directory (default: %(default)s)",
                        default=str(default_config.screenshot_dir))
    target = parser.add_mutually_exclusive_group()
    target.add_argument("--broker", metavar="NAME", help="Process a single broker by name")
    target.add_argument("--all", action="store_true", help="Process every broker without the picker")
    parser.add_argument("--yes", "-y", action="store_true", help="Skip the confirmation prompt")
    parser.add_argument("--new-profile", action="store_true", help="Ignore the saved profile and prompt again")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument("--dry-run", action="store_true", help="Run the workflow against scripted pages")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    return parser


def ask(question: str, default: str = "") -> str:
    suffix = f" [{default}]" if default else ""
    answer = input(f"{question}{suffix}: ").strip()
    return answer or default


def ask_yes_no(question: str, default: bool = False) -> bool:
    hint = "Y/n" if default else "y/N"
    while True:
        answer = input(f"{question} ({hint}): ").strip().lower()
        if not answer:
            return default
        if answer in ("y", "yes"):
            return True
        if answer in ("n", "no"):
            return False
        print("Please answer y or n")


def collect_user_info() -> UserProfile:
    """Prompt for every profile field, re-asking until each one validates."""
    print("Let's collect your information to remove your data from brokers.\n")
    values = {}
    for name in USER_FIELDS:
        while True:
            value = ask(PROMPTS[name])
            if name == "state":
                value = value.upper()
            problem = validate_user_field(name, value)
            if problem is None:
                values[name] = value
                break
            print(f"  {problem}")
    notes = ask("Additional Notes (optional)")
    user = UserProfile(additional_notes=notes or None, **values)
    print("\n✅ User information collected successfully!")
    return user


def pick_brokers(brokers: Sequence[BrokerDefinition]) -> List[BrokerDefinition]:
    print("\nSelect a broker to process:\n")
    print("  0) Run all brokers")
    for i, broker in enumerate(brokers, 1):
        print(f"  {i}) {broker.name} - {broker.opt_out_url}")
    while True:
        answer = ask("\nChoice", "0")
        if answer.isdigit() and 0 <= int(answer) <= len(brokers):
            index = int(answer)
            return list(brokers) if index == 0 else [brokers[index - 1]]
        print(f"Please enter a number between 0 and {len(brokers)}")


def confirm_removal(user: UserProfile, broker_count: int) -> bool:
    print("\n📋 Summary:")
    print(f"Name: {user.full_name}")
    print(f"Email: {user.email}")
    print(f"Address: {user.full_address}")
    print(f"Phone: {user.phone}")
    print(f"Date of Birth: {user.date_of_birth}")
    print(f"\nBrokers to process: {broker_count}")
    return ask_yes_no("Proceed with data removal?", default=False)


def resolve_user(store: UserStore, new_profile: bool, assume_yes: bool) -> UserProfile:
    user = None if new_profile else store.load()
    if user is not None:
        print(f"Found saved profile for {user.full_name}.")
        if assume_yes or ask_yes_no("Use existing user data?", default=True):
            return user
    user = collect_user_info()
    try:
        store.save(user)
        print(f"💾 User data saved to {store.path}")
    except OSError as e:
        logger.error(f"Failed to save user data: {e}")
    return user


def select_brokers(brokers: Sequence[BrokerDefinition], name: Optional[str], run_all: bool) -> List[BrokerDefinition]:
    if name:
        for broker in brokers:
            if broker.name.lower() == name.lower():
                return [broker]
        raise SetupError(f"Unknown broker: {name}. Available: {', '.join(b.name for b in brokers)}")
    if run_all:
        return list(brokers)
    return pick_brokers(brokers)


def print_result(result: RemovalResult) -> None:
    if result.success:
        print(f"✅ Successfully removed from {result.broker.name}")
    else:
        print(f"❌ Failed to remove from {result.broker.name}: {result.reason}")


def print_report(session: RemovalSession, session_path: Path) -> None:
    summary = summarize(session)
    print("\n📊 Removal Session Complete")
    print(f"Total brokers processed: {summary['total']}")
    print(f"✅ Successful removals: {summary['successful']}")
    print(f"❌ Failed removals: {summary['failed']}")
    print(f"⏱️  Duration: {round(summary['duration_s'])} seconds")
    print(f"💾 Session results saved to {session_path}")

    if session.failed:
        print("\n❌ Failed removals:")
        for result, failure in zip(session.failed, summary["failures"]):
            print(f"  • {result.broker.name}: {result.reason} [{failure['category']}]")
            print(f"    💡 {failure['suggestion']}")
            if result.diagnosis and result.diagnosis.confidence:
                print(f"    🤖 {result.diagnosis.suggested_fix} ({result.diagnosis.confidence}/10)")
        retry = [r.broker.name for r in session.failed if should_retry_error(r.reason)]
        if retry:
            print(f"\n🔁 Worth another run: {', '.join(retry)}")
    if session.successful:
        print("\n✅ Successful removals:")
        for result in session.successful:
            print(f"  • {result.broker.name}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.debug:
        set_debug(True)

    cfg = dataclasses.replace(
        default_config,
        brokers_file=Path(args.brokers),
        user_file=Path(args.user),
        session_file=Path(args.session),
        screenshot_dir=Path(args.evidence_dir),
        enable_debug=default_config.enable_debug or args.debug,
    )

    print("🔒 Data Broker Removal Tool")
    print("This tool will help you remove your personal information from data broker websites.\n")

    try:
        brokers = BrokerCatalog(cfg.brokers_file).load()
        print(f"📋 Loaded {len(brokers)} data brokers")
        user = resolve_user(UserStore(cfg.user_file), args.new_profile, args.yes)
        selected = select_brokers(brokers, args.broker, args.all)
        if not args.yes and not confirm_removal(user, len(selected)):
            print("Operation cancelled.")
            return 0
    except SetupError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    except (KeyboardInterrupt, EOFError):
        print("\nOperation cancelled.")
        return 0

    run_logger = create_run_logger(
        brokers=[b.name for b in selected],
        user_name=user.full_name,
        command_line="optout " + " ".join(argv if argv is not None else sys.argv[1:]),
        log_dir=str(cfg.log_dir),
    )
    print("\n🚀 Starting removal process...")
    print("This may take several minutes. Please be patient.\n")
    try:
        session = asyncio.run(run_session(
            user,
            selected,
            cfg,
            headless=False if args.headed else None,
            dry_run=args.dry_run,
            run_logger=run_logger,
            on_result=print_result,
        ))
    except SetupError as e:
        print(f"❌ Failed to initialize removal engine: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print(f"\nInterrupted. Completed brokers are saved in {cfg.session_file}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception(f"Unhandled error: {e}")
        return 1

    print_report(session, cfg.session_file)
    print(f"📝 Run log: {run_logger.log_path}")
    print("\n🎉 Removal process complete!")
    return 0


if __name__ == "__main__":
    sys.exit(main())

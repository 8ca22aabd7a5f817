#!/usr/bin/env python3
"""
Veritas account tool - Main Entry Point

Command-line front-end for the Veritas account subsystem: sign-up and
sign-in, credential rotation, preferences, account deletion, and data
export/import.

Usage:
    python main.py signin                 # Sign in (prompts for credentials)
    python main.py export --out ~/backup  # Export all your data as JSON
    python main.py import backup.json     # Add cases from an export file
"""

import argparse
import getpass
import logging
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

import config
from account.context import AccountContext
from account.errors import AccountError, ValidationError
from account.models import NotificationSettings
from store.base import StoreError

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format=config.LOG_FORMAT
)
logger = logging.getLogger(__name__)

# Suppress noisy third-party library logs (HTTP requests, etc.)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("hpack").setLevel(logging.WARNING)


def _prompt_email(args) -> str:
    return args.email or input("Email: ").strip()


def cmd_signup(ctx: AccountContext, args) -> None:
    email = _prompt_email(args)
    password = getpass.getpass("Password: ")
    ctx.sessions.sign_up(email, password)
    print(f"✓ Check {email} for a confirmation link to finish creating your account.")


def cmd_signin(ctx: AccountContext, args) -> None:
    email = _prompt_email(args)
    password = getpass.getpass("Password: ")
    session = ctx.sessions.sign_in(email, password)
    print(f"✓ Signed in as {session.principal.email}")


def cmd_signout(ctx: AccountContext, args) -> None:
    ctx.sessions.sign_out()
    print("✓ Signed out")


def cmd_whoami(ctx: AccountContext, args) -> None:
    principal = ctx.sessions.principal
    if principal is None:
        print("Not signed in")
        return
    print(f"{principal.email} ({principal.id})")


def cmd_set_email(ctx: AccountContext, args) -> None:
    ctx.sessions.update_email(args.new_email)
    print(f"✓ Email updated to {args.new_email}")


def cmd_set_password(ctx: AccountContext, args) -> None:
    new_password = getpass.getpass("New password: ")
    confirm = getpass.getpass("Confirm new password: ")
    ctx.sessions.update_password(new_password, confirm)
    print("✓ Password updated")


def cmd_delete_account(ctx: AccountContext, args) -> None:
    ctx.require_principal()
    print("This permanently deletes your account and all associated data.")
    typed = input(f"Type {config.DELETE_CONFIRMATION} to confirm: ").strip()
    if typed != config.DELETE_CONFIRMATION:
        raise ValidationError(f"Please type {config.DELETE_CONFIRMATION} to confirm")
    ctx.sessions.delete_account()
    print("✓ Account deleted")


def cmd_theme(ctx: AccountContext, args) -> None:
    principal = ctx.sessions.principal
    if args.theme is None:
        print(ctx.preferences.load_theme(principal))
    elif args.theme == "toggle":
        print(ctx.preferences.toggle_theme(principal))
    else:
        print(ctx.preferences.set_theme(principal, args.theme))


def cmd_notifications(ctx: AccountContext, args) -> None:
    principal = ctx.require_principal()
    settings = ctx.preferences.load_notifications(principal)
    changed = False
    if args.email is not None:
        settings.email_notifications = args.email == "on"
        changed = True
    if args.sms is not None:
        settings.sms_notifications = args.sms == "on"
        changed = True
    if args.frequency is not None:
        settings.notification_frequency = args.frequency
        changed = True
    if changed:
        ctx.preferences.save_notifications(principal, settings)
        print("✓ Notification preferences updated")
    _print_notifications(settings)


def _print_notifications(settings: NotificationSettings) -> None:
    print(f"  Email notifications: {'on' if settings.email_notifications else 'off'}")
    print(f"  SMS notifications:   {'on' if settings.sms_notifications else 'off'}")
    print(f"  Frequency:           {settings.notification_frequency}")


def cmd_profile(ctx: AccountContext, args) -> None:
    principal = ctx.require_principal()
    anonymous = None if args.anonymous is None else args.anonymous == "on"
    if args.full_name is not None or args.phone is not None or anonymous is not None:
        ctx.provisioner.update_profile(principal, args.full_name, args.phone, anonymous)
        print("✓ Profile updated")
    profile = ctx.provisioner.get_profile(principal)
    if profile is None:
        print("No profile yet")
        return
    print(f"  Email:          {profile.email}")
    print(f"  Full name:      {profile.full_name or '-'}")
    print(f"  Phone:          {profile.phone or '-'}")
    print(f"  Anonymous mode: {'on' if profile.anonymous_mode else 'off'}")


def cmd_export(ctx: AccountContext, args) -> None:
    principal = ctx.require_principal()
    path = ctx.portability.export_to_file(principal, args.out)
    print(f"✓ Data exported to {path}")
    print("  Export files contain sensitive information - store them securely.")


def cmd_import(ctx: AccountContext, args) -> None:
    principal = ctx.require_principal()
    count = ctx.portability.import_file(principal, args.file)
    print(f"✓ Successfully imported {count} case(s)!")
    print("  Existing cases were not modified. Evidence files are not re-imported.")


COMMANDS: Dict[str, Callable[[AccountContext, argparse.Namespace], None]] = {
    "signup": cmd_signup,
    "signin": cmd_signin,
    "signout": cmd_signout,
    "whoami": cmd_whoami,
    "set-email": cmd_set_email,
    "set-password": cmd_set_password,
    "delete-account": cmd_delete_account,
    "theme": cmd_theme,
    "notifications": cmd_notifications,
    "profile": cmd_profile,
    "export": cmd_export,
    "import": cmd_import,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Veritas - account and data management",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py signin --email me@example.com
  python main.py theme toggle
  python main.py export --out ~/Downloads
        """
    )
    sub = parser.add_subparsers(dest="command", required=True)

    for name in ("signup", "signin"):
        p = sub.add_parser(name)
        p.add_argument("--email", help="Account email (prompted if omitted)")
    sub.add_parser("signout")
    sub.add_parser("whoami")

    p = sub.add_parser("set-email")
    p.add_argument("new_email")
    sub.add_parser("set-password")
    sub.add_parser("delete-account")

    p = sub.add_parser("theme")
    p.add_argument("theme", nargs="?", choices=list(config.THEMES) + ["toggle"])

    p = sub.add_parser("notifications")
    p.add_argument("--email", choices=["on", "off"])
    p.add_argument("--sms", choices=["on", "off"])
    p.add_argument("--frequency", choices=list(config.NOTIFICATION_FREQUENCIES))

    p = sub.add_parser("profile")
    p.add_argument("--full-name", dest="full_name")
    p.add_argument("--phone")
    p.add_argument("--anonymous", choices=["on", "off"])

    p = sub.add_parser("export")
    p.add_argument("--out", type=Path, help="Directory for the export file")

    p = sub.add_parser("import")
    p.add_argument("file", type=Path)

    return parser


def run(argv: Optional[List[str]] = None, ctx: Optional[AccountContext] = None) -> int:
    """
    Parse arguments and run one command.

    Args:
        argv: Argument list (defaults to sys.argv[1:]).
        ctx: Pre-built context (tests inject one backed by a fake store).

    Returns:
        Process exit code.
    """
    args = build_parser().parse_args(argv)

    try:
        context = ctx or AccountContext.from_config()
    except StoreError as e:
        print(f"\n❌ {e}")
        return 1
    except Exception as e:
        logger.error(f"Could not connect to Supabase: {e}")
        print(f"\n❌ Could not connect: {e}")
        return 1

    context.init()
    try:
        COMMANDS[args.command](context, args)
        return 0
    except AccountError as e:
        print(f"\n❌ {e}")
        return 1
    finally:
        context.teardown()


def main():
    """Main entry point."""
    try:
        sys.exit(run())
    except KeyboardInterrupt:
        print("\n\nGoodbye!")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        print(f"\nFatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

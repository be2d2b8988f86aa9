#!/usr/bin/env python3
"""AgentDuty - notifications between AI agents and humans.

Entry point for the CLI application.
"""

import argparse
import json
import logging
import re
import sys
import time
import webbrowser
from datetime import datetime, timedelta, timezone
from functools import partial
from pathlib import Path
from typing import Optional

from .errors import AgentDutyError

logger = logging.getLogger(__name__)

SESSION_START_INSTRUCTIONS = """AgentDuty is installed. Use it to communicate with the user:

- Send a message: agentduty notify -m "your message"
- Send with options: agentduty notify -m "question?" -o "Yes" -o "No"
- Wait for response: agentduty notify -m "question?" --wait
- Poll for response: agentduty poll <ID> --wait --timeout 30m
- Acknowledge a message: agentduty react <shortCode>
- View history: agentduty history

IMPORTANT: When having a conversation through AgentDuty, always maintain a background poll so you can receive replies. After sending a notification, immediately start a background poll. Never let a poll lapse without starting a new one.

IMPORTANT: Keep messages concise. Chat clients fold long messages at ~700 characters, so be direct and prefer short bullet points.
"""

# Pending notifications older than this do not block the agent from stopping
STOP_HOOK_WINDOW = timedelta(hours=1)

WEB_BASE_URL = "https://www.agentduty.dev"

# Slack link codes expire after this long; connection is re-checked every few seconds
SLACK_LINK_TIMEOUT = 15 * 60
SLACK_CHECK_INTERVAL = 3.0

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")


def parse_duration(value: str) -> float:
    """Parse "30m", "90s", "1h30m" or a bare number of seconds into seconds."""
    value = value.strip()
    try:
        return float(value)
    except ValueError:
        pass
    parts = _DURATION_PART.findall(value)
    if not parts or "".join(n + u for n, u in parts) != value:
        raise argparse.ArgumentTypeError(f"invalid duration: {value!r}")
    scale = {"h": 3600, "m": 60, "s": 1, "ms": 0.001}
    return sum(float(n) * scale[u] for n, u in parts)


def _load_config(args):
    from .config import load_config

    return load_config(api_url=args.api_url)


def _make_client(args):
    """Build the API client, persisting refreshed tokens back to config."""
    from .client import AgentDutyClient
    from .config import save_tokens

    cfg = _load_config(args)

    def on_token_refresh(access_token: str, refresh_token: str):
        save_tokens(access_token, refresh_token, cfg.path)

    return AgentDutyClient(
        cfg.api_url,
        token=cfg.token,
        refresh_token=cfg.refresh_token,
        on_token_refresh=on_token_refresh,
    )


def _workspace_context(workspace: Optional[str] = None):
    """Resolve (workspace, store) for this invocation."""
    from .identity import resolve_workspace
    from .state import workspace_store

    root = resolve_workspace(Path(workspace) if workspace else None)
    return root, workspace_store(root)


def _wait_for_response(client, notification_id: str, timeout: float, as_json: bool) -> int:
    from .identity import session_key
    from .poll import Poller, print_delivered

    workspace, store = _workspace_context()
    poller = Poller(
        client,
        store,
        session_key(workspace, store),
        emit=partial(print_delivered, as_json=as_json),
    )
    return poller.poll_for_response(notification_id, timeout)


def cmd_notify(args):
    """Send a notification, optionally waiting for the reply."""
    from .identity import session_key
    from .output import print_json, print_notification_created

    message = args.message
    if args.stdin:
        message = sys.stdin.read().rstrip("\n")
    if not message:
        raise AgentDutyError("message is required (use -m or --stdin)")

    workspace, store = _workspace_context(args.workspace)
    session = args.session or session_key(workspace, store)

    context = {}
    for pair in args.context or []:
        key, sep, value = pair.partition(":")
        if sep:
            context[key] = value

    client = _make_client(args)
    n = client.create_notification(
        message=message,
        priority=args.priority,
        session_key=session,
        workspace=str(workspace),
        options=args.options,
        context=json.dumps(context) if context else None,
        tags=args.tags,
    )
    logger.info(f"Created notification {n.short_code} in session {session}")

    if not args.wait:
        if args.json:
            print_json(n)
        else:
            print_notification_created(n)
        return 0

    return _wait_for_response(client, n.id, args.timeout, args.json)


def cmd_poll(args):
    """Show a notification, or wait for new responses with --wait."""
    from .output import print_json, print_notification

    client = _make_client(args)
    if args.wait:
        return _wait_for_response(client, args.id, args.timeout, args.json)

    n = client.fetch_notification(args.id)
    if args.json:
        print_json(n)
    else:
        print_notification(n)
    return 0


def cmd_respond(args):
    """Respond to a notification."""
    from .output import print_json, print_notification

    client = _make_client(args)
    n = client.submit_response(args.id, text=args.message, selected_option=args.option or None)
    if args.json:
        print_json(n)
    else:
        print_notification(n)
    return 0


def cmd_archive(args):
    """Archive a notification."""
    from .output import print_json, truncate

    client = _make_client(args)
    n = client.archive(args.id)
    if args.json:
        print_json(n)
    else:
        print(f"Archived: {n.short_code} (P{n.priority}) {truncate(n.message, 50)}")
    return 0


def cmd_status(args):
    """List active notifications."""
    from .output import print_json, print_notifications

    client = _make_client(args)
    notifications = client.list_notifications()
    if args.json:
        print_json(notifications)
    else:
        print_notifications(notifications)
    return 0


def cmd_history(args):
    """Show the conversation for the current session."""
    from .identity import session_key
    from .output import print_json, print_session_history

    workspace, store = _workspace_context(args.workspace)
    session = args.session or session_key(workspace, store)

    client = _make_client(args)
    history = client.fetch_session(session)
    if history is None:
        print('No session found. Send a notification first with: agentduty notify -m "your message"')
        return 0
    if args.json:
        print_json(history)
    else:
        print_session_history(history)
    return 0


def cmd_react(args):
    """Add an emoji reaction to a notification."""
    client = _make_client(args)
    client.add_reaction(args.id, args.emoji, args.response)
    if args.json:
        print(json.dumps({"ok": True}))
    else:
        print(f"Reacted with :{args.emoji}: on {args.id}")
    return 0


def cmd_feed(args):
    """Launch the live feed TUI."""
    from .app import FeedApp

    with _make_client(args) as client:
        FeedApp(client).run()
    return 0


def pending_for_stop(history, now: Optional[datetime] = None) -> list:
    """Notifications still awaiting a reply that are recent enough to matter."""
    from .models import AWAITING_STATUSES

    now = now or datetime.now(timezone.utc)
    cutoff = now - STOP_HOOK_WINDOW
    pending = []
    for n in history.notifications:
        if n.status not in AWAITING_STATUSES:
            continue
        created = n.created_time
        if created is None or created < cutoff:
            continue
        pending.append(n)
    return pending


def cmd_hook_stop(args, client=None):
    """Block the agent from stopping while replies are pending and nobody is polling."""
    from .identity import session_key
    from .state import PollLock

    workspace, store = _workspace_context()
    session = session_key(workspace, store)

    # A poller is already listening, let the agent stop
    if PollLock(store, session).is_active():
        return 0

    client = client or _make_client(args)
    try:
        history = client.fetch_session(session)
    except AgentDutyError as e:
        # Never block the agent because the API is unreachable
        logger.info(f"Stop hook approving after error: {e}")
        return 0
    if history is None:
        return 0

    pending = pending_for_stop(history)
    if not pending:
        return 0

    latest = pending[-1]
    reason = (
        f"You have {len(pending)} pending AgentDuty notification(s) awaiting response. "
        "Start a background poll before stopping so you don't lose contact:\n"
        f"  agentduty poll {latest.id} --wait --timeout 30m\n"
        "Run this in the background, then you can continue working."
    )
    print(json.dumps({"decision": "block", "reason": reason}))
    return 0


def cmd_hook_session_start(args):
    """Pin an instance session for this workspace and print usage instructions."""
    from .identity import ensure_instance_session

    workspace, store = _workspace_context()
    ensure_instance_session(workspace, store)
    print(SESSION_START_INSTRUCTIONS, end="")
    return 0


def cmd_logout(args):
    """Clear stored credentials."""
    from .config import save_tokens

    cfg = _load_config(args)
    save_tokens("", "", cfg.path)
    print("Logged out successfully.")
    return 0


def cmd_apikey_create(args):
    """Create an API key, optionally replacing the stored credentials with it."""
    from .config import save_tokens
    from .output import print_api_key_created, print_json

    cfg = _load_config(args)
    client = _make_client(args)
    key = client.create_api_key(args.name or "cli")
    if args.json:
        print_json(key)
    else:
        print_api_key_created(key)

    if args.save:
        # API keys do not use refresh tokens
        save_tokens(key.key, "", cfg.path)
        if not args.json:
            print()
            print("Saved to config. Future commands will use this key.")
    return 0


def cmd_apikey_list(args):
    """List API keys on the account."""
    from .output import print_api_keys, print_json

    keys = _make_client(args).list_api_keys()
    if args.json:
        print_json(keys)
    else:
        print_api_keys(keys)
    return 0


def cmd_apikey_revoke(args):
    """Revoke an API key by id."""
    revoked = _make_client(args).revoke_api_key(args.id)
    if args.json:
        print(json.dumps({"revoked": revoked}))
    else:
        print("API key revoked." if revoked else "API key not found.")
    return 0


def cmd_connect(args, sleep=time.sleep, clock=time.monotonic, open_url=webbrowser.open):
    """Link an external channel to the account."""
    if args.service != "slack":
        raise AgentDutyError(f"unknown service: {args.service} (supported: slack)")

    client = _make_client(args)
    if client.slack_connected():
        print("Your Slack account is already connected.")
        return 0

    code = client.generate_slack_link_code()
    try:
        user_id = client.current_user_id()
    except AgentDutyError as e:
        logger.debug(f"Could not look up user id: {e}")
        user_id = ""
    install_url = f"{WEB_BASE_URL}/auth/slack/install?user_id={user_id}"

    print("Step 1: Install the AgentDuty Slack app in your workspace")
    print("  (skip if already installed)")
    print()
    print(f"  {install_url}")
    print()
    open_url(install_url)

    print("Step 2: DM this code to the AgentDuty bot in Slack:")
    print()
    print(f"  {code}")
    print()
    print(f"The code expires in {int(SLACK_LINK_TIMEOUT // 60)} minutes.")
    print("Waiting for you to link your account...")
    sys.stdout.flush()

    deadline = clock() + SLACK_LINK_TIMEOUT
    while clock() < deadline:
        sleep(SLACK_CHECK_INTERVAL)
        try:
            connected = client.slack_connected()
        except AgentDutyError as e:
            logger.debug(f"Connection check failed: {e}")
            continue
        if connected:
            print("Connected! You'll now receive notifications via Slack DM.")
            return 0

    print("Link code expired. Run 'agentduty connect slack' again.", file=sys.stderr)
    return 1


def build_parser() -> argparse.ArgumentParser:
    from .config import DEFAULT_API_URL

    parser = argparse.ArgumentParser(
        description="Notifications between AI agents and humans",
        prog="agentduty",
    )
    parser.add_argument("--version", "-v", action="store_true", help="Show version")
    parser.add_argument("--api-url", help=f"API endpoint URL (default {DEFAULT_API_URL})")
    parser.add_argument("--json", action="store_true", help="Output as JSON")
    parser.add_argument("--verbose", action="store_true", help="Debug logging on stderr")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    notify_parser = subparsers.add_parser("notify", help="Send a notification")
    notify_parser.add_argument("--message", "-m", default="", help="Notification message")
    notify_parser.add_argument("--priority", "-p", type=int, default=3, choices=range(1, 6), help="Priority level (1-5)")
    notify_parser.add_argument("--options", "-o", action="append", help="Response option (repeatable)")
    notify_parser.add_argument("--context", "-c", action="append", help="Context key:value pair (repeatable)")
    notify_parser.add_argument("--tags", "-t", type=lambda s: [t for t in s.split(",") if t], help="Comma-separated tags")
    notify_parser.add_argument("--session", "-s", help="Session key (derived from workspace if empty)")
    notify_parser.add_argument("--workspace", "-w", help="Workspace path (default: git root or CWD)")
    notify_parser.add_argument("--wait", action="store_true", help="Wait for response")
    notify_parser.add_argument("--timeout", type=parse_duration, default=30 * 60, help="Timeout when waiting (e.g. 30m)")
    notify_parser.add_argument("--stdin", action="store_true", help="Read message from stdin")

    poll_parser = subparsers.add_parser("poll", help="Poll a notification for responses")
    poll_parser.add_argument("id", help="Notification ID")
    poll_parser.add_argument("--wait", action="store_true", help="Wait for response")
    poll_parser.add_argument("--timeout", type=parse_duration, default=30 * 60, help="Timeout when waiting (e.g. 30m)")

    respond_parser = subparsers.add_parser("respond", help="Respond to a notification")
    respond_parser.add_argument("id", help="Notification ID")
    respond_parser.add_argument("--message", "-m", required=True, help="Response text")
    respond_parser.add_argument("--option", default="", help="Selected option")

    archive_parser = subparsers.add_parser("archive", help="Archive a notification")
    archive_parser.add_argument("id", help="Notification ID")

    subparsers.add_parser("status", help="List active notifications")

    history_parser = subparsers.add_parser("history", help="Show conversation history for the current session")
    history_parser.add_argument("--session", "-s", help="Session key (derived from workspace if empty)")
    history_parser.add_argument("--workspace", "-w", help="Workspace path (default: git root or CWD)")

    react_parser = subparsers.add_parser("react", help="Add an emoji reaction to a notification")
    react_parser.add_argument("id", help="Notification ID or short code")
    react_parser.add_argument("--emoji", "-e", default="thumbsup", help="Emoji name (without colons)")
    react_parser.add_argument("--response", "-r", type=int, default=0, help="1-based response index (default: latest)")

    subparsers.add_parser("feed", help="Live feed of pending notifications")

    hook_parser = subparsers.add_parser("hook", help="Agent hook handlers")
    hook_subparsers = hook_parser.add_subparsers(dest="hook_command")
    hook_subparsers.add_parser("stop", help="Block stopping while notifications are pending")
    hook_subparsers.add_parser("session-start", help="Pin the session and print usage instructions")

    subparsers.add_parser("logout", help="Clear stored authentication")

    apikey_parser = subparsers.add_parser("apikey", aliases=["key", "keys"], help="Manage API keys")
    apikey_parser.set_defaults(command="apikey")
    apikey_subparsers = apikey_parser.add_subparsers(dest="apikey_command")
    apikey_create = apikey_subparsers.add_parser("create", help="Create a new API key")
    apikey_create.add_argument("--name", "-n", default="", help="Name for the API key (default: cli)")
    apikey_create.add_argument("--save", action="store_true", help="Save the key to config (replaces current auth)")
    apikey_subparsers.add_parser("list", help="List API keys")
    apikey_revoke = apikey_subparsers.add_parser("revoke", help="Revoke an API key")
    apikey_revoke.add_argument("id", help="API key ID")

    connect_parser = subparsers.add_parser("connect", help="Connect an external service to your account")
    connect_parser.add_argument("service", help="Service to connect (slack)")

    return parser


COMMANDS = {
    "notify": cmd_notify,
    "poll": cmd_poll,
    "respond": cmd_respond,
    "archive": cmd_archive,
    "status": cmd_status,
    "history": cmd_history,
    "react": cmd_react,
    "feed": cmd_feed,
    "logout": cmd_logout,
    "connect": cmd_connect,
}

HOOK_COMMANDS = {
    "stop": cmd_hook_stop,
    "session-start": cmd_hook_session_start,
}

APIKEY_COMMANDS = {
    "create": cmd_apikey_create,
    "list": cmd_apikey_list,
    "revoke": cmd_apikey_revoke,
}


def main(argv: Optional[list[str]] = None):
    """Main entry point for the agentduty CLI."""
    from .config import ConfigError
    from .output import print_error

    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.version:
        from . import __version__
        print(f"agentduty {__version__}")
        return

    if args.command == "hook":
        handler = HOOK_COMMANDS.get(args.hook_command)
    elif args.command == "apikey":
        handler = APIKEY_COMMANDS.get(args.apikey_command)
    else:
        handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    try:
        code = handler(args)
    except ConfigError as e:
        print_error(f"load config: {e}")
        sys.exit(1)
    except AgentDutyError as e:
        print_error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)

    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()

from __future__ import annotations

import argparse
import logging
import sys

from dotenv import load_dotenv

from askline.config import ClientConfig
from askline.errors import AsklineError, ConfigError
from askline.service import ConversationService, build_service
from common.events import TokenReceived


def main() -> int:
    load_dotenv()
    return _main(sys.argv[1:])


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="askline", description="Askline - streaming answers")
    parser.add_argument("--data-dir", default=None, help="Where sessions and conversations are kept")
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("login", help="Create a fresh session")
    subparsers.add_parser("logout", help="Forget the stored session")

    ask = subparsers.add_parser("ask", help="Ask a question and stream the answer")
    ask.add_argument("question")
    ask.add_argument("--conversation", "-c", default=None, help="Continue an existing conversation")
    ask.add_argument("--no-jitter", action="store_true", help="Skip the pre-request delay")

    new = subparsers.add_parser("new", help="Start an empty conversation")
    new.add_argument("--title", default=None)

    subparsers.add_parser("list", help="List conversations, most recent first")

    show = subparsers.add_parser("show", help="Print a conversation")
    show.add_argument("conversation_id")

    delete = subparsers.add_parser("delete", help="Delete a conversation")
    delete.add_argument("conversation_id")

    subparsers.add_parser("clear", help="Delete every conversation")
    return parser


def _main(argv: list[str], service: ConversationService | None = None) -> int:
    args = _build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if service is None:
        try:
            config = ClientConfig.from_env()
            if args.data_dir:
                config.data_dir = args.data_dir
            if getattr(args, "no_jitter", False):
                config.without_jitter()
            service = build_service(config)
        except ConfigError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    handlers = {
        "login": _cmd_login,
        "logout": _cmd_logout,
        "ask": _cmd_ask,
        "new": _cmd_new,
        "list": _cmd_list,
        "show": _cmd_show,
        "delete": _cmd_delete,
        "clear": _cmd_clear,
    }
    try:
        service.initialize()
        return handlers[args.command](service, args)
    except AsklineError as e:
        print(f"\nError: {e}", file=sys.stderr)
        return 1
    finally:
        service.close()


def _cmd_login(service: ConversationService, args) -> int:
    if service.authenticate():
        print("Logged in.")
        return 0
    print("Error: could not create a session", file=sys.stderr)
    return 1


def _cmd_logout(service: ConversationService, args) -> int:
    service.logout()
    print("Logged out.")
    return 0


def _cmd_ask(service: ConversationService, args) -> int:
    if not service.is_authenticated and not service.authenticate():
        print("Error: could not create a session", file=sys.stderr)
        return 1

    def on_token(event: TokenReceived) -> None:
        sys.stdout.write(event.token)
        sys.stdout.flush()

    unsubscribe = service.subscribe(on_token, TokenReceived)
    try:
        message_id = service.send_message(args.question, args.conversation)
    except KeyboardInterrupt:
        service.cancel()
        print("\nCancelled.", file=sys.stderr)
        return 130
    finally:
        unsubscribe()
    print()

    for conversation in service.get_conversations():
        reply = next((m for m in conversation.messages if m.reply_to == message_id), None)
        if reply is None:
            continue
        slug = reply.response.thread_url_slug if reply.response else ""
        print(f"[conversation {conversation.id}]" + (f" thread: {slug}" if slug else ""))
        break
    return 0


def _cmd_new(service: ConversationService, args) -> int:
    conversation = service.create_conversation(args.title)
    print(conversation.id)
    return 0


def _cmd_list(service: ConversationService, args) -> int:
    conversations = service.get_conversations()
    if not conversations:
        print("No conversations.")
        return 0
    for c in conversations:
        stamp = c.updated_at.strftime("%Y-%m-%d %H:%M")
        print(f"{c.id}  {stamp}  ({len(c.messages)} messages)  {c.title}")
    return 0


def _cmd_show(service: ConversationService, args) -> int:
    conversation = service.get_conversation(args.conversation_id)
    if conversation is None:
        print(f"Error: Conversation {args.conversation_id} not found", file=sys.stderr)
        return 1
    print(f"# {conversation.title}\n")
    for message in conversation.messages:
        speaker = "You" if message.is_user else "Answer"
        print(f"{speaker}: {message.content}\n")
    return 0


def _cmd_delete(service: ConversationService, args) -> int:
    service.delete_conversation(args.conversation_id)
    return 0


def _cmd_clear(service: ConversationService, args) -> int:
    service.clear_conversations()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

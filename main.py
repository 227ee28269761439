#!/usr/bin/env python3
"""Persona Chat Assistant CLI."""

import argparse
import logging
import sys
from typing import Optional

from config.settings import Settings
from exceptions import ChatServiceError
from orchestrator import ResponseOrchestrator
from schemas.context import Persona

REPL_HELP = """Commands:
  /persona <caring|strict|fun>  switch persona
  /context                      show the conversation summary
  /history                      show the conversation history
  /phrases                      show example questions
  /quit                         exit"""


def run_command(orchestrator: ResponseOrchestrator, session_id: str, line: str) -> bool:
    """Handle a slash command. Returns False when the REPL should stop."""
    command, _, argument = line[1:].partition(" ")
    argument = argument.strip()

    if command in ("quit", "exit"):
        return False

    if command == "persona":
        try:
            persona = Persona(argument)
        except ValueError:
            print(f"Unknown persona: {argument!r}. Choose caring, strict or fun.")
            return True
        result = orchestrator.switch_persona(session_id, persona)
        print(f"\nかあちゃん> {result.greeting}\n")
    elif command == "context":
        context = orchestrator.get_context(session_id)
        print(context.model_dump_json(indent=2) if context else "No context yet.")
    elif command == "history":
        for message in orchestrator.get_history(session_id) or []:
            print(f"[{message.role.value}] {message.content}")
    elif command == "phrases":
        session = orchestrator.get_or_create_session(session_id)
        for phrase in orchestrator.prompt_builder.get_quick_phrases(session.persona):
            print(f"- {phrase}")
    else:
        print(REPL_HELP)
    return True


def chat_loop(orchestrator: ResponseOrchestrator, session_id: str):
    """Interactive chat until EOF or /quit."""
    print(REPL_HELP + "\n")
    while True:
        try:
            line = input("あなた> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            return

        if not line:
            continue
        if line.startswith("/"):
            if not run_command(orchestrator, session_id, line):
                return
            continue

        try:
            result = orchestrator.generate_response(session_id, line)
            print(f"\nかあちゃん> {result.content}\n")
        except ChatServiceError as e:
            print(f"エラー: {e.user_message}", file=sys.stderr)


def main(argv: Optional[list] = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Persona Chat Assistant - a mother-style AI companion"
    )
    parser.add_argument(
        "--persona",
        "-p",
        type=str,
        choices=[persona.value for persona in Persona],
        help="Assistant persona (default: caring; a resumed session keeps its own)"
    )
    parser.add_argument(
        "--name",
        type=str,
        help="Your name, used by the assistant to address you"
    )
    parser.add_argument(
        "--session-id",
        type=str,
        help="Resume an existing session"
    )
    parser.add_argument(
        "--message",
        "-m",
        type=str,
        help="Send one message and exit instead of starting a chat"
    )
    parser.add_argument(
        "--provider",
        type=str,
        choices=["gemini", "openai", "anthropic"],
        default="gemini",
        help="LLM provider (default: gemini)"
    )
    parser.add_argument(
        "--db-path",
        type=str,
        default="data/sessions.db",
        help="SQLite file for sessions (default: data/sessions.db)"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    settings = Settings(
        llm_provider=args.provider,
        db_path=args.db_path,
        default_persona=args.persona or "caring",
        verbose=args.verbose,
    )
    orchestrator = ResponseOrchestrator(settings=settings)

    try:
        if args.session_id:
            session = orchestrator.get_or_create_session(args.session_id)
            if args.persona and session.persona != Persona(args.persona):
                orchestrator.switch_persona(session.session_id, Persona(args.persona))
        else:
            session = orchestrator.start_session(Persona(settings.default_persona), args.name)
            print(f"Session: {session.session_id}")
            print(f"\nかあちゃん> {session.messages[-1].content}\n")

        if args.message:
            result = orchestrator.generate_response(session.session_id, args.message)
            print(result.content)
        else:
            chat_loop(orchestrator, session.session_id)
    except ChatServiceError as e:
        print(f"エラー: {e.user_message}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)
    finally:
        orchestrator.close()


if __name__ == "__main__":
    main()

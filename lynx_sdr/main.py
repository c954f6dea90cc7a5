"""CLI entry point for the Lynx SDR agent.

A terminal chat interface for testing and development.  For production,
use the FastAPI server (``lynx_sdr/server.py``).

Usage:
    python -m lynx_sdr.main            # normal mode (quiet)
    python -m lynx_sdr.main --debug    # debug mode (shows API calls)
"""

from __future__ import annotations

import argparse
import logging

from dotenv import load_dotenv

from lynx_sdr.errors import AppError, ErrorKind
from lynx_sdr.orchestrator import create_orchestrator

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """WARNING by default, DEBUG when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("lynx_sdr").setLevel(logging.DEBUG if debug else logging.INFO)


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Lynx SDR agent CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    print("\n" + "=" * 60)
    print("  Lynx SDR - CLI Chat")
    print("=" * 60)
    print("  Digite sua mensagem e pressione Enter.")
    print("  Comandos: 'sair' para encerrar, 'nova' para nova sessão.")
    print("=" * 60 + "\n")

    orchestrator = create_orchestrator()
    started = orchestrator.start_session()
    session_id = started.session_id
    logger.info("Started new session: %s", session_id)
    print(f"SDR: {started.message}\n")

    while True:
        try:
            user_input = input("Você: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nAté logo!")
            break

        if not user_input:
            continue

        if user_input.lower() in ("sair", "exit", "quit", "q"):
            print("\nAté logo!")
            break

        if user_input.lower() in ("nova", "new"):
            started = orchestrator.start_session()
            session_id = started.session_id
            print(f"\n>> Nova sessão: {session_id[:8]}...\n")
            print(f"SDR: {started.message}\n")
            continue

        try:
            result = orchestrator.handle_turn(session_id, user_input)
            session_id = result.session_id
            print(f"\nSDR: {result.message}\n")
        except KeyboardInterrupt:
            print("\n\nAté logo!")
            break
        except AppError as exc:
            if exc.kind is ErrorKind.INTEGRATION:
                logger.error("Turn failed: %s", exc)
                print("\nSDR: Tive um problema para falar com um serviço externo. Tente novamente.\n")
            else:
                print(f"\nSDR: {exc.message}")
                print("     Digite 'nova' para começar outra conversa.\n")
        except Exception:
            logger.exception("Error processing message")
            print("\nSDR: Desculpe, algo deu errado. Tente novamente ou digite 'nova'.\n")


if __name__ == "__main__":
    main()

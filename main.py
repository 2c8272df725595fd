"""
English Partner - terminal front-end

Commands:
    python main.py chat [--conversation ID]   converse with the AI partner
    python main.py quiz [TOPIC]               take a quiz on a grammar weakness
    python main.py dashboard                  list quizzes and conversations

Ensure .env contains:
    OPENAI_API_KEY=sk-...
    FIREBASE_CREDENTIALS_PATH=./service-account.json   # optional, else local mode
"""

import argparse
import os
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from english_partner.app import PartnerApp, build_app
from english_partner.conversation import ConversationSession
from english_partner.errors import GENERIC_ERROR_NOTICE, PartnerError
from english_partner.logger import logger
from english_partner.models import ROLE_ASSISTANT, Quiz, QuizScore
from english_partner.quiz import score_quiz

DEFAULT_USER_ID = os.getenv("PARTNER_USER_ID", "default_user")
EXIT_WORDS = ("/quit", "/exit")

console = Console()


def render_message(session: ConversationSession, index: int) -> None:
    message = session.messages[index]
    if message.role == ROLE_ASSISTANT:
        console.print(f"[bold cyan]AI:[/bold cyan] {message.content}")
        return
    console.print(f"[bold green]ME:[/bold green] {message.content}")
    correction = session.correction_for(message.message_id)
    if correction is not None:
        console.print(Panel(
            f"[red]{correction.original}[/red]\n[green]{correction.corrected}[/green]",
            title=correction.focus, border_style="yellow",
        ))


def run_chat(session: ConversationSession) -> None:
    console.print(Panel(
        "[bold]Conversation[/bold]\n[dim]Practice your English with our AI language partner. "
        "Type /quit to leave.[/dim]",
        title="English Practice", border_style="blue",
    ))
    for index in range(len(session.messages)):
        render_message(session, index)

    while True:
        text = Prompt.ask("[bold green]>[/bold green]")
        if text.strip().lower() in EXIT_WORDS:
            return
        if not session.can_send(text):
            continue

        with console.status("Waiting for response..."):
            result = session.send(text)

        if result is None:
            console.print(f"[red]{session.notice or GENERIC_ERROR_NOTICE}[/red]")
            continue
        render_message(session, len(session.messages) - 2)
        render_message(session, len(session.messages) - 1)


def run_quiz(quiz: Quiz) -> QuizScore:
    """Ask every question, then score the answers locally."""
    console.print(f"\n[bold]Quiz: {quiz.topic}[/bold] - {len(quiz.questions)} questions\n")
    letters = "abcd"
    selections = {}
    for number, question in enumerate(quiz.questions, 1):
        console.print(f"[bold]Q{number}.[/bold] {question.text}")
        for letter, answer in zip(letters, question.answers):
            console.print(f"  [cyan]{letter})[/cyan] {answer.text}")
        choice = Prompt.ask("Your answer", choices=list(letters[:len(question.answers)]))
        selections[question.question_id] = question.answers[letters.index(choice)].answer_id
        console.print()

    score = score_quiz(quiz, selections)
    console.print(Panel(f"{score.correct}/{score.total} correct ({score.percent}%)",
                        title="Result", border_style="green"))
    return score


def show_dashboard(app: PartnerApp, user_id: str) -> None:
    quizzes = app.store.list_quizzes(user_id)
    table = Table(title="Quizzes")
    table.add_column("Topic")
    table.add_column("Questions", justify="right")
    table.add_column("ID", style="dim")
    for quiz in quizzes:
        table.add_row(quiz.topic, str(len(quiz.questions)), quiz.quiz_id)
    console.print(table)

    conversations = app.store.list_conversations(user_id)
    table = Table(title="Conversations")
    table.add_column("Title")
    table.add_column("Started")
    table.add_column("ID", style="dim")
    for conversation in conversations:
        table.add_row(conversation.title, conversation.created_at[:16], conversation.conversation_id)
    console.print(table)

    topics = app.quizzes.suggest_topics(user_id)
    if topics:
        console.print("[bold]Suggested quiz topics:[/bold] " + ", ".join(topics))


def pick_topic(app: PartnerApp, user_id: str, topic: Optional[str]) -> Optional[str]:
    if topic:
        return topic
    topics = app.quizzes.suggest_topics(user_id)
    if not topics:
        console.print("[yellow]No grammar weaknesses recorded yet. Chat first![/yellow]")
        return None
    return Prompt.ask("Topic", choices=topics, default=topics[0])


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Practice English with an AI partner.")
    parser.add_argument("--user", default=DEFAULT_USER_ID, help="User id to act as")
    commands = parser.add_subparsers(dest="command", required=True)

    chat = commands.add_parser("chat", help="Converse with the AI partner")
    chat.add_argument("--conversation", default=None, help="Resume an existing conversation")

    quiz = commands.add_parser("quiz", help="Take a quiz on a grammar topic")
    quiz.add_argument("topic", nargs="?", default=None, help="Topic (default: pick from weaknesses)")

    commands.add_parser("dashboard", help="List quizzes and conversations")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logger.banner("English Partner")
    try:
        app = build_app()
    except PartnerError:
        logger.error("Startup failed", exc_info=True)
        console.print(f"[red]{GENERIC_ERROR_NOTICE}[/red]")
        return

    try:
        if args.command == "chat":
            if args.conversation:
                session = app.open_conversation(args.user, args.conversation)
            else:
                session = app.start_conversation(args.user)
            run_chat(session)
        elif args.command == "quiz":
            topic = pick_topic(app, args.user, args.topic)
            if topic:
                with console.status("Preparing quiz..."):
                    quiz = app.quizzes.get_or_create_quiz(args.user, topic)
                run_quiz(quiz)
        elif args.command == "dashboard":
            show_dashboard(app, args.user)
    except PartnerError:
        logger.error(f"{args.command} failed", exc_info=True)
        console.print(f"[red]{GENERIC_ERROR_NOTICE}[/red]")
    finally:
        app.close()


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""Interactive CLI for the feedback insights service.

This allows users to:
1. Enter feedback directly in the terminal and see its labels
2. Print the dashboard statistics and AI summary
3. Run the daily analysis on demand and read the text report
"""
import asyncio
import logging
import sys
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import box
from rich.prompt import Prompt

from aggregator import aggregate
from classifier import FeedbackClassifier
from config import config
from database import FeedbackFilters, init_db, get_db_session, list_feedback
from ingestion import ingest_feedback
from insights import InsightComposer
from orchestrator import DailyAnalysisOrchestrator, generate_text_report
from schemas import IngestRequest
from scheduler import trigger_daily_analysis

logging.basicConfig(
    level=logging.WARNING,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

console = Console()

PRIORITY_STYLES = {"P0": "bold red", "P1": "red", "P2": "yellow", "P3": "green"}


class InteractiveFeedbackConsole:
    """Interactive feedback console."""

    def __init__(self, source: str = "cli"):
        """Initialize the console services."""
        self.source = source
        self.classifier = FeedbackClassifier(config)
        self.composer = InsightComposer(config)
        self.orchestrator = DailyAnalysisOrchestrator(config)

    async def submit_feedback(self, feedback_text: str):
        """Classify and store one feedback item.

        Returns:
            Stored record and the classifier labels
        """
        request = IngestRequest(source=self.source, raw_text=feedback_text)
        async with get_db_session() as db:
            return await ingest_feedback(db, request, self.classifier)

    def display_record(self, record, labels):
        """Display the stored labels in a table."""
        table = Table(
            title="📊 Feedback Labels",
            box=box.ROUNDED,
            show_header=True,
            header_style="bold magenta"
        )

        table.add_column("Attribute", style="cyan", width=20)
        table.add_column("Value", style="green")

        priority_style = PRIORITY_STYLES.get(record.priority, "white")
        table.add_row("ID", record.id)
        table.add_row("Sentiment", record.sentiment or "-")
        table.add_row("Priority", f"[{priority_style}]{record.priority or '-'}[/{priority_style}]")
        table.add_row("Category", record.category or "-")
        table.add_row("Summary", record.summary or "-")
        table.add_row("Reason", record.priority_reason or "-")
        table.add_row("Processing Method", labels.method)

        console.print(table)

        if record.priority in ("P0", "P1"):
            console.print(Panel(
                f"[bold red]{record.priority} feedback[/bold red] will be listed as an "
                "urgent item in the next daily analysis.",
                title="⚠️ Urgent",
                border_style="bold red",
                box=box.DOUBLE
            ))

    async def show_stats(self):
        """Print dashboard statistics and the AI summary."""
        async with get_db_session() as db:
            records = await list_feedback(db, FeedbackFilters(limit=config.STATS_RECORD_LIMIT))
        stats = aggregate(records)

        table = Table(title="📈 Dashboard Statistics", box=box.ROUNDED, header_style="bold magenta")
        table.add_column("Metric", style="cyan")
        table.add_column("Counts", style="green")
        table.add_row("Total", str(stats.total))
        table.add_row("Last 7 days", str(stats.last_7_days))
        for label, counts in (
            ("By priority", stats.by_priority),
            ("By sentiment", stats.by_sentiment),
            ("By category", stats.by_category),
        ):
            table.add_row(label, ", ".join(f"{k}: {v}" for k, v in sorted(counts.items())) or "-")
        table.add_row("Top words", ", ".join(f"{w.word} ({w.count})" for w in stats.top_words[:10]) or "-")
        console.print(table)

        narrative = await self.composer.compose(stats, "all feedback")
        if narrative:
            console.print(Panel(narrative, title="🤖 AI Summary", border_style="blue", padding=(1, 2)))

    async def run_daily_analysis(self):
        """Run today's analysis unless it already ran."""
        report = await trigger_daily_analysis(self.orchestrator)
        if report is None:
            console.print("[yellow]Today's analysis already ran or failed; see the logs.[/yellow]")
            return

        console.print(generate_text_report(report.result))
        delivered = {True: "delivered", False: "not delivered", None: "skipped"}[report.delivered]
        console.print(f"[dim]Slack: {delivered} · log entry: {report.log_id}[/dim]")

    def display_welcome(self):
        """Display welcome message."""
        welcome = f"""
[bold cyan]Feedback Insights[/bold cyan]
[dim]Interactive CLI Mode[/dim]

Type feedback to label and store it, or a command:
  [green]:stats[/green]  dashboard statistics and AI summary
  [green]:run[/green]    run today's daily analysis
  [green]quit[/green]    exit

Classifier mode: [bold]{self.classifier.mode}[/bold]
        """

        panel = Panel(
            welcome,
            border_style="bold blue",
            box=box.DOUBLE,
            padding=(1, 2)
        )

        console.print(panel)
        console.print()

    async def run_interactive(self):
        """Run the interactive CLI loop."""
        self.display_welcome()

        while True:
            console.print()
            feedback_text = Prompt.ask("Your feedback")

            if feedback_text.lower() in ['quit', 'exit', 'q']:
                console.print("\n[cyan]Goodbye![/cyan]\n")
                break

            if not feedback_text.strip():
                console.print("[red]⚠️  Feedback cannot be empty[/red]")
                continue

            if feedback_text.strip() == ":stats":
                await self.show_stats()
                continue

            if feedback_text.strip() == ":run":
                await self.run_daily_analysis()
                continue

            try:
                record, labels = await self.submit_feedback(feedback_text)
            except Exception as e:
                console.print(f"\n[yellow]⚠️  Could not save to database: {e}[/yellow]")
                continue

            self.display_record(record, labels)


async def main():
    """Main entry point."""
    console.print("[cyan]Initializing database...[/cyan]")
    await init_db()

    system = InteractiveFeedbackConsole()

    try:
        await system.run_interactive()
    except KeyboardInterrupt:
        console.print("\n\n[cyan] Goodbye![/cyan]\n")
        sys.exit(0)


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()

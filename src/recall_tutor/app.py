"""Interactive CLI application."""
import argparse
import asyncio
import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import IntPrompt, Prompt
from rich.table import Table

from recall_tutor.attachments import describe_media, read_attachment, read_pdf
from recall_tutor.clock import local_now
from recall_tutor.db import DEFAULT_DB_PATH, init_db
from recall_tutor.editor import ItemEditEngine
from recall_tutor.errors import RecallError
from recall_tutor.library import LibraryEngine, LibraryFilter
from recall_tutor.notifier import LocalNotifier, ReminderPlanner
from recall_tutor.practice import PracticeEngine, PracticeMode
from recall_tutor.repository import ItemRepository
from recall_tutor.review_queue import QueueState, ReviewQueueEngine
from recall_tutor.seed import seed_samples
from recall_tutor.settings import get_flag, set_reminder_time
from recall_tutor.sm2 import QualityRating
from recall_tutor.stats import StatsMonitor, history_summary, interval_label

console = Console()
logger = logging.getLogger(__name__)

QUALITY_CHOICES = [str(q.value) for q in QualityRating]


class SessionExitRequested(Exception):
    """User typed q/menu during a session prompt."""


async def ask(prompt: str, **kwargs) -> str:
    """Prompt in a worker thread so the event loop keeps delivering feed updates."""
    return await asyncio.to_thread(Prompt.ask, prompt, **kwargs)


async def ask_int(prompt: str, **kwargs) -> int:
    return await asyncio.to_thread(IntPrompt.ask, prompt, **kwargs)


async def session_prompt(prompt: str, **kwargs) -> str:
    answer = await ask(prompt, **kwargs)
    if answer.strip().lower() in ("q", "menu"):
        raise SessionExitRequested()
    return answer


async def session_int_prompt(prompt: str, choices: list[str]) -> int:
    answer = await session_prompt(prompt, choices=choices + ["q"])
    return int(answer)


def show_welcome():
    console.print(Panel(
        "[bold]Recall Tutor[/bold]\n[dim]Spaced repetition for your own notes[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu(due_count: int):
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("review", f"Review due items ({due_count} due)"),
        ("practice", "Practice without affecting the schedule"),
        ("add", "Add a study item"),
        ("library", "Browse and search items"),
        ("edit", "Edit an item"),
        ("delete", "Delete an item"),
        ("stats", "Progress and upcoming reviews"),
        ("reminders", "Review reminders"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def show_rating_help():
    for q in QualityRating:
        console.print(f"  [cyan]{q.value}[/cyan] {q.title:<13} [dim]{q.description}[/dim]")


def item_panel(item, title: str, answer: bool = False) -> Panel:
    text = item.body if answer else f"[bold]{item.title}[/bold]"
    extras = []
    if item.tags and not answer:
        extras.append("[dim]" + ", ".join(item.tags) + "[/dim]")
    if answer and item.has_media:
        extras.append(f"[dim]{describe_media(item)} attached[/dim]")
    return Panel("\n".join([text] + extras), title=title, border_style="green" if answer else "cyan")


async def submit_rating(session, quality: int) -> bool:
    """Rate and save, offering retries while the write keeps failing."""
    try:
        await session.rate(quality)
        return True
    except RecallError as exc:
        error = exc
    while True:
        console.print(f"[red]{error}[/red]")
        if await ask("Retry saving?", choices=["y", "n"], default="y") != "y":
            return False
        try:
            await session.retry()
            return True
        except RecallError as exc:
            error = exc


async def run_review_queue(repository, clock=local_now) -> int:
    """Review every due item in turn. Returns how many were graded."""
    queue = ReviewQueueEngine(repository, clock=clock)
    await queue.open()
    reviewed = 0
    try:
        if queue.state is QueueState.EMPTY:
            console.print("[yellow]Nothing is due right now![/yellow]")
            return 0
        console.print(f"\n[bold]Review Session[/bold]: {queue.due_count} items due\n")
        show_rating_help()
        while queue.current_item is not None:
            session = queue.start_next()
            position = f"Item {queue.cursor + 1}/{queue.due_count}"
            console.print(item_panel(session.item, position))
            try:
                await session_prompt("[dim]Press Enter to reveal answer[/dim]", default="")
            except SessionExitRequested:
                queue.cancel_review()
                raise
            session.reveal()
            console.print(item_panel(session.item, "Answer", answer=True))
            try:
                quality = await session_int_prompt(
                    "Rate yourself (0=forgot, 3=hard, 4=good, 5=easy)", choices=QUALITY_CHOICES,
                )
            except SessionExitRequested:
                queue.cancel_review()
                raise
            if not await submit_rating(session, quality):
                break
            reviewed += 1
            updated = session.updated_item
            console.print(f"[dim]Next review in {updated.interval} day(s)[/dim]\n")
    except SessionExitRequested:
        console.print("[dim]Review stopped.[/dim]")
    finally:
        queue.close()
    console.print(f"[green]Reviewed {reviewed} item(s).[/green]")
    return reviewed


async def run_practice(repository, mode: PracticeMode, shuffled: bool = True, clock=local_now) -> PracticeEngine:
    practice = PracticeEngine(repository, mode=mode, shuffled=shuffled, clock=clock)
    await practice.open()
    try:
        if not practice.items:
            console.print(f"[yellow]No items for {mode.value}.[/yellow]")
            return practice
        console.print(f"\n[bold]Practice[/bold]: {mode.value}, {len(practice.items)} cards\n")
        while not practice.finished:
            item = practice.current_item
            console.print(item_panel(item, f"Card {practice.cursor + 1}/{len(practice.items)}"))
            await session_prompt("[dim]Press Enter to flip[/dim]", default="")
            practice.flip()
            console.print(item_panel(item, "Answer", answer=True))
            verdict = await session_prompt("Know it?", choices=["y", "n", "q"], default="y")
            if verdict == "y":
                practice.know_it()
            else:
                practice.needs_work()
    except SessionExitRequested:
        console.print("[dim]Practice stopped.[/dim]")
    finally:
        practice.close()
    console.print(
        f"[green]Knew {len(practice.known)}[/green], "
        f"[yellow]{len(practice.needs_work_ids)} need work[/yellow]"
    )
    return practice


async def load_file(path_text: str, reader=read_attachment) -> bytes | None:
    path_text = path_text.strip()
    if not path_text:
        return None
    return await asyncio.to_thread(reader, path_text)


async def cmd_add(editor: ItemEditEngine):
    draft = editor.draft()
    draft.title = await ask("Title (question)")
    draft.body = await ask("Answer / notes")
    for tag in (await ask("Tags (comma separated)", default="")).split(","):
        draft.add_tag(tag)
    image = await load_file(await ask("Image file (optional)", default=""))
    if image:
        draft.add_image(image)
    pdf = await load_file(await ask("PDF file (optional)", default=""), reader=read_pdf)
    if pdf:
        draft.set_pdf(pdf)
    item = await draft.save()
    console.print(f"[green]Added '{item.title}'. First review tomorrow.[/green]")


def items_table(items, now, title: str = "Library") -> Table:
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("Title", style="cyan")
    table.add_column("Tags")
    table.add_column("Next review", justify="right")
    table.add_column("Stage")
    for i, item in enumerate(items, 1):
        if item.is_due(now):
            when = "[yellow]Due[/yellow]"
        else:
            when = f"in {item.days_until_review(now)}d"
        table.add_row(str(i), item.title, ", ".join(item.tags), when, interval_label(item.interval))
    return table


async def choose_item(repository, clock=local_now):
    items = await repository.fetch_all()
    if not items:
        console.print("[yellow]No study items yet. Use 'add' first.[/yellow]")
        return None
    console.print(items_table(items, clock()))
    choice = await ask("Item number", choices=[str(i) for i in range(1, len(items) + 1)])
    return items[int(choice) - 1]


async def cmd_library(repository, clock=local_now):
    library = LibraryEngine(repository, clock=clock)
    await library.open()
    try:
        filter_name = await ask("Filter", choices=[f.value.lower() for f in LibraryFilter], default="all")
        library.set_filter(LibraryFilter(filter_name.capitalize()))
        library.search(await ask("Search (blank for everything)", default=""))
        visible = library.visible_items
        if not visible:
            console.print("[yellow]No matching items.[/yellow]")
            return
        console.print(items_table(visible, clock(), title=f"Library: {library.due_count} due"))
    finally:
        library.close()


async def cmd_edit(editor: ItemEditEngine, clock=local_now):
    item = await choose_item(editor.repository, clock)
    if item is None:
        return
    edit = await editor.begin_edit(item.id)
    try:
        edit.title = await ask("Title", default=edit.title)
        edit.body = await ask("Answer / notes", default=edit.body)
        for tag in (await ask("Add tags (comma separated)", default="")).split(","):
            edit.add_tag(tag)
        for tag in (await ask("Remove tags (comma separated)", default="")).split(","):
            edit.remove_tag(tag.strip())
        if edit.images and await ask("Remove attached images?", choices=["y", "n"], default="n") == "y":
            for index in reversed(range(len(edit.images))):
                edit.remove_image(index)
        updated = await edit.commit()
    finally:
        if edit.active and not edit.saving:
            edit.cancel()
    console.print(f"[green]Saved '{updated.title}'.[/green]")


async def cmd_delete(editor: ItemEditEngine, clock=local_now):
    item = await choose_item(editor.repository, clock)
    if item is None:
        return
    flow = editor.delete_flow(item.id)
    flow.request_delete()
    if await ask(f"Delete '{item.title}'? This cannot be undone", choices=["y", "n"], default="n") == "y":
        await flow.confirm_delete()
        console.print("[green]Deleted.[/green]")
    else:
        flow.cancel_delete()
        console.print("[dim]Kept.[/dim]")


async def cmd_stats(repository, clock=local_now):
    monitor = StatsMonitor(repository, clock=clock)
    await monitor.open()
    monitor.close()
    stats = monitor.stats
    now = clock()
    items = await repository.fetch_all()
    history = history_summary(
        await repository.fetch_review_sessions(), now, known_ids=[item.id for item in items],
    )

    console.print(Panel(
        f"Items: [bold]{stats.total_items}[/bold]  |  Due: [bold]{stats.due_today}[/bold]  |  "
        f"Reviewed today: [bold]{history.reviewed_today}[/bold]  |  "
        f"Total reviews: [bold]{stats.total_reviews}[/bold]  |  "
        f"Avg ease: [bold]{stats.average_ease_factor:.2f}[/bold]",
        title="Progress", border_style="blue",
    ))
    console.print(
        f"  Streak: [bold]{history.current_streak}[/bold] day(s)  "
        f"(best {history.best_streak})  |  Retention: [bold]{history.retention}%[/bold]\n"
    )

    table = Table(title="Items by Interval")
    table.add_column("Stage", style="cyan")
    table.add_column("Items", justify="right")
    for group in stats.items_by_interval:
        table.add_row(group.label, str(group.count))
    console.print(table)

    top = max((day.count for day in stats.upcoming_reviews), default=0) or 1
    forecast = Table(title="Upcoming Reviews")
    forecast.add_column("Day", style="cyan")
    forecast.add_column("Items", justify="right")
    forecast.add_column("")
    for day in stats.upcoming_reviews:
        bar = "█" * round(day.count / top * 20)
        forecast.add_row(day.label, str(day.count), f"[green]{bar}[/green]")
    console.print(forecast)


async def cmd_reminders(repository, notifier: LocalNotifier):
    enabled = await asyncio.to_thread(get_flag, repository.db_path, "notifications_enabled")
    if not enabled:
        console.print("[yellow]Notifications are off.[/yellow]")
    reminders = await notifier.pending()
    table = Table(title="Pending Reminders")
    table.add_column("When")
    table.add_column("Message")
    for reminder in reminders:
        if reminder.repeats:
            when = f"daily {reminder.hour:02d}:{reminder.minute:02d}"
        else:
            when = reminder.fire_at.strftime("%a %d %b %H:%M")
        table.add_row(when, reminder.body)
    console.print(table)
    if await ask("Change daily reminder time?", choices=["y", "n"], default="n") == "y":
        hour = await ask_int("Hour (0-23)", default=18)
        minute = await ask_int("Minute (0-59)", default=0)
        await asyncio.to_thread(set_reminder_time, repository.db_path, hour, minute)
        await notifier.schedule_daily_reminder(hour, minute)
        console.print(f"[green]Daily reminder moved to {hour:02d}:{minute:02d}.[/green]")


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


async def run(db_path: str = DEFAULT_DB_PATH):
    await asyncio.to_thread(init_db, db_path)
    repository = ItemRepository(db_path)
    notifier = LocalNotifier(db_path)
    editor = ItemEditEngine(repository)
    try:
        logger.debug("Using database %s", db_path)
        added = await seed_samples(repository)
        if added:
            console.print(f"[dim]Added {added} sample items to get you started.[/dim]")
        await ReminderPlanner(repository, notifier).on_launch()

        show_welcome()
        while True:
            show_menu(len(await repository.fetch_due()))
            choice = (await ask("\n[bold]>[/bold]", default="review")).strip().lower()
            try:
                if choice == "review":
                    await run_review_queue(repository)
                elif choice == "practice":
                    mode = await ask("Mode", choices=[m.name.lower() for m in PracticeMode], default="all")
                    shuffled = await asyncio.to_thread(get_flag, db_path, "practice_shuffle", True)
                    await run_practice(repository, PracticeMode[mode.upper()], shuffled=shuffled)
                elif choice == "add":
                    await cmd_add(editor)
                elif choice == "library":
                    await cmd_library(repository)
                elif choice == "edit":
                    await cmd_edit(editor)
                elif choice == "delete":
                    await cmd_delete(editor)
                elif choice == "stats":
                    await cmd_stats(repository)
                elif choice == "reminders":
                    await cmd_reminders(repository, notifier)
                elif choice in ("quit", "exit", "q"):
                    console.print("[dim]See you at your next review![/dim]")
                    break
                else:
                    console.print("[red]Unknown command. Try again.[/red]")
            except RecallError as e:
                console.print(f"[red]{e}[/red]")
            except KeyboardInterrupt:
                console.print("\n[dim]Use 'quit' to exit.[/dim]")
            except Exception as e:
                logger.debug("Command %r failed", choice, exc_info=True)
                console.print(f"[red]Error: {e}[/red]")
    finally:
        repository.close()


def main(argv=None):
    parser = argparse.ArgumentParser(prog="recall-tutor", description=__doc__)
    parser.add_argument("--db", default=DEFAULT_DB_PATH, help="path to the sqlite database")
    parser.add_argument("-v", "--verbose", action="store_true", help="show debug logging")
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    asyncio.run(run(args.db))


if __name__ == "__main__":
    main()

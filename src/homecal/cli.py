"""homecal CLI - household calendar."""

import json
import logging
import sys
from datetime import date

import click

from .config import load_config
from .core.calendar import DateWindow, View, extend_agenda, shift_anchor
from .core.dates import InvalidDateError, parse_day, to_local
from .core.filters import FilterOptions, PrioritySort, toggle_tag
from .core.household import NamedRange
from .core.occurrence import resolve_occurrence
from .core.tasks import Task
from .errors import AuthenticationError, RepositoryError
from .workflows import (
    advance_household,
    CalendarView,
    clear_filters,
    default_anchor,
    delete_range,
    get_preferences,
    get_range,
    get_repository,
    list_children,
    load_calendar,
    load_filters,
    load_ranges,
    load_timeline,
    pause_task,
    resolve_household,
    resume_task,
    save_filters,
    save_range,
    shift_occurrence,
    skip_occurrence,
)

SORT_CHOICES = [s.value for s in PrioritySort]


def _day_option(ctx, param, value):
    """Click callback turning a date string into a date."""
    if value is None:
        return None
    try:
        return parse_day(value)
    except InvalidDateError as e:
        raise click.BadParameter(str(e)) from e


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


@click.group()
@click.version_option()
@click.option("--household", "-H", default=None, help="Household id (default: DEFAULT_HOUSEHOLD)")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx, household: str | None, verbose: bool):
    """homecal - Household calendar CLI."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.DEBUG if verbose else logging.WARNING,
    )
    config = load_config()
    ctx.obj = {"config": config, "household": household or config.default_household}


def _household_id(ctx) -> str:
    household_id = ctx.obj["household"]
    if not household_id:
        _fail("No household selected. Pass --household or set DEFAULT_HOUSEHOLD in homecal.conf")
    return household_id


def _repository(ctx):
    try:
        return get_repository(ctx.obj["config"])
    except (RepositoryError, AuthenticationError) as e:
        _fail(str(e))


# ============== Rendering ==============


def _task_json(task: Task, window: DateWindow) -> dict:
    occ = resolve_occurrence(task, window.start, window.tz)
    return {
        "id": task.id,
        "title": task.title,
        "type": task.type.value,
        "status": task.status.value,
        "at": to_local(occ.display_instant, window.tz).isoformat() if occ.display_instant else None,
        "priority": task.priority,
        "children": task.child_ids,
        "tags": task.context,
    }


def _task_line(task: Task, window: DateWindow) -> str:
    occ = resolve_occurrence(task, window.start, window.tz)
    time_str = to_local(occ.display_instant, window.tz).strftime("%H:%M") if occ.display_instant else ""
    marker = "!" * task.priority if task.priority else " "
    tags = f" [{', '.join(task.context)}]" if task.context else ""
    return f"  {time_str:6} [{marker:3}] {task.title}{tags}"


def _view_json(view: CalendarView) -> dict:
    data = {
        "household": view.household.id,
        "timezone": view.household.timezone or "UTC",
        "view": view.view.value,
        "start": view.window.first_day.isoformat(),
        "end": view.window.last_day.isoformat(),
        "available": view.available,
        "days": {key: [_task_json(t, view.window) for t in tasks] for key, tasks in view.buckets.items()},
        "childCounts": view.child_counts,
        "tags": view.tags.tags if view.tags else [],
    }
    if view.grid:
        data["grid"] = [
            {"day": cell.day.isoformat(), "inMonth": cell.in_month, "count": len(view.buckets.get(cell.day.isoformat(), []))}
            for cell in view.grid
        ]
    return data


def _show_month_grid(view: CalendarView) -> None:
    click.echo("  Mo   Tu   We   Th   Fr   Sa   Su")
    for week in range(0, len(view.grid), 7):
        cells = []
        for cell in view.grid[week : week + 7]:
            count = len(view.buckets.get(cell.day.isoformat(), []))
            label = f"{cell.day.day:2}" if cell.in_month else " ."
            cells.append(f"{label:>4}{'*' if count else ' '}")
        click.echo("".join(cells))
    click.echo()


def _show_view(view: CalendarView, as_json: bool) -> None:
    """Shared calendar display logic."""
    if as_json:
        click.echo(json.dumps(_view_json(view), indent=2))
        return

    if not view.available:
        click.echo("No data available.")
        return

    click.echo(f"{view.household.name or view.household.id}: {view.window.format()}\n")

    if view.grid:
        _show_month_grid(view)

    if not view.buckets:
        click.echo("Nothing scheduled.")
    for key, tasks in view.buckets.items():
        click.echo(f"### {date.fromisoformat(key).strftime('%A, %B %d')}")
        for task in tasks:
            click.echo(_task_line(task, view.window))
        click.echo()

    if view.child_counts:
        counts = ", ".join(f"{cid}: {n}" for cid, n in sorted(view.child_counts.items()))
        click.echo(f"Children: {counts}")
    if view.tags and view.tags.tags:
        more = f" (+{view.tags.hidden_count} more)" if view.tags.hidden_count else ""
        click.echo(f"Tags: {', '.join(view.tags.visible)}{more}")


# ============== Views ==============


def _resolve_filters(ctx, view: View, tags: str | None, children: tuple[str, ...], sort: str | None) -> FilterOptions:
    """Stored filters for the view, overridden by whatever was passed."""
    stored = load_filters(get_preferences(ctx.obj["config"]), _household_id(ctx), view)
    return FilterOptions(
        tag_terms=stored.tag_terms if tags is None else tags,
        child_ids=frozenset(children) if children else stored.child_ids,
        priority_sort=PrioritySort(sort) if sort else stored.priority_sort,
    )


def view_options(f):
    """Options shared by every calendar view command."""
    options = [
        click.option("--date", "-d", "anchor", default=None, callback=_day_option,
                     help="Anchor date (YYYY-MM-DD), defaults to today"),
        click.option("--offset", type=int, default=0, help="Move N ranges back (<0) or forward (>0)"),
        click.option("--tags", default=None, help="Comma-separated tag filter"),
        click.option("--child", "children", multiple=True, help="Only tasks for this child (repeatable)"),
        click.option("--sort", type=click.Choice(SORT_CHOICES), default=None, help="Priority sort"),
        click.option("--all-tags", is_flag=True, help="List every tag, not just the first few"),
        click.option("--json", "as_json", is_flag=True, help="Output as JSON"),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def _run_view(
    ctx,
    view: View,
    anchor: date | None,
    offset: int,
    tags: str | None,
    children: tuple[str, ...],
    sort: str | None,
    all_tags: bool,
    as_json: bool,
    agenda_days: int | None = None,
    custom_end: date | None = None,
) -> None:
    config = ctx.obj["config"]
    household_id = _household_id(ctx)
    repo = _repository(ctx)
    if anchor is None:
        anchor = default_anchor(resolve_household(config, repo, household_id))
    days = agenda_days or config.agenda_days
    step = 1 if offset > 0 else -1
    for _ in range(abs(offset)):
        anchor = shift_anchor(view, anchor, step, days)

    result = load_calendar(
        config,
        repo,
        repo,
        household_id,
        view,
        anchor,
        options=_resolve_filters(ctx, view, tags, children, sort),
        agenda_days=days,
        custom_end=custom_end,
        show_all_tags=all_tags,
    )
    _show_view(result, as_json)


@main.command()
@view_options
@click.option("--days", type=int, default=None, help="Number of days (default: AGENDA_DAYS)")
@click.option("--more", is_flag=True, help="Extend the agenda by two weeks")
@click.pass_context
def agenda(ctx, anchor, offset, tags, children, sort, all_tags, as_json, days, more):
    """Show the rolling agenda."""
    days = days or ctx.obj["config"].agenda_days
    if more:
        days = extend_agenda(days)
    _run_view(ctx, View.AGENDA, anchor, offset, tags, children, sort, all_tags, as_json, agenda_days=days)


@main.command()
@view_options
@click.pass_context
def week(ctx, anchor, offset, tags, children, sort, all_tags, as_json):
    """Show the week (Monday to Sunday)."""
    _run_view(ctx, View.WEEK, anchor, offset, tags, children, sort, all_tags, as_json)


@main.command()
@view_options
@click.pass_context
def month(ctx, anchor, offset, tags, children, sort, all_tags, as_json):
    """Show the month grid."""
    _run_view(ctx, View.MONTH, anchor, offset, tags, children, sort, all_tags, as_json)


@main.command()
@click.argument("start", required=False, callback=_day_option)
@click.argument("end", required=False, callback=_day_option)
@click.option("--range", "range_name", default=None, help="Use a saved range")
@click.option("--tags", default=None, help="Comma-separated tag filter")
@click.option("--child", "children", multiple=True, help="Only tasks for this child (repeatable)")
@click.option("--sort", type=click.Choice(SORT_CHOICES), default=None, help="Priority sort")
@click.option("--all-tags", is_flag=True, help="List every tag, not just the first few")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def custom(ctx, start, end, range_name, tags, children, sort, all_tags, as_json):
    """Show a custom date range (START END, or --range NAME)."""
    if range_name:
        saved = get_range(get_preferences(ctx.obj["config"]), _household_id(ctx), range_name)
        if saved is None:
            _fail(f"No saved range named {range_name!r}")
        start, end = saved.start, saved.end
    if start is None:
        raise click.UsageError("Pass START [END] or --range NAME")
    _run_view(ctx, View.CUSTOM, start, 0, tags, children, sort, all_tags, as_json, custom_end=end or start)


@main.command()
@click.option("--date", "-d", "day", default=None, callback=_day_option,
              help="Day to show (YYYY-MM-DD), defaults to today")
@click.option("--tags", default=None, help="Comma-separated tag filter")
@click.option("--child", "children", multiple=True, help="Only tasks for this child (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def timeline(ctx, day, tags, children, as_json):
    """Show busy and free time for one day."""
    config = ctx.obj["config"]
    household_id = _household_id(ctx)
    repo = _repository(ctx)
    if day is None:
        day = default_anchor(resolve_household(config, repo, household_id))
    options = _resolve_filters(ctx, View.TIMELINE, tags, children, None)
    result = load_timeline(config, repo, repo, household_id, day, options)

    if as_json:
        tl = result.timeline
        click.echo(
            json.dumps(
                {
                    "household": household_id,
                    "day": day.isoformat(),
                    "available": result.available,
                    "busy": [{"start": s.start.isoformat(), "end": s.end.isoformat()} for s in tl.busy] if tl else [],
                    "free": [{"start": s.start.isoformat(), "end": s.end.isoformat()} for s in tl.free] if tl else [],
                },
                indent=2,
            )
        )
        return

    if not result.available:
        click.echo("No data available.")
        return

    click.echo(f"Timeline for {day.strftime('%A, %b %d')}\n")
    click.echo("Busy:")
    for slot in result.timeline.busy or []:
        click.echo(f"  {slot.format()}")
    if not result.timeline.busy:
        click.echo("  Nothing scheduled")
    click.echo("\nFree:")
    for slot in result.timeline.free:
        click.echo(f"  {slot.format()}")


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def children(ctx, as_json: bool):
    """List the household's children."""
    household_id = _household_id(ctx)
    kids = list_children(_repository(ctx), household_id)
    if as_json:
        click.echo(json.dumps([{"id": c.id, "name": c.display_name, "emoji": c.emoji} for c in kids], indent=2))
        return
    if not kids:
        click.echo("No children found.")
        return
    for child in kids:
        click.echo(f"• {child.emoji + ' ' if child.emoji else ''}{child.display_name} ({child.id})")


# ============== Saved ranges ==============


@main.group()
def ranges():
    """Manage saved date ranges."""
    pass


@ranges.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def ranges_list(ctx, as_json: bool):
    """List saved ranges."""
    saved = load_ranges(get_preferences(ctx.obj["config"]), _household_id(ctx))
    if as_json:
        click.echo(json.dumps([r.to_dict() for r in saved], indent=2))
        return
    if not saved:
        click.echo("No saved ranges.")
        return
    for r in saved:
        click.echo(f"• {r.name}: {r.start.isoformat()} - {r.end.isoformat()}")


@ranges.command("save")
@click.argument("name")
@click.argument("start", callback=_day_option)
@click.argument("end", callback=_day_option)
@click.pass_context
def ranges_save(ctx, name: str, start: date, end: date):
    """Save a range under NAME (replaces an existing one)."""
    if end < start:
        start, end = end, start
    save_range(get_preferences(ctx.obj["config"]), _household_id(ctx), NamedRange(name=name, start=start, end=end))
    click.echo(f"Saved {name}: {start.isoformat()} - {end.isoformat()}")


@ranges.command("delete")
@click.argument("name")
@click.pass_context
def ranges_delete(ctx, name: str):
    """Delete a saved range."""
    if not delete_range(get_preferences(ctx.obj["config"]), _household_id(ctx), name):
        _fail(f"No saved range named {name!r}")
    click.echo(f"Deleted {name}")


# ============== Filters ==============


VIEW_ARGUMENT = click.argument("view", type=click.Choice([v.value for v in View]))


@main.group()
def filters():
    """Manage stored per-view filters."""
    pass


@filters.command("show")
@VIEW_ARGUMENT
@click.pass_context
def filters_show(ctx, view: str):
    """Show the filters stored for a view."""
    options = load_filters(get_preferences(ctx.obj["config"]), _household_id(ctx), View(view))
    click.echo(json.dumps(options.to_dict(), indent=2))


@filters.command("set")
@VIEW_ARGUMENT
@click.option("--tags", default=None, help="Comma-separated tag filter")
@click.option("--toggle-tag", "toggled", multiple=True, help="Add or remove one tag (repeatable)")
@click.option("--child", "children", multiple=True, help="Only tasks for this child (repeatable)")
@click.option("--sort", type=click.Choice(SORT_CHOICES), default=None, help="Priority sort")
@click.pass_context
def filters_set(ctx, view: str, tags, toggled, children, sort):
    """Update the filters stored for a view."""
    prefs = get_preferences(ctx.obj["config"])
    household_id = _household_id(ctx)
    current = load_filters(prefs, household_id, View(view))
    tag_terms = current.tag_terms if tags is None else tags
    for tag in toggled:
        tag_terms = toggle_tag(tag_terms, tag)
    options = FilterOptions(
        tag_terms=tag_terms,
        child_ids=frozenset(children) if children else current.child_ids,
        priority_sort=PrioritySort(sort) if sort else current.priority_sort,
    )
    save_filters(prefs, household_id, View(view), options)
    click.echo(json.dumps(options.to_dict(), indent=2))


@filters.command("clear")
@VIEW_ARGUMENT
@click.pass_context
def filters_clear(ctx, view: str):
    """Reset the filters for a view."""
    clear_filters(get_preferences(ctx.obj["config"]), _household_id(ctx), View(view))
    click.echo(f"Cleared {view} filters")


# ============== Exceptions ==============


WRITE_ERRORS = (RepositoryError, AuthenticationError, ValueError)


@main.command()
@click.argument("task_id")
@click.option("--date", "-d", "day", default=None, callback=_day_option,
              help="Occurrence day (YYYY-MM-DD), defaults to the task's own day")
@click.pass_context
def skip(ctx, task_id: str, day: date | None):
    """Skip one occurrence of a task."""
    household_id = _household_id(ctx)
    repo = _repository(ctx)
    try:
        key = skip_occurrence(ctx.obj["config"], repo, repo, household_id, task_id, day)
    except WRITE_ERRORS as e:
        _fail(str(e))
    click.echo(f"Skipped {task_id} on {key}")


@main.command()
@click.argument("task_id")
@click.option("--until", "until", default=None, callback=_day_option, help="Pause until this day (YYYY-MM-DD)")
@click.option("--days", type=int, default=7, help="Pause for N days from today")
@click.option("--resume", is_flag=True, help="Clear the pause")
@click.pass_context
def pause(ctx, task_id: str, until: date | None, days: int, resume: bool):
    """Pause a task (hidden until the given day)."""
    household_id = _household_id(ctx)
    repo = _repository(ctx)
    try:
        if resume:
            resume_task(repo, household_id, task_id)
            click.echo(f"Resumed {task_id}")
            return
        instant = pause_task(ctx.obj["config"], repo, repo, household_id, task_id, until=until, days=days)
    except WRITE_ERRORS as e:
        _fail(str(e))
    click.echo(f"Paused {task_id} until {instant.date().isoformat()}")


@main.command()
@click.argument("task_id")
@click.argument("minutes", type=int)
@click.option("--date", "-d", "day", default=None, callback=_day_option,
              help="Occurrence day (YYYY-MM-DD), defaults to the task's own day")
@click.pass_context
def shift(ctx, task_id: str, minutes: int, day: date | None):
    """Move one occurrence by MINUTES (use -- before a negative value)."""
    household_id = _household_id(ctx)
    repo = _repository(ctx)
    try:
        key = shift_occurrence(ctx.obj["config"], repo, repo, household_id, task_id, minutes, day)
    except WRITE_ERRORS as e:
        _fail(str(e))
    click.echo(f"Shifted {task_id} on {key} by {minutes:+d} min")


# ============== Recurrence ==============


@main.command()
@click.pass_context
def advance(ctx):
    """Advance recurring tasks to their next occurrence."""
    household_id = _household_id(ctx)
    repo = _repository(ctx)
    updated = advance_household(ctx.obj["config"], repo, repo, household_id)
    click.echo(f"Advanced {updated} task(s) in {household_id}")


@main.command("advance-daemon")
@click.option("--now", "run_now", is_flag=True, help="Also run once at startup")
@click.pass_context
def advance_daemon(ctx, run_now: bool):
    """Run the daily advancement scheduler."""
    from .scheduler import run_daemon

    household_id = _household_id(ctx)
    click.echo(f"Starting homecal advancement daemon for {household_id}...")
    click.echo("Press Ctrl+C to stop")
    run_daemon([household_id], run_now=run_now)

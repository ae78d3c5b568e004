"""
DoseCycle — Telegram Bot.

Telegram is the host shell around the dosing engine: commands log doses,
drinking days and skin check-ins, browse the month calendar and manage
reminder settings. Reminders themselves are delivered by the JobQueue
through the same bot.

Security-first: only OWNER_USER_ID is served; everyone else is silently
ignored.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine
from zoneinfo import ZoneInfo

from telegram import Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
)

from dosecycle.config import settings
from dosecycle.data.models import (
    DrynessLevel,
    NotificationPreferences,
    ReminderTime,
    TroubleLevel,
)
from dosecycle.ports.reminder_port import PermissionState

if TYPE_CHECKING:
    from dosecycle.core.day_status import DayCell
    from dosecycle.core.tracker_service import TrackerService
    from dosecycle.ports.storage_port import KeyValuePort

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that silently ignores updates from anyone but the owner.

    An authorized update also counts as owner activity, which drives the
    became-active lifecycle signal.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if user is None or user.id != settings.OWNER_USER_ID:
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return  # Silent ignore
        lifecycle = context.bot_data.get("lifecycle")
        if lifecycle is not None:
            lifecycle.record_activity()
        return await func(update, context)

    return wrapper


def _service(context: ContextTypes.DEFAULT_TYPE) -> TrackerService:
    return context.bot_data["service"]


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _parse_day(text: str, today: date) -> date | None:
    """Accepts 'today', 'yesterday' or YYYY-MM-DD."""
    text = text.strip().lower()
    if text == "today":
        return today
    if text == "yesterday":
        return today - timedelta(days=1)
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def _parse_hhmm(text: str) -> tuple[int, int] | None:
    try:
        parsed = datetime.strptime(text.strip(), "%H:%M")
    except ValueError:
        return None
    return parsed.hour, parsed.minute


def _parse_month(text: str) -> tuple[int, int] | None:
    try:
        parsed = datetime.strptime(text.strip(), "%Y-%m")
    except ValueError:
        return None
    return parsed.year, parsed.month


def _parse_switch(args: list[str]) -> bool | None:
    if len(args) != 1:
        return None
    return {"on": True, "off": False}.get(args[0].lower())


def _parse_frequency(text: str) -> str | int:
    """A preset name, or a bare number of days for a custom interval."""
    text = text.strip().lower()
    return int(text) if text.isdigit() else text


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

_STATUS_SYMBOLS = {
    "taken": "✅",
    "missed": "❌",
    "disabled": "▫️",
    "today": "🔵",
    "scheduled": "💊",
    "rest": "⬜",
    "drinking_dday": "🍺",
    "drinking_warning1": "🔴",
    "drinking_warning2": "🟠",
    "drinking_warning3": "🟡",
    "drinking_warning4": "🟢",
}

_CALENDAR_LEGEND = (
    "✅ taken  ❌ missed  💊 dose day  🔵 today  ⬜ rest\n"
    "🍺 drinking day  🔴🟠🟡🟢 1-4 days from drinking  📝 memo"
)


def render_calendar(cells: list[DayCell], year: int, month: int, taken_count: int) -> str:
    """Six-week text grid, Sunday first."""
    lines = [f"{date(year, month, 1):%B %Y}", "Su Mo Tu We Th Fr Sa"]
    for week in range(6):
        row = []
        for cell in cells[week * 7:(week + 1) * 7]:
            if not cell.in_month:
                row.append("  ·  ")
                continue
            memo = "📝" if cell.has_memo else ""
            row.append(f"{cell.date.day:2d}{_STATUS_SYMBOLS[cell.display_status]}{memo}")
        lines.append(" ".join(row))
    lines.append("")
    lines.append(f"Doses taken this month: {taken_count}")
    lines.append(_CALENDAR_LEGEND)
    return "\n".join(lines)


def _describe_prefs(prefs: NotificationPreferences) -> str:
    def onoff(flag: bool) -> str:
        return "on" if flag else "off"

    return (
        f"Reminders: {onoff(prefs.enabled)}\n"
        f"Medication reminder: {onoff(prefs.medication_reminder_enabled)} at {prefs.reminder_time}\n"
        f"Skin check-in: {onoff(prefs.skin_reminder_enabled)} at {prefs.skin_reminder_time}"
    )


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — welcome message; (re)grants reminder delivery."""
    _service(context).request_permission()
    await update.message.reply_text(
        "Welcome to *DoseCycle*!\n\n"
        "I keep track of your dosing cycle:\n"
        "• /today shows whether today is a dose day\n"
        "• /taken logs today's dose\n"
        "• /drink marks a drinking day so nearby doses get flagged\n"
        "• /calendar shows the month at a glance\n"
        "• /reminders on sends you a nudge on dose days\n\n"
        "Type /help for the full command list.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "Available commands:\n"
        "/today — Today's dose status\n"
        "/taken [date] — Toggle a dose as taken (default today)\n"
        "/frequency <daily|every2days|every3days|weekly|none|N> [last dose date]"
        " — Change the dosing cycle\n"
        "/drink [date] — Toggle a drinking day\n"
        "/skin [date] <calm|few|severe> <moist|normal|dry> [memo] — Log skin condition\n"
        "/calendar [YYYY-MM] — Month calendar\n"
        "/reminders [on|off] — Master reminder switch\n"
        "/medreminder on|off — Medication reminder\n"
        "/skinreminder on|off — Daily skin check-in\n"
        "/remindertime HH:MM — Medication reminder time\n"
        "/skintime HH:MM — Skin check-in time\n"
        "/help — Show this message",
    )


@authorized_only
async def cmd_today(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /today — dose status for today."""
    service = _service(context)
    status = service.today_status()
    cell = service.day_cell(service.today)

    if not status.is_dose_day:
        text = "Today is a rest day. 😌"
    elif status.has_taken_today:
        text = "Today's dose is taken. ✅"
    else:
        text = "Today is a dose day. Send /taken once you've had it. 💊"

    if cell.is_drinking_day:
        text += "\n🍺 You marked today as a drinking day."
    elif cell.warning is not None:
        text += f"\n⚠️ {cell.warning.distance} day(s) from a drinking day."
    await update.message.reply_text(text)


@authorized_only
async def cmd_taken(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /taken [date] — toggle the taken state of a date."""
    service = _service(context)
    day = service.today
    if context.args:
        day = _parse_day(context.args[0], service.today)
        if day is None:
            await update.message.reply_text("Usage: /taken [today|yesterday|YYYY-MM-DD]")
            return

    if not service.can_edit(day):
        await update.message.reply_text(f"{day.isoformat()} can't be edited.")
        return

    taken = service.toggle_taken(day)
    if taken:
        await update.message.reply_text(f"✅ Dose on {day.isoformat()} marked as taken.")
    else:
        await update.message.reply_text(f"Dose on {day.isoformat()} marked as not taken.")


@authorized_only
async def cmd_frequency(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /frequency <preset|N> [last dose date] — change the cycle."""
    service = _service(context)
    if not context.args or len(context.args) > 2:
        await update.message.reply_text(
            "Usage: /frequency <daily|every2days|every3days|weekly|none|N> [YYYY-MM-DD]"
        )
        return

    frequency = _parse_frequency(context.args[0])
    if len(context.args) == 2:
        last_dose = _parse_day(context.args[1], service.today)
        if last_dose is None or last_dose > service.today:
            await update.message.reply_text("The last dose date must be a past date (YYYY-MM-DD).")
            return
        ok = service.seed_schedule(frequency, last_dose)
    else:
        ok = service.update_schedule(frequency)

    if not ok:
        await update.message.reply_text(
            "Unknown frequency. Use daily, every2days, every3days, weekly, none or a number of days."
        )
        return

    schedule = service.adherence.schedule
    if not schedule.is_active:
        await update.message.reply_text("Dosing cycle paused. No dose reminders will be sent.")
        return
    await update.message.reply_text(
        f"Cycle set: every {schedule.interval_days} day(s) from "
        f"{schedule.reference_date.isoformat()}."
    )


@authorized_only
async def cmd_drink(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /drink [date] — toggle a declared drinking day."""
    service = _service(context)
    day = service.today
    if context.args:
        day = _parse_day(context.args[0], service.today)
        if day is None:
            await update.message.reply_text("Usage: /drink [today|YYYY-MM-DD]")
            return

    declared = service.toggle_conflict_date(day)
    if declared:
        await update.message.reply_text(
            f"🍺 {day.isoformat()} marked as a drinking day. "
            "Doses within 4 days will be flagged."
        )
    else:
        await update.message.reply_text(f"{day.isoformat()} is no longer a drinking day.")


@authorized_only
async def cmd_skin(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /skin [date] <trouble> <dryness> [memo] — log skin condition."""
    service = _service(context)
    args = list(context.args or [])
    day = service.today
    if args:
        parsed = _parse_day(args[0], service.today)
        if parsed is not None:
            day = parsed
            args = args[1:]

    try:
        trouble = TroubleLevel(args[0].lower())
        dryness = DrynessLevel(args[1].lower())
    except (IndexError, ValueError):
        await update.message.reply_text(
            "Usage: /skin [YYYY-MM-DD] <calm|few|severe> <moist|normal|dry> [memo]"
        )
        return

    if not service.can_edit(day):
        await update.message.reply_text(f"{day.isoformat()} can't be edited.")
        return

    memo = " ".join(args[2:]).strip()
    record = service.save_skin_record(day, trouble, dryness, memo)
    text = f"📝 Skin on {day.isoformat()}: {record.trouble.value}, {record.dryness.value}"
    if record.memo:
        text += f"\n{record.memo}"
    await update.message.reply_text(text)


@authorized_only
async def cmd_calendar(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /calendar [YYYY-MM] — month grid."""
    service = _service(context)
    year, month = service.today.year, service.today.month
    if context.args:
        parsed = _parse_month(context.args[0])
        if parsed is None:
            await update.message.reply_text("Usage: /calendar [YYYY-MM]")
            return
        year, month = parsed

    cells = service.month(year, month)
    taken_count = service.adherence.taken_count_in_month(year, month)
    await update.message.reply_text(render_calendar(cells, year, month, taken_count))


@authorized_only
async def cmd_reminders(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /reminders [on|off] — master switch, or show settings."""
    service = _service(context)
    if not context.args:
        await update.message.reply_text(_describe_prefs(service.prefs))
        return

    switch = _parse_switch(context.args)
    if switch is None:
        await update.message.reply_text("Usage: /reminders [on|off]")
        return

    if not switch:
        service.disable_notifications()
        await update.message.reply_text("🔕 Reminders turned off.")
        return

    state = service.enable_notifications()
    if state is PermissionState.DENIED:
        await update.message.reply_text(
            "I couldn't deliver messages to you earlier. "
            "Send /start to allow them again and reminders will switch on."
        )
        return
    if state is not PermissionState.GRANTED:
        await update.message.reply_text("Reminders are waiting for permission. Send /start.")
        return
    await update.message.reply_text("🔔 Reminders turned on.\n\n" + _describe_prefs(service.prefs))


@authorized_only
async def cmd_medreminder(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /medreminder on|off."""
    switch = _parse_switch(context.args or [])
    if switch is None:
        await update.message.reply_text("Usage: /medreminder on|off")
        return
    _service(context).set_medication_reminder_enabled(switch)
    await update.message.reply_text(f"Medication reminder {'on' if switch else 'off'}.")


@authorized_only
async def cmd_skinreminder(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /skinreminder on|off."""
    switch = _parse_switch(context.args or [])
    if switch is None:
        await update.message.reply_text("Usage: /skinreminder on|off")
        return
    _service(context).set_skin_reminder_enabled(switch)
    await update.message.reply_text(f"Skin check-in {'on' if switch else 'off'}.")


@authorized_only
async def cmd_remindertime(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /remindertime HH:MM."""
    parsed = _parse_hhmm(context.args[0]) if context.args else None
    if parsed is None:
        await update.message.reply_text("Usage: /remindertime HH:MM")
        return
    _service(context).set_reminder_time(*parsed)
    await update.message.reply_text(f"Medication reminder time set to {ReminderTime(*parsed)}.")


@authorized_only
async def cmd_skintime(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /skintime HH:MM."""
    parsed = _parse_hhmm(context.args[0]) if context.args else None
    if parsed is None:
        await update.message.reply_text("Usage: /skintime HH:MM")
        return
    _service(context).set_skin_reminder_time(*parsed)
    await update.message.reply_text(f"Skin check-in time set to {ReminderTime(*parsed)}.")


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


async def _post_init(app: Application) -> None:
    """Initial reconcile and the first midnight timer, once the bot is up."""
    app.bot_data["watcher"].start()


def build_app(store: KeyValuePort | None = None) -> Application:
    """Build the Telegram Application and wire the engine behind it.

    Args:
        store: Key-value storage implementation. Defaults to KeyValueDB.
    """
    from dosecycle.adapters.activity_lifecycle import ActivityLifecycle
    from dosecycle.adapters.clock import JobQueueTimer, SystemClock
    from dosecycle.adapters.job_queue_scheduler import JobQueueReminderScheduler
    from dosecycle.adapters.telegram_notifier import TelegramNotifier
    from dosecycle.core.adherence import AdherenceStore
    from dosecycle.core.preferences import PreferencesStore
    from dosecycle.core.reminder_sync import ReminderSynchronizer
    from dosecycle.core.rollover import DayRolloverWatcher
    from dosecycle.core.tracker_service import TrackerService

    app = (
        ApplicationBuilder()
        .token(settings.TELEGRAM_BOT_TOKEN)
        .post_init(_post_init)
        .build()
    )

    if store is None:
        from dosecycle.data.db import KeyValueDB
        store = KeyValueDB()

    tz = ZoneInfo(settings.TIMEZONE)
    clock = SystemClock(tz)
    today = clock.now().date()

    notifier = TelegramNotifier(app.bot)
    scheduler = JobQueueReminderScheduler(
        app.job_queue, notifier, settings.OWNER_USER_ID, store, tz,
    )

    adherence = AdherenceStore(store, today)
    adherence.load()
    preferences = PreferencesStore(store, NotificationPreferences(
        reminder_time=ReminderTime(
            settings.DEFAULT_REMINDER_HOUR, settings.DEFAULT_REMINDER_MINUTE,
        ),
        skin_reminder_time=ReminderTime(
            settings.DEFAULT_SKIN_REMINDER_HOUR, settings.DEFAULT_SKIN_REMINDER_MINUTE,
        ),
    ))
    preferences.load()

    service = TrackerService(
        adherence,
        preferences,
        ReminderSynchronizer(scheduler, tz),
        scheduler,
        clock,
        today,
        lookahead_days=settings.LOOKAHEAD_DAYS,
    )
    watcher = DayRolloverWatcher(
        clock, JobQueueTimer(app.job_queue), service.refresh,
        on_foreground=service.recheck_permission,
    )
    lifecycle = ActivityLifecycle(clock, timedelta(minutes=settings.IDLE_MINUTES))
    lifecycle.subscribe(watcher.handle_became_active, watcher.handle_went_background)

    # Store collaborators in bot_data for handler access
    app.bot_data["service"] = service
    app.bot_data["watcher"] = watcher
    app.bot_data["lifecycle"] = lifecycle
    app.bot_data["notifier"] = notifier

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("today", cmd_today))
    app.add_handler(CommandHandler("taken", cmd_taken))
    app.add_handler(CommandHandler("frequency", cmd_frequency))
    app.add_handler(CommandHandler("drink", cmd_drink))
    app.add_handler(CommandHandler("skin", cmd_skin))
    app.add_handler(CommandHandler("calendar", cmd_calendar))
    app.add_handler(CommandHandler("reminders", cmd_reminders))
    app.add_handler(CommandHandler("medreminder", cmd_medreminder))
    app.add_handler(CommandHandler("skinreminder", cmd_skinreminder))
    app.add_handler(CommandHandler("remindertime", cmd_remindertime))
    app.add_handler(CommandHandler("skintime", cmd_skintime))

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting DoseCycle bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()

from __future__ import annotations

import argparse
import asyncio
import base64
import logging
import mimetypes
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import AsyncIterator, List, Optional
from zoneinfo import ZoneInfo

import aiohttp

from study_os.aggregation import (
    AssignmentAggregator,
    AutoRefreshScheduler,
    CalendarService,
    DashboardService,
    DashboardView,
    RefreshSettings,
)
from study_os.ai import ChatClient, ChatSession, GeminiChatClient, MockChatClient, resolve_citations
from study_os.canvas import CanvasGateway
from study_os.config import AppConfig, ConfigLoadRequest, YamlConfigLoader
from study_os.core.utils import format_rfc3339, utc_now
from study_os.courses import CourseDirectory, CourseWithNickname
from study_os.errors import InvalidTokenError, StorageQuotaExceededError, StudyOsError
from study_os.files import FileCacheReconciler, FileContext, FolderBrowser, TextExtractionCache
from study_os.logging import init_logging
from study_os.storage import JsonFileStore, StudyStore
from study_os.storage.models import UploadedFile

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="study-os", description="Canvas study dashboard")
    parser.add_argument(
        "--config",
        default="data/config/config.yaml",
        help="Path to config.yaml (default: data/config/config.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to run")

    sync_parser = subparsers.add_parser("sync", help="Verify and store a Canvas access token")
    sync_parser.add_argument("token", help="Canvas access token")

    courses_parser = subparsers.add_parser("courses", help="List enrolled courses")
    courses_parser.add_argument("--hidden", action="store_true", help="List hidden courses instead")

    rename_parser = subparsers.add_parser("rename", help="Set a course nickname")
    rename_parser.add_argument("course_id", type=int)
    rename_parser.add_argument("nickname")

    hide_parser = subparsers.add_parser("hide", help="Hide a course from every view")
    hide_parser.add_argument("course_id", type=int)

    show_parser = subparsers.add_parser("show", help="Restore a hidden course")
    show_parser.add_argument("course_id", type=int)

    subparsers.add_parser("dashboard", help="Next deadline per course and the nearest exam")

    files_parser = subparsers.add_parser("files", help="Browse a course's files and folders")
    files_parser.add_argument("course_id", type=int)
    files_parser.add_argument("--expand", type=int, action="append", default=[], help="Folder id to open")

    upload_parser = subparsers.add_parser("upload", help="Store a document for the assistant")
    upload_parser.add_argument("path")
    upload_parser.add_argument("--course", type=int, default=None, help="Course id (semester document when omitted)")

    context_parser = subparsers.add_parser("context", help="Sync course files and show the assistant's documents")
    context_parser.add_argument("course_id", type=int)

    calendar_parser = subparsers.add_parser("calendar", help="Events for the three months around a date")
    calendar_parser.add_argument("--date", type=date.fromisoformat, default=None, help="YYYY-MM-DD (default: today)")
    calendar_parser.add_argument("--toggle", type=int, action="append", default=[], help="Toggle a course's selection")
    calendar_parser.add_argument("--feed-url", default=None, help="Set the iCal feed URL (empty string removes it)")
    calendar_parser.add_argument("--feed", choices=("on", "off"), default=None, help="Show or hide feed events")

    chat_parser = subparsers.add_parser("chat", help="Ask the assistant a question")
    chat_parser.add_argument("message")
    chat_parser.add_argument("--course", type=int, default=None, help="Course id (general assistant when omitted)")
    chat_parser.add_argument("--tutor", action="store_true", help="Tutor Mode: guiding questions instead of answers")
    chat_parser.add_argument("--mock", action="store_true", help="Use the offline mock assistant")
    chat_parser.add_argument("--clear", action="store_true", help="Clear the conversation first")

    interval_parser = subparsers.add_parser("set-interval", help="Set the auto-refresh interval in minutes (0 disables)")
    interval_parser.add_argument("minutes", type=int)

    watch_parser = subparsers.add_parser("watch", help="Keep the dashboard and calendar refreshed")
    watch_parser.add_argument(
        "--run-seconds",
        type=float,
        default=None,
        help="Run for N seconds then exit (useful for smoke testing).",
    )

    return parser


@dataclass(slots=True)
class Services:
    config: AppConfig
    tz: ZoneInfo
    session: aiohttp.ClientSession
    store: StudyStore
    gateway: CanvasGateway
    courses: CourseDirectory
    assignments: AssignmentAggregator
    dashboard: DashboardService
    calendar: CalendarService
    reconciler: FileCacheReconciler
    text_cache: TextExtractionCache
    refresh_settings: RefreshSettings


async def _load_config(args: argparse.Namespace) -> AppConfig:
    loader = YamlConfigLoader()
    request = ConfigLoadRequest(
        yaml_path=args.config,
    )
    return await loader.load(request)


@asynccontextmanager
async def _open_services(config: AppConfig) -> AsyncIterator[Services]:
    tz = ZoneInfo(config.app.timezone)
    store = StudyStore(
        JsonFileStore(config.storage.path, quota_bytes=config.storage.quota_bytes),
        prefix=config.storage.key_prefix,
        assignment_ttl=timedelta(seconds=config.cache.assignment_ttl_seconds),
        default_refresh_minutes=config.refresh.default_interval_minutes,
    )
    timeout = aiohttp.ClientTimeout(total=config.canvas.request_timeout_seconds)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        gateway = CanvasGateway(session, base_url=config.canvas.base_url, per_page=config.canvas.per_page)
        courses = CourseDirectory(gateway, store)
        assignments = AssignmentAggregator(gateway, store, tz=tz)
        yield Services(
            config=config,
            tz=tz,
            session=session,
            store=store,
            gateway=gateway,
            courses=courses,
            assignments=assignments,
            dashboard=DashboardService(courses, assignments),
            calendar=CalendarService(
                gateway,
                store,
                session,
                tz=tz,
                default_color=config.calendar.default_course_color,
                feed_timeout_seconds=config.calendar.feed_timeout_seconds,
            ),
            reconciler=FileCacheReconciler(gateway, store, batch_size=config.canvas.download_batch_size),
            text_cache=TextExtractionCache(store),
            refresh_settings=RefreshSettings(store),
        )


def _find_course(courses: List[CourseWithNickname], course_id: int) -> Optional[CourseWithNickname]:
    for course in courses:
        if course.canvas_id == course_id:
            return course
    return None


def _print_dashboard(view: DashboardView) -> None:
    if view.exam is not None:
        print(f"Days until exam: {view.exam.days_until} ({view.exam.assignment.name})")
    else:
        print("Days until exam: no upcoming exams")
    for card in view.cards:
        if card.next_assignment is not None:
            print(f"- {card.course.display_name}: {card.next_assignment.name} ({card.due_label})")
        else:
            print(f"- {card.course.display_name}: no upcoming assignments")


async def _sync(services: Services, args: argparse.Namespace) -> None:
    result = await services.courses.sync(args.token)
    print(f"Connected to Canvas. {len(result.courses)} course(s) visible, {len(result.hidden)} hidden.")
    for course in result.courses:
        print(f"- [{course.canvas_id}] {course.display_name} ({course.course_code})")


async def _courses(services: Services, args: argparse.Namespace) -> None:
    if args.hidden:
        for course in await services.courses.hidden_courses():
            print(f"- [{course.id}] {course.name or course.course_code or 'Unnamed Course'}")
        return
    for course in await services.courses.list_courses():
        print(f"- [{course.canvas_id}] {course.display_name} ({course.course_code})")


async def _files(services: Services, args: argparse.Namespace) -> None:
    browser = FolderBrowser(services.gateway, services.store, args.course_id)
    await browser.load()
    for folder_id in args.expand:
        await browser.expand(folder_id)

    for file in browser.files:
        print(f"- {file.name} ({file.size} bytes)")
    for folder in browser.folders:
        if not folder.is_browsable:
            continue
        marker = " [restricted]" if folder.id in browser.restricted else ""
        print(f"+ [{folder.id}] {folder.name} ({folder.files_count} files){marker}")
        if folder.id in browser.expanded:
            for file in browser.folder_files(folder.id):
                print(f"    - {file.name} ({file.size} bytes)")


def _upload(services: Services, args: argparse.Namespace) -> None:
    path = Path(args.path)
    data = path.read_bytes()
    file = UploadedFile(
        id=f"file-{int(utc_now().timestamp() * 1000)}",
        name=path.name,
        type=mimetypes.guess_type(path.name)[0] or "application/octet-stream",
        size=len(data),
        data=base64.b64encode(data).decode("ascii"),
        upload_date=format_rfc3339(utc_now()),
        course_id=args.course,
    )
    services.store.add_uploaded_file(args.course, file)
    print(f"Stored {file.name} ({file.size} bytes).")


async def _course_context(services: Services, course_id: int) -> List[FileContext]:
    result = await services.reconciler.reconcile(course_id)
    return await services.text_cache.build_context(course_id, result.files)


async def _context(services: Services, args: argparse.Namespace) -> None:
    contexts = await _course_context(services, args.course_id)
    if not contexts:
        print("No course documents with extractable text.")
    for number, context in enumerate(contexts, 1):
        print(f"[{number}] {context.file_name} ({len(context.text)} chars)")


async def _calendar(services: Services, args: argparse.Namespace) -> None:
    store = services.store
    if args.feed_url is not None:
        store.save_calendar_feed_url(args.feed_url)
    if args.feed is not None:
        store.save_calendar_feed_selected(args.feed == "on")

    token = store.get_canvas_token()
    course_ids = [c.canvas_id for c in await services.courses.list_courses()] if token else []
    for course_id in args.toggle:
        services.calendar.toggle_course(course_id, course_ids)

    today = args.date or utc_now().astimezone(services.tz).date()
    view = await services.calendar.load(token, course_ids, today)
    print(f"Calendar {view.start.isoformat()} to {view.end.isoformat()}")
    for error in view.errors:
        print(f"! {error}")
    for day in sorted(view.events_by_date):
        print(day)
        for event in view.events_by_date[day]:
            when = "all day" if event.all_day else (event.start_at or "")
            print(f"  - {event.title} [{event.type}] {when} {view.color_for(event, services.calendar.default_color)}")


async def _chat(services: Services, args: argparse.Namespace) -> None:
    client: ChatClient
    if args.mock:
        client = MockChatClient()
    else:
        client = GeminiChatClient(services.config.ai, services.session)

    nickname: Optional[str] = None
    contexts: List[FileContext] = []
    if args.course is not None:
        course = _find_course(await services.courses.list_courses(), args.course)
        nickname = course.display_name if course is not None else None
        contexts = await _course_context(services, args.course)

    session = ChatSession(services.store, client, services.config.ai, course_id=args.course, course_nickname=nickname)
    if args.clear:
        session.clear()
    reply = await session.send(args.message, tutor_mode=args.tutor, contexts=contexts)
    print(reply.text)
    for citation in resolve_citations(reply.text, contexts):
        print(f"[{citation.number}] {citation.file_name}")


async def _watch(services: Services, args: argparse.Namespace) -> None:
    services.courses.require_token()

    async def refresh_dashboard() -> None:
        _print_dashboard(await services.dashboard.refresh())

    async def refresh_calendar() -> None:
        course_ids = [c.canvas_id for c in await services.courses.list_courses()]
        today = utc_now().astimezone(services.tz).date()
        view = await services.calendar.load(services.store.get_canvas_token(), course_ids, today)
        total = sum(len(events) for events in view.events_by_date.values())
        print(f"Calendar: {total} event(s) between {view.start.isoformat()} and {view.end.isoformat()}")

    schedulers = [
        AutoRefreshScheduler("dashboard", services.refresh_settings, refresh_dashboard),
        AutoRefreshScheduler("calendar", services.refresh_settings, refresh_calendar),
    ]
    for scheduler in schedulers:
        scheduler.start()
    logger.info("Watching. interval_minutes=%s", services.refresh_settings.get_interval())
    try:
        if args.run_seconds is not None:
            await asyncio.sleep(args.run_seconds)
        else:
            await asyncio.Event().wait()
    finally:
        for scheduler in schedulers:
            await scheduler.stop()


async def _run_command(services: Services, args: argparse.Namespace) -> None:
    command = args.command
    if command == "sync":
        await _sync(services, args)
    elif command == "courses":
        await _courses(services, args)
    elif command == "rename":
        services.courses.rename(args.course_id, args.nickname)
        print(f"Renamed course {args.course_id}.")
    elif command == "hide":
        services.courses.hide(args.course_id)
        print(f"Course {args.course_id} hidden.")
    elif command == "show":
        services.courses.show(args.course_id)
        print(f"Course {args.course_id} restored.")
    elif command == "dashboard":
        _print_dashboard(await services.dashboard.refresh())
    elif command == "files":
        await _files(services, args)
    elif command == "upload":
        _upload(services, args)
    elif command == "context":
        await _context(services, args)
    elif command == "calendar":
        await _calendar(services, args)
    elif command == "chat":
        await _chat(services, args)
    elif command == "set-interval":
        stored = services.refresh_settings.set_interval(args.minutes)
        print("Auto-refresh disabled." if stored == 0 else f"Auto-refresh every {stored} minute(s).")
    elif command == "watch":
        await _watch(services, args)


async def _main_async() -> int:
    parser = _build_parser()
    args = parser.parse_args()

    config = await _load_config(args)
    init_logging(config.logging)
    logger.info("Running command. command=%s", args.command)

    try:
        async with _open_services(config) as services:
            await _run_command(services, args)
    except InvalidTokenError as e:
        logger.error("Canvas rejected the access token.")
        print(str(e), file=sys.stderr)
        return 1
    except StorageQuotaExceededError as e:
        logger.error("Local storage is full. key=%s required_bytes=%s", e.key, e.required_bytes)
        print(str(e), file=sys.stderr)
        return 1
    except StudyOsError as e:
        print(str(e), file=sys.stderr)
        return 1
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.error("Network request failed. error=%s", str(e) or type(e).__name__)
        print("Could not reach Canvas. Please check your connection and try again.", file=sys.stderr)
        return 1
    return 0


def main() -> None:
    try:
        exit_code = asyncio.run(_main_async())
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")
        exit_code = 130
    sys.exit(exit_code)


if __name__ == "__main__":
    main()

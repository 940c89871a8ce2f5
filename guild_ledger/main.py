from __future__ import annotations

import argparse
import asyncio
import datetime as dt
import json
import logging
from pathlib import Path
from typing import Any

from .adapters.base import PersistenceAdapter, RosterAdapter
from .adapters.http import RestBackend
from .adapters.json_file import JSONFileBackend
from .config import Settings, load_settings
from .core.defaults import install_default_templates
from .core.models import EVENT_MODULES
from .core.storage import TemplateStorage
from .data.store import RecordStore
from .errors import LedgerError
from .extraction.pipeline import ImportPipeline
from .logging_config import setup_logging
from .reconcile.reconciler import RosterReconciler
from .reconcile.roster import RosterAccess

log = logging.getLogger("guild_ledger.main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="guild-ledger", description="Extract, store and reconcile guild event records."
    )
    sub = parser.add_subparsers(dest="command", required=True)

    extract = sub.add_parser("extract", help="extract a record from recognized text")
    extract.add_argument("module", choices=("kvm", "gvg", "aa", "guild"))
    extract.add_argument("text_file", type=Path)
    extract.add_argument("--date", type=dt.date.fromisoformat)
    extract.add_argument("--template", dest="template_id")
    extract.add_argument("--save", action="store_true", help="store the extracted record")

    imp = sub.add_parser("import", help="import a JSON array of records")
    imp.add_argument("module", choices=EVENT_MODULES)
    imp.add_argument("json_file", type=Path)

    export = sub.add_parser("export", help="export every record as a JSON array")
    export.add_argument("module", choices=EVENT_MODULES)
    export.add_argument("--output", type=Path)

    stats = sub.add_parser("stats", help="show aggregate statistics")
    stats.add_argument("module", choices=EVENT_MODULES)

    view = sub.add_parser("view", help="show the reconciled view of one record")
    view.add_argument("module", choices=EVENT_MODULES)
    view.add_argument("date", type=dt.date.fromisoformat)
    return parser


def build_backend(settings: Settings) -> RestBackend | JSONFileBackend:
    if settings.api_url:
        return RestBackend(settings.api_url, settings.api_token)
    return JSONFileBackend(settings.data_path)


def _stores(backend: PersistenceAdapter) -> dict[str, RecordStore]:
    return {module: RecordStore(backend, module) for module in EVENT_MODULES}


def _dump(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False)


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------
async def _extract(args: argparse.Namespace, settings: Settings, backend: Any) -> int:
    templates = TemplateStorage(Path(settings.templates_path))
    install_default_templates(templates)
    pipeline = ImportPipeline(templates, _stores(backend), date_formats=settings.date_formats)
    template = pipeline.template_for(args.module, args.template_id)
    overrides = {"date": args.date} if args.date else None
    text = args.text_file.read_text(encoding="utf-8")
    assembled = pipeline.extract_record(text, template, overrides)
    for issue in assembled.warnings:
        log.warning("%s: %s", issue.field, issue.message)
    if isinstance(assembled.record, list):
        print(_dump([m.to_payload() for m in assembled.record]))
        return 0
    if args.save:
        await pipeline.stores[args.module].upsert(assembled.record)
    print(_dump(assembled.record.to_payload()))
    return 0


async def _import(args: argparse.Namespace, settings: Settings, backend: Any) -> int:
    store = RecordStore(backend, args.module)
    outcomes = await store.import_text(args.json_file.read_text(encoding="utf-8"))
    for outcome in outcomes:
        if outcome.ok:
            print(f"#{outcome.index} {outcome.date}: stored")
        else:
            print(f"#{outcome.index}: {outcome.error_kind.value} {outcome.message}")
    return 0 if all(o.ok for o in outcomes) else 1


async def _export(args: argparse.Namespace, settings: Settings, backend: Any) -> int:
    text = await RecordStore(backend, args.module).export_text()
    if args.output:
        args.output.write_text(text, encoding="utf-8")
        log.info("Exported %s records to %s", args.module, args.output)
    else:
        print(text)
    return 0


async def _stats(args: argparse.Namespace, settings: Settings, backend: Any) -> int:
    stats = await RecordStore(backend, args.module).statistics()
    date_range = (
        f"{stats.date_range[0]} .. {stats.date_range[1]}" if stats.date_range else "-"
    )
    print(f"records:              {stats.total_records}")
    print(f"participants:         {stats.total_participants}")
    print(f"non-participants:     {stats.total_non_participants}")
    print(f"average participants: {stats.average_participants}")
    print(f"date range:           {date_range}")
    return 0


async def _view(args: argparse.Namespace, settings: Settings, backend: Any) -> int:
    record = await RecordStore(backend, args.module).get(args.date)
    if record is None:
        log.error("No %s record for %s", args.module, args.date)
        return 1
    roster: RosterAdapter = backend
    access = RosterAccess(roster)
    await access.refresh()
    view = RosterReconciler(access).view(record)
    print(f"{args.module} {view.date}")
    for label, entries in (
        ("participants", view.participants),
        ("non-participants", view.non_participants),
    ):
        print(f"{label} ({len(entries)}):")
        for entry in entries:
            if hasattr(entry, "source_name"):
                mark = (entry.member_class or "-") if entry.matched else "UNMATCHED"
                print(f"  {entry.source_name} [{mark}]")
            else:
                print(f"  {entry.name} [{entry.member_class or '-'}]")
    return 0


COMMANDS = {
    "extract": _extract,
    "import": _import,
    "export": _export,
    "stats": _stats,
    "view": _view,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    if not isinstance(logging.getLevelName(settings.log_level), int):
        print(f"Unknown log level {settings.log_level!r}; check GUILD_LEDGER_LOG_LEVEL.")
        return 2
    setup_logging(settings.log_level)
    try:
        backend = build_backend(settings)
    except (OSError, json.JSONDecodeError) as exc:
        log.error("Cannot open data file %s: %s", settings.data_path, exc)
        return 2

    async def runner() -> int:
        try:
            return await COMMANDS[args.command](args, settings, backend)
        except LedgerError as exc:
            log.error("%s: %s", exc.kind.value, exc.message)
            return 1
        except OSError as exc:
            log.error("%s", exc)
            return 1
        finally:
            if isinstance(backend, RestBackend):
                await backend.close()

    return asyncio.run(runner())


if __name__ == "__main__":
    raise SystemExit(main())

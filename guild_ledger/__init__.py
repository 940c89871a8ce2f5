"""Core package for Guild Ledger.

Guild Ledger turns recognized screenshot text into typed guild event
records, stores them keyed by date and reconciles the names they contain
against the guild roster. The main models and services are re-exported so
consumers can import them from ``guild_ledger`` directly.
"""

from .core.models import Template
from .core.records import AARecord, GuildMember, GVGRecord, KVMRecord
from .core.storage import TemplateStorage
from .data.store import RecordStore
from .errors import ErrorKind, LedgerError
from .extraction.pipeline import ImportPipeline
from .reconcile.reconciler import RosterReconciler
from .reconcile.roster import RosterAccess
from .reconcile.writes import WritePort

__all__ = [
    "AARecord",
    "ErrorKind",
    "GVGRecord",
    "GuildMember",
    "ImportPipeline",
    "KVMRecord",
    "LedgerError",
    "RecordStore",
    "RosterAccess",
    "RosterReconciler",
    "Template",
    "TemplateStorage",
    "WritePort",
]

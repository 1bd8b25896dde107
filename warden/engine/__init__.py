"""Warden engine: gating, access logging, bypass detection and range mining."""

from .access_log import AccessLog
from .allow_deny import AllowDenyList, ListDecision
from .bypass_detector import BypassContext, BypassDetector
from .events import AccessEvent, AccessResult, AccessStats, ActionKind, LogFilters, MiningReport
from .log_miner import LogMiner
from .protection import GateDecision, GateResult, ProtectionService

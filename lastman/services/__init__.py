"""
Service layer: domain logic for contests, picks, round results, catalog and the poller.
Services own transaction boundaries; repositories never commit.
"""
from .catalog import CatalogService
from .pick_service import PickService
from .contest_service import ContestService
from .results_service import ResultsService, RoundReport, outcome_map
from .poller import PollReport, ResultsPoller, run_results_check
from .rounds import deadline_passed, resolve_active_round, round_deadline

__all__ = [
    "CatalogService",
    "PickService",
    "ContestService",
    "ResultsService",
    "RoundReport",
    "outcome_map",
    "PollReport",
    "ResultsPoller",
    "run_results_check",
    "deadline_passed",
    "resolve_active_round",
    "round_deadline",
]

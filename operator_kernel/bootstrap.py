"""
Startup wiring for the operator kernel.

``bootstrap()`` applies a ``KernelConfig``: configures structured logging,
initializes the engine, registers the immutability listeners and optionally
creates the schema.  ``build_services()`` constructs the services for one
session with the configured report and history settings.

Usage:
    config = bootstrap()
    with session_scope() as session:
        services = build_services(session, config)
        result = services.mutations.lock(operator_id, actor)
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from operator_kernel.config import KernelConfig, compute_checksum, get_active_config
from operator_kernel.db.engine import create_tables, init_engine_from_url
from operator_kernel.db.immutability import register_immutability_listeners
from operator_kernel.domain.clock import Clock, SystemClock
from operator_kernel.domain.dtos import HistoryEntryInfo
from operator_kernel.logging_config import configure_logging, get_logger
from operator_kernel.selectors.balance_selector import BalanceSelector
from operator_kernel.services.follow_up_status_service import FollowUpStatusService
from operator_kernel.services.history_recorder import HistoryRecorder
from operator_kernel.services.operator_mutation_service import OperatorMutationService

logger = get_logger("bootstrap")


@dataclass(frozen=True)
class KernelServices:
    """Services bound to one session."""

    history: HistoryRecorder
    mutations: OperatorMutationService
    balances: BalanceSelector
    follow_up_statuses: FollowUpStatusService
    history_limit: int

    def recent_history(self, operator_id: UUID) -> tuple[HistoryEntryInfo, ...]:
        """The newest ``history_limit`` entries of an operator cost."""
        return self.history.get_history(operator_id, limit=self.history_limit)


def bootstrap(config: KernelConfig | None = None, create_schema: bool = False) -> KernelConfig:
    """Apply ``config`` (or the active configuration) to the process."""
    config = config or get_active_config()
    configure_logging(level=config.log_level_number)
    init_engine_from_url(config.database_url, echo=config.echo_sql)
    register_immutability_listeners()
    if create_schema:
        create_tables()
    logger.info(
        "kernel_bootstrapped",
        extra={
            "config_checksum": compute_checksum(config.to_dict()),
            "create_schema": create_schema,
        },
    )
    return config


def build_services(
    session: Session,
    config: KernelConfig,
    clock: Clock | None = None,
) -> KernelServices:
    """Construct every kernel service for ``session``."""
    clock = clock or SystemClock()
    history = HistoryRecorder(
        session,
        clock,
        unknown_user_label=config.unknown_user_label,
    )
    return KernelServices(
        history=history,
        mutations=OperatorMutationService(session, clock, history),
        balances=BalanceSelector(session, clock, due_soon_days=config.due_soon_days),
        follow_up_statuses=FollowUpStatusService(session),
        history_limit=config.history_limit,
    )

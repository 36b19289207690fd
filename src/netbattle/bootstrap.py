import logging
import os
import random

from netbattle.application.services.battle_service import BattleService
from netbattle.application.services.event_bus import EventBus
from netbattle.application.services.round_timer import RoundTimerRegistry
from netbattle.application.settings import BattleSettings
from netbattle.domain.repositories import EntityCatalog
from netbattle.infrastructure.db.inmemory.repos import (
    InMemoryBattleSessionRepository,
    InMemoryChipCatalog,
    InMemoryEntityCatalog,
    InMemoryNaviRepository,
    InMemoryTaskRepository,
)
from netbattle.infrastructure.inmemory.atomic_persistence import create_inmemory_battle_persistor
from netbattle.infrastructure.inmemory.seed_catalog import SEED_CHIPS, SEED_VIRUSES
from netbattle.infrastructure.remote_catalog import (
    DEFAULT_CATALOG_TTL_SECONDS,
    RemoteEntityCatalog,
    TsvSheetClient,
    reload_chip_catalog,
)


logger = logging.getLogger(__name__)


def _is_truthy(value: str | None, *, default: str = "0") -> bool:
    return str(value if value is not None else default).strip().lower() in {"1", "true", "yes", "on"}


def _sheet_client() -> TsvSheetClient:
    return TsvSheetClient(
        timeout=float(os.getenv("NETBATTLE_HTTP_TIMEOUT_S", "10")),
        retries=int(os.getenv("NETBATTLE_HTTP_RETRIES", "2")),
        backoff_seconds=float(os.getenv("NETBATTLE_HTTP_BACKOFF_S", "0.2")),
    )


def _build_entity_catalog() -> EntityCatalog:
    virus_url = (os.getenv("NETBATTLE_VIRUS_TSV_URL") or "").strip()
    if not virus_url:
        return InMemoryEntityCatalog(SEED_VIRUSES)
    ttl_seconds = int(os.getenv("NETBATTLE_CATALOG_TTL_S", str(DEFAULT_CATALOG_TTL_SECONDS)))
    return RemoteEntityCatalog(_sheet_client(), virus_url, ttl_seconds=ttl_seconds)


def _load_chip_sheet(chip_store) -> bool:
    chip_url = (os.getenv("NETBATTLE_CHIP_TSV_URL") or "").strip()
    if not chip_url:
        return False
    try:
        reload_chip_catalog(_sheet_client(), chip_url, chip_store)
    except Exception:
        logger.exception("Chip sheet load failed; keeping the existing catalog", extra={"url": chip_url})
        return False
    return True


def create_inmemory_battle_service(
    *,
    timers: RoundTimerRegistry | None = None,
    event_bus: EventBus | None = None,
    rng: random.Random | None = None,
    settings: BattleSettings | None = None,
) -> BattleService:
    session_repo = InMemoryBattleSessionRepository()
    navi_repo = InMemoryNaviRepository()
    task_repo = InMemoryTaskRepository()
    chip_catalog = InMemoryChipCatalog(SEED_CHIPS)
    _load_chip_sheet(chip_catalog)

    return BattleService(
        session_repo=session_repo,
        chip_catalog=chip_catalog,
        entity_catalog=_build_entity_catalog(),
        navi_repo=navi_repo,
        task_repo=task_repo,
        persist_battle=create_inmemory_battle_persistor(session_repo, navi_repo, task_repo),
        event_bus=event_bus,
        timers=timers,
        settings=settings or BattleSettings.from_env(),
        rng=rng,
    )


def _build_sql_battle_service(*, timers, event_bus, rng, settings) -> BattleService:
    from netbattle.infrastructure.db.sql.atomic_persistence import commit_battle_atomic
    from netbattle.infrastructure.db.sql.repos import (
        SqlBattleSessionRepository,
        SqlChipCatalog,
        SqlNaviRepository,
        SqlTaskRepository,
    )

    session_repo = SqlBattleSessionRepository()
    chip_catalog = SqlChipCatalog()

    # Early connectivity check so the fallback happens before any battle starts.
    try:
        session_repo.list_keys()
    except Exception as exc:
        raise RuntimeError(f"Database connectivity check failed: {exc}") from exc

    if not _load_chip_sheet(chip_catalog) and not chip_catalog.list_battle_chips():
        chip_catalog.upsert_many(SEED_CHIPS)

    service = BattleService(
        session_repo=session_repo,
        chip_catalog=chip_catalog,
        entity_catalog=_build_entity_catalog(),
        navi_repo=SqlNaviRepository(),
        task_repo=SqlTaskRepository(),
        persist_battle=commit_battle_atomic,
        event_bus=event_bus,
        timers=timers,
        settings=settings,
        rng=rng,
    )
    service.recover_timers()
    return service


def create_battle_service(
    *,
    timers: RoundTimerRegistry | None = None,
    event_bus: EventBus | None = None,
    rng: random.Random | None = None,
    settings: BattleSettings | None = None,
) -> BattleService:
    options = {
        "timers": timers or RoundTimerRegistry(),
        "event_bus": event_bus or EventBus(),
        "rng": rng or random.Random(),
        "settings": settings or BattleSettings.from_env(),
    }
    if os.getenv("NETBATTLE_DATABASE_URL"):
        try:
            return _build_sql_battle_service(**options)
        except Exception as exc:
            if not _is_truthy(os.getenv("NETBATTLE_INMEMORY_FALLBACK"), default="1"):
                raise
            logger.warning("Database unavailable, falling back to in-memory. Reason: %s", exc)

    return create_inmemory_battle_service(**options)

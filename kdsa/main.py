"""KDSA Decision Engine - Main Application Entry Point."""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
import structlog

from kdsa.api.routes import router as api_router
from kdsa.audit.ledger import AuditLedger
from kdsa.audit.models import Base
from kdsa.audit.repository import (
    BaserowLedgerRepository,
    InMemoryLedgerRepository,
    LedgerRepository,
    SqlLedgerRepository,
)
from kdsa.common.exceptions import register_exception_handlers
from kdsa.core.config import Settings, get_settings
from kdsa.core.middleware import RequestIdMiddleware, get_request_id
from kdsa.decision.determinism import DeterminismVerifier
from kdsa.decision.generation import GenerationService, build_generation_service
from kdsa.decision.orchestrator import DecisionOrchestrator
from kdsa.decision.premortem import ContrarianGenerator, PreMortemGenerator


# ============================================================================
# LOGGING
# ============================================================================


def add_request_context(logger, method_name, event_dict):
    """Add request context to logs."""
    request_id = get_request_id()
    if request_id:
        event_dict.setdefault("request_id", request_id)
    return event_dict


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            add_request_context,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if settings.log_format == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger(__name__)


# ============================================================================
# COMPONENT FACTORIES
# ============================================================================


async def build_ledger_repository(settings: Settings) -> LedgerRepository:
    """Create the configured ledger storage backend."""
    if settings.ledger_backend == "sql":
        engine = create_async_engine(settings.database_url, echo=settings.debug)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("ledger_tables_ready", db=settings.database_url.split("@")[-1])
        return SqlLedgerRepository(
            async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
        )

    if settings.ledger_backend == "baserow":
        if not settings.baserow_token or settings.baserow_table_id is None:
            raise RuntimeError("BASEROW_TOKEN and BASEROW_TABLE_ID are required for the baserow ledger")
        return BaserowLedgerRepository(
            base_url=settings.baserow_url,
            token=settings.baserow_token,
            table_id=settings.baserow_table_id,
        )

    log = logger.error if settings.is_production else logger.warning
    log("ledger_in_memory", msg="Ledger entries are lost on restart")
    return InMemoryLedgerRepository()


def build_orchestrator(
    settings: Settings,
    ledger: AuditLedger,
    generation_service: GenerationService,
) -> DecisionOrchestrator:
    timeout = settings.generation_timeout_seconds
    pre_mortem = PreMortemGenerator(generation_service, timeout_seconds=timeout)
    return DecisionOrchestrator(
        ledger=ledger,
        pre_mortem=pre_mortem,
        contrarian=ContrarianGenerator(generation_service, timeout_seconds=timeout),
        verifier=DeterminismVerifier(pre_mortem),
        seed=settings.generation_seed,
        determinism_iterations=settings.determinism_iterations,
        compliance_tags=settings.compliance_tags,
    )


# ============================================================================
# APP FACTORY
# ============================================================================


def create_app(
    settings: Optional[Settings] = None,
    generation_service: Optional[GenerationService] = None,
    ledger_repository: Optional[LedgerRepository] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    ``generation_service`` and ``ledger_repository`` override the
    settings-driven defaults (used by tests and embedding callers).
    """
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "kdsa_starting",
            version=settings.app_version,
            environment=settings.environment,
            ledger_backend=settings.ledger_backend,
        )

        repository = ledger_repository or await build_ledger_repository(settings)
        ledger = AuditLedger(repository)
        await ledger.initialize()

        verification = await ledger.verify_chain()
        if not verification.valid:
            # Keep serving; the violation stays visible on /health and /audit/verify
            logger.critical(
                "startup_chain_verification_failed",
                broken_at_sequence=verification.broken_at_sequence,
                error_type=verification.error_type,
            )

        service = generation_service or build_generation_service(settings)

        app.state.settings = settings
        app.state.ledger = ledger
        app.state.orchestrator = build_orchestrator(settings, ledger, service)

        logger.info("kdsa_ready", entries=verification.entries_checked, docs_url="/docs")

        yield

        logger.info("kdsa_shutting_down")
        await ledger.close()
        logger.info("kdsa_stopped")

    app = FastAPI(
        title=settings.app_name,
        description="""
# KDSA Decision Engine

Human-factor risk sensing, de-biased decision analysis and an immutable
governance ledger.

## API Sections

- **Risk Sensing**: composite resilience score, zone and trigger conditions
- **Decision Engine**: bias detection, de-biasing protocols, pre-mortem
- **Audit Ledger**: hash-chained decision log and integrity verification
        """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint - service info."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "status": "operational",
            "environment": settings.environment,
            "docs": "/docs",
            "api": settings.api_prefix,
        }

    return app


# ============================================================================
# DEVELOPMENT SERVER
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "kdsa.main:create_app",
        factory=True,
        host=_settings.host,
        port=_settings.port,
        reload=_settings.debug,
        log_level=_settings.log_level.lower(),
    )

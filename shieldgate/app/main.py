from contextlib import asynccontextmanager
from functools import partial
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine

from shieldgate.app.core.config import Settings, settings as default_settings
from shieldgate.app.core.logging import get_logger, setup_logging
from shieldgate.app.db.async_session import close_async_engine, create_engine_from_settings
from shieldgate.app.middleware.client_key import get_client_key
from shieldgate.app.middleware.rate_limit import RateLimitMiddleware
from shieldgate.app.middleware.shield import ShieldMiddleware
from shieldgate.app.services.shield import (
    InMemorySuspicionStore,
    RedisSuspicionStore,
    Shield,
    ShieldOptions,
    SqlSuspicionStore,
    SuspicionStore,
    SuspicionSweeper,
)
from shieldgate.app.stores import (
    BucketOptions,
    BucketStore,
    MemoryLeakyBucketStore,
    MemoryTokenBucketStore,
    SqlTokenBucketStore,
)

logger = get_logger(__name__)


def bucket_options_from_settings(config: Settings) -> BucketOptions:
    return BucketOptions(
        max=config.rate_limit_max_tokens,
        refill_rate=config.rate_limit_refill_rate,
        window_ms=config.rate_limit_window_ms,
    )


def shield_options_from_settings(config: Settings) -> ShieldOptions:
    return ShieldOptions(
        message=config.shield_message,
        suspicion_threshold=config.shield_suspicion_threshold,
        block_duration_ms=config.shield_block_duration_ms,
        xss=config.shield_xss,
        sql_injection=config.shield_sql_injection,
        lfi=config.shield_lfi,
        rfi=config.shield_rfi,
        shell_injection=config.shield_shell_injection,
    )


def build_bucket_store(config: Settings, engine: Optional[AsyncEngine] = None) -> BucketStore:
    """Create the rate-limit store selected by ``rate_limit_backend``.

    The database backend implements the token bucket only.
    """
    options = bucket_options_from_settings(config)
    if config.rate_limit_backend == "database":
        if config.rate_limit_algorithm != "token_bucket":
            raise ValueError("The database rate-limit backend supports token_bucket only")
        return SqlTokenBucketStore(engine or create_engine_from_settings(config), options)
    if config.rate_limit_algorithm == "leaky_bucket":
        return MemoryLeakyBucketStore(options)
    return MemoryTokenBucketStore(options)


def build_suspicion_store(config: Settings, engine: Optional[AsyncEngine] = None) -> SuspicionStore:
    """Create the suspicion store selected by ``shield_backend``."""
    if config.shield_backend == "redis":
        return RedisSuspicionStore(
            redis_url=config.redis_url,
            threshold=config.shield_suspicion_threshold,
            ttl_ms=config.shield_score_ttl_ms,
            key_prefix=config.redis_key_prefix,
        )
    if config.shield_backend == "database":
        return SqlSuspicionStore(
            engine or create_engine_from_settings(config),
            threshold=config.shield_suspicion_threshold,
            ttl_ms=config.shield_score_ttl_ms,
            max_retries=config.shield_cas_max_retries,
        )
    return InMemorySuspicionStore(
        threshold=config.shield_suspicion_threshold,
        ttl_ms=config.shield_score_ttl_ms,
    )


def create_app(
    config: Optional[Settings] = None,
    bucket_store: Optional[BucketStore] = None,
    suspicion_store: Optional[SuspicionStore] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Stores may be injected (tests do); otherwise they are built from
    ``config``. Both durable backends share one engine when both are
    selected.

    Returns:
        Configured FastAPI application instance
    """
    config = config or default_settings
    setup_logging(config)

    build_buckets = bucket_store is None and config.rate_limit_enabled
    build_suspicion = suspicion_store is None and config.shield_enabled

    engine: Optional[AsyncEngine] = None
    if (build_buckets and config.rate_limit_backend == "database") or (
        build_suspicion and config.shield_backend == "database"
    ):
        engine = create_engine_from_settings(config)
    if build_buckets:
        bucket_store = build_bucket_store(config, engine)
    if build_suspicion:
        suspicion_store = build_suspicion_store(config, engine)
    client_key = partial(get_client_key, trust_forwarded_for=config.trust_forwarded_for)

    shield = (
        Shield(shield_options_from_settings(config), suspicion_store)
        if config.shield_enabled
        else None
    )
    sweeper = (
        SuspicionSweeper(suspicion_store, config.shield_sweep_interval_seconds)
        if shield is not None
        else None
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[dict, None]:
        """Initialize the stores built here, start the sweeper, and tear
        everything down on exit. Injected stores arrive initialized."""
        if build_buckets:
            await bucket_store.init(bucket_options_from_settings(config))
        if build_suspicion:
            await suspicion_store.init()
        if sweeper is not None:
            await sweeper.start()

        logger.info(
            "Application startup complete",
            extra={
                "rate_limit_backend": config.rate_limit_backend if bucket_store is not None else None,
                "shield_backend": config.shield_backend if shield is not None else None,
            },
        )

        yield {"bucket_store": bucket_store, "shield": shield}

        if sweeper is not None:
            await sweeper.stop()
        if bucket_store is not None:
            await bucket_store.shutdown()
        if suspicion_store is not None:
            await suspicion_store.shutdown()
        if engine is not None:
            await close_async_engine(engine)

        logger.info("Application shutdown complete")

    app = FastAPI(
        title="ShieldGate",
        description="Admission control with per-client rate limiting and suspicion scoring",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Order matters: last added = first executed. The shield runs first so
    # blocked clients never consume rate-limit capacity.
    if bucket_store is not None:
        app.add_middleware(
            RateLimitMiddleware,
            store=bucket_store,
            include_headers=config.rate_limit_include_headers,
            fail_closed=config.rate_limit_fail_closed,
            key_func=client_key,
        )
    if shield is not None:
        app.add_middleware(
            ShieldMiddleware,
            shield=shield,
            fail_closed=config.shield_fail_closed,
            key_func=client_key,
        )

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app

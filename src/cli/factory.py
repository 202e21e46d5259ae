"""Factories that build runtime objects from the resolved config.

CLI commands never construct databases, clients or engines directly;
tests patch these functions to inject fakes.
"""

import logging
import sys

from sqlalchemy.orm import Session

from src.cli.config import BulkTagConfig, LoggingConfig
from src.clients.base import TagClient
from src.clients.shopify import ShopifyTagClient
from src.db.connection import Database
from src.services.job_recorder import JobRecorder
from src.services.pacer import Pacer
from src.services.retry import RetryPolicy
from src.services.tag_mutation_engine import TagMutationEngine
from src.services.tag_usage_service import TagUsageService

LOG_FORMAT = "%(asctime)s %(levelname)s:%(name)s:%(message)s"


def configure_logging(config: LoggingConfig) -> None:
    """Configure the root logger once from the logging section."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.file:
        handlers.append(logging.FileHandler(config.file))
    level = logging.getLevelName(config.level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def open_database(config: BulkTagConfig) -> Database:
    """Open the state database named by the config."""
    return Database(url=config.database.url, echo=config.database.echo).open()


def build_tag_client(config: BulkTagConfig) -> TagClient:
    """Create the Shopify tag client.

    Raises:
        ValueError: If store_url or access_token is not configured.
    """
    shopify = config.shopify
    return ShopifyTagClient(
        store_url=shopify.store_url,
        access_token=shopify.access_token,
        api_version=shopify.api_version,
        timeout=config.engine.call_timeout_seconds,
    )


def build_engine(
    config: BulkTagConfig,
    tag_client: TagClient,
    session: Session,
    shop: str,
) -> TagMutationEngine:
    """Wire a TagMutationEngine from the engine section of the config."""
    engine_cfg = config.engine
    return TagMutationEngine(
        tag_client=tag_client,
        recorder=JobRecorder(session),
        usage_service=TagUsageService(session),
        pacer=Pacer(engine_cfg.pacing_interval_ms / 1000),
        retry_policy=RetryPolicy(
            max_attempts=engine_cfg.retry_attempts,
            base_delay=engine_cfg.retry_base_delay_ms / 1000,
        ),
        shop=shop,
        batch_size=engine_cfg.batch_size,
        call_timeout=engine_cfg.call_timeout_seconds,
        job_deadline=engine_cfg.job_deadline_seconds,
        replace_usage_mode=engine_cfg.replace_usage_mode,
    )

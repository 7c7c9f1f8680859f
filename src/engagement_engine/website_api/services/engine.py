"""Engine construction from settings and the request dependency."""

import json
import logging
from pathlib import Path

from fastapi import Request

from ...core.config import EngineConfigManager
from ...core.rules import Instrument
from ...engine import EngagementEngine
from ...notifications.sequences import HttpSequenceTrigger, RecordingSequenceTrigger
from ...storage.database import SQLiteStore
from ..config import settings

logger = logging.getLogger(__name__)


def load_instruments(path: Path):
    """Read assessment instruments from a JSON list."""
    with open(path, 'r') as f:
        return [Instrument.from_dict(data) for data in json.load(f)]


def build_engine() -> EngagementEngine:
    """Build an engine from environment settings."""
    config_manager = EngineConfigManager(Path(settings.config_path) if settings.config_path else None)

    if settings.sequence_webhook_url:
        trigger = HttpSequenceTrigger(
            settings.sequence_webhook_url,
            secret=settings.sequence_webhook_secret or None,
        )
    else:
        logger.info("No sequence webhook configured; recording sequence requests in memory")
        trigger = RecordingSequenceTrigger()

    engine = EngagementEngine(
        store=SQLiteStore(Path(settings.db_path)),
        config=config_manager.config,
        sequence_trigger=trigger,
    )

    if settings.instruments_path:
        for instrument in load_instruments(Path(settings.instruments_path)):
            engine.register_instrument(instrument)
        logger.info(f"Loaded {len(engine.instruments)} assessment instruments")

    return engine


def get_engine(request: Request) -> EngagementEngine:
    return request.app.state.engine

"""Configurable thresholds, timings and cache policy for the engine."""

import json
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, Optional, Any
from datetime import datetime

logger = logging.getLogger(__name__)


@dataclass
class ScoringConfig:
    """Tier thresholds and score decay settings."""

    # Tier thresholds on total score
    engaged_threshold: float = 30
    soft_member_threshold: float = 70

    # Point overrides per action kind value (e.g. {"cta_click": 5})
    action_point_overrides: Dict[str, float] = field(default_factory=dict)

    # Time on site handed off at session end
    time_on_site_points_per_minute: float = 2.0
    time_on_site_max_points: float = 10.0

    # Decay settings (reduce score over time without activity)
    enable_score_decay: bool = False
    decay_days: int = 30  # Days before decay starts
    decay_rate: float = 0.1  # 10% per period


@dataclass
class SessionConfig:
    """Session idle timeout and heartbeat cadence."""

    idle_timeout_seconds: float = 30 * 60
    heartbeat_interval_seconds: float = 60
    # Recently ended session ids remembered so they are not resurrected
    ended_history_size: int = 10000


@dataclass
class CacheConfig:
    """Read-through cache sizing and TTLs (seconds)."""

    capacity: int = 5000
    sweep_threshold: int = 100
    sweep_interval_seconds: float = 5 * 60
    stale_after_seconds: float = 30 * 60
    loader_timeout_seconds: Optional[float] = None

    user_ttl: float = 30 * 60
    lead_score_ttl: float = 5 * 60
    assessment_ttl: float = 60 * 60
    content_ttl: float = 24 * 60 * 60
    listing_ttl: float = 15 * 60


@dataclass
class BusConfig:
    """Notification bus subscription housekeeping."""

    idle_subscription_seconds: float = 30 * 60


@dataclass
class EngineConfig:
    """Top-level engine configuration."""

    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    sessions: SessionConfig = field(default_factory=SessionConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    bus: BusConfig = field(default_factory=BusConfig)
    updated_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Build a config from a (possibly partial) dict, keeping defaults."""
        config = cls()
        sections = {
            "scoring": config.scoring,
            "sessions": config.sessions,
            "cache": config.cache,
            "bus": config.bus,
        }
        for name, section in sections.items():
            for key, value in (data.get(name) or {}).items():
                if hasattr(section, key):
                    setattr(section, key, value)
                else:
                    logger.warning(f"Ignoring unknown config key: {name}.{key}")
        if data.get("updated_at"):
            config.updated_at = datetime.fromisoformat(data["updated_at"])
        return config

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scoring": asdict(self.scoring),
            "sessions": asdict(self.sessions),
            "cache": asdict(self.cache),
            "bus": asdict(self.bus),
            "updated_at": self.updated_at.isoformat(),
        }


class EngineConfigManager:
    """Load and persist engine configuration as JSON."""

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize config manager."""
        self.config_path = config_path or Path.home() / ".engagement-engine" / "engine_config.json"
        self.config = self._load_config()

    def _load_config(self) -> EngineConfig:
        """Load configuration from file."""
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    return EngineConfig.from_dict(json.load(f))
            except Exception as e:
                logger.error(f"Error loading engine config: {e}")

        return EngineConfig()

    def save_config(self):
        """Save configuration to file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, 'w') as f:
            json.dump(self.config.to_dict(), f, indent=2)

    def update_thresholds(self, engaged: float, soft_member: float):
        """Update tier thresholds."""
        if not 0 < engaged < soft_member:
            raise ValueError("Thresholds must satisfy 0 < engaged < soft_member")
        self.config.scoring.engaged_threshold = engaged
        self.config.scoring.soft_member_threshold = soft_member
        self.config.updated_at = datetime.now()
        self.save_config()

    def override_action_points(self, action_kind: str, points: float):
        """Override the default point value of a discrete action."""
        self.config.scoring.action_point_overrides[action_kind] = points
        self.config.updated_at = datetime.now()
        self.save_config()

    def set_idle_timeout(self, seconds: float):
        """Set the session idle timeout."""
        self.config.sessions.idle_timeout_seconds = seconds
        self.config.updated_at = datetime.now()
        self.save_config()

"""
Dashboard settings lifecycle.

The dashboard configuration is a process-wide entity: ``initialize()`` runs
once at startup (creating the stored row from configured defaults when
absent), ``current`` serves the cached value, and ``update()`` applies an
audited patch in one transaction and refreshes the cache.
"""

import math
from typing import Any, Optional

import structlog

from socialpulse.config import Settings, get_settings
from socialpulse.errors import ConflictError
from socialpulse.models.audit import AuditEntry
from socialpulse.models.settings import DashboardSetting, SettingsPatch
from socialpulse.storage.base import StorageBackend
from socialpulse.utils.clock import Clock, utc_now
from socialpulse.utils.ids import require_uuid
from socialpulse.utils.logging import bind_request

from .formulas import clamp

logger = structlog.get_logger()

PERCENT_FIELDS = (
    "target_shs",
    "risk_threshold",
    "sentiment_drop_threshold",
    "er_drop_threshold",
)


def default_setting(config: Settings) -> DashboardSetting:
    return DashboardSetting(
        focus_account=config.default_focus_account,
        target_quarterly_sov_pp=config.default_target_quarterly_sov_pp,
        target_shs=config.default_target_shs,
        risk_threshold=config.default_risk_threshold,
        sentiment_drop_threshold=config.default_sentiment_drop_threshold,
        er_drop_threshold=config.default_er_drop_threshold,
        alert_cooldown_minutes=config.default_alert_cooldown_minutes,
        metadata={"official": False},
    )


def normalize_patch(patch: SettingsPatch) -> dict[str, Any]:
    """Clamp supplied fields into their allowed ranges; unset fields are dropped."""
    values = patch.model_dump(exclude_unset=True)
    normalized: dict[str, Any] = {}
    for name, value in values.items():
        if name == "focus_account":
            normalized[name] = (value or "").strip() or None
        elif name == "target_quarterly_sov_pp" and value is not None:
            normalized[name] = clamp(float(value), 0, 1000)
        elif name in PERCENT_FIELDS and value is not None:
            normalized[name] = clamp(float(value), 0, 100)
        elif name == "alert_cooldown_minutes" and value is not None:
            normalized[name] = max(1, int(math.floor(value)))
        elif name == "metadata" and value is not None:
            normalized[name] = dict(value)
    return normalized


class DashboardSettingsManager:
    """
    Owns the dashboard configuration for the process.

    Example:
        >>> manager = DashboardSettingsManager(storage)
        >>> manager.initialize()
        >>> manager.current.risk_threshold
        60.0
    """

    def __init__(
        self,
        storage: StorageBackend,
        config: Optional[Settings] = None,
        clock: Clock = utc_now,
    ):
        self.storage = storage
        self.config = config or get_settings()
        self.clock = clock
        self._current: Optional[DashboardSetting] = None
        self.logger = structlog.get_logger()

    def initialize(self) -> DashboardSetting:
        """Load the stored settings, creating them from defaults on first start."""
        with self.storage.transaction():
            stored = self.storage.read_dashboard_setting()
            if stored is None:
                stored = default_setting(self.config)
                self.storage.insert_dashboard_setting(stored)
                self.logger.info("dashboard_settings_created")
        self._current = stored
        self.logger.info("dashboard_settings_initialized", focus_account=stored.focus_account)
        return stored

    @property
    def initialized(self) -> bool:
        return self._current is not None

    @property
    def current(self) -> DashboardSetting:
        if self._current is None:
            raise RuntimeError("Dashboard settings used before initialize()")
        return self._current

    def update(
        self,
        patch: SettingsPatch,
        actor_user_id: str,
        request_id: Optional[str] = None,
    ) -> DashboardSetting:
        """
        Apply an audited patch.

        Raises:
            InvalidRequestError: actor is not a UUID
            ConflictError: the patch changes nothing
        """
        actor = require_uuid(actor_user_id, "actor_user_id")
        if request_id:
            bind_request(request_id, actor)
        changes = normalize_patch(patch)

        with self.storage.transaction():
            before = self.storage.read_dashboard_setting() or default_setting(self.config)
            effective = {
                name: value for name, value in changes.items() if getattr(before, name) != value
            }
            if not effective:
                raise ConflictError("Settings patch has no effective changes")

            now = self.clock()
            after = before.model_copy(
                update={**effective, "updated_by_user_id": actor, "updated_at": now}
            )
            self.storage.update_dashboard_setting(after)
            self.storage.append_audit(
                AuditEntry(
                    actor_user_id=actor,
                    action="social_settings_updated",
                    resource_type="dashboard_setting",
                    resource_id="default",
                    request_id=request_id,
                    before=before.editable_fields(),
                    after=after.editable_fields(),
                    created_at=now,
                )
            )

        self._current = after
        self.logger.info(
            "settings_updated", actor_user_id=actor, fields=sorted(effective.keys())
        )
        return after

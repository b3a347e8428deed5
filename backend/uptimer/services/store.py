"""Monitor store - persistence collaborator used by the engine.

Every method opens its own short session so concurrent check cycles never
share a transaction. Driver errors surface as StorageError after transient
faults have been retried.
"""
import json
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..database import async_session
from ..errors import ConfigError, StorageError
from ..models import Alert, Heartbeat, Monitor, NotificationGroup
from ..schemas import HeartbeatData, MonitorConfig, MonitorCreate, MonitorState
from ..utils.db_utils import retry_on_lock

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MonitorStore:
    """Read/write access to monitors, heartbeats, alerts and recipients."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self._session_factory = session_factory or async_session

    async def _run(self, what: str, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async def attempt() -> T:
            async with self._session_factory() as session:
                return await operation(session)

        try:
            return await retry_on_lock(attempt)
        except SQLAlchemyError as e:
            raise StorageError(f"{what} failed: {e}", cause=e)

    def _to_configs(self, rows) -> List[MonitorConfig]:
        configs = []
        for row in rows:
            try:
                configs.append(MonitorConfig.from_model(row))
            except ConfigError as e:
                logger.error(f"Skipping monitor {row.id}: {e}")
        return configs

    async def create_monitor(self, data: MonitorCreate) -> MonitorConfig:
        async def op(session: AsyncSession) -> MonitorConfig:
            monitor = Monitor(
                user_id=data.user_id,
                notification_id=data.notification_id,
                name=data.name,
                type=data.type.value,
                url=data.url,
                port=data.port,
                frequency=data.frequency,
                active=data.active,
                status=MonitorState.UP.value,
                alert_threshold=data.alert_threshold,
                method=data.method,
                headers=data.headers,
                body=data.body,
                http_auth_method=data.auth_method.value,
                basic_auth_user=data.basic_auth_user,
                basic_auth_pass=data.basic_auth_pass,
                bearer_token=data.bearer_token,
                timeout=data.timeout,
                redirects=data.redirects,
                status_codes=sorted(data.assertions.allowed_codes),
                max_response_ms=data.assertions.max_response_ms,
                content_types=sorted(data.assertions.allowed_content_types),
            )
            session.add(monitor)
            await session.commit()
            await session.refresh(monitor)
            return MonitorConfig.from_model(monitor)

        return await self._run("create monitor", op)

    async def get_monitor_by_id(self, monitor_id: int) -> Optional[MonitorConfig]:
        """Load one monitor. Raises ConfigError when the stored row is invalid."""
        async def op(session: AsyncSession):
            result = await session.execute(select(Monitor).where(Monitor.id == monitor_id))
            return result.scalar_one_or_none()

        row = await self._run("load monitor", op)
        return MonitorConfig.from_model(row) if row else None

    async def get_active_monitors_for_user(self, user_id: int) -> List[MonitorConfig]:
        async def op(session: AsyncSession):
            result = await session.execute(
                select(Monitor)
                .where(Monitor.user_id == user_id, Monitor.active.is_(True))
                .order_by(Monitor.created_at.desc(), Monitor.id.desc())
            )
            return result.scalars().all()

        return self._to_configs(await self._run("load user monitors", op))

    async def get_all_active_monitors(self) -> List[MonitorConfig]:
        async def op(session: AsyncSession):
            result = await session.execute(
                select(Monitor)
                .where(Monitor.active.is_(True))
                .order_by(Monitor.created_at.desc(), Monitor.id.desc())
            )
            return result.scalars().all()

        return self._to_configs(await self._run("load active monitors", op))

    async def update_monitor_status(
        self,
        monitor_id: int,
        status: MonitorState,
        last_changed: Optional[datetime],
    ) -> None:
        """Write status and lastChanged. Idempotent when values are unchanged."""
        async def op(session: AsyncSession):
            await session.execute(
                update(Monitor)
                .where(Monitor.id == monitor_id)
                .values(status=int(status), last_changed=last_changed)
            )
            await session.commit()

        await self._run("update monitor status", op)

    async def record_heartbeat(self, data: HeartbeatData) -> None:
        async def op(session: AsyncSession):
            session.add(Heartbeat(**{**data.model_dump(), "status": int(data.status)}))
            await session.commit()

        await self._run("record heartbeat", op)

    async def get_heartbeats(self, monitor_id: int, limit: int = 100) -> List[HeartbeatData]:
        """Most recent heartbeats first."""
        async def op(session: AsyncSession):
            result = await session.execute(
                select(Heartbeat)
                .where(Heartbeat.monitor_id == monitor_id)
                .order_by(Heartbeat.timestamp.desc(), Heartbeat.id.desc())
                .limit(limit)
            )
            return result.scalars().all()

        rows = await self._run("load heartbeats", op)
        return [HeartbeatData.model_validate(row) for row in rows]

    async def delete_monitor(self, monitor_id: int) -> None:
        """Delete a monitor, purging its heartbeats and alert log first."""
        async def op(session: AsyncSession):
            await session.execute(delete(Heartbeat).where(Heartbeat.monitor_id == monitor_id))
            await session.execute(delete(Alert).where(Alert.monitor_id == monitor_id))
            await session.execute(delete(Monitor).where(Monitor.id == monitor_id))
            await session.commit()

        await self._run("delete monitor", op)

    async def create_notification_group(self, user_id: int, group_name: str, emails: List[str]) -> int:
        async def op(session: AsyncSession) -> int:
            group = NotificationGroup(user_id=user_id, group_name=group_name, emails=",".join(emails))
            session.add(group)
            await session.commit()
            await session.refresh(group)
            return group.id

        return await self._run("create notification group", op)

    async def get_notification_recipients(self, monitor: MonitorConfig) -> List[str]:
        if monitor.notification_id is None:
            return []

        async def op(session: AsyncSession):
            result = await session.execute(
                select(NotificationGroup).where(NotificationGroup.id == monitor.notification_id)
            )
            return result.scalar_one_or_none()

        group = await self._run("load notification group", op)
        return group.recipients if group else []

    async def record_alert(
        self,
        monitor_id: int,
        alert_type: str,
        channel: str,
        payload: Any,
        success: bool,
    ) -> None:
        async def op(session: AsyncSession):
            session.add(Alert(
                monitor_id=monitor_id,
                alert_type=alert_type,
                channel=channel,
                payload=json.dumps(payload, default=str),
                success=1 if success else 0,
            ))
            await session.commit()

        await self._run("record alert", op)

    async def get_alerts(self, monitor_id: int) -> List[Alert]:
        async def op(session: AsyncSession):
            result = await session.execute(
                select(Alert).where(Alert.monitor_id == monitor_id).order_by(Alert.id)
            )
            return result.scalars().all()

        return list(await self._run("load alerts", op))


# Global instance
monitor_store = MonitorStore()

import logging
from typing import Optional

from sqlmodel import Session, select

from tickethub.domain.models import AppSetting

logger = logging.getLogger("settings_service")

SYNC_INTERVAL_KEY = "sync_interval_minutes"
DEFAULT_SYNC_INTERVAL_MINUTES = 30


def list_settings(session: Session) -> list[AppSetting]:
    return session.exec(select(AppSetting).order_by(AppSetting.key)).all()


def get_setting(session: Session, key: str) -> Optional[str]:
    setting = session.get(AppSetting, key)
    return setting.value if setting else None


def set_setting(session: Session, key: str, value: str) -> AppSetting:
    setting = session.get(AppSetting, key) or AppSetting(key=key, value=value)
    setting.value = value
    session.add(setting)
    session.commit()
    session.refresh(setting)
    return setting


def get_sync_interval_minutes(session: Session) -> int:
    raw = get_setting(session, SYNC_INTERVAL_KEY)
    if raw is None:
        return DEFAULT_SYNC_INTERVAL_MINUTES
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, periodic sync disabled", SYNC_INTERVAL_KEY, raw)
        return 0

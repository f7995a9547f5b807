# liveshop/core/utils/dates.py
"""
Utilitários de data no fuso da loja.

Chaves de calendário (dia e semana ISO) sempre são calculadas no fuso local,
nunca em UTC: um vivo às 22h de Buenos Aires já é "amanhã" em UTC.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from liveshop.core.config import config


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Normaliza datetimes ingênuos (assumidos UTC) e converte os demais para UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_zone(tz_name: Optional[str] = None) -> ZoneInfo:
    return ZoneInfo(tz_name or config.TIMEZONE)


def to_local(value: datetime, tz_name: Optional[str] = None) -> datetime:
    return ensure_utc(value).astimezone(get_zone(tz_name))


def local_day_key(value: datetime, tz_name: Optional[str] = None) -> str:
    """Ex: '2026-10-19'"""
    return to_local(value, tz_name).date().isoformat()


def iso_week_key(value: datetime, tz_name: Optional[str] = None) -> str:
    """Ex: '2026-W43'"""
    year, week, _ = to_local(value, tz_name).isocalendar()
    return f"{year}-W{week:02d}"


def local_time_label(value: datetime, tz_name: Optional[str] = None) -> str:
    """Horário 'HH:mm' exibido na agenda"""
    return to_local(value, tz_name).strftime("%H:%M")


def local_day_bounds(value: datetime, tz_name: Optional[str] = None) -> Tuple[datetime, datetime]:
    """Início (inclusivo) e fim (exclusivo) do dia local, em UTC"""
    local = to_local(value, tz_name)
    start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    end = start + timedelta(days=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def iso_week_bounds(value: datetime, tz_name: Optional[str] = None) -> Tuple[datetime, datetime]:
    """Segunda 00:00 (inclusivo) até a segunda seguinte (exclusivo), em UTC"""
    local = to_local(value, tz_name)
    monday = (local - timedelta(days=local.weekday())).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    return monday.astimezone(timezone.utc), (monday + timedelta(days=7)).astimezone(timezone.utc)

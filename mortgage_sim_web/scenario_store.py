"""Persistence layer for saved settings and comparison scenarios.

This module abstracts persistence so the web app can keep each user's
current settings and their saved scenarios in an external database instead of
browser storage. It defaults to SQLite for local development, but accepts any
SQLAlchemy-compatible URL (e.g. PostgreSQL/MySQL).
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, DateTime, String, Text, create_engine, select
from sqlalchemy.orm import declarative_base, sessionmaker

logger = logging.getLogger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SavedSettingsModel(Base):
    __tablename__ = "saved_settings"

    user_token = Column(String(64), primary_key=True)
    settings_json = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)


class ScenarioModel(Base):
    __tablename__ = "scenarios"

    id = Column(String(64), primary_key=True)
    user_token = Column(String(64), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    settings_json = Column(Text, nullable=False)
    summary_json = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)


class ScenarioStore:
    """Database-backed settings and scenario store."""

    def __init__(self, url: str, *, max_per_user: int = 10) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)
        self._max_per_user = max_per_user

    # Saved settings (one row per user)

    def load_settings(self, user_token: str) -> Optional[Dict[str, Any]]:
        if not user_token:
            return None
        with self._session_factory() as session:
            row = session.get(SavedSettingsModel, user_token)
            return json.loads(row.settings_json) if row else None

    def save_settings(self, user_token: str, settings: Dict[str, Any]) -> None:
        if not user_token:
            return
        with self._session_factory() as session:
            row = session.get(SavedSettingsModel, user_token)
            if row is None:
                session.add(SavedSettingsModel(user_token=user_token, settings_json=json.dumps(settings)))
            else:
                row.settings_json = json.dumps(settings)
            session.commit()

    def reset_settings(self, user_token: str) -> None:
        if not user_token:
            return
        with self._session_factory() as session:
            row = session.get(SavedSettingsModel, user_token)
            if row:
                session.delete(row)
                session.commit()

    # Comparison scenarios

    @staticmethod
    def _user_scenarios(session, user_token: str, newest_first: bool = False) -> List[ScenarioModel]:
        created = ScenarioModel.created_at.desc() if newest_first else ScenarioModel.created_at.asc()
        query = select(ScenarioModel).where(ScenarioModel.user_token == user_token).order_by(created)
        return list(session.execute(query).scalars())

    def list_scenarios(self, user_token: str) -> List[Dict[str, Any]]:
        if not user_token:
            return []
        with self._session_factory() as session:
            return [self._to_dict(row) for row in self._user_scenarios(session, user_token)]

    def add_scenario(self, user_token: str, scenario_id: str, name: str, settings: dict, summary: dict) -> None:
        if not user_token:
            return
        payload = ScenarioModel(
            id=scenario_id,
            user_token=user_token,
            name=name,
            settings_json=json.dumps(settings),
            summary_json=json.dumps(summary),
        )
        with self._session_factory() as session:
            session.add(payload)
            session.commit()
        logger.info("Saved scenario %s (%s)", scenario_id, name)
        self._trim_user(user_token)

    def remove_scenario(self, user_token: str, scenario_id: str) -> bool:
        if not user_token:
            return False
        with self._session_factory() as session:
            row = session.get(ScenarioModel, scenario_id)
            if row and row.user_token == user_token:
                session.delete(row)
                session.commit()
                return True
        return False

    def clear_scenarios(self, user_token: str) -> None:
        if not user_token:
            return
        with self._session_factory() as session:
            session.execute(
                ScenarioModel.__table__.delete().where(ScenarioModel.user_token == user_token)
            )
            session.commit()

    def _trim_user(self, user_token: str) -> None:
        if not self._max_per_user or self._max_per_user < 0:
            return
        with self._session_factory() as session:
            rows = self._user_scenarios(session, user_token, newest_first=True)
            if len(rows) <= self._max_per_user:
                return
            for row in rows[self._max_per_user :]:
                session.delete(row)
            session.commit()
            logger.info("Trimmed %d old scenarios", len(rows) - self._max_per_user)

    @staticmethod
    def _to_dict(row: ScenarioModel) -> Dict[str, Any]:
        return {
            "id": row.id,
            "name": row.name,
            "settings": json.loads(row.settings_json),
            "summary": json.loads(row.summary_json),
            "created_at": row.created_at.isoformat(),
        }


def create_store_from_env(url: str | None, max_per_user: int = 10) -> ScenarioStore:
    return ScenarioStore(url or "sqlite:///mortgage_sim.sqlite3", max_per_user=max_per_user)

# lfa_studio/db_connection_hlpr.py

import logging
import os
from typing import Callable

from google.auth import default as google_auth_default
from google.cloud import secretmanager
from google.oauth2 import service_account
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from lfa_studio.app_config import Settings, load_settings
from lfa_studio.entities import Base

logger = logging.getLogger("lfa_studio.db")

LOCAL_SQLITE_URL = "sqlite:///lfa_studio.db"


class DbConnection:
    """
    Builds the SQLAlchemy engine/session factory from Settings.

    Resolution order for the database URL:
      1. DATABASE_URL as given
      2. DB_HOST == localhost -> local SQLite file
      3. Postgres over pg8000, password from DB_PASSWORD or Secret Manager (DB_SECRET_ID)
    """

    def __init__(self, settings: Settings | None = None, secret_client=None) -> None:
        self.settings = settings or load_settings()
        self._secret_client = secret_client
        self._db_password = self.settings.db_password
        self._engine: Engine | None = None
        self._sessionmaker: sessionmaker | None = None

    # -------- GCP auth / creds --------
    def _build_creds(self):
        key_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
        scopes = ["https://www.googleapis.com/auth/cloud-platform"]
        if key_path and os.path.exists(key_path):
            return service_account.Credentials.from_service_account_file(key_path, scopes=scopes)
        creds, _ = google_auth_default(scopes=scopes)
        return creds

    # -------- DB password (Secret Manager) --------
    def _get_db_password_lazy(self) -> str:
        if self._db_password:
            return self._db_password
        if self.settings.db_secret_id:
            if self._secret_client is None:
                self._secret_client = secretmanager.SecretManagerServiceClient(credentials=self._build_creds())
            name = self._secret_client.secret_version_path(
                self.settings.google_project, self.settings.db_secret_id, "latest"
            )
            resp = self._secret_client.access_secret_version(request={"name": name})
            self._db_password = resp.payload.data.decode("utf-8")
            return self._db_password
        raise RuntimeError("No DB_PASSWORD and no Secret Manager configured")

    def database_url(self) -> str:
        s = self.settings
        if s.database_url:
            return s.database_url
        if s.is_local_db:
            return LOCAL_SQLITE_URL
        password = self._get_db_password_lazy()
        return f"postgresql+pg8000://{s.db_user}:{password}@{s.db_host}:{s.db_port}/{s.db_name}"

    def get_engine(self) -> Engine:
        if self._engine is None:
            url = self.database_url()
            logger.info("[DB] Connecting to %s", url.split("@")[-1])
            connect_args = {"timeout": 10} if url.startswith("postgresql+pg8000") else {}
            self._engine = create_engine(url, future=True, pool_pre_ping=True, connect_args=connect_args)
        return self._engine

    def create_schema(self) -> None:
        Base.metadata.create_all(self.get_engine())

    # -------- SQLAlchemy Session factory --------
    def build_db_session_factory(self) -> Callable[[], Session]:
        if self._sessionmaker is None:
            self._sessionmaker = sessionmaker(
                bind=self.get_engine(),
                autoflush=False,
                expire_on_commit=False,
                future=True,
            )
        return self._sessionmaker

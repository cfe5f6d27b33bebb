# Copyright 2025 ApeCloud, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import json
import os
from typing import Dict, Optional

import dotenv
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import Session, SQLModel

dotenv.load_dotenv(".env")


class Settings(BaseModel):
    endpoint_url: str = "https://eks.us-east-1.amazonaws.com"
    api_token: Optional[str] = None
    http_timeout: float = 30.0

    database_url: str = "sqlite:///addonctl.db"
    spec_path: str = "addons.yaml"

    create_timeout: float = 20 * 60
    update_timeout: float = 20 * 60
    delete_timeout: float = 40 * 60
    propagation_timeout: float = 2 * 60
    poll_interval: float = 10.0

    default_tags: Dict[str, str] = Field(default_factory=dict)

    celery_broker_url: str = "redis://localhost:6379/0"
    reconcile_interval: float = 300.0

    @field_validator("default_tags", mode="before")
    @classmethod
    def _parse_default_tags(cls, v):
        if isinstance(v, str):
            return json.loads(v) if v.strip() else {}
        return v

    @classmethod
    def from_env(cls, prefix: str = "ADDONCTL_") -> "Settings":
        values = {}
        for name in cls.model_fields:
            env_value = os.environ.get(f"{prefix}{name.upper()}")
            if env_value is not None:
                values[name] = env_value
        return cls(**values)


settings = Settings.from_env()

engine = create_engine(settings.database_url)
SyncSessionLocal = sessionmaker(bind=engine, class_=Session, expire_on_commit=False)


def init_db(bind=None):
    """Create tracked-state tables"""
    from addonctl.db import models  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)


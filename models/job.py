"""
Job, connection, API and schedule descriptors.

These are the configuration objects owned by external storage. They are
deliberately permissive at construction time: a stored definition may be
incomplete while it is being edited, so validity is checked with
``is_valid()`` / ``validation_errors()`` before anything executes.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

from models.base import AuthKind, HttpMethod, SourceKind
from models.transform import TransformOptions


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


class SourceConfig(BaseModel):
    """Connection descriptor for a relational source"""

    name: Optional[str] = None
    kind: Optional[SourceKind] = None
    host: Optional[str] = None
    port: int = 0
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = Field(None, repr=False)
    properties: Dict[str, str] = Field(default_factory=dict)

    @field_validator("kind", mode="before")
    @classmethod
    def parse_kind(cls, v):
        if isinstance(v, str):
            return v.strip().lower() or None
        return v

    def validation_errors(self) -> List[str]:
        errors = []
        if _blank(self.name):
            errors.append("name")
        if self.kind is None:
            errors.append("kind")
        if _blank(self.host):
            errors.append("host")
        if self.port <= 0:
            errors.append("port")
        if _blank(self.database):
            errors.append("database")
        if _blank(self.username):
            errors.append("username")
        return errors

    def is_valid(self) -> bool:
        return not self.validation_errors()


class TargetConfig(BaseModel):
    """API descriptor for an HTTP sink"""

    name: Optional[str] = None
    base_url: Optional[str] = None
    endpoint: Optional[str] = None
    method: HttpMethod = HttpMethod.POST
    auth_type: AuthKind = AuthKind.NONE
    auth_token: Optional[str] = Field(None, repr=False)
    api_key: Optional[str] = Field(None, repr=False)
    api_key_header: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = Field(None, repr=False)
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = Field(30.0, gt=0)
    max_retries: int = Field(3, ge=0)
    retry_delay_seconds: float = Field(1.0, ge=0)
    use_exponential_backoff: bool = True

    @field_validator("method", mode="before")
    @classmethod
    def upper_method(cls, v):
        if v is None:
            return HttpMethod.POST
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("auth_type", mode="before")
    @classmethod
    def parse_auth_type(cls, v):
        if v is None:
            return AuthKind.NONE
        if isinstance(v, str):
            return v.strip().lower().replace("-", "_") or AuthKind.NONE
        return v

    def build_full_url(self) -> str:
        if _blank(self.base_url):
            raise ValueError("Base URL is not set")

        base = self.base_url.strip().rstrip("/")
        path = (self.endpoint or "").strip()
        if path and not path.startswith("/"):
            path = "/" + path
        return base + path

    def validation_errors(self) -> List[str]:
        errors = []
        if _blank(self.base_url):
            errors.append("base_url")
        else:
            parsed = urlparse(self.base_url.strip())
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                errors.append("base_url")

        if self.auth_type == AuthKind.BEARER and _blank(self.auth_token):
            errors.append("auth_token")
        elif self.auth_type == AuthKind.API_KEY:
            if _blank(self.api_key):
                errors.append("api_key")
            if _blank(self.api_key_header):
                errors.append("api_key_header")
        elif self.auth_type == AuthKind.BASIC:
            if _blank(self.username):
                errors.append("username")
            if _blank(self.password):
                errors.append("password")
        return errors

    def is_valid(self) -> bool:
        return not self.validation_errors()


class ScheduleConfig(BaseModel):
    """Recurring trigger definition: cron expression XOR fixed interval"""

    enabled: bool = False
    cron_expression: Optional[str] = None
    interval_seconds: int = 0
    timezone: Optional[str] = None

    @property
    def has_cron(self) -> bool:
        return not _blank(self.cron_expression)

    def is_valid(self) -> bool:
        if not self.enabled:
            return True
        return self.has_cron or self.interval_seconds > 0


class EtlJob(BaseModel):
    """A complete Extract → Transform → Load job definition"""

    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    enabled: bool = True

    # Extract
    source_config: Optional[SourceConfig] = None
    query: Optional[str] = None
    query_parameters: Dict[str, Any] = Field(default_factory=dict)

    # Load
    target_config: Optional[TargetConfig] = None

    # Transform (generic mapping kept for forward-compatible storage)
    transform_options: Dict[str, Any] = Field(default_factory=dict)

    schedule: Optional[ScheduleConfig] = None

    def validation_errors(self) -> List[str]:
        errors = []
        if _blank(self.id):
            errors.append("id")
        if _blank(self.name):
            errors.append("name")
        if self.source_config is None:
            errors.append("source_config")
        else:
            errors.extend(f"source_config.{e}" for e in self.source_config.validation_errors())
        if _blank(self.query):
            errors.append("query")
        if self.target_config is None:
            errors.append("target_config")
        else:
            errors.extend(f"target_config.{e}" for e in self.target_config.validation_errors())
        return errors

    def is_valid(self) -> bool:
        return not self.validation_errors()

    def transforms(self) -> TransformOptions:
        return TransformOptions.from_mapping(self.transform_options)

    def __str__(self) -> str:
        return f"EtlJob(id={self.id}, name={self.name}, enabled={self.enabled})"

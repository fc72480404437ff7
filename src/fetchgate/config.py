"""
Dispatcher settings, optionally read from the environment.
"""

from __future__ import annotations

import os
import typing as t

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from fetchgate.queue import DEFAULT_MAX_CONCURRENT

ENV_PREFIX = "FETCHGATE_"

LogLevel = t.Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class DispatcherSettings(BaseModel):
    """
    Tunables of a ``Dispatcher``.

    Parameters
    ----------
    max_concurrent : int
        Maximum number of requests in flight per host.
    timeout_seconds : float
        Default transport timeout.
    host_idle_ttl_seconds : float | None
        Evict a host queue once it has been idle this long. ``None`` keeps
        host queues for the lifetime of the dispatcher.
    log_level : LogLevel
        Level applied by ``setup_logging``.
    """

    model_config = ConfigDict(frozen=True)

    max_concurrent: int = Field(default=DEFAULT_MAX_CONCURRENT, ge=1)
    timeout_seconds: float = Field(default=30.0, gt=0)
    host_idle_ttl_seconds: float | None = Field(default=300.0, ge=0)
    log_level: LogLevel = "WARNING"

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, value: t.Any) -> t.Any:
        return value.upper() if isinstance(value, str) else value

    @field_validator("host_idle_ttl_seconds", mode="before")
    @classmethod
    def parse_disabled_ttl(cls, value: t.Any) -> t.Any:
        if isinstance(value, str) and value.strip().lower() in {"", "none", "off"}:
            return None
        return value

    @classmethod
    def from_env(cls, *, dotenv: bool = True, **overrides: t.Any) -> DispatcherSettings:
        """
        Build settings from ``FETCHGATE_*`` environment variables.

        Parameters
        ----------
        dotenv : bool, optional
            Load a ``.env`` file first, without overriding existing variables.
        **overrides : typing.Any
            Explicit values taking precedence over the environment.

        Returns
        -------
        DispatcherSettings
            Validated settings.
        """
        if dotenv:
            load_dotenv(dotenv_path=find_dotenv(usecwd=True))
        values: dict[str, t.Any] = {}
        for name in cls.model_fields:
            env_value = os.getenv(key=f"{ENV_PREFIX}{name.upper()}")
            if env_value is not None:
                values[name] = env_value
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls.model_validate(values)

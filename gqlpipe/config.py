# gqlpipe/config.py
# SPDX-License-Identifier: Apache-2.0
"""
Process-level settings read from ``GQLPIPE_*`` environment variables.

    GQLPIPE_ENV         development | production   (default: production)
    GQLPIPE_DEBUG       bool                       (default: false)
    GQLPIPE_TRACING     bool                       (default: false)
    GQLPIPE_MODE        thin | standalone          (default: thin)
    GQLPIPE_APQ_TTL_S   positive int seconds       (default: unset)
    GQLPIPE_LOG_LEVEL   logging level name         (default: WARNING)

Booleans accept 1/true/yes/on (any case). Invalid values fall back to the
default with a warning.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

LOG = logging.getLogger(__name__)

ENV_PREFIX = "GQLPIPE_"

ENVIRONMENTS = ("development", "production")
MODES = ("thin", "standalone")
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _env_flag(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    val = env.get(name)
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "on"}


def _env_choice(env: Mapping[str, str], name: str, choices: tuple, default: str) -> str:
    val = env.get(name)
    if val is None:
        return default
    norm = val.strip().lower()
    if norm not in choices:
        LOG.warning("ignoring %s=%r; expected one of %s", name, val, ", ".join(choices))
        return default
    return norm


def _env_positive_int(env: Mapping[str, str], name: str) -> Optional[int]:
    val = env.get(name)
    if val is None or not val.strip():
        return None
    try:
        n = int(val)
    except ValueError:
        LOG.warning("ignoring %s=%r; expected an integer", name, val)
        return None
    if n <= 0:
        LOG.warning("ignoring %s=%r; expected a positive integer", name, val)
        return None
    return n


@dataclass(frozen=True)
class Settings:
    environment: str = "production"
    debug: bool = False
    tracing: bool = False
    mode: str = "thin"
    apq_ttl_s: Optional[int] = None
    log_level: str = "WARNING"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        level = env.get(ENV_PREFIX + "LOG_LEVEL")
        log_level = "WARNING"
        if level is not None:
            if level.strip().upper() in LOG_LEVELS:
                log_level = level.strip().upper()
            else:
                LOG.warning("ignoring %sLOG_LEVEL=%r", ENV_PREFIX, level)
        return cls(
            environment=_env_choice(env, ENV_PREFIX + "ENV", ENVIRONMENTS, "production"),
            debug=_env_flag(env, ENV_PREFIX + "DEBUG"),
            tracing=_env_flag(env, ENV_PREFIX + "TRACING"),
            mode=_env_choice(env, ENV_PREFIX + "MODE", MODES, "thin"),
            apq_ttl_s=_env_positive_int(env, ENV_PREFIX + "APQ_TTL_S"),
            log_level=log_level,
        )

    def configure_logging(self) -> None:
        """Set the ``gqlpipe`` logger level (handlers are left to the application)."""
        logging.getLogger("gqlpipe").setLevel(self.log_level)


__all__ = ["ENV_PREFIX", "Settings"]

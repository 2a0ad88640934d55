"""Module for configuration variables with defaults that are overridable by a file."""

from __future__ import annotations

from configparser import ConfigParser, SectionProxy
from dataclasses import dataclass, field
import os
from typing import Optional

from davmount.constants import DEFAULT_ENDPOINT
from davmount.logger import log


@dataclass
class ServiceConfig:
    """Configuration variables related to the provider service."""

    endpoint: str = DEFAULT_ENDPOINT
    workers: int = 4
    token: Optional[str] = field(default=None, repr=False)

    @staticmethod
    def load(section: SectionProxy) -> ServiceConfig:
        """Load overridden variables from a section within a config file."""
        config = ServiceConfig()

        config.endpoint = section.get("endpoint", fallback=config.endpoint)
        config.workers = section.getint("workers", fallback=config.workers)
        config.token = section.get("token", fallback=config.token)

        return config


@dataclass
class StoreConfig:
    """Configuration variables related to the persisted mount records."""

    path: str = os.path.expanduser("~/.davmount/mounts.json")

    @staticmethod
    def load(section: SectionProxy) -> StoreConfig:
        """Load overridden variables from a section within a config file."""
        config = StoreConfig()

        config.path = os.path.expanduser(section.get("path", fallback=config.path))

        return config


@dataclass
class RemoteConfig:
    """Configuration variables related to talking to WebDAV servers."""

    # Seconds before a single HTTP call is given up on.
    timeout: float = 30.0

    # Collection under which chunked upload staging containers are created.
    staging_root: str = "/"

    @staticmethod
    def load(section: SectionProxy) -> RemoteConfig:
        """Load overridden variables from a section within a config file."""
        config = RemoteConfig()

        config.timeout = section.getfloat("timeout", fallback=config.timeout)
        config.staging_root = section.get("staging_root", fallback=config.staging_root)

        return config


@dataclass
class Config:
    """Configuration variables."""

    service: ServiceConfig = field(default_factory=ServiceConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)

    @staticmethod
    def load(filename: str) -> Config:
        """Load overridden configuration variables from a config file."""
        parser = ConfigParser()

        config = Config()

        try:
            with open(filename, "r") as f:
                parser.read_string(f.read(), filename)

            if "service" in parser:
                config.service = ServiceConfig.load(parser["service"])
            if "store" in parser:
                config.store = StoreConfig.load(parser["store"])
            if "remote" in parser:
                config.remote = RemoteConfig.load(parser["remote"])
        except FileNotFoundError:
            log.info(f"no config file at {filename}")
        except Exception as e:
            # An unreadable config file is not considered a fatal error since we can
            # fall back to defaults.
            log.error(f"failed to read config file {filename}: {e}")
        else:
            log.info(f"loaded config: {config}")

        return config

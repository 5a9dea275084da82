from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
import logging
import sys
import os

from yaml import safe_load


__all__ = (
    "Config",
)


@dataclass
class DatabaseConfig:
    url: str = "sqlite+aiosqlite:///dependency-bot.db"


@dataclass
class RegistryConfig:
    strict_discovery: bool = False
    credentials: Dict[str, Dict[str, str]] = field(default_factory=dict)


@dataclass
class BusConfig:
    kind: str = "pubsub"
    project: str = None
    topic: str = "image-stale"
    url: str = None


@dataclass
class EventsConfig:
    drop_malformed: bool = True


class Config:
    host: str
    port: int

    def __init__(self, argv: Optional[Sequence[str]] = None):
        import argparse
        parser = argparse.ArgumentParser()
        parser.add_argument("--host")
        parser.add_argument("--port", type=int)
        parser.add_argument("--config-file", default="bot.yml")
        parser.add_argument("--log-file")
        args = parser.parse_args(argv)

        self.host = args.host or "0.0.0.0"
        self.port = args.port or int(os.environ.get("PORT", 8080))

        yml = {}
        if os.path.exists(args.config_file):
            with open(args.config_file) as f:
                yml = safe_load(f) or {}

        self.database = DatabaseConfig(**yml.get("database", {}))
        if "DB" in os.environ:
            self.database.url = os.environ["DB"]

        self.registry = RegistryConfig(**yml.get("registry", {}))
        self.bus = BusConfig(**yml.get("bus", {}))
        self.events = EventsConfig(**yml.get("events", {}))
        self.owned_services: List[str] = yml.get("owned_services", [])

        fmt = "%(asctime)s.%(msecs)03d %(levelname)s %(process)d --- [%(threadName)s] %(name)s: %(message)s"
        datefmt = "%Y-%m-%d %H:%M:%S"
        if args.log_file:
            logging.basicConfig(level=logging.ERROR, format=fmt, datefmt=datefmt, filename=args.log_file)
        else:
            logging.basicConfig(level=logging.ERROR, format=fmt, datefmt=datefmt, stream=sys.stdout)
        logging.getLogger("dependency_bot").setLevel(logging.DEBUG)

"""
Configuration module for the IP info API

Every setting has a hardcoded default, an environment variable that
overrides it, and a command-line flag that overrides the environment.
"""

import argparse
import logging
import os
from typing import NamedTuple, Optional, Sequence, Tuple

logger = logging.getLogger("ipinfo.config")

# Defaults
DEFAULT_ADDR = ":8080"
DEFAULT_MODE = "release"
DEFAULT_LANG = "en"
DEFAULT_ASN_DB = "./dbip-asn-lite-2021-06.mmdb"
DEFAULT_GEO_DB = "./dbip-city-lite-2021-06.mmdb"

SUPPORTED_LANGUAGES = ("en", "de", "es", "fr", "ja", "pt-BR", "ru", "zh-CN")
RUN_MODES = ("debug", "test", "release")

# Logging configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT")  # json or text; unset keeps LOGGING.yaml formatters

API_VERSION = os.getenv("APP_VERSION", "0.1.0")


def env_str(key: str, default: str) -> str:
    """Environment value, treating an empty string as unset"""
    value = os.getenv(key)
    return value if value else default


def normalize_language(lang: str) -> str:
    # Anything outside the allow-list falls back to English
    return lang if lang in SUPPORTED_LANGUAGES else DEFAULT_LANG


def split_addr(addr: str) -> Tuple[str, int]:
    """Split "host:port" into its parts; an empty host means all interfaces"""
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid listening address {addr!r}, expected host:port")
    host = host.strip("[]") or "0.0.0.0"
    return host, int(port)


class Settings(NamedTuple):
    addr: str = DEFAULT_ADDR
    mode: str = DEFAULT_MODE
    asn_db: str = DEFAULT_ASN_DB
    geo_db: str = DEFAULT_GEO_DB
    lang: str = DEFAULT_LANG

    @property
    def host(self) -> str:
        return split_addr(self.addr)[0]

    @property
    def port(self) -> int:
        return split_addr(self.addr)[1]

    @property
    def debug(self) -> bool:
        return self.mode == "debug"

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.debug else LOG_LEVEL


def settings_from_env() -> Settings:
    mode = env_str("IPINFO_MODE", DEFAULT_MODE)
    if mode not in RUN_MODES:
        logger.warning(f"Unknown run mode {mode!r}, using {DEFAULT_MODE}")
        mode = DEFAULT_MODE
    return Settings(
        addr=env_str("IPINFO_ADDR", DEFAULT_ADDR),
        mode=mode,
        asn_db=env_str("IPINFO_DB_ASN", DEFAULT_ASN_DB),
        geo_db=env_str("IPINFO_DB_GEOIP", DEFAULT_GEO_DB),
        lang=normalize_language(env_str("IPINFO_LANG", DEFAULT_LANG)),
    )


def build_parser(defaults: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ipinfo-api",
        description="Serve ASN and GeoIP data for IP addresses over HTTP",
    )
    parser.add_argument("-a", "--addr", default=defaults.addr,
                        help=f"Listening address:port (default: {defaults.addr})")
    parser.add_argument("-m", "--mode", default=defaults.mode, choices=RUN_MODES,
                        help="Run mode (available modes: debug, test, release)")
    parser.add_argument("-db_asn", "--db-asn", dest="asn_db", default=defaults.asn_db,
                        help="ASN mmdb file")
    parser.add_argument("-db_geoip", "--db-geoip", dest="geo_db", default=defaults.geo_db,
                        help="GeoIP mmdb file")
    parser.add_argument("-l", "--lang", default=defaults.lang,
                        help="Language used for names (available languages: "
                             + ", ".join(sorted(SUPPORTED_LANGUAGES)) + ")")
    return parser


def load_settings(argv: Optional[Sequence[str]] = None) -> Settings:
    """Defaults < environment < command line"""
    defaults = settings_from_env()
    parser = build_parser(defaults)
    args = parser.parse_args(argv)
    settings = Settings(
        addr=args.addr,
        mode=args.mode,
        asn_db=args.asn_db,
        geo_db=args.geo_db,
        lang=normalize_language(args.lang),
    )
    # Fail on a bad address here rather than inside uvicorn
    try:
        split_addr(settings.addr)
    except ValueError as e:
        parser.error(str(e))
    return settings

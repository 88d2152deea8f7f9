"""Pull readings from the Bright/GlowMarkt API into InfluxDB.

Usage (example):
    glowmarkt2influx 2024-12-01 2024-12-10

Credentials and destination come from flags or the environment (a local
``.env`` file is honoured). With no dates the trailing 10 days are fetched.
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Dict, List, Optional

from dotenv import load_dotenv

from .config import ConfigError, PipelineConfig
from .pipeline import run

logger = logging.getLogger("glowmarkt2influx")

# (flag, environment variable, help)
OPTIONS = [
    ('--gm-username', 'GM_USERNAME', 'GlowMarkt account username'),
    ('--gm-password', 'GM_PASSWORD', 'GlowMarkt account password'),
    ('--influx-uri', 'INFLUX_URI', 'InfluxDB URL, e.g. http://localhost:8086'),
    ('--influx-database', 'INFLUX_DATABASE', 'InfluxDB database (bucket) name'),
    ('--influx-token', 'INFLUX_TOKEN', 'InfluxDB API token'),
    ('--token-cache-file', 'TOKEN_CACHE_FILE', 'File used to cache the GlowMarkt token between runs'),
]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='glowmarkt2influx', description="Pull data from Bright/GlowMarkt API into InfluxDB")
    parser.add_argument('start_date', nargs='?', help='Start date (YYYY-MM-DD or ISO datetime) [env: START_DATE]')
    parser.add_argument('end_date', nargs='?', help='End date (YYYY-MM-DD or ISO datetime) [env: END_DATE]')
    for flag, env_name, help_text in OPTIONS:
        parser.add_argument(flag, dest=env_name, help=f"{help_text} [env: {env_name}]")
    return parser


def settings_from_args(args: argparse.Namespace, environ: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Overlay explicitly passed arguments on top of the environment."""
    merged = dict(os.environ if environ is None else environ)
    if args.start_date:
        merged['START_DATE'] = args.start_date
    if args.end_date:
        merged['END_DATE'] = args.end_date
    for _, env_name, _ in OPTIONS:
        value = getattr(args, env_name, None)
        if value:
            merged[env_name] = value
    return merged


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args = build_parser().parse_args(argv)
    try:
        config = PipelineConfig.from_env(settings_from_args(args))
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    report = run(config)
    print(report.summary())
    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())

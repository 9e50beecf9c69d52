"""CLI entry point for ecobee-sync.

Usage::

    ecobee-sync run --config ecobee-sync.yaml
    ecobee-sync --config ecobee-sync.yaml --cycles 1
    ecobee-sync authorize --config ecobee-sync.yaml
    ecobee-sync list-thermostats --config ecobee-sync.yaml
    ecobee-sync summary --config ecobee-sync.yaml
    ecobee-sync list-sinks
    ecobee-sync init-config --output ecobee-sync.yaml
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import textwrap
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger("ecobee_sync")

# ---------------------------------------------------------------------------
# Extras mapping for list-sinks display
# ---------------------------------------------------------------------------
_SINK_EXTRAS: dict[str, str | None] = {
    "console": None,
    "callback": None,
    "influx": "influx",
    "mqtt": "mqtt",
}

# ---------------------------------------------------------------------------
# Sample YAML config template for init-config
# ---------------------------------------------------------------------------
_SAMPLE_CONFIG = """\
# ecobee-sync configuration

ecobee:
  api_key: YOUR_APPLICATION_KEY       # from https://www.ecobee.com/consumerportal (Developer)
  thermostat_id: "511234567890"       # run 'ecobee-sync list-thermostats' to find it
  work_dir: .                         # holds the credential cache (ecobee-cred-cache)
  # request_timeout_s: 10

sync:
  poll_interval_s: 300                # ecobee samples every 5 minutes
  temperature_unit: F                 # F or C (runtime and sensor temperatures)
  always_write_weather_as_current: false
  delivery_policy: require_any_sink   # or require_all_sinks
  # cycle_attempts: 3
  # cycle_retry_delay_s: 5
  # cycle_timeout_s: 120
  # log_level: INFO                   # DEBUG, INFO, WARNING, ERROR

# Run-time fields are only written for equipment that is installed.
equipment:
  heat_pump_1: false
  heat_pump_2: false
  aux_heat_1: false
  aux_heat_2: false
  cool_1: true
  cool_2: false
  humidifier: false
  dehumidifier: false

# Sinks define where samples are sent.
sinks:
  - type: console
    fmt: text                         # text or json

  # - type: influx
  #   url: http://localhost:8086
  #   bucket: ecobee                  # 1.8: database/retention_policy
  #   org: home
  #   token: my-token                 # or username/password for 1.8
  #   required: true                  # refuse to start if unreachable
  #   timeout_s: 3
  #   retry_count: 2

  # - type: mqtt
  #   host: localhost
  #   port: 1883
  #   topic_root: ecobee              # topics: ecobee/<thermostat_id>/<category>/<field>
  #   # username: ...
  #   # password: ...
  #   always_write_weather: true      # publish current weather every cycle
"""


# ======================================================================
# Main entry point
# ======================================================================


def main(argv: list[str] | None = None) -> None:
    epilog = textwrap.dedent("""\
        examples:
          ecobee-sync run --config ecobee-sync.yaml
          ecobee-sync run --config ecobee-sync.yaml --cycles 1 --log-level DEBUG
          ecobee-sync authorize --config ecobee-sync.yaml
          ecobee-sync list-thermostats --config ecobee-sync.yaml
          ecobee-sync summary --config ecobee-sync.yaml
          ecobee-sync list-sinks
          ecobee-sync init-config --output ecobee-sync.yaml
    """)

    parser = argparse.ArgumentParser(
        prog="ecobee-sync",
        description="Poll an ecobee thermostat and publish new samples to InfluxDB, MQTT and other sinks.",
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", title="commands")

    def add_config_arg(sub: argparse.ArgumentParser) -> None:
        sub.add_argument(
            "--config",
            "-c",
            type=str,
            default="ecobee-sync.yaml",
            help="Path to the YAML config file (default: ecobee-sync.yaml).",
        )
        sub.add_argument(
            "--log-level",
            type=str,
            default=None,
            choices=["DEBUG", "INFO", "WARNING", "ERROR"],
            help="Logging level (default: from config, else INFO).",
        )

    # -- run ---------------------------------------------------------------
    run_parser = subparsers.add_parser("run", help="Run the sync loop (default command).")
    add_config_arg(run_parser)
    run_parser.add_argument(
        "--cycles",
        type=int,
        default=None,
        help="Stop after this many poll cycles (default: run until Ctrl-C).",
    )

    # -- authorize ---------------------------------------------------------
    auth_parser = subparsers.add_parser("authorize", help="Pair with ecobee using a PIN and cache the credential.")
    add_config_arg(auth_parser)

    # -- list-thermostats --------------------------------------------------
    list_parser = subparsers.add_parser("list-thermostats", help="List the thermostats registered to the account.")
    add_config_arg(list_parser)

    # -- summary -----------------------------------------------------------
    summary_parser = subparsers.add_parser(
        "summary", help="Show revisions and running equipment of every thermostat."
    )
    add_config_arg(summary_parser)

    # -- list-sinks --------------------------------------------------------
    subparsers.add_parser("list-sinks", help="List all available sink types and install instructions.")

    # -- init-config -------------------------------------------------------
    init_parser = subparsers.add_parser("init-config", help="Generate a sample YAML configuration file.")
    init_parser.add_argument(
        "--output",
        "-o",
        type=str,
        default=None,
        help="Write config to this file instead of stdout.",
    )

    # A leading flag (e.g. --config) means the default "run" command.
    _known_commands = {"run", "authorize", "list-thermostats", "summary", "list-sinks", "init-config"}
    raw_args = argv if argv is not None else sys.argv[1:]
    if raw_args and raw_args[0] not in _known_commands and raw_args[0] not in ("-h", "--help"):
        raw_args = ["run", *list(raw_args)]

    args = parser.parse_args(raw_args)

    if args.command is None:
        parser.print_help()
        return

    # -- Dispatch ----------------------------------------------------------
    if args.command == "run":
        _with_config(args, lambda cfg: _run(cfg, args.cycles), for_run=True)
    elif args.command == "authorize":
        _with_config(args, _authorize)
    elif args.command == "list-thermostats":
        _with_config(args, _list_thermostats)
    elif args.command == "summary":
        _with_config(args, _summary)
    elif args.command == "list-sinks":
        _cmd_list_sinks()
    elif args.command == "init-config":
        _cmd_init_config(args.output)
    else:
        parser.print_help()


# ======================================================================
# Command implementations
# ======================================================================


def _fail(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def _with_config(args: argparse.Namespace, command: Callable[[Any], Awaitable[None]], *, for_run: bool = False) -> None:
    """Load the config, set up logging and run an async command.

    Any fatal startup condition prints a diagnostic and exits with 1.
    """
    from ecobee_sync.config import load_yaml_config
    from ecobee_sync.errors import ConfigurationError, CredentialError, SyncError

    logging.basicConfig(
        level=getattr(logging, args.log_level or "INFO"),
        format="%(asctime)s %(name)-30s %(levelname)-7s %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        cfg = load_yaml_config(args.config)
        if args.log_level is None:
            logging.getLogger().setLevel(getattr(logging, cfg.sync.log_level.upper(), logging.INFO))
        if for_run:
            cfg.validate_for_run()
        elif not cfg.ecobee.api_key:
            raise ConfigurationError("ecobee.api_key is required")
        asyncio.run(command(cfg))
    except (FileNotFoundError, ConfigurationError, CredentialError) as exc:
        _fail(str(exc))
    except SyncError as exc:
        _fail(f"{type(exc).__name__}: {exc}")
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


def _credentials(cfg: Any) -> Any:
    from ecobee_sync.auth import CredentialProvider

    return CredentialProvider(cfg.ecobee.api_key, cfg.ecobee.cache_file, timeout_s=cfg.ecobee.request_timeout_s)


async def _run(cfg: Any, cycles: int | None) -> None:
    """Build the synchronizer from config and run it."""
    from ecobee_sync.sync import Synchronizer

    provider = _credentials(cfg)
    try:
        client = await provider.authenticated_client()
        try:
            sync = Synchronizer(
                client,
                cfg.ecobee.thermostat_id,
                sinks=cfg.build_sinks(),
                normalizer=cfg.normalizer(),
                poll_interval_s=cfg.sync.poll_interval_s,
                always_write_weather=cfg.sync.always_write_weather_as_current,
                delivery_policy=cfg.sync.delivery_policy,
                cycle_policy=cfg.cycle_policy(),
            )
            await sync.run_async(cycles=cycles)
        finally:
            await client.close()
    finally:
        await provider.close()


# -- authorize ---------------------------------------------------------------


async def _authorize(cfg: Any) -> None:
    provider = _credentials(cfg)
    try:
        await provider.pair()
        info = provider.describe()
        print(f"Credential saved to {info['cache_file']} (expires {info['expiry']})")
    finally:
        await provider.close()


# -- list-thermostats --------------------------------------------------------


async def _list_thermostats(cfg: Any) -> None:
    provider = _credentials(cfg)
    try:
        client = await provider.authenticated_client()
        async with client:
            thermostats = await client.get_thermostats({"selectionType": "registered", "selectionMatch": ""})
    finally:
        await provider.close()

    print(f"\n{'Identifier':<16} {'Name':<24} {'Model'}")
    print("-" * 56)
    for t in thermostats:
        print(f"{t.identifier:<16} {t.name:<24} {t.model_number}")
    print()


# -- summary -----------------------------------------------------------------


async def _summary(cfg: Any) -> None:
    provider = _credentials(cfg)
    try:
        client = await provider.authenticated_client()
        async with client:
            summaries = await client.thermostat_summary()
    finally:
        await provider.close()

    print(f"\n{'Identifier':<16} {'Name':<20} {'Online':<7} {'Runtime rev':<16} {'Running'}")
    print("-" * 80)
    for s in summaries.values():
        running = ", ".join(s.equipment_status.running()) or "-"
        print(f"{s.identifier:<16} {s.name:<20} {'yes' if s.connected else 'no':<7} {s.runtime_revision:<16} {running}")
    print()


# -- list-sinks ------------------------------------------------------------


def _cmd_list_sinks() -> None:
    from ecobee_sync.sinks.factory import _SINK_REGISTRY

    print(f"\n{'Sink Type':<14} {'Class':<20} {'Install Extra'}")
    print("-" * 62)
    for name, (_module_path, class_name) in _SINK_REGISTRY.items():
        extra = _SINK_EXTRAS.get(name)
        extra_str = "(built-in)" if extra is None else f"pip install ecobee-sync[{extra}]"
        print(f"{name:<14} {class_name:<20} {extra_str}")
    print()


# -- init-config ------------------------------------------------------------


def _cmd_init_config(output_path: str | None) -> None:
    if output_path:
        from pathlib import Path

        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        Path(output_path).write_text(_SAMPLE_CONFIG)
        print(f"Sample config written to {output_path}")
    else:
        print(_SAMPLE_CONFIG)


# ======================================================================
if __name__ == "__main__":
    main()

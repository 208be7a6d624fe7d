"""Command-line interface for provisioning secrets."""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import time
from typing import Any

from opsm.core.config.base import MetricsBackend
from opsm.core.config.loader import load_from_file
from opsm.core.config.orchestrator import OrchestratorConfig
from opsm.core.config.validator import validate_orchestrator
from opsm.core.errors import ConfigurationError, MountError
from opsm.core.metrics.exporters import PrometheusRegistry
from opsm.core.metrics.registry import InMemoryRegistry, MeterRegistry
from opsm.core.volatile import VolatileDirectoryPreparer
from opsm.runner.hooks import CompositeHooks, ProvisioningHooks
from opsm.runner.hooks_builtin import LoggingHooks, MetricsHooks
from opsm.runner.orchestrator import Orchestrator

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2

_WAIT_POLL_SECONDS = 0.5

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="opsm",
        description="Provision 1Password secrets onto the local filesystem.",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Override the logging level from the configuration file.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Provision every secret and keep them refreshed.")
    run.add_argument("config", help="Path to the HOCON configuration file.")
    run.add_argument(
        "--skip-validation",
        action="store_true",
        default=False,
        help="Skip pre-flight host validation.",
    )

    install = sub.add_parser(
        "install", help="Provision a single secret (and keep refreshing it if configured), without restarts."
    )
    install.add_argument("config", help="Path to the HOCON configuration file.")
    install.add_argument("name", help="Name of the secret to install.")

    prepare = sub.add_parser("prepare", help="Create and mount the volatile secrets directory.")
    prepare.add_argument("config", help="Path to the HOCON configuration file.")

    validate = sub.add_parser("validate", help="Check the configuration against this host.")
    validate.add_argument("config", help="Path to the HOCON configuration file.")
    validate.add_argument(
        "--no-credentials",
        action="store_true",
        default=False,
        help="Do not inspect the token file.",
    )

    wait = sub.add_parser("wait", help="Block until every secret has been installed.")
    wait.add_argument("config", help="Path to the HOCON configuration file.")
    wait.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Give up after this many seconds (default: wait forever).",
    )
    return parser


def _configure_logging(config: OrchestratorConfig, override: str | None) -> None:
    level = override or config.logging.level.value
    output = config.logging.output
    kwargs: dict[str, Any] = {}
    if output == "stdout":
        kwargs["stream"] = sys.stdout
    elif output == "stderr":
        kwargs["stream"] = sys.stderr
    else:
        kwargs["filename"] = output
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s",
        **kwargs,
    )


def _build_hooks(config: OrchestratorConfig) -> ProvisioningHooks:
    hooks: list[ProvisioningHooks] = [LoggingHooks()]
    metrics = config.metrics
    if metrics is not None and metrics.enabled:
        registry: MeterRegistry
        if metrics.backend is MetricsBackend.PROMETHEUS:
            prometheus = PrometheusRegistry()
            if metrics.port is not None:
                prometheus.serve(metrics.port)
            registry = prometheus
        else:
            registry = InMemoryRegistry()
        hooks.append(MetricsHooks(registry))
    return CompositeHooks(*hooks)


def _install_signal_handlers(orchestrator: Orchestrator) -> None:
    def handle(signum: int, frame: Any) -> None:
        logger.info("Received %s", signal.Signals(signum).name)
        orchestrator.stop()

    signal.signal(signal.SIGTERM, handle)
    signal.signal(signal.SIGINT, handle)


def _cmd_run(config: OrchestratorConfig, args: argparse.Namespace) -> int:
    orchestrator = Orchestrator(
        config,
        hooks=_build_hooks(config),
        validate_before_run=not args.skip_validation,
    )
    _install_signal_handlers(orchestrator)
    return orchestrator.run().exit_code


def _cmd_install(config: OrchestratorConfig, args: argparse.Namespace) -> int:
    orchestrator = Orchestrator(config, hooks=_build_hooks(config))
    _install_signal_handlers(orchestrator)
    if not orchestrator.credentials_present():
        logger.error("Token file %s does not exist; not starting", config.token_path)
        return EXIT_FAILURE
    return orchestrator.run_task(args.name).exit_code


def _cmd_prepare(config: OrchestratorConfig, args: argparse.Namespace) -> int:
    try:
        VolatileDirectoryPreparer(config.volatile_dir).prepare(config.secret_dir)
    except MountError as exc:
        logger.error("%s", exc)
        return EXIT_FAILURE
    return EXIT_OK


def _cmd_validate(config: OrchestratorConfig, args: argparse.Namespace) -> int:
    result = validate_orchestrator(config, check_credentials=not args.no_credentials)
    for w in result.warnings:
        print(f"WARNING: {w}", file=sys.stderr)
    for e in result.errors:
        prefix = f"[{e.secret_name}] " if e.secret_name else ""
        print(f"ERROR: {prefix}{e.message}", file=sys.stderr)
    if not result.is_valid:
        return EXIT_CONFIG
    print(f"Configuration valid: {len(config.secrets)} secret(s).")
    return EXIT_OK


def _cmd_wait(config: OrchestratorConfig, args: argparse.Namespace) -> int:
    marker = config.ready_marker
    if marker is None:
        print("ERROR: ready_marker is not configured", file=sys.stderr)
        return EXIT_CONFIG
    deadline = None if args.timeout is None else time.monotonic() + args.timeout
    while not os.path.exists(marker):
        if deadline is not None and time.monotonic() >= deadline:
            print(f"Timed out waiting for {marker}", file=sys.stderr)
            return EXIT_FAILURE
        time.sleep(_WAIT_POLL_SECONDS)
    return EXIT_OK


_COMMANDS = {
    "run": _cmd_run,
    "install": _cmd_install,
    "prepare": _cmd_prepare,
    "validate": _cmd_validate,
    "wait": _cmd_wait,
}


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint.

    Args:
        argv: Command-line arguments. Defaults to ``sys.argv[1:]``.

    Returns:
        Exit code: 0 for success, 1 for provisioning failure, 2 for an
        invalid configuration.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_from_file(args.config, OrchestratorConfig)
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    _configure_logging(config, args.log_level)

    try:
        return _COMMANDS[args.command](config, args)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return EXIT_CONFIG


if __name__ == "__main__":
    sys.exit(main())

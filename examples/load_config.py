"""Example of loading a host configuration using dataconf."""

from pathlib import Path

from opsm.core.config import OrchestratorConfig, load_from_file, validate_orchestrator


def main() -> None:
    """Load and print the secrets declared in ``opsm.conf``."""
    config_path = str(Path(__file__).parent / "opsm.conf")
    config = load_from_file(config_path, OrchestratorConfig)

    print(f"Secrets directory: {config.secret_dir}")
    print(f"Volatile: {config.use_volatile_dir}")
    print(f"Refresh: {config.refresh_interval_seconds or 'never'}s")
    print(f"Restart policy: {config.restart_policy.value}")

    print(f"\nSecrets ({len(config.secrets)}):")
    for spec in config.secrets:
        kind = "ssh key" if spec.key_material else "plain"
        print(f"  - {spec.task_id}: {spec.reference} ({kind}, {spec.owner}:{spec.group} {spec.mode})")

    # Host checks need the users, groups and token of the target machine
    result = validate_orchestrator(config, check_credentials=False)
    for warning in result.warnings:
        print(f"\nWARNING: {warning}")
    for error in result.errors:
        print(f"\nERROR: [{error.secret_name}] {error.message}")


if __name__ == "__main__":
    main()

# backend/labprovider/tasks/scheduled_restore.py
"""
One-shot provisioning run, invoked by a systemd timer or cron.

    python -m labprovider.tasks.scheduled_restore run
    python -m labprovider.tasks.scheduled_restore snapshots

Exit codes: 0 when the run finished cleanly, 1 on a fatal or partial failure,
2 when the configuration is invalid.
"""
import argparse
import logging
import sys
from typing import List, Optional

from labprovider.config import ConfigurationError, Settings, get_settings
from labprovider.models.enums import RunStatus
from labprovider.schemas.feature_config import FeatureConfig, WireGuardConfig, load_feature_config
from labprovider.schemas.vm import InventoryResponse, MachineResponse
from labprovider.services.calendar_service import CalendarService
from labprovider.services.email_service import EmailService
from labprovider.services.opnsense_client import OPNsenseClient
from labprovider.services.orchestrator import Orchestrator, RunResult
from labprovider.services.vmware_service import VMwareError, VMwareService
from labprovider.services.wireguard_service import WireGuardConfigError, WireGuardService
from labprovider.utils.log_config import configure_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2


def apply_opnsense_overrides(config: WireGuardConfig, settings: Settings) -> WireGuardConfig:
    """OPNSENSE_* environment values win over the feature config."""
    overrides = {}
    if settings.opnsense_url:
        overrides["opnsense_url"] = settings.opnsense_url
    if settings.opnsense_api_key:
        overrides["opnsense_api_key"] = settings.opnsense_api_key
    if settings.opnsense_api_secret:
        overrides["opnsense_api_secret"] = settings.opnsense_api_secret
    return config.model_copy(update=overrides) if overrides else config


def build_wireguard(config: WireGuardConfig, settings: Settings) -> Optional[WireGuardService]:
    """Build the WireGuard service, or None when WireGuard is disabled.

    Raises:
        ConfigurationError: If the WireGuard configuration is invalid
    """
    if not config.enabled:
        return None

    opnsense = None
    if config.auto_register_peers:
        if config.opnsense_url and config.opnsense_api_key and config.opnsense_api_secret:
            opnsense = OPNsenseClient(
                config.opnsense_url,
                config.opnsense_api_key,
                config.opnsense_api_secret,
                insecure=config.opnsense_insecure,
                timeout=settings.http_timeout,
            )
        else:
            logger.warning("Peer auto-registration enabled but OPNsense credentials are missing")

    service = WireGuardService(config, opnsense)
    try:
        service.validate_config()
    except WireGuardConfigError as e:
        raise ConfigurationError(f"invalid WireGuard config: {e}") from e
    logger.info("WireGuard enabled", extra={"auto_register_peers": config.auto_register_peers})
    return service


def build_email(settings: Settings) -> Optional[EmailService]:
    if not settings.smtp_configured:
        logger.warning("SMTP not configured, password emails disabled")
        return None
    return EmailService(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        from_email=settings.smtp_from,
        test_email_only=settings.test_email_only,
        timeout=settings.smtp_timeout,
    )


def run(settings: Settings, feature_config: FeatureConfig) -> RunResult:
    """Wire the real clients together and execute one run.

    Raises:
        ConfigurationError: If any client cannot be configured
        VMwareError: If the hypervisor connection fails
    """
    settings.validate_esxi()
    wireguard_config = apply_opnsense_overrides(feature_config.wireguard, settings)
    feature_config = feature_config.model_copy(update={"wireguard": wireguard_config})

    wireguard = build_wireguard(wireguard_config, settings)
    email = build_email(settings)
    calendar = CalendarService(feature_config.calendar)
    inventory = VMwareService.connect(settings)

    orchestrator = Orchestrator(
        inventory=inventory,
        calendar=calendar,
        feature_config=feature_config,
        email=email,
        wireguard=wireguard,
    )
    try:
        return orchestrator.run()
    finally:
        if wireguard is not None and wireguard.opnsense is not None:
            wireguard.opnsense.close()


def print_snapshots(settings: Settings) -> None:
    """Print the hypervisor inventory as JSON."""
    settings.validate_esxi()
    client = VMwareService.connect(settings)
    try:
        inventory = client.list_vm_snapshots()
    finally:
        client.close()

    report = InventoryResponse(
        host_name=inventory.host_name,
        total=inventory.total,
        machines=[MachineResponse.model_validate(m) for m in inventory.machines],
    )
    print(report.model_dump_json(indent=2))


def exit_code_for(status: RunStatus) -> int:
    return EXIT_OK if status == RunStatus.DONE else EXIT_FAILURE


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="labprovider",
        description="Restore booked ESXi lab VMs and deliver fresh credentials",
    )
    parser.add_argument(
        "--config",
        help="Feature config YAML (default: FEATURE_CONFIG_PATH or data/user_config.yaml)",
    )
    parser.add_argument("--log-level", help="Override LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("run", help="Run one provisioning pass for the active bookings")
    subparsers.add_parser("snapshots", help="Print the VM snapshot inventory as JSON")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(args.log_level or settings.log_level, stream=sys.stderr)

    try:
        if args.command == "snapshots":
            print_snapshots(settings)
            return EXIT_OK

        feature_config = load_feature_config(args.config or settings.feature_config_path)
        result = run(settings, feature_config)
    except ConfigurationError as e:
        logger.error("Configuration error", extra={"error": e})
        return EXIT_CONFIG
    except VMwareError as e:
        logger.error("Failed to connect to VMware", extra={"action": "startup", "error": e})
        return EXIT_FAILURE

    logger.info(
        "Run finished",
        extra={
            "status": result.status.value,
            "restored": result.restored,
            "failed": result.failed,
            "emails_sent": result.emails_sent,
        },
    )
    return exit_code_for(result.status)


if __name__ == "__main__":
    sys.exit(main())

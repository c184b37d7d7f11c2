# backend/labprovider/services/__init__.py
from .email_service import EmailService
from .opnsense_client import OPNsenseClient
from .wireguard_service import WireGuardService
from .orchestrator import Orchestrator, RunResult

__all__ = ['EmailService', 'OPNsenseClient', 'WireGuardService', 'Orchestrator', 'RunResult']

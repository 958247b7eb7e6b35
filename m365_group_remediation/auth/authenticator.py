"""
Authentication module — certificate, client-secret and delegated auth.
Uses MSAL for token acquisition against Microsoft Identity Platform.
"""

from __future__ import annotations

import base64
import getpass
import logging
import os
from typing import Optional

from cryptography.hazmat.primitives.serialization import pkcs12, Encoding, PrivateFormat, NoEncryption
from cryptography.hazmat.primitives.hashes import SHA1
import msal

from ..config import AuthConfig, REQUIRED_PERMISSIONS
from ..graph.client import GraphClient
from ..safety.guardian import SafetyGuardian

logger = logging.getLogger("m365_group_remediation.auth")

# Default scopes for app-only auth
APP_SCOPES = ["https://graph.microsoft.com/.default"]


class AuthenticationError(Exception):
    """Raised when authentication fails."""
    pass


def load_certificate(cert_path: str, password: str) -> tuple[str, str]:
    """
    Read a base64-encoded PFX and return (private_key_pem, thumbprint).
    """
    try:
        with open(cert_path, "r") as f:
            cert_base64 = f.read().strip()

        cert_bytes = base64.b64decode(cert_base64)
        password_bytes = password.encode("utf-8") if password else None

        private_key, certificate, _ = pkcs12.load_key_and_certificates(
            cert_bytes, password_bytes
        )
        if private_key is None or certificate is None:
            raise AuthenticationError(f"PFX at {cert_path} has no key or certificate.")

        private_key_pem = private_key.private_bytes(
            Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
        ).decode("utf-8")
        thumbprint = certificate.fingerprint(SHA1()).hex()

    except FileNotFoundError:
        raise AuthenticationError(f"Certificate file not found: {cert_path}.")
    except AuthenticationError:
        raise
    except Exception as e:
        raise AuthenticationError(f"Failed to load certificate: {e}")

    logger.info(f"Certificate loaded. Thumbprint: {thumbprint}")
    return private_key_pem, thumbprint


class Authenticator:
    """
    Handles MSAL-based authentication for Microsoft Graph.
    Supports:
      - Certificate-based app-only authentication
      - Client-secret app-only authentication
      - Delegated interactive authentication (device code flow)
    """

    def __init__(self, config: AuthConfig, interactive: bool = True):
        self.config = config
        self.interactive = interactive
        self._access_token: Optional[str] = None

    async def acquire_token(self) -> str:
        """Acquire an access token based on configured auth mode."""
        if self.config.mode == "certificate":
            return self._acquire_certificate_token()
        elif self.config.mode == "secret":
            return self._acquire_secret_token()
        elif self.config.mode == "delegated":
            return self._acquire_delegated_token()
        else:
            raise AuthenticationError(f"Unknown auth mode: {self.config.mode}")

    def _acquire_certificate_token(self) -> str:
        """Acquire token using certificate-based client credentials."""
        cert_config = self.config.certificate
        if not cert_config:
            raise AuthenticationError("Certificate auth config not provided.")

        logger.info("Authenticating with certificate-based app credentials...")

        password = cert_config.certificate_password
        if not password:
            password = os.environ.get("M365_CERT_PASSWORD", "")
        if not password and self.interactive:
            password = getpass.getpass("Enter the certificate password: ")

        private_key_pem, thumbprint = load_certificate(
            cert_config.certificate_path, password
        )

        app = msal.ConfidentialClientApplication(
            client_id=cert_config.client_id,
            authority=f"https://login.microsoftonline.com/{cert_config.tenant_id}",
            client_credential={
                "thumbprint": thumbprint,
                "private_key": private_key_pem,
            },
        )
        return self._take_token(app.acquire_token_for_client(scopes=APP_SCOPES), "Certificate")

    def _acquire_secret_token(self) -> str:
        """Acquire token using a client secret."""
        secret_config = self.config.secret
        if not secret_config:
            raise AuthenticationError("Client-secret auth config not provided.")

        secret = secret_config.client_secret or os.environ.get("M365_CLIENT_SECRET", "")
        if not secret:
            raise AuthenticationError(
                "No client secret provided. Set M365_CLIENT_SECRET or the config value."
            )

        logger.info("Authenticating with client-secret app credentials...")
        app = msal.ConfidentialClientApplication(
            client_id=secret_config.client_id,
            authority=f"https://login.microsoftonline.com/{secret_config.tenant_id}",
            client_credential=secret,
        )
        return self._take_token(app.acquire_token_for_client(scopes=APP_SCOPES), "Client-secret")

    def _acquire_delegated_token(self) -> str:
        """Acquire token using delegated (device code) flow."""
        deleg_config = self.config.delegated
        if not deleg_config:
            raise AuthenticationError("Delegated auth config not provided.")
        if not self.interactive:
            raise AuthenticationError("Delegated auth needs an interactive session.")

        logger.info("Initiating device code authentication flow...")

        app = msal.PublicClientApplication(
            client_id=deleg_config.client_id,
            authority=f"https://login.microsoftonline.com/{deleg_config.tenant_id}",
        )

        flow = app.initiate_device_flow(scopes=list(deleg_config.scopes))
        if "user_code" not in flow:
            raise AuthenticationError(
                f"Device code flow failed: {flow.get('error_description', 'Unknown')}"
            )

        print(f"\n{'='*60}")
        print(f"  To sign in, open: {flow['verification_uri']}")
        print(f"  Enter code: {flow['user_code']}")
        print(f"{'='*60}\n")

        return self._take_token(app.acquire_token_by_device_flow(flow), "Delegated")

    def _take_token(self, result: dict, mode: str) -> str:
        if "access_token" in result:
            self._access_token = result["access_token"]
            logger.info(f"{mode} authentication successful.")
            return self._access_token
        error = result.get("error_description", result.get("error", "Unknown"))
        raise AuthenticationError(f"{mode} auth failed: {error}")

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    @staticmethod
    def list_required_permissions() -> dict[str, str]:
        """Return the map of required Graph API permissions."""
        return REQUIRED_PERMISSIONS


async def connect(
    config: AuthConfig,
    guardian: SafetyGuardian,
    interactive: bool = True,
) -> GraphClient:
    """
    Authenticate and return an opened GraphClient.
    Raises AuthenticationError; the caller treats it as fatal.
    """
    try:
        token = await Authenticator(config, interactive=interactive).acquire_token()
    except AuthenticationError:
        raise
    except Exception as e:
        raise AuthenticationError(f"Token request failed: {type(e).__name__}: {e}") from e
    if not token:
        raise AuthenticationError("Authentication returned an empty token.")
    return await GraphClient(access_token=token, guardian=guardian).__aenter__()

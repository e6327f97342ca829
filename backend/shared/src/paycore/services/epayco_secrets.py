"""ePayco credentials from the environment or SSM Parameter Store.

The private key signs every processor webhook and, together with the
public key, authenticates against the Apify API. Deployments either set
EPAYCO_PRIVATE_KEY / EPAYCO_PUBLIC_KEY directly or store them as
SecureString parameters under /paycore/{environment}/epayco/{key}.
"""

import logging
from typing import Any, Literal

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from paycore.config import Settings

logger = logging.getLogger(__name__)

SecretKey = Literal["private_key", "public_key"]


class SSMServiceError(Exception):
    """Raised when a credential parameter cannot be read from SSM."""


class EpaycoSecrets:
    """Reads ePayco keys, preferring settings over SSM.

    Values found in SSM are kept until forget() is called; misses are not
    remembered, so a parameter created after startup is picked up on the
    next lookup.

    Usage:
        secrets = EpaycoSecrets(get_settings())
        validator = SignatureValidator(secrets.private_key)
    """

    def __init__(self, settings: Settings, *, ssm_client: Any = None) -> None:
        self._settings = settings
        self._ssm_client = ssm_client
        self._found: dict[str, str] = {}

    @property
    def _ssm(self) -> Any:
        if self._ssm_client is None:
            self._ssm_client = boto3.client("ssm")
        return self._ssm_client

    def parameter_name(self, key: SecretKey) -> str:
        """e.g. /paycore/prod/epayco/private_key"""
        return f"/paycore/{self._settings.environment}/epayco/{key}"

    def get(self, key: SecretKey) -> str | None:
        """Return the credential, or None when neither source has it.

        SSM failures are logged and reported as None so the caller can
        reject the request instead of crashing.
        """
        configured = getattr(self._settings, f"epayco_{key}")
        if configured:
            return configured
        if key in self._found:
            return self._found[key]

        try:
            value = self._fetch(self.parameter_name(key))
        except SSMServiceError as e:
            logger.error("ePayco %s unavailable: %s", key, e)
            return None

        if value is not None:
            self._found[key] = value
        return value

    def private_key(self) -> str | None:
        return self.get("private_key")

    def public_key(self) -> str | None:
        return self.get("public_key")

    def forget(self) -> None:
        """Drop keys read from SSM (after a rotation)."""
        self._found.clear()
        logger.info("Cached ePayco credentials cleared")

    def _fetch(self, name: str) -> str | None:
        try:
            logger.info("Fetching SSM parameter: %s", name)
            response = self._ssm.get_parameter(Name=name, WithDecryption=True)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            if code == "ParameterNotFound":
                logger.warning("SSM parameter not found: %s", name)
                return None
            if code == "AccessDeniedException":
                raise SSMServiceError(
                    f"Access denied to {name}; check ssm:GetParameter and kms:Decrypt"
                ) from e
            raise SSMServiceError(f"Failed to read {name}: {code}") from e
        except BotoCoreError as e:
            raise SSMServiceError(f"Failed to read {name}: {e}") from e
        return response["Parameter"]["Value"]

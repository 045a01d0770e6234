"""
AWS provider for authentication and region-keyed service client management
"""

import logging
import threading
from typing import Dict, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config import AWSCredentials, DEFAULT_AWS_REGION
from .exceptions import ProviderError

logger = logging.getLogger(__name__)


class AWSProvider:
    """Owns one boto3 session and hands out clients keyed by (service, region).

    boto3 sessions are not thread-safe, so client creation is serialized
    behind a lock. The clients themselves are safe to share between the
    discovery worker threads.
    """

    def __init__(self, session: Optional[boto3.Session] = None,
                 region: str = DEFAULT_AWS_REGION):
        self.session = session or boto3.Session(region_name=region)
        self.region = region
        self._account_id: Optional[str] = None
        self._clients: Dict[Tuple[str, str], object] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_credentials(cls, credentials: AWSCredentials) -> "AWSProvider":
        """Build a provider from a profile, static keys or an assumed role"""
        try:
            if credentials.profile:
                session = boto3.Session(profile_name=credentials.profile,
                                        region_name=credentials.region)
            elif credentials.access_key_id and credentials.secret_access_key:
                session = boto3.Session(
                    aws_access_key_id=credentials.access_key_id,
                    aws_secret_access_key=credentials.secret_access_key,
                    aws_session_token=credentials.session_token,
                    region_name=credentials.region,
                )
            else:
                # Environment variables or instance metadata
                session = boto3.Session(region_name=credentials.region)

            if credentials.role_arn:
                session = cls._assume_role(session, credentials)
        except (BotoCoreError, ClientError) as e:
            raise ProviderError(f"Failed to initialize AWS session: {e}") from e

        return cls(session=session, region=credentials.region)

    @staticmethod
    def _assume_role(session: boto3.Session, credentials: AWSCredentials) -> boto3.Session:
        params = {
            "RoleArn": credentials.role_arn,
            "RoleSessionName": "compliance-scanner",
        }
        if credentials.external_id:
            params["ExternalId"] = credentials.external_id

        assumed = session.client("sts").assume_role(**params)["Credentials"]
        logger.info(f"Assumed role {credentials.role_arn}")
        return boto3.Session(
            aws_access_key_id=assumed["AccessKeyId"],
            aws_secret_access_key=assumed["SecretAccessKey"],
            aws_session_token=assumed["SessionToken"],
            region_name=credentials.region,
        )

    @property
    def account_id(self) -> str:
        """AWS account ID of the active credentials"""
        if self._account_id is None:
            try:
                sts_client = self.get_client("sts")
                self._account_id = sts_client.get_caller_identity()["Account"]
            except (BotoCoreError, ClientError) as e:
                logger.warning(f"Could not retrieve account ID: {e}")
                self._account_id = "unknown"
        return self._account_id

    def get_client(self, service_name: str, region: Optional[str] = None):
        """Get a boto3 client for a service in an explicit region"""
        region = region or self.region
        key = (service_name, region)

        with self._lock:
            client = self._clients.get(key)
            if client is None:
                try:
                    client = self.session.client(service_name, region_name=region)
                except (BotoCoreError, ValueError) as e:
                    raise ProviderError(
                        f"Failed to create {service_name} client in {region}: {e}"
                    ) from e
                self._clients[key] = client
        return client

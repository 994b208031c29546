"""
Identity module for AWS Cloud Scanner

Creates boto3 sessions and resolves which account and region a scan targets.
"""

import threading
from typing import Dict, Optional, Tuple

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
    ProfileNotFound,
    TokenRetrievalError,
)

from .errors import IdentityResolutionError
from .logging import get_logger

logger = get_logger()

# Thread-safe session pool, one session per profile
_session_pool: Dict[str, boto3.Session] = {}
_session_pool_lock = threading.Lock()


def get_session(profile_name: Optional[str] = None) -> boto3.Session:
    """Get (or create) the boto3 session for a profile."""
    pool_key = profile_name or "default"

    with _session_pool_lock:
        if pool_key not in _session_pool:
            try:
                _session_pool[pool_key] = boto3.Session(profile_name=profile_name)
            except ProfileNotFound as e:
                raise IdentityResolutionError(f"AWS profile '{profile_name}' not found") from e

    return _session_pool[pool_key]


class AWSIdentityResolver:
    """Resolves account id and effective region through STS."""

    def __init__(self, session: boto3.Session, client_config: Optional[Config] = None):
        self.session = session
        self.client_config = client_config

    def resolve(self, region: Optional[str] = None) -> Tuple[str, str]:
        """
        Return (account_id, region) for the session's credentials.

        ``region`` overrides the session's configured region when given.
        """
        effective_region = region or self.session.region_name
        if not effective_region:
            raise IdentityResolutionError(
                "no AWS region configured - pass --region or set AWS_REGION"
            )

        logger.debug("Looking up AWS caller identity...")
        try:
            sts_client = self.session.client("sts", region_name=effective_region, config=self.client_config)
            response = sts_client.get_caller_identity()
        except NoCredentialsError as e:
            raise IdentityResolutionError(
                "no AWS credentials found - configure credentials or set AWS_PROFILE"
            ) from e
        except TokenRetrievalError as e:
            raise IdentityResolutionError(
                "failed to retrieve AWS credentials - check your AWS CLI configuration or SSO session"
            ) from e
        except (ClientError, BotoCoreError) as e:
            raise IdentityResolutionError(f"failed to discover AWS caller identity: {e}") from e

        account_id = response.get("Account")
        if not account_id:
            raise IdentityResolutionError("missing account id for aws account")

        logger.debug("Verified AWS credentials for account %s!", account_id)
        return account_id, effective_region

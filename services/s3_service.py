"""
S3 Service Scanner
-----------------

Scans S3 buckets located in the target region.
Documentation: https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/s3.html
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from botocore.config import Config
from botocore.exceptions import ClientError

from cloud_scanner_lib.logging import get_logger
from cloud_scanner_lib.report import Resource, Result, ServiceResults, evaluate

logger = get_logger()

# Bucket lookups are independent; a few workers keep well within API limits
S3_MAX_WORKERS = 6

PUBLIC_ACCESS_BLOCK_SETTINGS = [
    "BlockPublicAcls",
    "IgnorePublicAcls",
    "BlockPublicPolicy",
    "RestrictPublicBuckets",
]


def _public_access_blocked(s3_client: Any, bucket_name: str) -> bool:
    try:
        response = s3_client.get_public_access_block(Bucket=bucket_name)
    except ClientError as e:
        if e.response["Error"]["Code"] == "NoSuchPublicAccessBlockConfiguration":
            return False
        raise
    config = response.get("PublicAccessBlockConfiguration", {})
    return all(config.get(setting) for setting in PUBLIC_ACCESS_BLOCK_SETTINGS)


def _versioning_enabled(s3_client: Any, bucket_name: str) -> bool:
    response = s3_client.get_bucket_versioning(Bucket=bucket_name)
    return response.get("Status") == "Enabled"


def _scan_bucket(s3_client: Any, bucket: Dict[str, Any], region: str) -> Optional[Resource]:
    """Check one bucket, or return None when it lives in another region."""
    bucket_name = bucket["Name"]

    location = s3_client.get_bucket_location(Bucket=bucket_name).get("LocationConstraint")
    # Buckets in us-east-1 report no location constraint
    if (location or "us-east-1") != region:
        return None

    checks: List[Result] = [
        evaluate(
            "s3-block-public-access",
            "HIGH",
            _public_access_blocked(s3_client, bucket_name),
            "All public access block settings are enabled",
        ),
        evaluate(
            "s3-versioning-enabled",
            "LOW",
            _versioning_enabled(s3_client, bucket_name),
            "Bucket versioning is enabled",
        ),
    ]
    return Resource(arn=f"arn:aws:s3:::{bucket_name}", resource_type="s3:bucket", results=checks)


def scan_s3(session: Any, region: str, account_id: str, config: Optional[Config] = None) -> ServiceResults:
    """Scan all S3 buckets in the given region."""
    logger.debug("Starting S3 service scan in region %s", region)
    s3_client = session.client("s3", region_name=region, config=config)
    results = ServiceResults()

    buckets = s3_client.list_buckets().get("Buckets", [])
    with ThreadPoolExecutor(max_workers=S3_MAX_WORKERS) as executor:
        for resource in executor.map(lambda bucket: _scan_bucket(s3_client, bucket, region), buckets):
            if resource is not None:
                results.add(resource)

    logger.debug("S3 scan in %s found %d of %d buckets", region, len(results.resources), len(buckets))
    return results

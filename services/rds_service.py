"""
RDS Service Scanner
------------------

Scans RDS database instances.
Documentation: https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/rds.html
"""

from typing import Any, Optional

from botocore.config import Config

from cloud_scanner_lib.logging import get_logger
from cloud_scanner_lib.report import Resource, ServiceResults, evaluate

logger = get_logger()


def scan_rds(session: Any, region: str, account_id: str, config: Optional[Config] = None) -> ServiceResults:
    """Scan RDS database instances in a region."""
    logger.debug("Starting RDS service scan in region %s", region)
    rds_client = session.client("rds", region_name=region, config=config)
    results = ServiceResults()

    for page in rds_client.get_paginator("describe_db_instances").paginate():
        for instance in page["DBInstances"]:
            results.add(
                Resource(
                    arn=instance["DBInstanceArn"],
                    resource_type="rds:db_instance",
                    results=[
                        evaluate(
                            "rds-storage-encrypted",
                            "HIGH",
                            bool(instance.get("StorageEncrypted")),
                            "Database storage is encrypted at rest",
                        ),
                        evaluate(
                            "rds-not-publicly-accessible",
                            "CRITICAL",
                            not instance.get("PubliclyAccessible", False),
                            "Database instance is not publicly accessible",
                        ),
                    ],
                )
            )

    logger.debug("RDS scan in %s found %d resources", region, len(results.resources))
    return results

"""
VPC Service Scanner
------------------

Scans VPCs and whether they record flow logs.
Documentation: https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/ec2.html
"""

from typing import Any, Optional, Set

from botocore.config import Config

from cloud_scanner_lib.logging import get_logger
from cloud_scanner_lib.report import Resource, ServiceResults, evaluate

logger = get_logger()


def _vpcs_with_flow_logs(ec2_client: Any) -> Set[str]:
    logged: Set[str] = set()
    for page in ec2_client.get_paginator("describe_flow_logs").paginate():
        for flow_log in page["FlowLogs"]:
            logged.add(flow_log.get("ResourceId", ""))
    return logged


def scan_vpc(session: Any, region: str, account_id: str, config: Optional[Config] = None) -> ServiceResults:
    """Scan VPCs in a region."""
    logger.debug("Starting VPC service scan in region %s", region)
    ec2_client = session.client("ec2", region_name=region, config=config)
    results = ServiceResults()

    flow_logged = _vpcs_with_flow_logs(ec2_client)

    for page in ec2_client.get_paginator("describe_vpcs").paginate():
        for vpc in page["Vpcs"]:
            vpc_id = vpc["VpcId"]
            results.add(
                Resource(
                    arn=f"arn:aws:ec2:{region}:{account_id}:vpc/{vpc_id}",
                    resource_type="vpc:vpc",
                    results=[
                        evaluate(
                            "vpc-flow-logs-enabled",
                            "MEDIUM",
                            vpc_id in flow_logged,
                            "VPC flow logs are enabled",
                        ),
                        evaluate(
                            "vpc-no-default-vpc",
                            "LOW",
                            not vpc.get("IsDefault", False),
                            "VPC is not the account's default VPC",
                        ),
                    ],
                )
            )

    logger.debug("VPC scan in %s found %d resources", region, len(results.resources))
    return results

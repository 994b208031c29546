"""
EC2 Service Scanner
------------------

Scans EC2 instances, EBS volumes and security groups.
Documentation: https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/ec2.html
"""

from typing import Any, Dict, List, Optional

from botocore.config import Config

from cloud_scanner_lib.logging import get_logger
from cloud_scanner_lib.report import Resource, ServiceResults, evaluate

logger = get_logger()

PUBLIC_CIDRS = {"0.0.0.0/0", "::/0"}


def _paginate(ec2_client: Any, operation: str, key: str, **kwargs: Any) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    for page in ec2_client.get_paginator(operation).paginate(**kwargs):
        items.extend(page[key])
    return items


def _has_public_ingress(security_group: Dict[str, Any]) -> bool:
    for permission in security_group.get("IpPermissions", []):
        cidrs = {r.get("CidrIp") for r in permission.get("IpRanges", [])}
        cidrs |= {r.get("CidrIpv6") for r in permission.get("Ipv6Ranges", [])}
        if cidrs & PUBLIC_CIDRS:
            return True
    return False


def scan_ec2(session: Any, region: str, account_id: str, config: Optional[Config] = None) -> ServiceResults:
    """Scan EC2 instances, volumes and security groups in a region."""
    logger.debug("Starting EC2 service scan in region %s", region)
    ec2_client = session.client("ec2", region_name=region, config=config)
    results = ServiceResults()

    for reservation in _paginate(ec2_client, "describe_instances", "Reservations"):
        for instance in reservation["Instances"]:
            instance_id = instance["InstanceId"]
            http_tokens = instance.get("MetadataOptions", {}).get("HttpTokens")
            results.add(
                Resource(
                    arn=f"arn:aws:ec2:{region}:{account_id}:instance/{instance_id}",
                    resource_type="ec2:instance",
                    results=[
                        evaluate(
                            "ec2-imdsv2-required",
                            "HIGH",
                            http_tokens == "required",
                            "Instance metadata service requires session tokens (IMDSv2)",
                        )
                    ],
                )
            )

    for volume in _paginate(ec2_client, "describe_volumes", "Volumes"):
        results.add(
            Resource(
                arn=f"arn:aws:ec2:{region}:{account_id}:volume/{volume['VolumeId']}",
                resource_type="ec2:volume",
                results=[
                    evaluate(
                        "ec2-volume-encrypted",
                        "MEDIUM",
                        bool(volume.get("Encrypted")),
                        "EBS volume is encrypted at rest",
                    )
                ],
            )
        )

    for security_group in _paginate(ec2_client, "describe_security_groups", "SecurityGroups"):
        results.add(
            Resource(
                arn=f"arn:aws:ec2:{region}:{account_id}:security-group/{security_group['GroupId']}",
                resource_type="ec2:security_group",
                results=[
                    evaluate(
                        "ec2-no-public-ingress",
                        "CRITICAL",
                        not _has_public_ingress(security_group),
                        "Security group does not allow ingress from the whole internet",
                    )
                ],
            )
        )

    logger.debug("EC2 scan in %s found %d resources", region, len(results.resources))
    return results

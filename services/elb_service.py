"""
ELB Service Scanner
------------------

Scans application and network load balancers (ELBv2) and their listeners.
Documentation: https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/elbv2.html
"""

from typing import Any, Dict, List, Optional

from botocore.config import Config

from cloud_scanner_lib.logging import get_logger
from cloud_scanner_lib.report import Resource, ServiceResults, evaluate

logger = get_logger()

ENCRYPTED_PROTOCOLS = {"HTTPS", "TLS"}


def _listeners(elbv2_client: Any, load_balancer_arn: str) -> List[Dict[str, Any]]:
    listeners: List[Dict[str, Any]] = []
    paginator = elbv2_client.get_paginator("describe_listeners")
    for page in paginator.paginate(LoadBalancerArn=load_balancer_arn):
        listeners.extend(page["Listeners"])
    return listeners


def scan_elb(session: Any, region: str, account_id: str, config: Optional[Config] = None) -> ServiceResults:
    """Scan ELBv2 load balancers in a region."""
    logger.debug("Starting ELB service scan in region %s", region)
    elbv2_client = session.client("elbv2", region_name=region, config=config)
    results = ServiceResults()

    for page in elbv2_client.get_paginator("describe_load_balancers").paginate():
        for load_balancer in page["LoadBalancers"]:
            arn = load_balancer["LoadBalancerArn"]
            listeners = _listeners(elbv2_client, arn)
            # Gateway load balancers have GENEVE listeners and nothing to encrypt
            checked = [listener for listener in listeners if listener.get("Protocol") != "GENEVE"]
            results.add(
                Resource(
                    arn=arn,
                    resource_type=f"elb:{load_balancer.get('Type', 'application')}",
                    results=[
                        evaluate(
                            "elb-encrypted-listeners",
                            "HIGH",
                            all(listener.get("Protocol") in ENCRYPTED_PROTOCOLS for listener in checked),
                            "All listeners use HTTPS or TLS",
                        )
                    ],
                )
            )

    logger.debug("ELB scan in %s found %d resources", region, len(results.resources))
    return results

"""
ECS Service Scanner
------------------

Scans ECS clusters.
Documentation: https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/ecs.html
"""

from typing import Any, Dict, List, Optional

from botocore.config import Config

from cloud_scanner_lib.logging import get_logger
from cloud_scanner_lib.report import Resource, ServiceResults, evaluate

logger = get_logger()

# describe_clusters accepts at most 100 ARNs per call
ECS_DESCRIBE_BATCH_SIZE = 100


def _container_insights_enabled(cluster: Dict[str, Any]) -> bool:
    for setting in cluster.get("settings", []):
        if setting.get("name") == "containerInsights":
            return setting.get("value") in ("enabled", "enhanced")
    return False


def scan_ecs(session: Any, region: str, account_id: str, config: Optional[Config] = None) -> ServiceResults:
    """Scan ECS clusters in a region."""
    logger.debug("Starting ECS service scan in region %s", region)
    ecs_client = session.client("ecs", region_name=region, config=config)
    results = ServiceResults()

    cluster_arns: List[str] = []
    for page in ecs_client.get_paginator("list_clusters").paginate():
        cluster_arns.extend(page["clusterArns"])

    for i in range(0, len(cluster_arns), ECS_DESCRIBE_BATCH_SIZE):
        batch = cluster_arns[i : i + ECS_DESCRIBE_BATCH_SIZE]
        response = ecs_client.describe_clusters(clusters=batch, include=["SETTINGS"])
        for cluster in response["clusters"]:
            results.add(
                Resource(
                    arn=cluster["clusterArn"],
                    resource_type="ecs:cluster",
                    results=[
                        evaluate(
                            "ecs-container-insights",
                            "LOW",
                            _container_insights_enabled(cluster),
                            "Container Insights monitoring is enabled",
                        )
                    ],
                )
            )

    logger.debug("ECS scan in %s found %d resources", region, len(results.resources))
    return results

"""
AWS Services Package
-------------------

One module per AWS service. Each exposes a ``scan_<service>(session, region,
account_id)`` function returning that service's ServiceResults.
"""

from .ec2_service import scan_ec2
from .ecs_service import scan_ecs
from .elb_service import scan_elb
from .rds_service import scan_rds
from .s3_service import scan_s3
from .vpc_service import scan_vpc

SERVICE_SCANNERS = {
    "ec2": scan_ec2,
    "s3": scan_s3,
    "rds": scan_rds,
    "vpc": scan_vpc,
    "elb": scan_elb,
    "ecs": scan_ecs,
}

__all__ = [
    "SERVICE_SCANNERS",
    "scan_ec2",
    "scan_s3",
    "scan_rds",
    "scan_vpc",
    "scan_elb",
    "scan_ecs",
]

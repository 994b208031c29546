#!/usr/bin/env python3
"""
Tests for the live scan backend and the per-service scanners, using mocked
boto3 sessions.
"""

import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError

# Add the script's directory to the Python path
script_dir = Path(__file__).parent.absolute()
if str(script_dir) not in sys.path:
    sys.path.insert(0, str(script_dir))

from cloud_scanner_lib.deadline import Deadline
from cloud_scanner_lib.errors import IdentityResolutionError, ScanBackendError
from cloud_scanner_lib.identity import AWSIdentityResolver
from cloud_scanner_lib.report import ServiceResults
from cloud_scanner_lib.scan import AWSScanBackend, retry_with_backoff
from services import SERVICE_SCANNERS, scan_ec2, scan_ecs, scan_rds, scan_s3
from cloud_scanner_lib.catalog import SUPPORTED_SERVICES

ACCOUNT_ID = "123456789012"
REGION = "us-east-1"


def client_error(code, operation="DescribeInstances"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def mock_client(pages):
    """Client whose paginators yield ``pages[operation]``."""
    client = MagicMock()

    def get_paginator(operation):
        paginator = MagicMock()
        paginator.paginate.return_value = pages.get(operation, [])
        return paginator

    client.get_paginator.side_effect = get_paginator
    return client


def mock_session(client):
    session = MagicMock()
    session.client.return_value = client
    return session


def statuses(results):
    return {arn: [r.status for r in resource.results] for arn, resource in results.resources.items()}


class TestServiceScanners(unittest.TestCase):
    """Tests for individual service scanners."""

    def test_every_catalog_service_has_a_scanner(self):
        self.assertEqual(list(SERVICE_SCANNERS), list(SUPPORTED_SERVICES))

    def test_scan_ec2(self):
        """Instances, volumes and security groups are checked."""
        client = mock_client(
            {
                "describe_instances": [
                    {
                        "Reservations": [
                            {
                                "Instances": [
                                    {"InstanceId": "i-1", "MetadataOptions": {"HttpTokens": "optional"}},
                                    {"InstanceId": "i-2", "MetadataOptions": {"HttpTokens": "required"}},
                                ]
                            }
                        ]
                    }
                ],
                "describe_volumes": [{"Volumes": [{"VolumeId": "vol-1", "Encrypted": True}]}],
                "describe_security_groups": [
                    {
                        "SecurityGroups": [
                            {
                                "GroupId": "sg-1",
                                "IpPermissions": [{"IpRanges": [{"CidrIp": "0.0.0.0/0"}], "Ipv6Ranges": []}],
                            },
                            {"GroupId": "sg-2", "IpPermissions": [{"IpRanges": [{"CidrIp": "10.0.0.0/8"}]}]},
                        ]
                    }
                ],
            }
        )

        results = scan_ec2(mock_session(client), REGION, ACCOUNT_ID)

        prefix = f"arn:aws:ec2:{REGION}:{ACCOUNT_ID}"
        self.assertEqual(
            statuses(results),
            {
                f"{prefix}:instance/i-1": ["FAILED"],
                f"{prefix}:instance/i-2": ["PASSED"],
                f"{prefix}:volume/vol-1": ["PASSED"],
                f"{prefix}:security-group/sg-1": ["FAILED"],
                f"{prefix}:security-group/sg-2": ["PASSED"],
            },
        )

    def test_scan_s3_only_keeps_buckets_in_region(self):
        client = MagicMock()
        client.list_buckets.return_value = {"Buckets": [{"Name": "local"}, {"Name": "remote"}]}
        client.get_bucket_location.side_effect = lambda Bucket: {
            "LocationConstraint": None if Bucket == "local" else "eu-west-1"
        }
        client.get_public_access_block.side_effect = client_error(
            "NoSuchPublicAccessBlockConfiguration", "GetPublicAccessBlock"
        )
        client.get_bucket_versioning.return_value = {"Status": "Enabled"}

        results = scan_s3(mock_session(client), REGION, ACCOUNT_ID)

        self.assertEqual(statuses(results), {"arn:aws:s3:::local": ["FAILED", "PASSED"]})

    def test_scan_s3_propagates_access_errors(self):
        client = MagicMock()
        client.list_buckets.side_effect = client_error("AccessDenied", "ListBuckets")

        with self.assertRaises(ClientError):
            scan_s3(mock_session(client), REGION, ACCOUNT_ID)

    def test_scan_rds(self):
        client = mock_client(
            {
                "describe_db_instances": [
                    {
                        "DBInstances": [
                            {"DBInstanceArn": "arn:db", "StorageEncrypted": True, "PubliclyAccessible": True}
                        ]
                    }
                ]
            }
        )

        results = scan_rds(mock_session(client), REGION, ACCOUNT_ID)

        self.assertEqual(statuses(results), {"arn:db": ["PASSED", "FAILED"]})
        self.assertTrue(results.failed())

    def test_scan_ecs_batches_describe_calls(self):
        arns = [f"arn:cluster/{i}" for i in range(150)]
        client = mock_client({"list_clusters": [{"clusterArns": arns}]})
        client.describe_clusters.side_effect = lambda clusters, include: {
            "clusters": [
                {"clusterArn": arn, "settings": [{"name": "containerInsights", "value": "enabled"}]}
                for arn in clusters
            ]
        }

        results = scan_ecs(mock_session(client), REGION, ACCOUNT_ID)

        self.assertEqual(client.describe_clusters.call_count, 2)
        self.assertEqual(len(results.resources), 150)
        self.assertFalse(results.failed())


class TestRetryWithBackoff(unittest.TestCase):
    """Tests for retrying throttled calls."""

    @patch("cloud_scanner_lib.scan.time.sleep")
    def test_retries_throttling(self, sleep):
        func = MagicMock(side_effect=[client_error("Throttling"), "ok"])
        self.assertEqual(retry_with_backoff(func), "ok")
        self.assertEqual(func.call_count, 2)
        sleep.assert_called_once()

    @patch("cloud_scanner_lib.scan.time.sleep")
    def test_access_denied_is_not_retried(self, sleep):
        func = MagicMock(side_effect=client_error("AccessDenied"))
        with self.assertRaises(ClientError):
            retry_with_backoff(func)
        self.assertEqual(func.call_count, 1)
        sleep.assert_not_called()

    @patch("cloud_scanner_lib.scan.time.sleep")
    def test_gives_up_after_max_retries(self, sleep):
        func = MagicMock(side_effect=EndpointConnectionError(endpoint_url="https://ec2.example"))
        with self.assertRaises(EndpointConnectionError):
            retry_with_backoff(func, max_retries=3)
        self.assertEqual(func.call_count, 3)


class TestAWSScanBackend(unittest.TestCase):
    """Tests for the parallel scan backend."""

    def test_results_follow_requested_order(self):
        scanners = {name: MagicMock(return_value=ServiceResults()) for name in ("ec2", "s3", "rds")}
        backend = AWSScanBackend(MagicMock(), service_workers=3, scanners=scanners)

        results = backend.scan(["rds", "ec2"], REGION, ACCOUNT_ID)

        self.assertEqual(list(results), ["rds", "ec2"])
        scanners["s3"].assert_not_called()
        scanners["ec2"].assert_called_once_with(backend.session, REGION, ACCOUNT_ID, None)

    def test_any_service_failure_fails_the_scan(self):
        """Partial results are never returned."""
        scanners = {
            "ec2": MagicMock(return_value=ServiceResults()),
            "s3": MagicMock(side_effect=client_error("AccessDenied", "ListBuckets")),
        }
        backend = AWSScanBackend(MagicMock(), scanners=scanners)

        with self.assertRaises(ScanBackendError) as ctx:
            backend.scan(["ec2", "s3"], REGION, ACCOUNT_ID)
        self.assertIn("aws scan error", str(ctx.exception))
        self.assertIn("s3", str(ctx.exception))

    def test_unknown_service(self):
        backend = AWSScanBackend(MagicMock(), scanners={"ec2": MagicMock()})
        with self.assertRaises(ScanBackendError):
            backend.scan(["lambda"], REGION, ACCOUNT_ID)

    def test_client_config_reaches_scanners(self):
        """Clients are built with the deadline-bounded config."""
        config = Deadline(30).client_config()
        client = mock_client({"describe_db_instances": []})
        session = mock_session(client)
        backend = AWSScanBackend(session, client_config=config, scanners={"rds": scan_rds})

        backend.scan(["rds"], REGION, ACCOUNT_ID)

        session.client.assert_called_once_with("rds", region_name=REGION, config=config)

    def test_defaults_to_bundled_scanners(self):
        self.assertIs(AWSScanBackend(MagicMock()).scanners, SERVICE_SCANNERS)


class TestAWSIdentityResolver(unittest.TestCase):
    """Tests for account and region discovery through STS."""

    def resolver(self, region_name=REGION, response=None, error=None):
        sts = MagicMock()
        if error is not None:
            sts.get_caller_identity.side_effect = error
        else:
            sts.get_caller_identity.return_value = response or {"Account": ACCOUNT_ID}
        session = mock_session(sts)
        session.region_name = region_name
        return AWSIdentityResolver(session), session

    def test_resolves_account_and_session_region(self):
        resolver, session = self.resolver()
        self.assertEqual(resolver.resolve(), (ACCOUNT_ID, REGION))
        session.client.assert_called_once_with("sts", region_name=REGION, config=None)

    def test_explicit_region_wins(self):
        resolver, _ = self.resolver()
        self.assertEqual(resolver.resolve("eu-west-1"), (ACCOUNT_ID, "eu-west-1"))

    def test_missing_region(self):
        resolver, session = self.resolver(region_name=None)
        with self.assertRaises(IdentityResolutionError):
            resolver.resolve()
        session.client.assert_not_called()

    def test_missing_credentials(self):
        resolver, _ = self.resolver(error=NoCredentialsError())
        with self.assertRaises(IdentityResolutionError) as ctx:
            resolver.resolve()
        self.assertIn("no AWS credentials", str(ctx.exception))

    def test_sts_error(self):
        resolver, _ = self.resolver(error=client_error("ExpiredToken", "GetCallerIdentity"))
        with self.assertRaises(IdentityResolutionError) as ctx:
            resolver.resolve()
        self.assertIn("failed to discover AWS caller identity", str(ctx.exception))

    def test_missing_account(self):
        resolver, _ = self.resolver(response={"UserId": "x"})
        with self.assertRaisesRegex(IdentityResolutionError, "missing account id"):
            resolver.resolve()


if __name__ == "__main__":
    unittest.main(verbosity=2)

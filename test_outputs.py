#!/usr/bin/env python3
"""
Tests for report output (tables, JSON, compare) and the command line.
"""

import json
import shutil
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from typer.testing import CliRunner

# Add the script's directory to the Python path
script_dir = Path(__file__).parent.absolute()
if str(script_dir) not in sys.path:
    sys.path.insert(0, str(script_dir))

from cli import app
from cloud_scanner_lib.errors import DeadlineExceededError, RenderError, UnsupportedServiceError
from cloud_scanner_lib.options import ReportLevel, ReportOptions
from cloud_scanner_lib.outputs import build_json_payload, compare_with_existing, write_report
from cloud_scanner_lib.report import Report, Resource, ServiceResults, evaluate

ACCOUNT_ID = "123456789012"
REGION = "us-east-1"


def sample_report():
    ec2 = ServiceResults()
    ec2.add(
        Resource(
            arn="arn:aws:ec2:us-east-1:123456789012:instance/i-1",
            resource_type="ec2:instance",
            results=[
                evaluate("ec2-imdsv2-required", "HIGH", False, "IMDSv2 required"),
                evaluate("ec2-low-check", "LOW", True, "low check"),
            ],
        )
    )
    ec2.add(Resource(arn="arn:aws:ec2:us-east-1:123456789012:volume/vol-1", resource_type="ec2:volume"))
    s3 = ServiceResults()
    s3.add(Resource(arn="arn:aws:s3:::bucket", resource_type="s3:bucket"))
    return Report(ACCOUNT_ID, REGION, ["ec2", "s3", "rds"], {"ec2": ec2, "s3": s3})


class TestJsonPayload(unittest.TestCase):
    """Tests for the JSON view of a report."""

    def test_service_level_contains_all_services(self):
        payload = build_json_payload(sample_report(), ReportOptions(output_format="json"))
        self.assertEqual(payload["services_in_scope"], ["ec2", "s3", "rds"])
        self.assertEqual(set(payload["results"]), {"ec2", "s3"})
        self.assertFalse(payload["from_cache"])

    def test_resource_level_limits_to_service(self):
        options = ReportOptions(output_format="json", level=ReportLevel.RESOURCE, service="ec2")
        payload = build_json_payload(sample_report(), options)
        self.assertEqual(list(payload["results"]), ["ec2"])

    def test_result_level_limits_to_arn(self):
        arn = "arn:aws:ec2:us-east-1:123456789012:instance/i-1"
        options = ReportOptions(output_format="json", level=ReportLevel.RESULT, service="ec2", arn=arn)
        payload = build_json_payload(sample_report(), options)
        self.assertEqual([r["arn"] for r in payload["results"]["ec2"]["resources"]], [arn])

    def test_severity_filter(self):
        options = ReportOptions(output_format="json", severities=["HIGH"])
        payload = build_json_payload(sample_report(), options)
        rules = [r["rule_id"] for res in payload["results"]["ec2"]["resources"] for r in res["results"]]
        self.assertEqual(rules, ["ec2-imdsv2-required"])


class TestWriteReport(unittest.TestCase):
    """Tests for writing reports to files."""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_json_file(self):
        output = self.temp_dir / "nested" / "report.json"
        write_report(sample_report(), ReportOptions(output_format="json", output=output, from_cache=True))

        data = json.loads(output.read_text())
        self.assertEqual(data["account_id"], ACCOUNT_ID)
        self.assertTrue(data["from_cache"])

    def test_service_table_file(self):
        output = self.temp_dir / "report.txt"
        write_report(sample_report(), ReportOptions(output=output, from_cache=True))

        content = output.read_text()
        for service in ("ec2", "s3", "rds"):
            self.assertIn(service, content)
        self.assertIn("--update-cache", content)

    def test_resource_table_file(self):
        output = self.temp_dir / "report.txt"
        write_report(sample_report(), ReportOptions(output=output, level=ReportLevel.RESOURCE, service="ec2"))

        content = output.read_text()
        self.assertIn("instance/i-1", content)
        self.assertNotIn("s3:::bucket", content)

    def test_result_table_file(self):
        arn = "arn:aws:ec2:us-east-1:123456789012:instance/i-1"
        output = self.temp_dir / "report.txt"
        write_report(
            sample_report(), ReportOptions(output=output, level=ReportLevel.RESULT, service="ec2", arn=arn)
        )

        content = output.read_text()
        self.assertIn("ec2-imdsv2-required", content)
        self.assertIn("FAIL", content)

    def test_unwritable_output(self):
        """Writing to a directory path is a render error."""
        with self.assertRaises(RenderError):
            write_report(sample_report(), ReportOptions(output_format="json", output=self.temp_dir))

    def test_compare_with_existing(self):
        output = self.temp_dir / "report.json"
        first = build_json_payload(sample_report(), ReportOptions(output_format="json"))
        output.write_text(json.dumps(first))

        self.assertEqual(compare_with_existing(output, first), {})

        changed = json.loads(json.dumps(first))
        changed["services_in_scope"].append("vpc")
        self.assertTrue(compare_with_existing(output, changed))

    def test_compare_without_existing_file(self):
        self.assertIsNone(compare_with_existing(self.temp_dir / "missing.json", {}))


class TestCLI(unittest.TestCase):
    """Tests for the command-line interface."""

    def setUp(self):
        self.runner = CliRunner()

    def test_help_command(self):
        result = self.runner.invoke(app, ["scan", "--help"])
        self.assertEqual(result.exit_code, 0)
        self.assertIn("--update-cache", result.output)
        self.assertIn("--service", result.output)

    @patch("cli.run")
    def test_options_are_passed_through(self, run):
        run.return_value = Report(ACCOUNT_ID, REGION, ["ec2"])

        result = self.runner.invoke(
            app,
            [
                "scan",
                "--service", "ec2",
                "--region", "eu-west-1",
                "--account", ACCOUNT_ID,
                "--format", "json",
                "--max-cache-age", "0",
                "--update-cache",
                "--timeout", "30",
            ],
        )

        self.assertEqual(result.exit_code, 0, result.output)
        options = run.call_args[0][0]
        self.assertEqual(options.services, ["ec2"])
        self.assertEqual(options.region, "eu-west-1")
        self.assertEqual(options.account, ACCOUNT_ID)
        self.assertIsNone(options.max_cache_age)
        self.assertTrue(options.update_cache)
        self.assertEqual(options.timeout, 30)

    @patch("cli.run")
    def test_exit_code_on_failed_checks(self, run):
        run.return_value = sample_report()

        result = self.runner.invoke(app, ["scan", "--format", "json", "--exit-code", "3"])
        self.assertEqual(result.exit_code, 3)

        result = self.runner.invoke(app, ["scan", "--format", "json"])
        self.assertEqual(result.exit_code, 0)

    @patch("cli.run", side_effect=UnsupportedServiceError("lambda", ["ec2"]))
    def test_scanner_error_exits_non_zero(self, run):
        result = self.runner.invoke(app, ["scan", "--format", "json", "--service", "lambda"])
        self.assertEqual(result.exit_code, 1)

    @patch("cli.run", side_effect=DeadlineExceededError("deadline of 1s exceeded during aws scan"))
    def test_deadline_suggests_timeout(self, run):
        with patch("cli.configure_logging") as configure_logging:
            result = self.runner.invoke(app, ["scan", "--format", "json", "--timeout", "1"])

        self.assertEqual(result.exit_code, 1)
        configure_logging.return_value.warning.assert_called_once_with("Increase --timeout value")


if __name__ == "__main__":
    unittest.main(verbosity=2)

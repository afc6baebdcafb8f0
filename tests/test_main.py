import logging
import os
import tempfile
from unittest import TestCase
from unittest.mock import patch as mock_patch

import config as cfg
import main


class TestParser(TestCase):
    def test_deploy_defaults(self):
        args = main.build_parser().parse_args([
            "deploy",
            "--subscription-id", "sub-id",
            "--template-uri", "https://example.com/azuredeploy.json",
            "--build-context-url", "https://example.com/Dockerfile",
        ])

        self.assertEqual(args.command, "deploy")
        self.assertEqual(args.location, cfg.DEFAULT_LOCATION)
        self.assertEqual(args.resource_group, cfg.DEFAULT_RESOURCE_GROUP)
        self.assertEqual(args.vm_name, cfg.DEFAULT_VM_NAME)
        self.assertIsNone(args.vm_resource_group)
        self.assertIsNone(args.template_parameter)
        self.assertEqual(args.manifest, cfg.MANIFEST_FILE)

    def test_deploy_template_parameters(self):
        args = main.build_parser().parse_args([
            "deploy",
            "--subscription-id", "sub-id",
            "--template-uri", "https://example.com/azuredeploy.json",
            "--build-context-url", "https://example.com/Dockerfile",
            "--template-parameter", "adminUsername=labadmin",
            "--template-parameter", "vmSize=Standard_B2s",
        ])

        self.assertEqual(args.template_parameter, ["adminUsername=labadmin", "vmSize=Standard_B2s"])

    def test_deploy_requires_subscription(self):
        with mock_patch("sys.stderr"), self.assertRaises(SystemExit):
            main.build_parser().parse_args(["deploy", "--template-uri", "x", "--build-context-url", "y"])

    def test_teardown(self):
        args = main.build_parser().parse_args(["teardown", "-y", "--manifest", "run.json"])

        self.assertEqual(args.command, "teardown")
        self.assertTrue(args.yes)
        self.assertEqual(args.manifest, "run.json")


class TestLogging(TestCase):
    def setUp(self) -> None:
        self.addCleanup(self.reset_logging)

    @staticmethod
    def reset_logging():
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

    def test_transcript_receives_records(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "transcript.log")
            main.configure_logging(verbose=False, log_file=path)

            logging.info("Creating resource group containerlab-rg in eastus")
            logging.debug("not recorded")
            self.reset_logging()

            with open(path, encoding="utf-8") as infile:
                transcript = infile.read()

        self.assertIn("INFO: Creating resource group containerlab-rg in eastus", transcript)
        self.assertNotIn("not recorded", transcript)

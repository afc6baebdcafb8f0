import os
import tempfile
from unittest import TestCase
from unittest.mock import patch as mock_patch

from pydantic import SecretStr

import injector
from errors import SubstitutionError
from identities import CredentialBundle

BUNDLE = CredentialBundle(client_id="11111111-aaaa", client_secret=SecretStr("s3cr3t~value"), tenant_id="22222222-bbbb")

TEMPLATE = (
    "FROM python:3.12-slim\n"
    "ENV AZURE_CLIENT_ID=$containerappid\n"
    "ENV AZURE_CLIENT_SECRET=\"$containerappsecret\"\n"
    "ENV AZURE_TENANT_ID=$tenantid  \n"
    "CMD [\"python\", \"app.py\"]\n"
)

EXPECTED = (
    "FROM python:3.12-slim\n"
    "ENV AZURE_CLIENT_ID=11111111-aaaa\n"
    "ENV AZURE_CLIENT_SECRET=\"s3cr3t~value\"\n"
    "ENV AZURE_TENANT_ID=22222222-bbbb  \n"
    "CMD [\"python\", \"app.py\"]\n"
)


class TestInject(TestCase):
    def test_replaces_all_placeholders(self):
        self.assertEqual(injector.inject(TEMPLATE, BUNDLE), EXPECTED)

    def test_missing_placeholder(self):
        template = TEMPLATE.replace("$tenantid", "fixed-tenant")

        with self.assertRaises(SubstitutionError) as ctx:
            injector.inject(template, BUNDLE)

        self.assertIn("$tenantid", str(ctx.exception))

    def test_matching_is_case_sensitive(self):
        with self.assertRaises(SubstitutionError):
            injector.inject(TEMPLATE.replace("$containerappid", "$ContainerAppId"), BUNDLE)

    def test_empty_secret_is_rejected(self):
        bundle = CredentialBundle(client_id="id", client_secret=SecretStr(""), tenant_id="tenant")

        with self.assertRaises(SubstitutionError):
            injector.inject(TEMPLATE, bundle)

    def test_empty_client_id_is_rejected(self):
        bundle = CredentialBundle(client_id="", client_secret=SecretStr("secret"), tenant_id="tenant")

        with self.assertRaises(SubstitutionError):
            injector.inject(TEMPLATE, bundle)

    def test_substituted_values_are_not_rescanned(self):
        bundle = CredentialBundle(client_id="id", client_secret=SecretStr("x$tenantidx"), tenant_id="tenant")
        template = "$containerappid|$containerappsecret|$tenantid"

        self.assertEqual(injector.inject(template, bundle), "id|x$tenantidx|tenant")


class TestInjectFile(TestCase):
    def setUp(self) -> None:
        self.log_mock = self.patch("injector.logging")
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.path = os.path.join(tmp.name, "Dockerfile")

    def patch(self, path: str, **kwargs):
        """Helper method to patch and auto-cleanup"""
        patcher = mock_patch(path, **kwargs)
        self.addCleanup(patcher.stop)
        return patcher.start()

    def write(self, content: str):
        with open(self.path, "w", encoding="utf-8", newline="") as f:
            f.write(content)

    def read(self) -> str:
        with open(self.path, "r", encoding="utf-8", newline="") as f:
            return f.read()

    def test_writes_injected_document(self):
        self.write(TEMPLATE)

        injector.inject_file(self.path, BUNDLE)

        self.assertEqual(self.read(), EXPECTED)

    def test_preserves_crlf(self):
        self.write(TEMPLATE.replace("\n", "\r\n"))

        injector.inject_file(self.path, BUNDLE)

        self.assertEqual(self.read(), EXPECTED.replace("\n", "\r\n"))

    def test_missing_placeholder_leaves_file_unchanged(self):
        template = TEMPLATE.replace("$containerappsecret", "")
        self.write(template)

        with self.assertRaises(SubstitutionError):
            injector.inject_file(self.path, BUNDLE)

        self.assertEqual(self.read(), template)

    def test_secret_is_never_logged(self):
        self.write(TEMPLATE)

        injector.inject_file(self.path, BUNDLE)

        for call in self.log_mock.mock_calls:
            self.assertNotIn("s3cr3t~value", str(call))

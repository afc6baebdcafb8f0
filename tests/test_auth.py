import json
import os
import tempfile
from argparse import Namespace
from unittest import TestCase
from unittest.mock import MagicMock
from unittest.mock import patch as mock_patch

from roadtools.roadlib.auth import AuthenticationException

import auth
import config as cfg
from errors import AuthenticationError


def make_args(**overrides) -> Namespace:
    values = dict(tenant_id="tenant-id", refresh_token=None, interactive=False, username="admin@contoso.com", password="pw", verbose=False)
    values.update(overrides)
    return Namespace(**values)


class AuthTestCase(TestCase):
    def patch(self, path: str, **kwargs):
        """Helper method to patch and auto-cleanup"""
        patcher = mock_patch(path, **kwargs)
        self.addCleanup(patcher.stop)
        return patcher.start()


class TestSessionTokens(AuthTestCase):
    def setUp(self) -> None:
        self.get_token_mock = self.patch("auth.get_token")
        self.exchange_mock = self.patch("auth.exchange_refresh_token")
        self.patch("auth.logging")

    def test_graph_token_from_arm_refresh_token(self):
        self.get_token_mock.return_value = ("arm-token", "refresh-token")
        self.exchange_mock.return_value = "graph-token"
        args = make_args()

        self.assertEqual(auth.get_session_tokens(args), ("arm-token", "graph-token"))

        self.get_token_mock.assert_called_once_with(args, cfg.AZURE_RESOURCE, cfg.AZURE_CLI_APP_ID, "tenant-id")
        self.exchange_mock.assert_called_once_with("refresh-token", cfg.GRAPH_RESOURCE, cfg.AZURE_CLI_APP_ID, "tenant-id")

    def test_arm_sign_in_failure(self):
        self.get_token_mock.side_effect = AuthenticationError("denied", step="sign in")

        with self.assertRaises(AuthenticationError):
            auth.get_session_tokens(make_args())

        self.exchange_mock.assert_not_called()


class TestGetToken(AuthTestCase):
    def setUp(self) -> None:
        self.authentication = MagicMock(client_id=cfg.AZURE_CLI_APP_ID)
        self.patch("auth.Authentication", return_value=self.authentication)
        self.save_mock = self.patch("auth.save_tokens")

    def test_password_sign_in(self):
        self.authentication.authenticate_username_password_native.return_value = {"accessToken": "a", "refreshToken": "r"}

        self.assertEqual(auth.get_token(make_args(), cfg.AZURE_RESOURCE, cfg.AZURE_CLI_APP_ID, None), ("a", "r"))

        self.assertEqual(self.authentication.username, "admin@contoso.com")
        self.assertEqual(self.authentication.password, "pw")
        self.save_mock.assert_called_once_with(self.authentication)

    def test_refresh_token_takes_precedence(self):
        self.authentication.authenticate_with_refresh_native.return_value = {"accessToken": "a", "refreshToken": "r"}

        auth.get_token(make_args(refresh_token="rt", interactive=True), cfg.AZURE_RESOURCE, cfg.AZURE_CLI_APP_ID, None)

        self.authentication.authenticate_with_refresh_native.assert_called_once_with("rt", client_secret=None)
        self.authentication.authenticate_username_password_native.assert_not_called()

    def test_missing_username(self):
        with self.assertRaises(AuthenticationError) as ctx:
            auth.get_token(make_args(username=None), cfg.AZURE_RESOURCE, cfg.AZURE_CLI_APP_ID, None)

        self.assertEqual(ctx.exception.step, "sign in")

    def test_rejected_credentials(self):
        self.authentication.authenticate_username_password_native.side_effect = AuthenticationException("AADSTS50126")

        with self.assertRaises(AuthenticationError) as ctx:
            auth.get_token(make_args(), cfg.AZURE_RESOURCE, cfg.AZURE_CLI_APP_ID, None)

        self.assertIn("AADSTS50126", str(ctx.exception))
        self.save_mock.assert_not_called()

    def test_exchange_without_token(self):
        self.authentication.authenticate_with_refresh_native.return_value = {}

        with self.assertRaises(AuthenticationError):
            auth.exchange_refresh_token("rt", cfg.GRAPH_RESOURCE, cfg.AZURE_CLI_APP_ID, None)


class TestTokenCache(AuthTestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)
        self.cache = os.path.join(self.tmpdir.name, ".roadtools_auth")
        self.patch("auth.cfg.TOKEN_CACHE_FILE", new=self.cache)

    def test_load_refresh_token(self):
        with open(self.cache, "w", encoding="utf-8") as outfile:
            json.dump({"accessToken": "a", "refreshToken": "cached"}, outfile)

        self.assertEqual(auth.load_refresh_token(), "cached")

    def test_missing_cache(self):
        with self.assertRaises(AuthenticationError):
            auth.load_refresh_token()

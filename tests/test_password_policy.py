from unittest import TestCase
from unittest.mock import MagicMock
from unittest.mock import patch as mock_patch

from pydantic import SecretStr

import password_policy
from errors import ValidationError


class TestValidate(TestCase):
    def test_policy_table(self):
        cases = [
            ("Str0ng!Passw0rd", True),
            ("Abcdefgh1!xy", True),  # exactly 12 characters
            ("Abcdefg1!xy", False),  # 11 characters
            ("abcdefgh1!xy", False),  # no uppercase
            ("ABCDEFGH1!XY", False),  # no lowercase
            ("Abcdefghi!xy", False),  # no digit
            ("Abcdefgh12xy", False),  # no symbol
            ("", False),
        ]
        for candidate, expected in cases:
            with self.subTest(candidate=candidate):
                self.assertEqual(password_policy.validate(candidate), expected)

    def test_space_counts_as_symbol(self):
        self.assertTrue(password_policy.validate("Abcdefgh1 xy"))

    def test_accepts_secret_str(self):
        self.assertTrue(password_policy.validate(SecretStr("Str0ng!Passw0rd")))
        self.assertFalse(password_policy.validate(SecretStr("short")))

    def test_missing_requirements_names_each_rule(self):
        self.assertEqual(
            password_policy.missing_requirements("abc"),
            ["at least 12 characters", "an uppercase letter", "a digit", "a symbol"],
        )
        self.assertEqual(password_policy.missing_requirements("Str0ng!Passw0rd"), [])

    def test_require_valid_raises(self):
        with self.assertRaises(ValidationError):
            password_policy.require_valid("weakpassword")

    def test_require_valid_wraps(self):
        result = password_policy.require_valid("Str0ng!Passw0rd")
        self.assertIsInstance(result, SecretStr)
        self.assertEqual(result.get_secret_value(), "Str0ng!Passw0rd")


class TestPromptForPassword(TestCase):
    def setUp(self) -> None:
        self.log_mock = self.patch("password_policy.logging")

    def patch(self, path: str, **kwargs):
        """Helper method to patch and auto-cleanup"""
        patcher = mock_patch(path, **kwargs)
        self.addCleanup(patcher.stop)
        return patcher.start()

    def test_reprompts_until_valid(self):
        prompt = MagicMock(side_effect=["short", "nouppercase1!", "Str0ng!Passw0rd"])

        result = password_policy.prompt_for_password(prompt)

        self.assertEqual(prompt.call_count, 3)
        self.assertEqual(result.get_secret_value(), "Str0ng!Passw0rd")
        self.assertEqual(self.log_mock.warning.call_count, 2)

    def test_rejected_candidate_is_not_logged(self):
        prompt = MagicMock(side_effect=["Wr0ngButLong", "Str0ng!Passw0rd"])

        password_policy.prompt_for_password(prompt)

        for call in self.log_mock.warning.call_args_list:
            self.assertNotIn("Wr0ngButLong", str(call))

    def test_result_repr_hides_value(self):
        result = password_policy.prompt_for_password(MagicMock(return_value="Str0ng!Passw0rd"))
        self.assertNotIn("Str0ng!Passw0rd", repr(result))
        self.assertNotIn("Str0ng!Passw0rd", str(result))

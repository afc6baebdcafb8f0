from unittest import TestCase
from unittest.mock import patch as mock_patch

import providers
from errors import TimeoutError
from providers import RegistrationState

TOKEN = "arm-token"
SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000001"
NAMESPACE = "Microsoft.ContainerRegistry"


class TestRegistrationState(TestCase):
    def test_from_arm(self):
        self.assertEqual(RegistrationState.from_arm("Registered"), RegistrationState.REGISTERED)
        self.assertEqual(RegistrationState.from_arm("registering"), RegistrationState.REGISTERING)
        self.assertEqual(RegistrationState.from_arm("NotRegistered"), RegistrationState.UNREGISTERED)
        self.assertEqual(RegistrationState.from_arm("Unregistering"), RegistrationState.UNREGISTERED)
        self.assertEqual(RegistrationState.from_arm("Unknown"), RegistrationState.FAILED)
        self.assertEqual(RegistrationState.from_arm(None), RegistrationState.FAILED)


class TestEnsureRegistered(TestCase):
    def setUp(self) -> None:
        self.arm_api_mock = self.patch("providers.arm_api")
        self.time_mock = self.patch("polling.time")
        self.patch("providers.logging")

    def patch(self, path: str, **kwargs):
        """Helper method to patch and auto-cleanup"""
        patcher = mock_patch(path, **kwargs)
        self.addCleanup(patcher.stop)
        return patcher.start()

    def test_already_registered_skips_register(self):
        self.arm_api_mock.get_provider_state.return_value = "Registered"

        providers.ensure_registered(TOKEN, SUBSCRIPTION_ID, NAMESPACE)

        self.arm_api_mock.get_provider_state.assert_called_once_with(TOKEN, SUBSCRIPTION_ID, NAMESPACE)
        self.arm_api_mock.register_provider.assert_not_called()
        self.time_mock.sleep.assert_not_called()

    def test_registered_on_third_poll(self):
        self.arm_api_mock.get_provider_state.side_effect = ["NotRegistered", "Registering", "Registered"]

        providers.ensure_registered(TOKEN, SUBSCRIPTION_ID, NAMESPACE, max_attempts=20, poll_interval=10)

        self.arm_api_mock.register_provider.assert_called_once_with(TOKEN, SUBSCRIPTION_ID, NAMESPACE)
        self.assertEqual(self.arm_api_mock.get_provider_state.call_count, 3)
        self.assertEqual(self.time_mock.sleep.call_count, 2)

    def test_timeout_after_max_attempts(self):
        self.arm_api_mock.get_provider_state.return_value = "Registering"

        with self.assertRaises(TimeoutError) as ctx:
            providers.ensure_registered(TOKEN, SUBSCRIPTION_ID, NAMESPACE, max_attempts=5, poll_interval=10)

        self.assertEqual(self.arm_api_mock.get_provider_state.call_count, 5)
        self.arm_api_mock.register_provider.assert_called_once()
        self.assertIn(NAMESPACE, str(ctx.exception))

"""
Resource provider registration for the lab subscription.
"""

import logging
from enum import Enum

import arm_api
import config as cfg
from polling import poll_until


class RegistrationState(Enum):
    UNREGISTERED = "Unregistered"
    REGISTERING = "Registering"
    REGISTERED = "Registered"
    FAILED = "Failed"

    @classmethod
    def from_arm(cls, value: str) -> "RegistrationState":
        """Map an ARM registrationState string to a RegistrationState."""
        normalized = (value or "").lower()
        if normalized == "registered":
            return cls.REGISTERED
        if normalized == "registering":
            return cls.REGISTERING
        if normalized in ("notregistered", "unregistered", "unregistering"):
            return cls.UNREGISTERED
        return cls.FAILED


def get_registration_state(token: str, subscription_id: str, namespace: str) -> RegistrationState:
    return RegistrationState.from_arm(arm_api.get_provider_state(token, subscription_id, namespace))


def ensure_registered(
    token: str,
    subscription_id: str,
    namespace: str,
    max_attempts: int = cfg.PROVIDER_MAX_ATTEMPTS,
    poll_interval: float = cfg.PROVIDER_POLL_INTERVAL,
) -> None:
    """
    Make sure a provider namespace is registered on the subscription.

    The state is polled at a fixed interval until it reads Registered. The
    first poll that finds the namespace unregistered sends the register
    request; a namespace that is already registered never gets one.

    Args:
        token: Azure access token
        subscription_id: Subscription ID
        namespace: Provider namespace, e.g. Microsoft.ContainerRegistry
        max_attempts: Maximum number of state polls
        poll_interval: Seconds between polls

    Raises:
        TimeoutError: If the namespace is still not registered after max_attempts polls
    """
    requested = False

    def registered() -> bool:
        nonlocal requested
        state = get_registration_state(token, subscription_id, namespace)
        logging.debug(f"{namespace} registration state: {state.value}")
        if state == RegistrationState.REGISTERED:
            return True
        if not requested:
            logging.info(f"⚠️  {namespace} is {state.value} - requesting registration...")
            arm_api.register_provider(token, subscription_id, namespace)
            requested = True
        return False

    attempts = poll_until(registered, max_attempts, poll_interval, f"{namespace} registration")
    if attempts == 1:
        logging.info(f"✅ {namespace} is already registered")
    else:
        logging.info(f"✅ {namespace} is registered")

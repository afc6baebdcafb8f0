"""
Operator sign-in through roadtools.

The operator signs in once against Azure Resource Manager. The Graph token is
then exchanged from the same refresh token, so a run never prompts twice.
"""

import codecs
import contextlib
import getpass
import json
import logging
import os
from typing import Any, Dict, Optional, Tuple

from roadtools.roadlib.auth import Authentication, AuthenticationException
from roadtools.roadlib.deviceauth import DeviceAuthentication
from roadtools.roadtx.selenium import SeleniumAuthentication
from roadtools.roadtx.utils import find_redirurl_for_client

import config as cfg
from errors import AuthenticationError

REFRESH_TOKEN_FROM_CACHE = "file"


def _new_authentication(resource: str, client: str, tenant: Optional[str]) -> Authentication:
    auth = Authentication()
    auth.tenant = tenant
    auth.set_client_id(client)
    auth.set_resource_uri(resource)
    return auth


def save_tokens(auth: Authentication) -> None:
    with codecs.open(cfg.TOKEN_CACHE_FILE, 'w', 'utf-8') as outfile:
        json.dump(auth.tokendata, outfile)


def load_refresh_token() -> str:
    """Read the refresh token of the last sign-in from the token cache."""
    try:
        with codecs.open(cfg.TOKEN_CACHE_FILE, 'r', 'utf-8') as infile:
            refresh_token = json.load(infile).get('refreshToken')
    except (FileNotFoundError, json.JSONDecodeError) as e:
        raise AuthenticationError(f"Cannot read token cache {cfg.TOKEN_CACHE_FILE}: {e}", step="sign in") from e
    if not refresh_token:
        raise AuthenticationError(f"Token cache {cfg.TOKEN_CACHE_FILE} holds no refresh token", step="sign in")
    return refresh_token


def _password_sign_in(auth: Authentication, username: Optional[str], password: Optional[str]) -> Dict[str, Any]:
    if not username:
        raise AuthenticationError("No username supplied (use -u, -i or --refresh-token)", step="sign in")
    auth.username = username
    auth.password = password or getpass.getpass(prompt="Operator password: ")
    return auth.authenticate_username_password_native()


def _browser_sign_in(auth: Authentication, username: Optional[str], password: Optional[str], verbose: bool) -> Dict[str, Any]:
    auth.username = username
    auth.password = password

    with contextlib.ExitStack() as stack:
        # the browser driver is noisy
        if not verbose:
            devnull = stack.enter_context(open(os.devnull, 'w'))
            stack.enter_context(contextlib.redirect_stdout(devnull))
            stack.enter_context(contextlib.redirect_stderr(devnull))

        redirect_url = find_redirurl_for_client(auth.client_id, interactive=False)
        selauth = SeleniumAuthentication(auth, DeviceAuthentication(auth), redirect_url)
        service = selauth.get_service(None)
        if not service:
            raise AuthenticationError("No browser driver available for interactive sign-in", step="sign in")
        selauth.driver = selauth.get_webdriver(service, intercept=True)
        return selauth.selenium_login_regular(auth.build_auth_url(redirect_url, 'code', None), username, password)


def _refresh_sign_in(auth: Authentication, refresh_token: str) -> Dict[str, Any]:
    if refresh_token == REFRESH_TOKEN_FROM_CACHE:
        refresh_token = load_refresh_token()
    return auth.authenticate_with_refresh_native(refresh_token, client_secret=None)


def get_token(args: Any, resource: str, client: str, tenant: Optional[str]) -> Tuple[str, str]:
    """
    Sign in with the method selected on the command line.

    A refresh token wins over interactive sign-in, which wins over
    username and password.

    Args:
        args: Command line arguments namespace
        resource: Resource the token is requested for
        client: Client application ID
        tenant: Tenant ID, or None for the user's home tenant

    Returns:
        Tuple of (access_token, refresh_token)

    Raises:
        AuthenticationError: If sign-in fails or returns no token
    """
    auth = _new_authentication(resource, client, tenant)
    try:
        if args.refresh_token:
            result = _refresh_sign_in(auth, args.refresh_token)
        elif args.interactive:
            result = _browser_sign_in(auth, args.username, args.password, getattr(args, 'verbose', False))
        else:
            result = _password_sign_in(auth, args.username, args.password)
    except AuthenticationException as e:
        raise AuthenticationError(f"Sign-in for {resource} failed: {e}", step="sign in") from e

    if not result or not result.get('accessToken') or not result.get('refreshToken'):
        raise AuthenticationError(f"Sign-in for {resource} returned no token", step="sign in")
    save_tokens(auth)
    return result['accessToken'], result['refreshToken']


def exchange_refresh_token(refresh_token: str, resource: str, client: str, tenant: Optional[str]) -> str:
    """Get an access token for another resource from an existing refresh token."""
    auth = _new_authentication(resource, client, tenant)
    try:
        result = auth.authenticate_with_refresh_native(refresh_token, client_secret=None)
    except AuthenticationException as e:
        raise AuthenticationError(f"Token exchange for {resource} failed: {e}", step="sign in") from e
    if not result or not result.get('accessToken'):
        raise AuthenticationError(f"Token exchange for {resource} returned no token", step="sign in")
    return result['accessToken']


def get_session_tokens(args: Any) -> Tuple[str, str]:
    """
    Sign the operator in and get one token for ARM and one for Graph.

    Returns:
        Tuple of (arm_token, graph_token)

    Raises:
        AuthenticationError: If either token cannot be obtained
    """
    tenant = getattr(args, 'tenant_id', None)
    arm_token, refresh_token = get_token(args, cfg.AZURE_RESOURCE, cfg.AZURE_CLI_APP_ID, tenant)
    graph_token = exchange_refresh_token(refresh_token, cfg.GRAPH_RESOURCE, cfg.AZURE_CLI_APP_ID, tenant)
    logging.info("✅ Signed in to Azure Resource Manager and Microsoft Graph")
    return arm_token, graph_token

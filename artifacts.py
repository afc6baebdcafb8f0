"""
Download of the lab's remote artifacts.
"""

import logging
import os

import requests

from errors import ProvisionError


def download_artifact(url: str, destination: str, step: str = "download artifact") -> str:
    """
    Fetch a file over HTTPS and write it to disk.

    No hash or signature is checked: whatever the remote source serves is used.

    Args:
        url: Artifact URL
        destination: Local file path
        step: Step name attached to raised errors

    Returns:
        The destination path
    """
    logging.info(f"Downloading {url}")
    logging.warning(f"⚠️  {url} is used without an integrity check")
    try:
        response = requests.get(url, timeout=60)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        error_msg = f"Failed to download {url}: {e}"
        if e.response is not None:
            error_msg += f"\nResponse: {e.response.text[:500]}"
        raise ProvisionError(error_msg, step=step) from e

    directory = os.path.dirname(destination)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(destination, "wb") as outfile:
        outfile.write(response.content)
    return destination

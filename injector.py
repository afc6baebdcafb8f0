"""
Substitution of service principal credentials into the build context file.

Neither the substituted document nor the client secret is ever logged.
"""

import logging
import re
from typing import Dict

import config as cfg
from errors import SubstitutionError
from identities import CredentialBundle

PLACEHOLDERS = (cfg.CLIENT_ID_PLACEHOLDER, cfg.CLIENT_SECRET_PLACEHOLDER, cfg.TENANT_ID_PLACEHOLDER)


def _replacements(bundle: CredentialBundle) -> Dict[str, str]:
    values = {
        cfg.CLIENT_ID_PLACEHOLDER: bundle.client_id,
        cfg.CLIENT_SECRET_PLACEHOLDER: bundle.client_secret.get_secret_value() if bundle.client_secret else "",
        cfg.TENANT_ID_PLACEHOLDER: bundle.tenant_id,
    }
    empty = [placeholder for placeholder, value in values.items() if not value]
    if empty:
        raise SubstitutionError(f"No credential value for {', '.join(empty)}", step="inject credentials")
    return values


def inject(template: str, bundle: CredentialBundle) -> str:
    """
    Replace the credential placeholders of a template.

    Matching is exact and case-sensitive, and all placeholders are replaced in
    a single pass so a substituted value is never scanned again.

    Args:
        template: Template text
        bundle: Credentials to substitute

    Returns:
        A new string with the placeholders replaced

    Raises:
        SubstitutionError: If a placeholder is absent from the template or a bundle field is empty
    """
    missing = [placeholder for placeholder in PLACEHOLDERS if placeholder not in template]
    if missing:
        raise SubstitutionError(
            f"Template is missing placeholder(s) {', '.join(missing)}; it does not match this version of the lab",
            step="inject credentials",
        )

    values = _replacements(bundle)
    # longest first so no placeholder can match as the prefix of another
    pattern = re.compile("|".join(re.escape(p) for p in sorted(values, key=len, reverse=True)))
    return pattern.sub(lambda match: values[match.group(0)], template)


def inject_file(path: str, bundle: CredentialBundle) -> None:
    """Inject credentials into a file in place. The file is only written once injection succeeded."""
    with open(path, "r", encoding="utf-8", newline="") as infile:
        template = infile.read()

    document = inject(template, bundle)

    with open(path, "w", encoding="utf-8", newline="") as outfile:
        outfile.write(document)
    logging.info(f"✅ Injected credentials into {path}")

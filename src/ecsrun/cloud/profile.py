"""Shared AWS profile resolution and role assumption."""

from __future__ import annotations

import configparser
import logging
import time
from pathlib import Path

from ecsrun.config import RunnerConfig
from ecsrun.errors import ProfileError, ProfileNotFoundError
from ecsrun.models import ProfileConfig

logger = logging.getLogger(__name__)

CREDENTIALS_PATH = ".aws/credentials"
CONFIG_PATH = ".aws/config"


def profile_name(config: RunnerConfig) -> str:
    """Profile to use: AWS_DEFAULT_PROFILE, then AWS_PROFILE, then "default"."""
    return config.aws_default_profile or config.aws_profile or "default"


def aws_file_path(explicit: str, default_rel: str, home: str) -> str:
    """Location of a shared AWS file.

    An explicit path wins (a leading ``~`` is resolved against ``home``).
    Otherwise ``home/default_rel``, or "" if there is no home directory.
    """
    if explicit:
        if explicit.startswith("~"):
            return str(Path(home) / explicit[1:].lstrip("/"))
        return explicit
    if not home:
        return ""
    return str(Path(home) / default_rel)


def load_profile(profile: str, path: str, region_override: str = "") -> ProfileConfig:
    """Read ``role_arn``, ``source_profile`` and ``region`` for ``profile``.

    The bare section name is tried first, then ``profile <name>`` as used in
    ~/.aws/config.
    """
    parser = configparser.ConfigParser(interpolation=None)
    try:
        read = parser.read(path) if path else []
    except configparser.Error as exc:
        raise ProfileError(f"malformed shared config file {path}: {exc}") from exc
    if not read:
        raise ProfileNotFoundError(f"failed to load shared credentials file {path or '(none)'}")

    for section in (profile, f"profile {profile}"):
        if parser.has_section(section):
            break
    else:
        raise ProfileNotFoundError(f"not found ini section: section 'profile {profile}' does not exist")

    sec = parser[section]
    return ProfileConfig(
        role_arn=sec.get("role_arn", ""),
        source_profile=sec.get("source_profile", ""),
        region=region_override or sec.get("region", ""),
    )


def resolve_profile(config: RunnerConfig) -> ProfileConfig | None:
    """Find a role-assumption chain for the active profile.

    The config file is consulted first, the credentials file second. Returns
    None when neither holds both role_arn and source_profile.
    """
    profile = profile_name(config)
    candidates = [
        aws_file_path(config.aws_config_file, CONFIG_PATH, config.home),
        aws_file_path(config.aws_shared_credentials_file, CREDENTIALS_PATH, config.home),
    ]
    for path in candidates:
        try:
            conf = load_profile(profile, path, config.region)
        except ProfileNotFoundError as exc:
            logger.debug("Profile %s: %s", profile, exc)
            continue
        if conf.is_complete:
            return conf
    return None


def create_session(config: RunnerConfig):
    """Build an authenticated boto3 session.

    When the profile names a role chain the role is assumed through STS with
    the source profile's keys from the shared credentials file. Otherwise the
    default credential chain applies.
    """
    import boto3
    import botocore.session
    from botocore.exceptions import BotoCoreError, ClientError

    conf = resolve_profile(config)
    if conf is None:
        return boto3.Session(region_name=config.region or None)

    logger.debug("Assuming %s via profile %s", conf.role_arn, conf.source_profile)
    core = botocore.session.Session()
    core.set_config_variable(
        "credentials_file",
        aws_file_path(config.aws_shared_credentials_file, CREDENTIALS_PATH, config.home),
    )
    core.set_config_variable("profile", conf.source_profile)
    source = boto3.Session(botocore_session=core, region_name=conf.region or None)

    try:
        response = source.client("sts").assume_role(
            RoleArn=conf.role_arn,
            RoleSessionName=f"ecsrun-{int(time.time())}",
        )
    except (ClientError, BotoCoreError) as exc:
        raise ProfileError(f"assume role {conf.role_arn}: {exc}") from exc

    creds = response["Credentials"]
    return boto3.Session(
        aws_access_key_id=creds["AccessKeyId"],
        aws_secret_access_key=creds["SecretAccessKey"],
        aws_session_token=creds["SessionToken"],
        region_name=conf.region or None,
    )

"""Store adapter factory.

Supports two configuration modes:
1. Profile mode (redis-dump.toml + ``--profile`` or ``<PREFIX>REDIS_PROFILE``):
   named servers with optional password substitution
2. Direct mode (``--connection host:port``, a ``redis://`` URL, or
   ``host:port,password=secret,ssl=true`` with comma-separated options)
"""

import os
from urllib.parse import quote

from redis_dump.adapters.base import StoreConnectionError
from redis_dump.adapters.redis_adapter import AsyncRedisAdapter
from redis_dump.config.loader import load_store_config
from redis_dump.config.models import StoreConfig, StoreProfile

PROFILE_ENV_VAR = "REDIS_PROFILE"
PASSWORD_PLACEHOLDER = "[YOUR-PASSWORD]"

# Options accepted after the endpoint in ``host:port,name=value`` strings.
# allowAdmin only unlocks admin commands in other clients; redis-py needs no switch.
CONNECTION_OPTIONS = ("password", "user", "ssl", "allowadmin")


class ProfileNotFoundError(Exception):
    """Raised when a requested connection profile does not exist."""

    pass


class InvalidConnectionError(ValueError):
    """Raised when a connection string cannot be turned into a Redis URL."""

    pass


def normalize_url(connection: str) -> str:
    """Turn a ``host:port`` connection string into a ``redis://`` URL.

    URLs that already carry a scheme are returned unchanged.

    Example:
        >>> normalize_url("localhost:6379")
        'redis://localhost:6379'
    """
    if "://" in connection:
        return connection
    return f"redis://{connection}"


def parse_connection(connection: str) -> tuple[str, str | None]:
    """Split a connection string into a Redis URL and an optional password.

    Accepts ``host:port``, a Redis URL, or ``host:port`` followed by
    comma-separated ``name=value`` options (``password``, ``user``,
    ``ssl``, ``allowAdmin``).  ``ssl=true`` selects ``rediss://``.

    Example:
        >>> parse_connection("cache:6380,password=s3cret,ssl=true")
        ('rediss://cache:6380', 's3cret')

    Raises:
        InvalidConnectionError: If the endpoint is empty, options follow a
            URL, or an option is malformed or unknown.
    """
    endpoint, *options = [part.strip() for part in connection.split(",")]
    if not endpoint:
        raise InvalidConnectionError("Connection string has no host")
    if "://" in endpoint:
        if options:
            raise InvalidConnectionError(
                "Options after a URL are not supported; put them in the URL itself "
                "(e.g. rediss://:password@host:6380)"
            )
        return endpoint, None

    scheme = "redis"
    user = None
    password = None
    for option in options:
        name, sep, value = option.partition("=")
        name = name.strip().lower()
        # Never echo option values, they may hold a password
        if not sep:
            raise InvalidConnectionError(
                "Malformed connection option, expected name=value after host:port"
            )
        if name not in CONNECTION_OPTIONS:
            raise InvalidConnectionError(
                f"Unsupported connection option '{name}'. "
                f"Supported: password, user, ssl, allowAdmin"
            )
        if name == "password":
            password = value
        elif name == "user":
            user = value
        elif name == "ssl":
            scheme = "rediss" if value.strip().lower() == "true" else "redis"

    userinfo = f"{quote(user, safe='')}@" if user else ""
    return f"{scheme}://{userinfo}{endpoint}", password


def resolve_url(profile: StoreProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Store profile from config

    Returns:
        Connection URL with password substituted
    """
    url = normalize_url(profile.url)
    if profile.password and PASSWORD_PLACEHOLDER in url:
        url = url.replace(PASSWORD_PLACEHOLDER, quote(profile.password, safe=""))
    return url


def get_active_profile_name(env_prefix: str = "") -> str | None:
    """Get the profile name from the ``<env_prefix>REDIS_PROFILE`` env var."""
    return os.environ.get(f"{env_prefix}{PROFILE_ENV_VAR}") or None


def get_adapter(
    connection: str = "localhost:6379",
    password: str | None = None,
    profile_name: str | None = None,
    config: StoreConfig | None = None,
    env_prefix: str = "",
) -> AsyncRedisAdapter:
    """Create an adapter from a profile or a connection string.

    Priority:
    1. ``profile_name`` argument
    2. ``<env_prefix>REDIS_PROFILE`` env var
    3. ``connection``

    Args:
        connection: ``host:port`` or Redis URL, used when no profile applies.
        password: Password; overrides one in the URL or profile.
        profile_name: Profile from the TOML config.
        config: Loaded config; read from ./redis-dump.toml when a profile is
            needed and no config is given.
        env_prefix: Prefix for the profile env var lookup.

    Raises:
        ProfileNotFoundError: If the profile is not in the config.
        FileNotFoundError: If a profile is requested and no config exists.
    """
    if profile_name is None:
        profile_name = get_active_profile_name(env_prefix)

    if profile_name is None:
        url, option_password = parse_connection(connection)
        return AsyncRedisAdapter(url, password=password or option_password)

    if config is None:
        config = load_store_config()
    if profile_name not in config.profiles:
        available = ", ".join(config.profiles) or "(none)"
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found. Available: {available}"
        )
    return AsyncRedisAdapter(resolve_url(config.profiles[profile_name]), password=password)


async def connect_and_ping(adapter: AsyncRedisAdapter) -> AsyncRedisAdapter:
    """Verify the server answers before any real work starts.

    The adapter is closed if the server cannot be reached.

    Raises:
        StoreConnectionError: If the server cannot be reached.
    """
    try:
        await adapter.ping()
    except StoreConnectionError:
        await adapter.close()
        raise
    return adapter

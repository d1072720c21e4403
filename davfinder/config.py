import json
import logging
import os
from typing import Any
from typing import Dict
from typing import Optional

"""
Configuration for the discovery: what URI to start from, what login
to use, and parameters for the HTTP client.

Configuration is read from various sources, in this order of priority:

* Parameters given directly
* Environment variables prepended with ``DAVFINDER_``, like
  ``DAVFINDER_URI``, ``DAVFINDER_USERNAME``, ``DAVFINDER_PASSWORD``
* A config file, given by parameter or by ``DAVFINDER_CONFIG_FILE``,
  else found in one of the default locations.  The file may be JSON or
  YAML (if pyyaml is installed), and has one section per account:

  .. code-block:: yaml

      default:
        davfinder_uri: mailto:alice@example.com
        davfinder_username: alice
        davfinder_password: secret
      work:
        inherits: default
        davfinder_uri: https://dav.example.org/
"""

log = logging.getLogger("davfinder")

## Keys accepted as finder / client parameters
FINDER_KEYS = ("uri", "username", "password", "preemptive_auth")
CLIENT_KEYS = ("timeout", "ssl_verify_cert", "ssl_cert", "proxy", "huge_tree")

## aliases in config files
KEY_ALIASES = {"url": "uri", "user": "username", "pass": "password"}

DEFAULT_CONFIG_FILES = (
    "{cfgdir}/davfinder/config.conf",
    "{cfgdir}/davfinder/config.yaml",
    "{cfgdir}/davfinder/config.json",
    "/etc/davfinder/config.conf",
)


def config_section(config, section="default"):
    """
    The named section of the config, with the keys of the section it
    ``inherits`` from filled in (recursively)
    """
    if section not in config:
        return {}
    ret = {}
    parent = config[section].get("inherits")
    if parent:
        ret.update(config_section(config, parent))
    ret.update(config[section])
    return ret


def _load(fn):
    with open(fn, "rb") as config_file:
        data = config_file.read()
    try:
        return json.loads(data)
    except json.decoder.JSONDecodeError:
        pass
    ## yaml is an optional dependency, hence the late import
    try:
        import yaml
    except ImportError:
        log.error("config file %s is not valid json, and pyyaml is not installed", fn)
        return {}
    try:
        return yaml.load(data, yaml.SafeLoader)
    except yaml.YAMLError:
        log.error("config file %s is neither valid json nor yaml", fn, exc_info=True)
        return {}


def read_config(fn):
    """
    Reads a JSON or YAML config file.  Without a file name the default
    locations are searched, and None is returned if there is no config
    file in any of them.  A missing or broken file gives an empty dict.
    """
    if not fn:
        cfgdir = f"{os.environ.get('HOME', '/')}/.config"
        for config_file in DEFAULT_CONFIG_FILES:
            cfg = read_config(config_file.format(cfgdir=cfgdir))
            if cfg:
                return cfg
        return None

    try:
        return _load(fn) or {}
    except FileNotFoundError:
        log.debug("no config file found at %s", fn)
    except (OSError, ValueError):
        log.error("error reading config file %s, it will be ignored", fn, exc_info=True)
    return {}


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "yes", "true", "on")
    return bool(value)


def _normalize(params: Dict[str, Any]) -> Dict[str, Any]:
    """Resolves key aliases and converts values read as strings"""
    ret = {}
    for key, value in params.items():
        key = KEY_ALIASES.get(key, key)
        if key not in FINDER_KEYS and key not in CLIENT_KEYS:
            log.debug("ignoring unknown configuration key %s", key)
            continue
        if key in ("preemptive_auth", "huge_tree"):
            value = _to_bool(value)
        elif key == "timeout" and value is not None:
            try:
                value = float(value)
            except (TypeError, ValueError):
                log.error("invalid timeout %r, it will be ignored", value)
                continue
        elif key == "ssl_verify_cert" and isinstance(value, str):
            ## may also be the path to a CA bundle
            if value.strip().lower() in ("0", "no", "false", "off", "1", "yes", "true", "on"):
                value = _to_bool(value)
        ret[key] = value
    return ret


def get_finder_params(
    check_config_file: bool = True,
    config_file: Optional[str] = None,
    section: Optional[str] = None,
    environment: bool = True,
    **config_data,
) -> Optional[Dict[str, Any]]:
    """
    Collects the parameters for a discovery run, see the module
    documentation for the sources and their priority.  Returns None if
    no URI is configured anywhere.
    """
    params: Dict[str, Any] = {}

    if check_config_file:
        if environment:
            config_file = config_file or os.environ.get("DAVFINDER_CONFIG_FILE")
            section = section or os.environ.get("DAVFINDER_CONFIG_SECTION")
        cfg = read_config(config_file)
        if cfg:
            cfg = config_section(cfg, section or "default")
            params.update(
                _normalize(
                    {
                        k[len("davfinder_") :]: v
                        for k, v in cfg.items()
                        if k.startswith("davfinder_") and v is not None
                    }
                )
            )

    if environment:
        env = {}
        for conf_key in os.environ:
            if conf_key.startswith("DAVFINDER_") and not conf_key.startswith(
                "DAVFINDER_CONFIG"
            ):
                env[conf_key[len("DAVFINDER_") :].lower()] = os.environ[conf_key]
        params.update(_normalize(env))

    params.update(_normalize(config_data))

    if not params.get("uri"):
        return None
    return params


def get_finder(**kwargs):
    """
    Returns a DavResourceFinder set up from the configuration (see
    ``get_finder_params``), or None if no URI is configured.
    """
    from davfinder.discovery import DavResourceFinder
    from davfinder.models import Credentials

    params = get_finder_params(**kwargs)
    if params is None:
        return None
    credentials = Credentials(
        uri=params.pop("uri"),
        user_name=params.pop("username", None),
        password=params.pop("password", None),
        preemptive_auth=params.pop("preemptive_auth", False),
    )
    return DavResourceFinder(credentials, **params)

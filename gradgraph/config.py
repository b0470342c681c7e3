# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
""" Hierarchical configuration of gradgraph.

    Entries, their types and their defaults are described by ``config_schema.yml``.
    User settings are read from ``.gradgraph.conf`` in the working directory or,
    if there is none, from ``$GRADGRAPH_CONFIG`` (default: ``~/.gradgraph.conf``).
    An environment variable ``GRADGRAPH_<section>_<entry>`` overrides one entry.
"""
import contextlib
import copy
import os
from typing import Any, Dict, Optional, Tuple

import yaml

ENV_PREFIX = 'GRADGRAPH_'


@contextlib.contextmanager
def set_temporary(*path, value):
    """ Temporarily set configuration value at ``path`` to value, and reset it after the context manager exits.

        :Example:

            with set_temporary("autodiff", "seed_gradient", value=0.0):
                generate_gradient_nodes(graph, conf)
    """
    old_value = Config.get(*path)
    Config.set(*path, value=value)
    try:
        yield
    finally:
        Config.set(*path, value=old_value)


@contextlib.contextmanager
def temporary_config():
    """ Creates a context where every configuration entry changed inside is restored on exit. """
    saved, filename = copy.deepcopy(Config._config), Config._cfg_filename
    try:
        yield
    finally:
        Config._config, Config._cfg_filename = saved, filename


def _env2bool(envval) -> bool:
    return str(envval).lower() in ('true', '1', 'y', 'yes', 'on', 'verbose')


def _keys(key_hierarchy) -> Tuple[str, ...]:
    # Both ('training', 'momentum') and ('training.momentum', ) are accepted
    if len(key_hierarchy) == 1:
        return tuple(key_hierarchy[0].split('.'))
    return tuple(key_hierarchy)


def _schema_defaults(entry: Dict[str, Any]) -> Dict[str, Any]:
    """ The tree of default values below a ``dict`` schema entry. """
    return {k: _schema_defaults(v) if v['type'] == 'dict' else v['default'] for k, v in entry['required'].items()}


def _fill_defaults(conf: Dict[str, Any], defaults: Dict[str, Any]):
    for k, v in defaults.items():
        if k not in conf:
            conf[k] = copy.deepcopy(v)
        elif isinstance(v, dict):
            _fill_defaults(conf[k], v)


def _difference(conf: Dict[str, Any], defaults: Dict[str, Any]) -> Dict[str, Any]:
    """ Entries of ``conf`` that differ from ``defaults``. Entries missing from the schema are dropped. """
    result = {}
    for k, v in conf.items():
        if k not in defaults:
            continue
        if isinstance(defaults[k], dict):
            changed = _difference(v, defaults[k])
            if changed:
                result[k] = changed
        elif v != defaults[k]:
            result[k] = v
    return result


class Config(object):
    """ Interface to the gradgraph hierarchical configuration. Keys are given
        either as separate arguments or as one dotted string. """

    default_filename = '.gradgraph.conf'

    _schema: Dict[str, Any] = {}
    _defaults: Dict[str, Any] = {}
    _config: Dict[str, Any] = {}
    _cfg_filename: Optional[str] = None

    @staticmethod
    def initialize():
        """ Loads the schema and the user configuration. Runs when the module is loaded. """
        if Config._schema:
            return

        schema_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'config_schema.yml')
        with open(schema_path, 'r') as f:
            Config._schema = yaml.load(f.read(), Loader=yaml.SafeLoader)
        Config._defaults = _schema_defaults(Config._schema)

        user_path = os.environ.get(ENV_PREFIX + 'CONFIG', os.path.join(os.path.expanduser('~'),
                                                                        Config.default_filename))
        for filename in (Config.default_filename, user_path):
            if os.path.isfile(filename):
                Config.load(filename)
                return
        Config._config = copy.deepcopy(Config._defaults)

    @staticmethod
    def load(filename: Optional[str] = None):
        """ Replaces the configuration with the contents of a YAML file. Missing entries take their defaults.

            :param filename: The file to load. Defaults to the file loaded last.
        """
        filename = filename or Config._cfg_filename
        with open(filename, 'r') as f:
            Config._config = yaml.load(f.read(), Loader=yaml.SafeLoader) or {}
        Config._cfg_filename = filename
        _fill_defaults(Config._config, Config._defaults)

    @staticmethod
    def save(path: Optional[str] = None, all: bool = False):
        """ Writes the configuration to a YAML file.

            :param path: The file to write. Defaults to the file loaded last, or ``~/.gradgraph.conf``.
            :param all: If False, only entries that differ from their defaults are written.
        """
        if path is None:
            path = Config._cfg_filename or os.path.join(os.path.expanduser('~'), Config.default_filename)
        with open(path, 'w') as f:
            yaml.dump(Config._config if all else Config.nondefaults(), f, default_flow_style=False)

    @staticmethod
    def get_metadata(*key_hierarchy) -> Dict[str, Any]:
        """ Returns the schema entry (type, default, title, description) of a configuration entry. """
        entry = Config._schema
        for key in _keys(key_hierarchy):
            entry = entry['required'][key]
        return entry

    @staticmethod
    def get_default(*key_hierarchy):
        return Config.get_metadata(*key_hierarchy)['default']

    @staticmethod
    def get(*key_hierarchy):
        """ Returns the current value of a configuration entry, e.g. ``Config.get('autodiff', 'verify')``.

            The environment variable ``GRADGRAPH_autodiff_verify`` takes precedence, as a string.
        """
        keys = _keys(key_hierarchy)
        envvar = ENV_PREFIX + '_'.join(keys)
        if envvar in os.environ:
            return os.environ[envvar]

        value = Config._config
        for key in keys:
            value = value[key]
        return value

    @staticmethod
    def get_bool(*key_hierarchy) -> bool:
        res = Config.get(*key_hierarchy)
        if isinstance(res, bool):
            return res
        return _env2bool(res)

    @staticmethod
    def get_float(*key_hierarchy) -> float:
        return float(Config.get(*key_hierarchy))

    @staticmethod
    def set(*key_hierarchy, value=None, autosave=False):
        """ Sets a configuration entry, e.g. ``Config.set('debugprint', value=True)``.

            :param autosave: If True, saves the configuration after the change.
        """
        *parents, leaf = _keys(key_hierarchy)
        section = Config._config
        for key in parents:
            section = section[key]
        section[leaf] = value
        if autosave:
            Config.save()

    @staticmethod
    def nondefaults() -> Dict[str, Any]:
        return _difference(Config._config, Config._defaults)


Config.initialize()

# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# xen2ovf/config/config_loader.py
"""
YAML configuration files.

Several files may be given; they are deep-merged in order (later wins) and
the result is applied as argparse defaults, so explicit CLI flags still
override anything set in YAML.
"""
from __future__ import annotations

import argparse
import glob
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Sequence

import yaml

from ..core.exceptions import wrap_fatal

CONFIG_SUFFIXES = (".yaml", ".yml", ".json")


class Config:
    @staticmethod
    def expand_configs(logger: logging.Logger, paths: Sequence[str]) -> List[Path]:
        """
        Expand `~`, environment variables, globs and directories
        (every *.yaml / *.yml / *.json inside, sorted).
        """
        out: List[Path] = []
        for raw in paths:
            s = os.path.expandvars(os.path.expanduser(str(raw)))
            matches = sorted(glob.glob(s)) if glob.has_magic(s) else [s]
            if not matches:
                raise wrap_fatal(f"Config pattern matched nothing: {raw}", code=2, config=str(raw))
            for m in matches:
                p = Path(m)
                if p.is_dir():
                    found = sorted(x for x in p.iterdir() if x.suffix.lower() in CONFIG_SUFFIXES)
                    logger.debug("Config dir %s: %d file(s)", p, len(found))
                    out.extend(found)
                elif p.is_file():
                    out.append(p)
                else:
                    raise wrap_fatal(f"Config file not found: {p}", code=2, config=str(p))
        return out

    @staticmethod
    def load_one(logger: logging.Logger, path: Path) -> Dict[str, Any]:
        try:
            data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise wrap_fatal(f"Cannot read config {path}", e, code=2, config=str(path)) from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise wrap_fatal(f"Config {path} must contain a mapping at top level", code=2, config=str(path))
        logger.debug("Loaded config %s (%d key(s))", path, len(data))
        return Config.normalize(data)

    @staticmethod
    def normalize(data: Dict[str, Any]) -> Dict[str, Any]:
        # `output-dir` and `output_dir` mean the same thing.
        return {str(k).replace("-", "_"): v for k, v in data.items()}

    @staticmethod
    def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        out = dict(base)
        for k, v in override.items():
            if isinstance(v, dict) and isinstance(out.get(k), dict):
                out[k] = Config.deep_merge(out[k], v)
            else:
                out[k] = v
        return out

    @staticmethod
    def load_many(logger: logging.Logger, paths: Sequence[Path]) -> Dict[str, Any]:
        conf: Dict[str, Any] = {}
        for p in paths:
            conf = Config.deep_merge(conf, Config.load_one(logger, p))
        return conf

    @staticmethod
    def apply_as_defaults(logger: logging.Logger, parser: argparse.ArgumentParser, conf: Dict[str, Any]) -> None:
        """Push known config keys into parser defaults; unknown keys are reported and ignored."""
        dests = {a.dest for a in parser._actions if a.dest and a.dest != argparse.SUPPRESS}
        known = {k: v for k, v in conf.items() if k in dests}
        unknown = sorted(k for k in conf if k not in dests)
        if unknown:
            logger.warning("Ignoring unknown config key(s): %s", ", ".join(unknown))
        if known:
            parser.set_defaults(**known)
            logger.debug("Config defaults applied: %s", ", ".join(sorted(known)))

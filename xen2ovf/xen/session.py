# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# xen2ovf/xen/session.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator

import XenAPI

from ..core.exceptions import wrap_xenapi
from .client import XenClient

API_VERSION = "2.0"
ORIGINATOR = "xen2ovf"


def host_url(host: str) -> str:
    host = host.strip()
    if host.startswith(("http://", "https://")):
        return host.rstrip("/")
    return f"https://{host}"


@contextmanager
def open_client(
    logger: logging.Logger,
    host: str,
    user: str,
    password: str,
    *,
    insecure: bool = False,
) -> Generator[XenClient, None, None]:
    """
    Log in to a pool master and yield a XenClient; always logs out.
    """
    url = host_url(host)
    session = XenAPI.Session(url, ignore_ssl=insecure)
    try:
        session.login_with_password(user, password, API_VERSION, ORIGINATOR)
    except XenAPI.Failure as e:
        raise wrap_xenapi(f"Login to {url} failed", e, host=url, user=user) from e
    except OSError as e:
        raise wrap_xenapi(f"Cannot reach {url}", e, host=url) from e

    logger.info("Connected to %s as %s", url, user)
    try:
        yield XenClient.from_session(session, url, logger=logger)
    finally:
        try:
            session.xenapi.session.logout()
        except Exception as e:
            logger.debug("Logout from %s failed: %s", url, e)

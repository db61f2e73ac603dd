"""Credentials class for username / passwords."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Credentials:
    """Credentials for authentication."""

    #: Username (email address) of the tapo cloud account
    username: str = field(default="", repr=False)
    #: Password of the tapo cloud account
    password: str = field(default="", repr=False)

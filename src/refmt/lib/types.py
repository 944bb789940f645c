"""Stable domain identifier newtype."""

from typing import NewType

TargetId = NewType("TargetId", str)

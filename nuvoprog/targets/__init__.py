# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""Catalog of supported target devices."""

from ..target import TargetRegistry
from .n76 import N76E003

TARGETS = (
    N76E003,
)

REGISTRY = TargetRegistry(TARGETS)

__all__ = ["TARGETS", "REGISTRY", "N76E003"]

# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2025-2026 h3stack contributors

"""Configuration models and loading."""

from .models import CONFIG_ENV_VAR, StackConfig

__all__ = ["CONFIG_ENV_VAR", "StackConfig"]

# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""CLI command modules. Each registers its commands on ``mcpz.cli.cli``."""

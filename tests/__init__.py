# SPDX-License-Identifier: Apache-2.0
"""
gqlpipe test suites: pipeline core, built-in extensions, data sources,
wire binding and CLI.
"""

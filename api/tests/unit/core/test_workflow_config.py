#!/usr/bin/env python3
"""
Tests for workflow configuration.

Covers the environment helpers and how explicit run options win over
environment defaults.
"""

import os
from unittest.mock import patch

from xml_graph.core.config import WorkflowConfig
from xml_graph.core.env_utils import getenv_bool, getenv_choice, getenv_clean, getenv_int


class TestEnvHelpers:
    """Test environment variable parsing."""

    def test_getenv_clean_strips_line_endings(self):
        with patch.dict(os.environ, {"WORKFLOW_TEST_VALUE": "await\r\n"}):
            assert getenv_clean("WORKFLOW_TEST_VALUE") == "await"

    def test_getenv_clean_default(self):
        assert getenv_clean("WORKFLOW_TEST_UNSET", "fallback") == "fallback"

    def test_getenv_bool(self):
        with patch.dict(os.environ, {"A": "Yes", "B": "off", "C": "maybe"}):
            assert getenv_bool("A") is True
            assert getenv_bool("B", True) is False
            assert getenv_bool("C", True) is True

    def test_getenv_int(self):
        with patch.dict(os.environ, {"A": "500", "B": "lots", "C": "-1"}):
            assert getenv_int("A", 10) == 500
            assert getenv_int("B", 10) == 10
            assert getenv_int("C", 10, minimum=0) == 10

    def test_getenv_choice(self):
        with patch.dict(os.environ, {"A": "Background", "B": "eventually"}):
            assert getenv_choice("A", ("await", "background"), "await") == "background"
            assert getenv_choice("B", ("await", "background"), "await") == "await"


class TestWorkflowConfig:
    """Test resolution of per-run settings."""

    def test_fetch_mode_explicit_wins(self):
        with patch.object(WorkflowConfig, "FETCH_MODE", "await"):
            assert WorkflowConfig.resolve_fetch_mode("background") == "background"
            assert WorkflowConfig.resolve_fetch_mode(None) == "await"

    def test_unknown_fetch_mode_falls_back(self):
        with patch.object(WorkflowConfig, "FETCH_MODE", "background"):
            assert WorkflowConfig.resolve_fetch_mode("sometimes") == "background"

    def test_max_depth(self):
        with patch.object(WorkflowConfig, "MAX_DEPTH", 7):
            assert WorkflowConfig.resolve_max_depth(None) == 7
            assert WorkflowConfig.resolve_max_depth(0) == 0

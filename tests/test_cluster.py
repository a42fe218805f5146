"""Tests for cluster.py module."""

from unittest.mock import patch

import pytest
from kubernetes.config.config_exception import ConfigException

from tfo_plugin_manager.cluster import Cluster
from tfo_plugin_manager.exceptions import ClusterConnectionError


class TestClusterConfig:
    """Tests for configuration loading."""

    def test_in_cluster(self):
        """Test the service account is used without a kubeconfig."""
        with (
            patch("kubernetes.config.load_incluster_config") as mock_incluster,
            patch("kubernetes.config.load_kube_config") as mock_kubeconfig,
        ):
            cluster = Cluster()

            assert cluster.in_cluster is True
            mock_incluster.assert_called_once()
            mock_kubeconfig.assert_not_called()
            assert cluster.core_v1 is not None
            assert cluster.admission_registration_v1 is not None

    def test_kubeconfig(self):
        """Test an explicit kubeconfig path is loaded."""
        with (
            patch("kubernetes.config.load_incluster_config") as mock_incluster,
            patch("kubernetes.config.load_kube_config") as mock_kubeconfig,
        ):
            cluster = Cluster(kubeconfig="/tmp/kubeconfig")

            assert cluster.in_cluster is False
            mock_kubeconfig.assert_called_once_with(config_file="/tmp/kubeconfig")
            mock_incluster.assert_not_called()

    def test_no_config(self):
        """Test a missing configuration raises ClusterConnectionError."""
        with patch("kubernetes.config.load_incluster_config") as mock_incluster:
            mock_incluster.side_effect = ConfigException("Service host/port is not set.")

            with pytest.raises(ClusterConnectionError) as exc_info:
                Cluster()

            assert "Failed to get config for clientset" in str(exc_info.value)

    def test_repr(self):
        """Test repr shows the credential source."""
        with patch("kubernetes.config.load_incluster_config"):
            assert repr(Cluster()) == "Cluster(in_cluster=True)"

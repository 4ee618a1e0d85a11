"""Scenario tests for k8sinit.

These tests run several nodes of one fleet against a shared in-memory
bucket and auto scaling group, with kubeadm replaced by a fake that
writes PKI files and flips the API server endpoint to reachable.
"""

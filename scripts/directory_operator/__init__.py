"""Kubernetes operator entry point and kopf handler bindings."""
